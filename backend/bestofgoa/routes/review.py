"""
Review routes - listing, review read/update, publish, unpublish, delete
"""
from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc, func
from typing import Any, Dict, Optional

from ..db import get_db
from ..entities import EntityConfig
from ..exceptions import InvalidPublishStateError
from ..models import Business
from ..services.records import (
    apply_fields,
    check_review_update,
    get_business,
    review_payload,
    serialize_record,
    set_relations,
)
from ..storage import delete_image_objects
from ..logger import logger
from .common import entity_config

router = APIRouter(prefix="/admin/{entity}", tags=["Review"])


@router.get("/list")
async def list_records(
    published: Optional[bool] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """Paginated admin listing, newest first"""
    filters = [Business.entity_type == entity.key]
    if published is not None:
        filters.append(Business.active == published)

    total = (await db.execute(select(func.count()).select_from(Business).filter(*filters))).scalar_one()
    res = await db.execute(
        select(Business).filter(*filters).order_by(desc(Business.created_at)).offset(offset).limit(limit)
    )
    return {
        "items": [serialize_record(b) for b in res.scalars().all()],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/{entity_id}/review")
async def get_review(
    entity_id: str,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """Fully resolved record with relations, child collections and images"""
    business = await get_business(db, entity, entity_id)
    return review_payload(business, entity)


@router.put("/{entity_id}/review")
async def update_review(
    entity_id: str,
    fields: Dict[str, Any] = Body(...),
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """Partial update of editable fields. Publish state is not changed here."""
    update = check_review_update(entity, fields)
    business = await get_business(db, entity, entity_id)

    written = apply_fields(business, entity, update["fields"])
    for kind, values in update["relations"].items():
        await set_relations(db, business, kind, values)
    await db.commit()

    logger.info(
        f"Review saved for {entity.key} {entity_id}",
        extra={"entity_type": entity.key, "entity_id": entity_id, "fields": written + list(update["relations"])}
    )
    return {"success": True, "record": serialize_record(business)}


@router.post("/{entity_id}/publish")
async def publish(
    entity_id: str,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    business = await get_business(db, entity, entity_id)
    if business.active:
        logger.warning(f"{entity.key} {entity_id} is already published")
        raise InvalidPublishStateError(entity_id, "published", "draft")

    business.active = True
    await db.commit()

    public_url = entity.public_url(business.slug)
    logger.info(f"{entity.label} published: {entity_id}", extra={"entity_id": entity_id, "public_url": public_url})
    return {"success": True, "slug": business.slug, "public_url": public_url}


@router.post("/{entity_id}/unpublish")
async def unpublish(
    entity_id: str,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    business = await get_business(db, entity, entity_id)
    if not business.active:
        logger.warning(f"{entity.key} {entity_id} is not published")
        raise InvalidPublishStateError(entity_id, "draft", "published")

    business.active = False
    await db.commit()

    logger.info(f"{entity.label} unpublished: {entity_id}", extra={"entity_id": entity_id})
    return {"success": True, "slug": business.slug}


@router.delete("/{entity_id}")
async def delete_record(
    entity_id: str,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete the record, its child rows and its stored image objects.
    Storage failures are reported but do not undo the record delete.
    """
    business = await get_business(db, entity, entity_id)
    keys = [i.storage_key for i in business.images if i.storage_key]

    await db.delete(business)
    await db.commit()

    failures = delete_image_objects(keys)
    if failures:
        logger.warning(
            f"{entity.label} {entity_id} deleted with {len(failures)} image deletion failure(s)",
            extra={"entity_id": entity_id, "failures": failures}
        )
    else:
        logger.info(f"{entity.label} deleted: {entity_id}")
    return {"success": True, "deleted_id": entity_id, "image_deletion_failures": failures}
