"""
Image moderation routes
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from ..db import get_db
from ..entities import EntityConfig
from ..exceptions import ImageNotFoundError, InvalidRequestError
from ..models import Business, BusinessImage
from ..schemas import ImageActionRequest
from ..services.records import get_business, serialize_image
from ..storage import delete_image_objects
from ..logger import logger
from .common import entity_config

router = APIRouter(prefix="/admin/{entity}/{entity_id}/images", tags=["Images"])


def _find_image(business: Business, image_id: str) -> BusinessImage:
    image = next((i for i in business.images if i.id == image_id), None)
    if image is None:
        logger.warning(f"Image not found: {image_id}")
        raise ImageNotFoundError(image_id)
    return image


@router.get("")
async def list_images(
    entity_id: str,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    business = await get_business(db, entity, entity_id)
    return {"images": [serialize_image(i) for i in business.images]}


@router.patch("")
async def update_image(
    entity_id: str,
    body: ImageActionRequest,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """approve / reject / set_hero. At most one hero image per record."""
    business = await get_business(db, entity, entity_id)
    image = _find_image(business, body.imageId)

    if body.action == "approve":
        image.status = "approved"
    elif body.action == "reject":
        image.status = "rejected"
        image.is_hero = False
    else:
        for other in business.images:
            other.is_hero = False
        image.is_hero = True
    await db.commit()

    logger.info(
        f"Image {body.action}: {image.id}",
        extra={"entity_type": entity.key, "entity_id": entity_id, "image_id": image.id, "action": body.action}
    )
    return {"success": True, "image": serialize_image(image)}


@router.delete("")
async def delete_image(
    entity_id: str,
    imageId: Optional[str] = Query(None),
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    if not imageId:
        raise InvalidRequestError("imageId is required")

    business = await get_business(db, entity, entity_id)
    image = _find_image(business, imageId)
    key = image.storage_key

    business.images.remove(image)
    await db.commit()

    failures = delete_image_objects([key]) if key else []
    logger.info(f"Image deleted: {imageId}", extra={"entity_id": entity_id, "storage_failures": failures})
    return {"success": True, "deleted_id": imageId, "image_deletion_failures": failures}
