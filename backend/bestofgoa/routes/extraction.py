"""
Extraction routes - start, status, runner callback, duplicate check, queue
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from typing import Any, Dict, List, Optional

from ..db import get_db
from ..entities import EntityConfig
from ..exceptions import DuplicateEntityError, ExtractionInProgressError, InvalidRequestError
from ..extraction.formatting import area_from_address
from ..models import Business
from ..schemas import (
    CheckDuplicateRequest,
    ExtractionProgressUpdate,
    ExtractionStatusResponse,
    ReportedStep,
    StartExtractionRequest,
)
from ..services.records import (
    add_images,
    apply_fields,
    extracted_data,
    find_by_place_id,
    get_business,
    set_children,
    set_relations,
    unique_slug,
)
from ..services.similarity import is_probable_duplicate
from ..services.status import build_steps, initial_progress, progress_percentage, record_step
from ..storage import delete_image_objects
from ..logger import logger
from .common import enqueue_extraction, entity_config

router = APIRouter(prefix="/admin/{entity}", tags=["Extraction"])

RUNNING_STATUSES = ("pending", "in_progress", "processing")


def _place_coordinates(place: Dict[str, Any]) -> Dict[str, Optional[float]]:
    location = (place.get("geometry") or {}).get("location") or place.get("location") or {}
    return {"latitude": location.get("lat"), "longitude": location.get("lng")}


@router.post("/start-extraction")
async def start_extraction(
    body: StartExtractionRequest,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """
    Create the record stub and hand the extraction job to the runner.
    Returns the new record id immediately; progress is read via extraction-status.
    """
    logger.info(
        f"Start extraction request for {entity.key}",
        extra={"entity_type": entity.key, "place_id": body.place_id, "override": body.override}
    )

    image_failures: List[str] = []
    existing = await find_by_place_id(db, entity, body.place_id)
    if existing:
        if not body.override:
            logger.warning(f"{entity.label} already exists for place {body.place_id}: {existing.id}")
            raise DuplicateEntityError(
                entity.key, existing.id, in_progress=existing.extraction_status in RUNNING_STATUSES
            )
        logger.info(f"Override requested, deleting existing {entity.key} {existing.id}")
        keys = [i.storage_key for i in existing.images if i.storage_key]
        await db.delete(existing)
        await db.commit()
        image_failures = delete_image_objects(keys)

    place = body.place_data or {}
    name = place.get("name") or body.search_query or body.place_id
    address = place.get("formatted_address") or place.get("address")
    area = area_from_address(address) or None

    business = Business(
        entity_type=entity.key,
        name=name,
        slug=await unique_slug(db, entity, name, area),
        google_place_id=body.place_id,
        address=address,
        area=area,
        google_rating=place.get("rating"),
        google_review_count=place.get("user_ratings_total"),
        extraction_status="pending",
        current_step=entity.steps[0].name,
        extraction_progress=initial_progress(entity),
        attributes={},
        tags=[],
        images=[],
        items=[],
        **_place_coordinates(place),
    )
    db.add(business)
    await db.commit()

    logger.info(f"{entity.label} stub created: {business.id}", extra={"entity_id": business.id, "slug": business.slug})

    enqueue_extraction((entity.key, business.id, body.place_id, body.search_query, place))

    response = {
        "success": True,
        "entity_id": business.id,
        f"{entity.key}_id": business.id,
        "slug": business.slug,
        "status": business.extraction_status,
    }
    if image_failures:
        response["image_deletion_failures"] = image_failures
    return response


@router.get("/extraction-status/{entity_id}")
async def get_extraction_status(
    entity_id: str,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    business = await get_business(db, entity, entity_id)
    steps = build_steps(entity, business.extraction_progress)
    status = ExtractionStatusResponse(
        entity_id=business.id,
        entity_type=entity.key,
        status=business.extraction_status,
        current_step=business.current_step,
        progress_percentage=progress_percentage(entity, steps),
        steps=[ReportedStep(**s) for s in steps],
        extracted_data=extracted_data(business, entity),
    )
    return {**status.model_dump(), f"{entity.key}_id": business.id}


@router.post("/{entity_id}/extraction-progress")
async def report_extraction_progress(
    entity_id: str,
    body: ExtractionProgressUpdate,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """
    Runner callback: record one step's outcome plus whatever the step extracted.
    """
    if body.step not in entity.step_names:
        raise InvalidRequestError(f"Unknown step '{body.step}' for {entity.key}")

    business = await get_business(db, entity, entity_id)
    business.extraction_progress = record_step(
        business.extraction_progress,
        body.step,
        body.status,
        error=body.error,
        counters={
            "images_processed": body.images_processed,
            "images_total": body.images_total,
            "current_cost": body.current_cost,
        },
    )
    business.current_step = body.step

    if body.extracted:
        apply_fields(business, entity, {k: v for k, v in body.extracted.items() if v is not None})
    for kind, names in body.relations.items():
        if kind in entity.relations:
            await set_relations(db, business, kind, names)
    for kind, items in body.children.items():
        if kind in entity.child_kinds:
            set_children(business, kind, items)
    added_images = add_images(business, body.images)
    if body.apify_output is not None:
        business.apify_output = body.apify_output
    if body.firecrawl_output is not None:
        business.firecrawl_output = body.firecrawl_output

    if body.job_status:
        business.extraction_status = body.job_status
    elif business.extraction_status in ("pending", "in_progress"):
        business.extraction_status = "processing"

    await db.commit()

    steps = build_steps(entity, business.extraction_progress)
    logger.info(
        f"Extraction progress for {entity.key} {entity_id}: {body.step} {body.status}",
        extra={
            "entity_type": entity.key,
            "entity_id": entity_id,
            "step": body.step,
            "step_status": body.status,
            "job_status": business.extraction_status,
            "images_added": added_images,
        }
    )
    return {
        "success": True,
        "status": business.extraction_status,
        "progress_percentage": progress_percentage(entity, steps),
    }


@router.post("/check-duplicate")
async def check_duplicate(
    body: CheckDuplicateRequest,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """
    Match by google_place_id (exact), then by name + area similarity (fuzzy).
    Without an area only the exact match is attempted.
    """
    if not body.placeId or not body.name:
        raise InvalidRequestError("placeId and name are required")

    columns = (
        Business.id, Business.name, Business.slug, Business.address,
        Business.area, Business.verified, Business.active, Business.google_place_id,
    )

    res = await db.execute(
        select(*columns).filter(Business.entity_type == entity.key, Business.google_place_id == body.placeId)
    )
    exact = [dict(row._mapping) for row in res.all()]
    if exact:
        return _duplicate_response(entity, "exact", exact[:1])
    if not body.area:
        return _duplicate_response(entity, None, [])

    res = await db.execute(select(*columns).filter(Business.entity_type == entity.key))
    fuzzy = [
        dict(row._mapping)
        for row in res.all()
        if is_probable_duplicate(body.name, body.area, row.name or "", row.area or "")
    ]
    if fuzzy:
        return _duplicate_response(entity, "fuzzy", fuzzy)

    return _duplicate_response(entity, None, [])


def _duplicate_response(entity: EntityConfig, match_type: Optional[str], matches: List[Dict[str, Any]]):
    if matches:
        logger.info(
            f"Duplicate check matched {len(matches)} {entity.route}",
            extra={"entity_type": entity.key, "match_type": match_type}
        )
    return {
        "success": True,
        "exists": bool(matches),
        "match_type": match_type,
        "entities": matches,
        entity.route: matches,
    }


@router.get("/queue")
async def get_extraction_queue(
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """Records whose extraction has not completed yet, newest first."""
    res = await db.execute(
        select(Business)
        .filter(Business.entity_type == entity.key, Business.extraction_status != "completed")
        .order_by(desc(Business.created_at))
    )
    items = []
    for business in res.scalars().all():
        steps = build_steps(entity, business.extraction_progress)
        items.append({
            "id": business.id,
            "name": business.name,
            "slug": business.slug,
            "status": business.extraction_status,
            "current_step": business.current_step,
            "progress_percentage": progress_percentage(entity, steps),
            "created_at": business.created_at.isoformat() if business.created_at else None,
        })
    return {"queue": items, "total": len(items)}


@router.post("/{entity_id}/re-extract")
async def re_extract(
    entity_id: str,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """Reset job progress of an existing record and run the extraction again."""
    business = await get_business(db, entity, entity_id)
    if business.extraction_status in RUNNING_STATUSES:
        raise ExtractionInProgressError(entity_id, business.extraction_status)

    business.extraction_status = "pending"
    business.current_step = entity.steps[0].name
    business.extraction_progress = initial_progress(entity)
    await db.commit()

    enqueue_extraction((entity.key, business.id, business.google_place_id, business.name, {}))
    logger.info(f"Re-extraction queued for {entity.key} {entity_id}")
    return {"success": True, "entity_id": business.id, "status": business.extraction_status}
