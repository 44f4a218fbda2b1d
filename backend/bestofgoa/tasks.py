import asyncio, traceback
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession

from .workers import celery_app
from .config import settings
from .db import AsyncSessionLocal
from .entities import get_entity
from .exceptions import ExtractionDispatchError
from .models import Business
from .services.status import record_step
from .logger import logger


async def _get_business(db: AsyncSession, entity_id: str):
    res = await db.execute(select(Business).filter(Business.id == entity_id))
    return res.scalar_one_or_none()


def _callback_url(route: str, entity_id: str) -> str:
    return f"{settings.ADMIN_API_URL.rstrip('/')}/admin/{route}/{entity_id}/extraction-progress"


def _post_job(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Hand one job to the external runner. Raises ExtractionDispatchError if it is not accepted."""
    url = f"{settings.EXTRACTION_RUNNER_URL.rstrip('/')}/jobs"
    try:
        with httpx.Client(timeout=settings.EXTRACTION_RUNNER_TIMEOUT_SECONDS) as client:
            response = client.post(url, json=payload)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise ExtractionDispatchError(f"Extraction runner rejected job: {e}") from e
    try:
        return response.json()
    except ValueError:
        return {}


async def dispatch_extraction(
    entity_type: str,
    entity_id: str,
    place_id: str,
    search_query: Optional[str] = None,
    place_data: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Hand the extraction of one record to the runner and record the outcome on
    the record. Returns the job status written, or None if the record is gone.
    """
    entity = get_entity(entity_type)
    logger.info(f"Dispatching extraction for {entity.key} {entity_id}")

    async with AsyncSessionLocal() as db:
        business = await _get_business(db, entity_id)
        if not business:
            logger.error(f"Record not found in database: {entity_id}")
            return None

        payload = {
            "entity_type": entity.key,
            "entity_id": entity_id,
            "place_id": place_id,
            "search_query": search_query or business.name,
            "place_data": place_data or {},
            "steps": list(entity.step_names),
            "callback_url": _callback_url(entity.route, entity_id),
        }

        try:
            accepted = _post_job(payload)
        except ExtractionDispatchError as e:
            logger.error(
                f"Extraction hand-off failed for {entity.key} {entity_id}: {e.message}",
                extra={
                    "entity_type": entity.key,
                    "entity_id": entity_id,
                    "error": e.message,
                    "traceback": traceback.format_exc(),
                }
            )
            # The first step after stub creation is the one that never started
            failed_step = entity.steps[1].name if len(entity.steps) > 1 else entity.steps[0].name
            business.extraction_progress = record_step(
                business.extraction_progress, failed_step, "failed", error=e.message
            )
            business.extraction_status = "failed"
            business.current_step = failed_step
            await db.commit()
            raise

        # The runner may already have reported progress while the hand-off was in flight
        await db.refresh(business)
        if business.extraction_status == "pending":
            business.extraction_status = "in_progress"
            await db.commit()
        logger.info(
            f"Extraction job accepted for {entity.key} {entity_id}",
            extra={"entity_type": entity.key, "entity_id": entity_id, "runner_job_id": accepted.get("job_id")}
        )
        return business.extraction_status


@celery_app.task(bind=True, acks_late=True, max_retries=0)
def dispatch_extraction_task(self, entity_type: str, entity_id: str, place_id: str, search_query: Optional[str] = None, place_data: Optional[Dict[str, Any]] = None):
    """
    Celery task handing an extraction job to the external runner.
    """
    return asyncio.run(dispatch_extraction(entity_type, entity_id, place_id, search_query, place_data))
