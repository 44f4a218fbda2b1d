from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import select

from bestofgoa.db import AsyncSessionLocal
from bestofgoa.entities import ENTITIES, get_entity
from bestofgoa.logger import logger
from bestofgoa.models import Business
from bestofgoa.storage import delete_image_objects

STALE_STATUSES = ("pending", "in_progress", "processing", "failed")


@dataclass(frozen=True)
class PurgeResult:
    records: int
    images: int
    image_failures: List[str]


def _cutoff(hours: float) -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(hours=hours)


async def find_stale(*, older_than_hours: float, entity_type: Optional[str] = None) -> List[Business]:
    """Unpublished records whose extraction never completed and that are older than the cutoff."""
    query = select(Business).filter(
        Business.extraction_status.in_(STALE_STATUSES),
        Business.active.is_(False),
        Business.created_at < _cutoff(older_than_hours),
    )
    if entity_type:
        query = query.filter(Business.entity_type == get_entity(entity_type).key)

    async with AsyncSessionLocal() as db:
        res = await db.execute(query.order_by(Business.created_at))
        return list(res.scalars().all())


async def purge_stale_extractions(*, older_than_hours: float, entity_type: Optional[str], yes: bool) -> PurgeResult:
    stale = await find_stale(older_than_hours=older_than_hours, entity_type=entity_type)
    logger.warning(
        "Purge stale extractions requested",
        extra={
            "older_than_hours": older_than_hours,
            "entity_type": entity_type,
            "records": [{"id": b.id, "entity_type": b.entity_type, "status": b.extraction_status} for b in stale],
        },
    )

    if not yes:
        raise SystemExit(
            f"Refusing to run without --yes. "
            f"This will DELETE {len(stale)} unpublished record(s) and their stored images."
        )

    keys: List[str] = []
    async with AsyncSessionLocal() as db:
        for business in stale:
            res = await db.execute(select(Business).filter(Business.id == business.id))
            record = res.scalar_one_or_none()
            if record is None:
                continue
            keys.extend(i.storage_key for i in record.images if i.storage_key)
            await db.delete(record)
        await db.commit()

    failures = delete_image_objects(keys)
    result = PurgeResult(records=len(stale), images=len(keys), image_failures=failures)
    logger.warning(
        "Purge stale extractions completed",
        extra={"records": result.records, "images": result.images, "image_failures": result.image_failures},
    )
    return result


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Delete unpublished records whose extraction failed or never finished.",
    )
    parser.add_argument(
        "--older-than-hours",
        type=float,
        default=24.0,
        help="Only records created more than this many hours ago (default: 24).",
    )
    parser.add_argument(
        "--entity",
        choices=sorted(ENTITIES),
        default=None,
        help="Limit to one entity type.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm destructive action (required).",
    )
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    asyncio.run(
        purge_stale_extractions(
            older_than_hours=args.older_than_hours,
            entity_type=args.entity,
            yes=bool(args.yes),
        )
    )


if __name__ == "__main__":
    main()
