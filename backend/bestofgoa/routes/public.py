"""
Public read routes used by the site
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ..db import get_db
from ..entities import EntityConfig
from ..exceptions import EntityNotFoundError
from ..models import Business
from ..services.records import public_payload
from .common import entity_config

router = APIRouter(prefix="/public/{entity}", tags=["Public"])


@router.get("/{slug}")
async def get_published_record(
    slug: str,
    entity: EntityConfig = Depends(entity_config),
    db: AsyncSession = Depends(get_db),
):
    """Published record by slug. Drafts are invisible here."""
    res = await db.execute(
        select(Business).filter(
            Business.entity_type == entity.key,
            Business.slug == slug,
            Business.active.is_(True),
        )
    )
    business = res.scalar_one_or_none()
    if not business:
        raise EntityNotFoundError(entity.label, slug)
    return public_payload(business, entity)
