"""
Conversions between `Business` rows and the JSON shapes the admin client and
the public site consume.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..entities import NON_EDITABLE_FIELDS, EntityConfig
from ..exceptions import EntityNotFoundError, InvalidRequestError
from ..extraction.formatting import slugify
from ..logger import logger
from ..models import Business, BusinessImage, BusinessItem, Tag

# Scalar columns an editor (or the runner) may write
EDITABLE_COLUMNS = (
    "name", "google_place_id", "address", "area", "latitude", "longitude",
    "phone", "email", "website", "instagram", "facebook", "twitter",
    "description", "short_description", "meta_title", "meta_description", "meta_keywords",
    "google_rating", "google_review_count", "bok_score", "verified", "featured",
)

# Attributes every entity type may carry in addition to its own
COMMON_ATTRIBUTES = (
    "name_ar", "neighborhood", "hours", "category", "review_sentiment",
    "tripadvisor_rating", "hero_image", "logo_image",
)

RAW_FIELDS = ("apify_output", "firecrawl_output")

CHILD_ITEM_KINDS = {
    "menu_items": "menu_item",
    "room_types": "room_type",
    "faqs": "faq",
}


async def get_business(db: AsyncSession, entity: EntityConfig, entity_id: str) -> Business:
    res = await db.execute(
        select(Business).filter(Business.id == entity_id, Business.entity_type == entity.key)
    )
    business = res.scalar_one_or_none()
    if not business:
        logger.warning(f"{entity.label} not found: {entity_id}")
        raise EntityNotFoundError(entity.label, entity_id)
    return business


async def find_by_place_id(db: AsyncSession, entity: EntityConfig, place_id: str) -> Optional[Business]:
    res = await db.execute(
        select(Business).filter(Business.google_place_id == place_id, Business.entity_type == entity.key)
    )
    return res.scalars().first()


async def unique_slug(db: AsyncSession, entity: EntityConfig, name: str, area: Optional[str] = None) -> str:
    """`name-area`, then `name-area-1`, `name-area-2`... until free within the entity type."""
    base = slugify(" ".join(p for p in (name, area) if p)) or entity.key
    res = await db.execute(
        select(Business.slug).filter(Business.entity_type == entity.key, Business.slug.like(f"{base}%"))
    )
    taken = set(res.scalars().all())
    if base not in taken:
        return base
    n = 1
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


# ===== record shapes =====

def serialize_record(business: Business, *, include_raw: bool = False) -> Dict[str, Any]:
    """Flat record: columns, then type-specific attributes."""
    record: Dict[str, Any] = {
        "id": business.id,
        "entity_type": business.entity_type,
        "slug": business.slug,
        "active": business.active,
        "extraction_status": business.extraction_status,
        "created_at": business.created_at.isoformat() if business.created_at else None,
        "updated_at": business.updated_at.isoformat() if business.updated_at else None,
    }
    for name in EDITABLE_COLUMNS:
        record[name] = getattr(business, name)
    for key, value in (business.attributes or {}).items():
        record.setdefault(key, value)
    if include_raw:
        for name in RAW_FIELDS:
            record[name] = getattr(business, name)
    return record


def serialize_image(image: BusinessImage) -> Dict[str, Any]:
    return {
        "id": image.id,
        "url": image.url,
        "storage_key": image.storage_key,
        "alt_text": image.alt_text,
        "status": image.status,
        "is_hero": image.is_hero,
        "display_order": image.display_order,
    }


def relations_of(business: Business, entity: EntityConfig) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = {kind: [] for kind in entity.relations}
    for tag in sorted(business.tags, key=lambda t: t.name.lower()):
        if tag.kind in grouped:
            grouped[tag.kind].append({"id": tag.id, "name": tag.name, "slug": tag.slug})
    return grouped


def children_of(business: Business, entity: EntityConfig) -> Dict[str, List[Dict[str, Any]]]:
    children: Dict[str, List[Dict[str, Any]]] = {}
    for kind in entity.child_kinds:
        item_kind = CHILD_ITEM_KINDS[kind]
        children[kind] = [
            {"id": item.id, **(item.data or {})}
            for item in business.items
            if item.kind == item_kind
        ]
    return children


def extracted_data(business: Business, entity: EntityConfig) -> Dict[str, Any]:
    """Poll-time view: flat record plus relation arrays, child collections and raw provider output."""
    data = serialize_record(business, include_raw=True)
    data.update(relations_of(business, entity))
    children = children_of(business, entity)
    data["faqs"] = children.get("faqs", [])
    if "room_types" in children:
        data["room_types"] = children["room_types"]
    if "menu_items" in children:
        data["dishes"] = children["menu_items"]
    data["images"] = [serialize_image(i) for i in business.images]
    return data


def review_payload(business: Business, entity: EntityConfig) -> Dict[str, Any]:
    return {
        "record": serialize_record(business),
        "relations": relations_of(business, entity),
        "children": children_of(business, entity),
        "images": [serialize_image(i) for i in business.images],
        "review_count": business.google_review_count or 0,
    }


def public_payload(business: Business, entity: EntityConfig) -> Dict[str, Any]:
    """Published record for the public site. Provider blobs are never included."""
    record = serialize_record(business)
    record.pop("extraction_status", None)
    record["meta_title"] = business.meta_title or f"{business.name} | {settings.SITE_NAME}"
    record["meta_description"] = business.meta_description or business.short_description
    record["url"] = entity.public_url(business.slug)
    record["canonical_url"] = f"{settings.PUBLIC_SITE_URL.rstrip('/')}{record['url']}"
    hero = next((i for i in business.images if i.is_hero and i.status != "rejected"), None)
    return {
        "record": record,
        "relations": relations_of(business, entity),
        "children": children_of(business, entity),
        "images": [serialize_image(i) for i in business.images if i.status == "approved"],
        "hero_image": hero.url if hero else record.get("hero_image"),
    }


# ===== writes =====

def apply_fields(business: Business, entity: EntityConfig, fields: Dict[str, Any]) -> List[str]:
    """
    Write scalar fields onto the record: known columns directly, anything else
    into `attributes`. Returns the names that were written.
    """
    attributes = dict(business.attributes or {})
    written = []
    for name, value in fields.items():
        if name in NON_EDITABLE_FIELDS:
            continue
        if name in EDITABLE_COLUMNS:
            setattr(business, name, value)
        else:
            attributes[name] = value
        written.append(name)
    business.attributes = attributes
    return written


def check_review_update(entity: EntityConfig, fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Split a review edit into scalar fields and relation replacements.

    Identity, publish state and job state cannot be edited here; unknown names
    are dropped.
    """
    blocked = sorted(name for name in fields if name in NON_EDITABLE_FIELDS)
    if blocked:
        raise InvalidRequestError(f"Field(s) cannot be edited: {', '.join(blocked)}")

    allowed = set(EDITABLE_COLUMNS) | set(COMMON_ATTRIBUTES) | set(entity.attribute_fields)
    scalars, relations, ignored = {}, {}, []
    for name, value in fields.items():
        if name in entity.relations:
            relations[name] = value
        elif name in allowed:
            scalars[name] = value
        else:
            ignored.append(name)
    if ignored:
        logger.warning(
            f"Ignoring unknown review fields: {', '.join(sorted(ignored))}",
            extra={"entity_type": entity.key},
        )
    return {"fields": scalars, "relations": relations}


async def set_relations(db: AsyncSession, business: Business, kind: str, values: Iterable[Any]) -> None:
    """Replace all tags of `kind` on the record, creating missing tags by name."""
    names = []
    for value in values or []:
        name = value.get("name") if isinstance(value, dict) else value
        if isinstance(name, str) and name.strip() and name.strip() not in names:
            names.append(name.strip())

    tags = []
    for name in names:
        slug = slugify(name)
        res = await db.execute(select(Tag).filter(Tag.kind == kind, Tag.slug == slug))
        tag = res.scalar_one_or_none()
        if tag is None:
            tag = Tag(kind=kind, name=name, slug=slug)
            db.add(tag)
        tags.append(tag)

    business.tags = [t for t in business.tags if t.kind != kind] + tags


def set_children(business: Business, kind: str, items: Iterable[Dict[str, Any]]) -> None:
    item_kind = CHILD_ITEM_KINDS[kind]
    kept = [i for i in business.items if i.kind != item_kind]
    new = [
        BusinessItem(kind=item_kind, display_order=n, data=dict(item))
        for n, item in enumerate(items or [])
        if isinstance(item, dict)
    ]
    business.items = kept + new


def add_images(business: Business, images: Iterable[Dict[str, Any]]) -> int:
    known = {i.url for i in business.images}
    order = max((i.display_order for i in business.images), default=0)
    added = 0
    for image in images or []:
        url = image.get("url") if isinstance(image, dict) else None
        if not url or url in known:
            continue
        order += 1
        business.images.append(
            BusinessImage(
                url=url,
                storage_key=image.get("storage_key"),
                alt_text=image.get("alt_text") or f"{business.name} image",
                status=image.get("status") or "pending",
                is_hero=False,
                display_order=order,
            )
        )
        known.add(url)
        added += 1
    return added
