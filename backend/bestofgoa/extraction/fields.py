"""
Declarative field-resolution tables.

Each target field of the merged record is resolved from an ordered tuple of
sources, highest priority first: mapped database columns on the status
payload, then aliases inside the raw Google Places JSON (`apify_output`).
The first source that yields a non-empty value wins; if none does, the merger
keeps whatever value it already had.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from .formatting import coordinates, hours_value, price_level_value

Transform = Callable[[Any], Any]


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def get_path(payload: Any, path: str) -> Any:
    """Dotted lookup into nested dicts; an empty path returns the payload itself."""
    if not path:
        return payload
    current = payload
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


@dataclass(frozen=True)
class Source:
    path: str
    transform: Optional[Transform] = None

    def resolve(self, payload: Dict[str, Any]) -> Any:
        value = get_path(payload, self.path)
        if value is None:
            return None
        if self.transform is not None:
            return self.transform(value)
        return value


@dataclass(frozen=True)
class FieldRule:
    target: str
    sources: Tuple[Source, ...]
    # Only ever filled, never replaced once set (slug)
    write_once: bool = False

    def resolve(self, payload: Dict[str, Any]) -> Any:
        for source in self.sources:
            value = source.resolve(payload)
            if not is_empty(value):
                return value
        return None


def mapped(target: str, *apify_aliases: str, transform: Optional[Transform] = None) -> FieldRule:
    """Mapped column of the same name, then `apify_output` aliases in order."""
    sources = [Source(target, transform)]
    sources.extend(Source(f"apify_output.{alias}", transform) for alias in apify_aliases)
    return FieldRule(target, tuple(sources))


# ===== transforms =====

def _text(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _name_or_text(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return _text(value.get("name"))
    return _text(value)


def _coordinates_from_columns(payload: Any) -> Optional[str]:
    return coordinates(payload.get("latitude"), payload.get("longitude"))


def _coordinates_from_location(location: Any) -> Optional[str]:
    if not isinstance(location, dict):
        return None
    return coordinates(location.get("lat"), location.get("lng"))


def _photos_from_images(images: Any) -> Optional[list]:
    if not isinstance(images, list):
        return None
    photos = []
    for img in images:
        if isinstance(img, dict) and img.get("url"):
            photos.append({"url": img["url"], "alt": img.get("alt_text") or img.get("alt")})
    return photos


def _photos_from_urls(photos: Any) -> Optional[list]:
    if not isinstance(photos, list):
        return None
    result = []
    for photo in photos:
        if isinstance(photo, str):
            result.append({"url": photo, "alt": None})
        elif isinstance(photo, dict) and photo.get("url"):
            result.append({"url": photo["url"], "alt": photo.get("alt")})
    return result


COMMON_RULES: Tuple[FieldRule, ...] = (
    # Identity
    FieldRule("id", (Source("id", _text),)),
    mapped("google_place_id", "placeId", transform=_text),
    mapped("name", "title", "name", "placeName", transform=_text),
    FieldRule("slug", (Source("slug", _text),), write_once=True),
    FieldRule("name_ar", (Source("name_ar", _text),)),
    # Location
    mapped("address", "address", "fullAddress", transform=_text),
    FieldRule("area", (Source("area", _text),)),
    mapped("neighborhood", "neighborhood", "city", "area", transform=_name_or_text),
    mapped("latitude", "location.lat", "latitude", transform=_number),
    mapped("longitude", "location.lng", "longitude", transform=_number),
    FieldRule(
        "coordinates",
        (
            Source("", _coordinates_from_columns),
            Source("apify_output.location", _coordinates_from_location),
            Source("apify_output", _coordinates_from_columns),
        ),
    ),
    # Contact
    mapped("phone", "phone", "phoneUnformatted", transform=_text),
    FieldRule("email", (Source("email", _text),)),
    mapped("website", "website", "url", transform=_text),
    FieldRule("instagram", (Source("instagram", _text),)),
    FieldRule("facebook", (Source("facebook", _text),)),
    FieldRule("twitter", (Source("twitter", _text),)),
    # Content
    FieldRule("description", (Source("description", _text),)),
    FieldRule("short_description", (Source("short_description", _text),)),
    FieldRule("meta_title", (Source("meta_title", _text),)),
    FieldRule("meta_description", (Source("meta_description", _text),)),
    FieldRule("meta_keywords", (Source("meta_keywords"),)),
    FieldRule("review_sentiment", (Source("review_sentiment", _text),)),
    # Ratings
    mapped("google_rating", "totalScore", "rating", transform=_number),
    mapped("google_review_count", "reviewsCount", transform=_number),
    FieldRule("tripadvisor_rating", (Source("tripadvisor_rating", _number),)),
    FieldRule("bok_score", (Source("bok_score", _number),)),
    # Operational
    FieldRule(
        "hours",
        (
            Source("hours", hours_value),
            Source("apify_output.openingHours", hours_value),
        ),
    ),
    FieldRule(
        "category",
        (
            Source("primary_category", _text),
            Source("category", _name_or_text),
            Source("apify_output.categoryName", _text),
        ),
    ),
    # Images
    FieldRule("hero_image", (Source("hero_image", _text),)),
    FieldRule("logo_image", (Source("logo_image", _text),)),
    FieldRule(
        "photos",
        (
            Source("images", _photos_from_images),
            Source("photos", _photos_from_urls),
            Source("apify_output.imageUrls", _photos_from_urls),
            Source("apify_output.photos", _photos_from_urls),
        ),
    ),
    # Publication flags
    FieldRule("active", (Source("active"),)),
    FieldRule("verified", (Source("verified"),)),
    FieldRule("featured", (Source("featured"),)),
)

RESTAURANT_RULES: Tuple[FieldRule, ...] = (
    mapped("price_level", "price", transform=price_level_value),
    FieldRule("currency", (Source("currency", _text),)),
    FieldRule("average_meal_price", (Source("average_meal_price", _number),)),
    FieldRule("opentable_rating", (Source("opentable_rating", _number),)),
)

HOTEL_RULES: Tuple[FieldRule, ...] = (
    mapped("star_rating", "hotelStars", transform=_number),
    FieldRule("booking_com_rating", (Source("booking_com_rating", _number),)),
    FieldRule("price_range", (Source("price_range", _text), Source("apify_output.price", _text))),
)


def build_rules(extra: Iterable[FieldRule], attribute_fields: Iterable[str]) -> Tuple[FieldRule, ...]:
    """
    Common rules, then entity-specific ones, then a plain mapped-column rule
    for each remaining type-specific attribute.
    """
    rules = list(COMMON_RULES) + list(extra)
    known = {r.target for r in rules}
    for name in attribute_fields:
        if name not in known:
            rules.append(FieldRule(name, (Source(name),)))
            known.add(name)
    return tuple(rules)
