"""
Display conversions shared by the merger and the server-side record builder.
"""
from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from slugify import slugify as _slugify

PRICE_LEVELS = {
    "$": 1,
    "$$": 2,
    "$$$": 3,
    "$$$$": 4,
}

DAY_ABBREVIATIONS = {
    "monday": "Mon",
    "tuesday": "Tue",
    "wednesday": "Wed",
    "thursday": "Thu",
    "friday": "Fri",
    "saturday": "Sat",
    "sunday": "Sun",
}


def map_price_level(price: Any) -> int:
    """`$`..`$$$$` -> 1..4; empty, missing or unrecognised -> 0."""
    if not isinstance(price, str) or not price:
        return 0
    return PRICE_LEVELS.get(price.strip(), 0)


def price_level_value(value: Any) -> Optional[int]:
    """Accept either an already-normalised level or a price symbol. 0 means unknown."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1 <= value <= 4 else None
    return map_price_level(value) or None


def format_hours(opening_hours: Any) -> str:
    """
    Render `[{day, hours}, ...]` as "Mon: 9-5, Fri: 10-2".

    Anything that is not a list renders as an empty string.
    """
    if not opening_hours or not isinstance(opening_hours, list):
        return ""

    parts = []
    for entry in opening_hours:
        if not isinstance(entry, dict):
            continue
        day = entry.get("day")
        label = DAY_ABBREVIATIONS.get(str(day).lower(), day) if day is not None else ""
        hours = entry.get("hours")
        parts.append(f"{label}: {hours if hours is not None else ''}")
    return ", ".join(parts)


def hours_value(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    return format_hours(value)


def area_from_address(formatted_address: Optional[str]) -> str:
    if not formatted_address:
        return ""
    return formatted_address.split(",")[0].strip()


def join_names(items: Optional[Iterable[Any]]) -> str:
    if not items:
        return ""
    names = []
    for item in items:
        if isinstance(item, dict) and item.get("name"):
            names.append(str(item["name"]))
        elif isinstance(item, str) and item:
            names.append(item)
    return ", ".join(names)


def coordinates(lat: Any, lng: Any) -> Optional[str]:
    if lat in (None, "") or lng in (None, ""):
        return None
    return f"{lat}, {lng}"


def slugify(text: str) -> str:
    """ASCII slug; accents and non-Latin scripts are transliterated, apostrophes dropped."""
    return _slugify(re.sub(r"['’]", "", text or ""))
