from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..entities import EntityConfig, get_entity
from ..logger import logger
from .client import AdminApiClient
from .formatting import area_from_address


@dataclass
class Candidate:
    """A Google Places search result picked by the operator."""

    place_id: str
    name: str
    formatted_address: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_place(cls, place: Dict[str, Any]) -> "Candidate":
        return cls(
            place_id=place.get("place_id") or place.get("placeId") or "",
            name=place.get("name") or "",
            formatted_address=place.get("formatted_address") or place.get("address") or "",
            raw=dict(place),
        )

    @property
    def area(self) -> str:
        return area_from_address(self.formatted_address)


@dataclass
class DuplicateCheckResult:
    allowed: bool
    match_type: Optional[str] = None
    entities: List[Dict[str, Any]] = field(default_factory=list)
    # Set when the check itself failed and the guard let extraction through
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


class DuplicateGuard:
    """
    Asks the admin API whether a candidate already exists before extraction.

    A broken duplicate check must not block legitimate work, so any failure of
    the check itself lets extraction proceed.
    """

    def __init__(self, client: AdminApiClient, entity: Union[str, EntityConfig]) -> None:
        self.client = client
        self.entity = get_entity(entity)

    async def check(self, candidate: Candidate) -> DuplicateCheckResult:
        try:
            data = await self.client.check_duplicate(
                self.entity,
                place_id=candidate.place_id,
                name=candidate.name,
                area=candidate.area,
            )
        except Exception as e:
            logger.warning(
                f"Duplicate check error, allowing extraction: {e}",
                extra={"entity_type": self.entity.key, "place_id": candidate.place_id},
            )
            return DuplicateCheckResult(allowed=True, error=str(e))

        if not data.get("exists"):
            return DuplicateCheckResult(allowed=True)

        entities = data.get("entities")
        if entities is None:
            entities = data.get(self.entity.route) or []
        logger.info(
            "Duplicate candidate found",
            extra={
                "entity_type": self.entity.key,
                "place_id": candidate.place_id,
                "match_type": data.get("match_type"),
                "matches": len(entities),
            },
        )
        return DuplicateCheckResult(allowed=False, match_type=data.get("match_type"), entities=list(entities))
