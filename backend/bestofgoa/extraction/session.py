"""
The "add business" workflow: pick a candidate, guard against duplicates,
start the extraction job and watch it.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import httpx

from ..entities import EntityConfig, get_entity
from ..exceptions import AdminApiError
from ..logger import logger
from .client import AdminApiClient
from .duplicates import Candidate, DuplicateGuard
from .watcher import ExtractionWatcher, PollingSubscription


class AddBusinessSession:
    def __init__(
        self,
        client: AdminApiClient,
        entity: Union[str, EntityConfig],
        *,
        watcher: Optional[ExtractionWatcher] = None,
        guard: Optional[DuplicateGuard] = None,
    ) -> None:
        self.client = client
        self.entity = get_entity(entity)
        self.watcher = watcher or ExtractionWatcher(client, self.entity)
        self.guard = guard or DuplicateGuard(client, self.entity)

        self.selected: Optional[Candidate] = None
        self.entity_id: Optional[str] = None
        self.error: Optional[str] = None

        self.duplicates: List[Dict[str, Any]] = []
        self.duplicate_match_type: Optional[str] = None
        self.show_duplicate_warning = False

    @property
    def state(self):
        return self.watcher.state

    @property
    def is_extracting(self) -> bool:
        return self.watcher.is_polling

    def select_candidate(self, place: Union[Candidate, Dict[str, Any]]) -> Candidate:
        """Selection only; the duplicate check runs when extraction is requested."""
        candidate = place if isinstance(place, Candidate) else Candidate.from_place(place)
        self.selected = candidate
        self._clear_duplicates()
        return candidate

    async def run_extraction(self) -> Optional[PollingSubscription]:
        """
        Check for duplicates, then start. Returns None when blocked by a
        duplicate warning or when nothing is selected.
        """
        if self.selected is None:
            return None

        result = await self.guard.check(self.selected)
        if not result:
            self.duplicates = result.entities
            self.duplicate_match_type = result.match_type
            self.show_duplicate_warning = True
            return None

        return await self.start_extraction()

    async def start_extraction(self, override: bool = False) -> Optional[PollingSubscription]:
        candidate = self.selected
        if candidate is None:
            return None

        self.error = None
        self.entity_id = None
        self.watcher.reset()

        try:
            entity_id = await self.client.start_extraction(
                self.entity,
                place_id=candidate.place_id,
                search_query=candidate.name,
                place_data=candidate.raw,
                override=override,
            )
        except (httpx.HTTPError, AdminApiError) as e:
            self.error = getattr(e, "message", None) or str(e) or "Failed to start extraction"
            logger.warning(
                f"Failed to start extraction: {self.error}",
                extra={"entity_type": self.entity.key, "place_id": candidate.place_id, "override": override},
            )
            return None

        self.entity_id = entity_id
        return self.watcher.start_polling(entity_id)

    async def override_duplicate(self) -> Optional[PollingSubscription]:
        self._clear_duplicates()
        return await self.start_extraction(override=True)

    def cancel_duplicate(self) -> None:
        """Discard the candidate and everything derived from it."""
        self._clear_duplicates()
        self.selected = None
        self.entity_id = None
        self.error = None
        self.watcher.reset()

    def view_existing(self, entity_id: Optional[str] = None) -> Optional[str]:
        """Admin review path of a conflicting record (the first one by default)."""
        if entity_id is None:
            if not self.duplicates:
                return None
            entity_id = self.duplicates[0].get("id")
        if not entity_id:
            return None
        return self.entity.review_path(str(entity_id))

    def close(self) -> None:
        self.watcher.stop()

    async def __aenter__(self) -> "AddBusinessSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def _clear_duplicates(self) -> None:
        self.duplicates = []
        self.duplicate_match_type = None
        self.show_duplicate_warning = False
