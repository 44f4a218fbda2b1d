"""
Async client for the admin API, used by the extraction watcher, the
duplicate guard and the review session.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import httpx

from ..config import settings
from ..entities import EntityConfig, get_entity
from ..exceptions import AdminApiError

EntityRef = Union[str, EntityConfig]


class AdminApiClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=base_url or settings.ADMIN_API_URL,
            timeout=timeout,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "AdminApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self._http.request(method, path, **kwargs)
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"data": data}

        if response.is_error:
            message = data.get("message") or data.get("error") or f"HTTP {response.status_code}"
            raise AdminApiError(
                response.status_code,
                str(message),
                code=str(data.get("error") or "HTTP_ERROR"),
                body=data,
            )
        return data

    @staticmethod
    def _base(entity: EntityRef) -> str:
        return f"/admin/{get_entity(entity).route}"

    # ===== Extraction =====

    async def start_extraction(
        self,
        entity: EntityRef,
        *,
        place_id: str,
        search_query: str,
        place_data: Dict[str, Any],
        override: bool = False,
    ) -> str:
        """Create the record stub and hand the job to the runner. Returns the new entity id."""
        data = await self._request(
            "POST",
            f"{self._base(entity)}/start-extraction",
            json={
                "place_id": place_id,
                "search_query": search_query,
                "place_data": place_data,
                "override": override,
            },
        )
        entity_id = data.get("entity_id") or data.get(f"{get_entity(entity).key}_id")
        if not entity_id:
            raise AdminApiError(502, "start-extraction response did not include an entity id", body=data)
        return str(entity_id)

    async def get_extraction_status(self, entity: EntityRef, entity_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"{self._base(entity)}/extraction-status/{entity_id}")

    async def check_duplicate(self, entity: EntityRef, *, place_id: str, name: str, area: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"{self._base(entity)}/check-duplicate",
            json={"placeId": place_id, "name": name, "area": area},
        )

    async def re_extract(self, entity: EntityRef, entity_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"{self._base(entity)}/{entity_id}/re-extract")

    # ===== Review / publish =====

    async def get_review(self, entity: EntityRef, entity_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"{self._base(entity)}/{entity_id}/review")

    async def update_review(self, entity: EntityRef, entity_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PUT", f"{self._base(entity)}/{entity_id}/review", json=fields)

    async def publish(self, entity: EntityRef, entity_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"{self._base(entity)}/{entity_id}/publish")

    async def unpublish(self, entity: EntityRef, entity_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"{self._base(entity)}/{entity_id}/unpublish")

    async def delete_entity(self, entity: EntityRef, entity_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"{self._base(entity)}/{entity_id}")

    # ===== Images =====

    async def list_images(self, entity: EntityRef, entity_id: str) -> List[Dict[str, Any]]:
        data = await self._request("GET", f"{self._base(entity)}/{entity_id}/images")
        return data.get("images") or []

    async def image_action(self, entity: EntityRef, entity_id: str, image_id: str, action: str) -> Dict[str, Any]:
        return await self._request(
            "PATCH",
            f"{self._base(entity)}/{entity_id}/images",
            json={"imageId": image_id, "action": action},
        )

    async def delete_image(self, entity: EntityRef, entity_id: str, image_id: str) -> Dict[str, Any]:
        return await self._request(
            "DELETE",
            f"{self._base(entity)}/{entity_id}/images",
            params={"imageId": image_id},
        )

    # ===== Submissions =====

    async def submit_application(self, form: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._request("POST", "/submissions", json=form)
        return data.get("submission") or data

    async def list_submissions(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"status": status} if status else None
        data = await self._request("GET", "/admin/submissions", params=params)
        return data.get("submissions") or []

    async def get_submission(self, submission_id: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/admin/submissions/{submission_id}")
        return data.get("submission") or data

    async def update_submission(
        self,
        submission_id: str,
        *,
        status: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if status is not None:
            body["status"] = status
        if admin_notes is not None:
            body["admin_notes"] = admin_notes
        data = await self._request("PATCH", f"/admin/submissions/{submission_id}", json=body)
        return data.get("submission") or data

    async def delete_submission(self, submission_id: str) -> None:
        await self._request("DELETE", f"/admin/submissions/{submission_id}")
