"""
Review / publish workflow for one extracted record.

    draft --publish--> published --unpublish(confirm)--> draft
    draft | published --delete(confirm)--> deleted

Images are moderated independently of the record state through `ImageSet`.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from ..config import settings
from ..entities import NON_EDITABLE_FIELDS, EntityConfig, get_entity
from ..exceptions import ConfirmationRequiredError, InvalidRequestError, InvalidTransitionError
from ..logger import logger
from .client import AdminApiClient

DRAFT = "draft"
PUBLISHED = "published"
DELETED = "deleted"


@dataclass
class PublishResult:
    public_url: str
    redirect_delay: float
    redirect: Optional[asyncio.TimerHandle] = None


@dataclass
class DeleteResult:
    entity_id: str
    image_failures: List[str] = field(default_factory=list)

    @property
    def warning(self) -> Optional[str]:
        if not self.image_failures:
            return None
        return f"Record deleted but {len(self.image_failures)} image(s) could not be removed from storage"


@dataclass
class ImageAsset:
    id: str
    url: str = ""
    status: str = "pending"
    is_hero: bool = False
    alt_text: Optional[str] = None
    display_order: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageAsset":
        return cls(
            id=str(data["id"]),
            url=data.get("url") or "",
            status=data.get("status") or "pending",
            is_hero=bool(data.get("is_hero")),
            alt_text=data.get("alt_text"),
            display_order=data.get("display_order") or 0,
        )


class ImageSet:
    """
    Local image list for the moderation panel.

    Every action changes local state first. With `persist_to_api` the change
    is then sent to the admin API; a failed call restores the previous local
    state and re-raises.
    """

    def __init__(
        self,
        images: List[Union[ImageAsset, Dict[str, Any]]],
        *,
        client: Optional[AdminApiClient] = None,
        entity: Optional[Union[str, EntityConfig]] = None,
        entity_id: Optional[str] = None,
        persist_to_api: bool = False,
    ) -> None:
        if persist_to_api and (client is None or entity is None or entity_id is None):
            raise ValueError("persist_to_api needs a client, an entity and an entity_id")
        self.images: List[ImageAsset] = [
            i if isinstance(i, ImageAsset) else ImageAsset.from_dict(i) for i in images
        ]
        self.client = client
        self.entity = get_entity(entity) if entity is not None else None
        self.entity_id = entity_id
        self.persist_to_api = persist_to_api

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self):
        return iter(self.images)

    @property
    def hero(self) -> Optional[ImageAsset]:
        return next((i for i in self.images if i.is_hero), None)

    def get(self, image_id: str) -> ImageAsset:
        for image in self.images:
            if image.id == image_id:
                return image
        raise KeyError(image_id)

    async def approve(self, image_id: str) -> ImageAsset:
        return await self._set_status(image_id, "approved", "approve")

    async def reject(self, image_id: str) -> ImageAsset:
        return await self._set_status(image_id, "rejected", "reject")

    async def set_hero(self, image_id: str) -> ImageAsset:
        target = self.get(image_id)
        previous = [i.is_hero for i in self.images]
        for image in self.images:
            image.is_hero = False
        target.is_hero = True

        if self.persist_to_api:
            try:
                await self.client.image_action(self.entity, self.entity_id, image_id, "set_hero")
            except Exception:
                for image, was_hero in zip(self.images, previous):
                    image.is_hero = was_hero
                raise
        return target

    async def delete(self, image_id: str) -> None:
        target = self.get(image_id)
        index = self.images.index(target)
        self.images.pop(index)

        if self.persist_to_api:
            try:
                await self.client.delete_image(self.entity, self.entity_id, image_id)
            except Exception:
                self.images.insert(index, target)
                raise

    async def _set_status(self, image_id: str, status: str, action: str) -> ImageAsset:
        target = self.get(image_id)
        previous = (target.status, target.is_hero)
        target.status = status
        if status == "rejected":
            # A rejected image cannot stay the hero
            target.is_hero = False

        if self.persist_to_api:
            try:
                await self.client.image_action(self.entity, self.entity_id, image_id, action)
            except Exception:
                target.status, target.is_hero = previous
                raise
        return target


class ReviewSession:
    def __init__(self, client: AdminApiClient, entity: Union[str, EntityConfig], entity_id: str) -> None:
        self.client = client
        self.entity = get_entity(entity)
        self.entity_id = entity_id
        self.state: Optional[str] = None
        self.record: Dict[str, Any] = {}
        self.relations: Dict[str, List[Dict[str, Any]]] = {}
        self.children: Dict[str, List[Dict[str, Any]]] = {}
        self.images: ImageSet = ImageSet([])
        self._edits: Dict[str, Any] = {}

    @property
    def dirty(self) -> bool:
        return bool(self._edits)

    @property
    def public_url(self) -> str:
        return self.entity.public_url(self.record.get("slug") or "")

    async def load(self) -> "ReviewSession":
        review = await self.client.get_review(self.entity, self.entity_id)
        self._apply_review(review)
        return self

    def _apply_review(self, review: Dict[str, Any]) -> None:
        self.record = dict(review.get("record") or {})
        self.relations = dict(review.get("relations") or {})
        self.children = dict(review.get("children") or {})
        self.images = ImageSet(
            review.get("images") or [],
            client=self.client,
            entity=self.entity,
            entity_id=self.entity_id,
            persist_to_api=True,
        )
        self.state = PUBLISHED if self.record.get("active") else DRAFT
        self._edits = {}

    def edit(self, **fields: Any) -> None:
        self._require_loaded("edit")
        blocked = [name for name in fields if name in NON_EDITABLE_FIELDS]
        if blocked:
            raise InvalidRequestError(f"Field(s) cannot be edited: {', '.join(sorted(blocked))}")
        self.record.update(fields)
        self._edits.update(fields)

    async def save_draft(self) -> Dict[str, Any]:
        """Persist edited fields. Publish state is not touched."""
        self._require_loaded("save")
        if not self._edits:
            return self.record

        data = await self.client.update_review(self.entity, self.entity_id, dict(self._edits))
        saved = data.get("record")
        if isinstance(saved, dict):
            # Server echo must not flip the local publish state
            saved.pop("active", None)
            self.record.update(saved)
        logger.info(
            "Review draft saved",
            extra={"entity_type": self.entity.key, "entity_id": self.entity_id, "fields": sorted(self._edits)},
        )
        self._edits = {}
        return self.record

    async def publish(self, on_redirect: Optional[Callable[[str], Any]] = None) -> PublishResult:
        self._require_state("publish", DRAFT)

        data = await self.client.publish(self.entity, self.entity_id)
        self.state = PUBLISHED
        self.record["active"] = True
        slug = data.get("slug") or self.record.get("slug") or ""
        public_url = data.get("public_url") or self.entity.public_url(slug)

        delay = settings.PUBLISH_REDIRECT_DELAY_SECONDS
        result = PublishResult(public_url=public_url, redirect_delay=delay)
        if on_redirect is not None:
            loop = asyncio.get_running_loop()
            result.redirect = loop.call_later(delay, on_redirect, public_url)

        logger.info(
            "Record published",
            extra={"entity_type": self.entity.key, "entity_id": self.entity_id, "public_url": public_url},
        )
        return result

    async def unpublish(self, confirm: bool = False) -> None:
        self._require_state("unpublish", PUBLISHED)
        if not confirm:
            raise ConfirmationRequiredError("unpublish")

        await self.client.unpublish(self.entity, self.entity_id)
        self.state = DRAFT
        self.record["active"] = False
        logger.info("Record unpublished", extra={"entity_type": self.entity.key, "entity_id": self.entity_id})

    async def delete(self, confirm: bool = False) -> DeleteResult:
        self._require_state("delete", DRAFT, PUBLISHED)
        if not confirm:
            raise ConfirmationRequiredError("delete")

        data = await self.client.delete_entity(self.entity, self.entity_id)
        self.state = DELETED
        result = DeleteResult(
            entity_id=self.entity_id,
            image_failures=list(data.get("image_deletion_failures") or []),
        )
        if result.warning:
            logger.warning(
                result.warning,
                extra={"entity_type": self.entity.key, "entity_id": self.entity_id, "failures": result.image_failures},
            )
        else:
            logger.info("Record deleted", extra={"entity_type": self.entity.key, "entity_id": self.entity_id})
        return result

    def _require_loaded(self, action: str) -> None:
        if self.state is None or self.state == DELETED:
            raise InvalidTransitionError(action, self.state or "unloaded")

    def _require_state(self, action: str, *allowed: str) -> None:
        if self.state not in allowed:
            raise InvalidTransitionError(action, self.state or "unloaded")
