"""
Extraction status poller.

One `ExtractionWatcher` belongs to one admin page (add or review screen) and
owns at most one polling loop. `start_polling` returns a `PollingSubscription`
that the page holds for its lifetime; every way a loop can end (terminal job
status, timeout, explicit cancel, page teardown) finishes the same asyncio task.
"""
from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from ..config import settings
from ..entities import EntityConfig, get_entity
from ..exceptions import AdminApiError, ExtractionTimeoutError
from ..logger import logger
from .client import AdminApiClient
from .merger import (
    MERGEABLE_STATUSES,
    ExtractionState,
    apply_comprehensive_reload,
    apply_job_progress,
    merge_payload,
)
from .steps import first_failed_error, initial_steps, project_steps

UpdateCallback = Callable[[ExtractionState], Union[None, Awaitable[None]]]


class PollingSubscription:
    """Handle on one polling loop. Cancelling it is idempotent."""

    def __init__(self, entity_id: str, task: "asyncio.Task[ExtractionState]", state: ExtractionState) -> None:
        self.entity_id = entity_id
        self._task = task
        self._state = state

    @property
    def active(self) -> bool:
        return not self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._task.cancelled()

    def cancel(self) -> None:
        if not self._task.done():
            self._task.cancel()

    async def wait(self) -> ExtractionState:
        """Wait for the loop to end, however it ends, and return the last observed state."""
        await asyncio.wait({self._task})
        if not self._task.cancelled():
            # Re-raise anything unexpected from the loop itself
            self._task.result()
        return self._state

    async def __aenter__(self) -> "PollingSubscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.cancel()
        await asyncio.wait({self._task})


class ExtractionWatcher:
    def __init__(
        self,
        client: AdminApiClient,
        entity: Union[str, EntityConfig],
        *,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        on_update: Optional[UpdateCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.entity = get_entity(entity)
        self.interval = settings.POLL_INTERVAL_SECONDS if interval is None else interval
        self.timeout = settings.POLL_TIMEOUT_SECONDS if timeout is None else timeout
        self.on_update = on_update
        self._clock = clock
        self.state = ExtractionState.fresh(self.entity)
        self._subscription: Optional[PollingSubscription] = None

    @property
    def subscription(self) -> Optional[PollingSubscription]:
        return self._subscription

    @property
    def is_polling(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def reset(self) -> None:
        self.stop()
        self.state = ExtractionState.fresh(self.entity)

    def start_polling(self, entity_id: str) -> PollingSubscription:
        """
        Begin polling `entity_id`. Any loop this watcher already runs is
        cancelled first. Must be called from a running event loop.
        """
        self.stop()

        if self.state.entity_id != entity_id:
            self.state = ExtractionState.fresh(self.entity)
        self.state.entity_id = entity_id
        self.state.finished = False
        self.state.timed_out = False
        self.state.error = None

        task = asyncio.get_running_loop().create_task(
            self._run(entity_id),
            name=f"extraction-watch-{self.entity.key}-{entity_id}",
        )
        self._subscription = PollingSubscription(entity_id, task, self.state)
        logger.info(
            "Extraction polling started",
            extra={"entity_type": self.entity.key, "entity_id": entity_id, "interval": self.interval},
        )
        return self._subscription

    def restart_steps(self) -> None:
        """Show every step as pending again, used when an operator re-triggers a job."""
        self.state.steps = initial_steps(self.entity.steps)
        self.state.status = "pending"
        self.state.progress_percentage = 0
        # A new run reports relations and children mid-poll again until its own reload
        self.state.authoritative = set()
        self.state.reloaded = False

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    async def _run(self, entity_id: str) -> ExtractionState:
        started = self._clock()
        while True:
            if self._clock() - started > self.timeout:
                await self._on_timeout(entity_id)
                return self.state

            payload = await self._fetch_status(entity_id)
            if payload is not None:
                finished = await self._apply(entity_id, payload)
                if finished:
                    return self.state

            await asyncio.sleep(self.interval)

    async def _fetch_status(self, entity_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.client.get_extraction_status(self.entity, entity_id)
        except (httpx.HTTPError, AdminApiError, ValueError) as e:
            # Transient: the next tick retries
            logger.warning(
                f"Status polling error: {e}",
                extra={"entity_type": self.entity.key, "entity_id": entity_id},
            )
            return None

    async def _apply(self, entity_id: str, payload: Dict[str, Any]) -> bool:
        state = self.state
        apply_job_progress(state, payload)

        if isinstance(payload.get("steps"), list):
            state.steps = project_steps(self.entity.steps, state.steps, payload["steps"])

        if state.status in MERGEABLE_STATUSES:
            merge_payload(state, self.entity, payload)

        logger.info(
            "Extraction status",
            extra={
                "entity_type": self.entity.key,
                "entity_id": entity_id,
                "status": state.status,
                "progress_percentage": state.progress_percentage,
            },
        )

        if not state.is_terminal:
            await self._notify()
            return False

        if state.status == "completed":
            await self._comprehensive_reload(entity_id)
        else:
            state.error = first_failed_error(state.steps) or "Extraction failed"

        state.finished = True
        logger.info(
            "Extraction finished",
            extra={"entity_type": self.entity.key, "entity_id": entity_id, "status": state.status},
        )
        await self._notify()
        return True

    async def _comprehensive_reload(self, entity_id: str) -> None:
        try:
            review = await self.client.get_review(self.entity, entity_id)
            apply_comprehensive_reload(self.state, self.entity, review)
            logger.info(
                "Comprehensive data loaded",
                extra={"entity_type": self.entity.key, "entity_id": entity_id},
            )
        except Exception as e:
            # The record is safe server-side; keep showing the incremental state
            logger.warning(
                f"Failed to load comprehensive data, continuing with incremental data: {e}",
                extra={"entity_type": self.entity.key, "entity_id": entity_id},
            )

    async def _on_timeout(self, entity_id: str) -> None:
        error = ExtractionTimeoutError(entity_id, self.timeout)
        self.state.timed_out = True
        self.state.finished = True
        self.state.error = error.message
        logger.warning(
            "Polling timeout reached, stopping extraction monitoring",
            extra={"entity_type": self.entity.key, "entity_id": entity_id, "timeout": self.timeout},
        )
        await self._notify()

    async def _notify(self) -> None:
        if self.on_update is None:
            return
        result = self.on_update(self.state)
        if inspect.isawaitable(result):
            await result
