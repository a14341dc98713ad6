"""Claim history loading for the selected building.

Each selection change starts a new generation. A fetch carries the
generation it was started under and only writes its result back if that
generation is still the current one; superseded fetches run to completion
and are thrown away.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Coroutine, List, Optional, Set, Tuple

from claims.repository import ClaimsRepository

from .models import ClaimRecord

logger = logging.getLogger(__name__)

LOAD_ERROR_MESSAGE = "Could not load claim history, retry."
IMAGE_UNAVAILABLE = "Image unavailable"

Scheduler = Callable[[Coroutine[Any, Any, None]], Any]


class ClaimsStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


@dataclass(frozen=True)
class ClaimImage:
    path: str
    url: str | None = None
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.url is not None


@dataclass(frozen=True)
class ClaimView:
    claim: ClaimRecord
    images: Tuple[ClaimImage, ...] = ()

    @property
    def available_images(self) -> List[ClaimImage]:
        return [image for image in self.images if image.available]


@dataclass(frozen=True)
class ClaimsState:
    status: ClaimsStatus = ClaimsStatus.IDLE
    building_id: str | None = None
    claims: Tuple[ClaimView, ...] = ()
    error: str | None = None
    detail: str | None = None

    @classmethod
    def idle(cls) -> "ClaimsState":
        return cls()

    @classmethod
    def loading(cls, building_id: str) -> "ClaimsState":
        return cls(status=ClaimsStatus.LOADING, building_id=building_id)

    @property
    def is_retryable(self) -> bool:
        return self.status is ClaimsStatus.ERROR and self.building_id is not None


def running_loop_scheduler(coro: Coroutine[Any, Any, None]) -> asyncio.Task:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        coro.close()
        raise RuntimeError(
            "ClaimsLoader needs a running event loop or an explicit scheduler"
        ) from None
    return loop.create_task(coro)


class PendingLoads:
    """Scheduler that collects fetches and runs them at the end of a turn.

    Streamlit scripts have no long-lived event loop; the page hands this to
    ``ClaimsLoader`` and calls ``run()`` once its event handling is done.
    """

    def __init__(self):
        self._pending: List[Coroutine[Any, Any, None]] = []

    def __call__(self, coro: Coroutine[Any, Any, None]) -> None:
        self._pending.append(coro)

    def __len__(self) -> int:
        return len(self._pending)

    async def drain(self) -> int:
        drained = 0
        while self._pending:
            batch, self._pending = self._pending, []
            drained += len(batch)
            await asyncio.gather(*batch)
        return drained

    def run(self) -> int:
        """Run every queued fetch; returns how many ran."""
        if not self._pending:
            return 0
        return asyncio.run(self.drain())


async def _call(func: Callable[..., Any], *args) -> Any:
    if inspect.iscoroutinefunction(func):
        return await func(*args)
    result = await asyncio.to_thread(func, *args)
    if inspect.isawaitable(result):
        return await result
    return result


class ClaimsLoader:
    def __init__(
        self,
        repository: ClaimsRepository,
        *,
        scheduler: Scheduler = running_loop_scheduler,
        on_change: Optional[Callable[[ClaimsState], None]] = None,
    ):
        self._repository = repository
        self._scheduler = scheduler
        self._on_change = on_change
        self._generation = 0
        self._state = ClaimsState.idle()
        # Strong references to in-flight fetches; the event loop only keeps weak ones.
        self._tasks: Set[asyncio.Future] = set()

    @property
    def state(self) -> ClaimsState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def on_selection_change(self, building_id: str | None):
        """Start loading claims for ``building_id``; ``None`` clears them.

        Returns whatever the scheduler returns for the new fetch (a Task with
        the default scheduler), or ``None`` on deselection.
        """
        self._generation += 1
        if building_id is None:
            self._set_state(ClaimsState.idle())
            return None

        self._set_state(ClaimsState.loading(building_id))
        handle = self._scheduler(self._load(self._generation, building_id))
        if isinstance(handle, asyncio.Future):
            self._tasks.add(handle)
            handle.add_done_callback(self._fetch_done)
        return handle

    def _fetch_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Claims fetch task failed: %s", exc, exc_info=exc)

    def retry(self):
        if not self._state.is_retryable:
            return None
        logger.info("Retrying claims fetch for %s", self._state.building_id)
        return self.on_selection_change(self._state.building_id)

    async def delete_claim(self, claim_id: str) -> None:
        """Delete a claim and drop it from the list if the selection held."""
        generation = self._generation
        await _call(self._repository.delete_claim, claim_id)
        logger.info("Deleted claim %s", claim_id)

        if not self.is_current(generation):
            return
        remaining = tuple(v for v in self._state.claims if v.claim.id != claim_id)
        self._set_state(replace(self._state, claims=remaining))

    async def _load(self, generation: int, building_id: str) -> None:
        try:
            records = await _call(self._repository.get_claims, building_id)
        except Exception as exc:
            if not self.is_current(generation):
                logger.debug("Discarding stale claims error for %s", building_id)
                return
            logger.warning("Claims fetch failed for %s: %s", building_id, exc)
            self._set_state(
                ClaimsState(
                    status=ClaimsStatus.ERROR,
                    building_id=building_id,
                    error=LOAD_ERROR_MESSAGE,
                    detail=str(exc),
                )
            )
            return

        if not self.is_current(generation):
            logger.debug("Discarding stale claims for %s", building_id)
            return

        views = await asyncio.gather(*(self._sign_claim(record) for record in records))

        if not self.is_current(generation):
            logger.debug("Discarding stale claim images for %s", building_id)
            return

        self._set_state(
            ClaimsState(
                status=ClaimsStatus.LOADED,
                building_id=building_id,
                claims=tuple(views),
            )
        )
        logger.info("Loaded %d claim(s) for %s", len(views), building_id)

    async def _sign_claim(self, record: ClaimRecord) -> ClaimView:
        images = await asyncio.gather(*(self._sign(path) for path in record.image_paths))
        return ClaimView(claim=record, images=tuple(images))

    async def _sign(self, path: str) -> ClaimImage:
        try:
            url = await _call(self._repository.get_signed_image_url, path)
        except Exception as exc:
            logger.warning("Could not sign image %s: %s", path, exc)
            return ClaimImage(path=path, error=IMAGE_UNAVAILABLE)
        if not url:
            return ClaimImage(path=path, error=IMAGE_UNAVAILABLE)
        return ClaimImage(path=path, url=url)

    def _set_state(self, state: ClaimsState) -> None:
        self._state = state
        if self._on_change is not None:
            self._on_change(state)
