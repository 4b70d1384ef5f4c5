"""Keeps the tree cache in step with store mutation events.

Every event invalidates the cache at once. Refreshing is deferred by a short
debounce window so that one logical operation that the store reports as several
granular notifications (a folder removal, a bulk move, a sort) costs one
refetch and one consumer refresh.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from ..models import MUTATION_EVENT_KINDS, BookmarkEvent, EventKind, FetchFailed
from .store import MutationEventSource
from .tree_cache import TreeCache

logger = logging.getLogger(__name__)

RefreshHook = Callable[[], Union[None, Awaitable[None]]]


class EventReconciler:
    """Subscribe to store events, invalidate, and run coalesced refreshes."""

    def __init__(self, cache: TreeCache, *, refresh_delay: float = 0.05) -> None:
        self._cache = cache
        self._refresh_delay = refresh_delay
        self._hooks: list[RefreshHook] = []
        self._pending: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._sources: list[tuple[MutationEventSource, dict[EventKind, Callable[..., Any]]]] = []
        self.events_seen = 0
        self.refresh_count = 0

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def attach(self, source: MutationEventSource) -> None:
        """Listen to every mutation kind ``source`` publishes."""
        callbacks: dict[EventKind, Callable[..., Any]] = {}
        for kind in MUTATION_EVENT_KINDS:

            def callback(node_id: str, info: dict[str, Any] | None = None, *, _kind: EventKind = kind) -> None:
                self.handle_event(BookmarkEvent(kind=_kind, node_id=node_id, info=dict(info or {})))

            source.add_listener(kind, callback)
            callbacks[kind] = callback
        self._sources.append((source, callbacks))

    def detach_all(self) -> None:
        for source, callbacks in self._sources:
            for kind, callback in callbacks.items():
                source.remove_listener(kind, callback)
        self._sources.clear()

    def add_refresh_hook(self, hook: RefreshHook) -> Callable[[], None]:
        """Register a zero-argument callback run after each cache repopulation."""
        self._hooks.append(hook)

        def remove() -> None:
            if hook in self._hooks:
                self._hooks.remove(hook)

        return remove

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def handle_event(self, event: BookmarkEvent) -> None:
        """Invalidate the cache and schedule one refresh for the current burst.

        Events are handled the same way whether this process caused them or
        another tab, extension or sync did.
        """
        self.events_seen += 1
        logger.debug(f"Bookmark event {event.kind} for {event.node_id}")
        self._cache.invalidate()
        self._schedule_refresh()

    def request_refresh(self) -> None:
        """Force an invalidate + refresh without an external event."""
        self._cache.invalidate()
        self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        if self._pending is not None:
            logger.debug("Refresh already scheduled; coalescing event")
            return
        loop = asyncio.get_running_loop()
        self._idle.clear()
        self._pending = loop.call_later(self._refresh_delay, self._start_refresh)

    def _start_refresh(self) -> None:
        self._pending = None
        task = asyncio.ensure_future(self._refresh())
        self._tasks.add(task)
        task.add_done_callback(self._refresh_done)

    def _refresh_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not self._tasks and self._pending is None:
            self._idle.set()

    async def _refresh(self) -> None:
        try:
            snapshot = await self._cache.get()
        except FetchFailed as err:
            logger.error(f"Refresh after bookmark events failed: {err}")
            return

        self.refresh_count += 1
        logger.debug(f"Refreshing consumers with tree v{snapshot.version}")
        for hook in list(self._hooks):
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error in refresh hook")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def refresh_pending(self) -> bool:
        return self._pending is not None or bool(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until no refresh is scheduled or running."""
        await self._idle.wait()

    async def close(self) -> None:
        """Cancel scheduled and running refresh work and drop subscriptions."""
        self.detach_all()
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._idle.set()
