"""Issues move requests against the store, one in flight per item."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Collection, Iterable

from ..models import (
    AlreadyInFlight,
    BookmarkAPIError,
    BookmarkNode,
    MovedNotification,
    MoveDestination,
    MoveError,
    MoveRejected,
    MoveRequest,
)
from .store import BookmarkStore
from .tree_cache import TreeCache
from .validation import describe_store_error, move_violation

logger = logging.getLogger(__name__)

MovedListener = Callable[[MovedNotification], None]

# Pause between requests of a bulk move
BULK_MOVE_DELAY = 0.05


class MoveNotifier:
    """Same-tab "moved" channel, separate from the store's own mutation events.

    Listeners run synchronously, in registration order, right after a move
    succeeds. A failing listener is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: list[MovedListener] = []

    def subscribe(self, listener: MovedListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, notification: MovedNotification) -> None:
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception(f"Error in moved listener for {notification.from_id}")


@dataclass
class BulkMoveResult:
    successful: list[BookmarkNode] = field(default_factory=list)
    failed: list[MoveError] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return len(self.successful) + len(self.failed)


class MoveCoordinator:
    """Serializes moves per item and keeps the cache coherent after them."""

    def __init__(
        self,
        store: BookmarkStore,
        cache: TreeCache,
        notifier: MoveNotifier | None = None,
        *,
        protected_ids: Collection[str] = ("0", "1", "2"),
    ) -> None:
        self._store = store
        self._cache = cache
        self.notifier = notifier or MoveNotifier()
        self._protected_ids = frozenset(protected_ids)
        self._in_flight: dict[str, MoveRequest] = {}

    def in_flight(self) -> list[MoveRequest]:
        return list(self._in_flight.values())

    def is_in_flight(self, item_id: str) -> bool:
        return item_id in self._in_flight

    async def move(
        self,
        item_id: str,
        target_parent_id: str,
        target_index: int | None = None,
        *,
        source_parent_id: str | None = None,
    ) -> BookmarkNode:
        """Issue exactly one store move for ``item_id``.

        Raises:
            AlreadyInFlight: a move for this item has not resolved yet.
            MoveRejected: validation or the store refused the move.
            FetchFailed: the tree needed for validation could not be read.
        """
        if item_id in self._in_flight:
            logger.warning(f"Move of {item_id} rejected: previous move still in flight")
            raise AlreadyInFlight(item_id)

        request = MoveRequest(
            item_id=item_id,
            target_parent_id=target_parent_id,
            target_index=target_index,
            issued_at=time.monotonic(),
        )
        self._in_flight[item_id] = request
        try:
            snapshot = await self._cache.get()
            violation = move_violation(snapshot, item_id, target_parent_id, self._protected_ids)
            if violation is not None:
                logger.info(f"Move of {item_id} to {target_parent_id}[{target_index}] refused: {violation}")
                raise MoveRejected(item_id, target_parent_id, target_index, violation)

            if source_parent_id is None:
                current = snapshot.node(item_id)
                source_parent_id = current.parentId if current is not None else None

            logger.info(
                f"Moving {item_id} from {source_parent_id} to {target_parent_id}[{target_index}]"
            )
            try:
                node = await self._store.move(
                    item_id, MoveDestination(parentId=target_parent_id, index=target_index)
                )
            except BookmarkAPIError as err:
                reason = describe_store_error(err)
                logger.error(
                    f"Store rejected move of {item_id} from {source_parent_id} "
                    f"to {target_parent_id}[{target_index}]: {err}"
                )
                raise MoveRejected(item_id, target_parent_id, target_index, reason) from err
        finally:
            del self._in_flight[item_id]

        self._cache.invalidate()
        self.notifier.emit(
            MovedNotification(
                from_id=item_id,
                from_parent_id=source_parent_id,
                to_parent_id=target_parent_id,
                to_index=node.index if node.index is not None else target_index,
            )
        )
        logger.info(f"Moved {item_id} to {node.parentId}[{node.index}]")
        return node

    async def move_many(
        self,
        item_ids: Iterable[str],
        target_parent_id: str,
        target_index: int | None = None,
    ) -> BulkMoveResult:
        """Move several items one after another into the same folder.

        With an explicit ``target_index`` the n-th item is sent with
        ``target_index + n``, so items coming from other folders keep their
        given order. A failed item does not stop the rest.
        """
        result = BulkMoveResult()
        for offset, item_id in enumerate(item_ids):
            index = target_index + offset if target_index is not None else None
            try:
                result.successful.append(await self.move(item_id, target_parent_id, index))
            except MoveError as err:
                result.failed.append(err)
            await asyncio.sleep(BULK_MOVE_DELAY)
        return result
