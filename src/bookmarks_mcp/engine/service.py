"""Composition root: one store, one cache, one coordinator, one drag controller."""

from __future__ import annotations

import logging
from typing import Awaitable, Collection, Iterable, TypeVar

from ..models import (
    BookmarkAPIError,
    BookmarkNode,
    DegenerateMove,
    DragCandidate,
    EditRejected,
    FolderTarget,
    InsertionPointTarget,
    InsertionTarget,
    MoveRejected,
    NodeCreateRequest,
    NodeUpdateRequest,
)
from .drag_session import DragFeedback, DragSessionController, GestureOutcome, resolve_with_tree
from .event_reconciler import EventReconciler
from .move_coordinator import BulkMoveResult, MoveCoordinator, MoveNotifier
from .session_log import DragSessionLog
from .store import BookmarkStore, MutationEventSource
from .tree_cache import CacheSnapshot, TreeCache
from .validation import describe_store_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PROTECTED_IDS = ("0", "1", "2")


class BookmarkEngine:
    """Wires the reorder-and-synchronize components over a single store.

    Moves issued by MCP tools and moves produced by drag gestures share the
    same ``MoveCoordinator``, so the per-item in-flight guard covers both.
    """

    def __init__(
        self,
        store: BookmarkStore,
        *,
        protected_ids: Collection[str] = DEFAULT_PROTECTED_IDS,
        refresh_delay: float = 0.05,
        feedback: DragFeedback | None = None,
        max_sessions: int = 50,
    ) -> None:
        self.store = store
        self.protected_ids = frozenset(protected_ids)
        self.cache = TreeCache(store)
        self.notifier = MoveNotifier()
        self.coordinator = MoveCoordinator(
            store, self.cache, self.notifier, protected_ids=self.protected_ids
        )
        self.reconciler = EventReconciler(self.cache, refresh_delay=refresh_delay)
        self.session_log = DragSessionLog(max_sessions=max_sessions)
        self.drag = DragSessionController(
            self.coordinator,
            self.cache,
            feedback=feedback,
            session_log=self.session_log,
        )

    def attach_events(self, source: MutationEventSource) -> None:
        self.reconciler.attach(source)

    async def snapshot(self) -> CacheSnapshot:
        return await self.cache.get()

    async def close(self) -> None:
        await self.reconciler.close()

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    async def candidate_for(self, item_id: str) -> DragCandidate:
        """Where ``item_id`` sits right now, as a drag candidate."""
        snapshot = await self.cache.get()
        node = snapshot.node(item_id)
        if node is None or node.parentId is None or node.index is None:
            raise MoveRejected(item_id, None, None, "Bookmark not found")
        return DragCandidate(item_id=item_id, source_parent_id=node.parentId, source_index=node.index)

    async def move_to_target(self, item_id: str, target: InsertionTarget) -> GestureOutcome:
        """Resolve ``target`` for ``item_id`` exactly as a drop would, then move.

        The item's position is read from the tree. A target that denotes its
        current slot returns a ``noop`` outcome without a move call.
        """
        candidate = await self.candidate_for(item_id)
        try:
            resolved = await resolve_with_tree(candidate, target, self.cache)
        except DegenerateMove as err:
            logger.debug(f"Move of {item_id} is a no-op: {err}")
            return GestureOutcome("noop", item_id=item_id, reason=str(err))

        node = await self.coordinator.move(
            resolved.item_id,
            resolved.target_parent_id,
            resolved.target_index,
            source_parent_id=candidate.source_parent_id,
        )
        return GestureOutcome("moved", item_id=item_id, move=resolved, node=node)

    async def move_to_insertion_point(
        self, item_id: str, parent_id: str, insertion_index: int
    ) -> GestureOutcome:
        return await self.move_to_target(
            item_id, InsertionPointTarget(parent_id=parent_id, insertion_index=insertion_index)
        )

    async def move_to_folder(self, item_id: str, folder_id: str, *, at_header: bool = False) -> GestureOutcome:
        return await self.move_to_target(item_id, FolderTarget(folder_id=folder_id, at_header=at_header))

    async def move(self, item_id: str, parent_id: str, index: int | None = None) -> BookmarkNode:
        """Raw store-convention move (``index`` counts after removal)."""
        return await self.coordinator.move(item_id, parent_id, index)

    async def bulk_move(
        self, item_ids: Iterable[str], parent_id: str, index: int | None = None
    ) -> BulkMoveResult:
        return await self.coordinator.move_many(item_ids, parent_id, index)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    async def create(self, request: NodeCreateRequest) -> BookmarkNode:
        if request.parentId == "0":
            raise EditRejected(None, "Cannot create bookmarks in root folder")
        node = await self._edit(None, self.store.create(request))
        logger.info(f"Created {'folder' if node.is_folder else 'bookmark'} {node.id} in {node.parentId}")
        return node

    async def update(self, node_id: str, request: NodeUpdateRequest) -> BookmarkNode:
        if node_id in self.protected_ids:
            raise EditRejected(node_id, "Cannot modify protected system folders")
        node = await self._edit(node_id, self.store.update(node_id, request))
        logger.info(f"Updated {node_id}")
        return node

    async def remove(self, node_id: str, *, recursive: bool = False) -> bool:
        if node_id in self.protected_ids:
            raise EditRejected(node_id, "Cannot remove protected system folders")
        call = self.store.remove_tree(node_id) if recursive else self.store.remove(node_id)
        removed = await self._edit(node_id, call)
        logger.info(f"Removed {node_id}{' and its contents' if recursive else ''}")
        return removed

    async def _edit(self, node_id: str | None, call: Awaitable[T]) -> T:
        try:
            result = await call
        except BookmarkAPIError as err:
            logger.error(f"Store rejected edit of {node_id or 'new node'}: {err}")
            raise EditRejected(node_id, describe_store_error(err)) from err
        self.cache.invalidate()
        return result
