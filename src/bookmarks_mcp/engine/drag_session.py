"""One drag gesture state machine fed by every listener layer.

The extension installs several listener layers for robustness (pointer and mouse
events in capture and bubble phase, plus HTML5 drag and drop as a fallback), and
one physical gesture therefore arrives here as several near-identical events.
The controller owns the single candidate slot: the first layer that identifies
the dragged item fills it, later layers only fill it while it is empty, and the
first release event consumes the gesture so the others are ignored.

    IDLE --pointer_down/dragstart--> CANDIDATE --pointer_move--> DRAGGING
    CANDIDATE/DRAGGING --pointer_up/drop--> RESOLVING --> IDLE
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Literal, Protocol

from ..models import (
    BookmarkNode,
    DegenerateMove,
    DragCandidate,
    FetchFailed,
    InsertionPointTarget,
    InsertionTarget,
    MoveError,
    NoResolvableTarget,
    ResolvedMove,
)
from .hit_testing import ElementInfo, PointerEvent, resolve_drop_target
from .index_resolver import resolve_move
from .move_coordinator import MoveCoordinator
from .session_log import DragSessionLog
from .tree_cache import TreeCache

logger = logging.getLogger(__name__)


class DragState(Enum):
    IDLE = "idle"
    CANDIDATE = "candidate"
    DRAGGING = "dragging"
    RESOLVING = "resolving"


GestureStatus = Literal["moved", "noop", "aborted", "ignored"]


@dataclass(frozen=True)
class GestureOutcome:
    status: GestureStatus
    item_id: str | None = None
    move: ResolvedMove | None = None
    node: BookmarkNode | None = None
    reason: str | None = None


class DragFeedback(Protocol):
    """Visual "dragging" marker on the item being dragged."""

    def mark_dragging(self, item_id: str) -> None: ...

    def clear_dragging(self, item_id: str) -> None: ...


class NullDragFeedback:
    def mark_dragging(self, item_id: str) -> None:
        pass

    def clear_dragging(self, item_id: str) -> None:
        pass


def _item_element(element: ElementInfo | None) -> ElementInfo | None:
    if element is None:
        return None
    return element.closest(lambda e: e.is_draggable_item)


async def resolve_with_tree(
    candidate: DragCandidate, target: InsertionTarget, cache: TreeCache
) -> ResolvedMove:
    """Resolve ``target`` for ``candidate``, reading the tree only for a real move.

    Drops on the item's own slot are rejected from the candidate alone, so they
    never fetch. Otherwise the target's child count comes from the cache for
    the range check and the "already last" append check.

    Raises:
        DegenerateMove: the drop denotes the item's current slot.
        ValueError: the insertion index is out of range.
        FetchFailed: the tree was needed and could not be read.
    """
    resolve_move(candidate, target)

    snapshot = await cache.get()
    parent_id = target.parent_id if isinstance(target, InsertionPointTarget) else target.folder_id
    child_count = len(snapshot.children_of(parent_id)) if parent_id in snapshot else None
    return resolve_move(candidate, target, target_child_count=child_count)


class DragSessionController:
    """Turns raw pointer and drag events into at most one move per gesture."""

    def __init__(
        self,
        coordinator: MoveCoordinator,
        cache: TreeCache,
        *,
        feedback: DragFeedback | None = None,
        session_log: DragSessionLog | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._cache = cache
        self.feedback: DragFeedback = feedback or NullDragFeedback()
        self.session_log = session_log or DragSessionLog()
        self._state = DragState.IDLE
        self._candidate: DragCandidate | None = None
        self._last_pointer_down: PointerEvent | None = None
        self._feedback_item: str | None = None
        # Bumped whenever a gesture ends
        self._gesture = 0

    @property
    def state(self) -> DragState:
        return self._state

    @property
    def candidate(self) -> DragCandidate | None:
        return self._candidate

    # ------------------------------------------------------------------
    # Gesture start
    # ------------------------------------------------------------------

    async def pointer_down(self, event: PointerEvent) -> bool:
        """Record the candidate under a pointer-down. True if this event filled the slot."""
        if self._state is DragState.RESOLVING:
            logger.debug(f"pointer_down from {event.layer} ignored while resolving")
            return False
        if self._state is DragState.IDLE:
            # Coordinates of the first layer, kept for salvage at release
            self._last_pointer_down = event
        return await self._fill_candidate(event, prefer_geometry=True)

    async def drag_start(self, event: PointerEvent) -> bool:
        """Native ``dragstart``: fill the slot if empty, then treat as dragging."""
        if self._state is DragState.RESOLVING:
            return False
        if self._state is DragState.IDLE and self._last_pointer_down is None:
            self._last_pointer_down = event
        filled = await self._fill_candidate(event, prefer_geometry=False)
        if self._candidate is not None:
            self._begin_dragging()
        return filled

    def pointer_move(self, event: PointerEvent) -> None:
        if self._state is DragState.CANDIDATE:
            self._begin_dragging()

    async def _fill_candidate(self, event: PointerEvent, *, prefer_geometry: bool) -> bool:
        if self._candidate is not None:
            logger.debug(
                f"{event.kind} from {event.layer} ignored: candidate {self._candidate.item_id} already recorded"
            )
            return False

        gesture = self._gesture
        candidate = await self._candidate_at(event, prefer_geometry=prefer_geometry)
        # While the tree was being read another layer may have filled the slot,
        # or a whole gesture may have started and ended
        if (
            candidate is None
            or self._candidate is not None
            or self._state is DragState.RESOLVING
            or gesture != self._gesture
        ):
            return False

        self._candidate = candidate
        self._state = DragState.CANDIDATE
        self.session_log.start(candidate, event.layer)
        logger.debug(
            f"Drag candidate {candidate.item_id} at "
            f"{candidate.source_parent_id}[{candidate.source_index}] from {event.layer}"
        )
        return True

    async def _candidate_at(self, event: PointerEvent, *, prefer_geometry: bool) -> DragCandidate | None:
        """Identify the item under ``event`` from its target, falling back to geometry."""
        item_id: str | None = None
        parent_id: str | None = None
        index: int | None = None

        element = _item_element(event.target)
        if element is not None:
            item_id = element.item_id
            parent_id = element.data.get("parent-id")
            if parent_id is None and element.parent is not None:
                container = element.parent.closest(lambda e: "folder-id" in e.data)
                parent_id = container.data["folder-id"] if container is not None else None
            raw_index = element.data.get("index")
            if raw_index not in (None, ""):
                try:
                    index = int(raw_index)
                except ValueError:
                    logger.debug(f"Ignoring malformed data-index {raw_index!r} on {item_id}")
        elif prefer_geometry:
            # Overlays can swallow the target; look at what is drawn under the pointer
            geometry = event.hits.item_at(event.x, event.y)
            if geometry is not None:
                item_id, parent_id, index = geometry.item_id, geometry.parent_id, geometry.index

        if item_id is None:
            return None
        return await self._complete_candidate(item_id, parent_id, index)

    async def _complete_candidate(
        self, item_id: str, parent_id: str | None, index: int | None
    ) -> DragCandidate | None:
        if parent_id is None or index is None:
            try:
                snapshot = await self._cache.get()
            except FetchFailed as err:
                logger.warning(f"Cannot place drag candidate {item_id}: {err}")
                return None
            node = snapshot.node(item_id)
            if node is None or node.parentId is None or node.index is None:
                logger.debug(f"Drag candidate {item_id} is not in the tree")
                return None
            parent_id, index = node.parentId, node.index
        return DragCandidate(item_id=item_id, source_parent_id=parent_id, source_index=index)

    def _begin_dragging(self) -> None:
        if self._candidate is None:
            return
        if self._state is DragState.CANDIDATE:
            self._state = DragState.DRAGGING
        if self._feedback_item is None:
            self._feedback_item = self._candidate.item_id
            self.feedback.mark_dragging(self._candidate.item_id)

    # ------------------------------------------------------------------
    # Gesture end
    # ------------------------------------------------------------------

    async def pointer_up(self, event: PointerEvent) -> GestureOutcome:
        return await self._release(event)

    async def drop(self, event: PointerEvent) -> GestureOutcome:
        return await self._release(event)

    def cancel(self, reason: str = "cancelled") -> GestureOutcome:
        """End the gesture without a move (``dragend`` without drop, escape)."""
        if self._state is DragState.RESOLVING:
            return GestureOutcome("ignored", reason="gesture already resolving")
        if self._state is DragState.IDLE:
            self._last_pointer_down = None
            return GestureOutcome("ignored", reason="no gesture to cancel")
        item_id = self._candidate.item_id if self._candidate is not None else None
        self.session_log.end("aborted", error=reason)
        self._reset()
        logger.debug(f"Drag of {item_id} cancelled: {reason}")
        return GestureOutcome("aborted", item_id=item_id, reason=reason)

    async def _release(self, event: PointerEvent) -> GestureOutcome:
        if self._state is DragState.RESOLVING:
            logger.debug(f"{event.kind} from {event.layer} ignored: gesture already resolving")
            return GestureOutcome("ignored", reason="already resolving")

        if self._state is DragState.IDLE:
            if not await self._salvage(event):
                return GestureOutcome("ignored", reason="no drag candidate")

        candidate = self._candidate
        if candidate is None:
            return GestureOutcome("ignored", reason="no drag candidate")
        self._state = DragState.RESOLVING
        self._last_pointer_down = None

        with self._resolving():
            try:
                resolved = await self._resolve(candidate, event)
            except NoResolvableTarget as err:
                logger.debug(f"Drop of {candidate.item_id} aborted: {err}")
                self.session_log.end("aborted", error=str(err))
                return GestureOutcome("aborted", item_id=candidate.item_id, reason=str(err))
            except DegenerateMove as err:
                logger.debug(f"Drop of {candidate.item_id} is a no-op: {err}")
                self.session_log.end("noop", error=str(err))
                return GestureOutcome("noop", item_id=candidate.item_id, reason=str(err))
            except ValueError as err:
                logger.warning(f"Drop of {candidate.item_id} has an invalid insertion point: {err}")
                self.session_log.end("aborted", error=str(err))
                return GestureOutcome("aborted", item_id=candidate.item_id, reason=str(err))
            except FetchFailed as err:
                self.session_log.end("failed", error=str(err))
                raise

            try:
                node = await self._coordinator.move(
                    resolved.item_id,
                    resolved.target_parent_id,
                    resolved.target_index,
                    source_parent_id=candidate.source_parent_id,
                )
            except (MoveError, FetchFailed) as err:
                self.session_log.end("failed", error=str(err))
                raise

            self.session_log.end("moved")
            return GestureOutcome("moved", item_id=candidate.item_id, move=resolved, node=node)

    async def _salvage(self, event: PointerEvent) -> bool:
        """Rebuild a candidate from the last pointer-down position.

        The first release of a gesture consumes the pointer-down record, so a
        second layer's release finds nothing to salvage.
        """
        pressed = self._last_pointer_down
        self._last_pointer_down = None
        if pressed is None:
            return False

        geometry = pressed.hits.item_at(pressed.x, pressed.y) or event.hits.item_at(pressed.x, pressed.y)
        if geometry is None:
            logger.debug(f"No draggable item at pointer-down ({pressed.x}, {pressed.y})")
            return False

        gesture = self._gesture
        candidate = await self._complete_candidate(geometry.item_id, geometry.parent_id, geometry.index)
        if candidate is None or self._state is not DragState.IDLE or gesture != self._gesture:
            return False

        logger.info(f"Salvaged drag candidate {candidate.item_id} from pointer-down position")
        self._candidate = candidate
        self._state = DragState.DRAGGING
        self.session_log.start(candidate, f"{pressed.layer}:salvage")
        return True

    async def _resolve(self, candidate: DragCandidate, event: PointerEvent) -> ResolvedMove:
        target = resolve_drop_target(event)
        if target is None:
            raise NoResolvableTarget(f"Nothing droppable at ({event.x}, {event.y})")

        resolved = await resolve_with_tree(candidate, target, self._cache)
        requested = target.insertion_index if isinstance(target, InsertionPointTarget) else None
        self.session_log.record_drop(resolved.target_parent_id, requested, resolved.target_index)
        return resolved

    @contextmanager
    def _resolving(self) -> Iterator[None]:
        try:
            yield
        finally:
            self._reset()

    def _reset(self) -> None:
        if self._feedback_item is not None:
            item_id, self._feedback_item = self._feedback_item, None
            try:
                self.feedback.clear_dragging(item_id)
            except Exception:
                logger.exception(f"Failed to clear drag feedback for {item_id}")
        self._candidate = None
        self._state = DragState.IDLE
        self._gesture += 1
