"""Reorder-and-synchronize engine for the bookmark tree."""

from .drag_session import (
    DragFeedback,
    DragSessionController,
    DragState,
    GestureOutcome,
    NullDragFeedback,
)
from .event_reconciler import EventReconciler
from .hit_testing import ElementInfo, ItemGeometry, PointerEvent, PointerSnapshot, Rect
from .index_resolver import apply_move, insertion_index_for_pointer, resolve_move
from .move_coordinator import BulkMoveResult, MoveCoordinator, MoveNotifier
from .service import BookmarkEngine
from .session_log import DragSessionLog, DragSessionRecord
from .store import BookmarkStore, MutationEventSource
from .tree_cache import CacheSnapshot, TreeCache

__all__ = [
    "BookmarkEngine",
    "BookmarkStore",
    "BulkMoveResult",
    "CacheSnapshot",
    "DragFeedback",
    "DragSessionController",
    "DragSessionLog",
    "DragSessionRecord",
    "DragState",
    "ElementInfo",
    "EventReconciler",
    "GestureOutcome",
    "ItemGeometry",
    "MoveCoordinator",
    "MoveNotifier",
    "MutationEventSource",
    "NullDragFeedback",
    "PointerEvent",
    "PointerSnapshot",
    "Rect",
    "TreeCache",
    "apply_move",
    "insertion_index_for_pointer",
    "resolve_move",
]
