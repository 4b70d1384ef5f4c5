"""Value types passed between the drag session, the resolver and the coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

EventKind = Literal["created", "moved", "changed", "removed", "children_reordered"]

MUTATION_EVENT_KINDS: tuple[EventKind, ...] = (
    "created",
    "moved",
    "changed",
    "removed",
    "children_reordered",
)


@dataclass(frozen=True)
class DragCandidate:
    """The item tentatively being dragged, captured at pointer-down."""

    item_id: str
    source_parent_id: str
    source_index: int


@dataclass(frozen=True)
class FolderTarget:
    """Drop directly on a folder. ``at_header`` means prepend."""

    folder_id: str
    at_header: bool = False


@dataclass(frozen=True)
class InsertionPointTarget:
    """Drop on a gap marker; index is in the pre-move sibling order."""

    parent_id: str
    insertion_index: int


InsertionTarget = Union[FolderTarget, InsertionPointTarget]


@dataclass(frozen=True)
class ResolvedMove:
    """Arguments for the store's move primitive. ``None`` index appends."""

    item_id: str
    target_parent_id: str
    target_index: int | None


@dataclass(frozen=True)
class MoveRequest:
    item_id: str
    target_parent_id: str
    target_index: int | None
    issued_at: float


@dataclass(frozen=True)
class MovedNotification:
    """Same-tab notification fired right after a successful move."""

    from_id: str
    from_parent_id: str | None
    to_parent_id: str
    to_index: int | None

    def to_message(self) -> dict[str, Any]:
        return {
            "action": "bookmark_moved",
            "fromId": self.from_id,
            "fromParentId": self.from_parent_id,
            "toParentId": self.to_parent_id,
            "toIndex": self.to_index,
        }


@dataclass(frozen=True)
class BookmarkEvent:
    """A mutation notification from the store, whatever its origin."""

    kind: EventKind
    node_id: str
    info: dict[str, Any] = field(default_factory=dict)
