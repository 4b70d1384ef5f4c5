"""Turn a drag candidate and a drop target into the store's move arguments.

The store's move primitive takes the index the item should have among its new
siblings *after* it has been removed from its old position. Insertion points in
the UI are numbered in the *pre-move* sibling order (0 = before the first
child, N = after the last of N children). The two agree except for a
same-parent move downwards, where removing the item closes the gap it leaves
and every later sibling shifts left by one:

    siblings [A, B, C, D, E], drag A (0) to insertion point 2 (between B and C)
    remove A  -> [B, C, D, E]
    insert at 2 - 1 = 1 -> [B, A, C, D, E]

Insertion points ``source_index`` and ``source_index + 1`` both sit next to the
dragged item and mean "put it back where it was"; those are rejected as
degenerate so no call reaches the store.

Everything here is pure: no I/O, no DOM, no cache.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, TypeVar

from ..models import (
    DegenerateMove,
    DragCandidate,
    FolderTarget,
    InsertionPointTarget,
    InsertionTarget,
    ResolvedMove,
)

T = TypeVar("T")


def resolve_move(
    candidate: DragCandidate,
    target: InsertionTarget,
    *,
    target_child_count: int | None = None,
) -> ResolvedMove:
    """Compute ``(target_parent_id, target_index)`` for ``candidate`` dropped on ``target``.

    ``target_child_count`` is the number of children the target parent has
    before the move. When given, insertion indexes are range-checked and an
    append that would leave the item in place is reported as degenerate.

    Raises:
        DegenerateMove: the drop denotes the item's current slot.
        ValueError: the insertion index is outside ``0..target_child_count``.
    """
    if isinstance(target, FolderTarget):
        if target.folder_id == candidate.item_id:
            raise DegenerateMove(f"{candidate.item_id} dropped on itself")
        if target.at_header:
            # Header drop == insertion point 0 of that folder
            return resolve_move(
                candidate,
                InsertionPointTarget(parent_id=target.folder_id, insertion_index=0),
                target_child_count=target_child_count,
            )
        if (
            target.folder_id == candidate.source_parent_id
            and target_child_count is not None
            and candidate.source_index == target_child_count - 1
        ):
            raise DegenerateMove(f"{candidate.item_id} is already last in {target.folder_id}")
        return ResolvedMove(
            item_id=candidate.item_id,
            target_parent_id=target.folder_id,
            target_index=None,
        )

    if isinstance(target, InsertionPointTarget):
        insertion_index = target.insertion_index
        if insertion_index < 0:
            raise ValueError(f"Insertion index must be >= 0, got {insertion_index}")
        if target_child_count is not None and insertion_index > target_child_count:
            raise ValueError(
                f"Insertion index {insertion_index} is past the end of {target_child_count} children"
            )
        if target.parent_id == candidate.item_id:
            raise DegenerateMove(f"{candidate.item_id} dropped inside itself")

        if target.parent_id != candidate.source_parent_id:
            # Removal from another parent does not shift this one
            return ResolvedMove(candidate.item_id, target.parent_id, insertion_index)

        source_index = candidate.source_index
        if insertion_index in (source_index, source_index + 1):
            raise DegenerateMove(
                f"Insertion point {insertion_index} is the current slot of {candidate.item_id}"
            )
        if insertion_index <= source_index:
            return ResolvedMove(candidate.item_id, target.parent_id, insertion_index)
        return ResolvedMove(candidate.item_id, target.parent_id, insertion_index - 1)

    raise TypeError(f"Unsupported insertion target: {target!r}")


# ---------------------------------------------------------------------------
# Geometry fallback
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RowBounds:
    """Vertical extent of one rendered item inside a container."""

    key: str
    top: float
    height: float


def insertion_index_for_pointer(rows: Sequence[RowBounds], pointer_y: float) -> int:
    """Map a pointer Y coordinate to an insertion point among ``rows``.

    Used when a drop lands on a container rather than on a gap marker. Above an
    item's vertical midpoint inserts before it, below inserts after it; past the
    last item appends. Rows are ordered by their top edge first.
    """
    if not rows:
        return 0

    ordered = sorted(rows, key=lambda r: (r.top, r.height))
    pointer = float(pointer_y)

    for position, row in enumerate(ordered):
        height = max(0.0, float(row.height))
        if pointer < row.top:
            return position
        if pointer <= row.top + height:
            mid = row.top + height / 2.0
            return position if pointer < mid else position + 1

    return len(ordered)


def apply_move(order: Sequence[T], source_index: int, target_index: int | None) -> list[T]:
    """Apply a store-convention move inside one sibling list.

    ``target_index`` counts positions after the item has been removed;
    ``None`` appends.
    """
    items = list(order)
    item = items.pop(source_index)
    if target_index is None or target_index >= len(items):
        items.append(item)
    else:
        items.insert(max(0, target_index), item)
    return items


def insertion_index_for_final_position(source_index: int, final_index: int) -> int:
    """Inverse of the same-parent formula: the insertion point that lands at ``final_index``."""
    return final_index if final_index <= source_index else final_index + 1
