"""Tests for bookmarks_mcp.engine.index_resolver."""

from __future__ import annotations

import itertools

import pytest

from bookmarks_mcp.engine.index_resolver import (
    RowBounds,
    apply_move,
    insertion_index_for_final_position,
    insertion_index_for_pointer,
    resolve_move,
)
from bookmarks_mcp.models import (
    DegenerateMove,
    DragCandidate,
    FolderTarget,
    InsertionPointTarget,
)


def _candidate(index: int, parent: str = "s", item: str = "a") -> DragCandidate:
    return DragCandidate(item_id=item, source_parent_id=parent, source_index=index)


# ---------------------------------------------------------------------------
# Same-parent formula
# ---------------------------------------------------------------------------


class TestSameParent:
    def test_scenario_first_item_to_gap_two(self) -> None:
        siblings = ["A", "B", "C", "D", "E"]
        move = resolve_move(_candidate(0), InsertionPointTarget("s", 2), target_child_count=5)
        assert move.target_parent_id == "s"
        assert move.target_index == 1
        assert apply_move(siblings, 0, move.target_index) == ["B", "A", "C", "D", "E"]

    def test_moving_up_keeps_insertion_index(self) -> None:
        move = resolve_move(_candidate(3), InsertionPointTarget("s", 1), target_child_count=5)
        assert move.target_index == 1
        assert apply_move("ABCDE", 3, move.target_index) == ["A", "D", "B", "C", "E"]

    def test_moving_down_subtracts_one(self) -> None:
        move = resolve_move(_candidate(1), InsertionPointTarget("s", 4), target_child_count=5)
        assert move.target_index == 3
        assert apply_move("ABCDE", 1, move.target_index) == ["A", "C", "D", "B", "E"]

    def test_move_to_end(self) -> None:
        move = resolve_move(_candidate(0), InsertionPointTarget("s", 5), target_child_count=5)
        assert move.target_index == 4
        assert apply_move("ABCDE", 0, move.target_index) == ["B", "C", "D", "E", "A"]

    @pytest.mark.parametrize("gap", [2, 3])
    def test_adjacent_gaps_are_degenerate(self, gap: int) -> None:
        with pytest.raises(DegenerateMove):
            resolve_move(_candidate(2), InsertionPointTarget("s", gap), target_child_count=5)

    def test_every_non_degenerate_gap_lands_between_its_neighbours(self) -> None:
        siblings = list("ABCDE")
        for source, gap in itertools.product(range(5), range(6)):
            if gap in (source, source + 1):
                continue
            move = resolve_move(_candidate(source), InsertionPointTarget("s", gap), target_child_count=5)
            result = apply_move(siblings, source, move.target_index)
            dragged = siblings[source]
            # Gap g sits between siblings[g-1] and siblings[g] in the old order
            before = siblings[gap - 1] if gap > 0 else None
            after = siblings[gap] if gap < len(siblings) else None
            position = result.index(dragged)
            if before is not None:
                assert result[position - 1] == before
            if after is not None:
                assert result[position + 1] == after


class TestInverse:
    def test_move_then_move_back_restores_order(self) -> None:
        siblings = list("ABCDE")
        for source, gap in itertools.product(range(5), range(6)):
            if gap in (source, source + 1):
                continue
            move = resolve_move(_candidate(source), InsertionPointTarget("s", gap), target_child_count=5)
            moved = apply_move(siblings, source, move.target_index)

            current = moved.index(siblings[source])
            back_gap = insertion_index_for_final_position(current, source)
            back = resolve_move(_candidate(current), InsertionPointTarget("s", back_gap), target_child_count=5)
            assert apply_move(moved, current, back.target_index) == siblings


# ---------------------------------------------------------------------------
# Cross-parent and folder targets
# ---------------------------------------------------------------------------


class TestCrossParent:
    @pytest.mark.parametrize("gap", [0, 1, 2])
    def test_insertion_index_passes_through(self, gap: int) -> None:
        move = resolve_move(_candidate(0, parent="1", item="x"), InsertionPointTarget("f", gap), target_child_count=2)
        assert move.target_parent_id == "f"
        assert move.target_index == gap

    def test_header_drop_prepends(self) -> None:
        move = resolve_move(_candidate(2, parent="1", item="x"), FolderTarget("f", at_header=True))
        assert move.target_parent_id == "f"
        assert move.target_index == 0
        children = ["P", "Q"]
        children.insert(move.target_index, "X")
        assert children == ["X", "P", "Q"]

    def test_folder_drop_appends(self) -> None:
        move = resolve_move(_candidate(0, parent="1", item="x"), FolderTarget("f"))
        assert move.target_index is None

    def test_header_drop_is_degenerate_for_first_child(self) -> None:
        with pytest.raises(DegenerateMove):
            resolve_move(_candidate(0, parent="f", item="p"), FolderTarget("f", at_header=True))

    def test_append_in_own_folder_when_last_is_degenerate(self) -> None:
        with pytest.raises(DegenerateMove):
            resolve_move(_candidate(4), FolderTarget("s"), target_child_count=5)

    def test_append_in_own_folder_without_count_is_resolved(self) -> None:
        assert resolve_move(_candidate(4), FolderTarget("s")).target_index is None

    def test_drop_on_itself(self) -> None:
        with pytest.raises(DegenerateMove):
            resolve_move(_candidate(0, item="s", parent="1"), FolderTarget("s"))
        with pytest.raises(DegenerateMove):
            resolve_move(_candidate(0, item="s", parent="1"), InsertionPointTarget("s", 0))


class TestRangeChecks:
    def test_negative_insertion_index(self) -> None:
        with pytest.raises(ValueError):
            resolve_move(_candidate(0), InsertionPointTarget("s", -1))

    def test_insertion_index_past_end(self) -> None:
        with pytest.raises(ValueError):
            resolve_move(_candidate(0), InsertionPointTarget("s", 6), target_child_count=5)


# ---------------------------------------------------------------------------
# Geometry fallback
# ---------------------------------------------------------------------------


class TestPointerGeometry:
    ROWS = [RowBounds(key=k, top=i * 40.0, height=40.0) for i, k in enumerate("ABC")]

    def test_empty_container(self) -> None:
        assert insertion_index_for_pointer([], 100.0) == 0

    def test_top_half_inserts_before(self) -> None:
        assert insertion_index_for_pointer(self.ROWS, 45.0) == 1

    def test_bottom_half_inserts_after(self) -> None:
        assert insertion_index_for_pointer(self.ROWS, 75.0) == 2

    def test_below_last_appends(self) -> None:
        assert insertion_index_for_pointer(self.ROWS, 500.0) == 3

    def test_above_first(self) -> None:
        assert insertion_index_for_pointer(self.ROWS, -10.0) == 0

    def test_unsorted_rows(self) -> None:
        assert insertion_index_for_pointer(list(reversed(self.ROWS)), 5.0) == 0


class TestApplyMove:
    def test_none_appends(self) -> None:
        assert apply_move("ABC", 0, None) == ["B", "C", "A"]

    def test_index_is_after_removal(self) -> None:
        assert apply_move("ABC", 0, 1) == ["B", "A", "C"]
