"""Tests for bookmarks_mcp.engine.validation."""

from __future__ import annotations

import pytest

from bookmarks_mcp.engine.tree_cache import TreeCache
from bookmarks_mcp.engine.validation import describe_store_error, move_violation
from bookmarks_mcp.models import InvalidRequestError, NodeNotFoundError

from conftest import FakeBookmarkStore

PROTECTED = ("0", "1", "2")


class TestMoveViolation:
    @pytest.mark.asyncio()
    async def test_valid_moves(self, store: FakeBookmarkStore) -> None:
        snapshot = await TreeCache(store).get()
        assert move_violation(snapshot, "a", "f", PROTECTED) is None
        assert move_violation(snapshot, "s", "2", PROTECTED) is None
        assert move_violation(snapshot, "f", "g", PROTECTED) is None

    @pytest.mark.asyncio()
    async def test_folder_cannot_enter_its_subtree(self, store: FakeBookmarkStore) -> None:
        snapshot = await TreeCache(store).get()
        assert move_violation(snapshot, "1", "s", ()) == "Cannot move folder into itself or its subfolder"

    @pytest.mark.asyncio()
    async def test_custom_protected_ids(self, store: FakeBookmarkStore) -> None:
        snapshot = await TreeCache(store).get()
        assert move_violation(snapshot, "s", "2", ("s",)) == "Cannot move protected system folders"


class TestDescribeStoreError:
    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("Can't modify: bookmark root cannot be modified", "Cannot modify root bookmark folder"),
            ("No node with the given id exists", "Bookmark not found"),
            ("Cannot move bookmark: index out of bounds", "Failed to move bookmark - invalid destination"),
            ("Cannot create bookmark here", "Failed to create bookmark - check permissions"),
            ("disk full", "Bookmark operation failed: disk full"),
        ],
    )
    def test_messages(self, message: str, expected: str) -> None:
        assert describe_store_error(InvalidRequestError(message)) == expected

    def test_not_found_error(self) -> None:
        assert describe_store_error(NodeNotFoundError("zz")) == "Bookmark not found"
