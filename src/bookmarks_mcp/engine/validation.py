"""Local checks run before a move is sent to the store."""

from __future__ import annotations

from typing import Collection

from .tree_cache import CacheSnapshot


def move_violation(
    snapshot: CacheSnapshot,
    item_id: str,
    target_parent_id: str,
    protected_ids: Collection[str],
) -> str | None:
    """Return why moving ``item_id`` under ``target_parent_id`` is invalid, or None.

    Roots of the tree (Chromium's "0") may not receive children, protected
    folders may not be moved, and a folder may not move into itself or a
    descendant.
    """
    if item_id in protected_ids:
        return "Cannot move protected system folders"

    item = snapshot.node(item_id)
    if item is None:
        return "Bookmark not found"

    target = snapshot.node(target_parent_id)
    if target is None:
        return "Target folder not found"
    if not target.is_folder:
        return "Target is not a folder"
    if target.parentId is None:
        return "Cannot move bookmarks to root folder"

    if item.is_folder and snapshot.is_ancestor(item_id, target_parent_id):
        return "Cannot move folder into itself or its subfolder"

    return None


def describe_store_error(error: BaseException) -> str:
    """Turn a store error message into something fit for the user."""
    message = str(error) or type(error).__name__
    if "bookmark root cannot be modified" in message:
        return "Cannot modify root bookmark folder"
    if "No node with the given id exists" in message or "not found" in message.lower():
        return "Bookmark not found"
    if "Cannot move bookmark" in message:
        return "Failed to move bookmark - invalid destination"
    if "Cannot create bookmark" in message:
        return "Failed to create bookmark - check permissions"
    return f"Bookmark operation failed: {message}"
