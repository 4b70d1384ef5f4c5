"""Shared fixtures: an in-memory bookmark store and DOM event builders."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

import pytest
import pytest_asyncio

from bookmarks_mcp.engine import BookmarkEngine, PointerEvent
from bookmarks_mcp.models import (
    BookmarkAPIError,
    BookmarkNode,
    InvalidRequestError,
    MoveDestination,
    NodeCreateRequest,
    NodeNotFoundError,
    NodeUpdateRequest,
)

# 0 (root)
# ├── 1 Bookmarks bar: s/ [a b c d e], f/ [p q], x
# └── 2 Other bookmarks: g/ [], y
DEFAULT_TREE: dict[str, Any] = {
    "id": "0",
    "children": [
        {
            "id": "1",
            "title": "Bookmarks bar",
            "children": [
                {
                    "id": "s",
                    "title": "Scenario",
                    "children": [
                        {"id": c, "title": c.upper(), "url": f"https://{c}.example"} for c in "abcde"
                    ],
                },
                {
                    "id": "f",
                    "title": "Folder",
                    "children": [
                        {"id": "p", "title": "P", "url": "https://p.example"},
                        {"id": "q", "title": "Q", "url": "https://q.example"},
                    ],
                },
                {"id": "x", "title": "X", "url": "https://x.example"},
            ],
        },
        {
            "id": "2",
            "title": "Other bookmarks",
            "children": [
                {"id": "g", "title": "Empty", "children": []},
                {"id": "y", "title": "Y", "url": "https://y.example"},
            ],
        },
    ],
}


class FakeBookmarkStore:
    """In-memory store with Chromium move semantics and async event delivery.

    ``move`` takes the index among the new siblings after removal, like
    ``chrome.bookmarks.move``. Mutations notify listeners on the next loop
    iteration, the way the browser delivers ``onMoved`` after the call returns.
    """

    def __init__(self, tree: dict[str, Any] | None = None) -> None:
        self.nodes: dict[str, dict[str, Any]] = {}
        self.children: dict[str, list[str]] = {}
        self.listeners: dict[str, list[Any]] = defaultdict(list)
        self.deliver_events = True
        self.move_calls: list[tuple[str, str, int | None]] = []
        self.get_tree_calls = 0
        self.fail_next_move: BookmarkAPIError | None = None
        self.fail_get_tree: BookmarkAPIError | None = None
        self.move_gate: asyncio.Event | None = None
        self._next_id = 100
        self._load(tree or DEFAULT_TREE, None)

    def _load(self, data: dict[str, Any], parent_id: str | None) -> None:
        node_id = data["id"]
        self.nodes[node_id] = {
            "id": node_id,
            "parentId": parent_id,
            "title": data.get("title", ""),
            "url": data.get("url"),
        }
        if data.get("url") is None:
            self.children[node_id] = []
            for child in data.get("children", []):
                self.children[node_id].append(child["id"])
                self._load(child, node_id)

    # ------------------------------------------------------------------
    # Helpers for tests
    # ------------------------------------------------------------------

    def order(self, parent_id: str) -> list[str]:
        return list(self.children[parent_id])

    def index_of(self, node_id: str) -> int:
        parent_id = self.nodes[node_id]["parentId"]
        return self.children[parent_id].index(node_id)

    def external_move(self, node_id: str, parent_id: str, index: int | None = None) -> None:
        """A move made by another tab or extension: applied and announced, not counted."""
        self._apply_move(node_id, parent_id, index)

    def _node(self, node_id: str, *, with_children: bool = True) -> BookmarkNode:
        data = dict(self.nodes[node_id])
        parent_id = data["parentId"]
        if parent_id is not None:
            data["index"] = self.children[parent_id].index(node_id)
        if node_id in self.children and with_children:
            data["children"] = [self._node(child) for child in self.children[node_id]]
        return BookmarkNode(**data)

    def _emit(self, kind: str, node_id: str, info: dict[str, Any]) -> None:
        if not self.deliver_events:
            return
        loop = asyncio.get_running_loop()
        for callback in list(self.listeners[kind]):
            loop.call_soon(callback, node_id, info)

    def _apply_move(self, node_id: str, parent_id: str, index: int | None) -> BookmarkNode:
        if node_id not in self.nodes:
            raise NodeNotFoundError(node_id, "No node with the given id exists")
        if parent_id not in self.children:
            raise InvalidRequestError("Cannot move bookmark: parent is not a folder")
        old_parent = self.nodes[node_id]["parentId"]
        old_index = self.children[old_parent].index(node_id)
        self.children[old_parent].remove(node_id)
        siblings = self.children[parent_id]
        if index is None:
            siblings.append(node_id)
        elif index > len(siblings):
            self.children[old_parent].insert(old_index, node_id)
            raise InvalidRequestError("Cannot move bookmark: index out of bounds")
        else:
            siblings.insert(index, node_id)
        self.nodes[node_id]["parentId"] = parent_id
        new_index = siblings.index(node_id)
        self._emit(
            "moved",
            node_id,
            {"parentId": parent_id, "index": new_index, "oldParentId": old_parent, "oldIndex": old_index},
        )
        return self._node(node_id)

    # ------------------------------------------------------------------
    # BookmarkStore
    # ------------------------------------------------------------------

    async def get_tree(self) -> list[BookmarkNode]:
        self.get_tree_calls += 1
        await asyncio.sleep(0)
        if self.fail_get_tree is not None:
            raise self.fail_get_tree
        return [self._node("0")]

    async def get_children(self, parent_id: str) -> list[BookmarkNode]:
        if parent_id not in self.children:
            raise NodeNotFoundError(parent_id)
        return [self._node(child, with_children=False) for child in self.children[parent_id]]

    async def get_node(self, node_id: str) -> BookmarkNode:
        if node_id not in self.nodes:
            raise NodeNotFoundError(node_id)
        return self._node(node_id, with_children=False)

    async def move(self, node_id: str, destination: MoveDestination) -> BookmarkNode:
        self.move_calls.append((node_id, destination.parentId, destination.index))
        if self.move_gate is not None:
            await self.move_gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_next_move is not None:
            error, self.fail_next_move = self.fail_next_move, None
            raise error
        return self._apply_move(node_id, destination.parentId, destination.index)

    async def create(self, request: NodeCreateRequest) -> BookmarkNode:
        parent_id = request.parentId or "2"
        if parent_id not in self.children:
            raise NodeNotFoundError(parent_id)
        self._next_id += 1
        node_id = str(self._next_id)
        self.nodes[node_id] = {"id": node_id, "parentId": parent_id, "title": request.title, "url": request.url}
        if request.url is None:
            self.children[node_id] = []
        siblings = self.children[parent_id]
        siblings.insert(request.index if request.index is not None else len(siblings), node_id)
        self._emit("created", node_id, {"parentId": parent_id})
        return self._node(node_id)

    async def update(self, node_id: str, request: NodeUpdateRequest) -> BookmarkNode:
        if node_id not in self.nodes:
            raise NodeNotFoundError(node_id)
        for key, value in request.model_dump(exclude_none=True).items():
            self.nodes[node_id][key] = value
        self._emit("changed", node_id, request.model_dump(exclude_none=True))
        return self._node(node_id)

    async def remove(self, node_id: str) -> bool:
        if node_id not in self.nodes:
            raise NodeNotFoundError(node_id)
        if self.children.get(node_id):
            raise InvalidRequestError("Cannot remove non-empty folder")
        return self._remove(node_id)

    async def remove_tree(self, node_id: str) -> bool:
        if node_id not in self.nodes:
            raise NodeNotFoundError(node_id)
        return self._remove(node_id)

    def _remove(self, node_id: str) -> bool:
        parent_id = self.nodes[node_id]["parentId"]
        index = self.children[parent_id].index(node_id)
        self.children[parent_id].remove(node_id)
        stack = [node_id]
        while stack:
            current = stack.pop()
            stack.extend(self.children.pop(current, []))
            del self.nodes[current]
        self._emit("removed", node_id, {"parentId": parent_id, "index": index})
        return True

    # ------------------------------------------------------------------
    # MutationEventSource
    # ------------------------------------------------------------------

    def add_listener(self, kind: str, callback: Any) -> None:
        self.listeners[kind].append(callback)

    def remove_listener(self, kind: str, callback: Any) -> None:
        if callback in self.listeners[kind]:
            self.listeners[kind].remove(callback)


@pytest.fixture()
def store() -> FakeBookmarkStore:
    return FakeBookmarkStore()


@pytest_asyncio.fixture()
async def engine(store: FakeBookmarkStore):
    engine = BookmarkEngine(store, refresh_delay=0.01)
    engine.attach_events(store)
    yield engine
    await engine.close()


# ---------------------------------------------------------------------------
# DOM event builders
# ---------------------------------------------------------------------------

ROW_HEIGHT = 40.0


def item_el(item_id: str, parent_id: str | None = None, index: int | None = None) -> dict[str, Any]:
    data = {"bookmark-id": item_id}
    if parent_id is not None:
        data["parent-id"] = parent_id
    if index is not None:
        data["index"] = str(index)
    return {"tag": "div", "classes": ["bookmark-item"], "data": data}


def folder_el(folder_id: str) -> dict[str, Any]:
    return {"tag": "div", "classes": ["folder-container"], "data": {"folder-id": folder_id}}


def header_el(folder_id: str) -> dict[str, Any]:
    return {"tag": "div", "classes": ["folder-header"], "data": {"folder-id": folder_id}}


def gap_el(parent_id: str, insertion_index: int) -> dict[str, Any]:
    return {
        "tag": "div",
        "classes": ["insertion-point"],
        "data": {"parent-id": parent_id, "insertion-index": str(insertion_index)},
    }


def body_el() -> dict[str, Any]:
    return {"tag": "body", "classes": [], "data": {}}


def rows(parent_id: str, item_ids: list[str], top: float = 0.0) -> list[dict[str, Any]]:
    """Geometry for a vertical list of items, ``ROW_HEIGHT`` apart."""
    return [
        {
            "id": item_id,
            "parentId": parent_id,
            "index": position,
            "rect": {"left": 0, "top": top + position * ROW_HEIGHT, "width": 300, "height": ROW_HEIGHT},
        }
        for position, item_id in enumerate(item_ids)
    ]


def pointer(
    action: str,
    target: list[dict[str, Any]] | None = None,
    *,
    x: float = 10.0,
    y: float = 10.0,
    layer: str = "pointer",
    element_at_point: list[dict[str, Any]] | None = None,
    elements_at_point: list[list[dict[str, Any]]] | None = None,
    items: list[dict[str, Any]] | None = None,
) -> PointerEvent:
    return PointerEvent.from_message(
        {
            "action": action,
            "x": x,
            "y": y,
            "layer": layer,
            "target": target,
            "hits": {
                "elementAtPoint": element_at_point,
                "elementsAtPoint": elements_at_point or [],
                "items": items or [],
            },
        }
    )
