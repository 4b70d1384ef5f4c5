"""Interfaces the engine consumes from the outside world."""

from __future__ import annotations

from typing import Any, Callable, Protocol

from ..models import (
    BookmarkNode,
    EventKind,
    MoveDestination,
    NodeCreateRequest,
    NodeUpdateRequest,
)

EventCallback = Callable[[str, dict[str, Any]], Any]


class BookmarkStore(Protocol):
    """The authoritative bookmark tree. ``BookmarkClient`` implements it over HTTP."""

    async def get_tree(self) -> list[BookmarkNode]: ...

    async def get_children(self, parent_id: str) -> list[BookmarkNode]: ...

    async def get_node(self, node_id: str) -> BookmarkNode: ...

    async def move(self, node_id: str, destination: MoveDestination) -> BookmarkNode: ...

    async def create(self, request: NodeCreateRequest) -> BookmarkNode: ...

    async def update(self, node_id: str, request: NodeUpdateRequest) -> BookmarkNode: ...

    async def remove(self, node_id: str) -> bool: ...

    async def remove_tree(self, node_id: str) -> bool: ...


class MutationEventSource(Protocol):
    """Subscription points for store mutations (onCreated, onMoved, ...).

    Callbacks receive ``(node_id, info)``.
    """

    def add_listener(self, kind: EventKind, callback: EventCallback) -> None: ...

    def remove_listener(self, kind: EventKind, callback: EventCallback) -> None: ...
