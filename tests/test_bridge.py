"""Tests for bookmarks_mcp.bridge (WebSocket connections replaced by fakes)."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from websockets.exceptions import ConnectionClosed

from bookmarks_mcp.bridge import ExtensionBridge, ExtensionEventHub
from bookmarks_mcp.engine import BookmarkEngine
from bookmarks_mcp.models import InvalidRequestError

from conftest import FakeBookmarkStore, folder_el, gap_el, item_el


class FakeWebSocket:
    def __init__(self, incoming: list[dict[str, Any] | str] | None = None) -> None:
        self.incoming = [m if isinstance(m, str) else json.dumps(m) for m in incoming or []]
        self.sent: list[dict[str, Any]] = []
        self.remote_address = ("127.0.0.1", 50000)

    async def send(self, payload: str) -> None:
        self.sent.append(json.loads(payload))

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for message in self.incoming:
            yield message

    def actions(self) -> list[str]:
        return [m["action"] for m in self.sent]


class ClosedWebSocket(FakeWebSocket):
    async def send(self, payload: str) -> None:
        raise ConnectionClosed(None, None)


def _bridge(engine: BookmarkEngine) -> ExtensionBridge:
    return ExtensionBridge(engine, host="localhost", port=0)


class TestEventHub:
    def test_dispatch_to_listeners(self) -> None:
        hub = ExtensionEventHub()
        seen: list[tuple[str, dict]] = []
        hub.add_listener("moved", lambda node_id, info: seen.append((node_id, info)))
        assert hub.dispatch("moved", "a", {"parentId": "f"}) == 1
        assert seen == [("a", {"parentId": "f"})]

    def test_unknown_kind(self) -> None:
        hub = ExtensionEventHub()
        assert hub.dispatch("imported", "a") == 0

    def test_failing_listener(self) -> None:
        hub = ExtensionEventHub()
        seen: list[str] = []

        def broken(node_id: str, info: dict) -> None:
            raise RuntimeError("bug")

        hub.add_listener("removed", broken)
        hub.add_listener("removed", lambda node_id, info: seen.append(node_id))
        assert hub.dispatch("removed", "a") == 2
        assert seen == ["a"]


class TestMessages:
    @pytest.mark.asyncio()
    async def test_ping(self, engine: BookmarkEngine) -> None:
        bridge = _bridge(engine)
        ws = FakeWebSocket([{"action": "ping"}])
        await bridge.websocket_handler(ws)
        assert ws.sent == [{"action": "pong"}]
        assert bridge.connections == set()

    @pytest.mark.asyncio()
    async def test_invalid_messages_are_skipped(self, engine: BookmarkEngine) -> None:
        bridge = _bridge(engine)
        ws = FakeWebSocket(["{not json", "[1, 2]", {"action": "teleport"}, {"action": "ping"}])
        await bridge.websocket_handler(ws)
        assert ws.actions() == ["pong"]

    @pytest.mark.asyncio()
    async def test_malformed_pointer_event_keeps_connection(self, engine: BookmarkEngine) -> None:
        bridge = _bridge(engine)
        bad_row = {"id": "a", "parentId": "s", "index": "two", "rect": {"top": 0, "height": 40}}
        ws = FakeWebSocket([
            {"action": "pointer_down", "x": "abc", "y": 5},
            {"action": "pointer_up", "x": 5, "y": 5, "hits": {"items": [bad_row]}},
            {"action": "ping"},
        ])
        await bridge.websocket_handler(ws)
        assert ws.actions() == ["pong"]
        assert engine.drag.candidate is None

    @pytest.mark.asyncio()
    async def test_get_tree(self, engine: BookmarkEngine) -> None:
        bridge = _bridge(engine)
        ws = FakeWebSocket([{"action": "get_tree"}])
        await bridge.websocket_handler(ws)
        reply = ws.sent[0]
        assert reply["action"] == "tree"
        assert reply["version"] == 1
        assert reply["nodes"][0]["id"] == "0"

    @pytest.mark.asyncio()
    async def test_bookmark_event_triggers_refresh_broadcast(
        self, engine: BookmarkEngine, store: FakeBookmarkStore
    ) -> None:
        bridge = _bridge(engine)
        view = FakeWebSocket()
        bridge.connections.add(view)
        await engine.snapshot()

        sender = FakeWebSocket([
            {"action": "bookmark_event", "kind": "changed", "id": "a", "info": {"title": "A2"}},
            {"action": "bookmark_event", "kind": "changed", "id": "b"},
        ])
        await bridge.websocket_handler(sender)
        await engine.reconciler.wait_idle()

        assert view.sent == [{"action": "refresh", "version": 2}]
        assert engine.reconciler.events_seen == 2


class TestGestures:
    @pytest.mark.asyncio()
    async def test_drag_gesture_moves_and_broadcasts(self, engine: BookmarkEngine, store: FakeBookmarkStore) -> None:
        bridge = _bridge(engine)
        other_view = FakeWebSocket()
        bridge.connections.add(other_view)

        ws = FakeWebSocket([
            {"action": "pointer_down", "x": 5, "y": 5, "target": [item_el("a", "s", 0), folder_el("s")]},
            {"action": "pointer_down", "x": 5, "y": 5, "layer": "mouse", "target": [item_el("a", "s", 0)]},
            {"action": "pointer_move", "x": 5, "y": 60},
            {"action": "pointer_up", "x": 5, "y": 90, "target": [gap_el("s", 2), folder_el("s")]},
            {"action": "pointer_up", "x": 5, "y": 90, "layer": "mouse", "target": [gap_el("s", 2)]},
        ])
        await bridge.websocket_handler(ws)
        await bridge.flush()
        await asyncio.sleep(0)
        await engine.reconciler.wait_idle()

        assert store.order("s") == ["b", "a", "c", "d", "e"]
        assert len(store.move_calls) == 1
        assert other_view.actions() == ["drag_feedback", "bookmark_moved", "drag_feedback", "refresh"]
        moved = other_view.sent[1]
        assert moved == {
            "action": "bookmark_moved",
            "fromId": "a",
            "fromParentId": "s",
            "toParentId": "s",
            "toIndex": 1,
        }

    @pytest.mark.asyncio()
    async def test_failed_move_is_reported_to_sender(self, engine: BookmarkEngine, store: FakeBookmarkStore) -> None:
        bridge = _bridge(engine)
        store.fail_next_move = InvalidRequestError("Cannot move bookmark")
        ws = FakeWebSocket([
            {"action": "dragstart", "target": [item_el("a", "s", 0)], "layer": "html5"},
            {"action": "drop", "target": [gap_el("f", 0), folder_el("f")], "layer": "html5"},
            {"action": "dragend", "layer": "html5"},
        ])
        await bridge.websocket_handler(ws)

        failure = next(m for m in ws.sent if m["action"] == "move_failed")
        assert failure["itemId"] == "a"
        assert "invalid destination" in failure["reason"]
        assert engine.drag.candidate is None


class TestBroadcast:
    @pytest.mark.asyncio()
    async def test_closed_connections_are_dropped(self, engine: BookmarkEngine) -> None:
        bridge = _bridge(engine)
        alive, dead = FakeWebSocket(), ClosedWebSocket()
        bridge.connections.update({alive, dead})

        delivered = await bridge.broadcast({"action": "refresh", "version": 7})

        assert delivered == 1
        assert bridge.connections == {alive}
        assert alive.sent == [{"action": "refresh", "version": 7}]

    @pytest.mark.asyncio()
    async def test_close_unsubscribes(self, engine: BookmarkEngine, store: FakeBookmarkStore) -> None:
        bridge = _bridge(engine)
        view = FakeWebSocket()
        bridge.connections.add(view)
        bridge.close()

        await engine.move("x", "f", 0)
        await asyncio.sleep(0)
        await engine.reconciler.wait_idle()
        await bridge.flush()
        assert view.sent == []
