"""WebSocket bridge between extension views and the engine.

Every open extension view (new tab page, popup, side panel) connects to
``ws://host:port``. Views push the browser's bookmark mutation events and the
raw pointer and drag events of their listener layers; the bridge pushes back
"moved" notifications, refresh requests and drag feedback to every view.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from .engine import BookmarkEngine, PointerEvent
from .engine.store import EventCallback
from .models import MUTATION_EVENT_KINDS, EventKind, FetchFailed, MovedNotification, MoveError

logger = logging.getLogger(__name__)


class ExtensionEventHub:
    """Mutation event source fed by ``bookmark_event`` messages."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventCallback]] = defaultdict(list)

    def add_listener(self, kind: EventKind, callback: EventCallback) -> None:
        self._listeners[kind].append(callback)

    def remove_listener(self, kind: EventKind, callback: EventCallback) -> None:
        if callback in self._listeners[kind]:
            self._listeners[kind].remove(callback)

    def dispatch(self, kind: str, node_id: str, info: dict[str, Any] | None = None) -> int:
        """Deliver one event; returns the number of listeners called."""
        if kind not in MUTATION_EVENT_KINDS:
            logger.warning(f"Ignoring unknown bookmark event kind: {kind}")
            return 0
        listeners = list(self._listeners[kind])
        for callback in listeners:
            try:
                callback(node_id, dict(info or {}))
            except Exception:
                logger.exception(f"Error in {kind} listener for {node_id}")
        return len(listeners)


class ExtensionBridge:
    """Routes extension messages into the engine and fans notifications out."""

    def __init__(self, engine: BookmarkEngine, host: str = "localhost", port: int = 8765) -> None:
        self.engine = engine
        self.host = host
        self.port = port
        self.hub = ExtensionEventHub()
        self.connections: set[Any] = set()
        self._send_tasks: set[asyncio.Task[None]] = set()

        engine.attach_events(self.hub)
        engine.drag.feedback = self
        self._unsubscribe_moved = engine.notifier.subscribe(self._on_moved)
        self._remove_refresh_hook = engine.reconciler.add_refresh_hook(self._on_refresh)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send ``message`` to every connected view; returns how many got it."""
        payload = json.dumps(message)
        delivered = 0
        for websocket in list(self.connections):
            try:
                await websocket.send(payload)
                delivered += 1
            except ConnectionClosed:
                self.connections.discard(websocket)
                logger.info("Dropped closed extension connection during broadcast")
        return delivered

    def _broadcast_soon(self, message: dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self.broadcast(message))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    def _on_moved(self, notification: MovedNotification) -> None:
        self._broadcast_soon(notification.to_message())

    async def _on_refresh(self) -> None:
        await self.broadcast({"action": "refresh", "version": self.engine.cache.version})

    def mark_dragging(self, item_id: str) -> None:
        self._broadcast_soon({"action": "drag_feedback", "itemId": item_id, "dragging": True})

    def clear_dragging(self, item_id: str) -> None:
        self._broadcast_soon({"action": "drag_feedback", "itemId": item_id, "dragging": False})

    async def flush(self) -> None:
        """Wait for queued broadcasts."""
        while self._send_tasks:
            await asyncio.gather(*list(self._send_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def websocket_handler(self, websocket: Any) -> None:
        """Serve one extension view until it disconnects."""
        logger.info(f"Extension connected from {getattr(websocket, 'remote_address', None)}")
        self.connections.add(websocket)
        try:
            async for message in websocket:
                try:
                    await self.handle_message(websocket, message)
                except ConnectionClosed:
                    raise
                except Exception as e:  # noqa: BLE001
                    # One bad message must not end the view's connection
                    logger.error(f"WebSocket message error: {e}")
            logger.info("Extension disconnected (connection closed by client)")
        except ConnectionClosed as e:
            logger.info(f"Extension connection closed with error: {e}")
        finally:
            self.connections.discard(websocket)

    async def handle_message(self, websocket: Any, message: str | bytes) -> None:
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON from extension: {e}")
            return
        if not isinstance(data, dict):
            logger.error("Extension message is not a JSON object")
            return

        action = data.get("action")
        drag = self.engine.drag

        if action == "ping":
            await websocket.send(json.dumps({"action": "pong"}))
        elif action == "bookmark_event":
            node_id = data.get("id") or data.get("nodeId")
            if not node_id:
                logger.warning("bookmark_event without a node id")
                return
            self.hub.dispatch(str(data.get("kind")), str(node_id), data.get("info"))
        elif action == "pointer_down":
            await drag.pointer_down(PointerEvent.from_message(data))
        elif action == "pointer_move":
            drag.pointer_move(PointerEvent.from_message(data))
        elif action == "dragstart":
            await drag.drag_start(PointerEvent.from_message(data))
        elif action in ("pointer_up", "drop"):
            await self._release(websocket, PointerEvent.from_message(data))
        elif action == "dragend":
            drag.cancel("dragend")
        elif action == "get_tree":
            await self._send_tree(websocket)
        else:
            logger.warning(f"Unknown extension action: {action}")

    async def _release(self, websocket: Any, event: PointerEvent) -> None:
        drag = self.engine.drag
        candidate = drag.candidate
        try:
            if event.kind == "drop":
                outcome = await drag.drop(event)
            else:
                outcome = await drag.pointer_up(event)
        except (MoveError, FetchFailed) as err:
            item_id = getattr(err, "item_id", None) or (candidate.item_id if candidate else None)
            await websocket.send(
                json.dumps({"action": "move_failed", "itemId": item_id, "reason": str(err)})
            )
            return
        if outcome.status != "ignored":
            logger.debug(f"Gesture from {event.layer} ended: {outcome.status}")

    async def _send_tree(self, websocket: Any) -> None:
        try:
            snapshot = await self.engine.snapshot()
        except FetchFailed as err:
            await websocket.send(json.dumps({"action": "tree", "error": str(err)}))
            return
        await websocket.send(
            json.dumps({"action": "tree", "version": snapshot.version, "nodes": snapshot.to_dict()})
        )

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    async def serve(self) -> None:
        """Accept extension connections until cancelled."""
        logger.info(f"Starting extension bridge on ws://{self.host}:{self.port}")
        async with websockets.serve(self.websocket_handler, self.host, self.port):
            logger.info(f"Extension bridge listening on port {self.port}")
            await asyncio.Event().wait()

    def close(self) -> None:
        self._unsubscribe_moved()
        self._remove_refresh_hook()
        for task in list(self._send_tasks):
            task.cancel()
