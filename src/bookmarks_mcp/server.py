"""Bookmarks MCP server implementation using FastMCP."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, TypeVar

from fastmcp import FastMCP

from . import __version__
from .bridge import ExtensionBridge
from .client import AdaptiveRateLimiter, BookmarkClient
from .config import ServerConfig, setup_logging
from .engine import BookmarkEngine, GestureOutcome
from .models import NodeCreateRequest, NodeUpdateRequest, RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Global instances, set up by the lifespan
_client: BookmarkClient | None = None
_rate_limiter: AdaptiveRateLimiter | None = None
_engine: BookmarkEngine | None = None
_bridge: ExtensionBridge | None = None
_bridge_task: asyncio.Task | None = None


def get_engine() -> BookmarkEngine:
    """Get the global engine instance."""
    if _engine is None:
        raise RuntimeError("Bookmark engine not initialized. Server not started properly.")
    return _engine


def get_client() -> BookmarkClient:
    if _client is None:
        raise RuntimeError("Bookmark client not initialized. Server not started properly.")
    return _client


async def _rate_limited(call: Callable[[], Awaitable[T]]) -> T:
    """Run one store-touching call under the adaptive rate limiter."""
    if _rate_limiter:
        await _rate_limiter.acquire()
    try:
        result = await call()
    except RateLimitError as e:
        if _rate_limiter:
            _rate_limiter.on_rate_limit(e.retry_after)
        raise
    if _rate_limiter:
        _rate_limiter.on_success()
    return result


async def _run_bridge(bridge: ExtensionBridge) -> None:
    try:
        await bridge.serve()
    except OSError as e:
        # Port taken or interface missing; MCP tools keep working without views
        logger.error(f"Extension bridge failed to start: {e}")


@asynccontextmanager
async def lifespan(_app: FastMCP):  # type: ignore[no-untyped-def]
    """Manage server lifecycle."""
    global _client, _rate_limiter, _engine, _bridge, _bridge_task

    config = ServerConfig()  # type: ignore[call-arg]
    setup_logging(config.log_level)
    logger.info("Starting Bookmarks MCP server")

    api_config = config.get_api_config()
    _rate_limiter = AdaptiveRateLimiter(
        initial_rate=10.0,
        min_rate=1.0,
        max_rate=100.0,
    )
    _client = BookmarkClient(api_config)
    logger.info(f"Bookmark client initialized with base URL: {api_config.base_url}")

    _engine = BookmarkEngine(
        _client,
        protected_ids=config.protected_folder_ids,
        refresh_delay=config.refresh_delay,
    )
    _bridge = ExtensionBridge(_engine, host=config.ws_host, port=config.ws_port)
    _bridge_task = asyncio.create_task(_run_bridge(_bridge))

    yield

    logger.info("Shutting down Bookmarks MCP server")
    if _bridge_task:
        _bridge_task.cancel()
        try:
            await _bridge_task
        except asyncio.CancelledError:
            pass
        logger.info("Extension bridge stopped")
    if _bridge:
        _bridge.close()
    if _engine:
        await _engine.close()
    if _client:
        await _client.close()
    _client = None
    _rate_limiter = None
    _engine = None
    _bridge = None
    _bridge_task = None


mcp = FastMCP(
    "Bookmarks MCP Server",
    version=__version__,
    instructions=(
        "MCP server for reading and rearranging the browser bookmark tree. "
        "Prefer bookmarks_move_to_insertion_point when you know where an item "
        "should appear in the current order; bookmarks_move takes the store's "
        "own after-removal index."
    ),
    lifespan=lifespan,
)


def _outcome_dict(outcome: GestureOutcome) -> dict[str, Any]:
    result: dict[str, Any] = {
        "success": outcome.status in ("moved", "noop"),
        "status": outcome.status,
        "item_id": outcome.item_id,
    }
    if outcome.move is not None:
        result["target_parent_id"] = outcome.move.target_parent_id
        result["target_index"] = outcome.move.target_index
    if outcome.node is not None:
        result["node"] = outcome.node.model_dump(exclude_none=True)
    if outcome.reason:
        result["reason"] = outcome.reason
    return result


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


@mcp.tool(name="bookmarks_get_tree", description="Get the bookmark tree (or one folder's subtree) from the cache")
async def get_tree(folder_id: str | None = None) -> dict:
    """Return the organized tree.

    Args:
        folder_id: Limit the result to this folder's subtree (optional)

    Returns:
        Dictionary with the cache version and the nodes
    """
    engine = get_engine()
    snapshot = await _rate_limited(engine.snapshot)
    if folder_id is None:
        return {"version": snapshot.version, "nodes": snapshot.to_dict()}
    node = snapshot.node(folder_id)
    if node is None:
        raise ValueError(f"Bookmark not found: {folder_id}")
    return {"version": snapshot.version, "nodes": [node.model_dump(exclude_none=True)]}


@mcp.tool(name="bookmarks_get_children", description="List a folder's direct children in order")
async def get_children(parent_id: str) -> list[dict]:
    engine = get_engine()
    snapshot = await _rate_limited(engine.snapshot)
    if parent_id not in snapshot:
        raise ValueError(f"Bookmark not found: {parent_id}")
    return [
        child.model_dump(exclude={"children"}, exclude_none=True)
        for child in snapshot.children_of(parent_id)
    ]


@mcp.tool(name="bookmarks_search", description="Search bookmarks by title or URL")
async def search(query: str) -> list[dict]:
    client = get_client()
    nodes = await _rate_limited(lambda: client.search(query))
    return [node.model_dump(exclude_none=True) for node in nodes]


# ---------------------------------------------------------------------------
# Moving
# ---------------------------------------------------------------------------


@mcp.tool(name="bookmarks_move", description="Move a bookmark using the store's after-removal index")
async def move(node_id: str, parent_id: str, index: int | None = None) -> dict:
    """Move a node to ``parent_id`` at ``index``.

    Args:
        node_id: The bookmark or folder to move
        parent_id: Destination folder
        index: Position among the destination's children once the node has
            been taken out of its old place; omit to append

    Returns:
        The moved node
    """
    engine = get_engine()
    node = await _rate_limited(lambda: engine.move(node_id, parent_id, index))
    return {"success": True, "node": node.model_dump(exclude_none=True)}


@mcp.tool(
    name="bookmarks_move_to_insertion_point",
    description="Move a bookmark to a gap in the current sibling order (0 = before the first child)",
)
async def move_to_insertion_point(node_id: str, parent_id: str, insertion_index: int) -> dict:
    """Move a node the way dropping it on an insertion point would.

    Args:
        node_id: The bookmark or folder to move
        parent_id: Folder that owns the insertion point
        insertion_index: Gap number in the folder's current order, from 0
            (before the first child) to the child count (after the last)

    Returns:
        Outcome: "moved", or "noop" when the gap is next to the node already
    """
    engine = get_engine()
    outcome = await _rate_limited(
        lambda: engine.move_to_insertion_point(node_id, parent_id, insertion_index)
    )
    return _outcome_dict(outcome)


@mcp.tool(name="bookmarks_move_to_folder", description="Move a bookmark into a folder (append, or prepend with at_top)")
async def move_to_folder(node_id: str, folder_id: str, at_top: bool = False) -> dict:
    engine = get_engine()
    outcome = await _rate_limited(lambda: engine.move_to_folder(node_id, folder_id, at_header=at_top))
    return _outcome_dict(outcome)


@mcp.tool(name="bookmarks_bulk_move", description="Move several bookmarks into one folder, in order")
async def bulk_move(node_ids: list[str], parent_id: str, index: int | None = None) -> dict:
    """Move nodes one after another.

    Args:
        node_ids: Nodes to move, in the order they should end up
        parent_id: Destination folder
        index: Store index for the first node (optional, default appends)

    Returns:
        Successful nodes, failures with reasons, and a count
    """
    engine = get_engine()
    result = await _rate_limited(lambda: engine.bulk_move(node_ids, parent_id, index))
    return {
        "success": not result.failed,
        "moved": [node.model_dump(exclude_none=True) for node in result.successful],
        "failed": [{"item_id": err.item_id, "error": str(err)} for err in result.failed],
        "total_processed": result.total_processed,
    }


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------


@mcp.tool(name="bookmarks_create", description="Create a bookmark (with url) or a folder (without)")
async def create(
    title: str,
    parent_id: str | None = None,
    url: str | None = None,
    index: int | None = None,
) -> dict:
    engine = get_engine()
    request = NodeCreateRequest(parentId=parent_id, index=index, title=title, url=url)
    node = await _rate_limited(lambda: engine.create(request))
    return node.model_dump(exclude_none=True)


@mcp.tool(name="bookmarks_update", description="Rename a bookmark or folder, or change a bookmark's URL")
async def update(node_id: str, title: str | None = None, url: str | None = None) -> dict:
    engine = get_engine()
    request = NodeUpdateRequest(title=title, url=url)
    node = await _rate_limited(lambda: engine.update(node_id, request))
    return node.model_dump(exclude_none=True)


@mcp.tool(name="bookmarks_remove", description="Delete a bookmark, or a folder with recursive=True")
async def remove(node_id: str, recursive: bool = False) -> dict:
    engine = get_engine()
    removed = await _rate_limited(lambda: engine.remove(node_id, recursive=recursive))
    return {"success": removed, "node_id": node_id}


# ---------------------------------------------------------------------------
# Cache and diagnostics
# ---------------------------------------------------------------------------


@mcp.tool(name="bookmarks_refresh_cache", description="Drop the cached tree and read it again from the store")
async def refresh_cache() -> dict:
    engine = get_engine()
    engine.reconciler.request_refresh()
    await engine.reconciler.wait_idle()
    return engine.cache.status()


@mcp.tool(name="bookmarks_cache_status", description="Cache version, moves in flight and connected extension views")
async def cache_status() -> dict:
    engine = get_engine()
    return {
        **engine.cache.status(),
        "moves_in_flight": [request.item_id for request in engine.coordinator.in_flight()],
        "refresh_pending": engine.reconciler.refresh_pending,
        "events_seen": engine.reconciler.events_seen,
        "refreshes": engine.reconciler.refresh_count,
        "drag_state": engine.drag.state.value,
        "extension_views": len(_bridge.connections) if _bridge else 0,
    }


@mcp.tool(name="bookmarks_drag_history", description="Recent drag gestures, newest first")
async def drag_history(limit: int = 20) -> list[dict]:
    engine = get_engine()
    return [record.to_dict() for record in engine.session_log.history(limit)]


@mcp.resource(
    uri="bookmarks://outline",
    name="bookmarks_outline",
    description="The complete bookmark tree as an indented outline",
)
async def get_outline() -> str:
    engine = get_engine()
    snapshot = await _rate_limited(engine.snapshot)
    return snapshot.outline()


def main() -> None:
    """Run the server over stdio."""
    setup_logging()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
