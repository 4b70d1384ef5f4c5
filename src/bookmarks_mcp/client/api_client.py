"""Bookmark API client - CRUD operations over HTTP."""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from ..models import (
    APIConfiguration,
    AuthenticationError,
    BookmarkNode,
    InvalidRequestError,
    MoveDestination,
    NetworkError,
    NodeCreateRequest,
    NodeNotFoundError,
    NodeUpdateRequest,
    RateLimitError,
    RequestTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BookmarkClient:
    """Async client for the external bookmark store (CRUD with retry/backoff)."""

    def __init__(self, config: APIConfiguration, transport: httpx.AsyncBaseTransport | None = None):
        """Initialize the bookmark API client.

        ``transport`` replaces the network layer (``httpx.MockTransport`` in tests).
        """
        self.config = config
        self.base_url = config.base_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {
                "Authorization": f"Bearer {self.config.api_key.get_secret_value()}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=httpx.Timeout(self.config.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BookmarkClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _handle_response(self, response: httpx.Response) -> Any:
        """Map API status codes onto the error taxonomy and decode JSON."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid API key or unauthorized access")

        if response.status_code == 404:
            raise NodeNotFoundError(
                node_id=_node_id_from_path(response.request.url.path),
                message="Bookmark not found",
            )

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(retry_after=float(retry_after) if retry_after else None)

        if response.status_code >= 500:
            raise NetworkError(f"Server error: {response.status_code}")

        if response.status_code >= 400:
            try:
                error_data = response.json()
                message = error_data.get("error", "API request failed")
            except (json.JSONDecodeError, AttributeError):
                message = f"API error: {response.status_code}"
            raise InvalidRequestError(message)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except json.JSONDecodeError as err:
            raise NetworkError("Invalid response format from API") from err

    async def _with_retries(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        *,
        retry_transient: bool = True,
    ) -> T:
        """Run ``call`` with exponential backoff.

        Rate-limit refusals are always retried. Network errors and timeouts are
        retried only when ``retry_transient`` is set: a mutation that timed out
        may already have been applied by the store.
        """
        max_retries = self.config.max_retries
        retry_count = 0
        base_delay = 1.0

        while retry_count < max_retries:
            # Delay at the start of each iteration (rate limit protection)
            if self.config.request_delay:
                await asyncio.sleep(self.config.request_delay)

            try:
                return await call()

            except RateLimitError as e:
                retry_count += 1
                retry_after = e.retry_after or (base_delay * (2 ** retry_count))
                logger.warning(
                    f"Rate limited on {operation}. Retry after {retry_after}s. "
                    f"Attempt {retry_count}/{max_retries}"
                )
                if retry_count < max_retries:
                    await asyncio.sleep(retry_after)
                else:
                    raise

            except NetworkError as e:
                if not retry_transient:
                    raise
                retry_count += 1
                logger.warning(f"Network error on {operation}: {e}. Retry {retry_count}/{max_retries}")
                if retry_count < max_retries:
                    await asyncio.sleep(base_delay * (2 ** retry_count))
                else:
                    raise

            except httpx.TimeoutException as err:
                if not retry_transient:
                    raise RequestTimeoutError(operation) from err
                retry_count += 1
                logger.warning(f"Timeout error on {operation}: {err}. Retry {retry_count}/{max_retries}")
                if retry_count < max_retries:
                    await asyncio.sleep(base_delay * (2 ** retry_count))
                else:
                    raise RequestTimeoutError(operation) from err

            except httpx.TransportError as err:
                # Connection refused, DNS failure, ... surface as NetworkError
                if not retry_transient:
                    raise NetworkError(f"{operation} failed: {err}") from err
                retry_count += 1
                logger.warning(f"Transport error on {operation}: {err}. Retry {retry_count}/{max_retries}")
                if retry_count < max_retries:
                    await asyncio.sleep(base_delay * (2 ** retry_count))
                else:
                    raise NetworkError(f"{operation} failed: {err}") from err

        raise NetworkError(f"{operation} failed after maximum retries")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_tree(self) -> list[BookmarkNode]:
        """Fetch the whole bookmark tree (list of roots, children nested)."""

        async def call() -> list[BookmarkNode]:
            response = await self.client.get("/bookmarks/tree")
            data = await self._handle_response(response)
            return _nodes_from_payload(data)

        return await self._with_retries("get_tree", call)

    async def get_children(self, parent_id: str) -> list[BookmarkNode]:
        """Fetch the direct children of a folder, in index order."""

        async def call() -> list[BookmarkNode]:
            response = await self.client.get(f"/bookmarks/{parent_id}/children")
            data = await self._handle_response(response)
            return _nodes_from_payload(data)

        return await self._with_retries("get_children", call)

    async def get_node(self, node_id: str) -> BookmarkNode:
        """Retrieve a single bookmark or folder by id."""

        async def call() -> BookmarkNode:
            response = await self.client.get(f"/bookmarks/{node_id}")
            data = await self._handle_response(response)
            return _node_from_payload(data)

        return await self._with_retries("get_node", call)

    async def search(self, query: str) -> list[BookmarkNode]:
        """Full-text search delegated to the store."""

        async def call() -> list[BookmarkNode]:
            response = await self.client.get("/bookmarks/search", params={"q": query})
            data = await self._handle_response(response)
            return _nodes_from_payload(data)

        return await self._with_retries("search", call)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def move(self, node_id: str, destination: MoveDestination) -> BookmarkNode:
        """Move a node; ``destination.index`` uses the store's post-removal convention."""

        async def call() -> BookmarkNode:
            response = await self.client.post(
                f"/bookmarks/{node_id}/move",
                json=destination.model_dump(exclude_none=True),
            )
            data = await self._handle_response(response)
            return _node_from_payload(data)

        return await self._with_retries("move", call, retry_transient=False)

    async def create(self, request: NodeCreateRequest) -> BookmarkNode:
        """Create a bookmark or folder."""

        async def call() -> BookmarkNode:
            response = await self.client.post("/bookmarks", json=request.model_dump(exclude_none=True))
            data = await self._handle_response(response)
            return _node_from_payload(data)

        return await self._with_retries("create", call, retry_transient=False)

    async def update(self, node_id: str, request: NodeUpdateRequest) -> BookmarkNode:
        """Rename a node or change its URL."""

        async def call() -> BookmarkNode:
            response = await self.client.patch(
                f"/bookmarks/{node_id}", json=request.model_dump(exclude_none=True)
            )
            data = await self._handle_response(response)
            return _node_from_payload(data)

        return await self._with_retries("update", call, retry_transient=False)

    async def remove(self, node_id: str) -> bool:
        """Remove a bookmark or an empty folder."""

        async def call() -> bool:
            response = await self.client.delete(f"/bookmarks/{node_id}")
            await self._handle_response(response)
            return True

        return await self._with_retries("remove", call, retry_transient=False)

    async def remove_tree(self, node_id: str) -> bool:
        """Remove a folder and everything below it."""

        async def call() -> bool:
            response = await self.client.delete(f"/bookmarks/{node_id}/tree")
            await self._handle_response(response)
            return True

        return await self._with_retries("remove_tree", call, retry_transient=False)


def _node_id_from_path(path: str) -> str:
    parts = [p for p in path.split("/") if p]
    if "bookmarks" in parts:
        after = parts[parts.index("bookmarks") + 1 :]
        if after:
            return after[0]
    return parts[-1] if parts else ""


def _node_from_payload(data: Any) -> BookmarkNode:
    # API returns {"node": {...}}; accept a bare node as well
    if isinstance(data, dict) and "node" in data:
        return BookmarkNode.model_validate(data["node"])
    if isinstance(data, dict):
        return BookmarkNode.model_validate(data)
    raise NetworkError("Invalid node payload from API")


def _nodes_from_payload(data: Any) -> list[BookmarkNode]:
    if isinstance(data, dict) and "nodes" in data:
        data = data["nodes"]
    if not isinstance(data, list):
        raise NetworkError("Invalid node list payload from API")
    return [BookmarkNode.model_validate(item) for item in data]
