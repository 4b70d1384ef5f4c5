"""Error taxonomy for the bookmark API client and the reorder engine."""

from __future__ import annotations


class BookmarkError(Exception):
    """Base class for every error raised by bookmarks_mcp."""


# ---------------------------------------------------------------------------
# Transport errors (raised by the HTTP client)
# ---------------------------------------------------------------------------


class BookmarkAPIError(BookmarkError):
    """The external bookmark store could not complete a request."""


class AuthenticationError(BookmarkAPIError):
    """Invalid API key or unauthorized access."""


class NodeNotFoundError(BookmarkAPIError):
    """A bookmark id does not exist in the store."""

    def __init__(self, node_id: str, message: str = "Bookmark not found") -> None:
        self.node_id = node_id
        super().__init__(f"{message}: {node_id}")


class InvalidRequestError(BookmarkAPIError):
    """The store understood the request and refused it (4xx)."""


class RateLimitError(BookmarkAPIError):
    """The store asked us to slow down (HTTP 429)."""

    def __init__(self, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        suffix = f" (retry after {retry_after}s)" if retry_after else ""
        super().__init__(f"Rate limited by bookmark API{suffix}")


class NetworkError(BookmarkAPIError):
    """Server error, connection failure or malformed payload."""


class RequestTimeoutError(BookmarkAPIError):
    """A request exceeded the configured timeout on every attempt."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} timed out")


# ---------------------------------------------------------------------------
# Engine errors
# ---------------------------------------------------------------------------


class FetchFailed(BookmarkError):
    """Reading the full tree from the store failed; the cache stays empty."""


class MoveError(BookmarkError):
    """Base class for move failures reported by MoveCoordinator."""

    def __init__(self, item_id: str, message: str) -> None:
        self.item_id = item_id
        super().__init__(message)


class MoveRejected(MoveError):
    """The move was refused, locally by validation or by the store."""

    def __init__(
        self,
        item_id: str,
        target_parent_id: str | None,
        target_index: int | None,
        reason: str,
    ) -> None:
        self.target_parent_id = target_parent_id
        self.target_index = target_index
        self.reason = reason
        super().__init__(
            item_id,
            f"Move of {item_id} to {target_parent_id}[{target_index}] rejected: {reason}",
        )


class AlreadyInFlight(MoveError):
    """A move for the same item has not resolved yet."""

    def __init__(self, item_id: str) -> None:
        super().__init__(item_id, f"A move for {item_id} is already in flight")


class GestureNoOp(BookmarkError):
    """A gesture that ends without a move. Never user-facing."""


class NoResolvableTarget(GestureNoOp):
    """The release point is not over any drop container."""


class DegenerateMove(GestureNoOp):
    """The chosen insertion point is the item's own current slot."""


class EditRejected(BookmarkError):
    """A create, update or remove was refused before or by the store."""

    def __init__(self, node_id: str | None, reason: str) -> None:
        self.node_id = node_id
        self.reason = reason
        super().__init__(reason)
