"""Data models and errors shared across bookmarks_mcp."""

from .drag import (
    MUTATION_EVENT_KINDS,
    BookmarkEvent,
    DragCandidate,
    EventKind,
    FolderTarget,
    InsertionPointTarget,
    InsertionTarget,
    MovedNotification,
    MoveRequest,
    ResolvedMove,
)
from .errors import (
    AlreadyInFlight,
    AuthenticationError,
    BookmarkAPIError,
    BookmarkError,
    DegenerateMove,
    EditRejected,
    FetchFailed,
    GestureNoOp,
    InvalidRequestError,
    MoveError,
    MoveRejected,
    NetworkError,
    NodeNotFoundError,
    NoResolvableTarget,
    RateLimitError,
    RequestTimeoutError,
)
from .nodes import (
    APIConfiguration,
    BookmarkNode,
    MoveDestination,
    NodeCreateRequest,
    NodeUpdateRequest,
)

__all__ = [
    "MUTATION_EVENT_KINDS",
    "APIConfiguration",
    "AlreadyInFlight",
    "AuthenticationError",
    "BookmarkAPIError",
    "BookmarkError",
    "BookmarkEvent",
    "BookmarkNode",
    "DegenerateMove",
    "DragCandidate",
    "EditRejected",
    "EventKind",
    "FetchFailed",
    "FolderTarget",
    "GestureNoOp",
    "InsertionPointTarget",
    "InsertionTarget",
    "InvalidRequestError",
    "MoveDestination",
    "MoveError",
    "MoveRejected",
    "MoveRequest",
    "MovedNotification",
    "NetworkError",
    "NoResolvableTarget",
    "NodeCreateRequest",
    "NodeNotFoundError",
    "NodeUpdateRequest",
    "RateLimitError",
    "RequestTimeoutError",
    "ResolvedMove",
]
