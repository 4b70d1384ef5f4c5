"""Read-through cache of the organized bookmark tree."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

from ..models import BookmarkAPIError, BookmarkNode, FetchFailed
from .store import BookmarkStore

logger = logging.getLogger(__name__)

# Fetches that keep getting invalidated mid-flight are retried this many times
_MAX_STALE_RETRIES = 5


def organize_tree(roots: Iterable[BookmarkNode]) -> tuple[tuple[BookmarkNode, ...], int]:
    """Return ``(roots, repaired)`` with siblings ordered and indexed 0..n-1.

    Children are sorted by their reported ``index`` (ties keep store order) and
    renumbered by position, and every child's ``parentId`` is set to its
    folder. ``repaired`` counts nodes whose reported index had to change.
    """
    repaired = 0

    def organize(nodes: Iterable[BookmarkNode], parent_id: str | None) -> tuple[BookmarkNode, ...]:
        nonlocal repaired
        ordered = sorted(
            enumerate(nodes),
            key=lambda pair: (pair[1].index if pair[1].index is not None else pair[0], pair[0]),
        )
        result = []
        for position, (_, node) in enumerate(ordered):
            if node.index != position:
                repaired += 1
            children = None
            if node.children is not None:
                children = organize(node.children, node.id)
            update: dict[str, Any] = {"index": position, "children": children}
            if parent_id is not None:
                update["parentId"] = parent_id
            result.append(node.model_copy(update=update))
        return tuple(result)

    return organize(roots, None), repaired


@dataclass(frozen=True)
class CacheSnapshot:
    """An immutable organized copy of the tree plus a monotonic version stamp."""

    roots: tuple[BookmarkNode, ...]
    version: int
    fetched_at: float
    _nodes: Mapping[str, BookmarkNode] = field(repr=False, compare=False)

    @classmethod
    def build(cls, raw_roots: Iterable[BookmarkNode], version: int) -> CacheSnapshot:
        roots, repaired = organize_tree(raw_roots)
        if repaired:
            logger.warning(f"Store returned non-contiguous sibling indexes; renumbered {repaired} nodes")
        nodes: dict[str, BookmarkNode] = {}
        stack = list(roots)
        while stack:
            node = stack.pop()
            nodes[node.id] = node
            stack.extend(node.children or ())
        return cls(
            roots=roots,
            version=version,
            fetched_at=time.time(),
            _nodes=MappingProxyType(nodes),
        )

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: str) -> BookmarkNode | None:
        return self._nodes.get(node_id)

    def children_of(self, node_id: str) -> tuple[BookmarkNode, ...]:
        node = self._nodes.get(node_id)
        if node is None or node.children is None:
            return ()
        return node.children

    def parent_of(self, node_id: str) -> BookmarkNode | None:
        node = self._nodes.get(node_id)
        if node is None or node.parentId is None:
            return None
        return self._nodes.get(node.parentId)

    def index_of(self, node_id: str) -> int | None:
        node = self._nodes.get(node_id)
        return node.index if node is not None else None

    def walk(self) -> Iterator[tuple[BookmarkNode, int]]:
        """Depth-first ``(node, depth)`` pairs in display order."""
        stack = [(node, 0) for node in reversed(self.roots)]
        while stack:
            node, depth = stack.pop()
            yield node, depth
            stack.extend((child, depth + 1) for child in reversed(node.children or ()))

    def folders(self) -> list[BookmarkNode]:
        """Every folder, depth-first, each carrying its ordered children."""
        return [node for node, _ in self.walk() if node.is_folder]

    def is_ancestor(self, ancestor_id: str, node_id: str) -> bool:
        """True when ``ancestor_id`` is ``node_id`` or one of its ancestors."""
        seen: set[str] = set()
        current: str | None = node_id
        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            node = self._nodes.get(current)
            current = node.parentId if node is not None else None
        return False

    def descendant_ids(self, node_id: str) -> set[str]:
        result: set[str] = set()
        stack = list(self.children_of(node_id))
        while stack:
            node = stack.pop()
            result.add(node.id)
            stack.extend(node.children or ())
        return result

    def to_dict(self) -> list[dict[str, Any]]:
        return [root.model_dump(exclude_none=True) for root in self.roots]

    def outline(self) -> str:
        """Indented text rendering, one line per node."""
        lines = []
        for node, depth in self.walk():
            prefix = "  " * depth + "- "
            label = node.title or "(untitled)"
            if node.url:
                lines.append(f"{prefix}{label} <{node.url}> [{node.id}]")
            else:
                lines.append(f"{prefix}{label}/ [{node.id}]")
        return "\n".join(lines)


class TreeCache:
    """Holds the last organized snapshot of the store's tree.

    ``get()`` fetches on a miss; ``invalidate()`` drops the snapshot. Between two
    invalidations ``get()`` returns the same instance, so consumers can compare
    snapshots by identity.
    """

    def __init__(self, store: BookmarkStore) -> None:
        self._store = store
        self._snapshot: CacheSnapshot | None = None
        self._version = 0
        self._generation = 0
        self._lock = asyncio.Lock()
        self._fetch_count = 0
        self._invalidation_count = 0

    @property
    def version(self) -> int:
        """Version stamp of the newest snapshot built so far (0 before the first)."""
        return self._version

    def peek(self) -> CacheSnapshot | None:
        """Current snapshot without fetching."""
        return self._snapshot

    def invalidate(self) -> None:
        """Drop the current snapshot; also marks any fetch in progress as stale."""
        self._generation += 1
        if self._snapshot is not None:
            self._invalidation_count += 1
            logger.debug(f"Tree cache v{self._snapshot.version} invalidated")
        self._snapshot = None

    async def get(self) -> CacheSnapshot:
        """Return the cached snapshot, fetching and organizing the tree on a miss."""
        stale_retries = 0
        while True:
            snapshot = self._snapshot
            if snapshot is not None:
                return snapshot

            async with self._lock:
                # Another caller may have loaded it while we waited
                if self._snapshot is not None:
                    return self._snapshot

                generation = self._generation
                self._fetch_count += 1
                try:
                    raw_roots = await self._store.get_tree()
                except BookmarkAPIError as err:
                    logger.error(f"Bookmark tree fetch failed: {err}")
                    raise FetchFailed(f"Could not read bookmark tree: {err}") from err

                candidate = CacheSnapshot.build(raw_roots, self._version + 1)

                if generation != self._generation:
                    stale_retries += 1
                    if stale_retries > _MAX_STALE_RETRIES:
                        # Complete but not cached; the pending invalidation wins
                        logger.warning("Tree kept changing during fetch; returning uncached snapshot")
                        self._version = candidate.version
                        return candidate
                    logger.debug("Tree invalidated during fetch; refetching")
                    continue

                self._version = candidate.version
                self._snapshot = candidate
                logger.debug(f"Tree cache populated: v{candidate.version}, {len(candidate)} nodes")
                return candidate

    def status(self) -> dict[str, Any]:
        snapshot = self._snapshot
        return {
            "cached": snapshot is not None,
            "version": self._version,
            "node_count": len(snapshot) if snapshot is not None else 0,
            "fetched_at": snapshot.fetched_at if snapshot is not None else None,
            "fetches": self._fetch_count,
            "invalidations": self._invalidation_count,
        }
