"""Bounded in-memory journal of drag gestures.

Each gesture gets one record from start to end: where the item came from, which
listener layer saw it first, the insertion point the user aimed at, the index
actually sent to the store, and how it ended. The MCP server exposes the
journal through ``bookmarks_drag_history``.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any

from ..models import DragCandidate

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


@dataclass
class DragSessionRecord:
    drag_id: str
    item_id: str
    source_parent_id: str
    source_index: int
    layer: str
    started_at: float = field(default_factory=time.time)
    target_parent_id: str | None = None
    requested_index: int | None = None
    adjusted_index: int | None = None
    outcome: str | None = None
    error: str | None = None
    ended_at: float | None = None

    @property
    def duration(self) -> float | None:
        if self.ended_at is None:
            return None
        return self.ended_at - self.started_at

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["duration"] = self.duration
        return data


class DragSessionLog:
    """Keeps the most recent ``max_sessions`` gestures; at most one is active."""

    def __init__(self, max_sessions: int = 50) -> None:
        self._sessions: deque[DragSessionRecord] = deque(maxlen=max_sessions)
        self._active: DragSessionRecord | None = None

    @property
    def active(self) -> DragSessionRecord | None:
        return self._active

    def start(self, candidate: DragCandidate, layer: str) -> DragSessionRecord:
        if self._active is not None:
            # A gesture that never reached end(); close it so it is not lost
            self.end("aborted", error="superseded by a new gesture")
        record = DragSessionRecord(
            drag_id=f"drag_{int(time.time() * 1000)}_{next(_ids)}",
            item_id=candidate.item_id,
            source_parent_id=candidate.source_parent_id,
            source_index=candidate.source_index,
            layer=layer,
        )
        self._active = record
        logger.debug(
            f"Drag {record.drag_id} started on {candidate.item_id} "
            f"({candidate.source_parent_id}[{candidate.source_index}]) via {layer}"
        )
        return record

    def record_drop(
        self,
        target_parent_id: str,
        requested_index: int | None,
        adjusted_index: int | None,
    ) -> None:
        """Note the insertion point and the index that will be sent to the store."""
        if self._active is None:
            return
        self._active.target_parent_id = target_parent_id
        self._active.requested_index = requested_index
        self._active.adjusted_index = adjusted_index
        logger.debug(
            f"Drag {self._active.drag_id}: insertion point {requested_index} "
            f"in {target_parent_id} -> store index {adjusted_index}"
        )

    def end(self, outcome: str, error: str | None = None) -> DragSessionRecord | None:
        record = self._active
        if record is None:
            return None
        record.outcome = outcome
        record.error = error
        record.ended_at = time.time()
        self._sessions.append(record)
        self._active = None

        if outcome == "aborted" and record.target_parent_id is None:
            logger.info(f"Drag {record.drag_id} ended without a drop target: {error}")
        else:
            logger.debug(f"Drag {record.drag_id} ended: {outcome}")
        return record

    def history(self, limit: int | None = None) -> list[DragSessionRecord]:
        """Most recent first."""
        sessions = list(reversed(self._sessions))
        return sessions[:limit] if limit is not None else sessions

    def __len__(self) -> int:
        return len(self._sessions)
