"""
Observability Layer

RESPONSIBILITY: Search trace and counters
ALLOWED INPUTS: Events emitted by the search scheduler and the engine
OUTPUTS: TraceEntry records, metric snapshots

WHAT THIS LAYER MUST NOT DO:
============================
- Modify search behavior
- Filter or interpret events (only record them)
- Hold references to mutable search state (entries are frozen copies)
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple
from enum import Enum
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# TRACE
# =============================================================================

class TraceEventType(Enum):
    PUBLISHED = "published"
    PRUNED = "pruned"
    QUERY_OPENED = "query_opened"
    CANDIDATES_READY = "candidates_ready"
    CANDIDATE_TRIED = "candidate_tried"
    CHILD_FAILED = "child_failed"
    FRAME_SATISFIED = "frame_satisfied"
    FRAME_EXHAUSTED = "frame_exhausted"
    SEARCH_CANCELLED = "search_cancelled"


@dataclass(frozen=True)
class TraceEntry:
    """One recorded search event. Immutable once collected."""
    sequence: int
    event_type: TraceEventType
    depth: int
    template: int
    detail: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def get(self, key: str, default: str = "") -> str:
        for k, v in self.detail:
            if k == key:
                return v
        return default


class SearchTraceCollector:
    """
    Append-only collector of search events.

    `capacity` bounds memory for long searches; once full, the oldest
    entries are dropped and `dropped` counts them.
    """

    def __init__(self, capacity: Optional[int] = None):
        self._capacity = capacity
        self._entries: Deque[TraceEntry] = deque(maxlen=capacity)
        self._sequence = 0
        self._dropped = 0

    def record(self, event_type: TraceEventType, depth: int, template: int, **detail: object) -> TraceEntry:
        self._sequence += 1
        entry = TraceEntry(
            sequence=self._sequence,
            event_type=event_type,
            depth=depth,
            template=template,
            detail=tuple((k, str(v)) for k, v in sorted(detail.items())),
        )
        if self._capacity is not None and len(self._entries) == self._capacity:
            self._dropped += 1
        self._entries.append(entry)
        return entry

    def get_entries(self, event_type: Optional[TraceEventType] = None) -> List[TraceEntry]:
        if event_type is None:
            return list(self._entries)
        return [e for e in self._entries if e.event_type == event_type]

    def count(self, event_type: TraceEventType) -> int:
        return sum(1 for e in self._entries if e.event_type == event_type)

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def dropped(self) -> int:
        return self._dropped


# =============================================================================
# METRICS
# =============================================================================

@dataclass
class SearchMetrics:
    """Running counters for one search."""
    units: int = 0
    publishes: int = 0
    prunes: int = 0
    candidates_generated: int = 0
    candidates_tried: int = 0
    backtracks: int = 0
    max_depth: int = 0
    slices: int = 0

    def snapshot(self) -> Dict[str, int]:
        return {
            "units": self.units,
            "publishes": self.publishes,
            "prunes": self.prunes,
            "candidates_generated": self.candidates_generated,
            "candidates_tried": self.candidates_tried,
            "backtracks": self.backtracks,
            "max_depth": self.max_depth,
            "slices": self.slices,
        }


class SearchObserver:
    """
    Single sink for the scheduler: trace, counters, and debug logging.
    """

    def __init__(self, trace_capacity: Optional[int] = 10_000):
        self.trace = SearchTraceCollector(capacity=trace_capacity)
        self.metrics = SearchMetrics()

    def event(self, event_type: TraceEventType, depth: int, template: int, **detail: object) -> None:
        self.trace.record(event_type, depth, template, **detail)
        m = self.metrics
        if event_type is TraceEventType.PUBLISHED:
            m.publishes += 1
            m.max_depth = max(m.max_depth, depth)
        elif event_type is TraceEventType.PRUNED:
            m.prunes += 1
        elif event_type is TraceEventType.CANDIDATES_READY:
            m.candidates_generated += int(detail.get("count", 0))
        elif event_type is TraceEventType.CANDIDATE_TRIED:
            m.candidates_tried += 1
        elif event_type is TraceEventType.CHILD_FAILED:
            m.backtracks += 1
        logger.debug("%s depth=%d template=%d %s", event_type.value, depth, template, detail)
