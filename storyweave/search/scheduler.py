"""
Backtracking Search Scheduler
=============================

Resolves the open queries of an activation tree by activating candidate
storylets, recursing into them, and backtracking on downstream failure.

The search is an explicit state machine over a stack of frames. Each
frame is one logical resolve(activation) call; each call to advance()
performs one small unit of work on the top frame. Nothing runs between
units, so a caller can slice the search into bounded time budgets and
drop it at any point.

PER-FRAME ALGORITHM:
====================
1. PUBLISH: rebuild the full tentative tree and publish it; an
   inconsistent verdict fails the frame
2. SCAN: find the first query with no child and no exported answer;
   none left means the frame is satisfied
3. GENERATE: one template per unit, collecting candidates
4. REFINE: one Match/Exclude decision per unit
5. ORDER: shuffle, then sort by priority
6. TRY: push a child frame for the next candidate. On child success the
   completed child is attached and a continuation frame resolves the
   rest of this activation; continuation success propagates upward,
   any failure moves on to the next candidate
7. No candidate left: the frame fails

INVARIANT: frames only ever hold immutable trees. Cancelling leaves
every tree already published intact.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Deque, List, Optional, Tuple
from enum import Enum, auto
import logging
import random
import time

from ..contracts.base import SearchStatus, SearchInvariantError
from ..contracts.corpus import Corpus, PRIORITY_WEIGHT
from ..contracts.activation import Activation
from ..core.facts import FactAggregator, FactTable, FactEntry, AggregationResult
from ..core.candidates import (
    Candidate, PartialCandidate,
    is_query_open, query_key, candidates_from_template, refine_step, order_candidates,
)
from ..observability import SearchObserver, TraceEventType

logger = logging.getLogger(__name__)


# Receives every tentative full tree and returns its aggregation
PublishFn = Callable[[Activation], AggregationResult]

# Default scheduling quantum: one animation frame's worth of work
FRAME_BUDGET_MS = 30.0


@dataclass
class SearchConfig:
    """Configuration for one search."""
    frame_budget_ms: float = FRAME_BUDGET_MS
    priority_weight: int = PRIORITY_WEIGHT
    max_depth: Optional[int] = None   # None: unbounded, cyclic corpora may diverge
    random_seed: Optional[int] = None  # None: seeded from the platform
    aggregation_cache_size: int = 256
    trace_capacity: Optional[int] = 10_000

    @property
    def frame_budget(self) -> timedelta:
        return timedelta(milliseconds=self.frame_budget_ms)


def aggregating_publisher(
    corpus: Corpus,
    aggregator: Optional[FactAggregator] = None,
    on_tree: Optional[Callable[[Activation, AggregationResult], None]] = None
) -> PublishFn:
    """Publisher that aggregates each tree and hands both to `on_tree`."""
    aggregator = aggregator or FactAggregator()

    def publish(tree: Activation) -> AggregationResult:
        result = aggregator.aggregate(corpus, tree)
        if on_tree is not None:
            on_tree(tree, result)
        return result

    return publish


@dataclass(frozen=True)
class StepResult:
    """Outcome of one step() call."""
    done: bool
    status: SearchStatus
    result: Optional[Activation] = None
    units: int = 0


# =============================================================================
# FRAMES
# =============================================================================

@dataclass(frozen=True)
class _Lineage:
    """
    Link from a frame to the parent it answers a query for.

    `activation` is the parent as it was when the child was spawned.
    """
    parent: Optional[_Lineage]
    activation: Activation
    query_index: int
    depth: int

    def rebuild(self, node: Activation) -> Activation:
        link: Optional[_Lineage] = self
        tree = node
        while link is not None:
            tree = link.activation.with_child(link.query_index, tree)
            link = link.parent
        return tree


class _Phase(Enum):
    PUBLISH = auto()
    SCAN = auto()
    GENERATE = auto()
    REFINE = auto()
    ORDER = auto()
    TRY = auto()
    AWAIT_CHILD = auto()
    AWAIT_CONTINUATION = auto()


class _Frame:
    """Suspended state of one resolve(activation) call."""

    __slots__ = (
        "activation", "lineage", "depth", "phase", "facts", "cursor",
        "open_index", "wanted_key", "generated", "pending", "exported",
        "accepted", "ordered",
    )

    def __init__(self, activation: Activation, lineage: Optional[_Lineage]):
        self.activation = activation
        self.lineage = lineage
        self.depth = lineage.depth if lineage is not None else 0
        self.phase = _Phase.PUBLISH
        self.facts: Optional[FactTable] = None
        self.cursor = 0
        self.open_index = -1
        self.wanted_key = ""
        self.generated: List[Candidate] = []
        self.pending: Deque[PartialCandidate] = deque()
        self.exported: List[Tuple[str, FactEntry]] = []
        self.accepted: List[Candidate] = []
        self.ordered: List[Candidate] = []

    def full_tree(self) -> Activation:
        if self.lineage is None:
            return self.activation
        return self.lineage.rebuild(self.activation)


# =============================================================================
# RESUMABLE SEARCH
# =============================================================================

class ResumableSearch:
    """
    Handle on a running search.

    GUARANTEES:
    ===========
    1. step() never runs past its budget by more than one unit
    2. A budget-limited search reports RUNNING, never EXHAUSTED
    3. cancel() or simply dropping the handle is always safe
    4. Same corpus, tree, seed and publisher -> same result
    """

    def __init__(
        self,
        corpus: Corpus,
        root: Activation,
        publish: PublishFn,
        rng: random.Random,
        config: SearchConfig,
        observer: Optional[SearchObserver] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self._corpus = corpus
        self._publish = publish
        self._rng = rng
        self._config = config
        self._observer = observer or SearchObserver(trace_capacity=config.trace_capacity)
        self._clock = clock

        self._stack: List[_Frame] = [_Frame(root, None)]
        self._status = SearchStatus.RUNNING
        self._result: Optional[Activation] = None

        self._handlers = {
            _Phase.PUBLISH: self._on_publish,
            _Phase.SCAN: self._on_scan,
            _Phase.GENERATE: self._on_generate,
            _Phase.REFINE: self._on_refine,
            _Phase.ORDER: self._on_order,
            _Phase.TRY: self._on_try,
        }

    # =========================================================================
    # PUBLIC INTERFACE
    # =========================================================================

    @property
    def status(self) -> SearchStatus:
        return self._status

    @property
    def result(self) -> Optional[Activation]:
        return self._result

    @property
    def observer(self) -> SearchObserver:
        return self._observer

    @property
    def frame_count(self) -> int:
        return len(self._stack)

    def step(
        self,
        budget: Optional[timedelta] = None,
        max_units: Optional[int] = None
    ) -> StepResult:
        """
        Advance until `budget` elapses, `max_units` units ran, or the
        search reaches a terminal state. None means unbounded. A running
        search always gets at least one unit from a budget, and none from
        max_units=0.
        """
        units = 0
        if self._status is SearchStatus.RUNNING:
            deadline = None
            if budget is not None:
                deadline = self._clock() + budget.total_seconds()
            while self._status is SearchStatus.RUNNING:
                if max_units is not None and units >= max_units:
                    break
                self.advance()
                units += 1
                if deadline is not None and self._clock() >= deadline:
                    break
            self._observer.metrics.slices += 1

        return StepResult(
            done=self._status.is_terminal,
            status=self._status,
            result=self._result,
            units=units,
        )

    def run(self, max_units: Optional[int] = None) -> StepResult:
        """Run without a time budget."""
        return self.step(budget=None, max_units=max_units)

    def cancel(self) -> None:
        if self._status is not SearchStatus.RUNNING:
            return
        top = self._stack[-1]
        self._observer.event(TraceEventType.SEARCH_CANCELLED, top.depth, top.activation.template)
        self._stack.clear()
        self._status = SearchStatus.CANCELLED
        logger.info("search cancelled after %d units", self._observer.metrics.units)

    def advance(self) -> bool:
        """Perform one unit of work. Returns True while still running."""
        if self._status is not SearchStatus.RUNNING:
            return False
        frame = self._stack[-1]
        handler = self._handlers.get(frame.phase)
        if handler is None:
            raise SearchInvariantError(f"frame waiting in {frame.phase} is on top of the stack")
        self._observer.metrics.units += 1
        handler(frame)
        return self._status is SearchStatus.RUNNING

    # =========================================================================
    # PHASE HANDLERS
    # =========================================================================

    def _event(self, frame: _Frame, event_type: TraceEventType, **detail: object) -> None:
        self._observer.event(event_type, frame.depth, frame.activation.template, **detail)

    def _on_publish(self, frame: _Frame) -> None:
        max_depth = self._config.max_depth
        if max_depth is not None and frame.depth > max_depth:
            self._event(frame, TraceEventType.PRUNED, reason="max_depth")
            self._finish(None)
            return

        outcome = self._publish(frame.full_tree())
        self._event(frame, TraceEventType.PUBLISHED, verdict=outcome.verdict.value)
        if not outcome.is_consistent:
            self._event(frame, TraceEventType.PRUNED, reason="inconsistent",
                        conflicts=len(outcome.conflicts))
            self._finish(None)
            return

        frame.facts = outcome.facts
        frame.phase = _Phase.SCAN
        frame.cursor = 0

    def _on_scan(self, frame: _Frame) -> None:
        template = self._corpus[frame.activation.template]
        if frame.cursor >= len(template):
            self._event(frame, TraceEventType.FRAME_SATISFIED)
            self._finish(frame.activation)
            return

        index = frame.cursor
        frame.cursor += 1
        if not is_query_open(self._corpus, frame.activation, index, frame.facts):
            return

        frame.open_index = index
        frame.wanted_key = query_key(self._corpus, frame.activation, index)
        frame.generated = []
        frame.cursor = 0
        frame.phase = _Phase.GENERATE
        self._event(frame, TraceEventType.QUERY_OPENED, index=index, key=frame.wanted_key)

    def _on_generate(self, frame: _Frame) -> None:
        if frame.cursor < len(self._corpus):
            frame.generated.extend(
                candidates_from_template(self._corpus, frame.cursor, frame.wanted_key)
            )
            frame.cursor += 1
            return

        frame.exported = list(frame.facts.exported_items())
        frame.pending = deque(PartialCandidate(c.template, c.bindings) for c in frame.generated)
        frame.accepted = []
        frame.phase = _Phase.REFINE

    def _on_refine(self, frame: _Frame) -> None:
        if not frame.pending:
            frame.phase = _Phase.ORDER
            return
        outcome = refine_step(self._corpus, frame.pending.popleft(), frame.exported)
        frame.pending.extend(outcome.pending)
        if outcome.accepted is not None:
            frame.accepted.append(outcome.accepted)

    def _on_order(self, frame: _Frame) -> None:
        frame.ordered = order_candidates(
            self._corpus, frame.accepted, self._rng, self._config.priority_weight
        )
        frame.cursor = 0
        frame.phase = _Phase.TRY
        self._event(frame, TraceEventType.CANDIDATES_READY,
                    key=frame.wanted_key, count=len(frame.ordered))

    def _on_try(self, frame: _Frame) -> None:
        if frame.cursor >= len(frame.ordered):
            self._event(frame, TraceEventType.FRAME_EXHAUSTED, index=frame.open_index)
            self._finish(None)
            return

        candidate = frame.ordered[frame.cursor]
        frame.cursor += 1
        self._event(frame, TraceEventType.CANDIDATE_TRIED,
                    index=frame.open_index, candidate=candidate.template)

        link = _Lineage(
            parent=frame.lineage,
            activation=frame.activation,
            query_index=frame.open_index,
            depth=frame.depth + 1,
        )
        frame.phase = _Phase.AWAIT_CHILD
        self._stack.append(_Frame(candidate.activate(), link))

    # =========================================================================
    # RETURNS
    # =========================================================================

    def _finish(self, result: Optional[Activation]) -> None:
        """Pop the top frame and deliver its result to the frame below."""
        while True:
            self._stack.pop()
            if not self._stack:
                self._result = result
                self._status = SearchStatus.SATISFIED if result is not None else SearchStatus.EXHAUSTED
                logger.info(
                    "search %s after %d units", self._status.value, self._observer.metrics.units
                )
                return

            waiting = self._stack[-1]
            if waiting.phase is _Phase.AWAIT_CONTINUATION and result is not None:
                # The continuation completed this activation too
                continue
            self._receive(waiting, result)
            return

    def _receive(self, frame: _Frame, result: Optional[Activation]) -> None:
        if frame.phase is _Phase.AWAIT_CHILD:
            if result is None:
                self._event(frame, TraceEventType.CHILD_FAILED, index=frame.open_index)
                frame.phase = _Phase.TRY
                return
            committed = frame.activation.with_child(frame.open_index, result)
            frame.phase = _Phase.AWAIT_CONTINUATION
            self._stack.append(_Frame(committed, frame.lineage))
            return

        if frame.phase is _Phase.AWAIT_CONTINUATION:
            self._event(frame, TraceEventType.CHILD_FAILED, index=frame.open_index, downstream=True)
            frame.phase = _Phase.TRY
            return

        raise SearchInvariantError(f"result delivered to a frame in {frame.phase}")


def begin_search(
    corpus: Corpus,
    activation: Activation,
    on_publish: Optional[PublishFn] = None,
    rng: Optional[random.Random] = None,
    config: Optional[SearchConfig] = None,
    observer: Optional[SearchObserver] = None,
    clock: Callable[[], float] = time.monotonic
) -> ResumableSearch:
    """
    Start a search from `activation`. Nothing runs until step() is called.

    `on_publish` defaults to plain aggregation over `corpus`.
    """
    config = config or SearchConfig()
    if rng is None:
        rng = random.Random(config.random_seed)
    if on_publish is None:
        on_publish = aggregating_publisher(
            corpus, FactAggregator(cache_size=config.aggregation_cache_size)
        )
    if not len(corpus):
        raise ValueError("cannot search an empty corpus")
    return ResumableSearch(corpus, activation, on_publish, rng, config, observer, clock)
