"""
Frame Driver
============

Drives a ResumableSearch the way an interactive host does: one budgeted
step per frame, handing control back in between.

TreeRecorder is a publisher that remembers the most recent tentative
tree, so the host always has a consistent picture to display even if
the search is cancelled mid-frame.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional
import logging

from ..contracts.corpus import Corpus
from ..contracts.activation import Activation
from ..core.facts import FactAggregator, AggregationResult
from .scheduler import ResumableSearch, StepResult, FRAME_BUDGET_MS

logger = logging.getLogger(__name__)


class TreeRecorder:
    """
    Publisher that aggregates each tentative tree and keeps the latest.

    Use as `on_publish` for begin_search().
    """

    def __init__(self, corpus: Corpus, aggregator: Optional[FactAggregator] = None):
        self._corpus = corpus
        self._aggregator = aggregator or FactAggregator()
        self._latest_tree: Optional[Activation] = None
        self._latest_result: Optional[AggregationResult] = None
        self._published = 0

    def __call__(self, tree: Activation) -> AggregationResult:
        result = self._aggregator.aggregate(self._corpus, tree)
        self._latest_tree = tree
        self._latest_result = result
        self._published += 1
        return result

    @property
    def latest_tree(self) -> Optional[Activation]:
        return self._latest_tree

    @property
    def latest_result(self) -> Optional[AggregationResult]:
        return self._latest_result

    @property
    def published(self) -> int:
        return self._published


@dataclass(frozen=True)
class DriveOutcome:
    """Final step plus the number of frames it took."""
    last_step: StepResult
    frames: int

    @property
    def finished(self) -> bool:
        return self.last_step.done


class FrameDriver:
    """
    Steps a search once per frame with a fixed wall-clock budget.

    `on_frame` is called after every frame; returning False stops the
    driver (and cancels the search), mirroring a host that tears down
    the loop.
    """

    def __init__(
        self,
        search: ResumableSearch,
        frame_budget: timedelta = timedelta(milliseconds=FRAME_BUDGET_MS),
        units_per_frame: Optional[int] = None
    ):
        self._search = search
        self._frame_budget = frame_budget
        self._units_per_frame = units_per_frame
        self._frames = 0

    @property
    def frames(self) -> int:
        return self._frames

    def frame(self) -> StepResult:
        self._frames += 1
        return self._search.step(self._frame_budget, self._units_per_frame)

    def drive(
        self,
        max_frames: Optional[int] = None,
        on_frame: Optional[Callable[[StepResult], bool]] = None
    ) -> DriveOutcome:
        start = self._frames
        step = self.frame()
        while not step.done:
            if on_frame is not None and on_frame(step) is False:
                self._search.cancel()
                step = self._search.step(max_units=0)
                break
            if max_frames is not None and self._frames - start >= max_frames:
                break
            step = self.frame()
        else:
            if on_frame is not None:
                on_frame(step)

        logger.debug("drove %d frames, status=%s", self._frames - start, step.status.value)
        return DriveOutcome(last_step=step, frames=self._frames - start)
