"""
Search Layer

RESPONSIBILITY: Randomized, priority-biased backtracking search that
answers every open query of an activation tree
ALLOWED INPUTS: Corpus, starting Activation, publish callback
OUTPUTS: Tentative trees (through publish), final Activation or failure

WHAT THIS LAYER MUST NOT DO:
============================
- Mutate a tree it has published
- Keep hidden state that survives cancellation
- Block the caller beyond the budget it was given
"""

from .scheduler import (
    SearchConfig, ResumableSearch, StepResult, PublishFn,
    begin_search, aggregating_publisher,
)
from .driver import FrameDriver, TreeRecorder

__all__ = [
    "SearchConfig", "ResumableSearch", "StepResult", "PublishFn",
    "begin_search", "aggregating_publisher",
    "FrameDriver", "TreeRecorder",
]
