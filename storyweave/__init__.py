"""
Storyweave

This package generates narrative text by recursively binding storylets
(small reusable templates) whose open questions are answered by other
storylets, while keeping a single global fact table consistent.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Immutable data model shared by every layer
   - Outputs: Bindings, Fragment variants, Storylet, Corpus, Activation
   - MUST NOT: Contain search or aggregation behavior

2. INGESTION (ingestion/)
   - Responsibility: Surface syntax to Corpus
   - Allowed inputs: Template source text
   - MUST NOT: Resolve queries or inspect facts

3. CORE (core/)
   - Responsibility: Key unification, fact aggregation, candidate selection,
     provider topology
   - Allowed inputs: Corpus and Activation trees
   - MUST NOT: Hold state between calls (pure functions over trees)

4. SEARCH (search/)
   - Responsibility: Cooperative backtracking search as a resumable,
     cancellable, time-sliced computation
   - Outputs: Tentative trees through the publish callback, final result

5. OBSERVABILITY (observability/)
   - Responsibility: Search trace and counters
   - MUST NOT: Influence search decisions

CONSTRAINTS ENFORCED:
=====================
- Immutability-first: storylets, bindings and activation trees are frozen
- Copy-on-write: tree edits share every untouched subtree
- Inconsistency is data: a conflicting tree is a verdict, not an exception
- Reproducible: the random source is injected and seedable
"""

from .contracts.base import Verdict, SearchStatus, ErrorCode, Error
from .contracts.corpus import (
    Bindings, Assign, Query, Read, Literal, Match, Exclude,
    Storylet, Corpus,
)
from .contracts.activation import Activation
from .ingestion.parser import parse_corpus
from .core.unify import unify
from .core.facts import aggregate, FactTable, FactEntry, AggregationResult
from .search.scheduler import begin_search, ResumableSearch, StepResult
from .engine import StoryEngine, EngineConfig

__all__ = [
    "Verdict", "SearchStatus", "ErrorCode", "Error",
    "Bindings", "Assign", "Query", "Read", "Literal", "Match", "Exclude",
    "Storylet", "Corpus", "Activation",
    "parse_corpus", "unify", "aggregate",
    "FactTable", "FactEntry", "AggregationResult",
    "begin_search", "ResumableSearch", "StepResult",
    "StoryEngine", "EngineConfig",
]

__version__ = "0.1.0"
