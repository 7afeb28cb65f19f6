"""
Core Engines

RESPONSIBILITY: Key unification, fact aggregation, candidate selection,
provider topology
ALLOWED INPUTS: Corpus, Activation trees, Bindings
OUTPUTS: Bindings, AggregationResult, Candidate lists, graph metrics

WHAT THIS LAYER MUST NOT DO:
============================
- Keep state between calls (the aggregation cache is keyed by tree
  shape and never changes a result)
- Modify a tree or a binding set it was given
- Decide when the search runs or stops
"""

from .unify import unify, unify_fact
from .facts import aggregate, FactAggregator, FactTable, FactEntry, AggregationResult
from .candidates import (
    Candidate, generate_candidates, refine_candidates, order_candidates,
    open_queries, query_key,
)
from .topology import ProviderTopology, CorpusMetrics

__all__ = [
    "unify", "unify_fact",
    "aggregate", "FactAggregator", "FactTable", "FactEntry", "AggregationResult",
    "Candidate", "generate_candidates", "refine_candidates", "order_candidates",
    "open_queries", "query_key",
    "ProviderTopology", "CorpusMetrics",
]
