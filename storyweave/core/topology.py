"""
Provider Topology
=================

Structural analysis of a corpus as a directed graph: an edge A -> B
means some query of template A could be answered by an exported
assign of template B.

ALLOWED:
- Provider lookup per query
- Queries with no provider at all (can never be answered by search)
- Provider cycles (the corpora on which an unbounded search may diverge)
- Reachability from the entry template

This is a static over-approximation: variables on either side are
treated as matching anything, and facts are ignored. It never decides
whether a search will succeed.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple
import itertools
import networkx as nx

from ..contracts.corpus import Corpus, Query, is_variable, split_key

# Elementary cycles grow exponentially with dense provider graphs
CYCLE_SAMPLE_LIMIT = 20


@dataclass(frozen=True)
class CorpusMetrics:
    """Immutable structural metrics for a corpus provider graph."""
    template_count: int
    edge_count: int
    density: float
    is_acyclic: bool
    unreachable_count: int
    unanswerable_count: int


@dataclass(frozen=True)
class UnansweredQuery:
    template: int
    query_index: int
    key: str


def keys_compatible(query_key: str, assign_key: str) -> bool:
    """Same arity and every position equal or a variable on either side."""
    left, right = split_key(query_key), split_key(assign_key)
    if len(left) != len(right):
        return False
    return all(
        a == b or is_variable(a) or is_variable(b)
        for a, b in zip(left, right)
    )


class ProviderTopology:
    """
    Wraps a NetworkX DiGraph built from a corpus.

    Edges carry the query positions of the source template that the
    target template can answer.
    """

    def __init__(self, corpus: Corpus):
        self._corpus = corpus
        self._graph = nx.DiGraph()
        self._providers: Dict[Tuple[int, int], List[int]] = {}
        self._build()

    def _build(self) -> None:
        corpus = self._corpus
        self._graph.add_nodes_from(range(len(corpus)))

        for source, storylet in enumerate(corpus):
            for index, fragment in enumerate(storylet):
                if not isinstance(fragment, Query):
                    continue
                providers = []
                for target, candidate in enumerate(corpus):
                    if any(keys_compatible(fragment.key, a.key) for a in candidate.exported_assigns()):
                        providers.append(target)
                        if self._graph.has_edge(source, target):
                            self._graph[source][target]["queries"].append(index)
                        else:
                            self._graph.add_edge(source, target, queries=[index])
                self._providers[(source, index)] = providers

    @property
    def graph(self) -> nx.DiGraph:
        return self._graph

    def providers(self, template: int, query_index: int) -> List[int]:
        return list(self._providers.get((template, query_index), []))

    def unanswerable_queries(self) -> List[UnansweredQuery]:
        found = []
        for (template, index), providers in sorted(self._providers.items()):
            if not providers:
                key = self._corpus[template][index].key
                found.append(UnansweredQuery(template=template, query_index=index, key=key))
        return found

    def has_provider_cycle(self) -> bool:
        return not nx.is_directed_acyclic_graph(self._graph)

    def provider_cycles(self, limit: Optional[int] = CYCLE_SAMPLE_LIMIT) -> List[List[int]]:
        """
        Up to `limit` elementary cycles, self-loops included, each in
        canonical rotation. None lists them all.
        """
        cycles = []
        for cycle in itertools.islice(nx.simple_cycles(self._graph), limit):
            pivot = cycle.index(min(cycle))
            cycles.append(cycle[pivot:] + cycle[:pivot])
        return sorted(cycles)

    def reachable_templates(self, entry: int = 0) -> Set[int]:
        if entry not in self._graph:
            return set()
        return {entry} | nx.descendants(self._graph, entry)

    def compute_metrics(self, entry: int = 0) -> CorpusMetrics:
        node_count = self._graph.number_of_nodes()
        return CorpusMetrics(
            template_count=node_count,
            edge_count=self._graph.number_of_edges(),
            density=nx.density(self._graph) if node_count > 1 else 0.0,
            is_acyclic=nx.is_directed_acyclic_graph(self._graph),
            unreachable_count=node_count - len(self.reachable_templates(entry)),
            unanswerable_count=len(self.unanswerable_queries()),
        )
