"""
Engine Orchestration Module

This module provides the unified interface over the parser, the core
engines and the search scheduler.

DESIGN PRINCIPLES:
==================
1. Layers communicate ONLY through contracts
2. The engine holds the corpus and configuration, never a tree; every
   operation takes a tree and returns a new one
3. All searches are traceable through observability
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional
import logging
import os
import random

from .contracts.base import ActivationPathError, Error, ErrorCode
from .contracts.corpus import Corpus, Query
from .contracts.activation import Activation, ActivationPath
from .ingestion.parser import parse_corpus
from .core.facts import FactAggregator, AggregationResult
from .core.candidates import (
    Candidate, generate_candidates, refine_candidates, open_queries,
)
from .core.topology import ProviderTopology
from .search.scheduler import (
    SearchConfig, ResumableSearch, StepResult, PublishFn, begin_search, aggregating_publisher,
)
from .render import render_text

logger = logging.getLogger(__name__)


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


@dataclass
class EngineConfig:
    """Unified configuration for the engine and the API."""
    search: Optional[SearchConfig] = None
    max_units: int = 200_000   # per synchronous completion (API, CLI)
    warn_on_cycles: bool = True

    def __post_init__(self):
        self.search = self.search or SearchConfig()

    @staticmethod
    def from_env() -> EngineConfig:
        """
        Read STORYWEAVE_* overrides:
        SEED, FRAME_BUDGET_MS, MAX_DEPTH, CACHE_SIZE, MAX_UNITS.
        """
        search = SearchConfig()
        seed = _env_int("STORYWEAVE_SEED")
        if seed is not None:
            search.random_seed = seed
        budget = os.environ.get("STORYWEAVE_FRAME_BUDGET_MS")
        if budget:
            search.frame_budget_ms = float(budget)
        max_depth = _env_int("STORYWEAVE_MAX_DEPTH")
        if max_depth is not None:
            search.max_depth = max_depth
        cache_size = _env_int("STORYWEAVE_CACHE_SIZE")
        if cache_size is not None:
            search.aggregation_cache_size = cache_size

        config = EngineConfig(search=search)
        max_units = _env_int("STORYWEAVE_MAX_UNITS")
        if max_units is not None:
            config.max_units = max_units
        return config


class StoryEngine:
    """
    Facade over one corpus.

    OPERATIONS:
    ===========
    - facts(tree): aggregate and judge a tree
    - candidates / pick / clear: manual play on one query
    - begin_search / complete: automatic completion
    - render(tree): prose for a tree
    """

    def __init__(self, corpus: Corpus, config: Optional[EngineConfig] = None):
        if not len(corpus):
            raise ValueError("corpus has no storylets")
        self._corpus = corpus
        self._config = config or EngineConfig()
        self._aggregator = FactAggregator(cache_size=self._config.search.aggregation_cache_size)
        self._topology: Optional[ProviderTopology] = None

        if self._config.warn_on_cycles:
            if self._config.search.max_depth is None and self.topology.has_provider_cycle():
                logger.warning(
                    "corpus has provider cycles and no max_depth; search may not terminate: %s",
                    self.topology.provider_cycles(limit=3),
                )

    @classmethod
    def from_text(cls, text: str, config: Optional[EngineConfig] = None) -> StoryEngine:
        return cls(parse_corpus(text), config)

    @property
    def corpus(self) -> Corpus:
        return self._corpus

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def topology(self) -> ProviderTopology:
        if self._topology is None:
            self._topology = ProviderTopology(self._corpus)
        return self._topology

    def new_root(self) -> Activation:
        return Activation.root()

    # =========================================================================
    # FACTS
    # =========================================================================

    def facts(self, tree: Activation) -> AggregationResult:
        return self._aggregator.aggregate(self._corpus, tree)

    def tree_errors(self, tree: Activation) -> List[Error]:
        """
        Shape errors of a tree built outside the engine: unknown templates,
        and children attached at positions that are not queries.
        """
        errors: List[Error] = []
        for path, node in tree.walk():
            where = "/".join(str(i) for i in path)
            if not 0 <= node.template < len(self._corpus):
                errors.append(Error(
                    code=ErrorCode.UNKNOWN_TEMPLATE,
                    message=f"unknown template {node.template}",
                ).with_context("path", where))
                continue
            fragments = self._corpus[node.template].fragments
            for index, _ in node.children:
                if not 0 <= index < len(fragments) or not isinstance(fragments[index], Query):
                    errors.append(Error(
                        code=ErrorCode.NOT_A_QUERY,
                        message=f"fragment {index} of template {node.template} is not a query",
                    ).with_context("path", "/".join(str(i) for i in path + (index,))))
        return errors

    def open_queries(self, tree: Activation, path: ActivationPath = ()) -> List[int]:
        node = tree.subtree(path)
        return list(open_queries(self._corpus, node, self.facts(tree).facts))

    # =========================================================================
    # MANUAL PLAY
    # =========================================================================

    def _query_at(self, tree: Activation, path: ActivationPath, query_index: int) -> Query:
        node = tree.subtree(path)
        fragments = self._corpus[node.template].fragments
        if not 0 <= query_index < len(fragments) or not isinstance(fragments[query_index], Query):
            raise ActivationPathError(
                f"fragment {query_index} of template {node.template} is not a query",
                path=tuple(path) + (query_index,),
                code=ErrorCode.NOT_A_QUERY,
            )
        return fragments[query_index]

    def candidates(self, tree: Activation, path: ActivationPath, query_index: int) -> List[Candidate]:
        """
        Candidates for one query under the tree's current facts, highest
        priority first, otherwise in corpus order.
        """
        query = self._query_at(tree, path, query_index)
        node = tree.subtree(path)
        wanted = node.locals.substitute(query.key)
        facts = self.facts(tree).facts
        refined = refine_candidates(self._corpus, generate_candidates(self._corpus, wanted), facts)
        weight = self._config.search.priority_weight
        return sorted(refined, key=lambda c: self._corpus[c.template].priority(weight), reverse=True)

    def pick(
        self,
        tree: Activation,
        path: ActivationPath,
        query_index: int,
        candidate: Candidate
    ) -> Activation:
        """Attach `candidate` as the answer to a query. Returns a new tree."""
        self._query_at(tree, path, query_index)
        node = tree.subtree(path)
        return tree.replace_at(path, node.with_child(query_index, candidate.activate()))

    def clear(self, tree: Activation, path: ActivationPath, query_index: int) -> Activation:
        """Truncate the answer to a query so it can be retried."""
        return tree.truncate(path, query_index)

    # =========================================================================
    # SEARCH
    # =========================================================================

    def begin_search(
        self,
        tree: Optional[Activation] = None,
        on_publish: Optional[PublishFn] = None,
        seed: Optional[int] = None
    ) -> ResumableSearch:
        config = self._config.search
        rng = random.Random(seed if seed is not None else config.random_seed)
        if on_publish is None:
            on_publish = aggregating_publisher(self._corpus, self._aggregator)
        return begin_search(
            self._corpus,
            tree if tree is not None else self.new_root(),
            on_publish=on_publish,
            rng=rng,
            config=config,
        )

    def complete(
        self,
        tree: Optional[Activation] = None,
        seed: Optional[int] = None,
        max_units: Optional[int] = None
    ) -> StepResult:
        """Run a search synchronously, bounded by `max_units`."""
        search = self.begin_search(tree, seed=seed)
        limit = max_units if max_units is not None else self._config.max_units
        result = search.run(max_units=limit)
        logger.info(
            "completion %s in %d units (%d publishes, %d backtracks)",
            result.status.value, result.units,
            search.observer.metrics.publishes, search.observer.metrics.backtracks,
        )
        return result

    def render(self, tree: Activation) -> str:
        return render_text(self._corpus, tree, self.facts(tree).facts)
