"""
Candidate Selection
===================

Finds the storylets that can answer an open query.

PIPELINE:
1. Generation: every exported Assign whose key unifies with the wanted
   key (same arity, fresh bindings per candidate)
2. Refinement: Exclude fragments drop a candidate, Match fragments
   expand it into one sibling per satisfying exported fact
3. Ordering: uniform shuffle, then stable sort by descending priority

Each step is exposed at single-unit granularity so the scheduler can
suspend between them.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple
import random

from ..contracts.base import SearchInvariantError
from ..contracts.corpus import (
    Bindings, Corpus, Query, Match, Exclude, PRIORITY_WEIGHT, arity,
)
from ..contracts.activation import Activation
from .facts import FactTable, FactEntry
from .unify import unify, unify_fact


@dataclass(frozen=True)
class Candidate:
    """A (template, bindings) pair considered for an open query."""
    template: int
    bindings: Bindings

    def activate(self) -> Activation:
        return Activation(template=self.template, locals=self.bindings)


@dataclass(frozen=True)
class PartialCandidate:
    """A candidate whose template has been refined up to `position`."""
    template: int
    bindings: Bindings
    position: int = 0


@dataclass(frozen=True)
class RefineOutcome:
    pending: Tuple[PartialCandidate, ...] = ()
    accepted: Optional[Candidate] = None


# =============================================================================
# OPEN QUERIES
# =============================================================================

def query_key(corpus: Corpus, node: Activation, index: int) -> str:
    """Key of the Query at `index`, substituted through the node's locals."""
    fragment = corpus[node.template][index]
    if not isinstance(fragment, Query):
        raise SearchInvariantError(
            f"fragment {index} of template {node.template} is not a query: {fragment!r}"
        )
    return node.locals.substitute(fragment.key)


def is_query_open(corpus: Corpus, node: Activation, index: int, facts: FactTable) -> bool:
    """
    A query is open when it has no child and no exported fact answers it.
    Non-query fragments are never open.
    """
    fragment = corpus[node.template][index]
    if not isinstance(fragment, Query):
        return False
    if node.has_child(index):
        return False
    return not facts.is_exported(node.locals.substitute(fragment.key))


def open_queries(corpus: Corpus, node: Activation, facts: FactTable) -> Tuple[int, ...]:
    return tuple(
        i for i in range(len(corpus[node.template]))
        if is_query_open(corpus, node, i, facts)
    )


# =============================================================================
# GENERATION
# =============================================================================

def candidates_from_template(corpus: Corpus, template: int, wanted_key: str) -> List[Candidate]:
    """Candidates offered by one template, one per matching exported Assign."""
    found: List[Candidate] = []
    wanted_arity = arity(wanted_key)
    for fragment in corpus[template].exported_assigns():
        if arity(fragment.key) != wanted_arity:
            continue
        bindings = unify(wanted_key, fragment.key, Bindings.empty())
        if bindings is not None:
            found.append(Candidate(template=template, bindings=bindings))
    return found


def generate_candidates(corpus: Corpus, wanted_key: str) -> List[Candidate]:
    found: List[Candidate] = []
    for template in range(len(corpus)):
        found.extend(candidates_from_template(corpus, template, wanted_key))
    return found


# =============================================================================
# REFINEMENT
# =============================================================================

def _excluded(fragment: Exclude, bindings: Bindings, exported: Sequence[Tuple[str, FactEntry]]) -> bool:
    return any(
        unify_fact(key, entry.value, fragment.key, fragment.value, bindings) is not None
        for key, entry in exported
    )


def refine_step(
    corpus: Corpus,
    partial: PartialCandidate,
    exported: Sequence[Tuple[str, FactEntry]]
) -> RefineOutcome:
    """
    Advance one partial candidate to its next Match/Exclude decision.

    Returns the partials it expands into, or the accepted candidate when
    the end of the template is reached, or neither when it is dropped.
    """
    fragments = corpus[partial.template].fragments
    position = partial.position
    bindings = partial.bindings

    while position < len(fragments):
        fragment = fragments[position]
        position += 1
        if isinstance(fragment, Exclude):
            if _excluded(fragment, bindings, exported):
                return RefineOutcome()
        elif isinstance(fragment, Match):
            expanded = []
            for key, entry in exported:
                extended = unify_fact(key, entry.value, fragment.key, fragment.value, bindings)
                if extended is not None:
                    expanded.append(PartialCandidate(partial.template, extended, position))
            return RefineOutcome(pending=tuple(expanded))

    return RefineOutcome(accepted=Candidate(template=partial.template, bindings=bindings))


def refine_candidates(corpus: Corpus, candidates: Iterable[Candidate], facts: FactTable) -> List[Candidate]:
    exported = list(facts.exported_items())
    pending = [PartialCandidate(c.template, c.bindings) for c in candidates]
    accepted: List[Candidate] = []
    while pending:
        outcome = refine_step(corpus, pending.pop(0), exported)
        pending.extend(outcome.pending)
        if outcome.accepted is not None:
            accepted.append(outcome.accepted)
    return accepted


# =============================================================================
# ORDERING
# =============================================================================

def order_candidates(
    corpus: Corpus,
    candidates: Iterable[Candidate],
    rng: random.Random,
    priority_weight: int = PRIORITY_WEIGHT
) -> List[Candidate]:
    """
    Shuffle, then stable-sort by descending priority.
    Equal-priority candidates keep their shuffled order.
    """
    ordered = list(candidates)
    rng.shuffle(ordered)
    ordered.sort(key=lambda c: corpus[c.template].priority(priority_weight), reverse=True)
    return ordered
