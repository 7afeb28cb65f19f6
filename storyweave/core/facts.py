"""
Fact Aggregator
===============

Derives the global fact table from an activation tree.

INVARIANT: aggregate(corpus, tree) is a PURE FUNCTION.
Same corpus + same tree -> identical table and verdict.

The fact table is never stored on an Activation. It is recomputed
whenever the tree changes because it is the single source of truth
for consistency.

REJECTION RULES:
================
1. VALUE_CONFLICT: the same key assigned two different values
2. DOUBLE_EXPORT: the same key exported twice (an answer is consumed once)
3. EXCLUDED_FACT: an Exclude fragment of any activation in the tree is
   matched by an exported fact of the final table

Conflicts never stop the walk; they only decide the verdict.
"""

from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from ..contracts.base import Error, ErrorCode, Verdict
from ..contracts.corpus import Assign, Exclude, Bindings, Corpus
from ..contracts.activation import Activation, ActivationPath
from .unify import unify_fact


# =============================================================================
# FACT TABLE
# =============================================================================

@dataclass(frozen=True)
class FactEntry:
    value: str
    exported: bool = False


@dataclass(frozen=True)
class FactTable:
    """
    Immutable mapping from fully substituted key to FactEntry.

    Keeps insertion order (pre-order tree walk), which is the order
    Match fragments enumerate facts in.
    """
    entries: Tuple[Tuple[str, FactEntry], ...] = ()
    _index: Dict[str, FactEntry] = field(default=None, init=False, repr=False, compare=False, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "_index", dict(self.entries))

    def get(self, key: str) -> Optional[FactEntry]:
        return self._index.get(key)

    def value_of(self, key: str) -> Optional[str]:
        entry = self._index.get(key)
        return entry.value if entry else None

    def is_exported(self, key: str) -> bool:
        entry = self._index.get(key)
        return entry is not None and entry.exported

    def exported_items(self) -> Iterator[Tuple[str, FactEntry]]:
        return ((k, e) for k, e in self.entries if e.exported)

    def as_dict(self) -> Dict[str, FactEntry]:
        return dict(self._index)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)


@dataclass(frozen=True)
class AggregationResult:
    """Facts, verdict, and the conflicts that produced the verdict."""
    facts: FactTable
    verdict: Verdict
    conflicts: Tuple[Error, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return self.verdict is Verdict.CONSISTENT


# =============================================================================
# AGGREGATION
# =============================================================================

@dataclass
class _Accumulator:
    facts: Dict[str, List] = field(default_factory=dict)  # key -> [value, exported]
    conflicts: List[Error] = field(default_factory=list)
    excludes: List[Tuple[Exclude, Bindings, ActivationPath]] = field(default_factory=list)


def _conflict(code: ErrorCode, message: str, key: str, path: ActivationPath) -> Error:
    return Error(
        code=code,
        message=message,
        context=(("key", key), ("path", "/".join(str(i) for i in path))),
    )


def _collect(corpus: Corpus, node: Activation, path: ActivationPath, acc: _Accumulator) -> None:
    for fragment in corpus[node.template]:
        if isinstance(fragment, Exclude):
            acc.excludes.append((fragment, node.locals, path))
            continue
        if not isinstance(fragment, Assign):
            continue

        key = node.locals.substitute(fragment.key)
        value = node.locals.substitute(fragment.value)

        entry = acc.facts.get(key)
        if entry is None:
            entry = [value, False]
            acc.facts[key] = entry
        elif entry[0] != value:
            acc.conflicts.append(_conflict(
                ErrorCode.VALUE_CONFLICT,
                f"{key} is both {entry[0]!r} and {value!r}",
                key, path,
            ))

        if fragment.exported:
            if entry[1]:
                acc.conflicts.append(_conflict(
                    ErrorCode.DOUBLE_EXPORT,
                    f"{key} is exported more than once",
                    key, path,
                ))
            entry[1] = True

    for index, child in node.children:
        _collect(corpus, child, path + (index,), acc)


def _check_excludes(table: FactTable, acc: _Accumulator) -> None:
    exported = list(table.exported_items())
    for fragment, bindings, path in acc.excludes:
        for key, entry in exported:
            if unify_fact(key, entry.value, fragment.key, fragment.value, bindings) is not None:
                acc.conflicts.append(_conflict(
                    ErrorCode.EXCLUDED_FACT,
                    f"{key}={entry.value} is excluded by !{fragment.key}:{fragment.value}",
                    key, path,
                ))
                break


def aggregate(corpus: Corpus, root: Activation) -> AggregationResult:
    """
    Merge every Assign in the tree into one fact table.

    Returns an AggregationResult; an inconsistent tree is a normal
    outcome, not an exception.
    """
    acc = _Accumulator()
    _collect(corpus, root, (), acc)

    table = FactTable(entries=tuple(
        (key, FactEntry(value=value, exported=exported))
        for key, (value, exported) in acc.facts.items()
    ))
    _check_excludes(table, acc)

    verdict = Verdict.INCONSISTENT if acc.conflicts else Verdict.CONSISTENT
    return AggregationResult(facts=table, verdict=verdict, conflicts=tuple(acc.conflicts))


class FactAggregator:
    """
    Aggregation with an optional bounded cache keyed by tree shape.

    Trees share subtrees and carry a precomputed shape hash, so a repeated
    publish of an unchanged shape costs one dictionary lookup.
    """

    def __init__(self, cache_size: int = 0):
        self._cache_size = cache_size
        self._cache: "OrderedDict[Tuple[str, str], AggregationResult]" = OrderedDict()
        self._hits = 0
        self._misses = 0

    def aggregate(self, corpus: Corpus, root: Activation) -> AggregationResult:
        if self._cache_size <= 0:
            return aggregate(corpus, root)

        cache_key = (corpus.content_hash, root.shape_hash)
        cached = self._cache.get(cache_key)
        if cached is not None:
            self._cache.move_to_end(cache_key)
            self._hits += 1
            return cached

        self._misses += 1
        result = aggregate(corpus, root)
        self._cache[cache_key] = result
        if len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
        return result

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses
