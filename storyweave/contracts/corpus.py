"""
Corpus Contracts
================

Atoms, compound keys, variable bindings and the storylet templates.

An ATOM is a single token. Atoms starting with '@' are pattern
variables; everything else is a literal. A COMPOUND KEY joins atoms
with '_' and its arity is the number of atoms.

INVARIANT: a Storylet never changes once parsed. Every type in this
module is a frozen dataclass.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, Mapping, Optional, Tuple, Union
from enum import Enum
import hashlib


VARIABLE_SIGIL = "@"
KEY_SEPARATOR = "_"
WILDCARD = "*"
NEGATIVE = "no"
DEFAULT_VALUE = "yes"

HIGH_PRIORITY_MARKER = "*high"
LOW_PRIORITY_MARKER = "*low"
PRIORITY_WEIGHT = 10


def is_variable(atom: str) -> bool:
    return atom.startswith(VARIABLE_SIGIL)


def split_key(key: str) -> Tuple[str, ...]:
    return tuple(key.split(KEY_SEPARATOR))


def join_key(atoms) -> str:
    return KEY_SEPARATOR.join(atoms)


def arity(key: str) -> int:
    return key.count(KEY_SEPARATOR) + 1


# =============================================================================
# VARIABLE BINDINGS
# =============================================================================

@dataclass(frozen=True)
class Bindings:
    """
    Immutable mapping from pattern variable to literal atom.

    Stored as sorted pairs so equal bindings hash equally. bind() returns
    a new Bindings; the receiver is never touched, which lets one partial
    binding set be shared by many candidate branches.
    """
    pairs: Tuple[Tuple[str, str], ...] = ()
    _index: Dict[str, str] = field(default=None, init=False, repr=False, compare=False, hash=False)

    def __post_init__(self):
        object.__setattr__(self, "_index", dict(self.pairs))

    @staticmethod
    def empty() -> Bindings:
        return _EMPTY_BINDINGS

    @staticmethod
    def of(mapping: Mapping[str, str]) -> Bindings:
        return Bindings(pairs=tuple(sorted(mapping.items())))

    def bind(self, variable: str, atom: str) -> Bindings:
        merged = dict(self._index)
        merged[variable] = atom
        return Bindings.of(merged)

    def get(self, atom: str, default: Optional[str] = None) -> Optional[str]:
        return self._index.get(atom, default)

    def resolve(self, atom: str) -> str:
        """Bound value of `atom`, or `atom` itself."""
        return self._index.get(atom, atom)

    def substitute(self, key: str) -> str:
        """Replace every bound atom of a compound key."""
        if not self._index:
            return key
        return join_key(self.resolve(atom) for atom in split_key(key))

    def as_dict(self) -> Dict[str, str]:
        return dict(self._index)

    def __contains__(self, atom: object) -> bool:
        return atom in self._index

    def __len__(self) -> int:
        return len(self.pairs)

    def __iter__(self) -> Iterator[str]:
        return iter(self._index)


_EMPTY_BINDINGS = Bindings()


# =============================================================================
# FRAGMENTS (closed sum type)
# =============================================================================

class FragmentKind(Enum):
    ASSIGN = "assign"
    QUERY = "query"
    READ = "read"
    LITERAL = "literal"
    MATCH = "match"
    EXCLUDE = "exclude"


@dataclass(frozen=True)
class Assign:
    """Declares `key = value`. Exported assigns can answer an ancestor's query."""
    key: str
    value: str = DEFAULT_VALUE
    exported: bool = False

    kind = FragmentKind.ASSIGN


@dataclass(frozen=True)
class Query:
    """An open question, answered by an exported Assign whose key unifies."""
    key: str

    kind = FragmentKind.QUERY


@dataclass(frozen=True)
class Read:
    """Display-only lookup into the fact table."""
    key: str

    kind = FragmentKind.READ


@dataclass(frozen=True)
class Literal:
    """Inert text. Priority markers are literals too."""
    text: str

    kind = FragmentKind.LITERAL

    @property
    def priority_delta(self) -> int:
        if self.text == HIGH_PRIORITY_MARKER:
            return 1
        if self.text == LOW_PRIORITY_MARKER:
            return -1
        return 0

    @property
    def is_priority_marker(self) -> bool:
        return self.priority_delta != 0


@dataclass(frozen=True)
class Match:
    """Existential check against exported facts, used during refinement."""
    key: str
    value: str = WILDCARD

    kind = FragmentKind.MATCH


@dataclass(frozen=True)
class Exclude:
    """Negative constraint: no exported fact may unify with key and value."""
    key: str
    value: str = WILDCARD

    kind = FragmentKind.EXCLUDE


Fragment = Union[Assign, Query, Read, Literal, Match, Exclude]


# =============================================================================
# STORYLETS
# =============================================================================

@dataclass(frozen=True)
class Storylet:
    """
    Immutable template: an ordered sequence of fragments.

    The position of a fragment is its identity inside the template;
    Activation children are keyed by the position of the Query they answer.
    """
    fragments: Tuple[Fragment, ...]
    source: str = ""

    def __len__(self) -> int:
        return len(self.fragments)

    def __getitem__(self, index: int) -> Fragment:
        return self.fragments[index]

    def __iter__(self) -> Iterator[Fragment]:
        return iter(self.fragments)

    @property
    def priority_markers(self) -> int:
        """High markers minus low markers."""
        return sum(
            f.priority_delta for f in self.fragments
            if isinstance(f, Literal)
        )

    def priority(self, weight: int = PRIORITY_WEIGHT) -> int:
        return weight * self.priority_markers

    def exported_assigns(self) -> Tuple[Assign, ...]:
        return tuple(
            f for f in self.fragments
            if isinstance(f, Assign) and f.exported
        )

    def query_positions(self) -> Tuple[int, ...]:
        return tuple(
            i for i, f in enumerate(self.fragments)
            if isinstance(f, Query)
        )


@dataclass(frozen=True)
class Corpus:
    """
    Ordered, immutable collection of storylets.

    Template index = position. Index 0 is the entry point for a new root.
    """
    storylets: Tuple[Storylet, ...]

    # Deterministic hash of the template contents, used as a cache key
    content_hash: str = field(default="", init=False, repr=False, compare=False)

    def __post_init__(self):
        content = "\n\n".join(repr(s.fragments) for s in self.storylets)
        object.__setattr__(
            self, "content_hash",
            hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]
        )

    def __len__(self) -> int:
        return len(self.storylets)

    def __getitem__(self, index: int) -> Storylet:
        return self.storylets[index]

    def __iter__(self) -> Iterator[Storylet]:
        return iter(self.storylets)
