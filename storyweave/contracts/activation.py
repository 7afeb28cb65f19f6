"""
Activation Tree
===============

One Activation is one bound use of a storylet template.

INVARIANTS:
- `locals` is fixed at creation; new bindings mean a new Activation
- A parent exclusively owns its children (a tree, never a DAG)
- Edits copy only the path from the root to the edited node; every
  untouched subtree is shared by reference between old and new trees
- A tree that has been handed out is never modified, so a failed search
  branch can be dropped without corrupting any ancestor's view

Children are keyed by the position of the Query fragment they answer.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple
import hashlib

from .base import ActivationPathError
from .corpus import Bindings


# Sequence of query positions leading from the root to a node
ActivationPath = Tuple[int, ...]


@dataclass(frozen=True)
class Activation:
    """
    Immutable node of the generation tree.

    `children` is a tuple of (query_index, child) pairs sorted by index.
    """
    template: int
    locals: Bindings = field(default_factory=Bindings.empty)
    children: Tuple[Tuple[int, Activation], ...] = ()

    # Shape hash, computed once from template, locals and child hashes
    shape_hash: str = field(default="", init=False, repr=False, compare=False)

    def __post_init__(self):
        content = (
            f"{self.template}|"
            f"{','.join(f'{k}={v}' for k, v in self.locals.pairs)}|"
            f"{','.join(f'{i}:{c.shape_hash}' for i, c in self.children)}"
        )
        object.__setattr__(
            self, "shape_hash",
            hashlib.sha256(content.encode()).hexdigest()[:24]
        )

    def __hash__(self) -> int:
        return hash(self.shape_hash)

    @staticmethod
    def root(template: int = 0) -> Activation:
        """Fresh entry point: no locals, no children."""
        return Activation(template=template)

    # =========================================================================
    # CHILD ACCESS
    # =========================================================================

    def child_at(self, query_index: int) -> Optional[Activation]:
        for index, child in self.children:
            if index == query_index:
                return child
        return None

    def has_child(self, query_index: int) -> bool:
        return any(index == query_index for index, _ in self.children)

    @property
    def children_map(self) -> Dict[int, Activation]:
        return dict(self.children)

    # =========================================================================
    # PERSISTENT EDITS
    # =========================================================================

    def with_child(self, query_index: int, child: Activation) -> Activation:
        """New node with `child` attached (or replaced) at `query_index`."""
        kept = tuple((i, c) for i, c in self.children if i != query_index)
        merged = tuple(sorted(kept + ((query_index, child),), key=lambda p: p[0]))
        return Activation(template=self.template, locals=self.locals, children=merged)

    def without_child(self, query_index: int) -> Activation:
        """New node with the subtree at `query_index` truncated."""
        if not self.has_child(query_index):
            return self
        kept = tuple((i, c) for i, c in self.children if i != query_index)
        return Activation(template=self.template, locals=self.locals, children=kept)

    def subtree(self, path: ActivationPath) -> Activation:
        node = self
        for depth, query_index in enumerate(path):
            child = node.child_at(query_index)
            if child is None:
                raise ActivationPathError(
                    f"no child at query {query_index} (depth {depth} of path {list(path)})",
                    path=path[:depth + 1],
                )
            node = child
        return node

    def replace_at(self, path: ActivationPath, replacement: Activation) -> Activation:
        """Copy the root-to-node path, swapping the node at `path`."""
        if not path:
            return replacement
        head, rest = path[0], path[1:]
        child = self.child_at(head)
        if child is None:
            raise ActivationPathError(f"no child at query {head}", path=(head,))
        return self.with_child(head, child.replace_at(rest, replacement))

    def truncate(self, path: ActivationPath, query_index: int) -> Activation:
        """Clear the child at `query_index` of the node addressed by `path`."""
        node = self.subtree(path)
        return self.replace_at(path, node.without_child(query_index))

    # =========================================================================
    # TRAVERSAL
    # =========================================================================

    def walk(self, path: ActivationPath = ()) -> Iterator[Tuple[ActivationPath, Activation]]:
        """Pre-order traversal yielding (path, node)."""
        yield path, self
        for index, child in self.children:
            yield from child.walk(path + (index,))

    @property
    def size(self) -> int:
        return 1 + sum(child.size for _, child in self.children)

    @property
    def depth(self) -> int:
        if not self.children:
            return 0
        return 1 + max(child.depth for _, child in self.children)
