"""
Text Rendering
==============

Turns an activation tree into prose.

- Assign, Match and Exclude fragments are hidden
- A query with a child is replaced by the child's rendering
- A query answered elsewhere in the tree is hidden
- An open query is shown as [?key]
- A read shows the fact value, or [$key] when the fact is unknown
- Literals naming a bound variable show the bound atom
- Priority markers are hidden
"""

from __future__ import annotations
from typing import List, Optional

from .contracts.corpus import Corpus, Literal, Query, Read
from .contracts.activation import Activation
from .core.facts import FactTable, aggregate


def _render_tokens(corpus: Corpus, node: Activation, facts: FactTable) -> List[str]:
    tokens: List[str] = []
    for index, fragment in enumerate(corpus[node.template]):
        if isinstance(fragment, Literal):
            if not fragment.is_priority_marker:
                tokens.append(node.locals.resolve(fragment.text))
        elif isinstance(fragment, Query):
            child = node.child_at(index)
            key = node.locals.substitute(fragment.key)
            if child is not None:
                tokens.extend(_render_tokens(corpus, child, facts))
            elif not facts.is_exported(key):
                tokens.append(f"[?{key}]")
        elif isinstance(fragment, Read):
            key = node.locals.substitute(fragment.key)
            value = facts.value_of(key)
            tokens.append(value if value is not None else f"[${key}]")
    return tokens


def render_text(corpus: Corpus, tree: Activation, facts: Optional[FactTable] = None) -> str:
    """Render `tree` as a single line of text."""
    if facts is None:
        facts = aggregate(corpus, tree).facts
    return " ".join(_render_tokens(corpus, tree, facts))


def render_outline(corpus: Corpus, tree: Activation, indent: str = "  ") -> str:
    """One line per activation: template source, bindings, nested by query."""
    lines: List[str] = []
    for path, node in tree.walk():
        bound = " ".join(f"{k}={v}" for k, v in node.locals.pairs)
        label = f"?{path[-1]} " if path else ""
        source = corpus[node.template].source
        lines.append(f"{indent * len(path)}{label}#{node.template} {source}" + (f"  [{bound}]" if bound else ""))
    return "\n".join(lines)
