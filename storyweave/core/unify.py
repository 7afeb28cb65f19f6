"""
Pattern Unifier
===============

Unifies a concrete compound key with a pattern key relative to a
partial variable binding.

RULES (atom by atom, after splitting on '_'):
1. Pattern "*" matches any concrete key except the negative atom "no"
2. Arity must match exactly
3. A bound variable must equal the concrete atom
4. An unbound variable is bound to the concrete atom
5. A literal must equal the concrete atom

INVARIANT: the caller's Bindings are never modified. The same partial
binding set is reused across sibling candidate branches.
"""

from __future__ import annotations
from typing import Dict, Optional

from ..contracts.corpus import (
    Bindings, WILDCARD, NEGATIVE, is_variable, split_key,
)


def unify(concrete: str, pattern: str, bindings: Optional[Bindings] = None) -> Optional[Bindings]:
    """
    Unify `concrete` against `pattern`.

    Returns the (possibly extended) bindings, or None on failure.
    """
    bindings = bindings if bindings is not None else Bindings.empty()

    if pattern == WILDCARD:
        if concrete == NEGATIVE:
            return None
        return bindings

    concrete_atoms = split_key(concrete)
    pattern_atoms = split_key(pattern)
    if len(concrete_atoms) != len(pattern_atoms):
        return None

    added: Dict[str, str] = {}
    for fixed, atom in zip(concrete_atoms, pattern_atoms):
        bound = bindings.get(atom)
        if bound is None:
            bound = added.get(atom)
        if bound is not None:
            if bound != fixed:
                return None
            continue
        if is_variable(atom):
            added[atom] = fixed
            continue
        if atom != fixed:
            return None

    if not added:
        return bindings
    merged = bindings.as_dict()
    merged.update(added)
    return Bindings.of(merged)


def unify_fact(
    key: str,
    value: str,
    key_pattern: str,
    value_pattern: str,
    bindings: Optional[Bindings] = None
) -> Optional[Bindings]:
    """
    Two-step unification used by Match and Exclude: the fact's key
    first, then its value under the bindings the key produced.
    """
    after_key = unify(key, key_pattern, bindings)
    if after_key is None:
        return None
    return unify(value, value_pattern, after_key)
