"""
Pattern Unifier Tests
=====================

INVARIANTS TESTED:
1. Variable-free patterns unify iff the keys are equal
2. The wildcard matches everything except "no"
3. A variable binds once per unification
4. The caller's bindings are never modified
"""

import pytest
from hypothesis import given, strategies as st

from storyweave.contracts.corpus import Bindings
from storyweave.core.unify import unify, unify_fact


# =============================================================================
# STRATEGIES (Generators)
# =============================================================================

literal_atoms = st.text(alphabet="abcnoxyz", min_size=1, max_size=3)


@st.composite
def key_pairs(draw):
    """Two variable-free keys of equal arity."""
    size = draw(st.integers(min_value=1, max_value=4))
    left = draw(st.lists(literal_atoms, min_size=size, max_size=size))
    right = draw(st.lists(literal_atoms, min_size=size, max_size=size))
    return "_".join(left), "_".join(right)


# =============================================================================
# PROPERTY TESTS
# =============================================================================

@given(key_pairs())
def test_literal_keys_unify_iff_equal(pair):
    concrete, pattern = pair
    result = unify(concrete, pattern, Bindings.empty())
    assert (result is not None) == (concrete == pattern)


@given(st.lists(literal_atoms, min_size=1, max_size=4))
def test_distinct_variables_always_bind(atoms):
    pattern = "_".join(f"@v{i}" for i in range(len(atoms)))
    result = unify("_".join(atoms), pattern)
    assert result is not None
    assert [result.get(f"@v{i}") for i in range(len(atoms))] == atoms


@given(st.lists(literal_atoms, min_size=1, max_size=4).filter(lambda a: a != ["no"]))
def test_wildcard_returns_bindings_unchanged(atoms):
    bindings = Bindings.of({"@x": "q"})
    assert unify("_".join(atoms), "*", bindings) is bindings


# =============================================================================
# EXAMPLES
# =============================================================================

class TestUnify:

    def test_wildcard_rejects_negative_atom(self):
        assert unify("no", "*", Bindings.empty()) is None

    def test_wildcard_accepts_compound_key(self):
        assert unify("x_no", "*") == Bindings.empty()

    def test_repeated_variable_consistent(self):
        result = unify("a_a", "@x_@x", Bindings.empty())
        assert result is not None
        assert result.as_dict() == {"@x": "a"}

    def test_repeated_variable_inconsistent(self):
        assert unify("a_b", "@x_@x", Bindings.empty()) is None

    def test_arity_mismatch(self):
        assert unify("a_b", "a", Bindings.empty()) is None
        assert unify("a", "@x_@y", Bindings.empty()) is None

    def test_bound_variable_must_match(self):
        bound = Bindings.of({"@x": "b"})
        assert unify("a", "@x", bound) is None
        assert unify("b", "@x", bound) == bound

    def test_mixed_literal_and_variable(self):
        result = unify("char_A", "char_@c")
        assert result.as_dict() == {"@c": "A"}
        assert unify("name_A", "char_@c") is None

    def test_input_bindings_not_mutated(self):
        original = Bindings.of({"@y": "c"})
        extended = unify("a", "@x", original)
        assert original.as_dict() == {"@y": "c"}
        assert extended.as_dict() == {"@x": "a", "@y": "c"}

    def test_same_partial_reused_across_branches(self):
        partial = Bindings.of({"@who": "ann"})
        left = unify("likes_ann_tea", "likes_@who_@what", partial)
        right = unify("likes_ann_cake", "likes_@who_@what", partial)
        assert left.get("@what") == "tea"
        assert right.get("@what") == "cake"
        assert "@what" not in partial


class TestUnifyFact:

    def test_key_then_value(self):
        result = unify_fact("mood_ann", "happy", "mood_@p", "@m")
        assert result.as_dict() == {"@p": "ann", "@m": "happy"}

    def test_value_uses_key_bindings(self):
        assert unify_fact("likes_ann", "ann", "likes_@p", "@p") is not None
        assert unify_fact("likes_ann", "bob", "likes_@p", "@p") is None

    def test_wildcard_value_rejects_no(self):
        assert unify_fact("angry", "no", "angry", "*") is None
        assert unify_fact("angry", "yes", "angry", "*") is not None

    def test_key_failure_short_circuits(self):
        assert unify_fact("a", "x", "b", "*") is None
