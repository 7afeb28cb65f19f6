"""
Candidate Selection Tests
"""

import random

import pytest

from storyweave.contracts.base import SearchInvariantError
from storyweave.contracts.corpus import Bindings
from storyweave.contracts.activation import Activation
from storyweave.core.facts import FactTable, FactEntry
from storyweave.core.candidates import (
    Candidate, generate_candidates, refine_candidates, order_candidates,
    open_queries, query_key,
)

from conftest import corpus_of


def table(**facts):
    """Fact table from key=(value, exported) keywords."""
    return FactTable(entries=tuple(
        (key, FactEntry(value=value, exported=exported))
        for key, (value, exported) in facts.items()
    ))


class TestGeneration:

    def test_only_unifying_exports(self):
        corpus = corpus_of("root ?char_A", "+char_@c", "+char_B", "+other_x", "=char_A")
        found = generate_candidates(corpus, "char_A")
        assert found == [Candidate(template=1, bindings=Bindings.of({"@c": "A"}))]

    def test_one_candidate_per_matching_export(self):
        corpus = corpus_of("root ?x", "+x:a +@k:b")
        found = generate_candidates(corpus, "x")
        assert [c.bindings.as_dict() for c in found] == [{}, {"@k": "x"}]

    def test_arity_must_match(self):
        corpus = corpus_of("root ?x", "+x_y", "+@v")
        assert [c.template for c in generate_candidates(corpus, "x")] == [2]


class TestRefinement:

    def test_match_expands_per_fact(self):
        corpus = corpus_of("root ?greet", "+greet &person_@p Hello @p")
        facts = table(person_ann=("yes", True), person_bob=("yes", True), person_cy=("yes", False))
        refined = refine_candidates(corpus, [Candidate(1, Bindings.empty())], facts)
        assert [c.bindings.get("@p") for c in refined] == ["ann", "bob"]

    def test_match_cross_product(self):
        corpus = corpus_of("root ?pair", "+pair &a_@x &b_@y")
        facts = table(a_1=("yes", True), a_2=("yes", True), b_3=("yes", True), b_4=("yes", True))
        refined = refine_candidates(corpus, [Candidate(1, Bindings.empty())], facts)
        pairs = sorted((c.bindings.get("@x"), c.bindings.get("@y")) for c in refined)
        assert pairs == [("1", "3"), ("1", "4"), ("2", "3"), ("2", "4")]

    def test_match_respects_candidate_bindings(self):
        corpus = corpus_of("root ?visit_ann", "+visit_@p &home_@p:@place")
        facts = table(home_ann=("mill", True), home_bob=("farm", True))
        start = Candidate(1, Bindings.of({"@p": "ann"}))
        refined = refine_candidates(corpus, [start], facts)
        assert [c.bindings.get("@place") for c in refined] == ["mill"]

    def test_match_without_facts_drops_candidate(self):
        corpus = corpus_of("root ?greet", "+greet &person_@p")
        assert refine_candidates(corpus, [Candidate(1, Bindings.empty())], table()) == []

    @pytest.mark.parametrize("facts, kept", [
        ({}, True),
        ({"angry": ("yes", True)}, False),
        ({"angry": ("no", True)}, True),
        ({"angry": ("yes", False)}, True),
    ])
    def test_wildcard_exclude(self, facts, kept):
        corpus = corpus_of("root ?calm", "+calm !angry")
        refined = refine_candidates(corpus, [Candidate(1, Bindings.empty())], table(**facts))
        assert bool(refined) is kept

    @pytest.mark.parametrize("value, kept", [("no", False), ("yes", True)])
    def test_literal_no_exclude(self, value, kept):
        corpus = corpus_of("root ?x", "+x:a !y:no")
        refined = refine_candidates(corpus, [Candidate(1, Bindings.empty())], table(y=(value, True)))
        assert bool(refined) is kept


class TestOrdering:

    def test_priority_descending(self):
        corpus = corpus_of("root ?x", "+x *high", "+x", "+x *low", "+x *high *high")
        ordered = order_candidates(corpus, generate_candidates(corpus, "x"), random.Random(0))
        assert [c.template for c in ordered] == [4, 1, 2, 3]

    def test_equal_priority_shuffled(self):
        corpus = corpus_of("root ?x", "+x:a", "+x:b")
        candidates = generate_candidates(corpus, "x")
        firsts = {
            order_candidates(corpus, candidates, random.Random(seed))[0].template
            for seed in range(50)
        }
        assert firsts == {1, 2}

    def test_seed_reproducible(self):
        corpus = corpus_of("root ?x", "+x:a", "+x:b", "+x:c", "+x:d")
        candidates = generate_candidates(corpus, "x")
        assert (
            order_candidates(corpus, candidates, random.Random(9))
            == order_candidates(corpus, candidates, random.Random(9))
        )

    def test_input_not_reordered(self):
        corpus = corpus_of("root ?x", "+x:a", "+x:b", "+x:c")
        candidates = generate_candidates(corpus, "x")
        order_candidates(corpus, candidates, random.Random(1))
        assert [c.template for c in candidates] == [1, 2, 3]


class TestOpenQueries:

    def test_children_and_exports_close_queries(self):
        corpus = corpus_of("root ?a ?b ?c", "+a")
        tree = Activation.root().with_child(1, Activation(template=1))
        facts = table(a=("yes", True), b=("yes", True), c=("yes", False))
        assert open_queries(corpus, tree, facts) == (3,)

    def test_query_key_substitutes_locals(self):
        corpus = corpus_of("+greet_@p ?name_@p")
        node = Activation(template=0, locals=Bindings.of({"@p": "ann"}))
        assert query_key(corpus, node, 1) == "name_ann"

    def test_query_key_on_non_query_is_fatal(self):
        corpus = corpus_of("root ?x")
        with pytest.raises(SearchInvariantError):
            query_key(corpus, Activation.root(), 0)
