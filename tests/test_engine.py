"""
Engine Facade Tests
"""

import logging
import time

import pytest

from storyweave.contracts.base import ActivationPathError, ErrorCode, SearchStatus
from storyweave.contracts.activation import Activation
from storyweave.contracts.corpus import Bindings
from storyweave.engine import StoryEngine, EngineConfig

from conftest import chain_corpus


BACKTRACKING = "root ?x ?y\n\n+x:a !y:no\n\n+x:b\n\n+y:no"


@pytest.fixture
def engine():
    return StoryEngine.from_text(BACKTRACKING)


class TestManualPlay:

    def test_candidates_in_corpus_order(self, engine):
        found = engine.candidates(engine.new_root(), (), 1)
        assert [c.template for c in found] == [1, 2]

    def test_candidates_respect_current_facts(self, engine):
        tree = engine.pick(engine.new_root(), (), 2, engine.candidates(engine.new_root(), (), 2)[0])
        # y:no is exported, so +x:a is excluded
        assert [c.template for c in engine.candidates(tree, (), 1)] == [2]

    def test_candidates_sorted_by_priority(self):
        engine = StoryEngine.from_text("root ?x\n\n+x:a\n\n+x:b *high")
        assert [c.template for c in engine.candidates(engine.new_root(), (), 1)] == [2, 1]

    def test_candidates_bind_variables(self):
        engine = StoryEngine.from_text("root ?char_A\n\nHi +char_@c")
        [candidate] = engine.candidates(engine.new_root(), (), 1)
        assert candidate.bindings == Bindings.of({"@c": "A"})

    def test_pick_and_clear(self, engine):
        root = engine.new_root()
        assert engine.open_queries(root) == [1, 2]

        tree = engine.pick(root, (), 1, engine.candidates(root, (), 1)[1])
        assert engine.open_queries(tree) == [2]
        assert engine.facts(tree).facts.value_of("x") == "b"
        assert root.children == ()

        cleared = engine.clear(tree, (), 1)
        assert engine.open_queries(cleared) == [1, 2]

    def test_non_query_rejected(self, engine):
        root = engine.new_root()
        with pytest.raises(ActivationPathError):
            engine.candidates(root, (), 0)
        with pytest.raises(ActivationPathError):
            engine.candidates(root, (), 99)
        with pytest.raises(ActivationPathError):
            engine.candidates(root, (3,), 1)


class TestCompletion:

    def test_complete(self, engine):
        step = engine.complete(seed=5)
        assert step.status is SearchStatus.SATISFIED
        assert engine.facts(step.result).is_consistent
        assert engine.render(step.result) == "root"

    def test_complete_from_partial_tree(self, engine):
        root = engine.new_root()
        tree = engine.pick(root, (), 1, engine.candidates(root, (), 1)[0])
        step = engine.complete(tree, seed=0)
        assert step.status is SearchStatus.EXHAUSTED

    def test_unit_limit_leaves_search_running(self, engine):
        step = engine.complete(seed=0, max_units=3)
        assert step.status is SearchStatus.RUNNING
        assert step.units == 3

    def test_same_seed_same_tree(self):
        engine = StoryEngine.from_text("root ?x\n\n+x:a\n\n+x:b\n\n+x:c")
        assert engine.complete(seed=11).result == engine.complete(seed=11).result

    def test_begin_search_is_lazy(self, engine):
        published = []

        def publish(tree):
            published.append(tree)
            return engine.facts(tree)

        search = engine.begin_search(on_publish=publish, seed=1)
        assert published == []
        search.run()
        assert published


class TestConfiguration:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("STORYWEAVE_SEED", "17")
        monkeypatch.setenv("STORYWEAVE_FRAME_BUDGET_MS", "12.5")
        monkeypatch.setenv("STORYWEAVE_MAX_DEPTH", "6")
        monkeypatch.setenv("STORYWEAVE_CACHE_SIZE", "0")
        monkeypatch.setenv("STORYWEAVE_MAX_UNITS", "500")
        config = EngineConfig.from_env()
        assert config.search.random_seed == 17
        assert config.search.frame_budget_ms == 12.5
        assert config.search.max_depth == 6
        assert config.search.aggregation_cache_size == 0
        assert config.max_units == 500

    def test_from_env_defaults(self, monkeypatch):
        for name in ("SEED", "FRAME_BUDGET_MS", "MAX_DEPTH", "CACHE_SIZE", "MAX_UNITS"):
            monkeypatch.delenv(f"STORYWEAVE_{name}", raising=False)
        config = EngineConfig.from_env()
        assert config.search.random_seed is None
        assert config.search.max_depth is None
        assert config.max_units == 200_000

    def test_empty_corpus_rejected(self):
        with pytest.raises(ValueError):
            StoryEngine.from_text("\n\n")

    def test_cycle_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="storyweave.engine"):
            StoryEngine.from_text("root ?a\n\n+a ?b\n\n+b ?a")
        assert "provider cycle" in caplog.text

    def test_no_warning_with_depth_limit(self, caplog):
        config = EngineConfig()
        config.search.max_depth = 10
        with caplog.at_level(logging.WARNING, logger="storyweave.engine"):
            StoryEngine.from_text("root ?a\n\n+a ?b\n\n+b ?a", config)
        assert "provider cycle" not in caplog.text

    def test_dense_cycles_do_not_stall_construction(self, caplog):
        started = time.monotonic()
        with caplog.at_level(logging.WARNING, logger="storyweave.engine"):
            StoryEngine(chain_corpus(15))
        assert time.monotonic() - started < 5.0
        assert "provider cycle" in caplog.text


class TestTreeShape:

    def test_engine_built_tree_is_clean(self, engine):
        step = engine.complete(seed=2)
        assert engine.tree_errors(step.result) == []

    def test_child_at_literal_position(self, engine):
        tree = engine.new_root().with_child(0, Activation(template=2))
        [error] = engine.tree_errors(tree)
        assert error.code is ErrorCode.NOT_A_QUERY
        assert error.get("path") == "0"

    def test_child_past_template_end(self, engine):
        tree = engine.new_root().with_child(1, Activation(template=2).with_child(4, Activation(template=3)))
        [error] = engine.tree_errors(tree)
        assert error.code is ErrorCode.NOT_A_QUERY
        assert error.get("path") == "1/4"

    def test_unknown_template(self, engine):
        tree = engine.new_root().with_child(2, Activation(template=9))
        assert [e.code for e in engine.tree_errors(tree)] == [ErrorCode.UNKNOWN_TEMPLATE]
