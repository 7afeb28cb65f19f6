"""
Activation Tree Tests
=====================

INVARIANTS TESTED:
1. Edits never modify the receiver
2. Untouched subtrees are shared, not copied
3. Shape hash is deterministic and tracks structure
"""

import pytest

from storyweave.contracts.base import ActivationPathError
from storyweave.contracts.corpus import Bindings
from storyweave.contracts.activation import Activation


def leaf(template, **bound):
    return Activation(template=template, locals=Bindings.of({f"@{k}": v for k, v in bound.items()}))


class TestPersistentEdits:

    def test_with_child_leaves_original_untouched(self):
        root = Activation.root()
        grown = root.with_child(1, leaf(1))
        assert root.children == ()
        assert grown.child_at(1) == leaf(1)

    def test_with_child_keeps_children_sorted(self):
        tree = Activation.root().with_child(4, leaf(2)).with_child(1, leaf(1))
        assert [i for i, _ in tree.children] == [1, 4]

    def test_with_child_replaces(self):
        tree = Activation.root().with_child(1, leaf(1)).with_child(1, leaf(2))
        assert tree.children_map == {1: leaf(2)}

    def test_untouched_subtrees_are_shared(self):
        left = leaf(1).with_child(0, leaf(3))
        tree = Activation.root().with_child(1, left).with_child(2, leaf(2))
        edited = tree.replace_at((2,), leaf(4))
        assert edited.child_at(1) is tree.child_at(1)
        assert edited.child_at(2) == leaf(4)
        assert tree.child_at(2) == leaf(2)

    def test_replace_at_nested_path(self):
        tree = Activation.root().with_child(1, leaf(1).with_child(2, leaf(2)))
        edited = tree.replace_at((1, 2), leaf(5, x="a"))
        assert edited.subtree((1, 2)).locals.get("@x") == "a"
        assert tree.subtree((1, 2)).template == 2

    def test_truncate(self):
        tree = Activation.root().with_child(1, leaf(1).with_child(2, leaf(2)))
        cut = tree.truncate((1,), 2)
        assert not cut.subtree((1,)).has_child(2)
        assert tree.subtree((1,)).has_child(2)

    def test_without_missing_child_is_identity(self):
        root = Activation.root()
        assert root.without_child(3) is root

    def test_missing_path_raises(self):
        with pytest.raises(ActivationPathError):
            Activation.root().subtree((1,))
        with pytest.raises(ActivationPathError):
            Activation.root().replace_at((1, 2), leaf(1))


class TestShape:

    def test_equal_trees_hash_equal(self):
        a = Activation.root().with_child(1, leaf(1, c="A"))
        b = Activation.root().with_child(1, leaf(1, c="A"))
        assert a == b
        assert a.shape_hash == b.shape_hash
        assert len({a, b}) == 1

    def test_locals_change_hash(self):
        assert leaf(1, c="A").shape_hash != leaf(1, c="B").shape_hash

    def test_position_changes_hash(self):
        a = Activation.root().with_child(1, leaf(1))
        b = Activation.root().with_child(2, leaf(1))
        assert a.shape_hash != b.shape_hash

    def test_walk_size_depth(self):
        tree = Activation.root().with_child(1, leaf(1).with_child(0, leaf(2))).with_child(3, leaf(3))
        assert [path for path, _ in tree.walk()] == [(), (1,), (1, 0), (3,)]
        assert tree.size == 4
        assert tree.depth == 2


def test_path_error_reports_failing_prefix():
    tree = Activation.root().with_child(1, leaf(1))
    with pytest.raises(ActivationPathError) as info:
        tree.subtree((1, 4, 2))
    assert info.value.path == (1, 4)
    assert info.value.error.get("path") == "1/4"
