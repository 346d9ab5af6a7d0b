"""Unit tests for the Node model: interval arithmetic, intents and dirty tracking.

No database involved; nodes are marked persisted by hand where a guard needs
stored bounds.
"""

import pytest

from nestedset.errors import InvalidMoveError, NodeNotPersistedError, ScopeMismatchError
from nestedset.models import (
    AppendOrPrependIntent,
    BeforeOrAfterIntent,
    ErrorCounts,
    Node,
    RawBoundsIntent,
    RootIntent,
)


def stored(node_id, lft, rgt, parent_id=None, **kwargs) -> Node:
    node = Node(id=node_id, lft=lft, rgt=rgt, parent_id=parent_id, **kwargs)
    node.mark_persisted()
    return node


# ---------------------------------------------------------------------------
# Interval arithmetic
# ---------------------------------------------------------------------------


class TestIntervals:
    def test_leaf(self):
        assert stored(1, 4, 5).is_leaf()
        assert not stored(1, 2, 5).is_leaf()

    def test_height_and_descendant_count(self):
        node = stored(1, 1, 10)
        assert node.height == 10
        assert node.descendant_count == 4

    def test_unsaved_node_counts_as_leaf(self):
        node = Node(name="new")
        assert node.height == 2
        assert node.descendant_count == 0

    def test_descendant_is_strict(self):
        root = stored(1, 1, 10)
        child = stored(2, 2, 5, parent_id=1)
        assert child.is_descendant_of(root)
        assert not root.is_descendant_of(root)
        assert root.is_self_or_descendant_of(root)
        assert root.is_ancestor_of(child)
        assert root.is_self_or_ancestor_of(root)

    def test_descendant_requires_same_scope(self):
        root = stored(1, 1, 10, scope={"tree_id": "a"})
        child = stored(2, 2, 5, parent_id=1, scope={"tree_id": "b"})
        assert not child.is_descendant_of(root)

    def test_child_and_sibling(self):
        a = stored(2, 2, 5, parent_id=1)
        b = stored(3, 6, 9, parent_id=1)
        assert a.is_sibling_of(b)
        assert not a.is_child_of(b)
        assert stored(4, 7, 8, parent_id=3).is_child_of(b)


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------


class TestIntents:
    def test_new_node_append(self):
        parent = stored(1, 1, 2)
        node = Node(name="child").append_to(parent)
        assert isinstance(node.pending, AppendOrPrependIntent)
        assert node.pending.prepend is False
        assert node.parent_id == 1
        assert node.parent is parent

    def test_prepend(self):
        node = Node().prepend_to(stored(1, 1, 2))
        assert node.pending.prepend is True

    def test_make_root_clears_parent(self):
        node = stored(2, 2, 3, parent_id=1).make_root()
        assert isinstance(node.pending, RootIntent)
        assert node.parent_id is None
        assert node.is_dirty("lft", "rgt")

    def test_before_adopts_target_parent(self):
        target = stored(3, 3, 4, parent_id=2)
        node = stored(5, 7, 8, parent_id=4).before(target)
        assert isinstance(node.pending, BeforeOrAfterIntent)
        assert node.pending.after is False
        assert node.parent_id == 2

    def test_after(self):
        node = stored(5, 7, 8, parent_id=1).after(stored(2, 2, 5, parent_id=1))
        assert node.pending.after is True
        assert node.parent_id == 1

    def test_last_intent_wins(self):
        parent = stored(1, 1, 4)
        node = Node().append_to(parent).make_root()
        assert isinstance(node.pending, RootIntent)
        assert node.take_pending() is not None
        assert node.pending is None

    def test_raw_bounds(self):
        node = Node().raw_bounds(3, 4, 1)
        assert node.bounds == (3, 4)
        assert node.pending == RawBoundsIntent(lft=3, rgt=4, parent_id=1)

    def test_replicate_drops_tree_columns(self):
        node = stored(2, 2, 3, parent_id=1, name="x", attributes={"k": 1})
        copy = node.replicate()
        assert copy.id is None
        assert copy.lft is None
        assert copy.parent_id is None
        assert copy.attributes == {"k": 1}
        assert not copy.exists


class TestIntentGuards:
    def test_anchor_must_be_stored(self):
        with pytest.raises(NodeNotPersistedError):
            Node().append_to(Node(name="unsaved"))

    def test_cannot_append_to_itself(self):
        node = stored(1, 1, 4)
        with pytest.raises(InvalidMoveError):
            node.append_to(node)

    def test_cannot_append_to_descendant(self):
        node = stored(1, 1, 4)
        with pytest.raises(InvalidMoveError):
            node.append_to(stored(2, 2, 3, parent_id=1))

    def test_cannot_place_before_descendant(self):
        node = stored(1, 1, 4)
        with pytest.raises(InvalidMoveError):
            node.before(stored(2, 2, 3, parent_id=1))

    def test_scopes_must_match(self):
        node = stored(1, 1, 2, scope={"tree_id": "a"})
        with pytest.raises(ScopeMismatchError):
            node.append_to(stored(2, 1, 2, scope={"tree_id": "b"}))


# ---------------------------------------------------------------------------
# Dirty tracking
# ---------------------------------------------------------------------------


class TestDirtyTracking:
    def test_fresh_persisted_node_is_clean(self):
        assert not stored(1, 1, 2).is_dirty()

    def test_changes_are_dirty(self):
        node = stored(1, 1, 2, name="a")
        node.name = "b"
        assert node.get_dirty() == {"name": "b"}

    def test_attribute_mutation_is_dirty(self):
        node = stored(1, 1, 2, attributes={"k": 1})
        node.attributes["k"] = 2
        assert node.is_dirty("attributes")

    def test_set_stored_bounds_stays_clean(self):
        node = stored(1, 1, 2)
        node.set_stored_bounds(5, 6)
        assert node.bounds == (5, 6)
        assert not node.is_dirty()

    def test_shift_original(self):
        node = stored(1, 4, 9)
        node.shift_original(cut=5, height=2)
        assert node.original["lft"] == 4
        assert node.original["rgt"] == 11


class TestErrorCounts:
    def test_total(self):
        assert ErrorCounts(oddness=1, duplicates=2, wrong_parent=3, missing_parent=4).total == 10
        assert ErrorCounts().total == 0
