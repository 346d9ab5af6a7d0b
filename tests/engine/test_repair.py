"""Tests for fix_tree and rebuild_tree.

Repairs recompute bounds from parent ids; rebuilds reconcile a nested
description with the stored rows. Both must leave count_errors at zero.
"""

import pytest

from nestedset.errors import NodeNotFoundError
from nestedset.models import Node
from nestedset.tree.integrity import count_errors, get_total_errors
from nestedset.tree.repair import (
    assign_bounds,
    fix_subtree,
    fix_tree,
    group_by_parent,
    rebuild_subtree,
    rebuild_tree,
)
from tests.fixtures import OTHER_TREE, TREE, bounds_by_name, insert_rows, make_sample_tree

# ---------------------------------------------------------------------------
# Bound assignment
# ---------------------------------------------------------------------------


class TestAssignBounds:
    def test_depth_first_in_input_order(self):
        nodes = [
            Node(id=1, name="root"),
            Node(id=2, name="A", parent_id=1),
            Node(id=3, name="B", parent_id=1),
            Node(id=4, name="A1", parent_id=2),
        ]
        dictionary = group_by_parent(nodes)
        visited = []

        assert assign_bounds(dictionary, visited, None, 1) == 9
        assert {n.name: n.bounds for n in nodes} == {
            "root": (1, 8), "A": (2, 5), "A1": (3, 4), "B": (6, 7),
        }
        assert dictionary == {}

    def test_cycle_terminates(self):
        a = Node(id=1, name="a", parent_id=2)
        b = Node(id=2, name="b", parent_id=1)
        dictionary = group_by_parent([a, b])
        visited = []

        # Enter the cycle through a's group
        dictionary[None] = dictionary.pop(2)
        assign_bounds(dictionary, visited, None, 1)

        assert a.bounds == (1, 4)
        assert b.bounds == (2, 3)
        assert a.parent_id is None


# ---------------------------------------------------------------------------
# fix_tree
# ---------------------------------------------------------------------------


class TestFixTree:
    async def test_valid_tree_is_untouched(self, plain_store):
        await make_sample_tree(plain_store)
        assert await fix_tree(plain_store) == 0

    async def test_idempotent(self, plain_store):
        await insert_rows(plain_store, [
            (1, "root", None, 1, 2),
            (2, "A", 1, 7, 30),
            (3, "A1", 2, 0, 0),
            (4, "B", 1, 5, 5),
        ])

        assert await fix_tree(plain_store) > 0
        assert await get_total_errors(plain_store) == 0
        assert await fix_tree(plain_store) == 0

    async def test_recomputes_bounds_from_parent_ids(self, plain_store):
        await insert_rows(plain_store, [
            (1, "root", None, 1, 2),
            (2, "A", 1, 3, 4),
            (3, "A1", 2, 5, 6),
        ])

        await fix_tree(plain_store)

        assert await bounds_by_name(plain_store) == {"root": (1, 6), "A": (2, 5), "A1": (3, 4)}

    async def test_orphans_become_roots(self, plain_store):
        await insert_rows(plain_store, [
            (1, "root", None, 1, 2),
            (2, "lost", 99, 3, 4),
        ])

        await fix_tree(plain_store)

        node = await plain_store.find(2)
        assert node.parent_id is None
        assert await get_total_errors(plain_store) == 0

    async def test_cycle_is_broken(self, plain_store):
        await insert_rows(plain_store, [
            (1, "a", 2, 1, 2),
            (2, "b", 1, 3, 4),
        ])

        await fix_tree(plain_store)

        assert await get_total_errors(plain_store) == 0
        roots = await plain_store.query().where_is_root().get()
        assert len(roots) == 1

    async def test_every_scope_repaired(self, store):
        await insert_rows(store, [(1, "r1", None, 1, 2), (2, "c1", 1, 3, 4)], TREE)
        await insert_rows(store, [(3, "r2", None, 1, 2), (4, "c2", 3, 3, 4)], OTHER_TREE)

        await fix_tree(store)

        assert await bounds_by_name(store, TREE) == {"r1": (1, 4), "c1": (2, 3)}
        assert await bounds_by_name(store, OTHER_TREE) == {"r2": (1, 4), "c2": (2, 3)}

    async def test_single_scope_repaired(self, store):
        await insert_rows(store, [(1, "r1", None, 1, 2), (2, "c1", 1, 3, 4)], TREE)
        await insert_rows(store, [(3, "r2", None, 1, 2), (4, "c2", 3, 3, 4)], OTHER_TREE)

        await fix_tree(store, TREE)

        assert await get_total_errors(store, TREE) == 0
        assert await get_total_errors(store, OTHER_TREE) > 0


class TestFixSubtree:
    async def test_subtree_shrinks_and_shifts_followers(self, plain_store):
        """A's interval is wider than its single child needs."""
        nodes = await insert_rows(plain_store, [
            (1, "root", None, 1, 12),
            (2, "A", 1, 2, 7),
            (3, "X", 2, 3, 4),
            (4, "B", 1, 8, 11),
            (5, "B1", 4, 9, 10),
        ])

        changed = await fix_subtree(plain_store, nodes["A"])

        assert changed > 0
        assert await bounds_by_name(plain_store) == {
            "root": (1, 10),
            "A": (2, 5),
            "X": (3, 4),
            "B": (6, 9),
            "B1": (7, 8),
        }
        assert await get_total_errors(plain_store) == 0

    async def test_subtree_orphans_attach_to_subtree_root(self, plain_store):
        nodes = await insert_rows(plain_store, [
            (1, "root", None, 1, 8),
            (2, "A", 1, 2, 7),
            (3, "A1", 2, 3, 4),
            (4, "lost", 99, 5, 6),
        ])

        await fix_subtree(plain_store, nodes["A"])

        assert (await plain_store.find(4)).parent_id == 2
        assert await get_total_errors(plain_store) == 0


# ---------------------------------------------------------------------------
# rebuild_tree
# ---------------------------------------------------------------------------


class TestRebuildTree:
    async def test_builds_from_empty_table(self, plain_store):
        changed = await rebuild_tree(plain_store, [
            {"name": "root", "children": [{"name": "A"}, {"name": "B", "children": [{"name": "B1"}]}]},
        ])

        assert changed == 4
        assert await bounds_by_name(plain_store) == {
            "root": (1, 8), "A": (2, 3), "B": (4, 7), "B1": (5, 6),
        }
        assert await get_total_errors(plain_store) == 0

    async def test_reorders_existing_nodes(self, plain_store):
        await make_sample_tree(plain_store)

        await rebuild_tree(plain_store, [
            {"id": 1, "children": [
                {"id": 4, "name": "B!", "children": [{"id": 5}]},
                {"id": 2, "children": [{"id": 3}]},
            ]},
        ])

        assert await bounds_by_name(plain_store) == {
            "root": (1, 10), "B!": (2, 5), "B1": (3, 4), "A": (6, 9), "A1": (7, 8),
        }

    async def test_missing_nodes_kept_without_delete(self, plain_store):
        await make_sample_tree(plain_store)

        await rebuild_tree(plain_store, [{"id": 1, "children": [{"id": 2}]}])

        # B was not listed; it stays under its stored parent
        assert await plain_store.query().count() == 5
        assert await get_total_errors(plain_store) == 0
        assert (await plain_store.find(4)).parent_id == 1

    async def test_missing_nodes_deleted(self, plain_store):
        await make_sample_tree(plain_store)

        await rebuild_tree(plain_store, [{"id": 1, "children": [{"id": 2}]}], delete=True)

        assert await bounds_by_name(plain_store) == {"root": (1, 4), "A": (2, 3)}

    async def test_missing_nodes_soft_deleted(self, store):
        await make_sample_tree(store, TREE)

        await rebuild_tree(store, [{"id": 1, "children": [{"id": 2}]}], TREE, delete=True)

        assert await store.query(TREE).count() == 2
        assert await store.query(TREE, with_trashed=True).count() == 5
        assert await get_total_errors(store, TREE) == 0

    async def test_unknown_id_raises(self, plain_store):
        with pytest.raises(NodeNotFoundError):
            await rebuild_tree(plain_store, [{"id": 42}])

    async def test_scoped_table_needs_scope(self, store):
        with pytest.raises(ValueError):
            await rebuild_tree(store, [{"name": "root"}])

    async def test_new_nodes_get_the_scope(self, store):
        await rebuild_tree(store, [{"name": "root", "children": [{"name": "A"}]}], OTHER_TREE)

        nodes = await store.query(OTHER_TREE).default_order().get()
        assert [n.scope for n in nodes] == [OTHER_TREE, OTHER_TREE]
        assert (await count_errors(store, OTHER_TREE)).total == 0

    async def test_rebuild_subtree(self, plain_store):
        nodes = await make_sample_tree(plain_store)

        await rebuild_subtree(plain_store, nodes["A"], [{"id": 3}, {"name": "A2"}])

        bounds = await bounds_by_name(plain_store)
        assert bounds["A"] == (2, 7)
        assert bounds["A1"] == (3, 4)
        assert bounds["A2"] == (5, 6)
        assert bounds["B"] == (8, 11)
        assert bounds["root"] == (1, 12)
        assert await get_total_errors(plain_store) == 0
