"""Shared test helpers: table configs, raw row insertion and sample trees."""

from typing import Any

from nestedset.config import TreeConfig
from nestedset.models import Node
from nestedset.nodes.service import NodeService
from nestedset.store import NodeStore

SCOPED = TreeConfig(scope=("tree_id",), soft_delete=True)
PLAIN = TreeConfig(table="plain_nodes")

TREE = {"tree_id": "t1"}
OTHER_TREE = {"tree_id": "t2"}


async def insert_rows(
    store: NodeStore,
    rows: list[tuple[int, str, int | None, int, int]],
    scope: dict[str, Any] | None = None,
) -> dict[str, Node]:
    """Insert (id, name, parent_id, lft, rgt) rows verbatim, bypassing the engine."""
    nodes = {}
    for node_id, name, parent_id, lft, rgt in rows:
        node = Node(
            id=node_id,
            name=name,
            parent_id=parent_id,
            lft=lft,
            rgt=rgt,
            scope=dict(scope or {}),
        )
        nodes[name] = await store.insert(node)
    return nodes


async def bounds_by_name(store: NodeStore, scope: dict[str, Any] | None = None) -> dict[str, tuple[int, int]]:
    """Stored (lft, rgt) of every row in the scope, trashed rows included."""
    nodes = await store.nested_query(scope).default_order().get()
    return {node.name: (node.lft, node.rgt) for node in nodes}


# Root [1,10] with A [2,5] > A1 [3,4] and B [6,9] > B1 [7,8]
SAMPLE_ROWS = [
    (1, "root", None, 1, 10),
    (2, "A", 1, 2, 5),
    (3, "A1", 2, 3, 4),
    (4, "B", 1, 6, 9),
    (5, "B1", 4, 7, 8),
]


async def make_sample_tree(store: NodeStore, scope: dict[str, Any] | None = None) -> dict[str, Node]:
    return await insert_rows(store, SAMPLE_ROWS, scope)


async def create_tree(service: NodeService, scope: dict[str, Any] | None = None) -> Node:
    """Build the sample shape through the service instead of raw rows."""
    return await service.create(
        {
            "name": "root",
            "children": [
                {"name": "A", "children": [{"name": "A1"}]},
                {"name": "B", "children": [{"name": "B1"}]},
            ],
        },
        scope=scope,
    )
