"""Repair and rebuild: recompute every bound from parent pointers.

Both operations load the candidate nodes once, group them by parent id into
an ordered adjacency map and walk it depth-first with an explicit stack,
handing out consecutive bounds. Each group is removed from the map as soon as
it is entered, so reference cycles cannot loop. Whatever is left afterwards
(dangling or cyclic parents) is promoted, one group at a time, to the target
parent until the map is empty.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from nestedset.errors import NodeNotFoundError
from nestedset.models import Node, RebuildItem
from nestedset.store import NodeStore
from nestedset.tree.mutation import make_gap

logger = logging.getLogger(__name__)

Dictionary = dict[Any, list[Node]]


def group_by_parent(nodes: Iterable[Node]) -> Dictionary:
    """Adjacency map parent_id -> children, keeping the input order."""
    dictionary: Dictionary = {}
    for node in nodes:
        dictionary.setdefault(node.parent_id, []).append(node)
    return dictionary


def assign_bounds(dictionary: Dictionary, visited: list[Node], parent_id: Any, cut: int) -> int:
    """Give consecutive bounds to the subtree hanging off ``parent_id``.

    Consumes the groups it visits and appends every placed node to
    ``visited``. Returns the next free bound.
    """
    if parent_id not in dictionary:
        return cut

    # (node, its lft, iterator over its children); the bottom entry has no node
    stack: list[tuple[Node | None, int, Any]] = [(None, 0, iter(dictionary.pop(parent_id)))]

    while stack:
        owner, owner_lft, children = stack[-1]
        child = next(children, None)

        if child is not None:
            stack.append((child, cut, iter(dictionary.pop(child.id, []))))
            cut += 1
            continue

        stack.pop()
        if owner is None:
            continue

        above = stack[-1][0]
        owner.lft = owner_lft
        owner.rgt = cut
        owner.parent_id = above.id if above is not None else parent_id
        visited.append(owner)
        cut += 1

    return cut


async def fix_nodes(store: NodeStore, dictionary: Dictionary, root: Node | None = None) -> int:
    """Assign bounds from the adjacency map and write back the rows that changed.

    Returns the number of rows written plus the rows shifted to make room
    when a subtree root grows or shrinks.
    """
    parent_id = root.id if root is not None else None
    cut = root.lft + 1 if root is not None else 1

    visited: list[Node] = []
    cut = assign_bounds(dictionary, visited, parent_id, cut)

    # Nodes with invalid parents end up under the target parent
    while dictionary:
        orphan_parent = next(iter(dictionary))
        group = dictionary.pop(orphan_parent)
        logger.warning(
            "Re-parenting %d node(s) with unreachable parent %r to %r",
            len(group), orphan_parent, parent_id,
        )
        dictionary[parent_id] = group
        cut = assign_bounds(dictionary, visited, parent_id, cut)

    moved = 0
    if root is not None and (grown := cut - root.rgt) != 0:
        gap_cut = root.rgt + 1
        moved = await make_gap(store.nested_query(root.scope), gap_cut, grown)
        for node in visited:
            node.shift_original(gap_cut, grown)
        root.rgt = cut
        visited.append(root)

    written = 0
    for node in visited:
        if node.is_dirty():
            await store.update(node)
            written += 1

    if written or moved:
        logger.info("Tree repair wrote %d node(s), shifted %d row(s)", written, moved)
    return written + moved


async def _scopes(store: NodeStore) -> list[dict[str, Any]]:
    cfg = store.config
    columns = ", ".join(cfg.scope)
    rows = await store.db.fetchall(f"SELECT DISTINCT {columns} FROM {cfg.table}")
    return [{column: row[column] for column in cfg.scope} for row in rows]


async def fix_tree(
    store: NodeStore,
    scope: Mapping[str, Any] | None = None,
    root: Node | None = None,
) -> int:
    """Rebuild the bounds of a scope (or of a subtree) from parent ids.

    With a scoped table and no scope, every scope is repaired in turn.
    """
    if root is None and scope is None and store.config.scope:
        total = 0
        for values in await _scopes(store):
            total += await fix_tree(store, values)
        return total

    if root is not None:
        await store.refresh_bounds(root)
        scope = root.scope

    query = store.nested_query(scope)
    if root is not None:
        query.where_descendant_of(root)
    nodes = await query.default_order().get()

    return await fix_nodes(store, group_by_parent(nodes), root)


async def fix_subtree(store: NodeStore, root: Node) -> int:
    return await fix_tree(store, root=root)


async def rebuild_tree(
    store: NodeStore,
    data: Iterable[RebuildItem | Mapping[str, Any]],
    scope: Mapping[str, Any] | None = None,
    delete: bool = False,
    root: Node | None = None,
) -> int:
    """Reconcile a hierarchical description with the stored nodes.

    Items without an id become new nodes; items with an id must match a
    stored node in the target scope/subtree (NodeNotFoundError otherwise).
    Stored nodes missing from the data are deleted (``delete=True``, soft
    delete when the table supports it) or kept under their stored parent,
    falling back to the target parent when that one is gone.
    """
    cfg = store.config

    if root is not None:
        await store.refresh_bounds(root)
        scope = root.scope
    elif cfg.scope and scope is None:
        raise ValueError(f"rebuild_tree on {cfg.table} needs values for {cfg.scope}")

    scope = dict(scope or {})
    query = store.query(scope, with_trashed=True)
    if root is not None:
        query.where_descendant_of(root)
    existing = {node.id: node for node in await query.default_order().get()}

    dictionary: Dictionary = {}
    parent_id = root.id if root is not None else None
    items = [RebuildItem.model_validate(item) for item in data]
    await _build_rebuild_dictionary(store, dictionary, items, existing, parent_id, scope)

    if existing:
        if delete and not cfg.soft_delete:
            await store.delete_ids(existing.keys())
        else:
            now = datetime.now(UTC).isoformat()
            for node in existing.values():
                dictionary.setdefault(node.parent_id, []).append(node)

                if delete and cfg.soft_delete and node.deleted_at is None:
                    node.deleted_at = now

    return await fix_nodes(store, dictionary, root)


async def rebuild_subtree(
    store: NodeStore,
    root: Node,
    data: Iterable[RebuildItem | Mapping[str, Any]],
    delete: bool = False,
) -> int:
    return await rebuild_tree(store, data, delete=delete, root=root)


async def _build_rebuild_dictionary(
    store: NodeStore,
    dictionary: Dictionary,
    items: list[RebuildItem],
    existing: dict[Any, Node],
    parent_id: Any,
    scope: dict[str, Any],
) -> None:
    for item in items:
        if item.id is None:
            node = Node(
                name=item.name,
                attributes=item.attributes or {},
                scope=dict(scope),
                parent_id=parent_id,
                lft=0,
                rgt=0,
            )
            # Bounds are placeholders until fix_nodes runs
            await store.insert(node)
        else:
            if item.id not in existing:
                raise NodeNotFoundError(item.id)

            node = existing.pop(item.id)
            node.parent_id = parent_id
            if item.name is not None:
                node.name = item.name
            if item.attributes is not None:
                node.attributes = item.attributes
            await store.update(node)

        dictionary.setdefault(parent_id, []).append(node)

        if item.children:
            await _build_rebuild_dictionary(
                store, dictionary, item.children, existing, node.id, scope
            )
