"""Node service: the lifecycle around the nested-set engine.

Decides when the engine's hooks run: pending intents are resolved right
before a node is written, bounds are captured before a row is removed and the
gap is closed afterwards, descendants come back when a node is restored.
Every structural operation runs inside one database transaction; callers
keep a single writer per scope.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from nestedset.config import TreeConfig
from nestedset.db.connection import Database
from nestedset.errors import NodeNotFoundError, SoftDeleteNotEnabledError
from nestedset.models import ErrorCounts, Node, RebuildItem
from nestedset.store import NodeStore
from nestedset.tree import integrity, repair
from nestedset.tree.collection import to_tree
from nestedset.tree.deletion import (
    after_delete,
    before_delete,
    is_hard_delete,
    keep_deleted_at,
    restore_descendants,
)
from nestedset.tree.mutation import MutationContext, Mutator

logger = logging.getLogger(__name__)


class NodeService:
    """Saves, moves, deletes and queries nodes of one nested-set table."""

    def __init__(
        self,
        db: Database,
        config: TreeConfig | None = None,
        context: MutationContext | None = None,
    ) -> None:
        self._db = db
        self._config = config or TreeConfig()
        self._store = NodeStore(db, self._config)
        self.context = context or MutationContext()
        self._mutator = Mutator(self._store, self.context)

    @property
    def config(self) -> TreeConfig:
        return self._config

    @property
    def store(self) -> NodeStore:
        return self._store

    # -- lookup --

    async def find(self, node_id: Any, *, with_trashed: bool = False) -> Node | None:
        return await self._store.find(node_id, with_trashed=with_trashed)

    async def get(self, node_id: Any, *, with_trashed: bool = False) -> Node:
        node = await self.find(node_id, with_trashed=with_trashed)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    async def refresh(self, node: Node) -> Node:
        """Reload every stored column of the node in place."""
        fresh = await self.get(node.id, with_trashed=True)
        for name in ("name", "attributes", "parent_id", "lft", "rgt", "scope", "deleted_at"):
            setattr(node, name, getattr(fresh, name))
        node.mark_persisted()
        return node

    # -- lifecycle --

    async def save(self, node: Node) -> bool:
        """Resolve the node's pending intent, then insert or update its row."""
        async with self._db.transaction():
            await self._mutator.resolve_pending(node)

            if node.exists:
                await self._store.update(node)
            else:
                await self._store.insert(node)

        return True

    async def delete(self, node: Node, force: bool = False) -> int:
        """Delete the node and its descendants.

        Soft-deleting tables only stamp ``deleted_at`` unless ``force``.
        Returns the number of descendants affected.
        """
        async with self._db.transaction():
            await before_delete(self._mutator, node)

            if is_hard_delete(self._store, force):
                await self._store.delete_ids([node.id])
            else:
                node.deleted_at = datetime.now(UTC).isoformat()
                await self._store.update(node, ["deleted_at"])

            return await after_delete(self._mutator, self._store, node, force)

    async def restore(self, node: Node) -> int:
        """Undo a soft delete, bringing back descendants deleted with the node."""
        if not self._config.soft_delete:
            raise SoftDeleteNotEnabledError(self._config.table)
        if node.deleted_at is None:
            return 0

        async with self._db.transaction():
            keep_deleted_at(self.context, node)

            node.deleted_at = None
            await self._store.update(node, ["deleted_at"])

            return await restore_descendants(
                self._store, node, self.context.restore_deleted_at(node)
            )

    # -- structural shortcuts --

    async def create(
        self,
        data: Mapping[str, Any] | RebuildItem,
        parent: Node | None = None,
        scope: Mapping[str, Any] | None = None,
    ) -> Node:
        """Create a node and, recursively, the ``children`` listed in ``data``."""
        item = RebuildItem.model_validate(data)
        if item.id is not None:
            raise ValueError("create() builds new nodes; drop the id to reuse the data")

        node = Node(
            name=item.name,
            attributes=item.attributes or {},
            scope=dict(parent.scope if parent is not None else scope or {}),
        )
        if parent is not None:
            node.append_to(parent)
        await self.save(node)

        children = []
        for child_data in item.children:
            child = await self.create(child_data, parent=node)
            child.parent = node
            children.append(child)

        await self._mutator.refresh_node(node)
        node.children = children
        return node

    async def append_node(self, parent: Node, node: Node) -> bool:
        return await self.save(node.append_to(parent))

    async def prepend_node(self, parent: Node, node: Node) -> bool:
        return await self.save(node.prepend_to(parent))

    async def insert_after(self, node: Node, target: Node) -> bool:
        return await self.save(node.after(target))

    async def insert_before(self, node: Node, target: Node) -> bool:
        if not await self.save(node.before(target)):
            return False

        # The target shifted to make room
        await self._mutator.refresh_node(target)
        return True

    async def save_as_root(self, node: Node) -> bool:
        if node.exists and node.is_root():
            return await self.save(node)
        return await self.save(node.make_root())

    async def set_parent(self, node: Node, parent_id: Any) -> Node:
        """Record a move under ``parent_id`` (or to the root level for None). Not saved."""
        if node.parent_id == parent_id and node.exists:
            return node

        if parent_id is not None:
            parent = await self._store.find(parent_id, node.scope)
            if parent is None:
                raise NodeNotFoundError(parent_id)
            return node.append_to(parent)
        return node.make_root()

    async def up(self, node: Node, amount: int = 1) -> bool:
        """Move the node before its amount-th previous sibling."""
        sibling = await (
            self._prev_siblings_query(node).reversed().offset(amount - 1).first()
        )
        if sibling is None:
            return False
        return await self.insert_before(node, sibling)

    async def down(self, node: Node, amount: int = 1) -> bool:
        """Move the node after its amount-th next sibling."""
        sibling = await (
            self._next_siblings_query(node).default_order().offset(amount - 1).first()
        )
        if sibling is None:
            return False
        return await self.insert_after(node, sibling)

    # -- read surface --

    async def ancestors_of(self, node: Node, include_self: bool = False) -> list[Node]:
        query = self._store.query_for(node)
        if include_self:
            return await query.ancestors_and_self(node)
        return await query.ancestors_of(node)

    async def descendants_of(self, node: Node, include_self: bool = False) -> list[Node]:
        return await self._store.query_for(node).descendants_of(node, include_self)

    async def children_of(self, node: Node) -> list[Node]:
        return await self._store.query_for(node).where_parent(node.id).default_order().get()

    async def parent_of(self, node: Node) -> Node | None:
        if node.parent_id is None:
            return None
        return await self._store.find(node.parent_id, node.scope)

    def _siblings_query(self, node: Node):
        return self._store.query_for(node).where_parent(node.parent_id)

    def _next_siblings_query(self, node: Node):
        return self._siblings_query(node).where_is_after(node)

    def _prev_siblings_query(self, node: Node):
        return self._siblings_query(node).where_is_before(node)

    async def siblings(self, node: Node) -> list[Node]:
        return await self._siblings_query(node).where_key_not(node.id).default_order().get()

    async def siblings_and_self(self, node: Node) -> list[Node]:
        return await self._siblings_query(node).default_order().get()

    async def next_siblings(self, node: Node) -> list[Node]:
        return await self._next_siblings_query(node).default_order().get()

    async def prev_siblings(self, node: Node) -> list[Node]:
        return await self._prev_siblings_query(node).default_order().get()

    async def next_sibling(self, node: Node) -> Node | None:
        return await self._next_siblings_query(node).default_order().first()

    async def prev_sibling(self, node: Node) -> Node | None:
        return await self._prev_siblings_query(node).reversed().first()

    async def next_node(self, node: Node) -> Node | None:
        """Next node in pre-order, sibling or not."""
        return await self._store.query_for(node).where_is_after(node).default_order().first()

    async def prev_node(self, node: Node) -> Node | None:
        """Previous node in pre-order: a previous sibling's last descendant or the parent."""
        return await self._store.query_for(node).where_is_before(node).reversed().first()

    async def leaves(self, scope: Mapping[str, Any] | None = None) -> list[Node]:
        return await self._store.query(scope).leaves()

    async def roots(self, scope: Mapping[str, Any] | None = None) -> list[Node]:
        return await self._store.query(scope).where_is_root().default_order().get()

    async def root(self, scope: Mapping[str, Any] | None = None) -> Node | None:
        return await self._store.query(scope).root()

    async def with_depth(self, scope: Mapping[str, Any] | None = None) -> list[Node]:
        return await self._store.query(scope).with_depth().default_order().get()

    async def get_tree(
        self, scope: Mapping[str, Any] | None = None, root: Node | None = None
    ) -> list[Node]:
        """Nodes of a scope (or below ``root``) assembled into linked trees."""
        query = self._store.query(root.scope if root is not None else scope).with_depth()
        if root is not None:
            query.where_descendant_of(root)
            nodes = await query.default_order().get()
            return to_tree(nodes, root)
        nodes = await query.default_order().get()
        return to_tree(nodes, None)

    # -- admin surface --

    async def count_errors(self, scope: Mapping[str, Any] | None = None) -> ErrorCounts:
        return await integrity.count_errors(self._store, scope)

    async def get_total_errors(self, scope: Mapping[str, Any] | None = None) -> int:
        return await integrity.get_total_errors(self._store, scope)

    async def is_broken(self, scope: Mapping[str, Any] | None = None) -> bool:
        return await integrity.is_broken(self._store, scope)

    async def fix_tree(
        self, scope: Mapping[str, Any] | None = None, root: Node | None = None
    ) -> int:
        async with self._db.transaction():
            changed = await repair.fix_tree(self._store, scope, root)
        self.context.performed = True
        return changed

    async def rebuild_tree(
        self,
        data: Iterable[RebuildItem | Mapping[str, Any]],
        scope: Mapping[str, Any] | None = None,
        delete: bool = False,
        root: Node | None = None,
    ) -> int:
        async with self._db.transaction():
            changed = await repair.rebuild_tree(self._store, data, scope, delete, root)
        self.context.performed = True
        logger.info("Rebuilt %s: %d row(s) changed", self._config.table, changed)
        return changed
