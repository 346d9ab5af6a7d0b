"""Mutation engine: gap creation, subtree moves and pending-intent resolution.

All structural changes are expressed as one bulk UPDATE per operation, with
both bound columns rewritten by a CASE expression over their old values.
Intents recorded on a Node (make_root, append_to, before, ...) are turned
into those updates by Mutator.resolve_pending right before the node is saved.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from nestedset.errors import InvalidMoveError
from nestedset.models import (
    AppendOrPrependIntent,
    BeforeOrAfterIntent,
    Node,
    PendingIntent,
    RawBoundsIntent,
    RootIntent,
)
from nestedset.store import NodeStore
from nestedset.tree.query import NodeQuery

logger = logging.getLogger(__name__)


@dataclass
class MutationContext:
    """State shared by the operations of one unit of work.

    ``performed`` flips once any structural change has been issued; from then
    on in-memory bounds may be stale and anchors are re-read before use.
    ``deleted_at`` stashes a node's deletion timestamp between the start and
    the end of a restore.
    """

    performed: bool = False
    deleted_at: dict[Any, str | None] = field(default_factory=dict)

    def keep_deleted_at(self, node: Node) -> None:
        self.deleted_at[node.id] = node.deleted_at

    def restore_deleted_at(self, node: Node) -> str | None:
        return self.deleted_at.pop(node.id, None)


# ---------------------------------------------------------------------------
# Bulk bound updates
# ---------------------------------------------------------------------------


def _gap_patch(column: str, cut: int, height: int) -> tuple[str, list[Any]]:
    return (
        f"CASE WHEN {column} >= ? THEN {column} + ? ELSE {column} END",
        [cut, height],
    )


def _move_patch(
    column: str, lft: int, rgt: int, from_: int, to: int, height: int, distance: int
) -> tuple[str, list[Any]]:
    return (
        f"CASE WHEN {column} BETWEEN ? AND ? THEN {column} + ? "
        f"WHEN {column} BETWEEN ? AND ? THEN {column} + ? "
        f"ELSE {column} END",
        [lft, rgt, distance, from_, to, height],
    )


async def make_gap(query: NodeQuery, cut: int, height: int) -> int:
    """Shift every bound >= cut by height. A negative height closes a gap.

    Returns the number of rows touched.
    """
    cfg = query.config
    lft, rgt = query.col(cfg.lft), query.col(cfg.rgt)
    query.where(f"({lft} >= ? OR {rgt} >= ?)", [cut, cut])
    updated = await query.update(
        {
            cfg.lft: _gap_patch(cfg.lft, cut, height),
            cfg.rgt: _gap_patch(cfg.rgt, cut, height),
        }
    )
    logger.debug("make_gap cut=%s height=%s rows=%s", cut, height, updated)
    return updated


async def move_node(query: NodeQuery, key: Any, position: int) -> int:
    """Move the subtree rooted at ``key`` so that its lft becomes ``position``.

    Nodes the subtree passes over shift by its height in the other direction.
    Returns the number of rows touched; 0 when the node is already in place.
    """
    cfg = query.config
    lft, rgt = await query.fresh().get_node_data(key, required=True)

    if lft < position <= rgt:
        raise InvalidMoveError(key)

    # Boundaries of the block of rows that takes part in the move
    from_ = min(lft, position)
    to = max(rgt, position - 1)

    height = rgt - lft + 1
    distance = to - from_ + 1 - height

    if distance == 0:
        return 0

    if position > lft:
        height = -height
    else:
        distance = -distance

    lft_col, rgt_col = query.col(cfg.lft), query.col(cfg.rgt)
    query.where(
        f"({lft_col} BETWEEN ? AND ? OR {rgt_col} BETWEEN ? AND ?)",
        [from_, to, from_, to],
    )
    updated = await query.update(
        {
            cfg.lft: _move_patch(cfg.lft, lft, rgt, from_, to, height, distance),
            cfg.rgt: _move_patch(cfg.rgt, lft, rgt, from_, to, height, distance),
        }
    )
    logger.debug(
        "move_node key=%s [%s, %s] -> %s distance=%s rows=%s",
        key, lft, rgt, position, distance, updated,
    )
    return updated


# ---------------------------------------------------------------------------
# Intent resolution
# ---------------------------------------------------------------------------


class Mutator:
    """Resolves pending intents into bound mutations for one store."""

    def __init__(self, store: NodeStore, context: MutationContext | None = None) -> None:
        self._store = store
        self.context = context or MutationContext()
        self._actions: dict[str, Callable[[Node, Any], Awaitable[bool]]] = {
            "root": self._action_root,
            "append_or_prepend": self._action_append_or_prepend,
            "before_or_after": self._action_before_or_after,
            "raw": self._action_raw,
        }

    async def resolve_pending(self, node: Node) -> bool:
        """Apply the node's last recorded intent. Returns whether it moved.

        A node that was never stored and has no intent becomes a root.
        """
        node.mark_moved(False)

        if node.pending is None and not node.exists:
            node.make_root()

        intent: PendingIntent | None = node.take_pending()
        if intent is None:
            return False

        moved = await self._actions[intent.kind](node, intent)
        node.mark_moved(moved)
        return moved

    async def refresh_node(self, node: Node) -> None:
        """Re-read a stored node's bounds once structural changes have happened."""
        if not node.exists or not self.context.performed:
            return
        await self._store.refresh_bounds(node)

    async def lower_bound(self, node: Node) -> int:
        """Greatest rgt in the node's scope, trashed rows included."""
        value = await self._store.nested_query(node.scope).max(self._store.config.rgt)
        return int(value or 0)

    async def _action_root(self, node: Node, intent: RootIntent) -> bool:
        # A fresh root does not disturb any other node
        if not node.exists:
            cut = await self.lower_bound(node) + 1
            node.lft = cut
            node.rgt = cut + 1
            return True

        return await self.insert_at(node, await self.lower_bound(node) + 1)

    async def _action_append_or_prepend(self, node: Node, intent: AppendOrPrependIntent) -> bool:
        parent = intent.target
        await self.refresh_node(parent)
        cut = parent.lft + 1 if intent.prepend else parent.rgt

        if not await self.insert_at(node, cut):
            return False

        await self.refresh_node(parent)
        return True

    async def _action_before_or_after(self, node: Node, intent: BeforeOrAfterIntent) -> bool:
        target = intent.target
        await self.refresh_node(target)
        moved = await self.insert_at(node, target.rgt + 1 if intent.after else target.lft)

        # The target shifts when a node is placed in front of it
        await self.refresh_node(target)
        return moved

    async def _action_raw(self, node: Node, intent: RawBoundsIntent) -> bool:
        return True

    async def insert_at(self, node: Node, position: int) -> bool:
        self.context.performed = True

        if node.exists:
            return await self._move(node, position)
        return await self._insert(node, position)

    async def _move(self, node: Node, position: int) -> bool:
        updated = await move_node(self._store.nested_query(node.scope), node.id, position) > 0

        # Held bounds may be stale even when nothing moved
        await self._store.refresh_bounds(node)
        return updated

    async def _insert(self, node: Node, position: int) -> bool:
        height = node.height
        await make_gap(self._store.nested_query(node.scope), position, height)

        node.lft = position
        node.rgt = position + height - 1
        return True
