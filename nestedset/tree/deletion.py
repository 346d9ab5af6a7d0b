"""Deletion and restore hooks.

A physical delete removes the whole subtree and closes the gap it leaves.
A soft delete stamps the live descendants with the node's deletion time and
leaves every interval untouched, so a later restore brings back exactly the
rows that went away together with the node.
"""

import logging

from nestedset.models import Node
from nestedset.store import NodeStore
from nestedset.tree.mutation import MutationContext, Mutator, make_gap

logger = logging.getLogger(__name__)


def is_hard_delete(store: NodeStore, force: bool) -> bool:
    return force or not store.config.soft_delete


async def before_delete(mutator: Mutator, node: Node) -> None:
    """Capture the node's current bounds; they are needed once the row is gone."""
    await mutator.refresh_node(node)


async def after_delete(mutator: Mutator, store: NodeStore, node: Node, force: bool = False) -> int:
    """Cascade the deletion to the descendants and, for a physical delete, close the gap.

    Returns the number of descendant rows deleted or stamped.
    """
    cfg = store.config

    if is_hard_delete(store, force):
        count = await store.nested_query(node.scope).where_descendant_of(node).delete()

        lft, rgt = node.lft, node.rgt
        height = rgt - lft + 1
        await make_gap(store.nested_query(node.scope), rgt + 1, -height)

        # The in-memory node may be saved again as a brand new root
        node.mark_removed()
        node.make_root()
        mutator.context.performed = True
    else:
        # Only live descendants: earlier deletions keep their own timestamp
        count = await store.query(node.scope).where_descendant_of(node).update(
            {cfg.deleted_at: ("?", [node.deleted_at])}
        )

    logger.debug("Deleted node %s with %s descendant(s), force=%s", node.id, count, force)
    return count


def keep_deleted_at(context: MutationContext, node: Node) -> None:
    """Remember when the node was deleted; called before the restore clears it."""
    context.keep_deleted_at(node)


async def restore_descendants(store: NodeStore, node: Node, deleted_at: str | None) -> int:
    """Restore descendants deleted at or after ``deleted_at``.

    Descendants removed before their ancestor were deleted on their own and
    stay deleted.
    """
    if deleted_at is None:
        return 0

    cfg = store.config
    query = store.query(node.scope, with_trashed=True).where_descendant_of(node)
    query.where(f"{query.col(cfg.deleted_at)} >= ?", [deleted_at])
    count = await query.update({cfg.deleted_at: ("NULL", [])})

    logger.debug("Restored %s descendant(s) of node %s", count, node.id)
    return count
