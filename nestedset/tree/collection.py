"""Assemble flat node lists (as read in lft order) into trees."""

from typing import Any

from nestedset.models import Node

_UNSET = object()


def _group_by_parent(nodes: list[Node]) -> dict[Any, list[Node]]:
    grouped: dict[Any, list[Node]] = {}
    for node in nodes:
        grouped.setdefault(node.parent_id, []).append(node)
    return grouped


def link_nodes(nodes: list[Node]) -> list[Node]:
    """Fill ``parent`` and ``children`` for every node of the list.

    Overwrites any relatives linked before. Nodes whose parent is not in the
    list keep their current ``parent``.
    """
    if not nodes:
        return nodes

    grouped = _group_by_parent(nodes)
    for node in nodes:
        if node.parent_id is None:
            node.parent = None

        children = grouped.get(node.id, [])
        for child in children:
            child.parent = node
        node.children = children

    return nodes


def _root_id(nodes: list[Node], root: Any) -> Any:
    if isinstance(root, Node):
        return root.id
    if root is not _UNSET:
        return root

    # Without an explicit root, the parent of the least-lft node is the root
    least = min(nodes, key=lambda node: node.lft if node.lft is not None else 0)
    return least.parent_id


def to_tree(nodes: list[Node], root: Any = _UNSET) -> list[Node]:
    """Top-level nodes of the list with their children linked.

    ``root`` may be a Node, an id (``None`` selects the forest roots) or
    omitted.
    """
    if not nodes:
        return []

    link_nodes(nodes)
    root_id = _root_id(nodes, root)
    return [node for node in nodes if node.parent_id == root_id]


def to_flat_tree(nodes: list[Node], root: Any = _UNSET) -> list[Node]:
    """Depth-first listing of the tree below ``root`` in sibling order."""
    if not nodes:
        return []

    grouped = _group_by_parent(nodes)
    result: list[Node] = []
    stack = [iter(grouped.pop(_root_id(nodes, root), []))]
    while stack:
        node = next(stack[-1], None)
        if node is None:
            stack.pop()
            continue
        result.append(node)
        stack.append(iter(grouped.pop(node.id, [])))
    return result
