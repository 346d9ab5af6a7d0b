"""Scope partitioning: several independent forests inside one table.

Two nodes share a scope when every discriminator column holds the same
value. Every predicate the engine issues is intersected with the scope.
"""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from nestedset.config import TreeConfig
from nestedset.errors import ScopeMismatchError

if TYPE_CHECKING:
    from nestedset.models import Node


def _column(column: str, alias: str | None) -> str:
    return f"{alias}.{column}" if alias else column


def scope_text(values: Mapping[str, Any]) -> dict[str, str | None]:
    """Scope values as the TEXT the scope columns store them as."""
    return {column: None if value is None else str(value) for column, value in values.items()}


def scope_values(config: TreeConfig, values: Mapping[str, Any] | None) -> dict[str, str | None]:
    """Pick the discriminator values for ``config`` out of a mapping."""
    if not config.scope:
        return {}
    values = values or {}
    return scope_text({column: values.get(column) for column in config.scope})


def scope_clause(
    config: TreeConfig,
    values: Mapping[str, Any] | None,
    alias: str | None = None,
) -> tuple[list[str], list[Any]]:
    """Equality predicates pinning ``alias`` to the given scope.

    Returns (clauses, params). An empty config scope yields no clauses.
    """
    clauses: list[str] = []
    params: list[Any] = []
    if values is None:
        return clauses, params
    for column, value in scope_values(config, values).items():
        if value is None:
            clauses.append(f"{_column(column, alias)} IS NULL")
        else:
            clauses.append(f"{_column(column, alias)} = ?")
            params.append(value)
    return clauses, params


def scope_join(config: TreeConfig, alias: str, other: str) -> list[str]:
    """Predicates keeping two aliases of the same table in one scope."""
    return [f"{alias}.{column} IS {other}.{column}" for column in config.scope]


def is_same_scope(node: "Node", other: "Node") -> bool:
    return node.scope == other.scope


def assert_same_scope(node: "Node", other: "Node") -> None:
    if not is_same_scope(node, other):
        raise ScopeMismatchError(node.scope, other.scope)
