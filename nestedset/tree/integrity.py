"""Integrity checker: counts four classes of structural corruption.

All checks are read-only and run in one SELECT of four scalar subqueries.
Soft-deleted rows are included because they keep their intervals.

wrong_parent counts (child, parent) pairs where the parent's interval does
not strictly contain the child's, or where some third node strictly inside
the parent also strictly contains the child (the claimed parent is not the
immediate container).
"""

from collections.abc import Mapping
from typing import Any

from nestedset.models import ErrorCounts
from nestedset.store import NodeStore
from nestedset.tree.query import AliasAllocator
from nestedset.tree.scope import scope_clause, scope_join


def _where(parts: list[str]) -> str:
    return " AND ".join(parts) if parts else "1 = 1"


def _oddness_query(store: NodeStore, scope: Mapping[str, Any] | None, aliases: AliasAllocator) -> tuple[str, list[Any]]:
    cfg = store.config
    n = aliases.next("_o")
    clauses, params = scope_clause(cfg, scope, n)
    clauses.append(
        f"({n}.{cfg.lft} >= {n}.{cfg.rgt} OR ({n}.{cfg.rgt} - {n}.{cfg.lft}) % 2 = 0)"
    )
    return f"SELECT count(1) FROM {cfg.table} AS {n} WHERE {_where(clauses)}", params


def _duplicates_query(store: NodeStore, scope: Mapping[str, Any] | None, aliases: AliasAllocator) -> tuple[str, list[Any]]:
    cfg = store.config
    c1, c2 = aliases.next("_c"), aliases.next("_c")
    clauses, params = scope_clause(cfg, scope, c1)
    clauses += scope_join(cfg, c2, c1)
    clauses.append(f"{c1}.{cfg.key} < {c2}.{cfg.key}")
    clauses.append(
        f"({c1}.{cfg.lft} = {c2}.{cfg.lft} OR {c1}.{cfg.rgt} = {c2}.{cfg.rgt} "
        f"OR {c1}.{cfg.lft} = {c2}.{cfg.rgt} OR {c1}.{cfg.rgt} = {c2}.{cfg.lft})"
    )
    sql = f"SELECT count(1) FROM {cfg.table} AS {c1}, {cfg.table} AS {c2} WHERE {_where(clauses)}"
    return sql, params


def _strictly_inside(cfg, inner: str, outer: str) -> str:
    return (
        f"{outer}.{cfg.lft} < {inner}.{cfg.lft} AND {inner}.{cfg.rgt} < {outer}.{cfg.rgt}"
    )


def _wrong_parent_query(store: NodeStore, scope: Mapping[str, Any] | None, aliases: AliasAllocator) -> tuple[str, list[Any]]:
    cfg = store.config
    c, p, i = aliases.next("_c"), aliases.next("_p"), aliases.next("_i")

    clauses, params = scope_clause(cfg, scope, c)
    clauses += scope_join(cfg, p, c)
    clauses.append(f"{c}.{cfg.parent_id} = {p}.{cfg.key}")

    intermediate = [
        f"{i}.{cfg.key} <> {p}.{cfg.key}",
        f"{i}.{cfg.key} <> {c}.{cfg.key}",
        *scope_join(cfg, i, c),
        _strictly_inside(cfg, i, p),
        _strictly_inside(cfg, c, i),
    ]
    clauses.append(
        f"(NOT ({_strictly_inside(cfg, c, p)}) "
        f"OR EXISTS (SELECT 1 FROM {cfg.table} AS {i} WHERE {_where(intermediate)}))"
    )
    sql = f"SELECT count(1) FROM {cfg.table} AS {c}, {cfg.table} AS {p} WHERE {_where(clauses)}"
    return sql, params


def _missing_parent_query(store: NodeStore, scope: Mapping[str, Any] | None, aliases: AliasAllocator) -> tuple[str, list[Any]]:
    cfg = store.config
    c, p = aliases.next("_c"), aliases.next("_p")

    clauses, params = scope_clause(cfg, scope, c)
    exists = [f"{p}.{cfg.key} = {c}.{cfg.parent_id}", *scope_join(cfg, p, c)]
    clauses.append(f"{c}.{cfg.parent_id} IS NOT NULL")
    clauses.append(f"NOT EXISTS (SELECT 1 FROM {cfg.table} AS {p} WHERE {_where(exists)})")
    return f"SELECT count(1) FROM {cfg.table} AS {c} WHERE {_where(clauses)}", params


_CHECKS = {
    "oddness": _oddness_query,
    "duplicates": _duplicates_query,
    "wrong_parent": _wrong_parent_query,
    "missing_parent": _missing_parent_query,
}


async def count_errors(store: NodeStore, scope: Mapping[str, Any] | None = None) -> ErrorCounts:
    """Count corrupted nodes per class. ``scope=None`` checks every scope at once."""
    aliases = AliasAllocator()
    selects: list[str] = []
    params: list[Any] = []
    for name, build in _CHECKS.items():
        sql, check_params = build(store, scope, aliases)
        selects.append(f"({sql}) AS {name}")
        params += check_params

    row = await store.db.fetchone(f"SELECT {', '.join(selects)}", params)
    return ErrorCounts(**{name: int(row[name] or 0) for name in _CHECKS})


async def get_total_errors(store: NodeStore, scope: Mapping[str, Any] | None = None) -> int:
    return (await count_errors(store, scope)).total


async def is_broken(store: NodeStore, scope: Mapping[str, Any] | None = None) -> bool:
    return await get_total_errors(store, scope) > 0
