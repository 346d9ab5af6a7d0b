"""Interval query engine: ancestor/descendant/sibling/depth predicates.

NodeQuery is a chainable builder over one nested-set table. Every query is
pinned to a scope (when one is given) and, for soft-deleting tables, hides
deleted rows unless built with ``with_trashed=True``. Bound maintenance
always runs on trashed rows too, so deleted subtrees keep their shape.

Targets may be passed as Node instances (their in-memory bounds are used)
or as plain ids (the bound is resolved by a correlated subquery, so an
unknown id simply matches nothing).
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from nestedset.config import TreeConfig
from nestedset.errors import NodeNotFoundError, NodeNotPersistedError
from nestedset.models import Node
from nestedset.tree.scope import scope_clause, scope_join, scope_values

if TYPE_CHECKING:
    from nestedset.store import NodeStore

Boolean = Literal["and", "or"]


@dataclass
class AliasAllocator:
    """Hands out unique table aliases for self-joins and subqueries."""

    counters: dict[str, int] = field(default_factory=dict)

    def next(self, prefix: str = "_n") -> str:
        count = self.counters.get(prefix, 0) + 1
        self.counters[prefix] = count
        return f"{prefix}{count}"


class NodeQuery:
    """Chainable, scoped query over the nested-set table."""

    def __init__(
        self,
        store: "NodeStore",
        scope: Mapping[str, Any] | None = None,
        *,
        with_trashed: bool = False,
        aliases: AliasAllocator | None = None,
    ) -> None:
        self._store = store
        self._config = store.config
        self._scope = scope_values(self._config, scope) if scope is not None else None
        self._with_trashed = with_trashed or not self._config.soft_delete
        self.aliases = aliases or AliasAllocator()
        self._wheres: list[tuple[Boolean, str]] = []
        self._where_params: list[Any] = []
        self._selects: list[str] = []
        self._select_params: list[Any] = []
        self._order: str | None = None
        self._limit: int | None = None
        self._offset: int | None = None

    def fresh(self) -> "NodeQuery":
        """New query with the same store, scope and trash mode but no predicates."""
        return NodeQuery(
            self._store,
            self._scope,
            with_trashed=self._with_trashed,
            aliases=self.aliases,
        )

    # -- column helpers --

    @property
    def table(self) -> str:
        return self._config.table

    @property
    def config(self) -> TreeConfig:
        return self._config

    @property
    def scope(self) -> dict[str, Any] | None:
        return self._scope

    def col(self, column: str, alias: str | None = None) -> str:
        return f"{alias or self.table}.{column}"

    def _lft(self, alias: str | None = None) -> str:
        return self.col(self._config.lft, alias)

    def _rgt(self, alias: str | None = None) -> str:
        return self.col(self._config.rgt, alias)

    def _key(self, alias: str | None = None) -> str:
        return self.col(self._config.key, alias)

    def _value_subquery(self, column: str, node_id: Any, offset: int = 0) -> tuple[str, list[Any]]:
        """Correlated subquery yielding ``column`` (+ offset) of the row with ``node_id``.

        The looked-up row must share the outer row's scope.
        """
        alias = self.aliases.next("_v")
        expr = f"{alias}.{column}" + (f" + {offset}" if offset else "")
        clauses = [f"{alias}.{self._config.key} = ?"]
        clauses += scope_join(self._config, alias, self.table)
        sql = (
            f"(SELECT {expr} FROM {self.table} AS {alias} "
            f"WHERE {' AND '.join(clauses)} LIMIT 1)"
        )
        return sql, [node_id]

    # -- raw predicates --

    def where(self, sql: str, params: Iterable[Any] | None = None, boolean: Boolean = "and") -> "NodeQuery":
        self._wheres.append((boolean, sql))
        self._where_params.extend(params or ())
        return self

    def where_key(self, node_id: Any) -> "NodeQuery":
        return self.where(f"{self._key()} = ?", [node_id])

    def where_key_not(self, node_id: Any) -> "NodeQuery":
        return self.where(f"{self._key()} <> ?", [node_id])

    def where_parent(self, parent_id: Any) -> "NodeQuery":
        return self.where(f"{self.col(self._config.parent_id)} IS ?", [parent_id])

    # -- interval predicates --

    def where_is_root(self) -> "NodeQuery":
        return self.where(f"{self.col(self._config.parent_id)} IS NULL")

    def has_parent(self) -> "NodeQuery":
        return self.where(f"{self.col(self._config.parent_id)} IS NOT NULL")

    def without_root(self) -> "NodeQuery":
        return self.has_parent()

    def where_ancestor_of(
        self,
        target: Node | Any,
        include_self: bool = False,
        boolean: Boolean = "and",
    ) -> "NodeQuery":
        """Limit results to nodes whose interval contains the target's rgt."""
        parts: list[str] = []
        params: list[Any] = []

        if isinstance(target, Node):
            if target.rgt is None:
                raise NodeNotPersistedError(target.id)
            value, value_params = "?", [target.rgt]
            node_id = target.id
        else:
            value, value_params = self._value_subquery(self._config.rgt, target)
            node_id = target

        parts.append(f"{value} BETWEEN {self._lft()} AND {self._rgt()}")
        params += value_params

        if not include_self:
            parts.append(f"{self._key()} <> ?")
            params.append(node_id)

        if isinstance(target, Node):
            clauses, scope_params = scope_clause(self._config, target.scope, self.table)
            parts += clauses
            params += scope_params

        return self.where(f"({' AND '.join(parts)})", params, boolean)

    def or_where_ancestor_of(self, target: Node | Any, include_self: bool = False) -> "NodeQuery":
        return self.where_ancestor_of(target, include_self, "or")

    def where_ancestor_or_self(self, target: Node | Any) -> "NodeQuery":
        return self.where_ancestor_of(target, include_self=True)

    def where_node_between(
        self,
        values: tuple[Any, Any],
        boolean: Boolean = "and",
        negate: bool = False,
    ) -> "NodeQuery":
        op = "NOT BETWEEN" if negate else "BETWEEN"
        return self.where(f"{self._lft()} {op} ? AND ?", list(values), boolean)

    def or_where_node_between(self, values: tuple[Any, Any]) -> "NodeQuery":
        return self.where_node_between(values, "or")

    def where_descendant_of(
        self,
        target: Node | Any,
        boolean: Boolean = "and",
        negate: bool = False,
        include_self: bool = False,
    ) -> "NodeQuery":
        """Limit results to nodes whose lft falls inside the target's interval."""
        op = "NOT BETWEEN" if negate else "BETWEEN"
        offset = 0 if include_self else 1

        if isinstance(target, Node):
            if target.lft is None or target.rgt is None:
                raise NodeNotPersistedError(target.id)
            parts = [f"{self._lft()} {op} ? AND ?"]
            params: list[Any] = [target.lft + offset, target.rgt]
            clauses, scope_params = scope_clause(self._config, target.scope, self.table)
            parts += clauses
            params += scope_params
        else:
            low, low_params = self._value_subquery(self._config.lft, target, offset)
            high, high_params = self._value_subquery(self._config.rgt, target)
            parts = [f"{self._lft()} {op} {low} AND {high}"]
            params = low_params + high_params

        return self.where(f"({' AND '.join(parts)})", params, boolean)

    def where_not_descendant_of(self, target: Node | Any) -> "NodeQuery":
        return self.where_descendant_of(target, "and", negate=True)

    def or_where_descendant_of(self, target: Node | Any) -> "NodeQuery":
        return self.where_descendant_of(target, "or")

    def or_where_not_descendant_of(self, target: Node | Any) -> "NodeQuery":
        return self.where_descendant_of(target, "or", negate=True)

    def where_descendant_or_self(
        self, target: Node | Any, boolean: Boolean = "and", negate: bool = False
    ) -> "NodeQuery":
        return self.where_descendant_of(target, boolean, negate, include_self=True)

    def _where_is_before_or_after(self, target: Node | Any, operator: str, boolean: Boolean) -> "NodeQuery":
        if isinstance(target, Node):
            if target.lft is None:
                raise NodeNotPersistedError(target.id)
            value, params = "?", [target.lft]
        else:
            value, params = self._value_subquery(self._config.lft, target)
        return self.where(f"{self._lft()} {operator} {value}", params, boolean)

    def where_is_after(self, target: Node | Any, boolean: Boolean = "and") -> "NodeQuery":
        return self._where_is_before_or_after(target, ">", boolean)

    def where_is_before(self, target: Node | Any, boolean: Boolean = "and") -> "NodeQuery":
        return self._where_is_before_or_after(target, "<", boolean)

    def where_is_leaf(self) -> "NodeQuery":
        return self.where(f"{self._lft()} = {self._rgt()} - 1")

    def has_children(self) -> "NodeQuery":
        return self.where(f"{self._rgt()} > {self._lft()} + 1")

    # -- projection and ordering --

    def with_depth(self, as_: str = "depth") -> "NodeQuery":
        """Add the node depth: count of same-scope intervals containing its lft, minus one."""
        if not as_.isidentifier():
            raise ValueError(f"Invalid depth alias: {as_!r}")
        alias = self.aliases.next("_d")
        clauses = [f"{self._lft()} BETWEEN {self._lft(alias)} AND {self._rgt(alias)}"]
        clauses += scope_join(self._config, alias, self.table)
        if not self._with_trashed:
            clauses.append(f"{self.col(self._config.deleted_at, alias)} IS NULL")
        self._selects.append(
            f"(SELECT count(1) - 1 FROM {self.table} AS {alias} "
            f"WHERE {' AND '.join(clauses)}) AS {as_}"
        )
        return self

    def default_order(self, direction: str = "asc") -> "NodeQuery":
        direction = direction.lower()
        if direction not in ("asc", "desc"):
            raise ValueError(f"Invalid order direction: {direction!r}")
        self._order = f"{self._lft()} {direction.upper()}"
        return self

    def reversed(self) -> "NodeQuery":
        return self.default_order("desc")

    def limit(self, count: int) -> "NodeQuery":
        self._limit = count
        return self

    def offset(self, count: int) -> "NodeQuery":
        self._offset = count
        return self

    # -- compilation --

    def compile_where(self) -> tuple[str, list[Any]]:
        """WHERE body (without the keyword) and its parameters."""
        base: list[str] = []
        params: list[Any] = []

        clauses, scope_params = scope_clause(self._config, self._scope, self.table)
        base += clauses
        params += scope_params

        if not self._with_trashed:
            base.append(f"{self.col(self._config.deleted_at)} IS NULL")

        if self._wheres:
            chain = ""
            for index, (boolean, sql) in enumerate(self._wheres):
                chain += sql if index == 0 else f" {boolean.upper()} {sql}"
            base.append(f"({chain})")
            params += self._where_params

        return (" AND ".join(base) if base else "1 = 1"), params

    def to_sql(self, columns: str | None = None) -> tuple[str, list[Any]]:
        select = [columns or f"{self.table}.*", *self._selects]
        where, where_params = self.compile_where()
        sql = f"SELECT {', '.join(select)} FROM {self.table} WHERE {where}"
        params = [*self._select_params, *where_params]
        if self._order:
            sql += f" ORDER BY {self._order}"
        if self._limit is not None or self._offset is not None:
            sql += " LIMIT ? OFFSET ?"
            params += [self._limit if self._limit is not None else -1, self._offset or 0]
        return sql, params

    # -- execution --

    async def get(self) -> list[Node]:
        sql, params = self.to_sql()
        rows = await self._store.db.fetchall(sql, params)
        return [self._store.node_from_row(row) for row in rows]

    async def first(self) -> Node | None:
        self._limit = 1
        nodes = await self.get()
        return nodes[0] if nodes else None

    async def count(self) -> int:
        where, params = self.compile_where()
        value = await self._store.db.fetchval(
            f"SELECT count(1) FROM {self.table} WHERE {where}", params
        )
        return int(value or 0)

    async def exists(self) -> bool:
        return await self.count() > 0

    async def max(self, column: str) -> int | None:
        where, params = self.compile_where()
        return await self._store.db.fetchval(
            f"SELECT MAX({self.col(column)}) FROM {self.table} WHERE {where}", params
        )

    async def update(self, assignments: Mapping[str, tuple[str, list[Any]]]) -> int:
        """UPDATE matching rows. ``assignments`` maps column -> (expression, params)."""
        set_sql = ", ".join(f"{column} = {expr}" for column, (expr, _) in assignments.items())
        set_params = [param for _, expr_params in assignments.values() for param in expr_params]
        where, where_params = self.compile_where()
        cursor = await self._store.db.execute(
            f"UPDATE {self.table} SET {set_sql} WHERE {where}",
            [*set_params, *where_params],
        )
        return cursor.rowcount

    async def delete(self) -> int:
        where, params = self.compile_where()
        cursor = await self._store.db.execute(f"DELETE FROM {self.table} WHERE {where}", params)
        return cursor.rowcount

    # -- compositions --

    async def get_node_data(self, node_id: Any, required: bool = False) -> tuple[int, int] | None:
        """Stored (lft, rgt) of a node."""
        where, params = self.where_key(node_id).compile_where()
        row = await self._store.db.fetchone(
            f"SELECT {self._lft()}, {self._rgt()} FROM {self.table} WHERE {where} LIMIT 1",
            params,
        )
        if row is None:
            if required:
                raise NodeNotFoundError(node_id)
            return None
        return int(row[0]), int(row[1])

    async def ancestors_of(self, target: Node | Any) -> list[Node]:
        return await self.where_ancestor_of(target).default_order().get()

    async def ancestors_and_self(self, target: Node | Any) -> list[Node]:
        return await self.where_ancestor_of(target, include_self=True).default_order().get()

    async def descendants_of(self, target: Node | Any, include_self: bool = False) -> list[Node]:
        return await self.where_descendant_of(target, include_self=include_self).default_order().get()

    async def descendants_and_self(self, target: Node | Any) -> list[Node]:
        return await self.descendants_of(target, include_self=True)

    async def leaves(self) -> list[Node]:
        return await self.where_is_leaf().default_order().get()

    async def root(self) -> Node | None:
        return await self.where_is_root().default_order().first()
