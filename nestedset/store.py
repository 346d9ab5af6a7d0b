"""Record store: maps Node instances to rows of the nested-set table."""

from collections.abc import Iterable, Mapping
from typing import Any

from nestedset.config import TreeConfig
from nestedset.db.connection import Database
from nestedset.models import Node
from nestedset.tree.query import AliasAllocator, NodeQuery
from nestedset.tree.scope import scope_values
from nestedset.utils.json import json_str, parse_json_field


class NodeStore:
    """Reads and writes nodes; builds scoped queries. Holds no tree logic."""

    def __init__(self, db: Database, config: TreeConfig) -> None:
        self._db = db
        self._config = config

    @property
    def db(self) -> Database:
        return self._db

    @property
    def config(self) -> TreeConfig:
        return self._config

    # -- queries --

    def query(
        self,
        scope: Mapping[str, Any] | None = None,
        *,
        with_trashed: bool = False,
        aliases: AliasAllocator | None = None,
    ) -> NodeQuery:
        """Scoped read query. Soft-deleted rows are hidden unless with_trashed."""
        return NodeQuery(self, scope, with_trashed=with_trashed, aliases=aliases)

    def nested_query(self, scope: Mapping[str, Any] | None = None) -> NodeQuery:
        """Scoped query used for bound maintenance; always sees trashed rows."""
        return NodeQuery(self, scope, with_trashed=True)

    def query_for(self, node: Node, *, with_trashed: bool = False) -> NodeQuery:
        return self.query(node.scope, with_trashed=with_trashed)

    # -- row mapping --

    def node_from_row(self, row: Any) -> Node:
        data = dict(row)
        cfg = self._config
        node = Node(
            id=data[cfg.key],
            name=data.get("name"),
            attributes=parse_json_field(data.get("attributes")),
            parent_id=data[cfg.parent_id],
            lft=data[cfg.lft],
            rgt=data[cfg.rgt],
            scope={column: data.get(column) for column in cfg.scope},
            deleted_at=data.get(cfg.deleted_at) if cfg.soft_delete else None,
            depth=data.get("depth"),
        )
        node.mark_persisted()
        return node

    def _columns_for(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Translate Node field values to column values."""
        cfg = self._config
        columns: dict[str, Any] = {}
        for name, value in fields.items():
            if name == "scope":
                columns.update(scope_values(cfg, value))
            elif name == "attributes":
                columns["attributes"] = json_str(value)
            elif name == "deleted_at":
                if cfg.soft_delete:
                    columns[cfg.deleted_at] = value
            elif name in ("parent_id", "lft", "rgt"):
                columns[getattr(cfg, name)] = value
            else:
                columns[name] = value
        return columns

    # -- writes --

    async def insert(self, node: Node) -> Node:
        """Insert the node as a new row and mark it persisted."""
        node.scope = scope_values(self._config, node.scope)
        columns = self._columns_for(
            {
                "name": node.name,
                "attributes": node.attributes,
                "parent_id": node.parent_id,
                "lft": node.lft if node.lft is not None else 0,
                "rgt": node.rgt if node.rgt is not None else 0,
                "scope": node.scope,
                "deleted_at": node.deleted_at,
            }
        )
        if node.id is not None:
            columns = {self._config.key: node.id, **columns}
        names = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        cursor = await self._db.execute(
            f"INSERT INTO {self._config.table} ({names}) VALUES ({placeholders})",
            list(columns.values()),
        )
        node.mark_persisted(node.id if node.id is not None else cursor.lastrowid)
        return node

    async def update(self, node: Node, fields: Iterable[str] | None = None) -> int:
        """Write dirty fields (or the given ones) of a persisted node."""
        dirty = node.get_dirty()
        if fields is not None:
            dirty = {name: getattr(node, name) for name in fields}
        columns = self._columns_for(dirty)
        if not columns:
            return 0
        assignments = ", ".join(f"{column} = ?" for column in columns)
        cursor = await self._db.execute(
            f"UPDATE {self._config.table} SET {assignments} WHERE {self._config.key} = ?",
            [*columns.values(), node.id],
        )
        node.sync_original()
        return cursor.rowcount

    async def delete_ids(self, node_ids: Iterable[Any]) -> int:
        ids = list(node_ids)
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        cursor = await self._db.execute(
            f"DELETE FROM {self._config.table} WHERE {self._config.key} IN ({placeholders})",
            ids,
        )
        return cursor.rowcount

    async def find(
        self,
        node_id: Any,
        scope: Mapping[str, Any] | None = None,
        *,
        with_trashed: bool = False,
    ) -> Node | None:
        return await self.query(scope, with_trashed=with_trashed).where_key(node_id).first()

    async def refresh_bounds(self, node: Node) -> None:
        """Re-read lft/rgt of a stored node, leaving other in-memory changes intact."""
        data = await self.nested_query(node.scope).get_node_data(node.id)
        if data is None:
            return
        node.set_stored_bounds(*data)
