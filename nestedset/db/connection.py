"""Async SQLite connection wrapper with WAL mode, schema initialization and transactions."""

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

import aiosqlite

from nestedset.db.schema import SCHEMA_SQL


class Database:
    """Thin async wrapper around aiosqlite with WAL mode and auto-schema.

    Statements commit immediately unless they run inside ``transaction()``,
    in which case the outermost block commits or rolls back. One task at a
    time owns the connection: a transaction holds the lock until it ends and
    statements issued by other tasks wait for it.
    """

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task | None = None

    @classmethod
    async def connect(cls, path: str = "nestedset.db", schema: str = SCHEMA_SQL) -> "Database":
        """Create a connection with WAL mode, foreign keys, and schema init."""
        conn = await aiosqlite.connect(path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute("PRAGMA busy_timeout=5000")
        db = cls(conn)
        await db._ensure_schema(schema)
        return db

    async def _ensure_schema(self, schema: str = SCHEMA_SQL) -> None:
        """Create tables if they don't exist. Idempotent."""
        await self._conn.executescript(schema)
        await self._conn.commit()

    @property
    def in_transaction(self) -> bool:
        """Whether the calling task is inside a transaction on this database."""
        return self._owner is not None and self._owner is asyncio.current_task()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Database"]:
        """Group statements into one unit of work.

        Nested blocks in the same task join the outer one. Any exception
        rolls back everything written since the outermost block started,
        then propagates.
        """
        if self.in_transaction:
            yield self
            return

        async with self._lock:
            self._owner = asyncio.current_task()
            try:
                yield self
            except BaseException:
                await self._conn.rollback()
                raise
            else:
                await self._conn.commit()
            finally:
                self._owner = None

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self.in_transaction:
            yield
        else:
            async with self._lock:
                yield

    async def execute(self, sql: str, params: Iterable | None = None) -> aiosqlite.Cursor:
        """Execute a single SQL statement."""
        async with self._exclusive():
            cursor = await self._conn.execute(sql, tuple(params or ()))
            if not self.in_transaction:
                await self._conn.commit()
        return cursor

    async def fetchone(self, sql: str, params: Iterable | None = None) -> aiosqlite.Row | None:
        """Execute and return a single row."""
        async with self._exclusive():
            cursor = await self._conn.execute(sql, tuple(params or ()))
            return await cursor.fetchone()

    async def fetchall(self, sql: str, params: Iterable | None = None) -> list[aiosqlite.Row]:
        """Execute and return all rows."""
        async with self._exclusive():
            cursor = await self._conn.execute(sql, tuple(params or ()))
            return list(await cursor.fetchall())

    async def fetchval(self, sql: str, params: Iterable | None = None):
        """Execute and return the first column of the first row, or None."""
        row = await self.fetchone(sql, params)
        return None if row is None else row[0]

    async def close(self) -> None:
        """Close the database connection."""
        await self._conn.close()
