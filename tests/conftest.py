"""Shared pytest fixtures for nestedset tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from nestedset.db.connection import Database
from nestedset.db.schema import nodes_table_sql
from nestedset.main import app
from nestedset.nodes.router import get_node_service
from nestedset.nodes.service import NodeService
from nestedset.store import NodeStore
from tests.fixtures import PLAIN, SCOPED


@pytest.fixture
async def db():
    """In-memory database with the default scoped table and a plain one."""
    database = await Database.connect(":memory:")
    await database._ensure_schema(nodes_table_sql(PLAIN))
    yield database
    await database.close()


@pytest.fixture
async def store(db):
    """NodeStore over the scoped, soft-deleting table."""
    return NodeStore(db, SCOPED)


@pytest.fixture
async def plain_store(db):
    """NodeStore over the unscoped table with physical deletes."""
    return NodeStore(db, PLAIN)


@pytest.fixture
async def service(db):
    """NodeService over the scoped, soft-deleting table."""
    return NodeService(db, SCOPED)


@pytest.fixture
async def plain_service(db):
    """NodeService over the unscoped table with physical deletes."""
    return NodeService(db, PLAIN)


@pytest.fixture
async def client(db):
    """Async test client with in-memory DB wired into the app."""
    service = NodeService(db, SCOPED)
    app.dependency_overrides[get_node_service] = lambda: service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
