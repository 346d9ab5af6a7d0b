"""nestedset FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from nestedset.config import load_settings
from nestedset.db.connection import Database
from nestedset.db.schema import nodes_table_sql
from nestedset.nodes.router import get_node_service
from nestedset.nodes.router import router as nodes_router
from nestedset.nodes.service import NodeService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    settings = load_settings()

    db = await Database.connect(settings.db_path, schema=nodes_table_sql(settings.tree))
    logger.info("Serving table %s from %s", settings.tree.table, settings.db_path)

    service = NodeService(db, settings.tree)
    app.dependency_overrides[get_node_service] = lambda: service

    app.state.db = db
    yield

    await db.close()


app = FastAPI(
    title="nestedset",
    description="Nested-set (interval) trees stored in a flat SQLite table",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(nodes_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}
