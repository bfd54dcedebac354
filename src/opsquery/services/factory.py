"""Factory functions for creating and wiring services from settings.

Services that hold a description store engine are handed out through async
context managers so the engine is disposed on every exit path.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy import URL

from opsquery.config import Settings
from opsquery.services.description_store import DescriptionStore, create_description_engine
from opsquery.services.embedder import create_openai_embedder
from opsquery.services.index import SchemaIndexer
from opsquery.services.query_gate import QueryGate
from opsquery.services.search import SchemaSearchService
from opsquery.services.warehouse import Warehouse, build_databricks_url


def resolve_warehouse_url(settings: Settings) -> str | URL:
    """Return WAREHOUSE_URL if set, otherwise a Databricks URL built from settings."""
    if settings.WAREHOUSE_URL:
        return settings.WAREHOUSE_URL
    return build_databricks_url(
        host=settings.DATABRICKS_HOST,
        http_path=settings.DATABRICKS_HTTP_PATH,
        access_token=settings.DATABRICKS_TOKEN.get_secret_value(),
        catalog=settings.DATABRICKS_CATALOG,
        schema=settings.DATABRICKS_SCHEMA,
    )


def create_warehouse(settings: Settings) -> Warehouse:
    """Create a Warehouse for the configured catalog and schema."""
    return Warehouse(
        url=resolve_warehouse_url(settings),
        catalog=settings.DATABRICKS_CATALOG,
        schema=settings.DATABRICKS_SCHEMA,
        logger=structlog.get_logger("opsquery.services.warehouse"),
    )


def create_description_store(settings: Settings) -> DescriptionStore:
    """Create a DescriptionStore on the configured database URL."""
    engine = create_description_engine(settings.DATABASE_URL)
    return DescriptionStore(engine=engine, logger=structlog.get_logger("opsquery.services.description_store"))


def create_query_gate(settings: Settings) -> QueryGate:
    """Create a QueryGate; it opens its own connection per call."""
    return QueryGate(warehouse=create_warehouse(settings))


@asynccontextmanager
async def open_schema_indexer(settings: Settings) -> AsyncIterator[SchemaIndexer]:
    """Yield a SchemaIndexer and dispose its store engine afterwards."""
    store = create_description_store(settings)
    try:
        yield SchemaIndexer(
            warehouse=create_warehouse(settings),
            store=store,
            embedder=create_openai_embedder(settings.OPENAI_API_KEY.get_secret_value()),
        )
    finally:
        await store.dispose()


@asynccontextmanager
async def open_search_service(settings: Settings) -> AsyncIterator[SchemaSearchService]:
    """Yield a SchemaSearchService and dispose its store engine afterwards."""
    store = create_description_store(settings)
    try:
        yield SchemaSearchService(
            store=store,
            embedder=create_openai_embedder(settings.OPENAI_API_KEY.get_secret_value()),
        )
    finally:
        await store.dispose()
