"""Description store persisting embedded table descriptions.

Uses SQLAlchemy's native async support: asyncpg with the pgvector extension
in production, aiosqlite for tests. The store is rebuilt wholesale by the
indexer and read by similarity search.
"""

from collections.abc import Sequence

import structlog
from sqlalchemy import Select, delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlmodel import SQLModel

from opsquery.errors import DescriptionStoreError
from opsquery.models.hit import TableMatch
from opsquery.models.tables import SchemaEmbeddingRecord

DEFAULT_SEARCH_LIMIT = 10


def build_search_statement(embedding: Sequence[float], limit: int = DEFAULT_SEARCH_LIMIT) -> Select:
    """Select the ``limit`` records most similar to ``embedding``.

    Similarity is ``1 - cosine_distance``; ties keep insertion order.
    """
    similarity = (1 - SchemaEmbeddingRecord.embedding.cosine_distance(list(embedding))).label("similarity_score")
    return (
        select(
            SchemaEmbeddingRecord.table_name,
            SchemaEmbeddingRecord.schema_description,
            similarity,
        )
        .order_by(similarity.desc(), SchemaEmbeddingRecord.id)
        .limit(limit)
    )


class DescriptionStore:
    """Persists SchemaEmbeddingRecord rows via SQLModel.

    Accepts an AsyncEngine via dependency injection so tests can use an
    in-memory SQLite database.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._logger = logger or structlog.get_logger(__name__)

    async def initialize_schema(self) -> None:
        """Create the vector extension (on PostgreSQL) and the table if missing."""
        try:
            async with self._engine.begin() as conn:
                if conn.dialect.name == "postgresql":
                    await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                await conn.run_sync(SQLModel.metadata.create_all)
        except SQLAlchemyError as e:
            raise DescriptionStoreError(f"Could not initialize description store: {e}") from e
        self._logger.info("description_store_initialized")

    async def ping(self) -> None:
        """Verify the store is reachable."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise DescriptionStoreError(f"Could not connect to description store: {e}") from e

    async def truncate(self) -> None:
        """Delete every stored record."""
        try:
            async with AsyncSession(self._engine) as session:
                await session.execute(delete(SchemaEmbeddingRecord))
                await session.commit()
        except SQLAlchemyError as e:
            raise DescriptionStoreError(f"Could not clear description store: {e}") from e
        self._logger.info("description_store_truncated")

    async def insert_all(self, records: list[SchemaEmbeddingRecord]) -> None:
        """Insert records in a single transaction; either all land or none do."""
        if not records:
            return

        try:
            async with AsyncSession(self._engine) as session:
                async with session.begin():
                    session.add_all(records)
        except SQLAlchemyError as e:
            raise DescriptionStoreError(f"Could not insert {len(records)} records: {e}") from e
        self._logger.info("description_store_populated", record_count=len(records))

    async def count(self) -> int:
        """Return the number of stored records."""
        async with AsyncSession(self._engine) as session:
            result = await session.execute(select(func.count()).select_from(SchemaEmbeddingRecord))
            return result.scalar_one()

    async def list_table_names(self) -> list[str]:
        """Return stored table names in insertion order."""
        async with AsyncSession(self._engine) as session:
            result = await session.execute(select(SchemaEmbeddingRecord.table_name).order_by(SchemaEmbeddingRecord.id))
            return list(result.scalars().all())

    async def search(self, embedding: Sequence[float], limit: int = DEFAULT_SEARCH_LIMIT) -> list[TableMatch]:
        """Rank stored descriptions by cosine similarity to ``embedding``.

        Requires PostgreSQL with pgvector.
        """
        try:
            async with AsyncSession(self._engine) as session:
                result = await session.execute(build_search_statement(embedding, limit))
                rows = result.all()
        except SQLAlchemyError as e:
            raise DescriptionStoreError(f"Similarity search failed: {e}") from e

        return [
            TableMatch(
                table_name=row.table_name,
                schema_description=row.schema_description,
                similarity_score=float(row.similarity_score),
            )
            for row in rows
        ]

    async def dispose(self) -> None:
        """Release pooled connections."""
        await self._engine.dispose()


def create_description_engine(database_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine for the description store.

    Args:
        database_url: Async SQLAlchemy URL, e.g. ``postgresql+asyncpg://...``
            or ``sqlite+aiosqlite:///:memory:``.

    Returns:
        AsyncEngine instance.
    """
    return create_async_engine(database_url, pool_pre_ping=True)
