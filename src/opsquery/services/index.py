"""Indexing service that rebuilds the description store from the warehouse.

Coordinates schema listing, metadata extraction, description rendering,
embedding and persistence. The run is fail-fast: any per-table failure aborts
the whole run before any record is inserted. The store was already truncated
at that point, so a failed run leaves it empty until the next successful one.
"""

from collections.abc import Callable

import structlog
from pydantic import BaseModel, Field

from opsquery.models.tables import SchemaEmbeddingRecord
from opsquery.services.description_store import DescriptionStore
from opsquery.services.embedder import Embedder
from opsquery.services.extractor import DatabricksMetadataExtractor, MetadataExtractor
from opsquery.services.formatter import format_table_description
from opsquery.services.warehouse import Warehouse, WarehouseSession

ProgressCallback = Callable[[str], None]
ExtractorFactory = Callable[[WarehouseSession, Warehouse], MetadataExtractor]


class IndexingResult(BaseModel):
    """Result of an indexing run."""

    tables_indexed: int = Field(ge=0)
    table_names: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


def _ignore_progress(message: str) -> None:
    pass


class SchemaIndexer:
    """Rebuilds the description store for one warehouse schema.

    All dependencies are injected via constructor for testability. The
    extractor factory lets another warehouse's catalog adapter stand in for
    the Databricks one without touching the pipeline.
    """

    def __init__(
        self,
        warehouse: Warehouse,
        store: DescriptionStore,
        embedder: Embedder,
        extractor_factory: ExtractorFactory | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._warehouse = warehouse
        self._store = store
        self._embedder = embedder
        self._extractor_factory = extractor_factory or DatabricksMetadataExtractor
        self._logger = logger or structlog.get_logger(__name__)

    async def run(self, progress: ProgressCallback | None = None) -> IndexingResult:
        """Run a full rebuild.

        Both the warehouse and the store are verified before the store is
        truncated. Tables are processed one at a time, and the resulting
        records are inserted in a single transaction at the end.

        Args:
            progress: Optional callback receiving human-readable progress lines.

        Returns:
            IndexingResult naming the indexed tables.

        Raises:
            OpsQueryError: On any warehouse, extraction, embedding or store
                failure. The warehouse connection is closed on every path.
        """
        report = progress or _ignore_progress

        async with self._warehouse.connect() as session:
            report("Connected to Databricks.")

            await self._store.ping()
            await self._store.initialize_schema()
            report("Connected to description store.")

            await self._store.truncate()
            report("Cleared existing embeddings.")

            extractor = self._extractor_factory(session, self._warehouse)
            table_names = await extractor.list_tables()
            report(f"Found {len(table_names)} tables to process.")
            self._logger.info(
                "indexing_started",
                catalog=session.catalog,
                schema=session.schema,
                table_count=len(table_names),
            )

            records: list[SchemaEmbeddingRecord] = []
            for position, table_name in enumerate(table_names, start=1):
                records.append(await self._index_table(extractor, table_name))
                report(f"[{position}/{len(table_names)}] {table_name}... done")

        await self._store.insert_all(records)
        report(f"Inserted {len(records)} embeddings.")

        self._logger.info("indexing_completed", tables_indexed=len(records))
        return IndexingResult(
            tables_indexed=len(records),
            table_names=[record.table_name for record in records],
        )

    async def _index_table(self, extractor: MetadataExtractor, table_name: str) -> SchemaEmbeddingRecord:
        metadata = await extractor.extract(table_name)
        description = format_table_description(metadata)
        embedding = await self._embedder.embed(description)

        self._logger.debug(
            "table_indexed",
            table_name=table_name,
            description_length=len(description),
        )
        return SchemaEmbeddingRecord(
            table_name=table_name,
            schema_description=description,
            embedding=embedding,
        )
