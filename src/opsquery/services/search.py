"""Similarity search over stored table descriptions."""

import structlog

from opsquery.models.base import ensure_non_empty_text
from opsquery.models.hit import TableMatch
from opsquery.services.description_store import DEFAULT_SEARCH_LIMIT, DescriptionStore
from opsquery.services.embedder import Embedder

SEARCH_TOOL_DESCRIPTION = f"""
Vector similarity search over operational database table schemas.
Embeds the query and returns top {DEFAULT_SEARCH_LIMIT} tables by cosine similarity.
Each result includes the table name, full schema description (columns, types, keys, relationships), and similarity score.
""".strip()


class SchemaSearchService:
    """Finds the tables whose descriptions best match a natural-language query."""

    def __init__(
        self,
        store: DescriptionStore,
        embedder: Embedder,
        limit: int = DEFAULT_SEARCH_LIMIT,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._limit = limit
        self._logger = logger or structlog.get_logger(__name__)

    async def search(self, query: str) -> list[TableMatch]:
        """Embed ``query`` and return the best matching tables, best first.

        Raises:
            ValueError: If the query is blank.
            EmbeddingError: If the query cannot be embedded.
            DescriptionStoreError: If the store cannot be queried.
        """
        ensure_non_empty_text(query, "query")
        embedding = await self._embedder.embed(query)
        matches = await self._store.search(embedding, limit=self._limit)

        self._logger.info(
            "schema_search_completed",
            result_count=len(matches),
            top_table=matches[0].table_name if matches else None,
        )
        return matches
