"""Embedding provider shared by the indexing and search paths.

Wraps a ChromaDB EmbeddingFunction. The OpenAI-backed function is synchronous,
so calls go through asyncio.to_thread(). Indexing and search must use the same
model or similarity scores are meaningless, hence the module-level constant.
"""

import asyncio
import warnings

import structlog
from chromadb.api.types import Documents, EmbeddingFunction
from chromadb.utils.embedding_functions import OpenAIEmbeddingFunction

from opsquery.errors import EmbeddingError
from opsquery.models.tables import EMBEDDING_DIMENSIONS

EMBEDDING_MODEL = "text-embedding-3-small"


class Embedder:
    """Turns text into a fixed-size embedding vector."""

    def __init__(
        self,
        embedding_function: EmbeddingFunction[Documents],
        dimensions: int = EMBEDDING_DIMENSIONS,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._embedding_function = embedding_function
        self._dimensions = dimensions
        self._logger = logger or structlog.get_logger(__name__)

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: If the provider fails or returns a vector of the
                wrong size.
        """
        try:
            embeddings = await asyncio.to_thread(self._embedding_function, [text])
        except Exception as e:
            raise EmbeddingError(f"Embedding provider failed: {e}") from e

        vector = [float(value) for value in embeddings[0]]
        if len(vector) != self._dimensions:
            raise EmbeddingError(f"Expected {self._dimensions} dimensions, got {len(vector)}")

        self._logger.debug("text_embedded", characters=len(text), dimensions=len(vector))
        return vector


def create_openai_embedder(
    api_key: str,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> Embedder:
    """Create an Embedder backed by the OpenAI embeddings API."""
    with warnings.catch_warnings():
        # chromadb warns about passing the key directly
        warnings.simplefilter("ignore", DeprecationWarning)
        embedding_function = OpenAIEmbeddingFunction(api_key=api_key, model_name=EMBEDDING_MODEL)
    return Embedder(embedding_function=embedding_function, logger=logger)
