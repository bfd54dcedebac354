"""SQLModel table definitions for the description store.

The store holds one row per warehouse table: the rendered description and its
embedding. Rows are disposable and rebuilt in full by every indexing run, so
the surrogate ``id`` only records insertion order.

The embedding column uses pgvector's ``Vector`` type. On PostgreSQL it maps to
the ``vector`` extension type and supports cosine distance ordering; on SQLite
it is stored as its text form, which is enough for the unit tests.
"""

from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column
from sqlmodel import Field, SQLModel

EMBEDDING_DIMENSIONS = 1536


class SchemaEmbeddingRecord(SQLModel, table=True):
    """One embedded table description."""

    __tablename__ = "schema_embeddings"

    id: int | None = Field(default=None, primary_key=True)
    table_name: str = Field(index=True)
    schema_description: str
    embedding: Any = Field(sa_column=Column(Vector(EMBEDDING_DIMENSIONS), nullable=False))
