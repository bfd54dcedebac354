"""Exception hierarchy shared by the warehouse, store and indexing services."""


class OpsQueryError(Exception):
    """Base class for errors raised by opsquery services."""


class WarehouseError(OpsQueryError):
    """The warehouse could not be reached or rejected a statement."""


class DescriptionStoreError(OpsQueryError):
    """The description store could not be reached or a transaction failed."""


class EmbeddingError(OpsQueryError):
    """The embedding provider failed or returned an unusable vector."""


class ExtractionError(OpsQueryError):
    """Required metadata for a table could not be extracted."""

    def __init__(self, table_name: str, message: str) -> None:
        super().__init__(f"{table_name}: {message}")
        self.table_name = table_name
