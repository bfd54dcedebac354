"""Guarded execution of read-only SQL against the warehouse.

The read-only check is lexical: a whole-word, case-insensitive scan for
mutating keywords. It is not a SQL parser. The rejection messages are part of
the contract because the assistant uses them to correct its next attempt.
"""

import re

import structlog

from opsquery.models.query import QueryResult
from opsquery.services.warehouse import Warehouse

MAX_ROWS = 500
QUERY_TIMEOUT_SECONDS = 30

DISALLOWED_OPERATIONS = (
    "insert",
    "update",
    "delete",
    "drop",
    "create",
    "alter",
    "truncate",
    "grant",
    "revoke",
    "copy",
    "call",
    "do",
)

_OPERATION_PATTERNS = tuple(
    (operation, re.compile(rf"\b{operation}\b", re.IGNORECASE)) for operation in DISALLOWED_OPERATIONS
)
_TRAILING_TERMINATOR = re.compile(r";?\s*$")

QUERY_TOOL_DESCRIPTION = f"""
Executes a read-only SQL query against the operational database (Databricks).
Supports SELECT, WITH (CTEs), EXPLAIN, TABLE, and other read operations.
Write operations (INSERT, UPDATE, DELETE, DROP, etc.) are blocked.
Results are capped at {MAX_ROWS} rows and queries timeout after {QUERY_TIMEOUT_SECONDS} seconds.
Returns the query results on success, or an error message with details on failure.
""".strip()


def find_disallowed_operation(sql_query: str) -> str | None:
    """Return the first mutating keyword found in ``sql_query``, uppercased."""
    for operation, pattern in _OPERATION_PATTERNS:
        if pattern.search(sql_query):
            return operation.upper()
    return None


def ensure_row_limit(sql_query: str, max_rows: int = MAX_ROWS) -> str:
    """Append ``LIMIT max_rows`` unless the text already mentions limit or fetch."""
    normalized = sql_query.lower()
    if "limit" in normalized or "fetch" in normalized:
        return sql_query
    return f"{_TRAILING_TERMINATOR.sub('', sql_query.rstrip())} LIMIT {max_rows}"


class QueryGate:
    """Validates and runs a single read-only statement.

    Every call opens its own warehouse connection and closes it before
    returning. ``execute`` never raises; failures come back as a
    QueryResult with ``success=False``.
    """

    def __init__(
        self,
        warehouse: Warehouse,
        max_rows: int = MAX_ROWS,
        timeout_seconds: int = QUERY_TIMEOUT_SECONDS,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._warehouse = warehouse
        self._max_rows = max_rows
        self._timeout_seconds = timeout_seconds
        self._logger = logger or structlog.get_logger(__name__)

    async def execute(self, sql_query: str) -> QueryResult:
        """Run ``sql_query`` if it passes the read-only check."""
        operation = find_disallowed_operation(sql_query)
        if operation is not None:
            self._logger.warning("query_rejected", operation=operation)
            return QueryResult.failure(
                f"{operation} operations are not allowed. Only read-only queries are permitted."
            )

        statement = ensure_row_limit(sql_query, self._max_rows)
        try:
            async with self._warehouse.connect(statement_timeout=self._timeout_seconds) as session:
                raw_rows = await session.execute(
                    statement,
                    max_rows=self._max_rows,
                    timeout=self._timeout_seconds,
                )
        except Exception as e:
            message = str(e) or "Unknown Error Occurred"
            self._logger.warning("query_failed", error=message)
            return QueryResult.failure(f"Query execution failed: {message}")

        rows = raw_rows[: self._max_rows]
        self._logger.info("query_executed", row_count=len(rows))
        return QueryResult.ok(rows)
