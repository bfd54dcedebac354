"""Warehouse access through SQLAlchemy.

Databricks is reached through the ``databricks`` SQLAlchemy dialect; any other
SQLAlchemy URL works for the generic parts. The engine is synchronous, so we
use asyncio.to_thread() to wrap blocking operations and keep an async interface
consistent with the other services. Each ``connect()`` call builds its own
unpooled engine and connection; nothing is shared between callers.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import URL, Connection, create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from opsquery.errors import WarehouseError


def quote_identifier(*parts: str) -> str:
    """Render a dotted identifier with each part backtick-quoted."""
    return ".".join(f"`{part.replace('`', '``')}`" for part in parts)


def build_databricks_url(host: str, http_path: str, access_token: str, catalog: str, schema: str) -> URL:
    """Build a SQLAlchemy URL for the ``databricks`` dialect."""
    return URL.create(
        "databricks",
        username="token",
        password=access_token,
        host=host,
        query={"http_path": http_path, "catalog": catalog, "schema": schema},
    )


class WarehouseSession:
    """Runs statements on one open warehouse connection."""

    def __init__(
        self,
        connection: Connection,
        catalog: str,
        schema: str,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._connection = connection
        self._active_cursor: Any = None
        self.catalog = catalog
        self.schema = schema
        self._logger = logger or structlog.get_logger(__name__)

    def qualify(self, table_name: str) -> str:
        """Return the fully qualified, quoted name of a table in this schema."""
        return quote_identifier(self.catalog, self.schema, table_name)

    async def execute(
        self,
        statement: str,
        max_rows: int,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a statement and fetch at most ``max_rows`` rows.

        Args:
            statement: SQL text to run.
            max_rows: Upper bound on the rows fetched from the result.
            timeout: Optional wall-clock limit in seconds for execute and fetch.

        Returns:
            Rows as dicts keyed by column name, in column order.

        Raises:
            WarehouseError: If the warehouse rejects the statement or the
                timeout elapses.
        """
        call = asyncio.to_thread(self._execute_blocking, statement, max_rows)
        try:
            if timeout is None:
                rows = await call
            else:
                rows = await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as e:
            await self._cancel_running_statement()
            raise WarehouseError(f"Statement timed out after {timeout:g} seconds") from e
        except SQLAlchemyError as e:
            raise WarehouseError(str(e)) from e

        self._logger.debug("statement_executed", row_count=len(rows))
        return rows

    def _execute_blocking(self, statement: str, max_rows: int) -> list[dict[str, Any]]:
        try:
            result = self._connection.exec_driver_sql(statement)
            try:
                if not result.returns_rows:
                    return []
                return [dict(row) for row in result.mappings().fetchmany(max_rows)]
            finally:
                result.close()
        finally:
            self._active_cursor = None

    def _track_cursor(self, conn, cursor, statement, parameters, context, executemany) -> None:
        self._active_cursor = cursor

    async def _cancel_running_statement(self) -> None:
        """Ask the driver to cancel the statement a timed-out call left running.

        Without a cancel the worker thread stays busy until the warehouse
        finishes, and interpreter shutdown waits for it.
        """
        cancel = getattr(self._active_cursor, "cancel", None)
        if cancel is None:
            self._logger.warning("statement_not_cancellable")
            return
        try:
            await asyncio.to_thread(cancel)
        except Exception as e:
            self._logger.warning("statement_cancel_failed", error=str(e))
        else:
            self._logger.info("statement_cancelled")


class Warehouse:
    """Opens connections to the analytical warehouse.

    ``connect_args`` are passed to the DBAPI driver on every connection;
    tests use them to configure SQLite.
    """

    def __init__(
        self,
        url: str | URL,
        catalog: str,
        schema: str,
        connect_args: dict[str, Any] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._url = url
        self.catalog = catalog
        self.schema = schema
        self._connect_args = connect_args or {}
        self._logger = logger or structlog.get_logger(__name__)

    @asynccontextmanager
    async def connect(self, statement_timeout: int | None = None) -> AsyncIterator[WarehouseSession]:
        """Open a connection scoped to the ``async with`` block.

        A close failure while another error is propagating is logged and
        dropped so the original error surfaces.

        Args:
            statement_timeout: Optional session-level STATEMENT_TIMEOUT in
                seconds, applied on Databricks connections.

        Yields:
            A WarehouseSession bound to the configured catalog and schema.

        Raises:
            WarehouseError: If the connection cannot be opened.
        """
        try:
            engine = create_engine(
                self._url,
                poolclass=NullPool,
                connect_args=self._session_connect_args(statement_timeout),
            )
        except SQLAlchemyError as e:
            raise WarehouseError(f"Could not configure warehouse engine: {e}") from e

        try:
            connection = await asyncio.to_thread(engine.connect)
        except SQLAlchemyError as e:
            engine.dispose()
            raise WarehouseError(f"Could not connect to warehouse: {e}") from e

        self._logger.debug("warehouse_connected", catalog=self.catalog, schema=self.schema)
        session = WarehouseSession(connection, self.catalog, self.schema, logger=self._logger)
        event.listen(connection, "before_cursor_execute", session._track_cursor)
        try:
            yield session
        except BaseException:
            try:
                await asyncio.to_thread(self._close, engine, connection)
            except Exception as close_error:
                self._logger.debug("warehouse_close_failed", error=str(close_error))
            raise
        else:
            await asyncio.to_thread(self._close, engine, connection)
            self._logger.debug("warehouse_closed")

    def _session_connect_args(self, statement_timeout: int | None) -> dict[str, Any]:
        connect_args = dict(self._connect_args)
        if statement_timeout is not None and self._is_databricks():
            session_configuration = dict(connect_args.get("session_configuration") or {})
            session_configuration["STATEMENT_TIMEOUT"] = str(statement_timeout)
            connect_args["session_configuration"] = session_configuration
        return connect_args

    def _is_databricks(self) -> bool:
        drivername = self._url.drivername if isinstance(self._url, URL) else str(self._url).split(":", 1)[0]
        return drivername.startswith("databricks")

    @staticmethod
    def _close(engine: Any, connection: Connection) -> None:
        try:
            connection.close()
        finally:
            engine.dispose()
