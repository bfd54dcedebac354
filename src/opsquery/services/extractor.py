"""Metadata extraction from warehouse catalog output.

The parsing helpers are plain functions over catalog rows so that an adapter
for another warehouse can reuse them. ``DatabricksMetadataExtractor`` issues
the Databricks-specific catalog statements and assembles a TableMetadata.
"""

import asyncio
import re
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

import structlog
from pydantic import ValidationError

from opsquery.errors import ExtractionError, WarehouseError
from opsquery.models.metadata import (
    ENUM_MAX_VALUES,
    ENUM_MIN_VALUES,
    ColumnInfo,
    EnumValue,
    ForeignKeyInfo,
    TableMetadata,
)
from opsquery.services.warehouse import Warehouse, WarehouseSession, quote_identifier

CATALOG_MAX_ROWS = 10000
DISTINCT_PROBE_LIMIT = 20
TEXT_TYPES = frozenset({"string", "text", "varchar", "char"})
DETAIL_SECTION_MARKER = "# Detailed Table Information"
PRIMARY_KEY_PROPERTIES = ("primaryKey", "primary_key")

_FOREIGN_KEY_PATTERN = re.compile(r"(\w+)\s*->\s*(\w+)\.(\w+)")

Row = Mapping[str, Any]


class MetadataExtractor(Protocol):
    """Produces table listings and TableMetadata for one warehouse schema."""

    async def list_tables(self) -> list[str]: ...

    async def extract(self, table_name: str) -> TableMetadata: ...


def parse_columns(rows: Iterable[Row]) -> list[ColumnInfo]:
    """Read the column section of a DESCRIBE TABLE EXTENDED dump.

    The section ends at the first row with no name or a name starting with
    ``#``. Whitespace-only names inside the section are skipped.
    """
    columns: list[ColumnInfo] = []
    for row in rows:
        name = row.get("col_name")
        if not name or name.startswith("#"):
            break
        if not name.strip():
            continue
        columns.append(ColumnInfo(name=name, data_type=row.get("data_type") or "string"))
    return columns


def parse_primary_keys(rows: Iterable[Row]) -> list[str]:
    """Read primary key column names from SHOW TBLPROPERTIES output."""
    for row in rows:
        if row.get("key") in PRIMARY_KEY_PROPERTIES:
            value = row.get("value") or ""
            return [column.strip() for column in value.split(",") if column.strip()]
    return []


def parse_foreign_keys(rows: Iterable[Row]) -> list[ForeignKeyInfo]:
    """Read ``column -> table.column`` annotations from the detail section.

    Lines that mention a foreign key but do not match the pattern are skipped.
    """
    foreign_keys: list[ForeignKeyInfo] = []
    in_detail_section = False
    for row in rows:
        name = row.get("col_name") or ""
        if name == DETAIL_SECTION_MARKER:
            in_detail_section = True
            continue
        if not in_detail_section or "Foreign Key" not in name:
            continue
        match = _FOREIGN_KEY_PATTERN.search(row.get("data_type") or "")
        if match:
            foreign_keys.append(
                ForeignKeyInfo(
                    column_name=match.group(1),
                    referenced_table=match.group(2),
                    referenced_column=match.group(3),
                )
            )
    return foreign_keys


def select_enum_candidates(columns: Iterable[ColumnInfo]) -> list[ColumnInfo]:
    """Return the text-typed columns worth probing for enumeration values."""
    return [column for column in columns if column.data_type.lower() in TEXT_TYPES]


def build_enum_value(column_name: str, observed: Iterable[Any]) -> EnumValue | None:
    """Build an EnumValue when the non-null distinct values fall in the enum bounds."""
    values = sorted({str(value) for value in observed if value is not None})
    if ENUM_MIN_VALUES <= len(values) <= ENUM_MAX_VALUES:
        return EnumValue(column_name=column_name, values=values)
    return None


def apply_key_flags(
    columns: list[ColumnInfo],
    primary_keys: list[str],
    foreign_keys: list[ForeignKeyInfo],
) -> list[ColumnInfo]:
    """Mark columns that appear in the primary or foreign key lists."""
    pk_names = set(primary_keys)
    fk_names = {fk.column_name for fk in foreign_keys}
    return [
        column.model_copy(
            update={
                "is_primary_key": column.name in pk_names,
                "is_foreign_key": column.name in fk_names,
            }
        )
        for column in columns
    ]


class DatabricksMetadataExtractor:
    """Extracts TableMetadata from a Databricks catalog schema.

    The table and column listings run on the given session. The column
    listing is required: if it fails, the table cannot be described and
    ExtractionError is raised. The primary key, foreign key and enumeration
    probes then run concurrently, each on its own warehouse connection since
    a connection serves one statement at a time. Each probe degrades to an
    empty result on failure without affecting the others.
    """

    def __init__(
        self,
        session: WarehouseSession,
        warehouse: Warehouse,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._session = session
        self._warehouse = warehouse
        self._logger = logger or structlog.get_logger(__name__)

    async def list_tables(self) -> list[str]:
        """List table names in the session's catalog and schema.

        Raises:
            WarehouseError: If the listing fails or lacks a ``tableName`` column.
        """
        schema_name = quote_identifier(self._session.catalog, self._session.schema)
        rows = await self._session.execute(f"SHOW TABLES IN {schema_name}", max_rows=CATALOG_MAX_ROWS)
        try:
            return [row["tableName"] for row in rows]
        except KeyError as e:
            raise WarehouseError(f"SHOW TABLES output has no {e} column") from e

    async def extract(self, table_name: str) -> TableMetadata:
        """Extract columns, keys and enumeration hints for one table.

        Raises:
            ExtractionError: If the column listing cannot be read or the
                catalog output does not describe a valid table.
        """
        try:
            columns = parse_columns(await self._describe(self._session, table_name))
        except WarehouseError as e:
            raise ExtractionError(table_name, f"column listing failed: {e}") from e
        except ValidationError as e:
            raise ExtractionError(table_name, f"invalid column listing: {e}") from e

        primary_keys, foreign_keys, enum_values = await asyncio.gather(
            self._get_primary_keys(table_name),
            self._get_foreign_keys(table_name),
            self._detect_enum_values(table_name, columns),
        )

        try:
            metadata = TableMetadata(
                table_name=table_name,
                columns=apply_key_flags(columns, primary_keys, foreign_keys),
                primary_keys=primary_keys,
                foreign_keys=foreign_keys,
                enum_values=enum_values,
            )
        except ValidationError as e:
            raise ExtractionError(table_name, f"invalid table metadata: {e}") from e

        self._logger.debug(
            "table_extracted",
            table_name=table_name,
            column_count=len(metadata.columns),
            primary_key_count=len(primary_keys),
            foreign_key_count=len(foreign_keys),
            enum_count=len(enum_values),
        )
        return metadata

    async def _describe(self, session: WarehouseSession, table_name: str) -> list[dict[str, Any]]:
        return await session.execute(
            f"DESCRIBE TABLE EXTENDED {session.qualify(table_name)}",
            max_rows=CATALOG_MAX_ROWS,
        )

    async def _get_primary_keys(self, table_name: str) -> list[str]:
        try:
            async with self._warehouse.connect() as session:
                rows = await session.execute(
                    f"SHOW TBLPROPERTIES {session.qualify(table_name)}",
                    max_rows=CATALOG_MAX_ROWS,
                )
        except WarehouseError as e:
            self._log_probe_failure(table_name, "primary_keys", e)
            return []
        return parse_primary_keys(rows)

    async def _get_foreign_keys(self, table_name: str) -> list[ForeignKeyInfo]:
        try:
            async with self._warehouse.connect() as session:
                rows = await self._describe(session, table_name)
        except WarehouseError as e:
            self._log_probe_failure(table_name, "foreign_keys", e)
            return []
        return parse_foreign_keys(rows)

    async def _detect_enum_values(self, table_name: str, columns: list[ColumnInfo]) -> list[EnumValue]:
        candidates = select_enum_candidates(columns)
        if not candidates:
            return []
        try:
            async with self._warehouse.connect() as session:
                return await self._probe_enum_columns(session, table_name, candidates)
        except WarehouseError as e:
            self._log_probe_failure(table_name, "enum_values", e)
            return []

    async def _probe_enum_columns(
        self,
        session: WarehouseSession,
        table_name: str,
        candidates: list[ColumnInfo],
    ) -> list[EnumValue]:
        enum_values: list[EnumValue] = []
        for column in candidates:
            quoted = quote_identifier(column.name)
            statement = (
                f"SELECT DISTINCT {quoted} AS value FROM {session.qualify(table_name)} "
                f"WHERE {quoted} IS NOT NULL LIMIT {DISTINCT_PROBE_LIMIT}"
            )
            try:
                rows = await session.execute(statement, max_rows=DISTINCT_PROBE_LIMIT)
            except WarehouseError as e:
                self._log_probe_failure(table_name, f"enum_values:{column.name}", e)
                continue
            enum_value = build_enum_value(column.name, (row.get("value") for row in rows))
            if enum_value is not None:
                enum_values.append(enum_value)
        return enum_values

    def _log_probe_failure(self, table_name: str, probe: str, error: Exception) -> None:
        self._logger.warning(
            "metadata_probe_failed",
            table_name=table_name,
            probe=probe,
            error=str(error),
        )
