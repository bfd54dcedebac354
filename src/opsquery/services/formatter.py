"""Renders TableMetadata into the text that gets embedded.

The output is deterministic and order-preserving. Any change to this format
changes every embedding, so the description store must be rebuilt after one.
"""

from opsquery.models.metadata import ColumnInfo, EnumValue, ForeignKeyInfo, TableMetadata


def format_table_description(metadata: TableMetadata) -> str:
    """Render a table description, omitting sections that have no content."""
    lines = [f"Table: {metadata.table_name}"]
    lines.append(f"Columns: {', '.join(_describe_column(column) for column in metadata.columns)}")

    if metadata.foreign_keys:
        references = ", ".join(_describe_foreign_key(metadata.table_name, fk) for fk in metadata.foreign_keys)
        lines.append(f"Foreign Keys: {references}")

    if metadata.primary_keys:
        lines.append(f"Primary Keys: {', '.join(metadata.primary_keys)}")

    if metadata.enum_values:
        samples = "; ".join(_describe_enum(enum_value) for enum_value in metadata.enum_values)
        lines.append(f"Sample Values: {samples}")

    return "\n".join(lines)


def _describe_column(column: ColumnInfo) -> str:
    constraints: list[str] = []
    if column.is_primary_key:
        constraints.append("primary key")
    if column.is_foreign_key:
        constraints.append("foreign key")
    # primary keys are implicitly not null
    if not column.is_nullable and not column.is_primary_key:
        constraints.append("not null")
    suffix = f", {', '.join(constraints)}" if constraints else ""
    return f"{column.name} ({column.data_type}{suffix})"


def _describe_foreign_key(table_name: str, fk: ForeignKeyInfo) -> str:
    return f"{table_name}.{fk.column_name} → {fk.referenced_table}.{fk.referenced_column}"


def _describe_enum(enum_value: EnumValue) -> str:
    quoted = ", ".join(f"'{value}'" for value in enum_value.values)
    return f"{enum_value.column_name} can be {quoted}"
