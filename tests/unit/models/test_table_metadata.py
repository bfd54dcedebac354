import pytest
from pydantic import ValidationError

from opsquery.models.metadata import ColumnInfo, EnumValue, ForeignKeyInfo, TableMetadata


def test_column_defaults_to_nullable_without_key_flags() -> None:
    column = ColumnInfo(name="id", data_type="bigint")

    assert column.is_nullable is True
    assert column.is_primary_key is False
    assert column.is_foreign_key is False


def test_column_rejects_blank_name() -> None:
    with pytest.raises(ValidationError):
        ColumnInfo(name="  ", data_type="string")


def test_table_metadata_defaults_optional_sections_to_empty() -> None:
    metadata = TableMetadata(table_name="orders", columns=[ColumnInfo(name="id", data_type="bigint")])

    assert metadata.primary_keys == []
    assert metadata.foreign_keys == []
    assert metadata.enum_values == []


def test_table_metadata_rejects_duplicate_column_names() -> None:
    with pytest.raises(ValidationError):
        TableMetadata(
            table_name="orders",
            columns=[
                ColumnInfo(name="id", data_type="bigint"),
                ColumnInfo(name="id", data_type="string"),
            ],
        )


def test_table_metadata_is_immutable() -> None:
    metadata = TableMetadata(table_name="orders")

    with pytest.raises(ValidationError):
        metadata.table_name = "customers"


def test_enum_value_requires_between_two_and_ten_values() -> None:
    EnumValue(column_name="status", values=["a", "b"])
    EnumValue(column_name="status", values=[str(i) for i in range(10)])

    with pytest.raises(ValidationError):
        EnumValue(column_name="status", values=["only"])
    with pytest.raises(ValidationError):
        EnumValue(column_name="status", values=[str(i) for i in range(11)])


def test_foreign_key_fields() -> None:
    fk = ForeignKeyInfo(column_name="customer_id", referenced_table="customers", referenced_column="id")

    assert fk.referenced_table == "customers"
    assert fk.referenced_column == "id"
