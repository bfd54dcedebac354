from pydantic import Field, ValidationInfo, field_validator, model_validator

from opsquery.models.base import DomainModel, ensure_non_empty_text, ensure_unique

ENUM_MIN_VALUES = 2
ENUM_MAX_VALUES = 10


class ColumnInfo(DomainModel):
    name: str
    data_type: str
    is_nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False

    @field_validator("name", "data_type")
    @classmethod
    def _ensure_text(cls, value: str, info: ValidationInfo) -> str:
        return ensure_non_empty_text(value, info.field_name or "value")


class ForeignKeyInfo(DomainModel):
    column_name: str
    referenced_table: str
    referenced_column: str


class EnumValue(DomainModel):
    """Distinct values observed in a text column that looks like an enumeration."""

    column_name: str
    values: list[str] = Field(min_length=ENUM_MIN_VALUES, max_length=ENUM_MAX_VALUES)


class TableMetadata(DomainModel):
    """Snapshot of one warehouse table taken at extraction time."""

    table_name: str
    columns: list[ColumnInfo] = Field(default_factory=list)
    primary_keys: list[str] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyInfo] = Field(default_factory=list)
    enum_values: list[EnumValue] = Field(default_factory=list)

    @field_validator("table_name")
    @classmethod
    def _ensure_table_name(cls, value: str) -> str:
        return ensure_non_empty_text(value, "table_name")

    @model_validator(mode="after")
    def _validate_unique_columns(self) -> "TableMetadata":
        ensure_unique([column.name for column in self.columns], "column name")
        return self


__all__ = [
    "ColumnInfo",
    "EnumValue",
    "ForeignKeyInfo",
    "TableMetadata",
    "ENUM_MIN_VALUES",
    "ENUM_MAX_VALUES",
]
