from opsquery.models.hit import TableMatch
from opsquery.models.metadata import ColumnInfo, EnumValue, ForeignKeyInfo, TableMetadata
from opsquery.models.query import QueryResult

__all__ = [
    "ColumnInfo",
    "EnumValue",
    "ForeignKeyInfo",
    "TableMetadata",
    "QueryResult",
    "TableMatch",
]
