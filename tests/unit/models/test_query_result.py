import pytest
from pydantic import ValidationError

from opsquery.models.hit import TableMatch
from opsquery.models.query import QueryResult


def test_ok_sets_row_count() -> None:
    result = QueryResult.ok([{"id": 1}, {"id": 2}])

    assert result.success is True
    assert result.row_count == 2
    assert result.error is None


def test_failure_carries_only_error() -> None:
    result = QueryResult.failure("boom")

    assert result.success is False
    assert result.rows is None
    assert result.row_count is None
    assert result.error == "boom"


def test_rejects_success_with_error() -> None:
    with pytest.raises(ValidationError):
        QueryResult(success=True, rows=[], row_count=0, error="boom")


def test_rejects_failure_with_rows() -> None:
    with pytest.raises(ValidationError):
        QueryResult(success=False, rows=[{"id": 1}], row_count=1, error="boom")


def test_rejects_failure_without_message() -> None:
    with pytest.raises(ValidationError):
        QueryResult(success=False)


def test_rejects_mismatched_row_count() -> None:
    with pytest.raises(ValidationError):
        QueryResult(success=True, rows=[{"id": 1}], row_count=3)


def test_payload_uses_camel_case_and_drops_empty_fields() -> None:
    assert QueryResult.ok([{"order_id": 7}]).to_payload() == {
        "success": True,
        "rows": [{"order_id": 7}],
        "rowCount": 1,
    }
    assert QueryResult.failure("nope").to_payload() == {"success": False, "error": "nope"}


def test_rows_preserve_column_order() -> None:
    result = QueryResult.ok([{"b": 1, "a": 2}])

    assert list(result.rows[0]) == ["b", "a"]


def test_table_match_payload() -> None:
    match = TableMatch(table_name="orders", schema_description="Table: orders", similarity_score=0.75)

    assert match.to_payload() == {
        "tableName": "orders",
        "schemaDescription": "Table: orders",
        "similarityScore": 0.75,
    }
