from typing import Any

from pydantic import Field, model_validator

from opsquery.models.base import ToolPayload


class QueryResult(ToolPayload):
    """Outcome of a guarded query: either rows or an error message, never both."""

    success: bool
    rows: list[dict[str, Any]] | None = None
    row_count: int | None = Field(default=None, ge=0)
    error: str | None = None

    @classmethod
    def ok(cls, rows: list[dict[str, Any]]) -> "QueryResult":
        return cls(success=True, rows=rows, row_count=len(rows))

    @classmethod
    def failure(cls, error: str) -> "QueryResult":
        return cls(success=False, error=error)

    @model_validator(mode="after")
    def _validate_discriminant(self) -> "QueryResult":
        if self.success:
            if self.error is not None:
                raise ValueError("successful result cannot carry an error")
            if self.rows is None or self.row_count != len(self.rows):
                raise ValueError("row_count must match the number of rows")
        else:
            if not self.error:
                raise ValueError("failed result must carry an error message")
            if self.rows is not None or self.row_count is not None:
                raise ValueError("failed result cannot carry rows")
        return self


__all__ = ["QueryResult"]
