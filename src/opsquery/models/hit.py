from opsquery.models.base import ToolPayload


class TableMatch(ToolPayload):
    """A stored table description ranked against a search query."""

    table_name: str
    schema_description: str
    similarity_score: float


__all__ = ["TableMatch"]
