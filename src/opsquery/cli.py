"""Analytics assistant backend CLI.

Provides the schema indexing batch job plus the two assistant operations,
schema search and guarded read-only query execution, as commands.
"""

import asyncio
import json
import logging
import sys

import structlog
import typer
from pydantic import ValidationError

from opsquery.config import Settings, load_settings
from opsquery.errors import OpsQueryError
from opsquery.models.hit import TableMatch
from opsquery.models.query import QueryResult
from opsquery.services.factory import create_query_gate, open_schema_indexer, open_search_service
from opsquery.services.index import IndexingResult

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    logger_factory=lambda name: structlog.PrintLogger(file=sys.stderr),
    wrapper_class=structlog.BoundLogger,
    context_class=dict,
    cache_logger_on_first_use=True,
)


class _DropLz4Noise(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return "LZ4" not in record.getMessage()


# Handler filters also see records from the connector's child loggers.
_connector_handler = logging.StreamHandler(sys.stderr)
_connector_handler.addFilter(_DropLz4Noise())
_connector_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

_connector_logger = logging.getLogger("databricks.sql")
_connector_logger.setLevel(logging.ERROR)
_connector_logger.addHandler(_connector_handler)
_connector_logger.propagate = False

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="opsquery",
    help="""Schema search and read-only SQL over a Databricks warehouse.

Examples:

  # Rebuild the table description index
  uv run opsquery index

  # Find tables relevant to a question
  uv run opsquery search "customer orders by region"

  # Run a read-only query
  uv run opsquery query 'SELECT status, count(*) FROM orders GROUP BY status'""",
    rich_markup_mode="markdown",
)


def _require_settings() -> Settings:
    try:
        return load_settings()
    except ValidationError as e:
        missing = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
        logger.error("configuration_invalid", fields=missing)
        typer.echo(f"Missing or invalid configuration: {', '.join(missing)}", err=True)
        raise typer.Exit(1) from e


@app.command()
def index() -> None:
    """Rebuild the description store from every table in the configured schema."""
    settings = _require_settings()

    async def run_indexing() -> IndexingResult:
        async with open_schema_indexer(settings) as indexer:
            return await indexer.run(progress=typer.echo)

    try:
        result = asyncio.run(run_indexing())
    except OpsQueryError as e:
        logger.error("indexing_failed", error=str(e), error_type=type(e).__name__)
        typer.echo(f"Fatal error: {e}", err=True)
        raise typer.Exit(1) from e

    logger.info("indexing_finished", tables_indexed=result.tables_indexed)


@app.command()
def search(
    query: str = typer.Argument(
        ...,
        help="Natural language description of the tables you need",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print results as JSON",
    ),
) -> None:
    """Search table descriptions by semantic similarity."""
    settings = _require_settings()

    async def run_search() -> list[TableMatch]:
        async with open_search_service(settings) as service:
            return await service.search(query)

    try:
        matches = asyncio.run(run_search())
    except (OpsQueryError, ValueError) as e:
        logger.error("search_failed", error=str(e))
        typer.echo(f"Search failed: {e}", err=True)
        raise typer.Exit(1) from e

    if as_json:
        typer.echo(json.dumps({"tables": [match.to_payload() for match in matches]}, indent=2))
        return

    if not matches:
        typer.echo("No tables found. Run 'opsquery index' first.")
        return

    for rank, match in enumerate(matches, start=1):
        typer.echo(f"{rank}. {match.table_name} ({match.similarity_score:.4f})")
        typer.echo(match.schema_description)
        typer.echo("")


@app.command()
def query(
    sql_query: str = typer.Argument(
        ...,
        metavar="SQL",
        help="Read-only SQL statement to execute",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the result as JSON",
    ),
) -> None:
    """Execute a read-only SQL statement with a row cap and timeout."""
    settings = _require_settings()
    gate = create_query_gate(settings)
    result: QueryResult = asyncio.run(gate.execute(sql_query))

    if as_json:
        typer.echo(json.dumps(result.to_payload(), indent=2, default=str))
    elif result.success:
        for row in result.rows or []:
            typer.echo(json.dumps(row, default=str))
        typer.echo(f"{result.row_count} rows")
    else:
        typer.echo(result.error)

    if not result.success:
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from opsquery import __version__

    typer.echo(f"opsquery {__version__}")
