"""Tests for the opsquery command line."""

import io
import json
import logging
from collections.abc import Iterator

import pytest
from typer.testing import CliRunner

from opsquery import cli
from opsquery.cli import app

runner = CliRunner()

REQUIRED_ENV = {
    "OPSQUERY_DATABRICKS_HOST": "adb-1.cloud.databricks.com",
    "OPSQUERY_DATABRICKS_HTTP_PATH": "/sql/1.0/warehouses/abc",
    "OPSQUERY_DATABRICKS_TOKEN": "dapi-secret",
    "OPSQUERY_DATABRICKS_CATALOG": "main",
    "OPSQUERY_DATABRICKS_SCHEMA": "ops",
    "OPSQUERY_DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "OPSQUERY_OPENAI_API_KEY": "sk-test",
}


@pytest.fixture
def configured(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    for name, value in REQUIRED_ENV.items():
        monkeypatch.setenv(name, value)


@pytest.fixture
def unconfigured(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    for name in REQUIRED_ENV:
        monkeypatch.delenv(name, raising=False)


class TestQueryCommand:
    """Tests for `opsquery query`."""

    def test_rejects_mutating_statement(self, configured: None) -> None:
        result = runner.invoke(app, ["query", "DROP TABLE orders"])

        assert result.exit_code == 1
        assert "DROP operations are not allowed. Only read-only queries are permitted." in result.output

    def test_json_failure_payload(self, configured: None) -> None:
        result = runner.invoke(app, ["query", "--json", "DELETE FROM orders"])

        # log lines precede the payload when stderr is mixed into stdout
        payload = json.loads(result.stdout[result.stdout.index("{\n") :])
        assert payload == {
            "success": False,
            "error": "DELETE operations are not allowed. Only read-only queries are permitted.",
        }

    def test_runs_against_override_warehouse(self, configured: None, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
        monkeypatch.setenv("OPSQUERY_WAREHOUSE_URL", f"sqlite:///{tmp_path / 'warehouse.db'}")

        result = runner.invoke(app, ["query", "SELECT 42 AS answer"])

        assert result.exit_code == 0
        assert '{"answer": 42}' in result.stdout
        assert "1 rows" in result.stdout


class TestConfiguration:
    def test_missing_configuration_exits(self, unconfigured: None) -> None:
        result = runner.invoke(app, ["search", "orders"])

        assert result.exit_code == 1
        assert "Missing or invalid configuration" in result.output


class TestVersionCommand:
    def test_prints_version(self) -> None:
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert result.stdout.startswith("opsquery ")


class TestConnectorLogging:
    """Tests for the Databricks connector log handler."""

    @pytest.fixture
    def connector_output(self) -> Iterator[io.StringIO]:
        buffer = io.StringIO()
        previous = cli._connector_handler.setStream(buffer)
        yield buffer
        cli._connector_handler.setStream(previous)

    def test_drops_lz4_errors_from_child_loggers(self, connector_output: io.StringIO) -> None:
        logging.getLogger("databricks.sql.utils").error("LZ4 decompression not available")
        logging.getLogger("databricks.sql.client").error("Connection reset by peer")

        output = connector_output.getvalue()
        assert "LZ4" not in output
        assert "Connection reset by peer" in output

    def test_suppresses_below_error(self, connector_output: io.StringIO) -> None:
        logging.getLogger("databricks.sql.thrift_backend").warning("retrying request")

        assert connector_output.getvalue() == ""
