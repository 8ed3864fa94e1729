"""
Aggregation executor tests.

Tests proving executor guarantees:
1. Read-only: ClickHouse is only queried with HTTP GET
2. Failures surface as TransportError, never as raw library errors
3. Disabled executor returns no rows without making requests
4. In-memory executor hands out copies
"""

import ast
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from investigation.config.settings import ExecutorConfig
from investigation.errors import TransportError
from investigation.executor import ClickHouseExecutor, InMemoryExecutor

SQL = "SELECT dim, count() as cnt FROM logs GROUP BY dim"
EXECUTOR_SOURCE = Path(__file__).parent.parent / "investigation" / "executor" / "clickhouse.py"


def ok_response(payload) -> MagicMock:
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


class TestReadOnlyCompliance:
    """Verify the ClickHouse executor only issues GET requests."""

    def test_uses_get_only(self) -> None:
        tree = ast.parse(EXECUTOR_SOURCE.read_text())

        forbidden_methods = ["post", "put", "patch", "delete"]
        found_forbidden = [
            node.attr
            for node in ast.walk(tree)
            if isinstance(node, ast.Attribute) and node.attr in forbidden_methods
        ]

        assert found_forbidden == [], (
            f"Found forbidden HTTP methods in clickhouse.py: {found_forbidden}. "
            "ClickHouse must be queried with GET so statements run read-only."
        )

    def test_no_write_statements(self) -> None:
        source = EXECUTOR_SOURCE.read_text().lower()
        for pattern in ["requests.post", "insert into", "alter table", "drop table"]:
            assert pattern not in source


class TestClickHouseExecutor:
    """Tests for ClickHouseExecutor."""

    @pytest.mark.asyncio
    async def test_returns_data_rows(self) -> None:
        with patch("investigation.executor.clickhouse.requests.get") as mock_get:
            mock_get.return_value = ok_response(
                {"meta": [{"name": "dim"}], "data": [{"dim": "a.com", "cnt": "12"}], "rows": 1}
            )
            executor = ClickHouseExecutor(ExecutorConfig(base_url="http://clickhouse:8123"))

            rows = await executor.run_aggregation(SQL)

        assert rows == [{"dim": "a.com", "cnt": "12"}]
        args, kwargs = mock_get.call_args
        assert args == ("http://clickhouse:8123",)
        assert kwargs["params"]["query"] == f"{SQL}\nFORMAT JSON"
        assert kwargs["params"]["database"] == "helix_logs_production"

    @pytest.mark.asyncio
    async def test_accepts_raw_list(self) -> None:
        with patch("investigation.executor.clickhouse.requests.get") as mock_get:
            mock_get.return_value = ok_response([{"dim": "a.com"}])
            rows = await ClickHouseExecutor(ExecutorConfig()).run_aggregation(SQL)

        assert rows == [{"dim": "a.com"}]

    @pytest.mark.asyncio
    async def test_uses_configured_timeout(self) -> None:
        with patch("investigation.executor.clickhouse.requests.get") as mock_get:
            mock_get.return_value = ok_response({"data": []})
            await ClickHouseExecutor(ExecutorConfig(timeout_ms=500)).run_aggregation(SQL)

        assert mock_get.call_args[1]["timeout"] == 0.5

    @pytest.mark.asyncio
    async def test_uses_session(self) -> None:
        session = MagicMock(spec=requests.Session)
        session.get.return_value = ok_response({"data": [{"dim": "x"}]})

        with patch("investigation.executor.clickhouse.requests.get") as mock_get:
            rows = await ClickHouseExecutor(ExecutorConfig(), session=session).run_aggregation(SQL)
            mock_get.assert_not_called()

        assert rows == [{"dim": "x"}]
        session.get.assert_called_once()

    @pytest.mark.asyncio
    async def test_disabled_returns_empty(self) -> None:
        with patch("investigation.executor.clickhouse.requests.get") as mock_get:
            rows = await ClickHouseExecutor(ExecutorConfig(enabled=False)).run_aggregation(SQL)
            mock_get.assert_not_called()

        assert rows == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [requests.exceptions.ConnectionError(), requests.exceptions.Timeout()],
    )
    async def test_request_errors(self, error: Exception) -> None:
        with patch("investigation.executor.clickhouse.requests.get") as mock_get:
            mock_get.side_effect = error
            with pytest.raises(TransportError) as exc_info:
                await ClickHouseExecutor(ExecutorConfig()).run_aggregation(SQL)

        assert exc_info.value.sql == SQL

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        with patch("investigation.executor.clickhouse.requests.get") as mock_get:
            response = MagicMock()
            response.raise_for_status.side_effect = requests.exceptions.HTTPError("500 Server Error")
            mock_get.return_value = response

            with pytest.raises(TransportError, match="request failed"):
                await ClickHouseExecutor(ExecutorConfig()).run_aggregation(SQL)

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        with patch("investigation.executor.clickhouse.requests.get") as mock_get:
            response = MagicMock()
            response.raise_for_status.return_value = None
            response.json.side_effect = json.JSONDecodeError("", "", 0)
            mock_get.return_value = response

            with pytest.raises(TransportError, match="Invalid aggregation payload"):
                await ClickHouseExecutor(ExecutorConfig()).run_aggregation(SQL)

    @pytest.mark.asyncio
    async def test_unexpected_shape(self) -> None:
        with patch("investigation.executor.clickhouse.requests.get") as mock_get:
            mock_get.return_value = ok_response({"exception": "Code: 62. Syntax error"})

            with pytest.raises(TransportError, match="shape"):
                await ClickHouseExecutor(ExecutorConfig()).run_aggregation(SQL)


class TestInMemoryExecutor:
    """Tests for InMemoryExecutor."""

    @pytest.mark.asyncio
    async def test_matches_grouped_column(self) -> None:
        executor = InMemoryExecutor({"`request.host`": [{"dim": "a.com"}]})

        assert await executor.run_aggregation("SELECT `request.host` as dim") == [{"dim": "a.com"}]
        assert await executor.run_aggregation("SELECT `request.url` as dim") == []
        assert len(executor.calls) == 2

    @pytest.mark.asyncio
    async def test_returns_copies(self) -> None:
        original = [{"dim": "a.com"}]
        executor = InMemoryExecutor({"`request.host`": original})

        rows = await executor.run_aggregation("`request.host` as dim")
        rows[0]["dim"] = "modified"

        assert original[0]["dim"] == "a.com"
        assert (await executor.run_aggregation("`request.host` as dim"))[0]["dim"] == "a.com"

    @pytest.mark.asyncio
    async def test_failing_column(self) -> None:
        executor = InMemoryExecutor(failing_columns=["`request.host`"])

        with pytest.raises(TransportError):
            await executor.run_aggregation("`request.host` as dim")

    @pytest.mark.asyncio
    async def test_responder(self) -> None:
        executor = InMemoryExecutor(responder=lambda sql: [{"dim": sql}])
        assert await executor.run_aggregation("x") == [{"dim": "x"}]
