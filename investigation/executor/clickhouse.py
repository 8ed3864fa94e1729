"""
ClickHouse HTTP executor

Runs investigation aggregations against ClickHouse's HTTP interface.

DESIGN RULES:
- HTTP GET only: ClickHouse treats GET queries as read-only
- Configurable timeout, no retries, no backoff
- Every failure surfaces as TransportError so the caller can degrade
  a single dimension instead of the whole investigation
- Blocking I/O runs in a worker thread to keep the event loop free
"""

import asyncio
import json
import logging
from typing import Any

import requests

from investigation.config.settings import ExecutorConfig, get_settings
from investigation.errors import TransportError
from investigation.executor.interface import AggregationExecutor

logger = logging.getLogger(__name__)


class ClickHouseExecutor(AggregationExecutor):
    """Run aggregation SQL via the ClickHouse HTTP interface."""

    def __init__(
        self,
        config: ExecutorConfig | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._config = config or get_settings().executor
        self._session = session

    def _build_params(self, sql: str) -> dict[str, str]:
        """Build query parameters for a statement."""
        return {
            "query": f"{sql.strip()}\nFORMAT JSON",
            "database": self._config.database,
        }

    def _fetch(self, sql: str) -> list[dict[str, Any]]:
        """Blocking fetch of a single statement."""
        if not self._config.enabled:
            return []

        getter = self._session.get if self._session is not None else requests.get
        timeout_seconds = self._config.timeout_ms / 1000.0

        try:
            response = getter(
                self._config.base_url,
                params=self._build_params(sql),
                timeout=timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise TransportError(f"Aggregation request failed: {e}", sql=sql) from e
        except (json.JSONDecodeError, ValueError) as e:
            raise TransportError(f"Invalid aggregation payload: {e}", sql=sql) from e

        # ClickHouse wraps rows as {"meta": [...], "data": [...], "rows": n}
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            return data["data"]
        if isinstance(data, list):
            return data
        raise TransportError("Unexpected aggregation payload shape", sql=sql)

    async def run_aggregation(self, sql: str) -> list[dict[str, Any]]:
        rows = await asyncio.to_thread(self._fetch, sql)
        logger.debug("Aggregation returned rows", extra={"rows": len(rows)})
        return rows
