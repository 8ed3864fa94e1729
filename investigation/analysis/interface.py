"""Shared base for dimension analyzers."""

import logging
from typing import Any

from investigation.analysis.dimensions import Dimension
from investigation.config.settings import Settings, get_settings
from investigation.errors import TransportError
from investigation.executor.interface import AggregationExecutor
from investigation.models.query_context import QueryContext

logger = logging.getLogger(__name__)


class BaseDimensionAnalyzer:
    """Compares a window against the rest of the visible range for one dimension.

    Subclasses MUST:
    - Issue exactly one aggregation per call
    - Recover from executor failures and malformed rows, returning an empty list
    - Return at most ``facet.max_results`` rows, strongest first
    """

    def __init__(
        self,
        executor: AggregationExecutor,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the analyzer.

        Args:
            executor: Remote aggregation executor
            settings: Settings to use (defaults to global settings)
        """
        self._executor = executor
        self._settings = settings or get_settings()

    @property
    def settings(self) -> Settings:
        """Settings this analyzer runs with."""
        return self._settings

    async def _fetch_rows(self, dimension: Dimension, sql: str) -> list[dict[str, Any]] | None:
        """Run a statement, returning None if the executor failed."""
        try:
            rows = await self._executor.run_aggregation(sql)
        except TransportError as e:
            logger.warning("Facet aggregation failed: %s", e, extra={"facet_id": dimension.id})
            return None
        if not isinstance(rows, list):
            logger.warning("Facet aggregation returned no row list", extra={"facet_id": dimension.id})
            return None
        return rows

    def _query_parts(self, dimension: Dimension, context: QueryContext | None) -> dict[str, Any]:
        """Keyword arguments shared by the query builders."""
        executor_config = self._settings.executor
        return {
            "column": dimension.resolve_column(self._settings.facet.top_n),
            "database": executor_config.database,
            "table": executor_config.table,
            "host_filter": context.host_filter if context else "",
            "facet_filters": context.facet_filter_sql if context else "",
            "extra": dimension.extra_filter,
            "limit": self._settings.facet.query_limit,
        }
