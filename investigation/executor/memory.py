"""In-memory aggregation executor for testing and offline replay."""

import asyncio
import copy
from typing import Any, Callable, Iterable

from investigation.errors import TransportError
from investigation.executor.interface import AggregationExecutor


class InMemoryExecutor(AggregationExecutor):
    """
    In-memory executor for testing.

    Answers a statement with the rows registered for the dimension column it
    groups by (matched on ``<column> as dim``). Every statement is recorded
    in ``calls``. Returns deep copies to ensure immutability.
    """

    def __init__(
        self,
        rows_by_column: dict[str, list[dict[str, Any]]] | None = None,
        failing_columns: Iterable[str] = (),
        delays: dict[str, float] | None = None,
        responder: Callable[[str], list[dict[str, Any]]] | None = None,
    ):
        self._rows_by_column = copy.deepcopy(rows_by_column) if rows_by_column else {}
        self._failing_columns = tuple(failing_columns)
        self._delays = dict(delays or {})
        self._responder = responder
        self.calls: list[str] = []

    @staticmethod
    def _matches(column: str, sql: str) -> bool:
        return f"{column} as dim" in sql

    async def run_aggregation(self, sql: str) -> list[dict[str, Any]]:
        self.calls.append(sql)

        for column, delay in self._delays.items():
            if self._matches(column, sql):
                await asyncio.sleep(delay)

        for column in self._failing_columns:
            if self._matches(column, sql):
                raise TransportError(f"Simulated failure for {column}", sql=sql)

        if self._responder is not None:
            return copy.deepcopy(self._responder(sql))

        for column, rows in self._rows_by_column.items():
            if self._matches(column, sql):
                return copy.deepcopy(rows)
        return []
