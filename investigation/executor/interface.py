"""Interface for remote aggregation executors."""

from abc import ABC, abstractmethod
from typing import Any


class AggregationExecutor(ABC):
    """Abstract interface for running aggregation SQL remotely.

    Executors are read-only: they run SELECT statements and return rows.
    A single call may fail; callers recover per call.
    """

    @abstractmethod
    async def run_aggregation(self, sql: str) -> list[dict[str, Any]]:
        """Run an aggregation query.

        Args:
            sql: The SELECT statement to run

        Returns:
            Result rows as dictionaries keyed by column alias

        Raises:
            TransportError: If the call fails or returns an invalid payload
        """
        ...
