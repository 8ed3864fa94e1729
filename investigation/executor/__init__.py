"""Aggregation executor module."""

from investigation.executor.clickhouse import ClickHouseExecutor
from investigation.executor.interface import AggregationExecutor
from investigation.executor.memory import InMemoryExecutor

__all__ = [
    "AggregationExecutor",
    "ClickHouseExecutor",
    "InMemoryExecutor",
]
