"""Dimension registry: the breakdowns an investigation can group by."""

from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class Dimension:
    """A categorical breakdown over request logs.

    ``column`` is a SQL expression, or a callable of the configured top-N
    for breakdowns whose expression depends on it. ``extra_filter`` is an
    ``AND ...`` fragment excluding empty values.
    """

    id: str
    column: str | Callable[[int], str]
    extra_filter: str = ""

    def resolve_column(self, top_n: int) -> str:
        """The SQL expression to group by."""
        if callable(self.column):
            return self.column(top_n)
        return self.column


DEFAULT_DIMENSIONS: tuple[Dimension, ...] = (
    Dimension("breakdown-status-range", "concat(toString(intDiv(`response.status`, 100)), 'xx')"),
    Dimension("breakdown-hosts", "`request.host`"),
    Dimension("breakdown-forwarded-hosts", "`request.headers.x_forwarded_host`"),
    Dimension("breakdown-content-types", "`response.headers.content_type`"),
    Dimension("breakdown-status", "toString(`response.status`)"),
    Dimension(
        "breakdown-errors",
        "`response.headers.x_error`",
        extra_filter="AND `response.headers.x_error` != ''",
    ),
    Dimension("breakdown-cache", "upper(`cdn.cache_status`)"),
    Dimension("breakdown-paths", "`request.url`"),
    Dimension("breakdown-referers", "`request.headers.referer`"),
    Dimension("breakdown-user-agents", "`request.headers.user_agent`"),
    Dimension(
        "breakdown-ips",
        "if(`request.headers.x_forwarded_for` != '', "
        "`request.headers.x_forwarded_for`, `client.ip`)",
    ),
    Dimension(
        "breakdown-request-type",
        "`helix.request_type`",
        extra_filter="AND `helix.request_type` != ''",
    ),
    Dimension(
        "breakdown-backend-type",
        "`helix.backend_type`",
        extra_filter="AND `helix.backend_type` != ''",
    ),
    Dimension("breakdown-methods", "`request.method`"),
    Dimension("breakdown-datacenters", "`cdn.datacenter`"),
    Dimension(
        "breakdown-asn",
        "concat(toString(`client.asn`), ' ', "
        "dictGet('helix_logs_production.asn_dict', 'name', `client.asn`))",
        extra_filter="AND `client.asn` != 0",
    ),
)

# Breakdowns investigated for anomalies and selections
INVESTIGATED_DIMENSION_IDS: tuple[str, ...] = (
    "breakdown-hosts",
    "breakdown-forwarded-hosts",
    "breakdown-paths",
    "breakdown-errors",
    "breakdown-user-agents",
    "breakdown-ips",
    "breakdown-asn",
    "breakdown-datacenters",
    "breakdown-cache",
    "breakdown-content-types",
    "breakdown-backend-type",
)


class DimensionRegistry:
    """Registry of known dimensions and the subset worth investigating."""

    def __init__(
        self,
        dimensions: tuple[Dimension, ...] = DEFAULT_DIMENSIONS,
        investigated_ids: tuple[str, ...] = INVESTIGATED_DIMENSION_IDS,
    ) -> None:
        self._dimensions: dict[str, Dimension] = {d.id: d for d in dimensions}
        self._investigated_ids: list[str] = list(investigated_ids)

    def get(self, dimension_id: str) -> Dimension | None:
        """Get a dimension by ID."""
        return self._dimensions.get(dimension_id)

    def register(self, dimension: Dimension, investigate: bool = True) -> None:
        """Register (or replace) a dimension."""
        self._dimensions[dimension.id] = dimension
        if investigate and dimension.id not in self._investigated_ids:
            self._investigated_ids.append(dimension.id)

    def all(self) -> list[Dimension]:
        """All registered dimensions."""
        return list(self._dimensions.values())

    def investigated(self) -> list[Dimension]:
        """Dimensions investigated for anomalies, in registry order."""
        return [self._dimensions[i] for i in self._investigated_ids if i in self._dimensions]


# Global registry instance
_registry: DimensionRegistry | None = None


def get_dimension_registry() -> DimensionRegistry:
    """Get or create the global dimension registry."""
    global _registry
    if _registry is None:
        _registry = DimensionRegistry()
    return _registry
