"""Investigation models module."""

from investigation.models.anomaly import (
    Anomaly,
    AnomalyCategory,
    AnomalyType,
    ChartPoint,
    TimeWindow,
    ensure_utc,
    visible_window,
)
from investigation.models.cache_entry import CacheEntry
from investigation.models.contributor import (
    Contributor,
    InvestigationResult,
    SelectionContributor,
)
from investigation.models.query_context import (
    FilterClause,
    FilterMap,
    QueryContext,
    build_filter_map,
    compile_filters,
    is_eligible,
    parse_filter_clause,
)

__all__ = [
    # Anomalies
    "Anomaly",
    "AnomalyCategory",
    "AnomalyType",
    "ChartPoint",
    "TimeWindow",
    "ensure_utc",
    "visible_window",
    # Contributors
    "Contributor",
    "InvestigationResult",
    "SelectionContributor",
    # Query context
    "FilterClause",
    "FilterMap",
    "QueryContext",
    "build_filter_map",
    "compile_filters",
    "is_eligible",
    "parse_filter_clause",
    # Cache
    "CacheEntry",
]
