"""Query context models and cache eligibility."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Sequence

logger = logging.getLogger(__name__)

# Column -> operator -> sorted values, e.g. {"`request.host`": {"=": ["a.com"]}}
FilterMap = dict[str, dict[str, list[str]]]

_CLAUSE_PATTERN = re.compile(
    r"(?P<column>[^\s()<>!=]+)\s*(?P<operator>!=|=)\s*"
    r"(?:'(?P<quoted>(?:[^'\\]|\\.)*)'|(?P<number>-?\d+(?:\.\d+)?)\b)"
)


@dataclass(frozen=True)
class FilterClause:
    """A single active facet filter.

    Includes (``=``) on the same column are OR-ed together, excludes
    (``!=``) are AND-ed.
    """

    column: str
    value: str | int
    operator: str = "="

    def __post_init__(self) -> None:
        """Validate the operator."""
        if self.operator not in ("=", "!="):
            raise ValueError(f"Unsupported filter operator: {self.operator}")

    @property
    def exclude(self) -> bool:
        """Whether this clause excludes the value."""
        return self.operator == "!="

    def to_sql(self) -> str:
        """Render as a SQL comparison."""
        if isinstance(self.value, int):
            literal = str(self.value)
        else:
            literal = "'" + str(self.value).replace("'", "\\'") + "'"
        return f"{self.column} {self.operator} {literal}"


def build_filter_map(filters: Sequence[FilterClause]) -> FilterMap:
    """Group filter clauses by column into a canonical, JSON-friendly map."""
    grouped: dict[str, dict[str, set[str]]] = {}
    for clause in filters:
        by_operator = grouped.setdefault(clause.column, {})
        by_operator.setdefault(clause.operator, set()).add(str(clause.value))
    return {
        column: {op: sorted(values) for op, values in sorted(by_operator.items())}
        for column, by_operator in grouped.items()
    }


def compile_filters(filters: Sequence[FilterClause]) -> str:
    """Compile filter clauses into a SQL fragment of ``AND`` conditions.

    Returns an empty string when there are no filters.
    """
    by_column: dict[str, list[FilterClause]] = {}
    for clause in filters:
        by_column.setdefault(clause.column, []).append(clause)

    column_clauses = []
    for clauses in by_column.values():
        parts = []
        includes = [c.to_sql() for c in clauses if not c.exclude]
        excludes = [c.to_sql() for c in clauses if c.exclude]
        if includes:
            parts.append(includes[0] if len(includes) == 1 else f"({' OR '.join(includes)})")
        if excludes:
            parts.append(" AND ".join(excludes))
        if len(parts) == 1:
            column_clauses.append(parts[0])
        else:
            column_clauses.append(f"({' AND '.join(parts)})")

    return " ".join(f"AND {clause}" for clause in column_clauses)


def parse_filter_clause(clause: str) -> list[FilterClause]:
    """Extract ``col = 'val'`` and ``col != 'val'`` fragments from a SQL string.

    Used for filter strings that arrive pre-compiled. Unrecognised fragments
    are ignored.
    """
    filters = []
    for match in _CLAUSE_PATTERN.finditer(clause or ""):
        if match.group("quoted") is not None:
            value: str | int = match.group("quoted").replace("\\'", "'")
        else:
            number = match.group("number")
            value = int(number) if "." not in number else number
        filters.append(
            FilterClause(
                column=match.group("column"),
                value=value,
                operator=match.group("operator"),
            )
        )
    return filters


@dataclass(frozen=True)
class QueryContext:
    """Snapshot of the time, host and filter state an investigation ran under.

    ``time_filter`` and ``host_filter`` are opaque strings compared exactly.
    ``filters`` keeps the structured clauses so the context can compile its
    own facet filter predicate; ``filter_map`` is what eligibility compares.
    """

    time_filter: str
    host_filter: str = ""
    filter_map: FilterMap = field(default_factory=dict)
    filters: tuple[FilterClause, ...] = ()

    @classmethod
    def from_filters(
        cls,
        time_filter: str,
        host_filter: str = "",
        filters: Sequence[FilterClause] = (),
    ) -> "QueryContext":
        """Create a context from structured filter clauses."""
        return cls(
            time_filter=time_filter,
            host_filter=host_filter,
            filter_map=build_filter_map(filters),
            filters=tuple(filters),
        )

    @classmethod
    def from_clause(
        cls,
        time_filter: str,
        host_filter: str = "",
        filter_clause: str = "",
    ) -> "QueryContext":
        """Create a context from an already compiled filter clause string."""
        return cls.from_filters(time_filter, host_filter, parse_filter_clause(filter_clause))

    @property
    def facet_filter_sql(self) -> str:
        """The active facet filter predicate as a SQL fragment."""
        return compile_filters(self.filters)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "time_filter": self.time_filter,
            "host_filter": self.host_filter,
            "filter_map": self.filter_map,
            "filters": [
                {"column": f.column, "value": f.value, "operator": f.operator}
                for f in self.filters
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryContext":
        """Create a QueryContext from a dictionary."""
        filters = tuple(
            FilterClause(column=f["column"], value=f["value"], operator=f.get("operator", "="))
            for f in data.get("filters", [])
        )
        return cls(
            time_filter=data["time_filter"],
            host_filter=data.get("host_filter", ""),
            filter_map=data.get("filter_map") or build_filter_map(filters),
            filters=filters,
        )


def _normalize_group(group: Any) -> dict[str, list[str]]:
    if not isinstance(group, dict):
        return {"=": [str(group)]}
    return {op: sorted(str(v) for v in values) for op, values in group.items() if values}


def is_eligible(current: QueryContext, cached: QueryContext) -> bool:
    """Check whether results cached under ``cached`` may be reused for ``current``.

    Time and host must match exactly. Every filter column of the cached
    context must be present in the current one with an equal value. Extra
    columns in the current context are a drill-in and are allowed.
    """
    if current.time_filter != cached.time_filter:
        logger.debug("Cache ineligible: time filter changed")
        return False

    if current.host_filter != cached.host_filter:
        logger.debug("Cache ineligible: host filter changed")
        return False

    for column, cached_group in (cached.filter_map or {}).items():
        current_group = current.filter_map.get(column)
        if current_group is None:
            logger.debug("Cache ineligible: filter removed", extra={"column": column})
            return False
        if _normalize_group(current_group) != _normalize_group(cached_group):
            logger.debug("Cache ineligible: filter changed", extra={"column": column})
            return False

    cached_count = len(cached.filter_map or {})
    current_count = len(current.filter_map)
    if current_count > cached_count:
        logger.debug(
            "Cache eligible: drilled in",
            extra={"cached_filters": cached_count, "current_filters": current_count},
        )
    else:
        logger.debug("Cache eligible: same context")
    return True
