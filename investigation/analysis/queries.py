"""Aggregation SQL for facet and selection investigations.

Both queries aggregate in two levels: by (minute, dim) first, so ClickHouse
can serve the inner query from minute-level projections, then by dim,
splitting the visible range into the compared window and its baseline.
Windows are minute-aligned, which allows up to one minute of imprecision.
"""

from datetime import datetime

from investigation.models.anomaly import AnomalyCategory, TimeWindow, ensure_utc


def format_timestamp(value: datetime) -> str:
    """Render as ``YYYY-MM-DD HH:MM:SS`` in UTC."""
    return ensure_utc(value).strftime("%Y-%m-%d %H:%M:%S")


def build_time_filter(window: TimeWindow) -> str:
    """Minute-aligned filter on the raw timestamp column."""
    start = format_timestamp(window.start)
    end = format_timestamp(window.end)
    return (
        f"toStartOfMinute(timestamp) BETWEEN toStartOfMinute(toDateTime('{start}')) "
        f"AND toStartOfMinute(toDateTime('{end}'))"
    )


def build_minute_filter(window: TimeWindow) -> str:
    """Filter on the ``minute`` column of the inner aggregation."""
    start = format_timestamp(window.start)
    end = format_timestamp(window.end)
    return (
        f"minute BETWEEN toStartOfMinute(toDateTime('{start}')) "
        f"AND toStartOfMinute(toDateTime('{end}'))"
    )


def category_predicate(category: AnomalyCategory) -> str:
    """Status predicate for a category. BLUE is unfiltered."""
    if category == AnomalyCategory.RED:
        return "`response.status` >= 500"
    if category == AnomalyCategory.YELLOW:
        return "`response.status` >= 400 AND `response.status` < 500"
    if category == AnomalyCategory.GREEN:
        return "`response.status` < 400"
    return "1=1"


def category_count_column(category: AnomalyCategory) -> str:
    """Inner aggregation column counting requests of a category."""
    if category == AnomalyCategory.RED:
        return "cnt_5xx"
    if category == AnomalyCategory.YELLOW:
        return "cnt_4xx"
    if category == AnomalyCategory.GREEN:
        return "cnt_ok"
    return "cnt"


def build_facet_query(
    *,
    column: str,
    window: TimeWindow,
    full_window: TimeWindow,
    category: AnomalyCategory,
    database: str,
    table: str,
    host_filter: str = "",
    facet_filters: str = "",
    extra: str = "",
    limit: int = 50,
) -> str:
    """Category counts per dim inside ``window`` and in the rest of ``full_window``."""
    window_filter = build_minute_filter(window)
    return f"""
SELECT
  dim,
  sumIf(cat_cnt, {window_filter}) as anomaly_cat_cnt,
  sumIf(cat_cnt, NOT ({window_filter})) as baseline_cat_cnt,
  sumIf(cnt, {window_filter}) as anomaly_total_cnt,
  sumIf(cnt, NOT ({window_filter})) as baseline_total_cnt
FROM (
  SELECT
    toStartOfMinute(timestamp) as minute,
    {column} as dim,
    count() as cnt,
    countIf(`response.status` < 400) as cnt_ok,
    countIf(`response.status` >= 400 AND `response.status` < 500) as cnt_4xx,
    countIf(`response.status` >= 500) as cnt_5xx,
    {category_count_column(category)} as cat_cnt
  FROM {database}.{table}
  WHERE {build_time_filter(full_window)}
    {host_filter} {facet_filters} {extra}
  GROUP BY minute, dim
)
GROUP BY dim
HAVING anomaly_cat_cnt > 0 OR baseline_cat_cnt > 0
ORDER BY anomaly_cat_cnt DESC
LIMIT {limit}
"""


def build_selection_query(
    *,
    column: str,
    window: TimeWindow,
    full_window: TimeWindow,
    database: str,
    table: str,
    host_filter: str = "",
    facet_filters: str = "",
    extra: str = "",
    limit: int = 50,
) -> str:
    """Total and error (status >= 400) counts per dim inside and outside ``window``."""
    window_filter = build_minute_filter(window)
    return f"""
SELECT
  dim,
  sumIf(cnt, {window_filter}) as selection_cnt,
  sumIf(cnt, NOT ({window_filter})) as baseline_cnt,
  sumIf(cnt_4xx + cnt_5xx, {window_filter}) as selection_err_cnt,
  sumIf(cnt_4xx + cnt_5xx, NOT ({window_filter})) as baseline_err_cnt
FROM (
  SELECT
    toStartOfMinute(timestamp) as minute,
    {column} as dim,
    count() as cnt,
    countIf(`response.status` >= 400 AND `response.status` < 500) as cnt_4xx,
    countIf(`response.status` >= 500) as cnt_5xx
  FROM {database}.{table}
  WHERE {build_time_filter(full_window)}
    {host_filter} {facet_filters} {extra}
  GROUP BY minute, dim
)
GROUP BY dim
HAVING selection_cnt > 0 OR baseline_cnt > 0
ORDER BY selection_cnt DESC
LIMIT {limit}
"""
