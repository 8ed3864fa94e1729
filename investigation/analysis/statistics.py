"""Rate and share computations for window comparisons.

All functions are pure and guard degenerate inputs numerically: a zero
duration or an empty total yields zero, never NaN.
"""

import math
from typing import Any, Iterable


def rate_per_minute(count: int, minutes: float) -> float:
    """Normalize a count to a per-minute rate."""
    if minutes <= 0:
        return 0.0
    return count / minutes


def percent_change(observed: float, baseline: float) -> float:
    """Percent change from baseline to observed.

    Returns ``inf`` when the baseline is zero and the observed value is
    positive: the value only appeared in the observed window.
    """
    if baseline > 0:
        return (observed - baseline) / baseline * 100
    if observed > 0:
        return float("inf")
    return 0.0


def percentage(part: int, whole: int) -> float:
    """``part`` as a percentage of ``whole``, zero for an empty whole."""
    if whole <= 0:
        return 0.0
    return part / whole * 100


def round1(value: float) -> float:
    """Round to one decimal, halves rounding up. Infinities pass through."""
    if not math.isfinite(value):
        return value
    return math.floor(value * 10 + 0.5) / 10


def parse_count(value: Any) -> int:
    """Parse a count column, which executors may return as a string.

    Unparsable and non-finite counts are zero.
    """
    if value is None:
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def column_total(rows: Iterable[dict[str, Any]], column: str) -> int:
    """Sum a count column over result rows."""
    return sum(parse_count(row.get(column)) for row in rows)


def signed_max_magnitude(values: Iterable[float]) -> float:
    """The value with the largest absolute magnitude, keeping its sign.

    Ties keep the earliest value; an empty input yields zero.
    """
    best = 0.0
    for value in values:
        if abs(value) > abs(best):
            best = value
    return best
