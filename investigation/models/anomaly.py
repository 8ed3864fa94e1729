"""Anomaly and time window models."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence


class AnomalyCategory(str, Enum):
    """HTTP status class an anomaly was detected in.

    Each category selects a status predicate for aggregation:
    - RED: 5xx responses
    - YELLOW: 4xx responses
    - GREEN: 2xx/3xx responses
    - BLUE: no status filter (user selections)
    """

    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"


class AnomalyType(str, Enum):
    """Direction of the detected deviation."""

    SPIKE = "spike"
    DIP = "dip"


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """A closed time range used for anomaly, selection and visible windows."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        """Validate time window constraints."""
        if ensure_utc(self.start) > ensure_utc(self.end):
            raise ValueError("Time window start must not be after end")

    @property
    def duration_seconds(self) -> float:
        """Get the duration of the time window in seconds."""
        return (ensure_utc(self.end) - ensure_utc(self.start)).total_seconds()

    @property
    def duration_minutes(self) -> float:
        """Get the duration of the time window in minutes."""
        return self.duration_seconds / 60.0


@dataclass(frozen=True)
class Anomaly:
    """A spike or dip produced by the external detector.

    Anomalies are ephemeral: the detector re-creates them on every render.
    Their stable identity is the generated anomaly ID, not the rank.
    """

    rank: int
    category: AnomalyCategory
    type: AnomalyType
    start_time: datetime
    end_time: datetime
    magnitude: float = 0.0

    @property
    def window(self) -> TimeWindow:
        """The anomaly's own time window."""
        return TimeWindow(start=self.start_time, end=self.end_time)

    @property
    def label(self) -> str:
        """Short display label such as ``#1 red spike``."""
        return f"#{self.rank} {self.category.value} {self.type.value}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "rank": self.rank,
            "category": self.category.value,
            "type": self.type.value,
            "start_time": ensure_utc(self.start_time).isoformat(),
            "end_time": ensure_utc(self.end_time).isoformat(),
            "magnitude": self.magnitude,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Anomaly":
        """Create an Anomaly from a dictionary."""
        return cls(
            rank=int(data["rank"]),
            category=AnomalyCategory(data["category"]),
            type=AnomalyType(data["type"]),
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]),
            magnitude=float(data.get("magnitude", 0.0)),
        )


@dataclass(frozen=True)
class ChartPoint:
    """A point of the rendered time series. Only its timestamp is used here."""

    t: datetime


def visible_window(chart_data: Sequence[ChartPoint]) -> TimeWindow | None:
    """Get the window spanned by the chart, or None with fewer than two points."""
    if len(chart_data) < 2:
        return None
    return TimeWindow(start=chart_data[0].t, end=chart_data[-1].t)
