"""Contributor and investigation result models."""

from dataclasses import dataclass, field
from typing import Any

from investigation.models.anomaly import Anomaly, AnomalyCategory


@dataclass(frozen=True)
class Contributor:
    """One dimension value that changed disproportionately during an anomaly.

    Rates are requests per minute. Shares and error rates are percentages,
    changes are percentage points, except ``rate_change`` which is a percent
    change and is ``inf`` when the value only appeared during the anomaly.

    ``anomaly_id`` and ``rank`` are empty until the orchestrator tags the
    contributor with the anomaly it was found for.
    """

    facet_id: str
    dim: str
    category: AnomalyCategory
    anomaly_rate: float
    baseline_rate: float
    rate_change: float
    anomaly_share: float
    baseline_share: float
    share_change: float
    error_rate_change: float
    rank: int = 0
    anomaly_id: str = ""

    @property
    def facet(self) -> str:
        """Facet name without the ``breakdown-`` prefix."""
        return self.facet_id.removeprefix("breakdown-")

    @property
    def key(self) -> tuple[str, str]:
        """The (facet_id, dim) pair identifying a renderable row."""
        return (self.facet_id, self.dim)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "facet_id": self.facet_id,
            "dim": self.dim,
            "category": self.category.value,
            "anomaly_rate": self.anomaly_rate,
            "baseline_rate": self.baseline_rate,
            "rate_change": self.rate_change,
            "anomaly_share": self.anomaly_share,
            "baseline_share": self.baseline_share,
            "share_change": self.share_change,
            "error_rate_change": self.error_rate_change,
            "rank": self.rank,
            "anomaly_id": self.anomaly_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Contributor":
        """Create a Contributor from a dictionary."""
        return cls(
            facet_id=data["facet_id"],
            dim=data["dim"],
            category=AnomalyCategory(data["category"]),
            anomaly_rate=float(data["anomaly_rate"]),
            baseline_rate=float(data["baseline_rate"]),
            rate_change=float(data["rate_change"]),
            anomaly_share=float(data["anomaly_share"]),
            baseline_share=float(data["baseline_share"]),
            share_change=float(data["share_change"]),
            error_rate_change=float(data["error_rate_change"]),
            rank=int(data.get("rank", 0)),
            anomaly_id=data.get("anomaly_id", ""),
        )


@dataclass(frozen=True)
class SelectionContributor:
    """One dimension value that changed inside a user-selected range.

    ``share_change`` is the signed signal with the largest magnitude among
    the traffic share, error share and error rate changes; ``max_change`` is
    that magnitude and is the ranking key.
    """

    facet_id: str
    dim: str
    selection_rate: float
    baseline_rate: float
    rate_change: float
    selection_share: float
    baseline_share: float
    traffic_share_change: float
    err_share_change: float
    err_rate_change: float
    share_change: float
    max_change: float
    category: AnomalyCategory = AnomalyCategory.BLUE

    @property
    def key(self) -> tuple[str, str]:
        """The (facet_id, dim) pair identifying a renderable row."""
        return (self.facet_id, self.dim)

    @property
    def direction(self) -> str:
        """``over`` or ``under`` represented in the selection."""
        return "over" if self.share_change >= 0 else "under"


@dataclass
class InvestigationResult:
    """Investigation state for one anomaly.

    ``facets`` is filled in place as facet analyses complete, so a result
    handed out mid-investigation grows until the anomaly is complete.
    """

    anomaly: Anomaly
    anomaly_id: str
    facets: dict[str, list[Contributor]] = field(default_factory=dict)

    def contributors(self) -> list[Contributor]:
        """All contributors of this anomaly across facets."""
        return [c for items in self.facets.values() for c in items]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "anomaly": self.anomaly.to_dict(),
            "anomaly_id": self.anomaly_id,
            "facets": {
                facet_id: [c.to_dict() for c in items]
                for facet_id, items in self.facets.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InvestigationResult":
        """Create an InvestigationResult from a dictionary."""
        return cls(
            anomaly=Anomaly.from_dict(data["anomaly"]),
            anomaly_id=data["anomaly_id"],
            facets={
                facet_id: [Contributor.from_dict(c) for c in items]
                for facet_id, items in data.get("facets", {}).items()
            },
        )
