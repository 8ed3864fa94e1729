"""Durable cache entry model."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from investigation.errors import CacheCorruptionError
from investigation.models.contributor import Contributor, InvestigationResult
from investigation.models.query_context import QueryContext


@dataclass(frozen=True)
class CacheEntry:
    """Payload persisted in the durable cache tier.

    ``context`` is None for entries written before contexts were stored;
    such entries skip the eligibility check on read.
    """

    results: list[InvestigationResult]
    top_contributors: list[Contributor]
    version: int
    timestamp: datetime
    context: QueryContext | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def age(self, now: datetime | None = None) -> timedelta:
        """Time elapsed since the entry was written."""
        now = now or datetime.now(timezone.utc)
        return now - self.timestamp

    def is_expired(self, ttl: timedelta, now: datetime | None = None) -> bool:
        """Check if the entry is at least ``ttl`` old."""
        return self.age(now) >= ttl

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "results": [r.to_dict() for r in self.results],
            "top_contributors": [c.to_dict() for c in self.top_contributors],
            "version": self.version,
            "timestamp": self.timestamp.timestamp(),
            "metadata": self.metadata,
        }
        if self.context is not None:
            data["context"] = self.context.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], key: str = "") -> "CacheEntry":
        """Create a CacheEntry from a dictionary.

        Raises:
            CacheCorruptionError: If the payload is malformed
        """
        if not isinstance(data, dict):
            raise CacheCorruptionError("Cache entry is not an object", key=key)
        try:
            context_data = data.get("context")
            return cls(
                results=[InvestigationResult.from_dict(r) for r in data.get("results") or []],
                top_contributors=[
                    Contributor.from_dict(c) for c in data.get("top_contributors") or []
                ],
                version=int(data["version"]),
                timestamp=datetime.fromtimestamp(float(data["timestamp"]), tz=timezone.utc),
                context=QueryContext.from_dict(context_data) if context_data else None,
                metadata=data.get("metadata") or {},
            )
        except (KeyError, ValueError, TypeError, AttributeError, OverflowError) as e:
            raise CacheCorruptionError(f"Malformed cache entry: {e}", key=key) from e
