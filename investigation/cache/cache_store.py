"""Two-tier investigation cache."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from investigation.cache.interface import KeyValueStore
from investigation.config.settings import Settings, get_settings
from investigation.errors import CacheCorruptionError
from investigation.models.cache_entry import CacheEntry
from investigation.models.contributor import Contributor, InvestigationResult
from investigation.models.query_context import QueryContext, is_eligible

logger = logging.getLogger(__name__)


@dataclass
class MemoryTierEntry:
    """The most recent investigation, kept for the session lifetime."""

    key: str
    results: list[InvestigationResult]
    context: QueryContext
    top_contributors: list[Contributor] | None = None


class CacheStore:
    """Memory tier plus durable tier for investigation results.

    The memory tier holds only the most recent investigation and is checked
    first. The durable tier is keyed by time and host alone, which is
    coarser than eligibility: each entry carries its full query context and
    the fine-grained check runs on read.

    Durable entries are rejected when their version differs from the
    current cache version or when they are at least one TTL old. Only the
    most recently written entries are retained.
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            store: Durable key-value store
            settings: Settings to use (defaults to global settings)
            clock: Source of the current time (for testing)
        """
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._memory: MemoryTierEntry | None = None

    @property
    def namespace(self) -> str:
        """Prefix of every durable key owned by this cache."""
        return self._settings.cache.namespace

    def storage_key(self, key: str) -> str:
        """Durable store key for a cache key."""
        return f"{self.namespace}{key}"

    # --- Memory tier ---

    @property
    def memory(self) -> MemoryTierEntry | None:
        """The memory tier entry, if any."""
        return self._memory

    def remember(
        self,
        key: str,
        results: list[InvestigationResult],
        context: QueryContext,
        top_contributors: list[Contributor] | None = None,
    ) -> None:
        """Replace the memory tier entry."""
        self._memory = MemoryTierEntry(
            key=key,
            results=results,
            context=context,
            top_contributors=top_contributors,
        )

    def recall(self, key: str, context: QueryContext) -> MemoryTierEntry | None:
        """Get the memory tier entry if its key matches and it is eligible."""
        entry = self._memory
        if entry is None or entry.key != key or not entry.results:
            return None
        if not is_eligible(context, entry.context):
            logger.info("Memory cache key matches but context changed", extra={"key": key})
            return None
        return entry

    def forget(self) -> None:
        """Drop the memory tier entry."""
        self._memory = None

    # --- Durable tier ---

    def load(self, key: str, context: QueryContext) -> CacheEntry | None:
        """Load an eligible durable entry for the current context.

        Args:
            key: Cache key (hash of time and host filters)
            context: The current query context

        Returns:
            The cached entry, or None on miss, corruption, version mismatch,
            expiry or ineligible context
        """
        storage_key = self.storage_key(key)
        try:
            raw = self._store.get(storage_key)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Discarding unreadable cache entry: %s", e, extra={"key": key})
            self._discard(storage_key)
            return None

        if raw is None:
            logger.debug("No cache found", extra={"key": key})
            return None

        try:
            entry = self._decode(raw, storage_key)
        except CacheCorruptionError as e:
            logger.warning("Discarding corrupted cache entry: %s", e, extra={"key": key})
            self._discard(storage_key)
            return None

        if entry.version != self._settings.cache_version:
            logger.info(
                "Cache version mismatch",
                extra={"cached": entry.version, "current": self._settings.cache_version},
            )
            return None

        if entry.is_expired(self._settings.cache.ttl, now=self._clock()):
            logger.info("Cache expired", extra={"key": key})
            return None

        if entry.context is None:
            logger.info("Cache eligible: entry has no context", extra={"key": key})
            return entry

        if not is_eligible(context, entry.context):
            return None

        logger.info(
            "Cache loaded",
            extra={"key": key, "contributors": len(entry.top_contributors)},
        )
        return entry

    def save(
        self,
        key: str,
        results: Sequence[InvestigationResult],
        top_contributors: Sequence[Contributor],
        context: QueryContext,
    ) -> None:
        """Persist a completed investigation and enforce retention.

        ``top_contributors`` must already be sorted; it is truncated to the
        configured top N. Failures are logged and never raised.
        """
        entry = CacheEntry(
            results=list(results),
            top_contributors=list(top_contributors)[: self._settings.cache.top_n],
            version=self._settings.cache_version,
            timestamp=self._clock(),
            context=context,
        )
        try:
            self._store.set(self.storage_key(key), json.dumps(entry.to_dict()))
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Failed to cache investigation: %s", e, extra={"key": key})
            return
        self.cleanup()

    def cleanup(self) -> int:
        """Remove all but the most recently written durable entries.

        Returns:
            Number of entries removed
        """
        try:
            keys = self._store.keys(self.namespace)
        except OSError as e:
            logger.warning("Failed to enumerate cache entries: %s", e)
            return 0

        stamped = [(self._timestamp_of(k), k) for k in keys]
        stamped.sort(key=lambda item: item[0], reverse=True)

        removed = 0
        for _, storage_key in stamped[self._settings.cache.max_entries :]:
            try:
                self._store.remove(storage_key)
                removed += 1
            except OSError as e:
                logger.warning("Failed to remove cache entry: %s", e, extra={"key": storage_key})
        return removed

    def clear_all(self) -> int:
        """Remove every durable entry in the namespace and the memory tier.

        Returns:
            Number of durable entries removed
        """
        self.forget()
        keys = self._store.keys(self.namespace)
        for storage_key in keys:
            self._store.remove(storage_key)
        logger.info("Cleared investigation caches", extra={"count": len(keys)})
        return len(keys)

    def get_statistics(self) -> dict[str, Any]:
        """Get cache statistics."""
        return {
            "durable_entries": len(self._store.keys(self.namespace)),
            "memory_key": self._memory.key if self._memory else None,
            "cache_version": self._settings.cache_version,
            "max_entries": self._settings.cache.max_entries,
            "store": self._store.get_statistics(),
        }

    def _discard(self, storage_key: str) -> None:
        try:
            self._store.remove(storage_key)
        except OSError as e:
            logger.warning("Failed to remove cache entry: %s", e, extra={"key": storage_key})

    @staticmethod
    def _decode(raw: str, storage_key: str) -> CacheEntry:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CacheCorruptionError(f"Unparsable cache entry: {e}", key=storage_key) from e
        return CacheEntry.from_dict(data, key=storage_key)

    def _timestamp_of(self, storage_key: str) -> float:
        try:
            raw = self._store.get(storage_key)
            data = json.loads(raw) if raw else {}
            return float(data.get("timestamp") or 0)
        except (OSError, ValueError, TypeError, AttributeError):
            return 0.0
