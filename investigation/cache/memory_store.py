"""In-memory key-value store implementation."""

import threading
from typing import Any

from investigation.cache.interface import BaseKeyValueStore


class MemoryKeyValueStore(BaseKeyValueStore):
    """Thread-safe in-memory implementation of KeyValueStore.

    Primarily for testing and for deployments without file storage.
    Data is lost on process restart.
    """

    def __init__(self) -> None:
        """Initialize the in-memory store."""
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._validate_key(key)
        with self._lock:
            self._data[key] = value

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def get_statistics(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_keys": len(self._data),
                "storage_type": "memory",
                "is_persistent": False,
            }

    def clear(self) -> None:
        """Clear all keys (for testing only)."""
        with self._lock:
            self._data.clear()
