"""Interface for the durable key-value store behind the cache."""

from abc import ABC, abstractmethod
from typing import Any


class KeyValueStore(ABC):
    """Abstract durable string key-value store.

    The cache treats the store as opaque: values are serialized strings and
    every operation may fail on a corrupted medium. Implementations must
    never interpret the values they hold.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Get the value stored under a key.

        Args:
            key: The key to look up

        Returns:
            The stored value, or None if the key is absent
        """
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous value for the key.

        Args:
            key: The key to write
            value: Serialized value
        """
        ...

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """Enumerate stored keys.

        Args:
            prefix: Only return keys starting with this prefix

        Returns:
            Matching keys, in no particular order
        """
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove a key. Removing an absent key is a no-op.

        Args:
            key: The key to remove
        """
        ...

    @abstractmethod
    def get_statistics(self) -> dict[str, Any]:
        """Get storage statistics.

        Returns:
            Dictionary with statistics like total_keys, storage_type, etc.
        """
        ...


class BaseKeyValueStore(KeyValueStore):
    """Base implementation with common functionality."""

    def _validate_key(self, key: str) -> None:
        """Validate a key before use.

        Raises:
            ValueError: If the key is empty or contains path separators
        """
        if not key:
            raise ValueError("Key must not be empty")
        if "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"Invalid key: {key!r}")
