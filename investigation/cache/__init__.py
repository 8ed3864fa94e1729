"""Investigation cache module."""

from investigation.cache.cache_store import CacheStore, MemoryTierEntry
from investigation.cache.file_store import FileKeyValueStore
from investigation.cache.interface import BaseKeyValueStore, KeyValueStore
from investigation.cache.memory_store import MemoryKeyValueStore

__all__ = [
    "BaseKeyValueStore",
    "CacheStore",
    "FileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "MemoryTierEntry",
]
