"""File-based key-value store implementation."""

import fcntl
import os
from pathlib import Path
from typing import Any

from investigation.cache.interface import BaseKeyValueStore


class FileKeyValueStore(BaseKeyValueStore):
    """File-based implementation of KeyValueStore.

    Each key is stored as one file ``<key>.json`` inside the storage
    directory, so entries can be enumerated, replaced and removed
    individually.

    PROPERTIES:
    - Persistent: Data survives process restart
    - Uses file locking for concurrent access safety
    - Values are written whole; a reader never sees a partial value
    """

    _SUFFIX = ".json"

    def __init__(self, storage_path: str | Path) -> None:
        """Initialize the file-based store.

        Args:
            storage_path: Directory holding one file per key
        """
        self._dir = Path(storage_path)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        self._validate_key(key)
        return self._dir / f"{key}{self._SUFFIX}"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    return f.read()
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(path.suffix + ".tmp")

        with open(tmp_path, "w", encoding="utf-8") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

        os.replace(tmp_path, path)

    def keys(self, prefix: str = "") -> list[str]:
        return [
            p.name[: -len(self._SUFFIX)]
            for p in self._dir.glob(f"*{self._SUFFIX}")
            if p.name.startswith(prefix)
        ]

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def get_statistics(self) -> dict[str, Any]:
        files = list(self._dir.glob(f"*{self._SUFFIX}"))
        return {
            "total_keys": len(files),
            "storage_type": "file",
            "storage_path": str(self._dir),
            "size_bytes": sum(p.stat().st_size for p in files),
            "is_persistent": True,
        }
