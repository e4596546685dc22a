"""
Local Key-Value Backends

- InMemoryKeyValueStore: a dict; used by tests and throwaway sessions.
- JsonFileKeyValueStore: a single JSON object on disk, the on-device store.

The file backend rewrites the whole file on each write through a temporary
file and an atomic rename, so a crash mid-write leaves the previous
contents intact.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Iterable, Optional

import structlog

from kakeibo_lens.services.storage.interface import KeyValueStore, StorageError


logger = structlog.get_logger(__name__)


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store. Nothing survives the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Values must be strings, got {type(value).__name__}")
        self._data[key] = value

    async def multi_remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents (debugging and tests)."""
        return dict(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Store backed by one JSON file.

    The file is loaded lazily on first access and cached; every write
    flushes the full mapping back to disk.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._data: Optional[dict[str, str]] = None

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data

        if not self._path.exists():
            self._data = {}
            return self._data

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self._path}: {e}")

        if not isinstance(raw, dict):
            raise StorageError(f"{self._path} does not contain a JSON object")

        self._data = {str(k): str(v) for k, v in raw.items()}
        logger.debug("kv_file_loaded", path=str(self._path), keys=len(self._data))
        return self._data

    def _flush(self, data: dict[str, str]) -> None:
        """Write ``data`` to disk, then make it the cached mapping."""
        directory = self._path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False, indent=1)
            os.replace(tmp_name, self._path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write {self._path}: {e}")
        self._data = data

    async def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    async def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Values must be strings, got {type(value).__name__}")
        data = dict(self._load())
        data[key] = value
        self._flush(data)

    async def multi_remove(self, keys: Iterable[str]) -> None:
        data = dict(self._load())
        removed = False
        for key in keys:
            if key in data:
                del data[key]
                removed = True
        if removed:
            self._flush(data)

    async def keys(self, prefix: str = "") -> list[str]:
        return [key for key in self._load() if key.startswith(prefix)]
