"""
Abstract Storage Interface

DESIGN DECISION: Every store sits on a flat string key-value primitive.
This allows us to:
1. Use in-memory storage for testing
2. Keep data in a local JSON file on the device
3. Mirror the same keys into Google Sheets when configured

The interface is intentionally small - it mirrors the async key-value
storage of the mobile app (get / set / multi-remove) plus key listing,
which per-record storage needs to enumerate entries.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional


class KeyValueStore(ABC):
    """
    Abstract interface for durable keyed string storage.

    Any backend (memory, JSON file, Google Sheets) must implement these
    methods. Values are opaque strings; callers own serialization.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read the value stored under a key.

        Returns:
            The stored string, or None when the key is absent

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """
        Store a value, replacing any previous value.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def multi_remove(self, keys: Iterable[str]) -> None:
        """
        Remove several keys. Missing keys are ignored.

        Raises:
            StorageError: If the delete fails
        """
        pass

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """
        List stored keys starting with ``prefix``, in insertion order.
        """
        pass

    async def multi_get(self, keys: Iterable[str]) -> dict[str, Optional[str]]:
        """Read several keys. Backends may override with a batched read."""
        return {key: await self.get(key) for key in keys}


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
