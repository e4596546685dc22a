"""
Storage Services Package

Provides the key-value interface, its backends, and the entry and category
stores built on top of it. The backend is swappable: in-memory for tests,
a JSON file on disk by default, or a Google Sheets worksheet.
"""

from kakeibo_lens.services.storage.interface import (
    DuplicateError,
    KeyValueStore,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)
from kakeibo_lens.services.storage.local import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from kakeibo_lens.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
)
from kakeibo_lens.services.storage.ledger_store import (
    BatchWriteResult,
    CategoryStore,
    EntryStore,
    clear_all_data,
    migrate_legacy_collections,
    prepare_storage,
)

__all__ = [
    # Interface
    "KeyValueStore",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # Backends
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStore",
    # Stores
    "BatchWriteResult",
    "CategoryStore",
    "EntryStore",
    "clear_all_data",
    "migrate_legacy_collections",
    "prepare_storage",
]
