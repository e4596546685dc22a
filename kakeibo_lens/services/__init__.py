"""Services package."""

from kakeibo_lens.services.analysis import (
    AnalysisError,
    AnalysisParseError,
    AnalysisServiceInterface,
    AnalysisTransportError,
    EmptyAnalysisError,
    GeminiVisionService,
    HttpAnalysisService,
)
from kakeibo_lens.services.storage import (
    CategoryStore,
    DuplicateError,
    EntryStore,
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    # Analysis services
    "AnalysisError",
    "AnalysisParseError",
    "AnalysisServiceInterface",
    "AnalysisTransportError",
    "EmptyAnalysisError",
    "GeminiVisionService",
    "HttpAnalysisService",
    # Storage services
    "CategoryStore",
    "DuplicateError",
    "EntryStore",
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
]
