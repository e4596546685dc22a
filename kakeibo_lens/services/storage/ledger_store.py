"""
Ledger Stores

Entries and categories are persisted one record per key on top of any
KeyValueStore backend:

    @kakeibo_lens:entry:<id>       -> LedgerEntry JSON
    @kakeibo_lens:category:<id>    -> Category JSON

Earlier releases kept each collection as a single JSON array under
``@kakeibo_lens:entries`` / ``@kakeibo_lens:categories``. Those keys are
split into per-record keys by ``migrate_legacy_collections`` and then
removed.

All mutations of one store are serialized by an asyncio.Lock. There are
no cross-key transactions: a batch write that fails halfway keeps the
records written before the failure.
"""

import asyncio
import json
from datetime import date
from typing import Iterable, NamedTuple, Optional

import structlog
from pydantic import ValidationError

from kakeibo_lens.audit.logger import AuditLogger
from kakeibo_lens.models.ledger import (
    CATCH_ALL_CATEGORY_NAME,
    DEFAULT_CATEGORIES,
    Category,
    LedgerEntry,
    build_default_categories,
    generate_entry_id,
    utcnow,
)
from kakeibo_lens.services.storage.interface import (
    DuplicateError,
    KeyValueStore,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


KEY_NAMESPACE = "@kakeibo_lens"
ENTRY_KEY_PREFIX = f"{KEY_NAMESPACE}:entry:"
CATEGORY_KEY_PREFIX = f"{KEY_NAMESPACE}:category:"
LEGACY_ENTRIES_KEY = f"{KEY_NAMESPACE}:entries"
LEGACY_CATEGORIES_KEY = f"{KEY_NAMESPACE}:categories"
LAST_SYNC_KEY = f"{KEY_NAMESPACE}:last_sync"

# Fields callers may never change through update()
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})


def entry_key(entry_id: str) -> str:
    return f"{ENTRY_KEY_PREFIX}{entry_id}"


def category_key(category_id: str) -> str:
    return f"{CATEGORY_KEY_PREFIX}{category_id}"


def is_same_month(day: date, year: int, month: int) -> bool:
    return day.year == year and day.month == month


def _check_changes(model_cls, changes: dict) -> None:
    """Reject unknown or immutable field names before touching storage."""
    if not changes:
        raise ValueError("No changes given")
    unknown = set(changes) - set(model_cls.model_fields)
    if unknown:
        raise ValueError(f"Unknown fields: {', '.join(sorted(unknown))}")
    frozen = set(changes) & IMMUTABLE_FIELDS
    if frozen:
        raise ValueError(f"Fields cannot be changed: {', '.join(sorted(frozen))}")


async def _load_records(kv: KeyValueStore, prefix: str, model_cls) -> list:
    """
    Load every record under a key prefix, in key order.

    Malformed records are skipped with a warning rather than failing the
    whole read.
    """
    keys = await kv.keys(prefix)
    values = await kv.multi_get(keys)
    records = []
    for key in keys:
        raw = values.get(key)
        if raw is None:
            continue
        try:
            records.append(model_cls.model_validate_json(raw))
        except ValidationError as e:
            logger.warning(
                "malformed_record_skipped",
                key=key,
                error_count=e.error_count(),
            )
    return records


class BatchWriteResult(NamedTuple):
    """Outcome of a sequential multi-record write."""
    saved: list[LedgerEntry]
    failed: list[tuple[LedgerEntry, StorageError]]


# =============================================================================
# ENTRY STORE
# =============================================================================

class EntryStore:
    """
    Durable collection of ledger entries keyed by entry id.

    Reads return entries newest first: by date descending, then by
    creation time descending.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._kv = kv
        self._audit = audit_logger
        self._lock = asyncio.Lock()

    async def _write(self, entry: LedgerEntry) -> None:
        key = entry_key(entry.id)
        if await self._kv.get(key) is not None:
            raise DuplicateError(f"Entry already exists: {entry.id}")
        await self._kv.set(key, entry.to_json())

    async def add(self, entry: LedgerEntry, correlation_id=None) -> LedgerEntry:
        """
        Persist one new entry.

        Raises:
            DuplicateError: If an entry with the same id exists
            StorageError: If the write fails
        """
        async with self._lock:
            await self._write(entry)

        if self._audit:
            await self._audit.log_entry_saved(
                entry_id=entry.id,
                item_name=entry.item_name,
                amount=entry.amount,
                category_id=entry.category_id,
                correlation_id=correlation_id,
            )
        return entry

    async def add_many(
        self,
        entries: Iterable[LedgerEntry],
        correlation_id=None,
    ) -> BatchWriteResult:
        """
        Persist several entries one at a time.

        Each write commits independently. A failed write is recorded in
        the result and the remaining entries are still attempted.
        """
        saved: list[LedgerEntry] = []
        failed: list[tuple[LedgerEntry, StorageError]] = []

        async with self._lock:
            for entry in entries:
                try:
                    await self._write(entry)
                except StorageError as e:
                    failed.append((entry, e))
                    logger.warning("entry_write_failed", entry_id=entry.id, error=str(e))
                    if self._audit:
                        await self._audit.log_save_failed(
                            item_name=entry.item_name,
                            error_message=str(e),
                            correlation_id=correlation_id,
                        )
                    continue

                saved.append(entry)
                if self._audit:
                    await self._audit.log_entry_saved(
                        entry_id=entry.id,
                        item_name=entry.item_name,
                        amount=entry.amount,
                        category_id=entry.category_id,
                        correlation_id=correlation_id,
                    )

        return BatchWriteResult(saved=saved, failed=failed)

    async def get(self, entry_id: str) -> Optional[LedgerEntry]:
        """Retrieve an entry by id, or None."""
        raw = await self._kv.get(entry_key(entry_id))
        if raw is None:
            return None
        try:
            return LedgerEntry.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Stored entry {entry_id} is malformed: {e}")

    async def read_all(self) -> list[LedgerEntry]:
        entries = await _load_records(self._kv, ENTRY_KEY_PREFIX, LedgerEntry)
        entries.sort(key=lambda e: (e.entry_date, e.created_at), reverse=True)
        return entries

    async def read_by_month(self, year: int, month: int) -> list[LedgerEntry]:
        """Entries whose date falls in the given calendar month (1-based)."""
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be 1-12, got {month}")
        return [
            e for e in await self.read_all()
            if is_same_month(e.entry_date, year, month)
        ]

    async def recent(self, limit: int = 3) -> list[LedgerEntry]:
        """The newest ``limit`` entries."""
        if limit < 0:
            raise ValueError("limit must be >= 0")
        return (await self.read_all())[:limit]

    async def update(self, entry_id: str, **changes) -> LedgerEntry:
        """
        Apply field changes to an entry and refresh ``updated_at``.

        The merged record is validated again, so an update can never store
        a negative amount or an empty label.

        Raises:
            NotFoundError: If the entry doesn't exist
            ValueError: If the changes are invalid
        """
        _check_changes(LedgerEntry, changes)

        async with self._lock:
            existing = await self.get(entry_id)
            if existing is None:
                raise NotFoundError(f"Entry not found: {entry_id}")

            data = existing.model_dump()
            data.update(changes)
            data["updated_at"] = utcnow()
            updated = LedgerEntry.model_validate(data)
            await self._kv.set(entry_key(entry_id), updated.to_json())

        if self._audit:
            await self._audit.log_entry_updated(entry_id, sorted(changes))
        return updated

    async def delete(self, entry_id: str) -> None:
        """
        Delete an entry.

        Raises:
            NotFoundError: If the entry doesn't exist
        """
        key = entry_key(entry_id)
        async with self._lock:
            if await self._kv.get(key) is None:
                raise NotFoundError(f"Entry not found: {entry_id}")
            await self._kv.multi_remove([key])

        if self._audit:
            await self._audit.log_entry_deleted(entry_id)

    async def clear(self) -> int:
        """Remove every entry. Returns how many were removed."""
        async with self._lock:
            keys = await self._kv.keys(ENTRY_KEY_PREFIX)
            await self._kv.multi_remove(keys)
        return len(keys)


# =============================================================================
# CATEGORY STORE
# =============================================================================

class CategoryStore:
    """
    Durable collection of categories.

    The default set is written by ``initialize()``, which only seeds when
    no category is stored. Reads return categories in creation order.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._kv = kv
        self._audit = audit_logger
        self._lock = asyncio.Lock()

    async def initialize(self) -> list[Category]:
        """Seed the default categories if none exist. Safe to call repeatedly."""
        seeded = 0
        async with self._lock:
            if not await self._kv.keys(CATEGORY_KEY_PREFIX):
                for category in build_default_categories():
                    await self._kv.set(category_key(category.id), category.to_json())
                    seeded += 1

        if seeded:
            logger.info("default_categories_seeded", count=seeded)
            if self._audit:
                await self._audit.log_categories_seeded(seeded)
        return await self.read_all()

    async def read_all(self) -> list[Category]:
        categories = await _load_records(self._kv, CATEGORY_KEY_PREFIX, Category)
        # Stable: seeded defaults share one timestamp and keep key order
        categories.sort(key=lambda c: c.created_at)
        return categories

    async def get(self, category_id: str) -> Optional[Category]:
        raw = await self._kv.get(category_key(category_id))
        if raw is None:
            return None
        try:
            return Category.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"Stored category {category_id} is malformed: {e}")

    async def find_by_name(self, name: str) -> Optional[Category]:
        """First category (creation order) whose name matches exactly."""
        wanted = (name or "").strip()
        for category in await self.read_all():
            if category.name == wanted:
                return category
        return None

    async def add(self, category: Category) -> Category:
        """
        Raises:
            DuplicateError: If a category with the same id exists
        """
        key = category_key(category.id)
        async with self._lock:
            if await self._kv.get(key) is not None:
                raise DuplicateError(f"Category already exists: {category.id}")
            await self._kv.set(key, category.to_json())
        return category

    async def update(self, category_id: str, **changes) -> Category:
        _check_changes(Category, changes)

        async with self._lock:
            existing = await self.get(category_id)
            if existing is None:
                raise NotFoundError(f"Category not found: {category_id}")
            data = existing.model_dump()
            data.update(changes)
            updated = Category.model_validate(data)
            await self._kv.set(category_key(category_id), updated.to_json())
        return updated

    async def delete(self, category_id: str) -> None:
        """
        Delete a category. Entries pointing at it are left as they are.

        Raises:
            NotFoundError: If the category doesn't exist
        """
        key = category_key(category_id)
        async with self._lock:
            if await self._kv.get(key) is None:
                raise NotFoundError(f"Category not found: {category_id}")
            await self._kv.multi_remove([key])

    async def clear(self) -> int:
        async with self._lock:
            keys = await self._kv.keys(CATEGORY_KEY_PREFIX)
            await self._kv.multi_remove(keys)
        return len(keys)


# =============================================================================
# MAINTENANCE
# =============================================================================

def _parse_legacy_array(key: str, raw: str) -> list[dict]:
    try:
        items = json.loads(raw)
    except json.JSONDecodeError as e:
        raise StorageError(f"Legacy collection {key} is not valid JSON: {e}")
    if not isinstance(items, list):
        raise StorageError(f"Legacy collection {key} is not a JSON array")
    return [item for item in items if isinstance(item, dict)]


async def migrate_legacy_collections(
    kv: KeyValueStore,
    audit_logger: Optional[AuditLogger] = None,
) -> tuple[int, int]:
    """
    Split whole-collection arrays from earlier releases into per-record keys.

    Records already present under their per-record key are kept as they
    are. Legacy entries whose ``categoryId`` holds a category name are
    pointed at the id of the category with that name.

    Returns:
        (migrated entry count, migrated category count)
    """
    migrated_categories = 0
    raw_categories = await kv.get(LEGACY_CATEGORIES_KEY)
    if raw_categories is not None:
        for item in _parse_legacy_array(LEGACY_CATEGORIES_KEY, raw_categories):
            try:
                category = Category.model_validate(item)
            except ValidationError as e:
                logger.warning("legacy_category_skipped", error_count=e.error_count())
                continue
            key = category_key(category.id)
            if await kv.get(key) is None:
                await kv.set(key, category.to_json())
                migrated_categories += 1
        await kv.multi_remove([LEGACY_CATEGORIES_KEY])

    migrated_entries = 0
    raw_entries = await kv.get(LEGACY_ENTRIES_KEY)
    if raw_entries is not None:
        stored = await _load_records(kv, CATEGORY_KEY_PREFIX, Category)
        if stored:
            ids_by_name = {}
            for category in sorted(stored, key=lambda c: c.created_at):
                ids_by_name.setdefault(category.name, category.id)
        else:
            # Defaults are seeded right after migration with these ids
            ids_by_name = {
                spec["name"]: f"default_{index}"
                for index, spec in enumerate(DEFAULT_CATEGORIES)
            }
        known_ids = set(ids_by_name.values())

        for item in _parse_legacy_array(LEGACY_ENTRIES_KEY, raw_entries):
            item = dict(item)
            item.setdefault("id", generate_entry_id())
            category_ref = item.get("categoryId")
            if category_ref not in known_ids:
                item["categoryId"] = ids_by_name.get(
                    category_ref,
                    ids_by_name.get(CATCH_ALL_CATEGORY_NAME, category_ref),
                )
            try:
                entry = LedgerEntry.model_validate(item)
            except ValidationError as e:
                logger.warning(
                    "legacy_entry_skipped",
                    entry_id=item.get("id"),
                    error_count=e.error_count(),
                )
                continue
            key = entry_key(entry.id)
            if await kv.get(key) is None:
                await kv.set(key, entry.to_json())
                migrated_entries += 1
        await kv.multi_remove([LEGACY_ENTRIES_KEY])

    if migrated_entries or migrated_categories:
        logger.info(
            "legacy_collections_migrated",
            entries=migrated_entries,
            categories=migrated_categories,
        )
        if audit_logger:
            await audit_logger.log_legacy_data_migrated(migrated_entries, migrated_categories)

    return migrated_entries, migrated_categories


async def clear_all_data(
    kv: KeyValueStore,
    audit_logger: Optional[AuditLogger] = None,
) -> None:
    """Remove entries, categories, legacy collections and the last-sync marker."""
    keys = await kv.keys(ENTRY_KEY_PREFIX) + await kv.keys(CATEGORY_KEY_PREFIX)
    keys += [LEGACY_ENTRIES_KEY, LEGACY_CATEGORIES_KEY, LAST_SYNC_KEY]
    await kv.multi_remove(keys)

    logger.info("ledger_data_cleared", removed_records=len(keys) - 3)
    if audit_logger:
        await audit_logger.log_data_cleared()


async def prepare_storage(
    kv: KeyValueStore,
    categories: CategoryStore,
    audit_logger: Optional[AuditLogger] = None,
) -> list[Category]:
    """Startup routine: migrate legacy data, then seed default categories."""
    await migrate_legacy_collections(kv, audit_logger)
    return await categories.initialize()
