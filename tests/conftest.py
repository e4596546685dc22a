"""
Shared fixtures for Kakeibo Lens tests.

Test strategy:
1. Unit tests for pure components (models, normalizer, reports, validator)
2. Store tests against the in-memory and file backends
3. Flow tests with a stub analysis service
4. No real API calls in tests (httpx.MockTransport and fakes instead)
"""

import asyncio
from datetime import date, datetime, timezone

import pytest

from kakeibo_lens.config import get_settings
from kakeibo_lens.models.ledger import (
    AnalysisResult,
    LedgerEntry,
    build_default_categories,
)
from kakeibo_lens.services.analysis import AnalysisServiceInterface
from kakeibo_lens.services.storage import (
    CategoryStore,
    EntryStore,
    InMemoryKeyValueStore,
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep tests independent of the developer's environment and .env."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "KAKEIBO_STORAGE_BACKEND",
        "ANALYSIS_PROVIDER",
        "ANALYSIS_TIMEOUT_SECONDS",
        "MAX_UPLOAD_SIZE_MB",
        "FUTURE_DATE_TOLERANCE_DAYS",
        "MAX_ENTRY_AMOUNT_YEN",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def run():
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def entry_store(kv):
    return EntryStore(kv)


@pytest.fixture
def category_store(kv):
    return CategoryStore(kv)


@pytest.fixture
def categories():
    return build_default_categories(
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc)
    )


def make_entry(
    day: date,
    amount: int,
    category_id: str = "default_0",
    item_name: str = "スーパー",
    **extra,
) -> LedgerEntry:
    return LedgerEntry(
        entry_date=day,
        item_name=item_name,
        amount=amount,
        category_id=category_id,
        **extra,
    )


@pytest.fixture
def entry_factory():
    return make_entry


class StubAnalysisService(AnalysisServiceInterface):
    """Returns a canned result, or raises a canned error."""

    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result if result is not None else AnalysisResult()
        self.error = error
        self.delay = delay
        self.calls = 0

    async def analyze(self, image_bytes: bytes) -> AnalysisResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def stub_analysis():
    return StubAnalysisService
