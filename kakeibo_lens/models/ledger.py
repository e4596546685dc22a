"""
Core Data Models for Kakeibo Lens

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

Persisted records use camelCase keys on the wire (``itemName``,
``categoryId``, ``createdAt``) so records written by earlier releases of the
app load unchanged. Python code uses the snake_case field names.
"""

import math
import secrets
import string
import time
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel


_ID_ALPHABET = string.digits + string.ascii_lowercase


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def generate_entry_id() -> str:
    """
    Create a new entry identifier.

    Millisecond timestamp plus 9 random base36 characters, so entries
    created within the same millisecond (one ledger page) stay distinct.
    """
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"entry_{millis}_{suffix}"


class _WireModel(BaseModel):
    """Base for models that round-trip through JSON storage."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


# =============================================================================
# CATEGORIES
# =============================================================================

CATCH_ALL_CATEGORY_NAME = "その他"

# Order matters: default ids are assigned by position.
DEFAULT_CATEGORIES: list[dict] = [
    {"name": "食費", "color": "#FF6B6B", "icon": "cart"},
    {"name": "日用品", "color": "#4ECDC4", "icon": "home"},
    {"name": "交通費", "color": "#45B7D1", "icon": "car"},
    {"name": "娯楽", "color": "#FFA07A", "icon": "game-controller"},
    {"name": "医療費", "color": "#98D8C8", "icon": "medical"},
    {"name": "教育費", "color": "#F7DC6F", "icon": "book"},
    {"name": "光熱費", "color": "#BB8FCE", "icon": "flash"},
    {"name": "通信費", "color": "#85C1E2", "icon": "phone-portrait"},
    {"name": CATCH_ALL_CATEGORY_NAME, "color": "#95A5A6", "icon": "ellipsis-horizontal"},
]


class Category(_WireModel):
    """A named, colored spending bucket."""

    id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique category ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Display name"
    )
    color: str = Field(
        ...,
        pattern=r"^#[0-9A-Fa-f]{6}$",
        description="Hex color code used by charts"
    )
    icon: Optional[str] = Field(
        default=None,
        max_length=50,
        description="Optional icon tag"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the category was created"
    )


def build_default_categories(created_at: Optional[datetime] = None) -> list[Category]:
    """Materialize the bootstrap category set with ids ``default_0``..``default_8``."""
    created_at = created_at or utcnow()
    return [
        Category(id=f"default_{index}", created_at=created_at, **spec)
        for index, spec in enumerate(DEFAULT_CATEGORIES)
    ]


# =============================================================================
# LEDGER ENTRIES
# =============================================================================

class LedgerEntry(_WireModel):
    """
    One recorded expense line.

    ``category_id`` always holds a real Category id. Display names are
    resolved by joining against the category store.
    """

    id: str = Field(
        default_factory=generate_entry_id,
        min_length=1,
        description="Unique entry ID"
    )
    entry_date: date = Field(
        ...,
        alias="date",
        description="Calendar date of the expense"
    )
    item_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Item label as written on the ledger"
    )
    amount: int = Field(
        ...,
        ge=0,
        description="Amount in yen"
    )
    category_id: str = Field(
        ...,
        min_length=1,
        description="ID of the category this entry belongs to"
    )
    note: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="Free-text note"
    )
    image_uri: Optional[str] = Field(
        default=None,
        description="Reference to the source image"
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# ANALYSIS RESULT (untrusted external input)
# =============================================================================

class AnalyzedLine(_WireModel):
    """
    One candidate line item returned by the vision model.

    CRITICAL: This is PROPOSED data. Date may be malformed and the amount
    may be a guess; the validator decides what becomes an entry.
    """

    raw_date: Optional[str] = Field(
        default=None,
        alias="date",
        description="Date as the model wrote it (expected YYYY-MM-DD)"
    )
    item_name: str = Field(
        default="",
        description="Label as read; length is checked by the validator"
    )
    amount: Optional[float] = Field(
        default=None,
        description="Amount guess; None when the value could not be read"
    )
    suggested_category: Optional[str] = Field(
        default=None,
        description="Free-text category guess"
    )

    @field_validator("raw_date", mode="before")
    @classmethod
    def coerce_date(cls, v):
        if v is None:
            return None
        return str(v)

    @field_validator("item_name", mode="before")
    @classmethod
    def coerce_item_name(cls, v):
        if v is None:
            return ""
        return str(v)

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v):
        """
        Accept "3,500", "¥3500" and "3500円" as well as plain numbers.

        NaN and infinity count as unreadable.
        """
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            try:
                amount = float(v)
            except OverflowError:
                return None
        elif isinstance(v, str):
            cleaned = v.strip().replace(",", "").replace("¥", "").replace("￥", "").rstrip("円")
            try:
                amount = float(cleaned)
            except ValueError:
                return None
        else:
            return None
        return amount if math.isfinite(amount) else None


class AnalysisResult(_WireModel):
    """Structured output of one analysis call."""

    entries: list[AnalyzedLine] = Field(default_factory=list)
    confidence: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Overall confidence in extraction (0-1)"
    )
    raw_text: Optional[str] = Field(
        default=None,
        description="Raw OCR text for debugging"
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        if v is None:
            return 0.0
        return min(max(float(v), 0.0), 1.0)


# =============================================================================
# REPORTING MODELS (derived, never persisted)
# =============================================================================

class CategoryBreakdownItem(BaseModel):
    """Spend attributed to one category within a month."""

    category_id: str
    category_name: str
    category_color: str
    amount: int = Field(ge=0)
    percentage: float = Field(ge=0.0, le=100.0)


class MonthlySummary(BaseModel):
    """Total and per-category spend for one calendar month."""

    year: int
    month: int = Field(ge=1, le=12)
    total_amount: int
    category_breakdown: list[CategoryBreakdownItem] = Field(default_factory=list)
    entry_count: int = Field(ge=0)
    average_daily_spending: float

    @property
    def top_categories(self) -> list[CategoryBreakdownItem]:
        """The five largest categories, as shown on the home summary."""
        return self.category_breakdown[:5]


class TrendSeries(BaseModel):
    """Monthly totals across consecutive months, oldest first."""

    amounts: list[int] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    periods: list[tuple[int, int]] = Field(default_factory=list)

    @property
    def has_data(self) -> bool:
        """Whether any month has spending (callers skip the chart otherwise)."""
        return any(amount > 0 for amount in self.amounts)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found on an analyzed line."""

    line_index: int = Field(
        ...,
        ge=0,
        description="Position of the line in the analysis result"
    )
    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested action for the user"
    )


class LineValidation(BaseModel):
    """Validation outcome for one analyzed line."""

    line_index: int = Field(ge=0)
    issues: list[ValidationIssue] = Field(default_factory=list)
    resolved_date: Optional[date] = Field(
        default=None,
        description="Date to record (falls back to today when unreadable)"
    )
    resolved_amount: Optional[int] = Field(
        default=None,
        description="Amount in whole yen"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]


# =============================================================================
# INGESTION
# =============================================================================

class IngestionState(str, Enum):
    """Where an ingestion attempt ended up."""
    IDLE = "idle"
    ANALYZING = "analyzing"
    PERSISTED = "persisted"   # At least one entry written
    EMPTY = "empty"           # Valid response, nothing found
    FAILED = "failed"         # Transport/parse failure, nothing written


class IngestionOutcome(BaseModel):
    """Result of one ingestion attempt, shown to the user."""

    state: IngestionState
    message: str
    saved_entries: list[LedgerEntry] = Field(default_factory=list)
    skipped_lines: list[ValidationIssue] = Field(default_factory=list)
    failed_writes: int = Field(default=0, ge=0)
    confidence: Optional[float] = None

    @property
    def saved_count(self) -> int:
        return len(self.saved_entries)
