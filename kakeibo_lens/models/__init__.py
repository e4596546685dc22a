"""
Data Models Package

This package contains all Pydantic models used in Kakeibo Lens.
All data flowing through the system must conform to these schemas.
"""

from kakeibo_lens.models.ledger import (
    CATCH_ALL_CATEGORY_NAME,
    DEFAULT_CATEGORIES,
    AnalysisResult,
    AnalyzedLine,
    Category,
    CategoryBreakdownItem,
    IngestionOutcome,
    IngestionState,
    LedgerEntry,
    LineValidation,
    MonthlySummary,
    TrendSeries,
    ValidationIssue,
    build_default_categories,
    generate_entry_id,
    utcnow,
)
from kakeibo_lens.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CATCH_ALL_CATEGORY_NAME",
    "DEFAULT_CATEGORIES",
    "AnalysisResult",
    "AnalyzedLine",
    "Category",
    "CategoryBreakdownItem",
    "IngestionOutcome",
    "IngestionState",
    "LedgerEntry",
    "LineValidation",
    "MonthlySummary",
    "TrendSeries",
    "ValidationIssue",
    "build_default_categories",
    "generate_entry_id",
    "utcnow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
