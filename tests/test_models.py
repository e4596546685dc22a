"""
Tests for Kakeibo Lens models.
"""

import json
import re
from datetime import date, datetime, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from kakeibo_lens.models.ledger import (
    CATCH_ALL_CATEGORY_NAME,
    DEFAULT_CATEGORIES,
    AnalysisResult,
    AnalyzedLine,
    Category,
    IngestionOutcome,
    IngestionState,
    LedgerEntry,
    LineValidation,
    MonthlySummary,
    CategoryBreakdownItem,
    TrendSeries,
    ValidationIssue,
    build_default_categories,
    generate_entry_id,
)
from kakeibo_lens.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestLedgerEntry:
    """Tests for the LedgerEntry model."""

    def test_entry_creation(self):
        entry = LedgerEntry(
            entry_date=date(2026, 1, 4),
            item_name="スーパーで買い物",
            amount=3500,
            category_id="default_0",
        )
        assert entry.amount == 3500
        assert entry.id.startswith("entry_")
        assert entry.note is None

    def test_entry_rejects_negative_amount(self):
        with pytest.raises(ValidationError):
            LedgerEntry(
                entry_date=date(2026, 1, 4),
                item_name="返金",
                amount=-100,
                category_id="default_8",
            )

    def test_entry_rejects_empty_item_name(self):
        with pytest.raises(ValidationError):
            LedgerEntry(
                entry_date=date(2026, 1, 4),
                item_name="   ",
                amount=100,
                category_id="default_8",
            )

    def test_entry_strips_whitespace(self):
        entry = LedgerEntry(
            entry_date=date(2026, 1, 4),
            item_name="  電車代  ",
            amount=500,
            category_id="default_2",
        )
        assert entry.item_name == "電車代"

    def test_entry_serializes_with_camel_case_keys(self):
        entry = LedgerEntry(
            entry_date=date(2026, 1, 4),
            item_name="電車代",
            amount=500,
            category_id="default_2",
            image_uri="file:///tmp/page.jpg",
        )
        data = json.loads(entry.to_json())
        assert data["date"] == "2026-01-04"
        assert data["itemName"] == "電車代"
        assert data["categoryId"] == "default_2"
        assert data["imageUri"] == "file:///tmp/page.jpg"
        assert "createdAt" in data and "updatedAt" in data

    def test_entry_loads_stored_json(self):
        stored = json.dumps({
            "id": "entry_1_abc",
            "date": "2026-01-04",
            "itemName": "電車代",
            "amount": 500,
            "categoryId": "default_2",
            "createdAt": "2026-01-04T09:00:00+00:00",
            "updatedAt": "2026-01-04T09:00:00+00:00",
        })
        entry = LedgerEntry.model_validate_json(stored)
        assert entry.id == "entry_1_abc"
        assert entry.entry_date == date(2026, 1, 4)
        assert entry.created_at == datetime(2026, 1, 4, 9, tzinfo=timezone.utc)


class TestEntryIds:
    def test_id_format(self):
        assert re.fullmatch(r"entry_\d+_[0-9a-z]{9}", generate_entry_id())

    def test_ids_are_distinct_within_one_batch(self):
        ids = {generate_entry_id() for _ in range(200)}
        assert len(ids) == 200


class TestCategories:
    """Tests for categories and the default set."""

    def test_default_set_order_and_ids(self):
        categories = build_default_categories()
        assert [c.id for c in categories] == [f"default_{i}" for i in range(9)]
        assert [c.name for c in categories] == [
            "食費", "日用品", "交通費", "娯楽", "医療費",
            "教育費", "光熱費", "通信費", "その他",
        ]
        assert categories[0].color == "#FF6B6B"
        assert categories[-1].icon == "ellipsis-horizontal"

    def test_catch_all_is_last(self):
        assert DEFAULT_CATEGORIES[-1]["name"] == CATCH_ALL_CATEGORY_NAME

    def test_color_must_be_hex(self):
        with pytest.raises(ValidationError):
            Category(id="c1", name="趣味", color="red")

    def test_icon_is_optional(self):
        category = Category(id="c1", name="趣味", color="#123abc")
        assert category.icon is None


class TestAnalysisModels:
    """Tests for the untrusted analysis payload models."""

    def test_line_accepts_camel_case(self):
        line = AnalyzedLine.model_validate({
            "date": "2026-01-04",
            "itemName": "電車代",
            "amount": 500,
            "suggestedCategory": "交通費",
        })
        assert line.raw_date == "2026-01-04"
        assert line.item_name == "電車代"
        assert line.amount == 500.0
        assert line.suggested_category == "交通費"

    @pytest.mark.parametrize("raw, expected", [
        ("3,500", 3500.0),
        ("¥3500", 3500.0),
        ("3500円", 3500.0),
        ("abc", None),
        (None, None),
        (True, None),
    ])
    def test_line_amount_coercion(self, raw, expected):
        line = AnalyzedLine.model_validate({"itemName": "x", "amount": raw})
        assert line.amount == expected

    def test_line_missing_fields_default(self):
        line = AnalyzedLine.model_validate({"itemName": None})
        assert line.item_name == ""
        assert line.raw_date is None
        assert line.suggested_category is None

    def test_confidence_is_clamped(self):
        assert AnalysisResult(confidence=1.7).confidence == 1.0
        assert AnalysisResult(confidence=-0.2).confidence == 0.0
        assert AnalysisResult(confidence=None).confidence == 0.0

    def test_raw_text_alias(self):
        result = AnalysisResult.model_validate({"entries": [], "rawText": "OCR"})
        assert result.raw_text == "OCR"


class TestReportingModels:
    def test_top_categories_is_first_five(self):
        breakdown = [
            CategoryBreakdownItem(
                category_id=f"c{i}",
                category_name=f"c{i}",
                category_color="#000000",
                amount=100 - i,
                percentage=10.0,
            )
            for i in range(7)
        ]
        summary = MonthlySummary(
            year=2026,
            month=1,
            total_amount=1000,
            category_breakdown=breakdown,
            entry_count=7,
            average_daily_spending=32.3,
        )
        assert [item.category_id for item in summary.top_categories] == [
            "c0", "c1", "c2", "c3", "c4",
        ]

    def test_trend_has_data(self):
        assert TrendSeries(amounts=[0, 0, 5]).has_data is True
        assert TrendSeries(amounts=[0, 0, 0]).has_data is False


class TestValidationModels:
    def test_line_validation_has_errors(self):
        validation = LineValidation(
            line_index=0,
            issues=[
                ValidationIssue(
                    line_index=0,
                    field="amount",
                    issue_type="missing",
                    message="金額を読み取れませんでした",
                    severity="error",
                ),
            ],
        )
        assert validation.has_errors is True
        assert validation.warnings == []

    def test_warnings_only(self):
        validation = LineValidation(
            line_index=1,
            issues=[
                ValidationIssue(
                    line_index=1,
                    field="date",
                    issue_type="invalid_format",
                    message="日付を読み取れませんでした",
                    severity="warning",
                ),
            ],
        )
        assert validation.has_errors is False
        assert len(validation.warnings) == 1

    def test_severity_is_restricted(self):
        with pytest.raises(ValidationError):
            ValidationIssue(
                line_index=0,
                field="amount",
                issue_type="missing",
                message="x",
                severity="fatal",
            )

    def test_outcome_saved_count(self):
        outcome = IngestionOutcome(state=IngestionState.EMPTY, message="なし")
        assert outcome.saved_count == 0
        assert outcome.failed_writes == 0


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.ANALYSIS_STARTED,
            description="Test image sent",
        )
        assert event.event_type == AuditEventType.ANALYSIS_STARTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.ENTRY_SAVED,
            description="Entry saved",
            details={"item_name": "電車代", "amount": 500},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "entry_saved"
        assert log_dict["details"]["amount"] == 500
        assert log_dict["correlation_id"] is None

    def test_builder_entry_saved(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.entry_saved(
            entry_id="entry_1_abc",
            item_name="電車代",
            amount=1500,
            category_id="default_2",
            correlation_id=correlation_id,
        )
        assert event.entity_id == "entry_1_abc"
        assert event.correlation_id == correlation_id
        assert "¥1,500" in event.description

    def test_builder_analysis_failed_is_error(self):
        event = AuditEventBuilder.analysis_failed(
            error_type="AnalysisParseError",
            error_message="not json",
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "not json"

    def test_builder_data_cleared_is_user_action(self):
        event = AuditEventBuilder.data_cleared()
        assert event.is_user_action is True
        assert event.severity == AuditSeverity.WARNING


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
