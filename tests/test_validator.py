"""
Tests for the two-stage line validator.
"""

import json
from datetime import date

import pytest

from kakeibo_lens.models.ledger import AnalyzedLine
from kakeibo_lens.validation import (
    EntryValidator,
    get_user_friendly_summary,
    parse_ledger_date,
)


TODAY = date(2026, 1, 10)


def line(**fields):
    data = {"raw_date": "2026-01-04", "item_name": "電車代", "amount": 500}
    data.update(fields)
    return AnalyzedLine(**data)


@pytest.fixture
def validator():
    return EntryValidator()


class TestParseLedgerDate:

    @pytest.mark.parametrize("text", [
        "2026-01-04",
        "2026/01/04",
        "2026.1.4",
        "2026年1月4日",
        "2026-01-04T09:30:00Z",
        " 2026-01-04 ",
    ])
    def test_accepted_formats(self, text):
        assert parse_ledger_date(text) == date(2026, 1, 4)

    @pytest.mark.parametrize("text", [None, "", "1月4日", "2026-02-30", "yesterday"])
    def test_unreadable(self, text):
        assert parse_ledger_date(text) is None


class TestSchemaStage:

    def test_clean_line_has_no_issues(self, validator):
        result = validator.validate_line(0, line(), TODAY)
        assert result.issues == []
        assert result.resolved_date == date(2026, 1, 4)
        assert result.resolved_amount == 500

    def test_missing_amount_is_error(self, validator):
        result = validator.validate_line(0, line(amount=None), TODAY)
        assert result.has_errors
        assert result.issues[0].field == "amount"
        assert result.issues[0].issue_type == "missing"

    def test_unparseable_amount_string_is_error(self, validator):
        result = validator.validate_line(0, line(amount="たくさん"), TODAY)
        assert result.has_errors

    @pytest.mark.parametrize("amount", ["nan", "inf", "-inf", float("nan"), float("inf"), 10 ** 400])
    def test_non_finite_amount_is_unreadable(self, validator, amount):
        result = validator.validate_line(0, line(amount=amount), TODAY)
        assert result.has_errors
        assert result.issues[0].issue_type == "missing"
        assert result.resolved_amount is None

    def test_overflowing_json_amount_is_unreadable(self, validator):
        parsed = AnalyzedLine.model_validate(json.loads('{"itemName": "x", "amount": 1e400}'))
        assert parsed.amount is None
        assert validator.validate_line(0, parsed, TODAY).has_errors

    def test_negative_amount_is_error(self, validator):
        result = validator.validate_line(0, line(amount=-300), TODAY)
        assert result.has_errors
        assert result.issues[0].issue_type == "invalid_value"
        assert result.resolved_amount is None

    def test_zero_amount_is_accepted(self, validator):
        result = validator.validate_line(0, line(amount=0), TODAY)
        assert not result.has_errors
        assert result.resolved_amount == 0

    def test_formatted_amount_string_is_accepted(self, validator):
        result = validator.validate_line(0, line(amount="¥3,500"), TODAY)
        assert result.issues == []
        assert result.resolved_amount == 3500

    def test_fractional_amount_is_rounded_with_warning(self, validator):
        result = validator.validate_line(0, line(amount=99.6), TODAY)
        assert not result.has_errors
        assert result.resolved_amount == 100
        assert [w.issue_type for w in result.warnings] == ["rounded"]

    def test_missing_item_name_is_error(self, validator):
        result = validator.validate_line(0, line(item_name="  "), TODAY)
        assert result.has_errors
        assert result.issues[0].field == "item_name"

    def test_long_item_name_is_warning(self, validator):
        result = validator.validate_line(0, line(item_name="あ" * 250), TODAY)
        assert not result.has_errors
        assert [w.issue_type for w in result.warnings] == ["too_long"]

    def test_unreadable_date_falls_back_to_today(self, validator):
        result = validator.validate_line(3, line(raw_date="先週"), TODAY)
        assert not result.has_errors
        assert result.resolved_date == TODAY
        warning = result.warnings[0]
        assert warning.field == "date"
        assert warning.line_index == 3
        assert warning.suggested_fix

    def test_missing_date_falls_back_to_today(self, validator):
        result = validator.validate_line(0, line(raw_date=None), TODAY)
        assert result.resolved_date == TODAY


class TestSemanticStage:

    def test_future_date_within_tolerance_is_clean(self, validator):
        result = validator.validate_line(0, line(raw_date="2026-01-17"), TODAY)
        assert result.issues == []

    def test_far_future_date_is_warning(self, validator):
        result = validator.validate_line(0, line(raw_date="2026-03-01"), TODAY)
        assert not result.has_errors
        assert [w.issue_type for w in result.warnings] == ["future_date"]

    def test_huge_amount_is_warning(self, validator):
        result = validator.validate_line(0, line(amount=50_000_000), TODAY)
        assert not result.has_errors
        assert [w.issue_type for w in result.warnings] == ["suspicious_value"]

    def test_threshold_comes_from_settings(self, monkeypatch):
        monkeypatch.setenv("MAX_ENTRY_AMOUNT_YEN", "1000")
        result = EntryValidator().validate_line(0, line(amount=5000), TODAY)
        assert [w.issue_type for w in result.warnings] == ["suspicious_value"]

    def test_semantic_stage_skipped_after_errors(self, validator):
        result = validator.validate_line(0, line(item_name="", raw_date="2027-01-01"), TODAY)
        assert [i.issue_type for i in result.issues] == ["missing"]


class TestValidateLines:

    def test_indexes_follow_input_order(self, validator):
        results = validator.validate_lines([line(), line(amount=None), line()], TODAY)
        assert [r.line_index for r in results] == [0, 1, 2]
        assert [r.has_errors for r in results] == [False, True, False]


class TestUserFriendlySummary:

    def test_clean_lines_give_empty_summary(self, validator):
        results = validator.validate_lines([line(), line()], TODAY)
        assert get_user_friendly_summary(results) == ""

    def test_lists_skipped_lines_and_warnings(self, validator):
        results = validator.validate_lines(
            [line(amount=None), line(raw_date="不明")],
            TODAY,
        )
        summary = get_user_friendly_summary(results)
        assert "1件の行を読み取れなかったためスキップしました" in summary
        assert "1行目: 金額を読み取れませんでした" in summary
        assert "確認してください" in summary
        assert "2行目" in summary
