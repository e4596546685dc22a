"""
Two-Stage Line Validation

Every line the vision model proposes is checked before it becomes a
ledger entry.

STAGE 1 - SCHEMA VALIDATION:
- Amount present and not negative
- Item label present
- Date readable (YYYY-MM-DD)

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Absurd amount detection

Errors mean the line is skipped. Warnings never block a line: an
unreadable date falls back to today, a fractional amount is rounded to
whole yen, and both are reported so the user can correct the entry.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from kakeibo_lens.config import get_settings
from kakeibo_lens.models.ledger import AnalyzedLine, LineValidation, ValidationIssue


ITEM_NAME_MAX_LENGTH = 200

# Handwritten ledgers use all of these
DATE_FORMATS = ["%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d", "%Y年%m月%d日"]


def parse_ledger_date(value: Optional[str]) -> Optional[date]:
    """Parse a date as written by the model; None when unreadable."""
    if not value:
        return None
    text = value.strip()
    # The model sometimes returns a full timestamp
    if "T" in text:
        text = text.split("T", 1)[0]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


class EntryValidator:
    """Validates analyzed lines through a two-stage pipeline."""

    def __init__(self):
        self._settings = get_settings().app

    def _validate_schema(
        self,
        index: int,
        line: AnalyzedLine,
        today: date,
    ) -> tuple[list[ValidationIssue], Optional[date], Optional[int]]:
        """
        Stage 1: Schema validation.

        Returns: (issues, resolved_date, resolved_amount)
        """
        issues = []
        resolved_amount = None

        if line.amount is None:
            issues.append(ValidationIssue(
                line_index=index,
                field="amount",
                issue_type="missing",
                message="金額を読み取れませんでした",
                severity="error",
                suggested_fix="金額をはっきり書いてもう一度スキャンしてください",
            ))
        elif line.amount < 0:
            issues.append(ValidationIssue(
                line_index=index,
                field="amount",
                issue_type="invalid_value",
                message=f"金額がマイナスです ({line.amount:g})",
                severity="error",
                suggested_fix="金額が正しく読み取られたか確認してください",
            ))
        else:
            resolved_amount = int(round(line.amount))
            if resolved_amount != line.amount:
                issues.append(ValidationIssue(
                    line_index=index,
                    field="amount",
                    issue_type="rounded",
                    message=f"金額 {line.amount:g} を {resolved_amount} 円に丸めました",
                    severity="warning",
                ))

        if not line.item_name:
            issues.append(ValidationIssue(
                line_index=index,
                field="item_name",
                issue_type="missing",
                message="項目名を読み取れませんでした",
                severity="error",
                suggested_fix="項目名をはっきり書いてもう一度スキャンしてください",
            ))
        elif len(line.item_name) > ITEM_NAME_MAX_LENGTH:
            issues.append(ValidationIssue(
                line_index=index,
                field="item_name",
                issue_type="too_long",
                message=f"項目名が長すぎるため{ITEM_NAME_MAX_LENGTH}文字に切り詰めました",
                severity="warning",
            ))

        resolved_date = parse_ledger_date(line.raw_date)
        if resolved_date is None:
            issues.append(ValidationIssue(
                line_index=index,
                field="date",
                issue_type="invalid_format",
                message=f"日付を読み取れませんでした ({line.raw_date!r})。今日の日付を使用します",
                severity="warning",
                suggested_fix="日付が違う場合は記録を修正してください",
            ))
            resolved_date = today

        return issues, resolved_date, resolved_amount

    def _validate_semantic(
        self,
        index: int,
        resolved_date: date,
        resolved_amount: Optional[int],
        today: date,
    ) -> list[ValidationIssue]:
        """Stage 2: Semantic validation."""
        issues = []

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if resolved_date > max_future_date:
            issues.append(ValidationIssue(
                line_index=index,
                field="date",
                issue_type="future_date",
                message=f"日付 ({resolved_date}) が未来になっています",
                severity="warning",
                suggested_fix="日付が正しいか確認してください",
            ))

        if resolved_amount is not None and resolved_amount > self._settings.max_entry_amount_yen:
            issues.append(ValidationIssue(
                line_index=index,
                field="amount",
                issue_type="suspicious_value",
                message=f"金額 (¥{resolved_amount:,}) が非常に大きいです",
                severity="warning",
                suggested_fix="金額が正しいか確認してください",
            ))

        return issues

    def validate_line(
        self,
        index: int,
        line: AnalyzedLine,
        today: Optional[date] = None,
    ) -> LineValidation:
        """
        Run the full pipeline on one analyzed line.

        Stage 2 only runs when stage 1 found no errors.
        """
        today = today or date.today()
        issues, resolved_date, resolved_amount = self._validate_schema(index, line, today)

        if not any(issue.severity == "error" for issue in issues):
            issues.extend(self._validate_semantic(index, resolved_date, resolved_amount, today))

        return LineValidation(
            line_index=index,
            issues=issues,
            resolved_date=resolved_date,
            resolved_amount=resolved_amount,
        )

    def validate_lines(
        self,
        lines: list[AnalyzedLine],
        today: Optional[date] = None,
    ) -> list[LineValidation]:
        today = today or date.today()
        return [self.validate_line(index, line, today) for index, line in enumerate(lines)]


def get_user_friendly_summary(validations: list[LineValidation]) -> str:
    """
    Summarize skipped lines and warnings for the user.

    Returns an empty string when every line passed cleanly.
    """
    lines = []

    skipped = [v for v in validations if v.has_errors]
    if skipped:
        lines.append(f"{len(skipped)}件の行を読み取れなかったためスキップしました:")
        for validation in skipped:
            for issue in validation.issues:
                if issue.severity == "error":
                    lines.append(f"   • {validation.line_index + 1}行目: {issue.message}")

    warnings = [
        (v.line_index, issue)
        for v in validations
        if not v.has_errors
        for issue in v.warnings
    ]
    if warnings:
        lines.append("確認してください:")
        for line_index, issue in warnings:
            lines.append(f"   • {line_index + 1}行目: {issue.message}")

    return "\n".join(lines)
