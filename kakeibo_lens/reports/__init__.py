"""Reporting: monthly summaries, trends and CSV export."""

from kakeibo_lens.reports.csv_export import CSV_HEADER, export_csv, is_header_only
from kakeibo_lens.reports.service import ReportService, export_filename
from kakeibo_lens.reports.summary import days_in_month, summarize_month
from kakeibo_lens.reports.trend import (
    build_trend,
    shift_month,
    trailing_months,
    trend_from_entries,
)

__all__ = [
    "CSV_HEADER",
    "ReportService",
    "build_trend",
    "days_in_month",
    "export_csv",
    "export_filename",
    "is_header_only",
    "shift_month",
    "summarize_month",
    "trailing_months",
    "trend_from_entries",
]
