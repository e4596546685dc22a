"""
Report Service

Reads both stores and runs the pure reporting functions on the result.
This is the only reporting code that touches storage; everything it
returns is recomputed on each call.
"""

from datetime import date
from pathlib import Path
from typing import Optional

import structlog

from kakeibo_lens.audit.logger import AuditLogger
from kakeibo_lens.config import get_settings
from kakeibo_lens.models.ledger import LedgerEntry, MonthlySummary, TrendSeries
from kakeibo_lens.reports.csv_export import export_csv, is_header_only
from kakeibo_lens.reports.summary import summarize_month
from kakeibo_lens.reports.trend import build_trend
from kakeibo_lens.services.storage.ledger_store import CategoryStore, EntryStore


logger = structlog.get_logger(__name__)


def export_filename(day: date) -> str:
    return f"kakeibo_export_{day.isoformat()}.csv"


class ReportService:
    """Monthly summaries, trends, recent entries and CSV export."""

    def __init__(
        self,
        entries: EntryStore,
        categories: CategoryStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._entries = entries
        self._categories = categories
        self._audit = audit_logger
        self._settings = get_settings().app

    async def monthly_summary(self, year: int, month: int) -> MonthlySummary:
        entries = await self._entries.read_by_month(year, month)
        categories = await self._categories.read_all()
        return summarize_month(entries, categories, year, month)

    async def trend(
        self,
        ref_year: int,
        ref_month: int,
        months_back: Optional[int] = None,
    ) -> TrendSeries:
        return await build_trend(
            self._entries.read_by_month,
            ref_year,
            ref_month,
            months_back if months_back is not None else self._settings.trend_months,
        )

    async def recent_entries(self, limit: Optional[int] = None) -> list[LedgerEntry]:
        if limit is None:
            limit = self._settings.recent_entries_limit
        return await self._entries.recent(limit)

    async def export_csv(self) -> str:
        entries = await self._entries.read_all()
        categories = await self._categories.read_all()
        return export_csv(entries, categories)

    async def write_export_file(
        self,
        directory: Path,
        today: Optional[date] = None,
    ) -> Optional[Path]:
        """
        Write the CSV export to ``directory``.

        Returns:
            Path of the written file, or None when there is nothing to export
        """
        entries = await self._entries.read_all()
        csv_text = export_csv(entries, await self._categories.read_all())
        if is_header_only(csv_text):
            logger.info("export_skipped_no_entries")
            return None

        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / export_filename(today or date.today())
        path.write_text(csv_text, encoding="utf-8")

        logger.info("export_written", path=str(path), rows=len(entries))
        if self._audit:
            await self._audit.log_export_generated(len(entries), str(path))
        return path
