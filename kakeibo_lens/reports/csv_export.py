"""
CSV Export

One row per entry, newest date first:

    日付,項目名,金額,カテゴリ,メモ

Item labels come from handwriting or from the vision model, so every text
field is quoted and any value a spreadsheet would read as a formula is
prefixed with an apostrophe.
"""

import csv
import io
from typing import Iterable

from kakeibo_lens.models.ledger import CATCH_ALL_CATEGORY_NAME, Category, LedgerEntry


CSV_COLUMNS = ["日付", "項目名", "金額", "カテゴリ", "メモ"]
CSV_HEADER = ",".join(CSV_COLUMNS)

FORMULA_PREFIXES = ("=", "+", "-", "@")


def _neutralize(value: str) -> str:
    if value.startswith(FORMULA_PREFIXES):
        return "'" + value
    return value


def export_csv(entries: Iterable[LedgerEntry], categories: Iterable[Category]) -> str:
    """
    Serialize entries to CSV text with category names resolved.

    Entries sharing a date keep the order they were given in (the sort is
    stable). Unknown category ids are exported as the catch-all name.
    """
    names = {category.id: category.name for category in categories}
    rows = sorted(entries, key=lambda entry: entry.entry_date, reverse=True)

    buffer = io.StringIO()
    buffer.write(CSV_HEADER + "\n")

    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for entry in rows:
        writer.writerow([
            entry.entry_date.isoformat(),
            _neutralize(entry.item_name),
            entry.amount,
            _neutralize(names.get(entry.category_id, CATCH_ALL_CATEGORY_NAME)),
            _neutralize(entry.note or ""),
        ])

    return buffer.getvalue()


def is_header_only(csv_text: str) -> bool:
    """True when the export has no data rows (nothing to export)."""
    return csv_text.strip() == CSV_HEADER
