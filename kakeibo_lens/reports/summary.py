"""
Monthly Aggregation

DESIGN DECISION: Aggregation is DETERMINISTIC and pure.
It never touches storage: the caller passes the entries of one month
(``EntryStore.read_by_month``) and the current category list.

Entries whose category id no longer resolves still count toward the
total and entry count, but are left out of the per-category breakdown.
"""

import calendar
from typing import Iterable

from kakeibo_lens.models.ledger import (
    Category,
    CategoryBreakdownItem,
    LedgerEntry,
    MonthlySummary,
)


def days_in_month(year: int, month: int) -> int:
    """Number of days in a calendar month (handles leap years)."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be 1-12, got {month}")
    return calendar.monthrange(year, month)[1]


def summarize_month(
    entries: Iterable[LedgerEntry],
    categories: Iterable[Category],
    year: int,
    month: int,
) -> MonthlySummary:
    """
    Compute total, per-category breakdown and daily average for a month.

    Breakdown items only include categories with spending, sorted by
    amount descending (ties broken by category id).
    """
    entries = list(entries)
    categories = list(categories)
    day_count = days_in_month(year, month)

    total = sum(entry.amount for entry in entries)

    per_category: dict[str, int] = {category.id: 0 for category in categories}
    for entry in entries:
        if entry.category_id in per_category:
            per_category[entry.category_id] += entry.amount

    breakdown = []
    for category in categories:
        amount = per_category.get(category.id, 0)
        if amount <= 0:
            continue
        breakdown.append(CategoryBreakdownItem(
            category_id=category.id,
            category_name=category.name,
            category_color=category.color,
            amount=amount,
            percentage=(amount / total * 100) if total > 0 else 0.0,
        ))

    breakdown.sort(key=lambda item: (-item.amount, item.category_id))

    return MonthlySummary(
        year=year,
        month=month,
        total_amount=total,
        category_breakdown=breakdown,
        entry_count=len(entries),
        average_daily_spending=total / day_count,
    )
