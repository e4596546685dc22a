"""
Spending Trend

Monthly totals over the trailing N months ending at a reference month,
oldest first. Labels are the month number ("8", "9", ...), which is what
the trend chart prints under each bar.
"""

from typing import Awaitable, Callable, Iterable

from kakeibo_lens.models.ledger import LedgerEntry, TrendSeries


MonthFetcher = Callable[[int, int], Awaitable[list[LedgerEntry]]]


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move ``delta`` months forward (or back when negative) from year/month."""
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be 1-12, got {month}")
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def trailing_months(
    ref_year: int,
    ref_month: int,
    months_back: int,
) -> list[tuple[int, int]]:
    """The ``months_back`` months ending at (and including) the reference month."""
    if months_back < 1:
        raise ValueError(f"months_back must be >= 1, got {months_back}")
    return [
        shift_month(ref_year, ref_month, -offset)
        for offset in range(months_back - 1, -1, -1)
    ]


def _series(periods: list[tuple[int, int]], amounts: list[int]) -> TrendSeries:
    return TrendSeries(
        amounts=amounts,
        labels=[str(month) for _, month in periods],
        periods=periods,
    )


async def build_trend(
    fetch_month: MonthFetcher,
    ref_year: int,
    ref_month: int,
    months_back: int = 6,
) -> TrendSeries:
    """
    Build a trend by fetching each month's entries.

    Always returns exactly ``months_back`` points, including all-zero
    series; callers check ``has_data`` before drawing.
    """
    periods = trailing_months(ref_year, ref_month, months_back)
    amounts = []
    for year, month in periods:
        entries = await fetch_month(year, month)
        amounts.append(sum(entry.amount for entry in entries))
    return _series(periods, amounts)


def trend_from_entries(
    entries: Iterable[LedgerEntry],
    ref_year: int,
    ref_month: int,
    months_back: int = 6,
) -> TrendSeries:
    """Same as ``build_trend`` over entries already in memory."""
    periods = trailing_months(ref_year, ref_month, months_back)
    totals = {period: 0 for period in periods}
    for entry in entries:
        period = (entry.entry_date.year, entry.entry_date.month)
        if period in totals:
            totals[period] += entry.amount
    return _series(periods, [totals[period] for period in periods])
