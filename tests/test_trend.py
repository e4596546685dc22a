"""
Tests for the spending trend builder.
"""

from datetime import date

import pytest

from kakeibo_lens.reports import (
    build_trend,
    shift_month,
    trailing_months,
    trend_from_entries,
)


class TestMonthArithmetic:

    def test_shift_back_across_year(self):
        assert shift_month(2026, 1, -1) == (2025, 12)

    def test_shift_forward_across_year(self):
        assert shift_month(2025, 12, 1) == (2026, 1)

    def test_shift_many_months(self):
        assert shift_month(2026, 3, -27) == (2023, 12)

    def test_trailing_months_wraps_year(self):
        assert trailing_months(2026, 1, 6) == [
            (2025, 8), (2025, 9), (2025, 10), (2025, 11), (2025, 12), (2026, 1),
        ]

    def test_single_month(self):
        assert trailing_months(2026, 5, 1) == [(2026, 5)]

    @pytest.mark.parametrize("months_back", [0, -3])
    def test_months_back_must_be_positive(self, months_back):
        with pytest.raises(ValueError):
            trailing_months(2026, 1, months_back)


class TestBuildTrend:

    def test_fetches_each_month_oldest_first(self, run, entry_factory):
        requested = []

        async def fetch_month(year, month):
            requested.append((year, month))
            if (year, month) == (2025, 12):
                return [entry_factory(date(2025, 12, 24), 5000)]
            if (year, month) == (2026, 1):
                return [
                    entry_factory(date(2026, 1, 2), 1200),
                    entry_factory(date(2026, 1, 3), 800),
                ]
            return []

        series = run(build_trend(fetch_month, 2026, 1, 6))

        assert requested == trailing_months(2026, 1, 6)
        assert series.amounts == [0, 0, 0, 0, 5000, 2000]
        assert series.labels == ["8", "9", "10", "11", "12", "1"]
        assert series.periods[0] == (2025, 8)
        assert series.has_data is True

    def test_all_zero_series_is_returned(self, run):
        async def fetch_month(year, month):
            return []

        series = run(build_trend(fetch_month, 2026, 6))
        assert series.amounts == [0] * 6
        assert series.has_data is False


class TestTrendFromEntries:

    def test_groups_by_month_and_ignores_outside_window(self, entry_factory):
        entries = [
            entry_factory(date(2025, 7, 31), 999),   # outside the window
            entry_factory(date(2025, 8, 1), 100),
            entry_factory(date(2025, 8, 20), 50),
            entry_factory(date(2026, 1, 15), 300),
            entry_factory(date(2026, 2, 1), 999),    # after the reference month
        ]
        series = trend_from_entries(entries, 2026, 1)
        assert series.amounts == [150, 0, 0, 0, 0, 300]
        assert len(series.labels) == 6
