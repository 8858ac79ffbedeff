"""Tests for working-day computation."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from leavedesk.leave.working_days import calendar_span, compute_working_days


class TestComputeWorkingDays:

    def test_single_weekday(self):
        # 2024-08-07 is a Wednesday
        assert compute_working_days(date(2024, 8, 7), date(2024, 8, 7)) == Decimal("1")

    def test_single_saturday_counts_as_one(self):
        assert compute_working_days(date(2024, 8, 10), date(2024, 8, 10)) == Decimal("1")

    def test_single_day_both_half_flags(self):
        result = compute_working_days(date(2024, 8, 7), date(2024, 8, 7), True, True)
        assert result == Decimal("0.5")

    def test_single_weekend_day_both_half_flags(self):
        """A single half-day is never zero, even on a Sunday."""
        result = compute_working_days(date(2024, 8, 11), date(2024, 8, 11), True, True)
        assert result == Decimal("0.5")

    def test_two_weekdays(self):
        # Mon 2024-08-12 → Tue 2024-08-13
        assert compute_working_days(date(2024, 8, 12), date(2024, 8, 13)) == Decimal("2")

    def test_reversed_range_is_zero(self):
        assert compute_working_days(date(2024, 8, 13), date(2024, 8, 12)) == Decimal("0")

    def test_full_week_skips_weekend(self):
        # Mon 2024-08-12 → Sun 2024-08-18
        assert compute_working_days(date(2024, 8, 12), date(2024, 8, 18)) == Decimal("5")

    def test_weekend_only_range_is_zero(self):
        # Sat → Sun spans two days, so the single-day override does not apply
        assert compute_working_days(date(2024, 8, 10), date(2024, 8, 11)) == Decimal("0")

    def test_start_half_day(self):
        result = compute_working_days(date(2024, 8, 12), date(2024, 8, 14), True, False)
        assert result == Decimal("2.5")

    def test_end_half_day_multi_day(self):
        result = compute_working_days(date(2024, 8, 12), date(2024, 8, 14), False, True)
        assert result == Decimal("2.5")

    def test_both_half_days_multi_day(self):
        result = compute_working_days(date(2024, 8, 12), date(2024, 8, 14), True, True)
        assert result == Decimal("2")

    def test_end_half_day_ignored_on_single_day(self):
        result = compute_working_days(date(2024, 8, 7), date(2024, 8, 7), False, True)
        assert result == Decimal("1")

    def test_start_half_day_on_single_day(self):
        result = compute_working_days(date(2024, 8, 7), date(2024, 8, 7), True, False)
        assert result == Decimal("0.5")

    def test_never_negative(self):
        # Sat → Sun with both half flags: 0 working days minus deductions
        result = compute_working_days(date(2024, 8, 10), date(2024, 8, 11), True, True)
        assert result == Decimal("0")

    def test_deterministic(self):
        args = (date(2024, 8, 1), date(2024, 8, 31), True, False)
        assert compute_working_days(*args) == compute_working_days(*args)


class TestCalendarSpan:

    def test_inclusive(self):
        assert calendar_span(date(2024, 8, 12), date(2024, 8, 18)) == 7

    def test_single_day(self):
        assert calendar_span(date(2024, 8, 7), date(2024, 8, 7)) == 1

    def test_reversed(self):
        assert calendar_span(date(2024, 8, 18), date(2024, 8, 12)) == 0
