"""Working-day arithmetic for leave requests.

A working day is any calendar day other than Saturday or Sunday.
Half-day flags shave 0.5 off either end of the range; a single-day
request is never charged zero, even when it falls on a weekend.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

WEEKEND_DAYS = frozenset({5, 6})  # Saturday, Sunday
HALF_DAY = Decimal("0.5")


def calendar_span(start_date: date, end_date: date) -> int:
    """Inclusive number of calendar days in ``[start_date, end_date]``."""
    if start_date > end_date:
        return 0
    return (end_date - start_date).days + 1


def iter_dates(start_date: date, end_date: date):
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def compute_working_days(
    start_date: date,
    end_date: date,
    is_start_half_day: bool = False,
    is_end_half_day: bool = False,
) -> Decimal:
    """Return the chargeable working days of a leave range.

    Examples:
        >>> compute_working_days(date(2024, 8, 12), date(2024, 8, 13))
        Decimal('2')
        >>> compute_working_days(date(2024, 8, 7), date(2024, 8, 7), True, True)
        Decimal('0.5')
    """
    if start_date > end_date:
        return Decimal("0")

    same_day = start_date == end_date

    if same_day and is_start_half_day and is_end_half_day:
        return HALF_DAY

    count = Decimal(
        sum(1 for d in iter_dates(start_date, end_date)
            if d.weekday() not in WEEKEND_DAYS)
    )

    # Single weekend day still counts as one day
    if same_day and count == 0:
        count = Decimal("1")

    deduction = Decimal("0")
    if is_start_half_day:
        deduction += HALF_DAY
    if is_end_half_day and not same_day:
        deduction += HALF_DAY

    return max(Decimal("0"), count - deduction)
