"""
Calendar arithmetic for due dates and recurrences.

All functions work on ``datetime.date`` values (no time component) and are
pure. Month and year arithmetic clamps to the last valid day instead of
overflowing into the next month, so Jan 31 + 1 month is Feb 28 (or Feb 29
in a leap year) and Feb 29 + 1 year is Feb 28.

Weekdays follow the 0 = Sunday .. 6 = Saturday convention used by the task
wire format, not Python's ``date.weekday()`` (0 = Monday).
"""

import calendar
from datetime import date, timedelta
from typing import Iterable, Optional, Union

from .errors import TaskValidationError

SUNDAY, MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY = range(7)


def is_leap_year(year: int) -> bool:
    return calendar.isleap(year)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_days(base: date, days: int) -> date:
    return base + timedelta(days=days)


def add_weeks(base: date, weeks: int) -> date:
    return base + timedelta(weeks=weeks)


def add_months(base: date, months: int, day: Optional[int] = None) -> date:
    """
    Move ``base`` by a number of months.

    The day of month is ``day`` when given, otherwise ``base.day``; either
    way it is clamped to the length of the target month.
    """
    month_index = base.month - 1 + months
    year = base.year + month_index // 12
    month = month_index % 12 + 1
    target_day = base.day if day is None else day
    return date(year, month, min(target_day, days_in_month(year, month)))


def add_years(base: date, years: int) -> date:
    """Same month and day ``years`` later; Feb 29 falls back to Feb 28."""
    year = base.year + years
    return date(year, base.month, min(base.day, days_in_month(year, base.month)))


def day_of_week(value: date) -> int:
    """Weekday with Sunday as 0."""
    return (value.weekday() + 1) % 7


def next_matching_weekday(base: date, weekdays: Iterable[int]) -> date:
    """
    First date strictly after ``base`` whose weekday is in ``weekdays``.

    Wraps into the following week when no selected weekday remains in the
    current one. Raises ``TaskValidationError`` for an empty selection.
    """
    selected = set(weekdays)
    if not selected:
        raise TaskValidationError("At least one weekday is required", field='daysOfWeek')
    for offset in range(1, 8):
        candidate = base + timedelta(days=offset)
        if day_of_week(candidate) in selected:
            return candidate
    raise TaskValidationError(
        f"Weekdays must be between 0 and 6, got {sorted(selected)}",
        field='daysOfWeek'
    )


def nth_weekday_of_month(year: int, month: int, week: int, weekday: int) -> date:
    """
    The ``week``-th occurrence of ``weekday`` in the given month.

    ``week`` is 1..5. A fifth occurrence that does not exist in the month
    resolves to the last occurrence of that weekday.
    """
    if not 1 <= week <= 5:
        raise TaskValidationError(
            f"Week of month must be between 1 and 5, got {week}",
            field='nthWeekdayOfMonth'
        )
    if not 0 <= weekday <= 6:
        raise TaskValidationError(
            f"Weekday must be between 0 and 6, got {weekday}",
            field='nthWeekdayOfMonth'
        )

    first = date(year, month, 1)
    offset = (weekday - day_of_week(first)) % 7
    day = 1 + offset + (week - 1) * 7
    last_day = days_in_month(year, month)
    while day > last_day:
        day -= 7
    return date(year, month, day)


def days_between(start: date, end: date) -> int:
    """Signed number of days from ``start`` to ``end``."""
    return (end - start).days


def parse_date(value: Union[str, date, None], field: str = 'date') -> Optional[date]:
    """
    Parse an ISO ``YYYY-MM-DD`` string.

    ``None`` and empty strings mean "no date". ``date`` values pass through
    (datetimes are truncated to their date).
    """
    if value is None or value == '':
        return None
    if isinstance(value, date):
        return value.date() if hasattr(value, 'hour') else value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise TaskValidationError(
            f"{field} must be in ISO format (YYYY-MM-DD), got {value!r}",
            field=field
        )
