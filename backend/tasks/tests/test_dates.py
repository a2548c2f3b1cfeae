"""
Tests for calendar arithmetic: month clamping, leap years and weekday
selection.
"""

from datetime import date, datetime

from django.test import TestCase

from tasks.dates import (
    FRIDAY,
    MONDAY,
    SUNDAY,
    WEDNESDAY,
    add_days,
    add_months,
    add_years,
    day_of_week,
    days_between,
    days_in_month,
    is_leap_year,
    next_matching_weekday,
    nth_weekday_of_month,
    parse_date,
)
from tasks.errors import TaskValidationError


class MonthArithmeticTests(TestCase):
    """Tests for month and year arithmetic."""

    def test_leap_years(self):
        """Century years are leap years only when divisible by 400."""
        self.assertTrue(is_leap_year(2024))
        self.assertTrue(is_leap_year(2000))
        self.assertFalse(is_leap_year(1900))
        self.assertFalse(is_leap_year(2023))

    def test_days_in_february(self):
        self.assertEqual(days_in_month(2024, 2), 29)
        self.assertEqual(days_in_month(2023, 2), 28)

    def test_month_end_clamps_in_leap_year(self):
        """Jan 31 + 1 month is Feb 29 in 2024, not early March."""
        self.assertEqual(add_months(date(2024, 1, 31), 1), date(2024, 2, 29))

    def test_month_end_clamps_in_common_year(self):
        self.assertEqual(add_months(date(2023, 1, 31), 1), date(2023, 2, 28))

    def test_month_addition_crosses_year(self):
        self.assertEqual(add_months(date(2024, 11, 30), 3), date(2025, 2, 28))
        self.assertEqual(add_months(date(2024, 12, 15), 1), date(2025, 1, 15))

    def test_pinned_day_is_clamped(self):
        """An explicit day of month is clamped to the target month length."""
        self.assertEqual(add_months(date(2024, 3, 10), 1, day=31), date(2024, 4, 30))
        self.assertEqual(add_months(date(2024, 1, 31), 1, day=15), date(2024, 2, 15))

    def test_feb_29_yearly_falls_back_to_feb_28(self):
        self.assertEqual(add_years(date(2024, 2, 29), 1), date(2025, 2, 28))
        self.assertEqual(add_years(date(2024, 2, 29), 4), date(2028, 2, 29))

    def test_add_days_crosses_month(self):
        self.assertEqual(add_days(date(2024, 2, 28), 1), date(2024, 2, 29))
        self.assertEqual(add_days(date(2024, 2, 29), 1), date(2024, 3, 1))


class WeekdayTests(TestCase):
    """Tests for weekday helpers (0 = Sunday)."""

    def test_day_of_week_sunday_is_zero(self):
        self.assertEqual(day_of_week(date(2024, 1, 7)), SUNDAY)
        self.assertEqual(day_of_week(date(2024, 1, 8)), MONDAY)

    def test_next_weekday_same_week(self):
        """From Wednesday with Mon/Wed/Fri selected, the next date is Friday."""
        result = next_matching_weekday(date(2024, 1, 3), {MONDAY, WEDNESDAY, FRIDAY})
        self.assertEqual(result, date(2024, 1, 5))

    def test_next_weekday_wraps_to_next_week(self):
        """From Friday with Mon/Wed/Fri selected, the next date is Monday."""
        result = next_matching_weekday(date(2024, 1, 5), {MONDAY, WEDNESDAY, FRIDAY})
        self.assertEqual(result, date(2024, 1, 8))

    def test_next_weekday_single_day_is_a_week_later(self):
        result = next_matching_weekday(date(2024, 1, 3), {WEDNESDAY})
        self.assertEqual(result, date(2024, 1, 10))

    def test_empty_weekday_selection_rejected(self):
        with self.assertRaises(TaskValidationError):
            next_matching_weekday(date(2024, 1, 3), set())

    def test_out_of_range_weekday_rejected(self):
        with self.assertRaises(TaskValidationError):
            next_matching_weekday(date(2024, 1, 3), {9})

    def test_second_tuesday(self):
        self.assertEqual(nth_weekday_of_month(2024, 1, 2, 2), date(2024, 1, 9))

    def test_missing_fifth_weekday_falls_back_to_last(self):
        """February 2024 has four Fridays; the 'fifth' is the last one."""
        self.assertEqual(nth_weekday_of_month(2024, 2, 5, FRIDAY), date(2024, 2, 23))

    def test_existing_fifth_weekday(self):
        """March 2024 has five Fridays."""
        self.assertEqual(nth_weekday_of_month(2024, 3, 5, FRIDAY), date(2024, 3, 29))

    def test_nth_weekday_ranges_validated(self):
        with self.assertRaises(TaskValidationError):
            nth_weekday_of_month(2024, 1, 6, MONDAY)
        with self.assertRaises(TaskValidationError):
            nth_weekday_of_month(2024, 1, 1, 7)


class ParseDateTests(TestCase):
    """Tests for ISO date parsing."""

    def test_parses_iso_string(self):
        self.assertEqual(parse_date('2024-02-29'), date(2024, 2, 29))

    def test_empty_values_mean_no_date(self):
        self.assertIsNone(parse_date(None))
        self.assertIsNone(parse_date(''))

    def test_datetime_truncated_to_date(self):
        self.assertEqual(parse_date(datetime(2024, 5, 1, 13, 30)), date(2024, 5, 1))

    def test_invalid_date_rejected_with_field(self):
        with self.assertRaises(TaskValidationError) as ctx:
            parse_date('2023-02-29', field='dueDate')
        self.assertEqual(ctx.exception.field, 'dueDate')

    def test_days_between_is_signed(self):
        self.assertEqual(days_between(date(2024, 3, 1), date(2024, 3, 15)), 14)
        self.assertEqual(days_between(date(2024, 3, 15), date(2024, 3, 1)), -14)
