"""Date manipulation utilities"""

import calendar
from datetime import date, timedelta

FRIDAY = 4


def last_friday_on_or_before(day: date) -> date:
    """Most recent Friday, or the day itself when it is a Friday"""
    return day - timedelta(days=(day.weekday() - FRIDAY) % 7)


def end_of_month(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def end_of_quarter(day: date) -> date:
    quarter_last_month = ((day.month - 1) // 3 + 1) * 3
    return end_of_month(day.replace(month=quarter_last_month, day=1))


def add_months(day: date, months: int) -> date:
    """Shift by whole months, clamping the day-of-month to the target month's length"""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))
