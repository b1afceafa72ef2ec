"""Calendar-month helpers shared by trends and budget roll-forward."""

from __future__ import annotations

import calendar
from datetime import date
from typing import List, Tuple, Union

from dateutil.relativedelta import relativedelta

from .errors import InvalidRequest


def month_window(year: int, month: int) -> Tuple[date, date]:
    """Return the first and last day of the given calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def shift_month(day: date, months: int) -> date:
    """First day of the month `months` away from `day`'s month (negative goes back)."""
    return date(day.year, day.month, 1) + relativedelta(months=months)


def add_one_month(day: date) -> date:
    """Same day next month, clamped to the month's last day (Jan 31 -> Feb 28/29)."""
    return day + relativedelta(months=1)


def trailing_months(today: date, count: int) -> List[Tuple[date, date]]:
    """
    Windows for the `count` calendar months ending with today's month, oldest first.
    """
    windows = []
    for offset in range(count - 1, -1, -1):
        first = shift_month(today, -offset)
        windows.append(month_window(first.year, first.month))
    return windows


def month_label(first_day: date) -> str:
    return f"{calendar.month_abbr[first_day.month]} {first_day.year}"


def long_month_label(first_day: date) -> str:
    return f"{calendar.month_name[first_day.month]} {first_day.year}"


def parse_month(value: Union[date, str]) -> date:
    """
    Normalize a target month given as a date or "YYYY-MM" (or "YYYY-MM-DD") string.

    Returns:
        The first day of that month.
    Raises:
        InvalidRequest: when the string is not a recognizable month.
    """
    if isinstance(value, date):
        return date(value.year, value.month, 1)

    parts = value.strip().split("-")
    if len(parts) not in (2, 3):
        raise InvalidRequest(f"Expected a month like '2024-05' (received '{value}')")
    try:
        year, month = int(parts[0]), int(parts[1])
        return date(year, month, 1)
    except ValueError as exc:
        raise InvalidRequest(f"Expected a month like '2024-05' (received '{value}')") from exc
