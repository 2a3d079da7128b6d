"""Month arithmetic shared by payroll periods and monthly rollups."""

from __future__ import annotations

import calendar
from datetime import date


def validate_year_month(year: int, month: int) -> None:
    """Raise ``ValueError`` for a month outside 1..12 or a non-positive year."""
    if year < 1 or not (1 <= month <= 12):
        raise ValueError(f"invalid year/month {year}-{month}")


def month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def next_month_start(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1)
    return date(year, month + 1, 1)


def month_window(year: int, month: int) -> tuple[date, date]:
    """Half-open ``[first day, first day of next month)``."""
    return month_start(year, month), next_month_start(year, month)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]
