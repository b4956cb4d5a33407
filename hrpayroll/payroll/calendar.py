"""Calendar resolution for a payroll month: dates, weekends, holidays."""

from __future__ import annotations

import calendar as _calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from hrpayroll.common.constants import MAX_YEAR, MIN_YEAR, WEEKEND_WEEKDAYS
from hrpayroll.common.exceptions import ValidationException


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def validate_period(year: Any, month: Any) -> tuple[int, int]:
    """Coerce and check a (year, month) pair; raise 422 on bad input."""

    errors: dict[str, list[str]] = {}
    y = _as_int(year)
    m = _as_int(month)

    if y is None or not MIN_YEAR <= y <= MAX_YEAR:
        errors["year"] = [f"year must be an integer between {MIN_YEAR} and {MAX_YEAR}."]
    if m is None or not 1 <= m <= 12:
        errors["month"] = ["month must be an integer between 1 and 12."]
    if errors:
        raise ValidationException(errors)
    return y, m


def is_weekend(day: date) -> bool:
    return day.weekday() in WEEKEND_WEEKDAYS


def month_range(year: int, month: int) -> tuple[date, date]:
    """``(start, end)`` with ``end`` exclusive (first day of the next month)."""

    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _holiday_span(holiday: Any) -> tuple[date, date]:
    if isinstance(holiday, date):
        return holiday, holiday
    first = holiday.date
    last = getattr(holiday, "end_date", None) or first
    if last < first:
        last = first
    return first, last


@dataclass(frozen=True)
class MonthCalendar:
    year: int
    month: int
    dates: tuple[date, ...]
    holiday_dates: frozenset[date]
    weekend_dates: frozenset[date]

    @property
    def total_days(self) -> int:
        return len(self.dates)

    @property
    def period_start(self) -> date:
        return self.dates[0]

    @property
    def period_end(self) -> date:
        """Exclusive upper bound of the period."""
        return self.dates[-1] + timedelta(days=1)

    def is_holiday(self, day: date) -> bool:
        return day in self.holiday_dates

    def is_weekend(self, day: date) -> bool:
        return day in self.weekend_dates

    def is_working_day(self, day: date) -> bool:
        return day not in self.holiday_dates and day not in self.weekend_dates

    @property
    def working_days(self) -> int:
        return sum(1 for d in self.dates if self.is_working_day(d))


def resolve_month(year: Any, month: Any, holidays: Iterable[Any] = ()) -> MonthCalendar:
    """Build the calendar for ``year``/``month``.

    ``holidays`` may hold ``date`` values or objects with ``date`` and an
    optional inclusive ``end_date``; every spanned day inside the month is
    marked as a holiday.
    """

    year, month = validate_period(year, month)
    total_days = _calendar.monthrange(year, month)[1]
    dates = tuple(date(year, month, d) for d in range(1, total_days + 1))
    first, last = dates[0], dates[-1]

    holiday_dates: set[date] = set()
    for holiday in holidays:
        span_start, span_end = _holiday_span(holiday)
        day = max(span_start, first)
        while day <= min(span_end, last):
            holiday_dates.add(day)
            day += timedelta(days=1)

    return MonthCalendar(
        year=year,
        month=month,
        dates=dates,
        holiday_dates=frozenset(holiday_dates),
        weekend_dates=frozenset(d for d in dates if is_weekend(d)),
    )
