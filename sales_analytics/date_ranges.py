"""
date_ranges.py — Reporting window resolver.

Maps a named timeframe (or a custom pair of dates) to an inclusive
`DateRange`. "Now" is read on every call unless injected, so results are
never stale.

Timeframes:
    today, week, month, last7days, last30days, last3months, last6months,
    yearToDate, custom
"""

import logging
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any, Optional

import pandas as pd

from sales_analytics.models import END_OF_DAY, DateRange, parse_date

logger = logging.getLogger(__name__)


class Timeframe(Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    LAST_7_DAYS = "last7days"
    LAST_30_DAYS = "last30days"
    LAST_3_MONTHS = "last3months"
    LAST_6_MONTHS = "last6months"
    YEAR_TO_DATE = "yearToDate"
    CUSTOM = "custom"


class WeekStart(Enum):
    """First day of the reporting week.

    MONDAY is the ISO week used by the notification views. SUNDAY matches the
    day-of-week subtraction the reports screen has always used.
    """
    MONDAY = "monday"
    SUNDAY = "sunday"


_DAYS_BACK = {Timeframe.LAST_7_DAYS: 7, Timeframe.LAST_30_DAYS: 30}
_MONTHS_BACK = {Timeframe.LAST_3_MONTHS: 3, Timeframe.LAST_6_MONTHS: 6}


def _start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def _end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), END_OF_DAY)


def _week_bounds(today: datetime, week_start: WeekStart) -> tuple[datetime, datetime]:
    if week_start is WeekStart.MONDAY:
        offset = today.weekday()
    else:
        offset = (today.weekday() + 1) % 7
    start = _start_of_day(today) - timedelta(days=offset)
    return start, _end_of_day(start + timedelta(days=6))


def _custom_bounds(custom_range: Optional[dict[str, Any]]) -> DateRange:
    custom_range = custom_range or {}
    start = parse_date(custom_range.get("startDate"))
    end = parse_date(custom_range.get("endDate"))
    if start is not None:
        start = _start_of_day(start)
    if end is not None:
        end = _end_of_day(end)
    if start is not None and end is not None and start > end:
        logger.warning("Custom range starts after it ends; swapping %s and %s",
                       start.date(), end.date())
        start, end = _start_of_day(end), _end_of_day(start)
    return DateRange(start, end)


def resolve(
    timeframe: "Timeframe | str",
    custom_range: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
    week_start: WeekStart = WeekStart.MONDAY,
) -> DateRange:
    """Resolve a timeframe into an inclusive date range.

    Args:
        timeframe: Timeframe member or its string value (e.g. 'last30days').
        custom_range: {'startDate': 'YYYY-MM-DD', 'endDate': 'YYYY-MM-DD'};
            only read for 'custom'. A missing or unparseable bound is open.
        now: Reference moment; defaults to the current wall-clock time.
        week_start: First day of the week for the 'week' timeframe.

    Returns:
        DateRange whose end (when bounded) is 23:59:59.999 of its day.

    Raises:
        ValueError: If `timeframe` is not a known timeframe.
    """
    tf = timeframe if isinstance(timeframe, Timeframe) else Timeframe(timeframe)
    now = now or datetime.now()
    end_today = _end_of_day(now)

    if tf is Timeframe.TODAY:
        return DateRange(_start_of_day(now), end_today)
    if tf is Timeframe.WEEK:
        return DateRange(*_week_bounds(now, week_start))
    if tf is Timeframe.MONTH:
        first = pd.Timestamp(now.date()).replace(day=1)
        last = first + pd.offsets.MonthEnd(0)
        return DateRange(first.to_pydatetime(), _end_of_day(last.to_pydatetime()))
    if tf in _DAYS_BACK:
        start = _start_of_day(now) - timedelta(days=_DAYS_BACK[tf])
        return DateRange(start, end_today)
    if tf in _MONTHS_BACK:
        start = pd.Timestamp(now.date()) - pd.DateOffset(months=_MONTHS_BACK[tf])
        return DateRange(start.to_pydatetime(), end_today)
    if tf is Timeframe.YEAR_TO_DATE:
        return DateRange(datetime(now.year, 1, 1), end_today)
    return _custom_bounds(custom_range)
