"""
Date-window helpers shared by every aggregation.

All comparisons are made on naive wall-clock datetimes; aware values are
converted to UTC and stripped before comparing.
"""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from dateutil import parser as date_parser

from app.schemas.metrics import DateWindow, Granularity, TimeframeOption

DateLike = Union[datetime, date, str, None]

DAILY_MAX_DAYS = 60
END_OF_DAY = time(23, 59, 59, 999_000)


def to_naive(value: DateLike) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = date_parser.parse(value)
        except (ValueError, OverflowError):
            return None
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def in_range(value: DateLike, start: DateLike = None, end: DateLike = None) -> bool:
    """Absent or unparseable values are never in range; absent bounds are open."""
    moment = to_naive(value)
    if moment is None:
        return False
    lower = to_naive(start)
    upper = to_naive(end)
    if lower is not None and moment < lower:
        return False
    if upper is not None and moment > upper:
        return False
    return True


def span_days(start: datetime, end: datetime) -> int:
    """Whole days covered, rounding any partial day up."""
    return math.ceil(abs((end - start).total_seconds()) / 86_400)


def get_previous_period(start: DateLike, end: DateLike) -> DateWindow:
    """
    The window immediately before [start, end]:
    ends the day before start at 23:59:59.999 and spans the same day count.
    """
    lower = to_naive(start)
    upper = to_naive(end)
    if lower is None or upper is None:
        raise ValueError("previous period needs both window bounds")

    days = span_days(lower, upper)
    prev_end = datetime.combine(lower.date() - timedelta(days=1), END_OF_DAY)
    prev_start = datetime.combine(prev_end.date() - timedelta(days=days), time.min)
    return DateWindow(start=prev_start, end=prev_end)


def choose_granularity(start: DateLike, end: DateLike) -> Granularity:
    lower = to_naive(start)
    upper = to_naive(end)
    if lower is not None and upper is not None and span_days(lower, upper) <= DAILY_MAX_DAYS:
        return Granularity.DAILY
    return Granularity.WEEKLY


def bucket_start(moment: datetime, granularity: Granularity) -> date:
    """Calendar day, or the Monday of its week (Sunday belongs to the prior Monday)."""
    day = moment.date()
    if granularity == Granularity.WEEKLY:
        return day - timedelta(days=day.weekday())
    return day


def bucket_label(day: date) -> str:
    return f"{day:%b} {day.day}"


def resolve_timeframe(
    option: TimeframeOption,
    now: Optional[datetime] = None,
    custom_start: DateLike = None,
    custom_end: DateLike = None,
) -> DateWindow:
    """Dashboard presets → concrete window."""
    now = now or datetime.now()
    today = now.date()

    if option == TimeframeOption.ALL_TIME:
        return DateWindow()
    if option == TimeframeOption.THIS_YEAR:
        return DateWindow(start=datetime(now.year, 1, 1), end=now)
    if option == TimeframeOption.LAST_90_DAYS:
        return DateWindow(start=datetime.combine(today - timedelta(days=90), time.min), end=now)
    if option == TimeframeOption.LAST_30_DAYS:
        return DateWindow(start=datetime.combine(today - timedelta(days=30), time.min), end=now)

    start = to_naive(custom_start)
    end = to_naive(custom_end)
    if start is None or end is None:
        raise ValueError("Custom Range needs both a start and an end date")
    return DateWindow(
        start=datetime.combine(start.date(), time.min),
        end=datetime.combine(end.date(), END_OF_DAY),
    )
