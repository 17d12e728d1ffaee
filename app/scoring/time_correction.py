"""
AM/PM repair for completion timestamps.

Operators frequently key a 2 PM completion as 2 AM, which puts the
completion before the enrollment. Shifting by exactly 12 hours repairs
that case; anything still negative afterwards is left for the scoring
engine to flag as a data error.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Union

from dateutil import parser as date_parser

AMPM_SHIFT = timedelta(hours=12)

DateLike = Union[datetime, str, None]


def _coerce(value: DateLike) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError):
        return None


def correct_completion(created_at: DateLike, completed_at: DateLike) -> DateLike:
    """
    Returns completed_at + 12h when it precedes created_at, otherwise
    completed_at unchanged (including when either side is unusable).
    """
    created = _coerce(created_at)
    completed = _coerce(completed_at)
    if created is None or completed is None:
        return completed_at

    try:
        precedes = completed < created
    except TypeError:  # naive vs aware
        return completed_at

    if precedes:
        return completed + AMPM_SHIFT
    return completed_at


def duration_hours(created_at: Optional[datetime], completed_at: Optional[datetime]) -> Optional[float]:
    if created_at is None or completed_at is None:
        return None
    return (completed_at - created_at).total_seconds() / 3600
