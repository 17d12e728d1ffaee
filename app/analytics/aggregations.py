"""
Aggregation Engine — dashboard metrics, time series and leaderboards.

Every function is a pure function of (records, window): records are
only read, so the same enriched batch can serve any number of
concurrent dashboard requests.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Optional, Sequence

from app.analytics.periods import (
    DateLike,
    bucket_label,
    bucket_start,
    choose_granularity,
    get_previous_period,
    in_range,
    to_naive,
)
from app.schemas.metrics import (
    ChartDataPoint,
    DashboardMetrics,
    LeaderboardEntry,
    MembershipChartPoint,
    MembershipMetrics,
    ReportingContext,
)
from app.schemas.record import UNKNOWN_PARTNER, DeveloperRecord

RAPID_COMPLETION_MAX_HOURS = 5.0
LEADERBOARD_SIZE = 10
ALL_TIME_MAX_BUCKETS = 24


def _pct(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def _is_partner(code: Optional[str]) -> bool:
    return bool(code) and code != UNKNOWN_PARTNER


# ═══════════════════════════════════════════════════════════════
# Dashboard metrics
# ═══════════════════════════════════════════════════════════════

def calculate_dashboard_metrics(
    records: Sequence[DeveloperRecord],
    start: DateLike = None,
    end: DateLike = None,
) -> DashboardMetrics:
    registered = [r for r in records if in_range(r.created_at, start, end)]
    certified = [r for r in records if r.is_passed and in_range(r.completed_at, start, end)]
    total_registered = len(registered)
    total_certified = len(certified)

    started = sum(1 for r in registered if r.percentage_completed > 0)
    subscribers = sum(1 for r in registered if r.accepted_marketing)

    active_communities = {
        r.partner_code
        for r in records
        if _is_partner(r.partner_code)
        and (in_range(r.created_at, start, end) or in_range(r.completed_at, start, end))
    }

    valid = [r for r in certified if r.is_valid_certification]
    avg_days = (sum(r.computed_duration for r in valid) / len(valid)) / 24 if valid else 0.0

    flagged = sum(1 for r in registered if r.risk_flags)
    rapid = sum(1 for r in valid if r.computed_duration < RAPID_COMPLETION_MAX_HOURS)

    return DashboardMetrics(
        total_registered=total_registered,
        total_certified=total_certified,
        users_started_course=started,
        users_started_course_pct=_pct(started, total_registered),
        active_communities=len(active_communities),
        avg_completion_time_days=avg_days,
        certification_rate=_pct(total_certified, total_registered),
        overall_subscriber_rate=_pct(subscribers, total_registered),
        potential_fake_accounts=flagged,
        potential_fake_accounts_pct=_pct(flagged, total_registered),
        rapid_completions=rapid,
    )


def build_reporting_context(
    records: Sequence[DeveloperRecord],
    start: DateLike = None,
    end: DateLike = None,
) -> ReportingContext:
    """Current window, the equal-length window before it, and all time."""
    lower, upper = to_naive(start), to_naive(end)
    previous = None
    if lower is not None and upper is not None:
        prev = get_previous_period(lower, upper)
        previous = calculate_dashboard_metrics(records, prev.start, prev.end)

    return ReportingContext(
        current=calculate_dashboard_metrics(records, lower, upper),
        previous=previous,
        global_=calculate_dashboard_metrics(records),
    )


# ═══════════════════════════════════════════════════════════════
# Time series
# ═══════════════════════════════════════════════════════════════

@dataclass
class _Bucket:
    first: int = 0
    second: int = 0


def _timeline(
    records: Sequence[DeveloperRecord],
    start: DateLike,
    end: DateLike,
    accumulate: Callable[[DeveloperRecord, Callable[..., _Bucket]], None],
) -> list[tuple[date, _Bucket]]:
    lower, upper = to_naive(start), to_naive(end)
    granularity = choose_granularity(lower, upper)
    buckets: dict[date, _Bucket] = {}

    def bucket_for(moment) -> _Bucket:
        key = bucket_start(to_naive(moment), granularity)
        return buckets.setdefault(key, _Bucket())

    if lower is not None and upper is not None:
        cursor = lower
        while cursor <= upper:
            bucket_for(cursor)
            cursor += timedelta(days=1)

    for record in records:
        accumulate(record, bucket_for)

    ordered = sorted(buckets.items())
    if lower is None and upper is None:
        ordered = ordered[-ALL_TIME_MAX_BUCKETS:]
    return ordered


def generate_chart_data(
    records: Sequence[DeveloperRecord],
    start: DateLike = None,
    end: DateLike = None,
) -> list[ChartDataPoint]:
    """Registrations (by created_at) and certifications (by completed_at)."""
    if not records:
        return []

    def accumulate(record: DeveloperRecord, bucket_for) -> None:
        if in_range(record.created_at, start, end):
            bucket_for(record.created_at).first += 1
        if record.is_passed and in_range(record.completed_at, start, end):
            bucket_for(record.completed_at).second += 1

    return [
        ChartDataPoint(label=bucket_label(day), registrations=b.first, certifications=b.second)
        for day, b in _timeline(records, start, end, accumulate)
    ]


def generate_membership_chart_data(
    records: Sequence[DeveloperRecord],
    start: DateLike = None,
    end: DateLike = None,
) -> list[MembershipChartPoint]:
    """Enrollees and new members, both bucketed by created_at."""
    if not records:
        return []

    def accumulate(record: DeveloperRecord, bucket_for) -> None:
        if in_range(record.created_at, start, end):
            bucket = bucket_for(record.created_at)
            bucket.first += 1
            if record.accepted_membership:
                bucket.second += 1

    return [
        MembershipChartPoint(label=bucket_label(day), enrollees=b.first, new_members=b.second)
        for day, b in _timeline(records, start, end, accumulate)
    ]


# ═══════════════════════════════════════════════════════════════
# Leaderboard
# ═══════════════════════════════════════════════════════════════

def generate_leaderboard(
    records: Sequence[DeveloperRecord],
    start: DateLike = None,
    end: DateLike = None,
    size: int = LEADERBOARD_SIZE,
) -> list[LeaderboardEntry]:
    """
    Certifications per partner code. The display name is the last
    non-trivial partner name seen for that code.
    """
    windowed = start is not None or end is not None
    counts: dict[str, int] = {}
    names: dict[str, str] = {}

    for record in records:
        code = record.partner_code
        if not _is_partner(code) or not record.is_passed:
            continue
        if windowed and not in_range(record.completed_at, start, end):
            continue

        counts[code] = counts.get(code, 0) + 1
        name = record.partner_name
        if code not in names:
            names[code] = name or code
        elif name and name != UNKNOWN_PARTNER and name != code:
            names[code] = name

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [
        LeaderboardEntry(code=code, name=names[code], value=value)
        for code, value in ranked[:size]
    ]


# ═══════════════════════════════════════════════════════════════
# Membership
# ═══════════════════════════════════════════════════════════════

def calculate_membership_metrics(
    records: Sequence[DeveloperRecord],
    start: DateLike = None,
    end: DateLike = None,
) -> MembershipMetrics:
    enrolled = [r for r in records if in_range(r.created_at, start, end)]
    members = [r for r in enrolled if r.accepted_membership]
    certified_members = sum(1 for r in members if r.is_passed)

    return MembershipMetrics(
        total_enrolled=len(enrolled),
        total_members=len(members),
        membership_rate=_pct(len(members), len(enrolled)),
        certified_members=certified_members,
        certified_member_rate=_pct(certified_members, len(members)),
        active_communities=len({r.partner_code for r in members if _is_partner(r.partner_code)}),
    )
