"""
Dashboard aggregation API.

POST /v1/metrics/dashboard    → current / previous / all-time metrics
POST /v1/metrics/timeline     → registrations vs certifications
POST /v1/metrics/membership   → membership metrics + enrollee series
POST /v1/metrics/leaderboard  → top partner communities

All endpoints are pure reads over the posted records.
"""
from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException

from app.analytics import aggregations
from app.analytics.periods import choose_granularity
from app.schemas.dashboard_response import MembershipResponse, TimelineResponse
from app.schemas.metrics import DateWindow, LeaderboardEntry, ReportingContext
from app.schemas.metrics_request import MetricsRequest

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/metrics", tags=["metrics"])


def _window(payload: MetricsRequest) -> DateWindow:
    try:
        return payload.window()
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/dashboard", response_model=ReportingContext)
async def dashboard(payload: MetricsRequest) -> ReportingContext:
    window = _window(payload)
    logger.info("dashboard_requested", records=len(payload.records), start=window.start, end=window.end)
    return aggregations.build_reporting_context(payload.records, window.start, window.end)


@router.post("/timeline", response_model=TimelineResponse)
async def timeline(payload: MetricsRequest) -> TimelineResponse:
    window = _window(payload)
    return TimelineResponse(
        window=window,
        granularity=choose_granularity(window.start, window.end),
        points=aggregations.generate_chart_data(payload.records, window.start, window.end),
    )


@router.post("/membership", response_model=MembershipResponse)
async def membership(payload: MetricsRequest) -> MembershipResponse:
    window = _window(payload)
    return MembershipResponse(
        window=window,
        granularity=choose_granularity(window.start, window.end),
        metrics=aggregations.calculate_membership_metrics(payload.records, window.start, window.end),
        points=aggregations.generate_membership_chart_data(payload.records, window.start, window.end),
    )


@router.post("/leaderboard", response_model=list[LeaderboardEntry])
async def leaderboard(payload: MetricsRequest) -> list[LeaderboardEntry]:
    window = _window(payload)
    return aggregations.generate_leaderboard(payload.records, window.start, window.end)
