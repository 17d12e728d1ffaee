"""
Response payloads returned to the dashboard.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.metrics import (
    ChartDataPoint,
    DateWindow,
    Granularity,
    MembershipChartPoint,
    MembershipMetrics,
)
from app.schemas.record import DeveloperRecord


class IngestionResponse(BaseModel):
    batch_id: str
    file_name: Optional[str] = None
    engine_version: str
    record_count: int
    skipped_rows: int = Field(description="Rows with fewer than two columns")
    suspicious_count: int
    data_error_count: int
    flag_counts: dict[str, int] = {}
    processing_time_ms: int
    records: list[DeveloperRecord]


class TimelineResponse(BaseModel):
    window: DateWindow
    granularity: Granularity
    points: list[ChartDataPoint]


class MembershipResponse(BaseModel):
    window: DateWindow
    granularity: Granularity
    metrics: MembershipMetrics
    points: list[MembershipChartPoint]
