"""
Aggregation outputs consumed by the dashboard.

Rates are percentages (0-100). Every field defaults to 0 so an empty
window renders as zeros rather than NaN.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Granularity(str, Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"


class TimeframeOption(str, Enum):
    ALL_TIME = "All Time"
    THIS_YEAR = "This Year"
    LAST_90_DAYS = "Last 90 Days"
    LAST_30_DAYS = "Last 30 Days"
    CUSTOM_RANGE = "Custom Range"


class DateWindow(BaseModel):
    """Either or both bounds may be absent; both absent means all time."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def check_order(self) -> "DateWindow":
        if self.start and self.end and self.start > self.end:
            raise ValueError("window start must not be after window end")
        return self

    @property
    def is_bounded(self) -> bool:
        return self.start is not None and self.end is not None


class DashboardMetrics(BaseModel):
    total_registered: int = 0
    total_certified: int = 0
    users_started_course: int = 0
    users_started_course_pct: float = 0.0
    active_communities: int = 0
    avg_completion_time_days: float = 0.0
    certification_rate: float = 0.0
    overall_subscriber_rate: float = 0.0
    potential_fake_accounts: int = Field(0, description="Registrations carrying at least one risk flag")
    potential_fake_accounts_pct: float = 0.0
    rapid_completions: int = Field(0, description="Valid certifications completed in under 5 hours")


class ReportingContext(BaseModel):
    """Current window, the equal-length window before it, and all time."""
    current: DashboardMetrics
    previous: Optional[DashboardMetrics] = None
    global_: DashboardMetrics = Field(alias="global")

    model_config = {"populate_by_name": True}


class ChartDataPoint(BaseModel):
    label: str
    registrations: int = 0
    certifications: int = 0


class MembershipChartPoint(BaseModel):
    label: str
    enrollees: int = 0
    new_members: int = 0


class MembershipMetrics(BaseModel):
    total_enrolled: int = 0
    total_members: int = 0
    membership_rate: float = 0.0
    certified_members: int = 0
    certified_member_rate: float = 0.0
    active_communities: int = 0


class LeaderboardEntry(BaseModel):
    code: str
    name: str
    value: int
