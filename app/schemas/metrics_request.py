"""
Inbound payload for every /v1/metrics endpoint.

The engine keeps no state between calls: the caller posts back the
enriched records from a previous ingestion together with the window.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from app.analytics.periods import resolve_timeframe
from app.schemas.metrics import DateWindow, TimeframeOption
from app.schemas.record import DeveloperRecord


class MetricsRequest(BaseModel):
    records: list[DeveloperRecord]
    timeframe: Optional[TimeframeOption] = Field(
        None,
        description="Preset window. Custom Range uses start/end; omitted means explicit start/end (or all time).",
    )
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def check_custom_range(self) -> "MetricsRequest":
        if self.timeframe == TimeframeOption.CUSTOM_RANGE and (self.start is None or self.end is None):
            raise ValueError("Custom Range needs both start and end")
        return self

    def window(self, now: Optional[datetime] = None) -> DateWindow:
        if self.timeframe is None:
            return DateWindow(start=self.start, end=self.end)
        return resolve_timeframe(self.timeframe, now, self.start, self.end)
