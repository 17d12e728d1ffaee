"""
Developer certification record — the unit of work for the whole pipeline.

Created in bulk by the CSV parser, enriched by the fraud scoring engine,
then treated as read-only input by every aggregation.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


UNKNOWN_PARTNER = "UNKNOWN"

# Domain of the address filled in for rows with a blank email
PLACEHOLDER_EMAIL_DOMAIN = "noemail.com"


class FinalGrade(str, Enum):
    PASS = "Pass"
    FAIL = "Fail"
    PENDING = "Pending"


class RiskFlag(str, Enum):
    BOT_ACTIVITY = "Bot Activity"          # certified in < 0.5h
    SPEED_RUN = "Speed Run"                # certified in < 4h
    SYBIL = "Sybil"                        # wallet shared with another record
    EMAIL_ALIAS = "Email Alias"            # plus-addressing
    DISPOSABLE_EMAIL = "Disposable Email"  # throwaway mailbox provider
    BATCH_PATTERN = "Batch Pattern"        # scripted mass registration


class DeveloperRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="row_<line>_<epoch ms>, stable within a batch")

    # ── PII & identity ──
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    country: str = "Unknown"

    # ── Consent ──
    accepted_membership: bool = False
    accepted_marketing: bool = False

    # ── Web3 ──
    wallet_address: str = ""

    # ── Community ──
    partner_code: str = Field(UNKNOWN_PARTNER, description="Grouping key, e.g. HEDERA-FR")
    partner_name: str = Field(UNKNOWN_PARTNER, description="Display label")

    # ── Certification ──
    percentage_completed: int = 0
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    final_score: int = 0
    final_grade: FinalGrade = FinalGrade.PENDING
    ca_status: str = ""

    ingestion_batch_id: Optional[str] = None

    # ── Computed by the scoring engine only ──
    computed_duration: Optional[float] = Field(None, description="Hours from creation to corrected completion")
    data_error: bool = False
    risk_flags: list[RiskFlag] = Field(default_factory=list)

    @computed_field
    @property
    def is_suspicious(self) -> bool:
        return len(self.risk_flags) > 0

    @computed_field
    @property
    def suspicion_reason(self) -> str:
        return ", ".join(flag.value for flag in self.risk_flags)

    @property
    def is_passed(self) -> bool:
        return self.final_grade == FinalGrade.PASS

    @property
    def is_valid_certification(self) -> bool:
        """Eligible for duration-based metrics."""
        return (
            self.is_passed
            and self.completed_at is not None
            and not self.data_error
            and self.computed_duration is not None
            and self.computed_duration > 0
        )
