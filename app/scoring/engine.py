"""
Fraud Scoring Engine

Orchestrates:
  1. AM/PM completion fix
  2. Duration + data-error flag
  3. Pass 1 detectors (velocity, Sybil, email forensics)
  4. Pass 2 batch-pattern detection over the full Pass 1 output

Each pass returns a new record list; inputs are never modified, so the
stages can be run and tested independently.
"""
from __future__ import annotations

import time
from collections import Counter
from typing import Iterable, Mapping, Optional, Sequence

import structlog

from app.core.config import get_settings
from app.schemas.record import DeveloperRecord, RiskFlag
from app.scoring import fraud
from app.scoring.time_correction import correct_completion, duration_hours

logger = structlog.get_logger()


def score_record(
    record: DeveloperRecord,
    wallet_index: Mapping[str, int],
    disposable_domains: Iterable[str],
) -> DeveloperRecord:
    """
    Pass 1 for a single record. The wallet index must cover the whole batch.
    """
    completed_at = correct_completion(record.created_at, record.completed_at)
    duration = duration_hours(record.created_at, completed_at)

    # Still negative after the 12h fix → corrupt timestamps, not fraud
    data_error = duration is not None and duration < 0

    flags = fraud.merge_flags(record.risk_flags, [
        *fraud.detect_velocity(record.final_grade, duration, data_error),
        *fraud.detect_sybil(record.wallet_address, wallet_index),
        *fraud.detect_email_flags(record.email, disposable_domains),
    ])

    return record.model_copy(update={
        "completed_at": completed_at,
        "computed_duration": duration,
        "data_error": data_error,
        "risk_flags": flags,
    })


def run_record_pass(
    records: Sequence[DeveloperRecord],
    disposable_domains: Optional[Iterable[str]] = None,
) -> list[DeveloperRecord]:
    domains = frozenset(
        d.lower() for d in (disposable_domains if disposable_domains is not None
                            else get_settings().disposable_email_domains)
    )
    wallet_index = fraud.build_wallet_index(records)
    return [score_record(r, wallet_index, domains) for r in records]


def run_batch_pattern_pass(records: Sequence[DeveloperRecord]) -> list[DeveloperRecord]:
    flagged_ids = fraud.find_batch_pattern_ids(records)
    return apply_batch_pattern(records, flagged_ids)


def apply_batch_pattern(
    records: Sequence[DeveloperRecord],
    flagged_ids: frozenset[str],
) -> list[DeveloperRecord]:
    result: list[DeveloperRecord] = []
    for record in records:
        if record.id in flagged_ids and RiskFlag.BATCH_PATTERN not in record.risk_flags:
            record = record.model_copy(update={
                "risk_flags": fraud.merge_flags(record.risk_flags, [RiskFlag.BATCH_PATTERN]),
            })
        result.append(record)
    return result


def process_ingested_data(
    records: Sequence[DeveloperRecord],
    disposable_domains: Optional[Iterable[str]] = None,
) -> list[DeveloperRecord]:
    """
    Main scoring entry point: both passes over one batch.
    """
    t0 = time.perf_counter_ns()

    scored = run_record_pass(records, disposable_domains)
    scored = run_batch_pattern_pass(scored)

    elapsed_ms = int((time.perf_counter_ns() - t0) / 1_000_000)
    flag_counts = summarize_flags(scored)

    logger.info(
        "fraud_scoring_complete",
        records=len(scored),
        suspicious=sum(1 for r in scored if r.is_suspicious),
        data_errors=sum(1 for r in scored if r.data_error),
        flags=flag_counts,
        elapsed_ms=elapsed_ms,
    )
    return scored


def summarize_flags(records: Iterable[DeveloperRecord]) -> dict[str, int]:
    counts: Counter[str] = Counter()
    for record in records:
        counts.update(flag.value for flag in record.risk_flags)
    return dict(counts)
