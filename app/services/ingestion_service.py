"""
Ingestion pipeline: raw CSV text → parsed → scored batch.

Two drivers over the same chunk generator:
  ingest()        synchronous loop, progress via callback
  ingest_async()  yields to the event loop between chunks, scores in a worker thread

Scoring only starts once every chunk is parsed: the wallet table and
batch-pattern groupings need the complete batch.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog
from prometheus_client import Counter

from app.ingestion.csv_parser import ProgressCallback, RecordParser
from app.schemas.record import DeveloperRecord
from app.scoring.engine import process_ingested_data, summarize_flags

logger = structlog.get_logger()

RECORDS_INGESTED = Counter(
    "certification_records_ingested_total",
    "Records parsed from uploaded CSV files",
)
ROWS_SKIPPED = Counter(
    "certification_rows_skipped_total",
    "CSV rows dropped for having fewer than two columns",
)
RISK_FLAGS_RAISED = Counter(
    "certification_risk_flags_total",
    "Risk flags raised by the fraud engine",
    ["flag"],
)


@dataclass(frozen=True)
class IngestionResult:
    batch_id: str
    records: list[DeveloperRecord]
    skipped_rows: int
    processing_time_ms: int
    flag_counts: dict[str, int] = field(default_factory=dict)

    @property
    def record_count(self) -> int:
        return len(self.records)

    @property
    def suspicious_count(self) -> int:
        return sum(1 for r in self.records if r.is_suspicious)

    @property
    def data_error_count(self) -> int:
        return sum(1 for r in self.records if r.data_error)


def _finish(parser: RecordParser, scored: list[DeveloperRecord], skipped: int, t0: int) -> IngestionResult:
    flag_counts = summarize_flags(scored)
    elapsed_ms = int((time.perf_counter_ns() - t0) / 1_000_000)

    RECORDS_INGESTED.inc(len(scored))
    ROWS_SKIPPED.inc(skipped)
    for flag, count in flag_counts.items():
        RISK_FLAGS_RAISED.labels(flag=flag).inc(count)

    result = IngestionResult(
        batch_id=parser.batch_id,
        records=scored,
        skipped_rows=skipped,
        processing_time_ms=elapsed_ms,
        flag_counts=flag_counts,
    )
    logger.info(
        "ingestion_complete",
        batch_id=result.batch_id,
        records=result.record_count,
        skipped_rows=skipped,
        suspicious=result.suspicious_count,
        data_errors=result.data_error_count,
        elapsed_ms=elapsed_ms,
    )
    return result


def ingest(
    text: str,
    on_progress: Optional[ProgressCallback] = None,
    *,
    chunk_size: Optional[int] = None,
    now: Optional[datetime] = None,
) -> IngestionResult:
    t0 = time.perf_counter_ns()
    parser = RecordParser(text, chunk_size=chunk_size, now=now)

    parsed: list[DeveloperRecord] = []
    skipped = 0
    for chunk in parser.iter_chunks():
        parsed.extend(chunk.records)
        skipped += chunk.skipped_rows
        if on_progress:
            on_progress(chunk.progress)

    return _finish(parser, process_ingested_data(parsed), skipped, t0)


async def ingest_async(
    text: str,
    on_progress: Optional[ProgressCallback] = None,
    *,
    chunk_size: Optional[int] = None,
    now: Optional[datetime] = None,
) -> IngestionResult:
    t0 = time.perf_counter_ns()
    parser = RecordParser(text, chunk_size=chunk_size, now=now)

    parsed: list[DeveloperRecord] = []
    skipped = 0
    for chunk in parser.iter_chunks():
        parsed.extend(chunk.records)
        skipped += chunk.skipped_rows
        if on_progress:
            on_progress(chunk.progress)
        await asyncio.sleep(0)

    # Scoring is CPU-bound: keep it off the event loop
    scored = await asyncio.to_thread(process_ingested_data, parsed)
    return _finish(parser, scored, skipped, t0)
