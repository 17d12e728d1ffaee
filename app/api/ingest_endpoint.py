"""
POST /v1/datasets/ingest

Receives the raw CSV body of one upload, parses it in chunks, runs the
fraud engine and returns the enriched batch. Storing the batch is the
caller's job; a DATASET_INGESTED event is published for it (if enabled).
"""
from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.core.config import Settings, get_settings
from app.ingestion.csv_parser import ParseError
from app.schemas.dashboard_response import IngestionResponse
from app.services.event_publisher import publish_dataset_event
from app.services.ingestion_service import ingest_async

logger = structlog.get_logger()
router = APIRouter(prefix="/v1", tags=["ingestion"])


@router.post(
    "/datasets/ingest",
    response_model=IngestionResponse,
    summary="Ingest a developer certification CSV export",
    description="Raw CSV text in the body (comma, semicolon or tab separated). Returns scored records.",
)
async def ingest_dataset(
    request: Request,
    file_name: Optional[str] = Query(None, description="Original upload name, echoed back"),
    settings: Settings = Depends(get_settings),
) -> IngestionResponse:

    body = await request.body()
    if len(body) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="File exceeds the maximum upload size.")
    if not body:
        raise HTTPException(status_code=422, detail="Failed to read file content.")

    text = body.decode("utf-8", errors="replace")
    logger.info("ingestion_started", file_name=file_name, size_bytes=len(body))

    try:
        result = await ingest_async(text, chunk_size=settings.ingest_chunk_size)
    except ParseError as e:
        logger.warning("ingestion_rejected", file_name=file_name, reason=str(e))
        raise HTTPException(status_code=422, detail=str(e))

    await publish_dataset_event(result, file_name)

    return IngestionResponse(
        batch_id=result.batch_id,
        file_name=file_name,
        engine_version=settings.engine_version,
        record_count=result.record_count,
        skipped_rows=result.skipped_rows,
        suspicious_count=result.suspicious_count,
        data_error_count=result.data_error_count,
        flag_counts=result.flag_counts,
        processing_time_ms=result.processing_time_ms,
        records=result.records,
    )


@router.get("/health", tags=["health"])
async def health(settings: Settings = Depends(get_settings)):
    return {"status": "ok", "service": settings.app_name, "engine_version": settings.engine_version}
