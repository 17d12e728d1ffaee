"""
Kafka event publisher — fire-and-forget.

Announces every ingested batch so the dataset-versioning service can
record upload history (file name, record count, batch id).
Gracefully degrades if Kafka is unavailable.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional

import structlog
from app.core.config import get_settings
from app.services.ingestion_service import IngestionResult

logger = structlog.get_logger()

_producer = None


async def _get_producer():
    global _producer
    settings = get_settings()
    if not settings.kafka_enabled:
        return None
    if _producer is None:
        from aiokafka import AIOKafkaProducer
        _producer = AIOKafkaProducer(bootstrap_servers=settings.kafka_bootstrap)
        await _producer.start()
    return _producer


def build_dataset_event(result: IngestionResult, file_name: Optional[str] = None) -> dict:
    return {
        "event_type": "DATASET_INGESTED",
        "batch_id": result.batch_id,
        "file_name": file_name,
        "record_count": result.record_count,
        "skipped_rows": result.skipped_rows,
        "suspicious_count": result.suspicious_count,
        "data_error_count": result.data_error_count,
        "flag_counts": result.flag_counts,
        "engine_version": get_settings().engine_version,
        "ingested_at": datetime.now(timezone.utc).isoformat(),
    }


async def publish_dataset_event(result: IngestionResult, file_name: Optional[str] = None) -> None:
    settings = get_settings()
    if not settings.kafka_enabled:
        return

    try:
        producer = await _get_producer()
        if producer:
            event = build_dataset_event(result, file_name)
            await producer.send_and_wait(
                settings.kafka_topic_dataset_events,
                json.dumps(event).encode("utf-8"),
                key=result.batch_id.encode("utf-8"),
            )
            logger.info("dataset_event_published", batch_id=result.batch_id)
    except Exception as e:
        # Fire-and-forget: log but don't fail the upload
        logger.warning("kafka_publish_failed", batch_id=result.batch_id, error=str(e))
