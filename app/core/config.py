"""
Application configuration — loaded from environment / .env file.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # ── App ──
    app_name: str = "cert-insights-engine"
    app_env: str = "development"
    log_level: str = "INFO"
    engine_version: str = "2.1"

    # ── Ingestion ──
    ingest_chunk_size: int = 5_000
    max_upload_bytes: int = 100 * 1024 * 1024  # 100 MB

    # Accent-insensitive, compared after lower-casing
    truthy_tokens: list[str] = [
        "true", "yes", "1", "y", "on", "x",
        "active", "member", "checked", "joined",
        "vrai", "oui",      # FR
        "si", "sí",         # ES / IT
        "sim",              # PT
        "ja",               # DE / NL
    ]

    # ── Fraud engine ──
    disposable_email_domains: list[str] = [
        "yopmail.com",
        "mailinator.com",
        "temp-mail.org",
        "guerrillamail.com",
        "10minutemail.com",
        "sharklasers.com",
        "throwawaymail.com",
        "getnada.com",
    ]

    # ── Kafka ──
    kafka_bootstrap: str = "kafka:9092"
    kafka_topic_dataset_events: str = "certification.dataset.events"
    kafka_enabled: bool = False  # toggle for local dev

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
