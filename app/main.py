"""
Certification Insights Engine — FastAPI Application Entry Point

POST /v1/datasets/ingest       → parse + fraud-score a CSV export
POST /v1/metrics/{dashboard,timeline,membership,leaderboard}
GET  /v1/health                → health check
GET  /docs                     → OpenAPI / Swagger UI
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from app.api.ingest_endpoint import router as ingest_router
from app.api.metrics_endpoint import router as metrics_router
from app.core.config import get_settings

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.ConsoleRenderer() if get_settings().app_env == "development"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(get_settings().log_level),
)
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("insights_engine_starting", engine_version=get_settings().engine_version)
    yield
    logger.info("insights_engine_shutting_down")


app = FastAPI(
    title="Certification Insights Engine",
    description="CSV ingestion, fraud scoring and dashboard metrics for developer certifications",
    version="2.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS (dashboard front-end) ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_methods=["POST", "GET"],
    allow_headers=["*"],
)

# ── Prometheus metrics ──
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── Routes ──
app.include_router(ingest_router)
app.include_router(metrics_router)


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": get_settings().app_name,
        "version": "2.1.0",
        "docs": "/docs",
        "ingest": "POST /v1/datasets/ingest",
    }
