"""FastAPI application entry point.

Run with ``uvicorn hls_pipeline.main:app``.
"""

from fastapi import FastAPI

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import setup_logging
from hls_pipeline.core.metrics import set_app_info
from hls_pipeline.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
    TracingMiddleware,
)
from hls_pipeline.core.tracing import setup_tracing
from hls_pipeline.modules.system_monitoring import system_monitoring_router
from hls_pipeline.modules.trigger import events_router

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## HLS Transcoding Pipeline

Receives object-created notifications for MP4 uploads and publishes an HLS
adaptive bitrate ladder (master playlist, per-tier playlists and segments)
next to each source object.
""",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    openapi_tags=[
        {
            "name": "events",
            "description": "S3 / MinIO bucket notification webhook",
        },
        {
            "name": "system-monitoring",
            "description": "Prometheus metrics and readiness",
        },
        {
            "name": "health",
            "description": "Liveness",
        },
    ],
)

ENVIRONMENT = "development" if settings.DEBUG else "production"

setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

setup_tracing(
    service_name=settings.PROJECT_NAME,
    service_version=settings.VERSION,
    environment=ENVIRONMENT,
    otlp_endpoint=settings.OTLP_ENDPOINT,
    enable_console_export=settings.TRACING_CONSOLE_EXPORT,
)

set_app_info(version=settings.VERSION, environment=ENVIRONMENT)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TracingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware)

app.include_router(events_router, prefix=settings.API_V1_PREFIX)
app.include_router(system_monitoring_router, prefix=settings.API_V1_PREFIX)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Liveness probe; readiness lives under /system/health/ready."""
    return {"status": "healthy"}
