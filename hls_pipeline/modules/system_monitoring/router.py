"""System monitoring API router.

Exposes Prometheus metrics and worker readiness.
"""

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from hls_pipeline.core.config import settings
from hls_pipeline.core.metrics import get_content_type, get_metrics
from hls_pipeline.modules.transcoding.exceptions import CodecFailure
from hls_pipeline.modules.transcoding.orchestrator import TranscodeOrchestrator
from hls_pipeline.modules.transcoding.service import get_orchestrator

router = APIRouter(prefix="/system", tags=["system-monitoring"])


@router.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics endpoint",
    description="Exposes metrics in Prometheus format for scraping.",
)
async def get_prometheus_metrics() -> Response:
    """Get Prometheus metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_content_type(),
    )


@router.get(
    "/health/ready",
    summary="Readiness probe",
    description="Ready when the FFmpeg binary is available",
)
def readiness_probe(
    orchestrator: TranscodeOrchestrator = Depends(get_orchestrator),
):
    """Readiness probe.

    Returns 200 with the resolved FFmpeg path and active plan, or 503 when
    FFmpeg cannot be found.
    """
    try:
        ffmpeg = orchestrator.invoker.validate_binary()
    except CodecFailure as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "error": e.describe()},
        )
    return {
        "status": "ready",
        "ffmpeg": ffmpeg,
        "plan": orchestrator.plan.name,
        "tiers": list(orchestrator.plan.tier_names),
        "storage_backend": settings.STORAGE_BACKEND,
    }
