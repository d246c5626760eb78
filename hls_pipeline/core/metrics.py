"""Prometheus metrics for the transcoding pipeline.

Tracks run outcomes, per-stage failures, per-tier encode time, uploaded
objects and trigger filtering, plus the HTTP metrics of the webhook API.
"""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

# Everything registers here, not on the global default registry
REGISTRY = CollectorRegistry()

# prometheus_multiproc_dir is set for gunicorn and Celery prefork deployments
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "hls_pipeline_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# HTTP Request Metrics
# ============================================
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently in progress",
    ["method", "endpoint"],
    registry=REGISTRY,
)


# ============================================
# Transcode Run Metrics
# ============================================
TRANSCODE_RUNS_TOTAL = Counter(
    "hls_transcode_runs_total",
    "Completed transcode runs by outcome",
    ["outcome"],
    registry=REGISTRY,
)

TRANSCODE_RUN_DURATION_SECONDS = Histogram(
    "hls_transcode_run_duration_seconds",
    "End-to-end duration of a transcode run",
    buckets=[5, 15, 30, 60, 120, 300, 600, 900, 1800],
    registry=REGISTRY,
)

TRANSCODE_RUNS_IN_PROGRESS = Gauge(
    "hls_transcode_runs_in_progress",
    "Transcode runs currently executing in this process",
    registry=REGISTRY,
)

STAGE_FAILURES_TOTAL = Counter(
    "hls_transcode_stage_failures_total",
    "Run failures by the stage that failed",
    ["stage"],
    registry=REGISTRY,
)

RENDITION_ENCODE_SECONDS = Histogram(
    "hls_rendition_encode_seconds",
    "FFmpeg wall time per rendition tier",
    ["tier"],
    buckets=[1, 5, 15, 30, 60, 120, 300, 600],
    registry=REGISTRY,
)

OBJECTS_UPLOADED_TOTAL = Counter(
    "hls_objects_uploaded_total",
    "Objects pushed to the object store",
    ["kind"],
    registry=REGISTRY,
)

SCRATCH_CLEANUP_FAILURES_TOTAL = Counter(
    "hls_scratch_cleanup_failures_total",
    "Scratch workspace deletions that raised",
    registry=REGISTRY,
)


# ============================================
# Trigger Metrics
# ============================================
TRIGGER_RECORDS_TOTAL = Counter(
    "hls_trigger_records_total",
    "Notification records received by outcome (processed, skipped)",
    ["outcome"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Publish the running version and environment on hls_pipeline_app_info."""
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
