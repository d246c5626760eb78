"""Celery application configuration."""

from celery import Celery

from hls_pipeline.core.config import settings

TRANSCODING_QUEUE = "transcoding"

celery_app = Celery(
    "hls_pipeline",
    broker=settings.broker_url,
    backend=settings.result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # The soft limit fires first so a run can still clean up and report
    task_time_limit=settings.TASK_TIME_LIMIT_SECONDS,
    task_soft_time_limit=max(settings.TASK_TIME_LIMIT_SECONDS - 60, 1),
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue=TRANSCODING_QUEUE,
)

celery_app.autodiscover_tasks(["hls_pipeline.modules.trigger"])
