"""Celery tasks for notification-driven transcoding.

Tasks never retry on their own: a failed object is reported in the
returned summary. Redelivery after a worker crash comes from
``task_acks_late``.
"""

import logging
from typing import Any

from celery import Task

from hls_pipeline.core.celery_app import celery_app
from hls_pipeline.core.logging import correlation_scope, log_error
from hls_pipeline.modules.transcoding.schemas import SourceReference
from hls_pipeline.modules.transcoding.service import get_orchestrator
from hls_pipeline.modules.trigger.handler import handle_event

logger = logging.getLogger(__name__)


class TranscodeTask(Task):
    """Base task for transcoding operations."""
    abstract = True
    max_retries = 0

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Log tasks that died outside the orchestrator's own error handling."""
        log_error(logger, "Transcode task failed", exception=exc, task_id=task_id)


@celery_app.task(bind=True, base=TranscodeTask, name="hls_pipeline.process_s3_event")
def process_s3_event(self: TranscodeTask, event: dict[str, Any]) -> dict:
    """Process an S3 notification.

    Args:
        event: S3 notification payload

    Returns:
        dict: Serialized BatchSummary
    """
    with correlation_scope(self.request.id or "local"):
        summary = handle_event(event, get_orchestrator())
    return summary.model_dump()


@celery_app.task(bind=True, base=TranscodeTask, name="hls_pipeline.transcode_object")
def transcode_object(self: TranscodeTask, bucket: str, key: str) -> dict:
    """Transcode one object, bypassing notification parsing.

    Args:
        bucket: Source bucket
        key: Decoded source key

    Returns:
        dict: Serialized ProcessingResult
    """
    with correlation_scope(self.request.id or "local"):
        result = get_orchestrator().process(SourceReference(bucket=bucket, key=key))
    return result.model_dump()


def dispatch_s3_event(event: dict[str, Any]) -> str:
    """Queue a notification for processing and return the task id."""
    async_result = process_s3_event.apply_async(args=[event])
    return async_result.id
