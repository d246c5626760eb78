"""Webhook API for S3 / MinIO bucket notifications."""

from typing import Union

from fastapi import APIRouter, Depends, Query, Response, status

from hls_pipeline.modules.transcoding.orchestrator import TranscodeOrchestrator
from hls_pipeline.modules.transcoding.schemas import BatchSummary
from hls_pipeline.modules.transcoding.service import get_orchestrator
from hls_pipeline.modules.trigger import tasks
from hls_pipeline.modules.trigger.handler import handle_event
from hls_pipeline.modules.trigger.schemas import EventAccepted, S3Notification

router = APIRouter(prefix="/events", tags=["events"])


@router.post(
    "/s3",
    response_model=Union[BatchSummary, EventAccepted],
    summary="Receive an S3 object-created notification",
)
def receive_s3_event(
    notification: S3Notification,
    response: Response,
    run_async: bool = Query(
        False,
        alias="async",
        description="Queue the notification on the worker instead of processing inline",
    ),
    orchestrator: TranscodeOrchestrator = Depends(get_orchestrator),
):
    """Transcode the eligible objects of a notification.

    Inline processing blocks until every object is done and returns the
    batch summary. With ``async=true`` the notification is queued and the
    task id is returned with 202.
    """
    event = notification.model_dump()

    if run_async:
        task_id = tasks.dispatch_s3_event(event)
        response.status_code = status.HTTP_202_ACCEPTED
        return EventAccepted(task_id=task_id)

    return handle_event(event, orchestrator)
