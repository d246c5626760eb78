"""Trigger module: turns bucket notifications into transcode runs.

Entry points: the Lambda handler, the Celery tasks and the webhook router.
"""

from hls_pipeline.modules.trigger.router import router as events_router

__all__ = ["events_router"]
