"""Trigger adapter: notification in, one ProcessingResult per eligible object.

Records of one notification are processed one after another. A failed
record never stops the ones after it.
"""

import logging
import uuid
from typing import Any, Optional

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import correlation_scope, log_info, setup_logging
from hls_pipeline.modules.transcoding.orchestrator import TranscodeOrchestrator
from hls_pipeline.modules.transcoding.schemas import BatchSummary
from hls_pipeline.modules.transcoding.service import get_orchestrator
from hls_pipeline.modules.trigger.events import select_sources

logger = logging.getLogger(__name__)

_logging_configured = False


def handle_event(event: dict[str, Any], orchestrator: TranscodeOrchestrator) -> BatchSummary:
    """Transcode every eligible object of a notification.

    Ineligible records are skipped and do not appear in the results.

    Args:
        event: S3 notification payload
        orchestrator: Orchestrator to run for each eligible object

    Returns:
        BatchSummary with results in notification order
    """
    sources, skipped = select_sources(
        event,
        suffix=orchestrator.input_suffix,
        tier_names=orchestrator.plan.tier_names,
    )

    results = [orchestrator.process(source) for source in sources]
    summary = BatchSummary.from_results(results, skipped=skipped)

    log_info(
        logger,
        "Processing summary",
        total=summary.total,
        successful=summary.successful,
        failed=summary.failed,
        skipped=summary.skipped,
    )
    return summary


def lambda_handler(event: dict[str, Any], context: Optional[Any] = None) -> dict[str, Any]:
    """AWS Lambda entry point for S3 notifications.

    Always answers 200: per-object failures are reported in the body, and
    retrying the whole batch would redo the objects that succeeded.
    """
    global _logging_configured
    if not _logging_configured:
        setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
        _logging_configured = True

    request_id = getattr(context, "aws_request_id", None) or str(uuid.uuid4())
    with correlation_scope(request_id):
        summary = handle_event(event, get_orchestrator())

    return {
        "statusCode": 200,
        "body": summary.model_dump_json(),
    }
