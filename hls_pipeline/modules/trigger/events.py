"""Parsing and filtering of S3 "object created" notifications.

Works for AWS S3 event notifications (Lambda, SQS, EventBridge pipes) and
the S3-compatible webhook payloads MinIO sends, which share the
``Records[*].s3`` layout.
"""

import logging
import posixpath
from dataclasses import dataclass
from typing import Any, Iterable, Optional
from urllib.parse import unquote_plus

from pydantic import ValidationError

from hls_pipeline.core.logging import log_warning
from hls_pipeline.core.metrics import TRIGGER_RECORDS_TOTAL
from hls_pipeline.modules.transcoding.naming import is_rendition_output
from hls_pipeline.modules.transcoding.schemas import SourceReference

logger = logging.getLogger(__name__)

OBJECT_CREATED_PREFIX = "ObjectCreated"


@dataclass(frozen=True)
class TriggerRecord:
    """One notification record, key already decoded."""
    bucket: str
    key: str
    size: Optional[int] = None
    event_name: str = ""

    def to_source(self) -> SourceReference:
        return SourceReference(bucket=self.bucket, key=self.key, size=self.size)


def decode_key(raw_key: str) -> str:
    """Decode an S3 notification key: ``+`` becomes a space, then %XX escapes."""
    return unquote_plus(raw_key)


def is_object_created(event_name: str) -> bool:
    """Whether an event name denotes object creation.

    An empty name is accepted, since hand-built test events and some
    forwarders omit it. MinIO prefixes names with ``s3:``.
    """
    if not event_name:
        return True
    if event_name.startswith("s3:"):
        event_name = event_name[3:]
    return event_name.startswith(OBJECT_CREATED_PREFIX)


def is_eligible_key(
    key: str,
    suffix: str = ".mp4",
    tier_names: Iterable[str] = (),
) -> bool:
    """Whether a decoded key should be transcoded.

    The key must end with ``suffix`` (case-insensitive) and must not be one
    of this pipeline's own rendition outputs.
    """
    if not key or key.endswith("/"):
        return False
    if not key.lower().endswith(suffix.lower()):
        return False
    if not posixpath.basename(key)[: -len(suffix)]:
        return False
    return not is_rendition_output(key, tier_names)


def parse_records(event: dict[str, Any]) -> list[TriggerRecord]:
    """Extract the records of a notification.

    Malformed records (missing fields, a bucket or key that is not a
    non-empty string) are logged and dropped rather than failing the batch.
    """
    records = []
    for position, record in enumerate(event.get("Records") or []):
        try:
            s3 = record["s3"]
            bucket = s3["bucket"]["name"]
            raw_key = s3["object"]["key"]
            if not (isinstance(bucket, str) and bucket and isinstance(raw_key, str) and raw_key):
                raise ValueError("bucket and key must be non-empty strings")
            key = decode_key(raw_key)
            size = s3["object"].get("size")
            event_name = record.get("eventName") or ""
            if not isinstance(event_name, str):
                raise ValueError("eventName must be a string")
        except (KeyError, TypeError, AttributeError, ValueError):
            log_warning(logger, "Dropping malformed notification record", position=position)
            TRIGGER_RECORDS_TOTAL.labels(outcome="skipped").inc()
            continue

        records.append(TriggerRecord(
            bucket=bucket,
            key=key,
            size=int(size) if isinstance(size, (int, float)) and size >= 0 else None,
            event_name=event_name,
        ))
    return records


def select_sources(
    event: dict[str, Any],
    suffix: str = ".mp4",
    tier_names: Iterable[str] = (),
) -> tuple[list[SourceReference], int]:
    """Pick the records of a notification that should be transcoded.

    Returns:
        Tuple of (eligible sources in notification order, skipped count)
    """
    tier_names = tuple(tier_names)
    sources = []
    skipped = 0
    for record in parse_records(event):
        if is_object_created(record.event_name) and is_eligible_key(record.key, suffix, tier_names):
            try:
                source = record.to_source()
            except ValidationError as e:
                skipped += 1
                TRIGGER_RECORDS_TOTAL.labels(outcome="skipped").inc()
                log_warning(logger, "Dropping invalid source reference", bucket=record.bucket, key=record.key, error=str(e))
                continue
            sources.append(source)
            TRIGGER_RECORDS_TOTAL.labels(outcome="processed").inc()
        else:
            skipped += 1
            TRIGGER_RECORDS_TOTAL.labels(outcome="skipped").inc()
            logger.info(
                "Skipping ineligible object",
                extra={"bucket": record.bucket, "key": record.key, "event_name": record.event_name},
            )
    return sources, skipped
