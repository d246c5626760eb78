"""Prefix-wide maintenance: batch conversion and HLS output cleanup.

Batch conversion catches up on objects uploaded before notifications were
wired (or whose notification was lost). Output cleanup removes playlists
and segments under a prefix so a ladder can be regenerated; it never
touches anything but ``.m3u8`` and ``.ts`` objects.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from hls_pipeline.core.logging import log_info, log_warning
from hls_pipeline.core.storage import StorageError, StorageGateway
from hls_pipeline.modules.transcoding.naming import PLAYLIST_EXTENSION, SEGMENT_EXTENSION
from hls_pipeline.modules.transcoding.orchestrator import TranscodeOrchestrator
from hls_pipeline.modules.transcoding.schemas import BatchSummary, SourceReference
from hls_pipeline.modules.trigger.events import is_eligible_key

logger = logging.getLogger(__name__)


def normalize_prefix(prefix: str) -> str:
    """Strip whitespace and trailing slashes; ``""`` means the whole bucket."""
    return prefix.strip().rstrip("/")


def listing_prefix(prefix: str) -> str:
    """Prefix to list so ``a/b`` matches ``a/b/x`` but not ``a/bc/x``."""
    prefix = normalize_prefix(prefix)
    return f"{prefix}/" if prefix else ""


def find_sources(
    storage: StorageGateway,
    bucket: str,
    prefix: str,
    suffix: str = ".mp4",
    tier_names: tuple[str, ...] = (),
) -> list[str]:
    """List the keys under a prefix that would be transcoded."""
    keys = storage.list_keys(bucket, listing_prefix(prefix))
    return sorted(key for key in keys if is_eligible_key(key, suffix, tier_names))


def batch_convert(
    orchestrator: TranscodeOrchestrator,
    bucket: str,
    keys: list[str],
    concurrency: int = 2,
) -> BatchSummary:
    """Transcode a list of keys with bounded parallelism.

    Each run has its own scratch workspace, so runs do not interfere.
    Results keep the order of ``keys``.

    Args:
        orchestrator: Orchestrator shared by all runs
        bucket: Source bucket
        keys: Source keys
        concurrency: Maximum simultaneous runs

    Returns:
        BatchSummary of every run
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    sources = [SourceReference(bucket=bucket, key=key) for key in keys]
    with ThreadPoolExecutor(max_workers=concurrency) as executor:
        results = list(executor.map(orchestrator.process, sources))

    summary = BatchSummary.from_results(results)
    log_info(
        logger,
        "Batch conversion finished",
        bucket=bucket,
        total=summary.total,
        successful=summary.successful,
        failed=summary.failed,
    )
    return summary


@dataclass
class HlsOutputs:
    """HLS objects found under a prefix."""
    playlists: list[str] = field(default_factory=list)
    segments: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.playlists) + len(self.segments)

    @property
    def keys(self) -> list[str]:
        return self.playlists + self.segments


@dataclass
class PurgeReport:
    """Outcome of an output cleanup; nothing is deleted when ``dry_run``."""
    outputs: HlsOutputs
    dry_run: bool
    deleted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def find_hls_outputs(storage: StorageGateway, bucket: str, prefix: str) -> HlsOutputs:
    """List the playlists and segments under a prefix."""
    outputs = HlsOutputs()
    for key in sorted(storage.list_keys(bucket, listing_prefix(prefix))):
        lowered = key.lower()
        if lowered.endswith(PLAYLIST_EXTENSION):
            outputs.playlists.append(key)
        elif lowered.endswith(SEGMENT_EXTENSION):
            outputs.segments.append(key)
    return outputs


def purge_hls_outputs(
    storage: StorageGateway,
    bucket: str,
    prefix: str,
    confirm: bool = False,
    outputs: Optional[HlsOutputs] = None,
) -> PurgeReport:
    """Delete the playlists and segments under a prefix.

    Without ``confirm`` this only reports what would be deleted. Playlists
    go first so players stop finding the ladder before its segments vanish.

    Args:
        storage: Gateway to delete through
        bucket: Bucket to clean
        prefix: Key prefix to clean
        confirm: Actually delete
        outputs: Previously listed outputs to delete instead of listing again

    Returns:
        PurgeReport with deleted keys and per-key failures
    """
    if outputs is None:
        outputs = find_hls_outputs(storage, bucket, prefix)
    report = PurgeReport(outputs=outputs, dry_run=not confirm)
    if not confirm:
        return report

    for key in outputs.keys:
        try:
            storage.delete(bucket, key)
        except StorageError as e:
            report.failed[key] = f"{type(e).__name__}: {e}"
            log_warning(logger, "Failed to delete HLS output", bucket=bucket, key=key, error=str(e))
            continue
        report.deleted.append(key)

    log_info(
        logger,
        "HLS outputs deleted",
        bucket=bucket,
        prefix=normalize_prefix(prefix),
        deleted=len(report.deleted),
        failed=len(report.failed),
    )
    return report
