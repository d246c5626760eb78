"""Transcoding module: MP4 to HLS adaptive bitrate ladders.

Implements the rendition plan, FFmpeg invocation, master manifest
generation, per-run scratch workspaces and the orchestration that ties
them to object storage.
"""

from hls_pipeline.modules.transcoding.orchestrator import TranscodeOrchestrator
from hls_pipeline.modules.transcoding.schemas import (
    BatchSummary,
    ProcessingResult,
    SourceReference,
)

__all__ = [
    "TranscodeOrchestrator",
    "BatchSummary",
    "ProcessingResult",
    "SourceReference",
]
