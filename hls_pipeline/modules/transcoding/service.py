"""Composition of the transcoding pipeline from settings.

This is the only place configuration flows into the core; everything below
it receives its collaborators explicitly.
"""

from functools import lru_cache
from typing import Optional

from hls_pipeline.core.config import Settings, settings as default_settings
from hls_pipeline.core.storage import StorageConfig, StorageGateway, create_storage_gateway
from hls_pipeline.modules.transcoding.ffmpeg import FFmpegInvoker
from hls_pipeline.modules.transcoding.orchestrator import TranscodeOrchestrator
from hls_pipeline.modules.transcoding.renditions import get_plan


def build_storage(settings: Settings) -> StorageGateway:
    return create_storage_gateway(StorageConfig.from_settings(settings))


def build_orchestrator(
    settings: Settings,
    storage: Optional[StorageGateway] = None,
) -> TranscodeOrchestrator:
    """Build an orchestrator from settings.

    Args:
        settings: Application settings
        storage: Gateway to use instead of the configured backend

    Returns:
        Ready-to-use TranscodeOrchestrator
    """
    invoker = FFmpegInvoker(
        ffmpeg_path=settings.FFMPEG_PATH,
        timeout_seconds=settings.FFMPEG_TIMEOUT_SECONDS,
        preset=settings.FFMPEG_PRESET,
    )
    return TranscodeOrchestrator(
        storage=storage or build_storage(settings),
        invoker=invoker,
        plan=get_plan(settings.RENDITION_PLAN),
        scratch_root=settings.SCRATCH_DIR,
        input_suffix=settings.INPUT_SUFFIX,
    )


@lru_cache(maxsize=1)
def get_orchestrator() -> TranscodeOrchestrator:
    """Process-wide orchestrator built from the default settings."""
    return build_orchestrator(default_settings)
