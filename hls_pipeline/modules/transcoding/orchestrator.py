"""Transcode orchestration: one source object in, one HLS ladder out.

A run moves through

    IDLE -> FETCHING -> ENCODING(1..N) -> MANIFESTING -> PUSHING
         -> CLEANING_UP -> DONE(SUCCESS | FAILED)

Any failure jumps straight to CLEANING_UP. Nothing is uploaded until every
tier and the master manifest exist locally, so a failed encode never
publishes a partial ladder. Uploads go master manifest first, then tier
manifests, then segments; a failed upload stops the remaining ones but does
not remove what was already pushed.
"""

import logging
import os
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

from opentelemetry.trace import SpanKind

from hls_pipeline.core.logging import correlation_scope, log_error, log_info
from hls_pipeline.core.metrics import (
    OBJECTS_UPLOADED_TOTAL,
    STAGE_FAILURES_TOTAL,
    TRANSCODE_RUN_DURATION_SECONDS,
    TRANSCODE_RUNS_IN_PROGRESS,
    TRANSCODE_RUNS_TOTAL,
)
from hls_pipeline.core.storage import StorageError, StorageGateway
from hls_pipeline.core.tracing import add_span_attributes, record_exception, stage_span
from hls_pipeline.modules.transcoding.exceptions import (
    CodecFailure,
    FetchFailure,
    InputRejected,
    PushFailure,
    TranscodeError,
)
from hls_pipeline.modules.transcoding.ffmpeg import FFmpegInvoker, RenditionArtifact
from hls_pipeline.modules.transcoding.manifest import MasterManifest, build_master_manifest
from hls_pipeline.modules.transcoding.naming import (
    base_name_from_key,
    key_directory,
    master_manifest_name,
    output_key,
)
from hls_pipeline.modules.transcoding.renditions import STANDARD_PLAN, RenditionPlan
from hls_pipeline.modules.transcoding.schemas import ProcessingResult, SourceReference
from hls_pipeline.modules.transcoding.workspace import ScratchWorkspace

logger = logging.getLogger(__name__)

MANIFEST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
MANIFEST_CACHE_CONTROL = "no-cache"
SEGMENT_CONTENT_TYPE = "video/mp2t"
SEGMENT_CACHE_CONTROL = "max-age=31536000, immutable"


class RunStage(str, Enum):
    """States of a transcode run."""
    IDLE = "idle"
    FETCHING = "fetching"
    ENCODING = "encoding"
    MANIFESTING = "manifesting"
    PUSHING = "pushing"
    CLEANING_UP = "cleaning_up"
    DONE = "done"


class UploadKind(str, Enum):
    MASTER = "master"
    PLAYLIST = "playlist"
    SEGMENT = "segment"


@dataclass
class RunState:
    """Progress of one run, kept for logging and inspection."""
    run_id: str
    stage: RunStage = RunStage.IDLE
    tier: Optional[str] = None
    success: Optional[bool] = None
    transitions: list[str] = field(default_factory=list)

    def advance(self, stage: RunStage, tier: Optional[str] = None) -> None:
        self.stage = stage
        self.tier = tier
        label = f"{stage.value}:{tier}" if tier else stage.value
        self.transitions.append(label)
        logger.debug("Run stage changed", extra={"stage": label, "run_id": self.run_id})

    def finish(self, success: bool) -> None:
        self.success = success
        self.advance(RunStage.DONE)


@dataclass(frozen=True)
class UploadItem:
    """One local file and where it goes."""
    local_path: str
    key: str
    content_type: str
    cache_control: str
    kind: UploadKind


def plan_uploads(
    directory: str,
    manifest: MasterManifest,
    artifacts: Sequence[RenditionArtifact],
) -> list[UploadItem]:
    """Order every output for upload: master, tier manifests, segments.

    Args:
        directory: Remote directory of the source object
        manifest: The written master manifest
        artifacts: Tier artifacts in plan order

    Returns:
        Upload items in the order they must be pushed
    """
    items = [
        UploadItem(
            local_path=manifest.path,
            key=output_key(directory, os.path.basename(manifest.path)),
            content_type=MANIFEST_CONTENT_TYPE,
            cache_control=MANIFEST_CACHE_CONTROL,
            kind=UploadKind.MASTER,
        )
    ]
    for artifact in artifacts:
        items.append(UploadItem(
            local_path=artifact.manifest_path,
            key=output_key(directory, artifact.manifest_name),
            content_type=MANIFEST_CONTENT_TYPE,
            cache_control=MANIFEST_CACHE_CONTROL,
            kind=UploadKind.PLAYLIST,
        ))
    for artifact in artifacts:
        for segment_path in artifact.segment_paths:
            items.append(UploadItem(
                local_path=segment_path,
                key=output_key(directory, os.path.basename(segment_path)),
                content_type=SEGMENT_CONTENT_TYPE,
                cache_control=SEGMENT_CACHE_CONTROL,
                kind=UploadKind.SEGMENT,
            ))
    return items


WorkspaceFactory = Callable[[str, str, str], ScratchWorkspace]


class TranscodeOrchestrator:
    """Drives a source object through fetch, encode, manifest and push.

    Collaborators are injected so any of them can be replaced in tests. The
    orchestrator itself holds no per-run state and can serve concurrent runs.

    Args:
        storage: Object store gateway, used for both fetch and push
        invoker: Codec invoker producing one tier per call
        plan: Rendition ladder
        scratch_root: Parent directory for per-run scratch workspaces
        input_suffix: Accepted source extension
        workspace_factory: Builds the workspace for a run from
            (root, base name, suffix)
    """

    def __init__(
        self,
        storage: StorageGateway,
        invoker: Optional[FFmpegInvoker] = None,
        plan: RenditionPlan = STANDARD_PLAN,
        scratch_root: Optional[str] = None,
        input_suffix: str = ".mp4",
        workspace_factory: WorkspaceFactory = ScratchWorkspace,
    ):
        self.storage = storage
        self.invoker = invoker or FFmpegInvoker()
        self.plan = plan
        self.scratch_root = scratch_root or tempfile.gettempdir()
        self.input_suffix = input_suffix
        self.workspace_factory = workspace_factory

    def process(self, source: SourceReference) -> ProcessingResult:
        """Transcode one source object. Never raises."""
        result, _ = self.process_with_state(source)
        return result

    def process_with_state(self, source: SourceReference) -> tuple[ProcessingResult, RunState]:
        """Transcode one source object and return the run's final state too."""
        state = RunState(run_id=uuid.uuid4().hex)
        started = time.perf_counter()
        base_name = base_name_from_key(source.key, self.input_suffix)
        directory = key_directory(source.key)
        uploaded: list[str] = []

        with correlation_scope(state.run_id), stage_span(
            "transcode",
            kind=SpanKind.CONSUMER,
            bucket=source.bucket,
            key=source.key,
            plan=self.plan.name,
        ):
            TRANSCODE_RUNS_IN_PROGRESS.inc()
            log_info(logger, "Transcode started", bucket=source.bucket, key=source.key, run_id=state.run_id)
            error = ""
            rejected = False
            master_url = ""
            try:
                self._execute(source, base_name, directory, state, uploaded)
                master_key = output_key(directory, master_manifest_name(base_name))
                master_url = self.storage.get_public_url(source.bucket, master_key)
            except InputRejected as e:
                error = e.describe()
                rejected = True
                log_info(logger, "Source rejected", key=source.key, reason=e.detail)
            except TranscodeError as e:
                error = e.describe()
                record_exception(e)
                STAGE_FAILURES_TOTAL.labels(stage=e.reason).inc()
            except Exception as e:
                error = f"unexpected: {type(e).__name__}: {e}"
                record_exception(e)
                STAGE_FAILURES_TOTAL.labels(stage="unexpected").inc()
                log_error(logger, "Unexpected transcode error", exception=e, key=source.key)
            finally:
                TRANSCODE_RUNS_IN_PROGRESS.dec()

            elapsed = time.perf_counter() - started
            success = not error
            state.finish(success)
            TRANSCODE_RUNS_TOTAL.labels(
                outcome="success" if success else "rejected" if rejected else "failed"
            ).inc()
            TRANSCODE_RUN_DURATION_SECONDS.observe(elapsed)
            add_span_attributes({"hls.success": success, "hls.objects_uploaded": len(uploaded)})

            if success:
                result = ProcessingResult(
                    input_key=source.key,
                    success=True,
                    output_files=uploaded,
                    master_playlist_url=master_url,
                    processing_time_ms=int(elapsed * 1000),
                    video_name=base_name,
                    output_directory=directory,
                )
                log_info(
                    logger,
                    "Transcode succeeded",
                    key=source.key,
                    objects=len(uploaded),
                    master_playlist_url=result.master_playlist_url,
                    duration_ms=result.processing_time_ms,
                )
            else:
                result = ProcessingResult(
                    input_key=source.key,
                    success=False,
                    error=error,
                    processing_time_ms=int(elapsed * 1000),
                    video_name=base_name,
                    output_directory=directory,
                )
                if not rejected:
                    log_error(
                        logger,
                        "Transcode failed",
                        key=source.key,
                        error=error,
                        orphaned_objects=list(uploaded),
                        duration_ms=result.processing_time_ms,
                    )

        return result, state

    def _execute(
        self,
        source: SourceReference,
        base_name: str,
        directory: str,
        state: RunState,
        uploaded: list[str],
    ) -> None:
        if not source.key.lower().endswith(self.input_suffix.lower()):
            raise InputRejected(f"{source.key} does not end with {self.input_suffix}")

        with self.workspace_factory(self.scratch_root, base_name, self.input_suffix) as workspace:
            try:
                state.advance(RunStage.FETCHING)
                self._fetch(source, workspace)

                artifacts = self._encode_all(workspace, base_name, state)

                state.advance(RunStage.MANIFESTING)
                with stage_span("manifest", tier_count=len(artifacts)):
                    manifest = build_master_manifest(base_name, artifacts, workspace.output_dir, self.plan)

                state.advance(RunStage.PUSHING)
                uploads = plan_uploads(directory, manifest, artifacts)
                self._push_all(source.bucket, uploads, uploaded)
            finally:
                # workspace deletion runs when the with block exits
                state.advance(RunStage.CLEANING_UP)

    def _fetch(self, source: SourceReference, workspace: ScratchWorkspace) -> None:
        with stage_span("fetch", key=source.key):
            try:
                self.storage.fetch(source.bucket, source.key, workspace.input_path)
            except StorageError as e:
                raise FetchFailure(
                    f"s3://{source.bucket}/{source.key}: {type(e).__name__}: {e}"
                ) from e

    def _encode_all(
        self,
        workspace: ScratchWorkspace,
        base_name: str,
        state: RunState,
    ) -> list[RenditionArtifact]:
        artifacts = []
        for spec in self.plan.tiers():
            state.advance(RunStage.ENCODING, tier=spec.name)
            with stage_span("encode", tier=spec.name, height=spec.height):
                try:
                    artifact = self.invoker.produce(
                        workspace.input_path, workspace.output_dir, base_name, spec
                    )
                except OSError as e:
                    raise CodecFailure(spec.name, str(e)) from e
            log_info(
                logger,
                "Rendition produced",
                tier=spec.name,
                segments=len(artifact.segment_paths),
            )
            artifacts.append(artifact)
        return artifacts

    def _push_all(self, bucket: str, uploads: list[UploadItem], uploaded: list[str]) -> None:
        with stage_span("push", objects=len(uploads)):
            for item in uploads:
                try:
                    self.storage.push(
                        item.local_path,
                        bucket,
                        item.key,
                        content_type=item.content_type,
                        cache_control=item.cache_control,
                    )
                except StorageError as e:
                    raise PushFailure(item.key, f"{type(e).__name__}: {e}") from e
                uploaded.append(item.key)
                OBJECTS_UPLOADED_TOTAL.labels(kind=item.kind.value).inc()
