"""Shared test doubles for the transcoding pipeline.

The doubles stand in for the two external collaborators, the object store
and FFmpeg, while keeping real files on disk so scratch cleanup and upload
ordering are exercised for real.
"""

import os
import threading
from typing import Callable, Optional

import pytest

from hls_pipeline.core.storage import NotFound, StorageError, StorageGateway, TransientStorageError
from hls_pipeline.modules.transcoding.exceptions import CodecFailure
from hls_pipeline.modules.transcoding.ffmpeg import FFmpegInvoker, RenditionArtifact
from hls_pipeline.modules.transcoding.naming import segment_file_name, tier_manifest_name
from hls_pipeline.modules.transcoding.orchestrator import TranscodeOrchestrator
from hls_pipeline.modules.transcoding.renditions import RenditionSpec, STANDARD_PLAN
from hls_pipeline.modules.transcoding.workspace import ScratchWorkspace, remove_path


class MemoryStorage(StorageGateway):
    """In-memory object store recording every push in order."""

    def __init__(self, region: str = "us-east-1"):
        self.region = region
        self.objects: dict[tuple[str, str], bytes] = {}
        self.metadata: dict[tuple[str, str], tuple[str, Optional[str]]] = {}
        self.pushed: list[str] = []
        self.deleted: list[str] = []
        self.fetch_error: Optional[StorageError] = None
        self.fail_push_at: Optional[int] = None
        self._lock = threading.Lock()

    def put(self, bucket: str, key: str, data: bytes = b"\x00\x00\x00\x18ftypmp42") -> None:
        self.objects[(bucket, key)] = data

    def fetch(self, bucket: str, key: str, destination: str) -> str:
        if self.fetch_error is not None:
            raise self.fetch_error
        try:
            data = self.objects[(bucket, key)]
        except KeyError:
            raise NotFound(f"{bucket}/{key} does not exist", bucket, key) from None
        with open(destination, "wb") as f:
            f.write(data)
        return destination

    def push(self, local_path, bucket, key, content_type="application/octet-stream", cache_control=None):
        with self._lock:
            if self.fail_push_at is not None and len(self.pushed) == self.fail_push_at:
                raise TransientStorageError("SlowDown", bucket, key)
            with open(local_path, "rb") as f:
                self.objects[(bucket, key)] = f.read()
            self.metadata[(bucket, key)] = (content_type, cache_control)
            self.pushed.append(key)

    def list_keys(self, bucket, prefix=""):
        return sorted(k for b, k in self.objects if b == bucket and k.startswith(prefix))

    def delete(self, bucket, key):
        self.objects.pop((bucket, key), None)
        self.deleted.append(key)

    def exists(self, bucket, key):
        return (bucket, key) in self.objects

    def get_public_url(self, bucket, key):
        return f"https://{bucket}.s3.{self.region}.amazonaws.com/{key}"


class FakeInvoker(FFmpegInvoker):
    """Writes a playlist and a fixed number of segments per tier.

    Args:
        segments: Segments written per tier
        fail_tier: Tier whose encode raises CodecFailure
        error: Exception raised instead of encoding, for any tier
    """

    def __init__(
        self,
        segments: int = 3,
        fail_tier: Optional[str] = None,
        error: Optional[BaseException] = None,
    ):
        super().__init__(ffmpeg_path="ffmpeg")
        self.segments = segments
        self.fail_tier = fail_tier
        self.error = error
        self.calls: list[str] = []

    def produce(self, input_path: str, output_dir: str, base_name: str, spec: RenditionSpec) -> RenditionArtifact:
        assert os.path.isfile(input_path), "input must be fetched before encoding"
        self.calls.append(spec.name)
        if self.error is not None:
            raise self.error
        if spec.name == self.fail_tier:
            # Leave partial output behind like a crashed encode would
            with open(os.path.join(output_dir, segment_file_name(base_name, spec.name, 0)), "wb") as f:
                f.write(b"partial")
            raise CodecFailure(spec.name, "ffmpeg exited with code 1", "Conversion failed!")

        manifest_path = os.path.join(output_dir, tier_manifest_name(base_name, spec.name))
        segment_paths = []
        lines = ["#EXTM3U", "#EXT-X-VERSION:3", f"#EXT-X-TARGETDURATION:{spec.segment_duration}"]
        for index in range(self.segments):
            name = segment_file_name(base_name, spec.name, index)
            path = os.path.join(output_dir, name)
            with open(path, "wb") as f:
                f.write(f"{spec.name}:{index}".encode())
            segment_paths.append(path)
            lines.extend([f"#EXTINF:{spec.segment_duration}.000000,", name])
        lines.append("#EXT-X-ENDLIST")
        with open(manifest_path, "w") as f:
            f.write("\n".join(lines) + "\n")
        return RenditionArtifact(spec.name, manifest_path, tuple(segment_paths))


class WorkspaceRecorder:
    """Workspace factory remembering every workspace and deletion attempt."""

    def __init__(self, remover: Callable[[str], None] = remove_path):
        self.workspaces: list[ScratchWorkspace] = []
        self.removed: list[str] = []
        self._remover = remover

    def _remove(self, path: str) -> None:
        self.removed.append(path)
        self._remover(path)

    def __call__(self, root: str, base_name: str, suffix: str) -> ScratchWorkspace:
        workspace = ScratchWorkspace(root, base_name, suffix, remover=self._remove)
        self.workspaces.append(workspace)
        return workspace


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def make_storage():
    return MemoryStorage


@pytest.fixture
def make_invoker():
    return FakeInvoker


@pytest.fixture
def workspace_recorder() -> WorkspaceRecorder:
    return WorkspaceRecorder()


@pytest.fixture
def make_workspace_recorder():
    return WorkspaceRecorder


@pytest.fixture
def make_orchestrator(tmp_path, storage, workspace_recorder):
    """Build an orchestrator over the in-memory store and fake codec."""

    def _make(invoker=None, plan=STANDARD_PLAN, storage_override=None, recorder=None):
        return TranscodeOrchestrator(
            storage=storage_override or storage,
            invoker=invoker or FakeInvoker(),
            plan=plan,
            scratch_root=str(tmp_path / "scratch"),
            workspace_factory=recorder or workspace_recorder,
        )

    return _make
