"""FFmpeg invocation for HLS renditions.

Runs one FFmpeg process per tier, as an argument vector (never through a
shell), in its own process group so a timed-out encode can be killed
together with any helper processes it spawned.
"""

import logging
import os
import shutil
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Optional

from hls_pipeline.core.metrics import RENDITION_ENCODE_SECONDS
from hls_pipeline.modules.transcoding.exceptions import CodecFailure
from hls_pipeline.modules.transcoding.naming import (
    parse_segment_name,
    segment_pattern,
    tier_manifest_name,
)
from hls_pipeline.modules.transcoding.renditions import RenditionSpec, scale_pad_filter

logger = logging.getLogger(__name__)

ANY_TIER = "*"
STDERR_TAIL_CHARS = 2000


@dataclass(frozen=True)
class RenditionArtifact:
    """Files produced for one tier, segments in playback order."""
    tier: str
    manifest_path: str
    segment_paths: tuple[str, ...]

    @property
    def manifest_name(self) -> str:
        return os.path.basename(self.manifest_path)


def _tail(text: Optional[str], limit: int = STDERR_TAIL_CHARS) -> str:
    if not text:
        return ""
    text = text.strip()
    return text[-limit:] if len(text) > limit else text


def _kill_process_group(process: subprocess.Popen) -> None:
    """SIGKILL the process group led by ``process``."""
    try:
        os.killpg(os.getpgid(process.pid), signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        # Already gone
        process.kill()


class FFmpegInvoker:
    """Produces one HLS rendition per call.

    Args:
        ffmpeg_path: Binary name (looked up on PATH) or path
        timeout_seconds: Wall-clock limit for a single tier
        preset: x264 speed preset
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout_seconds: float = 600,
        preset: str = "fast",
    ):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.ffmpeg_path = ffmpeg_path
        self.timeout_seconds = timeout_seconds
        self.preset = preset

    def resolve_binary(self) -> Optional[str]:
        """Absolute path of an executable FFmpeg, or None."""
        if os.sep in self.ffmpeg_path:
            if os.path.isfile(self.ffmpeg_path) and os.access(self.ffmpeg_path, os.X_OK):
                return os.path.abspath(self.ffmpeg_path)
            return None
        return shutil.which(self.ffmpeg_path)

    def validate_binary(self) -> str:
        """Check that FFmpeg exists and is executable.

        Returns:
            Resolved binary path

        Raises:
            CodecFailure: If the binary is missing or not executable
        """
        resolved = self.resolve_binary()
        if resolved is None:
            raise CodecFailure(
                ANY_TIER,
                f"ffmpeg binary not found or not executable: {self.ffmpeg_path}",
            )
        return resolved

    def build_command(
        self,
        input_path: str,
        output_dir: str,
        base_name: str,
        spec: RenditionSpec,
        binary: Optional[str] = None,
    ) -> list[str]:
        """Build the FFmpeg argument vector for one tier.

        Args:
            input_path: Local source file
            output_dir: Directory the tier's playlist and segments go to
            base_name: Output base name
            spec: Tier to produce
            binary: Resolved FFmpeg path (defaults to the configured one)

        Returns:
            FFmpeg command as list of arguments
        """
        return [
            binary or self.ffmpeg_path,
            "-loglevel", "error",
            "-y",
            "-i", input_path,
            # Video settings
            "-vf", scale_pad_filter(spec),
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(int(spec.crf)),
            "-maxrate", f"{int(spec.max_bitrate_kbps)}k",
            "-bufsize", f"{int(spec.buffer_size_kbps)}k",
            # Audio settings
            "-c:a", "aac",
            "-b:a", f"{int(spec.audio_bitrate_kbps)}k",
            "-ac", "2",
            # HLS output
            "-hls_time", str(int(spec.segment_duration)),
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", os.path.join(output_dir, segment_pattern(base_name, spec.name)),
            os.path.join(output_dir, tier_manifest_name(base_name, spec.name)),
        ]

    def produce(
        self,
        input_path: str,
        output_dir: str,
        base_name: str,
        spec: RenditionSpec,
    ) -> RenditionArtifact:
        """Encode one tier into ``output_dir``.

        Raises:
            CodecFailure: On missing binary, spawn error, non-zero exit,
                timeout, or when FFmpeg reports success but left no
                playlist or segments behind
        """
        binary = self.resolve_binary()
        if binary is None:
            raise CodecFailure(
                spec.name,
                f"ffmpeg binary not found or not executable: {self.ffmpeg_path}",
            )

        cmd = self.build_command(input_path, output_dir, base_name, spec, binary=binary)
        logger.debug("Running ffmpeg", extra={"tier": spec.name, "argv": cmd})

        start = time.perf_counter()
        try:
            self._run(cmd, spec.name)
        finally:
            RENDITION_ENCODE_SECONDS.labels(tier=spec.name).observe(time.perf_counter() - start)

        return self.collect_artifact(output_dir, base_name, spec)

    def _run(self, cmd: list[str], tier: str) -> None:
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except OSError as e:
            raise CodecFailure(tier, f"cannot start ffmpeg: {e}") from e

        try:
            _, stderr = process.communicate(timeout=self.timeout_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(
                f"ffmpeg exceeded {self.timeout_seconds}s, killing process group",
                extra={"tier": tier, "pid": process.pid},
            )
            _kill_process_group(process)
            _, stderr = process.communicate()
            raise CodecFailure(
                tier,
                f"ffmpeg timed out after {self.timeout_seconds}s",
                _tail(stderr),
            )
        except BaseException:
            # Interrupted from outside (worker soft time limit, shutdown)
            _kill_process_group(process)
            process.wait()
            raise

        if process.returncode != 0:
            raise CodecFailure(
                tier,
                f"ffmpeg exited with code {process.returncode}",
                _tail(stderr),
            )

    def collect_artifact(
        self,
        output_dir: str,
        base_name: str,
        spec: RenditionSpec,
    ) -> RenditionArtifact:
        """Gather the playlist and segments FFmpeg wrote for a tier.

        Raises:
            CodecFailure: If the playlist or every segment is missing
        """
        manifest_path = os.path.join(output_dir, tier_manifest_name(base_name, spec.name))
        if not os.path.isfile(manifest_path):
            raise CodecFailure(spec.name, f"ffmpeg did not write {os.path.basename(manifest_path)}")

        segments = []
        for filename in os.listdir(output_dir):
            try:
                parsed = parse_segment_name(filename)
            except ValueError:
                continue
            if parsed.base_name == base_name and parsed.tier == spec.name:
                segments.append((parsed.index, os.path.join(output_dir, filename)))

        if not segments:
            raise CodecFailure(spec.name, "ffmpeg wrote no segments")

        segments.sort()
        return RenditionArtifact(
            tier=spec.name,
            manifest_path=manifest_path,
            segment_paths=tuple(path for _, path in segments),
        )
