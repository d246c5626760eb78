"""Tests for the FFmpeg invoker.

A tiny POSIX shell script stands in for FFmpeg so exit codes, stderr,
timeouts and written outputs can be controlled exactly.
"""

import os
import stat
import sys
import time

import pytest

from hls_pipeline.modules.transcoding.exceptions import CodecFailure
from hls_pipeline.modules.transcoding.ffmpeg import STDERR_TAIL_CHARS, FFmpegInvoker
from hls_pipeline.modules.transcoding.renditions import STANDARD_PLAN

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")

SPEC_480 = STANDARD_PLAN.get("480p")

SUCCESS_SCRIPT = """#!/bin/sh
pattern=""
last=""
while [ "$#" -gt 0 ]; do
  if [ "$1" = "-hls_segment_filename" ]; then
    shift
    pattern="$1"
  fi
  last="$1"
  shift
done
for i in 0 1 2; do
  printf "segment" > "$(printf "$pattern" "$i")"
done
printf "#EXTM3U\\n#EXT-X-ENDLIST\\n" > "$last"
exit 0
"""

FAILING_SCRIPT = """#!/bin/sh
echo "Invalid data found when processing input" >&2
exit 1
"""

SILENT_SCRIPT = """#!/bin/sh
exit 0
"""

SLEEPING_SCRIPT = """#!/bin/sh
exec sleep 30
"""


def _write_script(directory, body, name="ffmpeg"):
    path = directory / name
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def workdir(tmp_path):
    source = tmp_path / "lesson.mp4"
    source.write_bytes(b"not really an mp4")
    output_dir = tmp_path / "out"
    output_dir.mkdir()
    return tmp_path, str(source), str(output_dir)


class TestBuildCommand:
    """The argument vector handed to FFmpeg."""

    def test_argument_vector(self) -> None:
        invoker = FFmpegInvoker(ffmpeg_path="/usr/bin/ffmpeg", preset="fast")

        cmd = invoker.build_command("/scratch/in.mp4", "/scratch/out", "lesson", SPEC_480)

        assert cmd == [
            "/usr/bin/ffmpeg",
            "-loglevel", "error",
            "-y",
            "-i", "/scratch/in.mp4",
            "-vf", "scale=854:480:force_original_aspect_ratio=decrease,pad=854:480:(ow-iw)/2:(oh-ih)/2",
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", "23",
            "-maxrate", "1000k",
            "-bufsize", "2000k",
            "-c:a", "aac",
            "-b:a", "128k",
            "-ac", "2",
            "-hls_time", "6",
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", "/scratch/out/lesson_480p_%03d.ts",
            "/scratch/out/lesson_480p.m3u8",
        ]

    def test_untrusted_base_name_stays_one_argument(self) -> None:
        invoker = FFmpegInvoker()
        base = "a; rm -rf / $(whoami) 100%"

        cmd = invoker.build_command("in.mp4", "out", base, SPEC_480, binary="ffmpeg")

        assert cmd[-1] == os.path.join("out", f"{base}_480p.m3u8")
        assert cmd[-2] == os.path.join("out", "a; rm -rf / $(whoami) 100%%_480p_%03d.ts")

    @pytest.mark.parametrize("tier", STANDARD_PLAN.tier_names)
    def test_tier_parameters_flow_into_argv(self, tier: str) -> None:
        spec = STANDARD_PLAN.get(tier)
        cmd = FFmpegInvoker().build_command("in.mp4", "out", "clip", spec)

        assert cmd[cmd.index("-crf") + 1] == str(spec.crf)
        assert cmd[cmd.index("-maxrate") + 1] == f"{spec.max_bitrate_kbps}k"
        assert cmd[cmd.index("-bufsize") + 1] == f"{spec.buffer_size_kbps}k"
        assert cmd[cmd.index("-b:a") + 1] == f"{spec.audio_bitrate_kbps}k"

    def test_non_positive_timeout_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            FFmpegInvoker(timeout_seconds=0)


class TestBinaryValidation:
    """Locating an executable FFmpeg."""

    def test_missing_binary(self, tmp_path) -> None:
        invoker = FFmpegInvoker(ffmpeg_path=str(tmp_path / "nope"))

        assert invoker.resolve_binary() is None
        with pytest.raises(CodecFailure) as exc_info:
            invoker.validate_binary()
        assert exc_info.value.tier == "*"

    def test_non_executable_file(self, tmp_path) -> None:
        path = tmp_path / "ffmpeg"
        path.write_text("#!/bin/sh\n")
        path.chmod(0o644)

        with pytest.raises(CodecFailure, match="not executable"):
            FFmpegInvoker(ffmpeg_path=str(path)).validate_binary()

    def test_executable_file(self, tmp_path) -> None:
        path = _write_script(tmp_path, SILENT_SCRIPT)

        assert FFmpegInvoker(ffmpeg_path=path).validate_binary() == os.path.abspath(path)


class TestProduce:
    """Running FFmpeg for one tier."""

    def test_success_collects_playlist_and_segments(self, workdir) -> None:
        tmp_path, source, output_dir = workdir
        invoker = FFmpegInvoker(ffmpeg_path=_write_script(tmp_path, SUCCESS_SCRIPT), timeout_seconds=30)

        artifact = invoker.produce(source, output_dir, "lesson", SPEC_480)

        assert artifact.tier == "480p"
        assert artifact.manifest_name == "lesson_480p.m3u8"
        assert [os.path.basename(p) for p in artifact.segment_paths] == [
            "lesson_480p_000.ts",
            "lesson_480p_001.ts",
            "lesson_480p_002.ts",
        ]

    def test_segments_of_other_tiers_are_ignored(self, workdir) -> None:
        tmp_path, source, output_dir = workdir
        for stray in ("lesson_720p_000.ts", "other_480p_000.ts"):
            with open(os.path.join(output_dir, stray), "wb") as f:
                f.write(b"x")
        invoker = FFmpegInvoker(ffmpeg_path=_write_script(tmp_path, SUCCESS_SCRIPT), timeout_seconds=30)

        artifact = invoker.produce(source, output_dir, "lesson", SPEC_480)

        assert len(artifact.segment_paths) == 3
        assert all("lesson_480p_" in os.path.basename(p) for p in artifact.segment_paths)

    def test_non_zero_exit_carries_stderr(self, workdir) -> None:
        tmp_path, source, output_dir = workdir
        invoker = FFmpegInvoker(ffmpeg_path=_write_script(tmp_path, FAILING_SCRIPT), timeout_seconds=30)

        with pytest.raises(CodecFailure) as exc_info:
            invoker.produce(source, output_dir, "lesson", SPEC_480)

        error = exc_info.value
        assert error.tier == "480p"
        assert "exited with code 1" in error.detail
        assert "Invalid data found" in error.diagnostics
        assert error.describe().startswith("codec_failed[480p]: ")

    def test_stderr_is_truncated_to_tail(self, workdir) -> None:
        tmp_path, source, output_dir = workdir
        noisy = "#!/bin/sh\ni=0\nwhile [ $i -lt 400 ]; do echo \"line $i of noise\" >&2; i=$((i+1)); done\nexit 1\n"
        invoker = FFmpegInvoker(ffmpeg_path=_write_script(tmp_path, noisy), timeout_seconds=30)

        with pytest.raises(CodecFailure) as exc_info:
            invoker.produce(source, output_dir, "lesson", SPEC_480)

        diagnostics = exc_info.value.diagnostics
        assert len(diagnostics) <= STDERR_TAIL_CHARS
        assert diagnostics.endswith("line 399 of noise")

    def test_success_without_outputs_is_a_failure(self, workdir) -> None:
        tmp_path, source, output_dir = workdir
        invoker = FFmpegInvoker(ffmpeg_path=_write_script(tmp_path, SILENT_SCRIPT), timeout_seconds=30)

        with pytest.raises(CodecFailure, match="did not write lesson_480p.m3u8"):
            invoker.produce(source, output_dir, "lesson", SPEC_480)

    def test_timeout_kills_the_process(self, workdir) -> None:
        tmp_path, source, output_dir = workdir
        invoker = FFmpegInvoker(ffmpeg_path=_write_script(tmp_path, SLEEPING_SCRIPT), timeout_seconds=0.5)

        start = time.monotonic()
        with pytest.raises(CodecFailure, match="timed out"):
            invoker.produce(source, output_dir, "lesson", SPEC_480)

        assert time.monotonic() - start < 10

    def test_missing_binary_names_the_tier(self, workdir) -> None:
        tmp_path, source, output_dir = workdir
        invoker = FFmpegInvoker(ffmpeg_path=str(tmp_path / "missing" / "ffmpeg"))

        with pytest.raises(CodecFailure) as exc_info:
            invoker.produce(source, output_dir, "lesson", STANDARD_PLAN.get("1080p"))

        assert exc_info.value.tier == "1080p"
