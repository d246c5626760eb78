"""Error taxonomy of a transcode run.

Each failure carries a short machine-readable ``reason`` that ends up in the
ProcessingResult error text as ``<reason>: <detail>``.
"""

from typing import Optional


class TranscodeError(Exception):
    """Base class for failures that abort a transcode run."""

    reason = "transcode_failed"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def describe(self) -> str:
        """Render as ``<reason>: <detail>``."""
        return f"{self.reason}: {self.detail}"


class InputRejected(TranscodeError):
    """Source key is not an eligible input.

    The trigger filters such keys out before a run starts. A run started
    directly for one returns an unsuccessful result with this reason, but it
    is counted as ``rejected`` rather than as a stage failure.
    """

    reason = "input_rejected"


class FetchFailure(TranscodeError):
    """The source object could not be downloaded."""

    reason = "fetch_failed"


class CodecFailure(TranscodeError):
    """FFmpeg exited non-zero, timed out, was missing, or produced no output."""

    reason = "codec_failed"

    def __init__(self, tier: str, detail: str, diagnostics: Optional[str] = None):
        super().__init__(detail)
        self.tier = tier
        self.diagnostics = diagnostics or ""

    def describe(self) -> str:
        text = f"{self.reason}[{self.tier}]: {self.detail}"
        if self.diagnostics:
            text = f"{text} | {self.diagnostics}"
        return text


class ManifestFailure(TranscodeError):
    """The master manifest could not be written."""

    reason = "manifest_failed"


class PushFailure(TranscodeError):
    """An output object could not be uploaded."""

    reason = "push_failed"

    def __init__(self, key: str, detail: str):
        super().__init__(f"{key}: {detail}")
        self.key = key


class CleanupWarning(UserWarning):
    """Scratch workspace deletion failed; logged, never raised."""


class WorkspaceFailure(TranscodeError):
    """The scratch workspace could not be created."""

    reason = "workspace_failed"
