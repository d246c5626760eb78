"""Per-run scratch storage.

Each run gets its own input file path and output directory. Names combine
the source base name with a nanosecond timestamp, the process id and a
random token, so concurrent runs for the same key never share a path.
"""

import logging
import os
import re
import shutil
import time
import uuid
from typing import Callable, Optional

from hls_pipeline.core.logging import log_warning
from hls_pipeline.core.metrics import SCRATCH_CLEANUP_FAILURES_TOTAL
from hls_pipeline.modules.transcoding.exceptions import CleanupWarning, WorkspaceFailure

logger = logging.getLogger(__name__)

_UNSAFE_CHARS_RE = re.compile(r"[^\w.-]+")
MAX_LOCAL_PREFIX = 64


def run_token() -> str:
    """Disambiguator unique per run, even within one process."""
    return f"{time.time_ns()}_{os.getpid()}_{uuid.uuid4().hex[:8]}"


def _local_prefix(base_name: str) -> str:
    prefix = _UNSAFE_CHARS_RE.sub("_", base_name).strip(".") or "source"
    return prefix[:MAX_LOCAL_PREFIX]


def remove_path(path: str) -> None:
    """Delete a file or directory tree; a missing path is not an error."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass


class ScratchWorkspace:
    """Exclusive local storage for one transcode run.

    Use as a context manager: the output directory is created on entry and
    both the input file and the output directory are deleted on exit,
    whatever the outcome. Deletion errors are logged as a cleanup warning
    and never propagate.

    Args:
        root: Parent directory for scratch paths
        base_name: Source base name, used to make paths recognisable
        input_suffix: Extension of the downloaded input file
        remover: Callable deleting one path
    """

    def __init__(
        self,
        root: str,
        base_name: str,
        input_suffix: str = ".mp4",
        remover: Callable[[str], None] = remove_path,
    ):
        self.root = root
        self.token = run_token()
        prefix = _local_prefix(base_name)
        self.input_path = os.path.join(root, f"{prefix}_{self.token}{input_suffix}")
        self.output_dir = os.path.join(root, f"{prefix}_hls_{self.token}")
        self._remover = remover
        self.cleanup_attempts = 0
        self.cleanup_error: Optional[CleanupWarning] = None

    def __enter__(self) -> "ScratchWorkspace":
        try:
            os.makedirs(self.root, exist_ok=True)
            os.makedirs(self.output_dir)
        except OSError as e:
            self.cleanup()
            raise WorkspaceFailure(f"cannot create scratch workspace: {e}") from e
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False

    def cleanup(self) -> bool:
        """Delete the scratch paths, once.

        Returns:
            True if everything was removed
        """
        if self.cleanup_attempts:
            return self.cleanup_error is None
        self.cleanup_attempts += 1

        failures = []
        for path in (self.input_path, self.output_dir):
            try:
                self._remover(path)
            except OSError as e:
                failures.append(f"{path}: {e}")

        if failures:
            self.cleanup_error = CleanupWarning("; ".join(failures))
            SCRATCH_CLEANUP_FAILURES_TOTAL.inc()
            log_warning(
                logger,
                "Scratch workspace cleanup failed",
                warning=type(self.cleanup_error).__name__,
                detail=str(self.cleanup_error),
            )
            return False
        return True
