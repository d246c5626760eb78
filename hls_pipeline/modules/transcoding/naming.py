"""Output naming for HLS renditions.

All outputs sit next to the source object and mirror its base name:

    {dir}/{base}.m3u8               master manifest
    {dir}/{base}_{tier}.m3u8        tier manifest
    {dir}/{base}_{tier}_{NNN}.ts    tier segment, NNN zero padded to 3 digits
"""

import posixpath
import re
from dataclasses import dataclass
from typing import Iterable

PLAYLIST_EXTENSION = ".m3u8"
SEGMENT_EXTENSION = ".ts"

_SEGMENT_RE = re.compile(
    r"(?P<base>.+)_(?P<tier>[0-9A-Za-z]+)_(?P<index>\d{3,})\.ts",
    re.DOTALL,
)


@dataclass(frozen=True)
class SegmentName:
    """Parsed components of a segment file name."""
    base_name: str
    tier: str
    index: int

    def __str__(self) -> str:
        return segment_file_name(self.base_name, self.tier, self.index)


def base_name_from_key(key: str, suffix: str = ".mp4") -> str:
    """File name of ``key`` without its directory and input suffix.

    The suffix is matched case-insensitively; a key without it keeps its
    full file name.
    """
    filename = posixpath.basename(key)
    if suffix and filename.lower().endswith(suffix.lower()):
        return filename[: -len(suffix)]
    return filename


def key_directory(key: str) -> str:
    """Directory part of an object key ("" for keys at the bucket root)."""
    return posixpath.dirname(key)


def output_key(directory: str, filename: str) -> str:
    """Join an output file name onto the source directory."""
    if not directory:
        return filename
    return f"{directory.rstrip('/')}/{filename}"


def master_manifest_name(base_name: str) -> str:
    return f"{base_name}{PLAYLIST_EXTENSION}"


def tier_manifest_name(base_name: str, tier: str) -> str:
    return f"{base_name}_{tier}{PLAYLIST_EXTENSION}"


def segment_file_name(base_name: str, tier: str, index: int) -> str:
    if index < 0:
        raise ValueError(f"Segment index must be non-negative, got {index}")
    return f"{base_name}_{tier}_{index:03d}{SEGMENT_EXTENSION}"


def segment_pattern(base_name: str, tier: str) -> str:
    """printf-style pattern handed to FFmpeg's ``-hls_segment_filename``.

    A literal ``%`` in the base name is doubled so FFmpeg does not treat it
    as a format directive.
    """
    escaped = base_name.replace("%", "%%")
    return f"{escaped}_{tier}_%03d{SEGMENT_EXTENSION}"


def parse_segment_name(filename: str) -> SegmentName:
    """Split a segment file name back into (base name, tier, index).

    Raises:
        ValueError: If the name does not follow the segment pattern
    """
    match = _SEGMENT_RE.fullmatch(filename)
    if match is None:
        raise ValueError(f"Not a segment file name: {filename!r}")
    return SegmentName(
        base_name=match.group("base"),
        tier=match.group("tier"),
        index=int(match.group("index")),
    )


def is_rendition_output(key: str, tier_names: Iterable[str]) -> bool:
    """Whether a key looks like something this pipeline produced.

    Any ``_{tier}`` marker in the file name counts, so renditions that were
    re-wrapped as MP4 are not transcoded again either.
    """
    filename = posixpath.basename(key)
    return any(f"_{tier}" in filename for tier in tier_names)
