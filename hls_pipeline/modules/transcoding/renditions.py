"""Rendition plans for HLS adaptive bitrate output.

A plan is the ordered quality ladder a source is encoded into. Order is
ascending quality and is preserved everywhere: encode order, master manifest
entry order and upload order all follow it.
"""

import re
from dataclasses import dataclass
from typing import Iterator

AUDIO_CODEC_TAG = "mp4a.40.2"

_TIER_NAME_RE = re.compile(r"^[0-9A-Za-z]+$")


@dataclass(frozen=True)
class RenditionSpec:
    """A single tier of the ladder.

    Bitrates are in kbit/s, matching the ``-maxrate``/``-bufsize``/``-b:a``
    values handed to FFmpeg.
    """
    name: str
    width: int
    height: int
    max_bitrate_kbps: int
    buffer_size_kbps: int
    audio_bitrate_kbps: int
    crf: int
    segment_duration: int = 6
    video_codec_tag: str = "avc1.42e01e"

    @property
    def bandwidth(self) -> int:
        """Peak bandwidth advertised in the master manifest, bits/sec."""
        return (self.max_bitrate_kbps + self.audio_bitrate_kbps) * 1000

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def codecs(self) -> str:
        return f"{self.video_codec_tag},{AUDIO_CODEC_TAG}"


def scale_pad_filter(spec: RenditionSpec) -> str:
    """Build the letterbox/pillarbox filter for a tier.

    Scales the input to fit inside the target box preserving aspect ratio,
    then pads symmetrically to exactly the box size.
    """
    width, height = int(spec.width), int(spec.height)
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
    )


def validate_rendition(spec: RenditionSpec) -> list[str]:
    """Validate one tier.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if not _TIER_NAME_RE.match(spec.name):
        errors.append(f"Tier name {spec.name!r} must be alphanumeric")

    for field_name in ("width", "height", "max_bitrate_kbps", "buffer_size_kbps",
                       "audio_bitrate_kbps", "segment_duration"):
        value = getattr(spec, field_name)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            errors.append(f"{spec.name}: {field_name} must be a positive integer")

    if not isinstance(spec.crf, int) or not 0 <= spec.crf <= 51:
        errors.append(f"{spec.name}: crf must be an integer between 0 and 51")

    if isinstance(spec.width, int) and spec.width % 2:
        errors.append(f"{spec.name}: width must be even for yuv420p output")
    if isinstance(spec.height, int) and spec.height % 2:
        errors.append(f"{spec.name}: height must be even for yuv420p output")

    return errors


class RenditionPlan:
    """Ordered, immutable quality ladder.

    Raises:
        ValueError: On construction, if the ladder is empty, a tier is
            invalid, names repeat, segment durations differ, or tiers are
            not in ascending height order.
    """

    def __init__(self, name: str, specs: tuple[RenditionSpec, ...]):
        self.name = name
        self._specs = tuple(specs)
        errors = self.validate()
        if errors:
            raise ValueError(f"Invalid rendition plan {name!r}: " + "; ".join(errors))

    def validate(self) -> list[str]:
        if not self._specs:
            return ["at least one tier is required"]

        errors = []
        for spec in self._specs:
            errors.extend(validate_rendition(spec))

        names = [spec.name for spec in self._specs]
        if len(set(names)) != len(names):
            errors.append("tier names must be unique")

        durations = {spec.segment_duration for spec in self._specs}
        if len(durations) > 1:
            errors.append("segment duration must be identical across tiers")

        heights = [spec.height for spec in self._specs]
        if heights != sorted(heights):
            errors.append("tiers must be ordered by ascending height")

        return errors

    def tiers(self) -> tuple[RenditionSpec, ...]:
        return self._specs

    def get(self, tier_name: str) -> RenditionSpec:
        for spec in self._specs:
            if spec.name == tier_name:
                return spec
        raise KeyError(tier_name)

    @property
    def tier_names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self._specs)

    @property
    def segment_duration(self) -> int:
        return self._specs[0].segment_duration

    def __iter__(self) -> Iterator[RenditionSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __repr__(self) -> str:
        return f"RenditionPlan({self.name!r}, tiers={list(self.tier_names)})"


STANDARD_PLAN = RenditionPlan(
    "standard",
    (
        RenditionSpec("480p", 854, 480, 1000, 2000, 128, 23),
        RenditionSpec("720p", 1280, 720, 2500, 5000, 128, 21),
        RenditionSpec("1080p", 1920, 1080, 5000, 10000, 192, 20, video_codec_tag="avc1.42e01f"),
    ),
)

EXTENDED_PLAN = RenditionPlan(
    "extended",
    (
        RenditionSpec("144p", 256, 144, 200, 400, 64, 28),
        RenditionSpec("240p", 426, 240, 400, 800, 64, 26),
        RenditionSpec("360p", 640, 360, 700, 1400, 96, 24),
        RenditionSpec("480p", 854, 480, 1000, 2000, 128, 23),
        RenditionSpec("720p", 1280, 720, 2500, 5000, 128, 21),
        RenditionSpec("1080p", 1920, 1080, 5000, 10000, 192, 20, video_codec_tag="avc1.42e01f"),
    ),
)

PLANS: dict[str, RenditionPlan] = {
    STANDARD_PLAN.name: STANDARD_PLAN,
    EXTENDED_PLAN.name: EXTENDED_PLAN,
}


def get_plan(name: str) -> RenditionPlan:
    """Look up a built-in plan by name.

    Raises:
        ValueError: If no plan has that name
    """
    try:
        return PLANS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown rendition plan {name!r}; expected one of {sorted(PLANS)}"
        ) from None


def tiers() -> tuple[RenditionSpec, ...]:
    """Tiers of the canonical three-rung ladder."""
    return STANDARD_PLAN.tiers()
