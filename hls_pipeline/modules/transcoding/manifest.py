"""HLS master manifest generation.

The master manifest advertises every tier with a synthetic peak bandwidth
derived from the rendition plan rather than measured from the encode, so
the same source always yields the same bytes.
"""

import os
from dataclasses import dataclass
from typing import Sequence

from hls_pipeline.modules.transcoding.exceptions import ManifestFailure
from hls_pipeline.modules.transcoding.ffmpeg import RenditionArtifact
from hls_pipeline.modules.transcoding.naming import master_manifest_name, tier_manifest_name
from hls_pipeline.modules.transcoding.renditions import RenditionPlan, RenditionSpec

HLS_VERSION = 3


@dataclass(frozen=True)
class MasterManifest:
    """A written master manifest and its entries in plan order."""
    path: str
    entries: tuple[tuple[RenditionSpec, str], ...]


def render_master_manifest(base_name: str, specs: Sequence[RenditionSpec]) -> str:
    """Render the master manifest text.

    Args:
        base_name: Output base name
        specs: Tiers in the order they should be listed

    Returns:
        Manifest body, newline terminated
    """
    lines = ["#EXTM3U", f"#EXT-X-VERSION:{HLS_VERSION}"]
    for spec in specs:
        lines.append("")
        lines.append(
            f"#EXT-X-STREAM-INF:BANDWIDTH={spec.bandwidth},"
            f"RESOLUTION={spec.resolution},"
            f'CODECS="{spec.codecs}"'
        )
        lines.append(tier_manifest_name(base_name, spec.name))
    return "\n".join(lines) + "\n"


def _match_artifacts(
    artifacts: Sequence[RenditionArtifact],
    plan: RenditionPlan,
) -> list[RenditionSpec]:
    """Check that the artifacts are exactly the plan's tiers, in plan order."""
    produced = [artifact.tier for artifact in artifacts]
    expected = list(plan.tier_names)
    if produced != expected:
        raise ManifestFailure(
            f"renditions {produced} do not match plan {plan.name!r} tiers {expected}"
        )
    return [plan.get(tier) for tier in produced]


def build_master_manifest(
    base_name: str,
    artifacts: Sequence[RenditionArtifact],
    output_dir: str,
    plan: RenditionPlan,
) -> MasterManifest:
    """Write ``{base_name}.m3u8`` into ``output_dir``.

    Every referenced tier manifest must be among the produced artifacts.

    Raises:
        ManifestFailure: If the artifacts do not match the plan or the file
            cannot be written
    """
    specs = _match_artifacts(artifacts, plan)
    for artifact, spec in zip(artifacts, specs):
        if artifact.manifest_name != tier_manifest_name(base_name, spec.name):
            raise ManifestFailure(
                f"{spec.name} playlist {artifact.manifest_name} does not belong to {base_name!r}"
            )

    path = os.path.join(output_dir, master_manifest_name(base_name))
    body = render_master_manifest(base_name, specs)
    try:
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.write(body)
    except OSError as e:
        raise ManifestFailure(f"cannot write {os.path.basename(path)}: {e}") from e

    return MasterManifest(
        path=path,
        entries=tuple(
            (spec, tier_manifest_name(base_name, spec.name)) for spec in specs
        ),
    )
