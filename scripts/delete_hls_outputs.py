"""Delete every .m3u8 and .ts object under a bucket prefix.

Source videos are never touched. Without --confirm only a preview is shown.

Usage:
    python -m scripts.delete_hls_outputs <bucket> <prefix> [--confirm]
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import setup_logging
from hls_pipeline.modules.maintenance.service import (
    find_hls_outputs,
    normalize_prefix,
    purge_hls_outputs,
)
from hls_pipeline.modules.transcoding.service import build_storage

PREVIEW_LIMIT = 10


def _preview(title: str, keys: list[str]) -> None:
    print(f"  {title} (showing first {PREVIEW_LIMIT}):")
    for key in keys[:PREVIEW_LIMIT]:
        print(f"    🗑️  {key}")
    if len(keys) > PREVIEW_LIMIT:
        print(f"    ... and {len(keys) - PREVIEW_LIMIT} more")


def main() -> int:
    parser = argparse.ArgumentParser(description="Delete HLS playlists and segments under a prefix")
    parser.add_argument("bucket", help="Bucket to clean")
    parser.add_argument("prefix", help="Key prefix, e.g. OnlineCourses/16")
    parser.add_argument("--confirm", action="store_true", help="Actually delete; otherwise preview only")
    args = parser.parse_args()

    setup_logging(level=settings.LOG_LEVEL, json_format=False)

    storage = build_storage(settings)
    prefix = normalize_prefix(args.prefix)

    print(f"\n🪣 Bucket: {args.bucket}")
    print(f"📂 Prefix: {prefix or '(whole bucket)'}")

    outputs = find_hls_outputs(storage, args.bucket, prefix)
    if not outputs.total:
        print("⚠️  No HLS files (.m3u8 or .ts) found")
        return 0

    print(f"✅ Found {len(outputs.playlists)} .m3u8 playlist files")
    print(f"✅ Found {len(outputs.segments)} .ts segment files")
    _preview(".m3u8 playlists", outputs.playlists)
    _preview(".ts segments", outputs.segments)

    if not args.confirm:
        print("\nPreview only. Re-run with --confirm to delete these files.")
        return 0

    report = purge_hls_outputs(storage, args.bucket, prefix, confirm=True, outputs=outputs)

    print(f"\n✅ Deleted {len(report.deleted)} files")
    for key, error in report.failed.items():
        print(f"❌ {key}: {error}")
    return 0 if not report.failed else 2


if __name__ == "__main__":
    sys.exit(main())
