"""Convert every MP4 under a bucket prefix to HLS.

HLS files are written next to each source, exactly as the notification
pipeline would do it.

Usage:
    python -m scripts.batch_convert <bucket> <prefix> [--concurrency N] [--yes]

Example:
    python -m scripts.batch_convert media-bucket OnlineCourses/16
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from hls_pipeline.core.config import settings
from hls_pipeline.core.logging import setup_logging
from hls_pipeline.modules.maintenance.service import batch_convert, find_sources, normalize_prefix
from hls_pipeline.modules.transcoding.exceptions import CodecFailure
from hls_pipeline.modules.transcoding.service import build_orchestrator


def main() -> int:
    parser = argparse.ArgumentParser(description="Batch convert MP4s under a prefix to HLS")
    parser.add_argument("bucket", help="Source bucket")
    parser.add_argument("prefix", help="Key prefix, e.g. OnlineCourses/16")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.BATCH_CONCURRENCY,
        help="Simultaneous conversions",
    )
    parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    args = parser.parse_args()

    setup_logging(level=settings.LOG_LEVEL, json_format=False)

    orchestrator = build_orchestrator(settings)
    try:
        orchestrator.invoker.validate_binary()
    except CodecFailure as e:
        print(f"❌ {e.describe()}")
        return 1

    prefix = normalize_prefix(args.prefix)
    print(f"\n🪣 Bucket: {args.bucket}")
    print(f"📂 Prefix: {prefix or '(whole bucket)'}")

    keys = find_sources(
        orchestrator.storage,
        args.bucket,
        prefix,
        suffix=orchestrator.input_suffix,
        tier_names=orchestrator.plan.tier_names,
    )
    if not keys:
        print(f"❌ No {orchestrator.input_suffix} files found")
        return 1

    print(f"✅ Found {len(keys)} files")
    for key in keys[:5]:
        print(f"  {key}")
    if len(keys) > 5:
        print(f"  ... and {len(keys) - 5} more")

    if not args.yes:
        reply = input(f"\nConvert {len(keys)} files? (y/N): ")
        if reply.strip().lower() != "y":
            return 0

    summary = batch_convert(orchestrator, args.bucket, keys, concurrency=args.concurrency)

    print("\n" + "=" * 60)
    print(f"Total: {summary.total}  Successful: {summary.successful}  Failed: {summary.failed}")
    print("=" * 60)
    for result in summary.results:
        if result.success:
            print(f"✅ {result.input_key} -> {result.master_playlist_url}")
        else:
            print(f"❌ {result.input_key}: {result.error}")

    return 0 if summary.failed == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
