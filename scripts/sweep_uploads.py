"""Cron entry point for removing chunks of abandoned uploads."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass

from src.filedock.config import load_config
from src.filedock.storage.storage_paths import StoragePaths
from src.filedock.uploads.upload_cleanup import sweep_stale_uploads


@dataclass(slots=True)
class SweepSummary:
    uploads: int
    dry_run: bool


def perform_sweep(*, dry_run: bool, max_age_seconds: float | None = None) -> SweepSummary:
    config = load_config()
    max_age = config.storage.stale_upload_seconds if max_age_seconds is None else max_age_seconds
    stale = sweep_stale_uploads(StoragePaths(config.storage.root), max_age_seconds=max_age, dry_run=dry_run)
    return SweepSummary(uploads=len(stale), dry_run=dry_run)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Remove chunk directories of abandoned uploads.")
    parser.add_argument("--dry-run", action="store_true", help="Only report what would be deleted.")
    parser.add_argument(
        "--max-age-seconds",
        type=float,
        default=None,
        help="Idle time before an upload counts as abandoned (defaults to UPLOAD_STALE_SECONDS).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        summary = perform_sweep(dry_run=args.dry_run, max_age_seconds=args.max_age_seconds)
    except OSError as exc:
        print(f"sweep failed: {exc}", file=sys.stderr)
        return 2

    verb = "would remove" if summary.dry_run else "removed"
    print(f"sweep done, {verb} uploads={summary.uploads}", file=sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
