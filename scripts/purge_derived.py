"""Remove derived assets (thumbnails, waveforms, HLS, ...) for replaced sources."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass

from src.filedock.config import load_config
from src.filedock.derived.derived_purge import purge_derived_assets
from src.filedock.storage.storage_paths import StoragePaths


@dataclass(slots=True)
class PurgeSummary:
    file_ids: int
    directories: int
    dry_run: bool


def perform_purge(file_ids: list[str], *, dry_run: bool) -> PurgeSummary:
    config = load_config()
    paths = StoragePaths(config.storage.root)
    removed = sum(len(purge_derived_assets(paths, file_id, dry_run=dry_run)) for file_id in file_ids)
    return PurgeSummary(file_ids=len(file_ids), directories=removed, dry_run=dry_run)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Purge derived assets of the given files.")
    parser.add_argument("file_ids", nargs="+", help="File ids whose derived assets should be removed.")
    parser.add_argument("--dry-run", action="store_true", help="Only report what would be deleted.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        summary = perform_purge(args.file_ids, dry_run=args.dry_run)
    except OSError as exc:
        print(f"purge failed: {exc}", file=sys.stderr)
        return 2

    verb = "would remove" if summary.dry_run else "removed"
    print(f"purge done, files={summary.file_ids}, {verb} directories={summary.directories}", file=sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
