"""Removal of chunk directories left behind by abandoned uploads."""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

from ..storage.storage_paths import CHUNKS_DIR, StoragePaths

logger = logging.getLogger(__name__)


def _last_activity(directory: Path) -> float:
    stamps = [directory.stat().st_mtime]
    stamps.extend(entry.stat().st_mtime for entry in directory.iterdir() if entry.is_file())
    return max(stamps)


def sweep_stale_uploads(
    paths: StoragePaths,
    *,
    max_age_seconds: float,
    reference_time: float | None = None,
    dry_run: bool = False,
) -> list[str]:
    """Delete ``.chunks/<uploadId>`` dirs idle for longer than ``max_age_seconds``.

    Returns the upload ids found stale, whether or not they were removed.
    """
    root = paths.resolve(CHUNKS_DIR)
    if not root.is_dir():
        return []
    now = reference_time if reference_time is not None else time.time()
    stale: list[str] = []
    for directory in sorted(root.iterdir()):
        if not directory.is_dir() or now - _last_activity(directory) <= max_age_seconds:
            continue
        stale.append(directory.name)
        if dry_run:
            continue
        shutil.rmtree(directory)
        logger.info("upload.chunks.swept", extra={"upload_id": directory.name})
    return stale


__all__ = ["sweep_stale_uploads"]
