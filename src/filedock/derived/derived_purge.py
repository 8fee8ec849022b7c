"""Out-of-band removal of assets derived from a replaced or deleted source."""

from __future__ import annotations

import logging
import shutil

from ..storage.storage_paths import StoragePaths

logger = logging.getLogger(__name__)


def purge_derived_assets(paths: StoragePaths, file_id: str, *, dry_run: bool = False) -> list[str]:
    """Delete every derived directory of ``file_id``; returns the relative dirs found."""
    found: list[str] = []
    for relative in StoragePaths.derived_dirs(file_id):
        target = paths.resolve(relative)
        if not target.exists():
            continue
        found.append(relative)
        if dry_run:
            continue
        shutil.rmtree(target)
        logger.info("derived.purge.removed", extra={"file_id": file_id, "path": relative})
    return found
