"""Storage backend for derived assets.

Generation code only talks to :class:`AssetStore`; path existence is the
cache record.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from pathlib import Path
from typing import Protocol

from .storage_paths import StoragePaths


class AssetStore(Protocol):
    """Minimal storage interface for derived assets keyed by relative path."""

    async def exists(self, relative: str) -> bool: ...

    async def read(self, relative: str) -> bytes: ...

    async def write(self, relative: str, payload: bytes) -> None: ...

    def local_path(self, relative: str) -> Path:
        """Filesystem location for tools that can only write to a path."""
        ...


class LocalAssetStore:
    """Asset store backed by the local storage root."""

    def __init__(self, paths: StoragePaths) -> None:
        self._paths = paths

    async def exists(self, relative: str) -> bool:
        return await asyncio.to_thread(self._paths.resolve(relative).is_file)

    async def read(self, relative: str) -> bytes:
        return await asyncio.to_thread(self._paths.resolve(relative).read_bytes)

    async def write(self, relative: str, payload: bytes) -> None:
        await asyncio.to_thread(self._write_atomic, self._paths.resolve(relative), payload)

    def local_path(self, relative: str) -> Path:
        path = self._paths.resolve(relative)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def _write_atomic(path: Path, payload: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        with tmp.open("wb") as handle:
            handle.write(payload)
        os.replace(tmp, path)
