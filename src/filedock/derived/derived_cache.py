"""Generate-once cache for derived assets keyed by deterministic paths."""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..storage.asset_store import AssetStore
from .derived_errors import AssetGenerationError

logger = logging.getLogger(__name__)

Generator = Callable[[], Awaitable[bytes]]


@dataclass(slots=True)
class DerivedAssetCache:
    """Existence of the output path is the cache record.

    Concurrent misses for the same path may both generate; generators are
    deterministic so the last write wins with identical bytes.
    """

    store: AssetStore
    log: logging.Logger = field(default_factory=lambda: logger)

    async def ensure(self, relative: str, generator: Generator) -> str:
        """Return ``relative`` after making sure the asset exists."""
        if await self.store.exists(relative):
            return relative
        payload = await generator()
        await self.store.write(relative, payload)
        self.log.info("derived.asset.generated", extra={"path": relative, "size": len(payload)})
        return relative

    async def read(self, relative: str) -> bytes:
        return await self.store.read(relative)

    async def exists(self, relative: str) -> bool:
        return await self.store.exists(relative)

    async def write(self, relative: str, payload: bytes) -> None:
        await self.store.write(relative, payload)

    def local_path(self, relative: str) -> Path:
        return self.store.local_path(relative)


async def tool_output_bytes(writer: Callable[[Path], Awaitable[None]], suffix: str) -> bytes:
    """Run a tool that writes to a file path and return what it wrote."""
    with tempfile.TemporaryDirectory(prefix="filedock-") as scratch:
        target = Path(scratch) / f"output{suffix}"
        await writer(target)
        if not target.is_file():
            raise AssetGenerationError(f"tool produced no {suffix} output")
        return target.read_bytes()
