"""Bandwidth-friendly audio variants served in place of lossless originals."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from ..files.file_models import FileRecord
from ..media.ffmpeg import MediaTools
from ..media.media_errors import MediaToolError
from ..storage.storage_paths import StoragePaths
from .derived_cache import DerivedAssetCache, tool_output_bytes
from .derived_errors import DerivedAssetError

logger = logging.getLogger(__name__)

OPUS_VARIANT = "opus"
OPUS_MIME_TYPE = "audio/opus"
ORIGINAL_VARIANT = "original"
FLAC_MIME_TYPES = frozenset({"audio/flac", "audio/x-flac"})


@dataclass(slots=True, frozen=True)
class AudioStreamSource:
    path: Path
    mime_type: str
    variant: str


@dataclass(slots=True)
class AudioVariantService:
    """Serve FLAC uploads as Opus when enabled.

    Concurrent requests for the same file share one encode through
    ``_inflight``; the entry is dropped once the encode settles. A failed
    encode falls back to the original file.
    """

    cache: DerivedAssetCache
    tools: MediaTools
    paths: StoragePaths
    transcode_flac: bool = False
    opus_bitrate_kbps: int = 160
    log: logging.Logger = field(default_factory=lambda: logger)
    _inflight: dict[str, asyncio.Task[str | None]] = field(default_factory=dict, init=False, repr=False)

    def should_use_opus(self, file: FileRecord) -> bool:
        return self.transcode_flac and file.mime_type.lower() in FLAC_MIME_TYPES

    async def stream_source(self, file: FileRecord) -> AudioStreamSource:
        original = AudioStreamSource(
            path=self.paths.resolve(file.path),
            mime_type=file.mime_type,
            variant=ORIGINAL_VARIANT,
        )
        if not self.should_use_opus(file):
            return original
        relative = await self.ensure_opus_variant(file)
        if relative is None:
            return original
        return AudioStreamSource(
            path=self.cache.local_path(relative),
            mime_type=OPUS_MIME_TYPE,
            variant=OPUS_VARIANT,
        )

    async def ensure_opus_variant(self, file: FileRecord) -> str | None:
        task = self._inflight.get(file.id)
        if task is None:
            task = asyncio.create_task(self._create_opus_variant(file))
            self._inflight[file.id] = task
            task.add_done_callback(lambda done, key=file.id: self._settle(key, done))
        # One caller disconnecting must not cancel the shared encode.
        return await asyncio.shield(task)

    def _settle(self, file_id: str, task: asyncio.Task[str | None]) -> None:
        if self._inflight.get(file_id) is task:
            del self._inflight[file_id]

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def _create_opus_variant(self, file: FileRecord) -> str | None:
        source = self.paths.resolve(file.path)

        async def generate() -> bytes:
            return await tool_output_bytes(
                lambda target: self.tools.transcode_audio_to_opus(
                    source, target, bitrate_kbps=self.opus_bitrate_kbps
                ),
                ".opus",
            )

        try:
            return await self.cache.ensure(
                StoragePaths.audio_variant(file.id, OPUS_VARIANT, "opus"), generate
            )
        except (MediaToolError, DerivedAssetError, OSError) as exc:
            self.log.warning(
                "derived.audio_variant.failed",
                extra={"file_id": file.id, "error": str(exc)},
            )
            return None
