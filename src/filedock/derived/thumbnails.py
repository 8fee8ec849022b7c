"""Image/video thumbnails and video scrub sprites."""

from __future__ import annotations

import asyncio
import io
import json
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError
from pydantic import BaseModel, ValidationError

from ..files.file_models import FileRecord
from ..media.ffmpeg import MediaTools
from ..storage.storage_paths import StoragePaths
from .derived_cache import DerivedAssetCache, tool_output_bytes
from .derived_errors import AssetGenerationError, UnsupportedSourceError

logger = logging.getLogger(__name__)

THUMBNAIL_QUALITY = 80
SPRITE_QUALITY = 75
BLUR_RADIUS = 8
DEFAULT_VIDEO_DURATION = 60.0


class ThumbnailSize(StrEnum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    BLUR = "blur"

    @property
    def pixels(self) -> int:
        return _SIZE_PIXELS[self]

    @classmethod
    def parse(cls, raw: str | None) -> "ThumbnailSize":
        """Unknown or missing values fall back to ``medium``."""
        try:
            return cls((raw or "").lower())
        except ValueError:
            return cls.MEDIUM


_SIZE_PIXELS = {
    ThumbnailSize.SMALL: 256,
    ThumbnailSize.MEDIUM: 512,
    ThumbnailSize.LARGE: 1024,
    ThumbnailSize.BLUR: 32,
}


class SpriteMeta(BaseModel):
    columns: int
    rows: int
    thumbWidth: int
    thumbHeight: int
    interval: float
    totalFrames: int


SPRITE_COLUMNS = 10
SPRITE_ROWS = 10
SPRITE_THUMB_WIDTH = 160
SPRITE_THUMB_HEIGHT = 90


def render_webp(source: Path | bytes, *, max_side: int | None, blur: bool, quality: int) -> bytes:
    """Resize to fit inside ``max_side`` and encode as WebP."""
    stream = io.BytesIO(source) if isinstance(source, bytes) else source
    try:
        with Image.open(stream) as img:
            out = ImageOps.exif_transpose(img)
            out = out.convert("RGBA" if "A" in out.getbands() else "RGB")
            if max_side:
                out.thumbnail((max_side, max_side))
            if blur:
                out = out.filter(ImageFilter.GaussianBlur(BLUR_RADIUS))
            buffer = io.BytesIO()
            out.save(buffer, format="WEBP", quality=quality)
            return buffer.getvalue()
    except (UnidentifiedImageError, OSError) as exc:
        raise AssetGenerationError(f"cannot render image: {exc}") from exc


def video_frame_timestamp(duration: float) -> float:
    return max(0.0, min(duration * 0.1, duration - 1))


def video_duration(file: FileRecord) -> float:
    metadata = file.metadata or {}
    try:
        duration = float(metadata.get("duration") or 0)
    except (TypeError, ValueError):
        duration = 0.0
    return duration if duration > 0 else DEFAULT_VIDEO_DURATION


@dataclass(slots=True)
class ThumbnailService:
    cache: DerivedAssetCache
    tools: MediaTools
    paths: StoragePaths
    log: logging.Logger = field(default_factory=lambda: logger)

    async def image_thumbnail(self, file: FileRecord, size: ThumbnailSize) -> str:
        source = self.paths.resolve(file.path)

        async def generate() -> bytes:
            return await asyncio.to_thread(
                render_webp,
                source,
                max_side=size.pixels,
                blur=size is ThumbnailSize.BLUR,
                quality=THUMBNAIL_QUALITY,
            )

        return await self.cache.ensure(StoragePaths.thumbnail(file.id, size.value), generate)

    async def video_thumbnail(self, file: FileRecord, size: ThumbnailSize) -> str:
        source = self.paths.resolve(file.path)
        timestamp = video_frame_timestamp(video_duration(file))

        async def generate() -> bytes:
            frame = await tool_output_bytes(
                lambda target: self.tools.extract_frame(
                    source, target, timestamp=timestamp, width=size.pixels, height=size.pixels
                ),
                ".png",
            )
            return await asyncio.to_thread(
                render_webp,
                frame,
                max_side=None,
                blur=size is ThumbnailSize.BLUR,
                quality=THUMBNAIL_QUALITY,
            )

        return await self.cache.ensure(StoragePaths.video_thumbnail(file.id, size.value), generate)

    async def thumbnail(self, file: FileRecord, size: ThumbnailSize) -> str:
        if file.is_image:
            return await self.image_thumbnail(file, size)
        if file.is_video:
            return await self.video_thumbnail(file, size)
        raise UnsupportedSourceError(f"No thumbnails for '{file.mime_type}'")

    async def generate_all(self, file: FileRecord) -> list[str]:
        return [await self.thumbnail(file, size) for size in ThumbnailSize]

    async def sprite(self, file: FileRecord) -> tuple[str, SpriteMeta]:
        """Scrub sprite sheet plus its sidecar; an unreadable sidecar forces regeneration."""
        if not file.is_video:
            raise UnsupportedSourceError(f"No sprite for '{file.mime_type}'")
        sprite_path = StoragePaths.sprite(file.id)
        meta_path = StoragePaths.sprite_meta(file.id)

        if await self.cache.exists(sprite_path):
            meta = await self._read_sprite_meta(meta_path)
            if meta is not None:
                return sprite_path, meta
            self.log.warning("derived.sprite.meta_unreadable", extra={"file_id": file.id})

        duration = video_duration(file)
        total_frames = SPRITE_COLUMNS * SPRITE_ROWS
        meta = SpriteMeta(
            columns=SPRITE_COLUMNS,
            rows=SPRITE_ROWS,
            thumbWidth=SPRITE_THUMB_WIDTH,
            thumbHeight=SPRITE_THUMB_HEIGHT,
            interval=duration / total_frames,
            totalFrames=total_frames,
        )
        source = self.paths.resolve(file.path)
        sheet = await tool_output_bytes(
            lambda target: self.tools.render_sprite_sheet(
                source,
                target,
                interval=meta.interval,
                columns=meta.columns,
                rows=meta.rows,
                thumb_width=meta.thumbWidth,
                thumb_height=meta.thumbHeight,
            ),
            ".jpg",
        )
        image = await asyncio.to_thread(
            render_webp, sheet, max_side=None, blur=False, quality=SPRITE_QUALITY
        )
        await self.cache.write(sprite_path, image)
        await self.cache.write(meta_path, meta.model_dump_json(indent=2).encode())
        self.log.info("derived.sprite.generated", extra={"file_id": file.id, "duration": duration})
        return sprite_path, meta

    async def _read_sprite_meta(self, meta_path: str) -> SpriteMeta | None:
        try:
            raw = await self.cache.read(meta_path)
            return SpriteMeta.model_validate(json.loads(raw))
        except (OSError, ValueError, ValidationError):
            return None
