"""Rich metadata extraction for image and audio uploads."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from PIL import ExifTags, Image

from .ffmpeg import MediaTools
from .probe import parse_media_metadata

logger = logging.getLogger(__name__)

_CAMERA_TAGS = {
    "Make": "cameraMake",
    "Model": "cameraModel",
    "LensModel": "lensModel",
    "DateTimeOriginal": "takenAt",
    "ExposureTime": "exposureTime",
    "FNumber": "fNumber",
    "ISOSpeedRatings": "iso",
    "FocalLength": "focalLength",
}

_AUDIO_TAGS = ("title", "artist", "album", "date", "genre")


def _rational(value: Any) -> float | None:
    if isinstance(value, tuple) and len(value) == 2:
        numerator, denominator = value
        return numerator / denominator if denominator else None
    try:
        return float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None


def _gps_coordinate(values: Any, ref: str | None) -> float | None:
    if not values or len(values) != 3:
        return None
    parts = [_rational(v) for v in values]
    if any(p is None for p in parts):
        return None
    degrees, minutes, seconds = parts  # type: ignore[misc]
    result = degrees + minutes / 60 + seconds / 3600
    if ref in ("S", "W"):
        result = -result
    return round(result, 6)


def read_image_metadata(path: Path) -> dict[str, Any]:
    """Dimensions, format and EXIF camera/GPS fields via Pillow."""
    with Image.open(path) as img:
        metadata: dict[str, Any] = {
            "width": img.width,
            "height": img.height,
            "format": img.format,
        }
        exif = img.getexif()
        if not exif:
            return metadata

        merged: dict[int, Any] = dict(exif)
        merged.update(exif.get_ifd(ExifTags.IFD.Exif))
        for tag_id, value in merged.items():
            key = _CAMERA_TAGS.get(ExifTags.TAGS.get(tag_id, ""))
            if key is None:
                continue
            if isinstance(value, bytes):
                continue
            if key in ("exposureTime", "fNumber", "focalLength"):
                value = _rational(value)
            elif not isinstance(value, (int, float, str)):
                value = str(value)
            if value is not None:
                metadata[key] = value.strip() if isinstance(value, str) else value

        gps = exif.get_ifd(ExifTags.IFD.GPSInfo)
        if gps:
            named = {ExifTags.GPSTAGS.get(k, k): v for k, v in gps.items()}
            lat = _gps_coordinate(named.get("GPSLatitude"), named.get("GPSLatitudeRef"))
            lon = _gps_coordinate(named.get("GPSLongitude"), named.get("GPSLongitudeRef"))
            if lat is not None and lon is not None:
                metadata["gps"] = {"latitude": lat, "longitude": lon}
        return metadata


@dataclass(slots=True)
class MetadataService:
    """Extract metadata blobs for image and audio files."""

    tools: MediaTools
    log: logging.Logger = field(default_factory=lambda: logger)

    async def image_metadata(self, path: Path) -> dict[str, Any]:
        return await asyncio.to_thread(read_image_metadata, path)

    async def audio_metadata(self, path: Path) -> dict[str, Any]:
        report = await self.tools.probe(path)
        summary = parse_media_metadata(report)
        stream = report.audio_streams[0] if report.audio_streams else None
        tags = {k.lower(): v for k, v in report.format.tags.items()}
        if stream is not None:
            tags.update({k.lower(): v for k, v in stream.tags.items() if k.lower() not in tags})

        metadata: dict[str, Any] = {
            "duration": summary.duration,
            "codec": stream.codec_name if stream else None,
            "bitrate": summary.bitrate,
            "sampleRate": int(stream.sample_rate) if stream and stream.sample_rate else None,
            "channels": (stream.channels or 2) if stream else None,
            "hasAlbumArt": report.has_attached_picture,
        }
        for tag in _AUDIO_TAGS:
            if tags.get(tag):
                metadata["year" if tag == "date" else tag] = str(tags[tag])
        self.log.debug("media.metadata.audio", extra={"path": str(path), "codec": metadata["codec"]})
        return metadata
