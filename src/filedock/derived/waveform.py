"""Audio waveform series and rendered waveform images."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from array import array
from dataclasses import dataclass, field

from pydantic import BaseModel, ValidationError

from ..files.file_models import FileRecord
from ..media.ffmpeg import MediaTools
from ..storage.storage_paths import StoragePaths
from .derived_cache import DerivedAssetCache, tool_output_bytes
from .derived_errors import UnsupportedSourceError

logger = logging.getLogger(__name__)

WAVEFORM_SAMPLE_RATE = 8000
DEFAULT_TARGET_SAMPLES = 200

IMAGE_WIDTH_RANGE = (100, 2000)
IMAGE_HEIGHT_RANGE = (50, 500)
DEFAULT_IMAGE_WIDTH = 800
DEFAULT_IMAGE_HEIGHT = 100


class WaveformData(BaseModel):
    samples: list[float]
    sampleRate: int
    duration: float
    channels: int


def pcm_amplitudes(pcm: bytes) -> list[float]:
    """Absolute normalized amplitudes of signed 16-bit little-endian PCM."""
    samples = array("h")
    samples.frombytes(pcm[: len(pcm) - len(pcm) % 2])
    if sys.byteorder == "big":
        samples.byteswap()
    return [abs(value) / 32768 for value in samples]


def compress_samples(samples: list[float], target: int) -> list[float]:
    """Block-average ``samples`` down to ``target`` points."""
    if len(samples) <= target:
        return samples
    chunk = len(samples) // target
    result: list[float] = []
    for i in range(target):
        block = samples[i * chunk : (i + 1) * chunk]
        result.append(sum(block) / len(block) if block else 0.0)
    return result


def clamp_dimensions(width: int | None, height: int | None) -> tuple[int, int]:
    w = DEFAULT_IMAGE_WIDTH if width is None else width
    h = DEFAULT_IMAGE_HEIGHT if height is None else height
    return (
        min(max(w, IMAGE_WIDTH_RANGE[0]), IMAGE_WIDTH_RANGE[1]),
        min(max(h, IMAGE_HEIGHT_RANGE[0]), IMAGE_HEIGHT_RANGE[1]),
    )


def _has_audio(file: FileRecord) -> bool:
    return file.is_audio or file.is_video


@dataclass(slots=True)
class WaveformService:
    cache: DerivedAssetCache
    tools: MediaTools
    paths: StoragePaths
    log: logging.Logger = field(default_factory=lambda: logger)

    async def waveform_data(
        self, file: FileRecord, target_samples: int = DEFAULT_TARGET_SAMPLES
    ) -> WaveformData:
        if not _has_audio(file):
            raise UnsupportedSourceError(f"No waveform for '{file.mime_type}'")
        relative = StoragePaths.waveform_data(file.id)
        if await self.cache.exists(relative):
            try:
                return WaveformData.model_validate(json.loads(await self.cache.read(relative)))
            except (OSError, ValueError, ValidationError):
                self.log.warning("derived.waveform.data_unreadable", extra={"file_id": file.id})

        source = self.paths.resolve(file.path)
        report = await self.tools.probe(source)
        pcm = await self.tools.extract_pcm_samples(source, sample_rate=WAVEFORM_SAMPLE_RATE)
        amplitudes = await asyncio.to_thread(pcm_amplitudes, pcm)
        data = WaveformData(
            samples=compress_samples(amplitudes, target_samples),
            sampleRate=WAVEFORM_SAMPLE_RATE,
            duration=float(report.format.duration or 0),
            channels=1,
        )
        await self.cache.write(relative, data.model_dump_json().encode())
        self.log.info(
            "derived.waveform.generated",
            extra={"file_id": file.id, "samples": len(data.samples)},
        )
        return data

    async def waveform_image(
        self, file: FileRecord, width: int | None = None, height: int | None = None
    ) -> str:
        if not _has_audio(file):
            raise UnsupportedSourceError(f"No waveform for '{file.mime_type}'")
        w, h = clamp_dimensions(width, height)
        source = self.paths.resolve(file.path)

        async def generate() -> bytes:
            return await tool_output_bytes(
                lambda target: self.tools.render_waveform_image(source, target, width=w, height=h),
                ".png",
            )

        return await self.cache.ensure(StoragePaths.waveform_image(file.id, w, h), generate)
