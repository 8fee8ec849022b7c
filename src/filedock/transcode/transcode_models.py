"""Data structures for the transcode queue."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any


class TranscodeStatus(StrEnum):
    """Lifecycle statuses for transcode_job records."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (TranscodeStatus.PENDING, TranscodeStatus.PROCESSING)


ACTIVE_STATUSES = (TranscodeStatus.PENDING, TranscodeStatus.PROCESSING)

CANCELLED_REASON = "Cancelled by user"
FILE_MISSING_REASON = "File not found"
INTERRUPTED_REASON = "Interrupted by server restart"


@dataclass(slots=True, frozen=True)
class QualityProfile:
    """Encoder settings and master-playlist attributes for one rendition."""

    name: str
    width: int
    height: int
    video_bitrate: str
    bandwidth: int
    audio_bitrate: str = "128k"
    segment_seconds: int = 6

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


QUALITY_PROFILES: dict[str, QualityProfile] = {
    "1080p": QualityProfile("1080p", 1920, 1080, "5M", 5_000_000),
    "720p": QualityProfile("720p", 1280, 720, "2.5M", 2_500_000),
    "480p": QualityProfile("480p", 854, 480, "1M", 1_000_000),
}

DEFAULT_QUALITY = "720p"


def get_quality_profile(name: str) -> QualityProfile:
    try:
        return QUALITY_PROFILES[name]
    except KeyError:
        raise ValueError(f"Unknown quality profile '{name}'") from None


@dataclass(slots=True)
class TranscodeJob:
    """Snapshot of a transcode_job row."""

    id: str
    file_id: str
    status: TranscodeStatus
    progress: int
    output_path: str | None
    created_at: datetime
    completed_at: datetime | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "fileId": self.file_id,
            "status": self.status.value,
            "progress": self.progress,
            "outputPath": self.output_path,
            "createdAt": self.created_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }
