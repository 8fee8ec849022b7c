"""Typed results produced by the media tool adapter."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(slots=True)
class AudioTrackInfo:
    codec: str
    channels: int = 2
    language: str | None = None


@dataclass(slots=True)
class SubtitleInfo:
    language: str
    format: str


@dataclass(slots=True)
class MediaMetadata:
    """Summary of a probed media file, stored as the file's metadata blob."""

    duration: float = 0.0
    width: int = 0
    height: int = 0
    video_codec: str | None = None
    bitrate: int = 0
    fps: float = 0.0
    audio_tracks: list[AudioTrackInfo] = field(default_factory=list)
    subtitles: list[SubtitleInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
            "videoCodec": self.video_codec,
            "bitrate": self.bitrate,
            "fps": self.fps,
            "audioTracks": [asdict(track) for track in self.audio_tracks],
            "subtitles": [asdict(sub) for sub in self.subtitles],
        }


@dataclass(slots=True)
class TranscodeAssessment:
    can_transmux: bool
    needs_video_transcode: bool
    needs_audio_transcode: bool
    reason: str

    @property
    def needs_transcode(self) -> bool:
        return not self.can_transmux


@dataclass(slots=True, frozen=True)
class EncodeProgress:
    """One progress event emitted while an encode runs."""

    percent: int
    out_time_seconds: float
    duration_seconds: float | None = None


@dataclass(slots=True)
class TrackRecord:
    track_type: str
    codec: str
    index: int
    language: str | None = None
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trackType": self.track_type,
            "codec": self.codec,
            "index": self.index,
            "language": self.language,
            "title": self.title,
        }


@dataclass(slots=True)
class SubtitleRecord:
    id: int | None
    language: str
    path: str
    format: str
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "language": self.language,
            "format": self.format,
            "title": self.title,
        }
