"""ffprobe report parsing and web-playability assessment.

Nothing here touches the filesystem or spawns processes; the adapter in
:mod:`filedock.media.ffmpeg` produces the :class:`ProbeReport`.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .media_models import AudioTrackInfo, MediaMetadata, SubtitleInfo, TranscodeAssessment

WEB_VIDEO_CODECS = frozenset({"h264", "vp9", "av1"})
WEB_AUDIO_CODECS = frozenset({"aac", "mp3", "opus", "vorbis"})

UNKNOWN_CODEC = "unknown"
UNDEFINED_LANGUAGE = "und"


class ProbeStream(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    codec_type: str | None = None
    codec_name: str | None = None
    width: int | None = None
    height: int | None = None
    channels: int | None = None
    sample_rate: str | None = None
    bit_rate: str | None = None
    avg_frame_rate: str | None = None
    r_frame_rate: str | None = None
    tags: dict[str, Any] = Field(default_factory=dict)
    disposition: dict[str, Any] = Field(default_factory=dict)

    @property
    def language(self) -> str | None:
        value = self.tags.get("language")
        return str(value) if value else None

    @property
    def title(self) -> str | None:
        value = self.tags.get("title")
        return str(value) if value else None


class ProbeFormat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    format_name: str | None = None
    duration: str | None = None
    bit_rate: str | None = None
    tags: dict[str, Any] = Field(default_factory=dict)


class ProbeReport(BaseModel):
    """Parsed ``ffprobe -show_format -show_streams`` JSON output."""

    model_config = ConfigDict(extra="ignore")

    streams: list[ProbeStream] = Field(default_factory=list)
    format: ProbeFormat = Field(default_factory=ProbeFormat)

    @property
    def video_stream(self) -> ProbeStream | None:
        # Cover art is reported as a video stream with attached_pic set.
        for stream in self.streams:
            if stream.codec_type == "video" and not stream.disposition.get("attached_pic"):
                return stream
        return None

    @property
    def audio_streams(self) -> list[ProbeStream]:
        return [s for s in self.streams if s.codec_type == "audio"]

    @property
    def subtitle_streams(self) -> list[ProbeStream]:
        return [s for s in self.streams if s.codec_type == "subtitle"]

    @property
    def has_attached_picture(self) -> bool:
        return any(
            s.codec_type == "video" and s.disposition.get("attached_pic") for s in self.streams
        )


def parse_frame_rate(value: str | None) -> float:
    """Parse ``"num/den"`` (or a plain number) into frames per second.

    Malformed input and a zero denominator yield ``0.0``.
    """
    if not value:
        return 0.0
    if "/" in value:
        num, _, den = value.partition("/")
        try:
            numerator = float(num)
            denominator = float(den)
        except ValueError:
            return 0.0
        if denominator == 0:
            return 0.0
        return numerator / denominator
    try:
        return float(value)
    except ValueError:
        return 0.0


def _to_float(value: str | None) -> float:
    try:
        return float(value) if value is not None else 0.0
    except ValueError:
        return 0.0


def _to_int(value: str | None) -> int:
    return int(_to_float(value))


def parse_media_metadata(report: ProbeReport) -> MediaMetadata:
    video = report.video_stream
    fps = 0.0
    if video is not None:
        fps = parse_frame_rate(video.avg_frame_rate) or parse_frame_rate(video.r_frame_rate)

    return MediaMetadata(
        duration=_to_float(report.format.duration),
        width=(video.width or 0) if video else 0,
        height=(video.height or 0) if video else 0,
        video_codec=video.codec_name if video else None,
        bitrate=_to_int(report.format.bit_rate),
        fps=round(fps, 3),
        audio_tracks=[
            AudioTrackInfo(
                codec=stream.codec_name or UNKNOWN_CODEC,
                channels=stream.channels or 2,
                language=stream.language,
            )
            for stream in report.audio_streams
        ],
        subtitles=[
            SubtitleInfo(
                language=stream.language or UNDEFINED_LANGUAGE,
                format=stream.codec_name or UNKNOWN_CODEC,
            )
            for stream in report.subtitle_streams
        ],
    )


def assess_transcode_needs(report: ProbeReport) -> TranscodeAssessment:
    """Decide between repackaging (transmux) and re-encoding (transcode)."""
    video = report.video_stream
    if video is None:
        return TranscodeAssessment(
            can_transmux=False,
            needs_video_transcode=False,
            needs_audio_transcode=False,
            reason="No video stream found",
        )

    video_codec = (video.codec_name or UNKNOWN_CODEC).lower()
    video_ok = video_codec in WEB_VIDEO_CODECS

    audio = report.audio_streams
    audio_codec = (audio[0].codec_name or UNKNOWN_CODEC).lower() if audio else None
    audio_ok = audio_codec is None or audio_codec in WEB_AUDIO_CODECS

    if video_ok and audio_ok:
        return TranscodeAssessment(
            can_transmux=True,
            needs_video_transcode=False,
            needs_audio_transcode=False,
            reason="File is web-compatible, can transmux directly",
        )

    if not video_ok and not audio_ok:
        reason = f"Video codec '{video_codec}' and audio codec '{audio_codec}' require transcoding"
    elif not video_ok:
        reason = f"Video codec '{video_codec}' requires transcoding"
    else:
        reason = f"Audio codec '{audio_codec}' requires transcoding"

    return TranscodeAssessment(
        can_transmux=False,
        needs_video_transcode=not video_ok,
        needs_audio_transcode=not audio_ok,
        reason=reason,
    )
