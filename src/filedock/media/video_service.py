"""Video analysis: probe, stream track records and subtitle extraction."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..files.file_models import FileRecord
from ..repositories.media_track_repository import MediaTrackRepository
from ..storage.storage_paths import StoragePaths
from .ffmpeg import MediaTools
from .media_errors import MediaToolError
from .media_models import MediaMetadata, SubtitleRecord, TrackRecord
from .probe import UNDEFINED_LANGUAGE, ProbeReport, parse_media_metadata

logger = logging.getLogger(__name__)

_SAFE_LANGUAGE = re.compile(r"[^A-Za-z0-9_-]")

# Bitmap subtitle codecs cannot be converted to WebVTT.
_IMAGE_SUBTITLE_CODECS = frozenset({"hdmv_pgs_subtitle", "dvd_subtitle", "dvb_subtitle", "xsub"})


@dataclass(slots=True)
class VideoService:
    tools: MediaTools
    track_repo: MediaTrackRepository
    paths: StoragePaths
    log: logging.Logger = field(default_factory=lambda: logger)

    async def analyze_file(self, source: Path) -> tuple[MediaMetadata, ProbeReport]:
        report = await self.tools.probe(source)
        return parse_media_metadata(report), report

    def save_video_tracks(self, file_id: str, report: ProbeReport) -> list[TrackRecord]:
        """Replace the stored track set for ``file_id`` with the probed streams."""
        tracks = [
            TrackRecord(
                track_type=stream.codec_type,
                codec=stream.codec_name or "unknown",
                index=stream.index,
                language=stream.language,
                title=stream.title,
            )
            for stream in report.streams
            if stream.codec_type in ("video", "audio", "subtitle")
        ]
        self.track_repo.replace_tracks(file_id, tracks)
        return tracks

    async def extract_and_save_subtitles(
        self, file_id: str, source: Path, report: ProbeReport
    ) -> list[SubtitleRecord]:
        """Convert every text subtitle stream to WebVTT; failing streams are skipped."""
        self.track_repo.clear_subtitles(file_id)
        directory = self.paths.subtitles_dir(file_id)
        saved: list[SubtitleRecord] = []
        for stream in report.subtitle_streams:
            if stream.codec_name in _IMAGE_SUBTITLE_CODECS:
                continue
            language = stream.language or UNDEFINED_LANGUAGE
            relative = f"{directory}/{stream.index}_{_SAFE_LANGUAGE.sub('', language) or UNDEFINED_LANGUAGE}.vtt"
            try:
                await self.tools.extract_subtitle(source, stream.index, self.paths.resolve(relative))
            except MediaToolError as exc:
                self.log.warning(
                    "video.subtitle.extract_failed",
                    extra={"file_id": file_id, "stream_index": stream.index, "error": str(exc)},
                )
                continue
            saved.append(
                self.track_repo.add_subtitle(
                    file_id,
                    SubtitleRecord(
                        id=None,
                        language=language,
                        path=relative,
                        format="webvtt",
                        title=stream.title,
                    ),
                )
            )
        return saved

    async def process_video_file(self, file: FileRecord) -> dict[str, Any]:
        """Probe, persist tracks and subtitles; returns the metadata blob."""
        source = self.paths.resolve(file.path)
        metadata, report = await self.analyze_file(source)
        self.save_video_tracks(file.id, report)
        subtitles = await self.extract_and_save_subtitles(file.id, source, report)
        self.log.info(
            "video.analyzed",
            extra={
                "file_id": file.id,
                "codec": metadata.video_codec,
                "duration": metadata.duration,
                "subtitles": len(subtitles),
            },
        )
        return metadata.to_dict()
