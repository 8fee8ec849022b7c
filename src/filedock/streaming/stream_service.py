"""HLS readiness, on-demand transmux and playlist/segment serving."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..exceptions import NotFoundError
from ..files.file_models import FileRecord
from ..media.ffmpeg import MediaTools
from ..media.media_errors import MediaToolError
from ..media.media_models import SubtitleRecord, TrackRecord
from ..media.probe import ProbeReport, assess_transcode_needs
from ..repositories.media_track_repository import MediaTrackRepository
from ..storage.storage_paths import StoragePaths
from ..transcode.transcode_models import TranscodeJob
from ..transcode.transcode_queue import JobQueue
from .playlists import (
    MASTER_PLAYLIST,
    NOT_READY_PLACEHOLDER,
    PREPARING_PLACEHOLDER,
    PROCESSING_PLACEHOLDER,
    PROCESSING_PLAYLIST,
    append_token,
    build_master_playlist,
    first_segment,
    rewrite_media_playlist,
    sort_qualities,
    stream_url,
)

logger = logging.getLogger(__name__)

ORIGINAL_QUALITY = "original"


@dataclass(slots=True)
class StreamInfo:
    available: bool
    qualities: list[str]
    is_transmux: bool
    needs_transcode: bool
    transcode_job: TranscodeJob | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": self.available,
            "qualities": list(self.qualities),
            "isTransmux": self.is_transmux,
            "needsTranscode": self.needs_transcode,
            "transcodeJob": self.transcode_job.to_dict() if self.transcode_job else None,
        }


@dataclass(slots=True)
class PrepareResult:
    job_id: str | None
    ready: bool
    first_segment_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"jobId": self.job_id, "ready": self.ready, "firstSegmentUrl": self.first_segment_url}


@dataclass(slots=True)
class PlaylistResponse:
    status_code: int
    content: str


@dataclass(slots=True)
class StreamService:
    paths: StoragePaths
    tools: MediaTools
    queue: JobQueue
    track_repo: MediaTrackRepository
    log: logging.Logger = field(default_factory=lambda: logger)
    _transmuxing: dict[str, asyncio.Task[Path]] = field(default_factory=dict, init=False, repr=False)
    _background: set[asyncio.Task[None]] = field(default_factory=set, init=False, repr=False)

    def hls_dir(self, file_id: str) -> Path:
        return self.paths.resolve(StoragePaths.hls_dir(file_id))

    def is_ready(self, file_id: str) -> bool:
        return (self.hls_dir(file_id) / MASTER_PLAYLIST).is_file()

    def list_qualities(self, file_id: str) -> list[str]:
        """Quality playlists present next to the master, best first."""
        directory = self.hls_dir(file_id)
        if not directory.is_dir():
            return []
        names = [
            entry.stem
            for entry in directory.iterdir()
            if entry.suffix == ".m3u8" and entry.name not in (MASTER_PLAYLIST, PROCESSING_PLAYLIST)
        ]
        return sort_qualities(names)

    async def get_stream_info(self, file: FileRecord) -> StreamInfo:
        """Report readiness; probe and assess the source when nothing is on disk yet."""
        job = self.queue.latest_for_file(file.id)
        if self.is_ready(file.id):
            qualities = self.list_qualities(file.id)
            return StreamInfo(
                available=True,
                qualities=qualities,
                is_transmux=not qualities or ORIGINAL_QUALITY in qualities,
                needs_transcode=False,
                transcode_job=job,
            )
        report = await self.tools.probe(self._source(file))
        assessment = assess_transcode_needs(report)
        return StreamInfo(
            available=False,
            qualities=[],
            is_transmux=assessment.can_transmux,
            needs_transcode=assessment.needs_transcode,
            transcode_job=job,
        )

    async def generate_transmux_stream(self, file: FileRecord, report: ProbeReport | None = None) -> Path:
        """Stream-copy the source into ``.hls/<id>``; concurrent callers share one run."""
        master = self.hls_dir(file.id) / MASTER_PLAYLIST
        if master.is_file():
            return master
        task = self._transmuxing.get(file.id)
        if task is None:
            task = asyncio.create_task(self._transmux(file, report), name=f"transmux-{file.id}")
            self._transmuxing[file.id] = task
            task.add_done_callback(lambda done, key=file.id: self._settle(key, done))
        return await asyncio.shield(task)

    def start_background_transmux(self, file: FileRecord) -> None:
        task = asyncio.create_task(self._background_transmux(file), name=f"transmux-bg-{file.id}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def prepare(self, file: FileRecord) -> PrepareResult:
        """Make the stream ready when cheap; otherwise queue a transcode."""
        info = await self.get_stream_info(file)
        if info.available:
            return PrepareResult(job_id=None, ready=True, first_segment_url=self.first_segment_url(file.id))
        if info.is_transmux:
            await self.generate_transmux_stream(file)
            return PrepareResult(job_id=None, ready=True, first_segment_url=self.first_segment_url(file.id))
        job = await self.queue.queue_transcode(file.id)
        return PrepareResult(job_id=job.id, ready=False)

    def first_segment_url(self, file_id: str) -> str | None:
        directory = self.hls_dir(file_id)
        qualities = self.list_qualities(file_id)
        playlist = directory / (f"{qualities[0]}.m3u8" if qualities else MASTER_PLAYLIST)
        if not playlist.is_file():
            return None
        segment = first_segment(playlist.read_text(encoding="utf-8"))
        return stream_url(file_id, segment) if segment else None

    async def master_playlist(self, file: FileRecord, token: str | None = None) -> PlaylistResponse:
        info = await self.get_stream_info(file)
        if not info.available:
            if info.is_transmux:
                self.start_background_transmux(file)
                return PlaylistResponse(202, PROCESSING_PLACEHOLDER)
            return PlaylistResponse(202, NOT_READY_PLACEHOLDER)

        if info.qualities:
            content = build_master_playlist(file.id, info.qualities)
        else:
            raw = await asyncio.to_thread((self.hls_dir(file.id) / MASTER_PLAYLIST).read_text, encoding="utf-8")
            content = rewrite_media_playlist(raw, file.id, token)
        return PlaylistResponse(200, append_token(content, token))

    async def media_playlist(self, file_id: str, name: str, token: str | None = None) -> PlaylistResponse:
        if name == PROCESSING_PLAYLIST:
            return PlaylistResponse(202, PREPARING_PLACEHOLDER)
        path = self.paths.resolve_within(StoragePaths.hls_dir(file_id), name)
        if not path.is_file():
            raise NotFoundError(f"Playlist '{name}' not found")
        raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return PlaylistResponse(200, rewrite_media_playlist(raw, file_id, token))

    def segment_path(self, file_id: str, name: str) -> Path:
        path = self.paths.resolve_within(StoragePaths.hls_dir(file_id), name)
        if not path.is_file():
            raise NotFoundError(f"Segment '{name}' not found")
        return path

    def list_subtitles(self, file_id: str) -> list[SubtitleRecord]:
        return self.track_repo.list_subtitles(file_id)

    def subtitle_path(self, file_id: str, subtitle_id: int) -> Path:
        record = self.track_repo.get_subtitle(file_id, subtitle_id)
        path = self.paths.resolve(record.path)
        if not path.is_file():
            raise NotFoundError(f"Subtitle {subtitle_id} not found")
        return path

    def list_tracks(self, file_id: str) -> list[TrackRecord]:
        return self.track_repo.list_tracks(file_id)

    async def shutdown(self) -> None:
        pending = [*self._background, *self._transmuxing.values()]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task

    @property
    def transmux_count(self) -> int:
        return len(self._transmuxing)

    def _source(self, file: FileRecord) -> Path:
        source = self.paths.resolve(file.path)
        if not source.is_file():
            raise NotFoundError(f"Source for file {file.id} not found")
        return source

    def _settle(self, key: str, task: asyncio.Task[Path]) -> None:
        if self._transmuxing.get(key) is task:
            del self._transmuxing[key]

    async def _transmux(self, file: FileRecord, report: ProbeReport | None) -> Path:
        source = self._source(file)
        if report is None:
            report = await self.tools.probe(source)
        assessment = assess_transcode_needs(report)
        target_rel = StoragePaths.hls_dir(file.id)
        staging = self.paths.resolve(f"{target_rel}.partial-{uuid.uuid4().hex}")
        target = self.paths.resolve(target_rel)
        self.log.info("stream.transmux.started", extra={"file_id": file.id})
        try:
            await self.tools.transmux_to_hls(source, staging, copy_audio=not assessment.needs_audio_transcode)
            await asyncio.to_thread(self._publish, staging, target)
        except BaseException:
            await asyncio.to_thread(shutil.rmtree, staging, True)
            raise
        self.log.info("stream.transmux.completed", extra={"file_id": file.id})
        return target / MASTER_PLAYLIST

    @staticmethod
    def _publish(staging: Path, target: Path) -> None:
        if (target / MASTER_PLAYLIST).is_file():
            shutil.rmtree(staging, ignore_errors=True)
            return
        if target.exists():
            shutil.rmtree(target)
        staging.rename(target)

    async def _background_transmux(self, file: FileRecord) -> None:
        try:
            await self.generate_transmux_stream(file)
        except (MediaToolError, NotFoundError, OSError) as exc:
            self.log.warning("stream.transmux.failed", extra={"file_id": file.id, "error": str(exc)})
