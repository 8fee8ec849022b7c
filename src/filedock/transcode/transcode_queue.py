"""Single-worker FIFO transcode queue.

Jobs are rows in ``transcode_job``; the database is the queue. One worker
drains pending jobs oldest first, so at most one encoder runs at a time.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import NotFoundError, RepositoryError
from ..media.ffmpeg import MediaTools
from ..media.media_errors import MediaToolError
from ..repositories.file_repository import FileRepository
from ..repositories.transcode_job_repository import TranscodeJobRepository
from ..storage.storage_paths import StoragePaths
from ..streaming.playlists import MASTER_PLAYLIST, build_master_playlist
from .transcode_errors import JobNotCancellableError
from .transcode_models import (
    CANCELLED_REASON,
    DEFAULT_QUALITY,
    FILE_MISSING_REASON,
    INTERRUPTED_REASON,
    QUALITY_PROFILES,
    QualityProfile,
    TranscodeJob,
)

logger = logging.getLogger(__name__)


class JobQueue(Protocol):
    """What request handlers need from a transcode queue."""

    async def queue_transcode(self, file_id: str) -> TranscodeJob: ...

    def get_job(self, job_id: str) -> TranscodeJob: ...

    def latest_for_file(self, file_id: str) -> TranscodeJob | None: ...

    def list_active(self) -> list[TranscodeJob]: ...

    def cancel_job(self, job_id: str) -> TranscodeJob: ...


@dataclass(slots=True)
class TranscodeQueue:
    job_repo: TranscodeJobRepository
    file_repo: FileRepository
    paths: StoragePaths
    tools: MediaTools
    profile: QualityProfile = field(default_factory=lambda: QUALITY_PROFILES[DEFAULT_QUALITY])
    timeout_seconds: float | None = None
    log: logging.Logger = field(default_factory=lambda: logger)
    _wakeup: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)
    _worker: asyncio.Task[None] | None = field(default=None, init=False, repr=False)
    _processing: bool = field(default=False, init=False, repr=False)
    _current_job_id: str | None = field(default=None, init=False, repr=False)

    async def queue_transcode(self, file_id: str) -> TranscodeJob:
        """Return the file's pending/processing job, or create a pending one."""
        existing = self.job_repo.find_active(file_id)
        if existing is not None:
            self.log.info(
                "transcode.job.reused",
                extra={"job_id": existing.id, "file_id": file_id, "status": existing.status.value},
            )
            return existing
        job = self.job_repo.create_pending(file_id=file_id, output_path=StoragePaths.hls_dir(file_id))
        self.log.info("transcode.job.queued", extra={"job_id": job.id, "file_id": file_id})
        self._wakeup.set()
        return job

    def get_job(self, job_id: str) -> TranscodeJob:
        return self.job_repo.get_job(job_id)

    def latest_for_file(self, file_id: str) -> TranscodeJob | None:
        return self.job_repo.latest_for_file(file_id)

    def list_active(self) -> list[TranscodeJob]:
        return self.job_repo.list_active()

    def cancel_job(self, job_id: str) -> TranscodeJob:
        """Cancel a pending job. Jobs already encoding are left alone."""
        job = self.job_repo.get_job(job_id)
        if job.id == self._current_job_id or not self.job_repo.cancel_pending(job_id, CANCELLED_REASON):
            raise JobNotCancellableError(f"Job {job_id} is {self.job_repo.get_job(job_id).status.value}")
        self.log.info("transcode.job.cancelled", extra={"job_id": job_id, "file_id": job.file_id})
        return self.job_repo.get_job(job_id)

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def current_job_id(self) -> str | None:
        return self._current_job_id

    def recover_interrupted(self) -> int:
        """Fail jobs a previous process left in ``processing`` and wake the worker."""
        failed = self.job_repo.fail_interrupted(INTERRUPTED_REASON)
        if failed:
            self.log.warning("transcode.jobs.interrupted", extra={"count": failed})
        if self.job_repo.next_pending() is not None:
            self._wakeup.set()
        return failed

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._worker_loop(), name="transcode-worker")

    async def shutdown(self) -> None:
        worker, self._worker = self._worker, None
        if worker is None:
            return
        worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker

    async def run_pending(self) -> int:
        """Drain pending jobs oldest first; returns how many were taken.

        A second call while a drain is running returns ``0`` immediately.
        """
        if self._processing:
            return 0
        self._processing = True
        processed = 0
        try:
            while (job := self.job_repo.next_pending()) is not None:
                if not self.job_repo.mark_processing(job.id):
                    continue
                processed += 1
                self._current_job_id = job.id
                try:
                    await self._process(job)
                except Exception as exc:
                    self.log.exception("transcode.job.crashed", extra={"job_id": job.id})
                    self.job_repo.fail(job.id, f"Unexpected error: {exc}")
                finally:
                    self._current_job_id = None
        finally:
            self._processing = False
        return processed

    async def _worker_loop(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            try:
                await self.run_pending()
            except Exception:  # pragma: no cover - keeps the worker alive
                self.log.exception("transcode.worker.iteration_failed")

    async def _process(self, job: TranscodeJob) -> None:
        self.log.info("transcode.job.started", extra={"job_id": job.id, "file_id": job.file_id})
        try:
            file = self.file_repo.get_file(job.file_id)
            source = self.paths.resolve(file.path)
        except NotFoundError:
            source = None
        if source is None or not source.is_file():
            self.job_repo.fail(job.id, FILE_MISSING_REASON)
            self.log.warning("transcode.job.file_missing", extra={"job_id": job.id, "file_id": job.file_id})
            return

        output_dir = self.paths.resolve(job.output_path or StoragePaths.hls_dir(job.file_id))
        try:
            async with asyncio.timeout(self.timeout_seconds):
                await self._encode(job.id, source, output_dir)
        except TimeoutError:
            error = f"Transcode exceeded the {self.timeout_seconds:g}s time limit"
            self.job_repo.fail(job.id, error)
            self.log.warning("transcode.job.timed_out", extra={"job_id": job.id, "timeout": self.timeout_seconds})
            return
        except (MediaToolError, OSError) as exc:
            self.job_repo.fail(job.id, str(exc) or exc.__class__.__name__)
            self.log.warning("transcode.job.failed", extra={"job_id": job.id, "error": str(exc)})
            return

        await asyncio.to_thread(self._write_master, job.file_id, output_dir)
        self.job_repo.complete(job.id)
        self.log.info("transcode.job.completed", extra={"job_id": job.id, "file_id": job.file_id})

    async def _encode(self, job_id: str, source: Path, output_dir: Path) -> None:
        events = self.tools.transcode_to_hls(source, output_dir, self.profile)
        async with contextlib.aclosing(events):
            async for event in events:
                self._record_progress(job_id, event.percent)

    def _record_progress(self, job_id: str, percent: int) -> None:
        try:
            self.job_repo.set_progress(job_id, percent)
        except (SQLAlchemyError, RepositoryError) as exc:
            self.log.debug("transcode.job.progress_not_saved", extra={"job_id": job_id, "error": str(exc)})

    def _write_master(self, file_id: str, output_dir: Path) -> None:
        content = build_master_playlist(file_id, [self.profile.name])
        (output_dir / MASTER_PLAYLIST).write_text(content + "\n", encoding="utf-8")
