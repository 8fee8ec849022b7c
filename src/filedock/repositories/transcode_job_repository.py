"""Persistence layer for transcode jobs."""

from __future__ import annotations

import uuid
from collections.abc import Callable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..db.db_models import TranscodeJobModel, as_utc, utc_now
from ..transcode.transcode_errors import TranscodeJobNotFoundError
from ..transcode.transcode_models import ACTIVE_STATUSES, TranscodeJob, TranscodeStatus


class TranscodeJobRepository:
    """Manage transcode_job rows.

    Terminal rows are never deleted so the table doubles as job history.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def find_active(self, file_id: str) -> TranscodeJob | None:
        """Return the pending or processing job for ``file_id`` if any."""
        with self._session_factory() as session:
            stmt = (
                select(TranscodeJobModel)
                .where(
                    TranscodeJobModel.file_id == file_id,
                    TranscodeJobModel.status.in_([s.value for s in ACTIVE_STATUSES]),
                )
                .order_by(TranscodeJobModel.created_at)
                .limit(1)
            )
            model = session.execute(stmt).scalar_one_or_none()
            return self._to_domain(model) if model is not None else None

    def create_pending(self, *, file_id: str, output_path: str) -> TranscodeJob:
        model = TranscodeJobModel(
            id=uuid.uuid4().hex,
            file_id=file_id,
            status=TranscodeStatus.PENDING.value,
            progress=0,
            output_path=output_path,
            created_at=utc_now(),
        )
        with self._session_factory() as session:
            session.add(model)
            session.commit()
        return self._to_domain(model)

    def get_job(self, job_id: str) -> TranscodeJob:
        with self._session_factory() as session:
            model = session.get(TranscodeJobModel, job_id)
            if model is None:
                raise TranscodeJobNotFoundError(f"Transcode job '{job_id}' not found")
            return self._to_domain(model)

    def next_pending(self) -> TranscodeJob | None:
        """Oldest pending job by creation time."""
        with self._session_factory() as session:
            stmt = (
                select(TranscodeJobModel)
                .where(TranscodeJobModel.status == TranscodeStatus.PENDING.value)
                .order_by(TranscodeJobModel.created_at, TranscodeJobModel.id)
                .limit(1)
            )
            model = session.execute(stmt).scalar_one_or_none()
            return self._to_domain(model) if model is not None else None

    def mark_processing(self, job_id: str) -> bool:
        """Move a pending job to processing; ``False`` if it was no longer pending."""
        return self._transition(
            job_id,
            expected=TranscodeStatus.PENDING,
            status=TranscodeStatus.PROCESSING.value,
        )

    def set_progress(self, job_id: str, progress: int) -> None:
        with self._session_factory() as session:
            session.execute(
                update(TranscodeJobModel)
                .where(TranscodeJobModel.id == job_id)
                .values(progress=max(0, min(100, int(progress))))
            )
            session.commit()

    def complete(self, job_id: str) -> None:
        with self._session_factory() as session:
            model = session.get(TranscodeJobModel, job_id)
            if model is None:
                raise TranscodeJobNotFoundError(f"Transcode job '{job_id}' not found")
            model.status = TranscodeStatus.COMPLETED.value
            model.progress = 100
            model.error = None
            model.completed_at = utc_now()
            session.commit()

    def fail(self, job_id: str, error: str) -> None:
        with self._session_factory() as session:
            model = session.get(TranscodeJobModel, job_id)
            if model is None:
                raise TranscodeJobNotFoundError(f"Transcode job '{job_id}' not found")
            model.status = TranscodeStatus.FAILED.value
            model.error = error or "Transcode failed"
            model.completed_at = utc_now()
            session.commit()

    def cancel_pending(self, job_id: str, reason: str) -> bool:
        """Fail the job only if it is still pending."""
        return self._transition(
            job_id,
            expected=TranscodeStatus.PENDING,
            status=TranscodeStatus.FAILED.value,
            error=reason,
            completed_at=utc_now(),
        )

    def latest_for_file(self, file_id: str) -> TranscodeJob | None:
        with self._session_factory() as session:
            stmt = (
                select(TranscodeJobModel)
                .where(TranscodeJobModel.file_id == file_id)
                .order_by(TranscodeJobModel.created_at.desc())
                .limit(1)
            )
            model = session.execute(stmt).scalar_one_or_none()
            return self._to_domain(model) if model is not None else None

    def list_active(self) -> list[TranscodeJob]:
        with self._session_factory() as session:
            stmt = (
                select(TranscodeJobModel)
                .where(TranscodeJobModel.status.in_([s.value for s in ACTIVE_STATUSES]))
                .order_by(TranscodeJobModel.created_at)
            )
            return [self._to_domain(model) for model in session.execute(stmt).scalars()]

    def fail_interrupted(self, reason: str) -> int:
        """Fail every job left in processing; returns the number of rows touched."""
        with self._session_factory() as session:
            result = session.execute(
                update(TranscodeJobModel)
                .where(TranscodeJobModel.status == TranscodeStatus.PROCESSING.value)
                .values(
                    status=TranscodeStatus.FAILED.value,
                    error=reason,
                    completed_at=utc_now(),
                )
            )
            session.commit()
            return result.rowcount or 0

    def _transition(self, job_id: str, *, expected: TranscodeStatus, **values: object) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                update(TranscodeJobModel)
                .where(
                    TranscodeJobModel.id == job_id,
                    TranscodeJobModel.status == expected.value,
                )
                .values(**values)
            )
            session.commit()
            return bool(result.rowcount)

    @staticmethod
    def _to_domain(model: TranscodeJobModel) -> TranscodeJob:
        return TranscodeJob(
            id=model.id,
            file_id=model.file_id,
            status=TranscodeStatus(model.status),
            progress=model.progress,
            output_path=model.output_path,
            created_at=as_utc(model.created_at),
            completed_at=as_utc(model.completed_at),
            error=model.error,
        )
