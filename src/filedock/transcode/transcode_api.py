"""Transcode job status and cancellation routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from .transcode_errors import JobNotCancellableError, TranscodeJobNotFoundError
from .transcode_queue import JobQueue

router = APIRouter(prefix="/api/transcode", tags=["transcode"])


def get_transcode_queue(request: Request) -> JobQueue:
    """Fetch transcode queue from application state."""
    try:
        return request.app.state.transcode_queue  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("TranscodeQueue is not configured") from exc


def _job_not_found(job_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"status": "error", "failure_reason": "job_not_found", "message": f"Job {job_id} not found"},
    )


@router.get("/jobs")
def list_active_jobs(queue: JobQueue = Depends(get_transcode_queue)) -> list[dict[str, Any]]:
    return [job.to_dict() for job in queue.list_active()]


@router.get("/jobs/{job_id}")
def get_job(job_id: str, queue: JobQueue = Depends(get_transcode_queue)) -> dict[str, Any]:
    try:
        return queue.get_job(job_id).to_dict()
    except TranscodeJobNotFoundError as exc:
        raise _job_not_found(job_id) from exc


@router.delete("/jobs/{job_id}")
def cancel_job(job_id: str, queue: JobQueue = Depends(get_transcode_queue)) -> dict[str, Any]:
    """Cancel a pending job; 409 once the encoder has picked it up."""
    try:
        return queue.cancel_job(job_id).to_dict()
    except TranscodeJobNotFoundError as exc:
        raise _job_not_found(job_id) from exc
    except JobNotCancellableError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"status": "error", "failure_reason": "job_not_cancellable", "message": str(exc)},
        ) from exc
