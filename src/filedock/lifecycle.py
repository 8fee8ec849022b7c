"""Startup/shutdown of the transcode worker and background transmuxes."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .streaming.stream_service import StreamService
from .transcode.transcode_queue import TranscodeQueue

logger = logging.getLogger(__name__)


def _start_transcode_worker(app: FastAPI) -> None:
    if getattr(app.state, "disable_transcode_worker", False):
        logger.info("transcode.worker.skipped")
        return
    queue: TranscodeQueue = app.state.transcode_queue
    interrupted = queue.recover_interrupted()
    queue.start()
    logger.info("transcode.worker.started", extra={"interrupted": interrupted})


async def _stop_background_work(app: FastAPI) -> None:
    queue: TranscodeQueue | None = getattr(app.state, "transcode_queue", None)
    if queue is not None:
        await queue.shutdown()
    stream_service: StreamService | None = getattr(app.state, "stream_service", None)
    if stream_service is not None:
        await stream_service.shutdown()
    logger.info("transcode.worker.stopped")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the transcode worker for the lifetime of ``app``.

    On enter, jobs a previous process left ``processing`` are failed and the
    single worker starts, resuming whatever is still pending. On exit the
    worker and any in-flight transmuxes are cancelled.
    """
    _start_transcode_worker(app)
    try:
        yield
    finally:
        await _stop_background_work(app)


__all__ = ["lifespan"]
