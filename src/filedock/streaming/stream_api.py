"""HLS stream routes: readiness, prepare, playlists, segments, subtitles."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse, Response

from ..exceptions import NotFoundError
from ..files.file_api import error_detail, require_file
from ..files.file_models import FileRecord
from ..media.media_errors import MediaToolError
from ..storage.storage_errors import UnsafePathError
from .playlists import MASTER_PLAYLIST, PLAYLIST_MEDIA_TYPE, SEGMENT_MEDIA_TYPE
from .stream_service import PlaylistResponse, StreamService

router = APIRouter(prefix="/api/stream", tags=["stream"])
logger = logging.getLogger(__name__)

PLAYLIST_HEADERS = {"Cache-Control": "no-cache"}
IMMUTABLE_HEADERS = {"Cache-Control": "max-age=31536000"}


def get_stream_service(request: Request) -> StreamService:
    """Fetch stream service from application state."""
    try:
        return request.app.state.stream_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("StreamService is not configured") from exc


def require_video(file: FileRecord = Depends(require_file)) -> FileRecord:
    if not file.is_video:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail("not_a_video", "File is not a video"),
        )
    return file


def _stream_error(file_id: str, exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=error_detail("not_found", str(exc))
        )
    if isinstance(exc, UnsafePathError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=error_detail("invalid_path", str(exc))
        )
    logger.warning("stream.request.failed", extra={"file_id": file_id, "error": str(exc)})
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=error_detail("media_tool_failed", str(exc)),
    )


def _playlist(result: PlaylistResponse) -> Response:
    return Response(
        content=result.content,
        status_code=result.status_code,
        media_type=PLAYLIST_MEDIA_TYPE,
        headers=PLAYLIST_HEADERS,
    )


@router.get("/{file_id}/info")
async def stream_info(
    file: FileRecord = Depends(require_video),
    service: StreamService = Depends(get_stream_service),
) -> dict[str, Any]:
    try:
        info = await service.get_stream_info(file)
    except (NotFoundError, MediaToolError) as exc:
        raise _stream_error(file.id, exc) from exc
    return info.to_dict()


@router.post("/{file_id}/prepare")
async def prepare_stream(
    file: FileRecord = Depends(require_video),
    service: StreamService = Depends(get_stream_service),
) -> dict[str, Any]:
    """Pre-warm playback: transmux inline when possible, otherwise queue a transcode."""
    try:
        result = await service.prepare(file)
    except (NotFoundError, MediaToolError, UnsafePathError) as exc:
        raise _stream_error(file.id, exc) from exc
    return result.to_dict()


@router.get(f"/{{file_id}}/{MASTER_PLAYLIST}")
async def master_playlist(
    token: str | None = Query(None),
    file: FileRecord = Depends(require_video),
    service: StreamService = Depends(get_stream_service),
) -> Response:
    try:
        result = await service.master_playlist(file, token)
    except (NotFoundError, MediaToolError) as exc:
        raise _stream_error(file.id, exc) from exc
    return _playlist(result)


@router.get("/{file_id}/subtitles")
def list_subtitles(
    file: FileRecord = Depends(require_file),
    service: StreamService = Depends(get_stream_service),
) -> list[dict[str, Any]]:
    return [subtitle.to_dict() for subtitle in service.list_subtitles(file.id)]


@router.get("/{file_id}/subtitles/{subtitle_id}")
def get_subtitle(
    subtitle_id: int,
    file: FileRecord = Depends(require_file),
    service: StreamService = Depends(get_stream_service),
) -> FileResponse:
    try:
        path = service.subtitle_path(file.id, subtitle_id)
    except (NotFoundError, UnsafePathError) as exc:
        raise _stream_error(file.id, exc) from exc
    return FileResponse(path, media_type="text/vtt", headers=IMMUTABLE_HEADERS)


@router.get("/{file_id}/tracks")
def list_tracks(
    file: FileRecord = Depends(require_file),
    service: StreamService = Depends(get_stream_service),
) -> list[dict[str, Any]]:
    return [track.to_dict() for track in service.list_tracks(file.id)]


@router.get("/{file_id}/{name}")
async def stream_resource(
    name: str,
    token: str | None = Query(None),
    file: FileRecord = Depends(require_file),
    service: StreamService = Depends(get_stream_service),
) -> Response:
    """Quality playlist (``.m3u8``) or media segment (``.ts``)."""
    file_id = file.id
    try:
        if name.endswith(".m3u8"):
            return _playlist(await service.media_playlist(file_id, name, token))
        if name.endswith(".ts"):
            path = service.segment_path(file_id, name)
            return FileResponse(path, media_type=SEGMENT_MEDIA_TYPE, headers=IMMUTABLE_HEADERS)
    except (NotFoundError, UnsafePathError) as exc:
        raise _stream_error(file_id, exc) from exc
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=error_detail("invalid_request", f"Unsupported stream resource '{name}'"),
    )
