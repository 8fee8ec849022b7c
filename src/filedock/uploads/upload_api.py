"""HTTP routes for chunked uploads."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse, Response

from .upload_errors import (
    FolderNotFoundError,
    InvalidChunkError,
    InvalidUploadPathError,
    UploadConflictError,
    UploadReadError,
)
from .upload_models import ChunkUpload, FailureReason, UploadStatus
from .upload_service import UploadService

router = APIRouter(prefix="/api/files", tags=["uploads"])
logger = logging.getLogger(__name__)


def get_upload_service(request: Request) -> UploadService:
    """Fetch upload service from application state."""
    try:
        return request.app.state.upload_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("UploadService is not configured") from exc


def _error(status_code: int, reason: FailureReason, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"status": "error", "failure_reason": reason.value, "message": message},
    )


@router.post("/upload")
async def upload_chunk(
    upload_id: str = Form(..., alias="uploadId", min_length=1),
    chunk_index: int = Form(..., alias="chunkIndex"),
    total_chunks: int = Form(..., alias="totalChunks"),
    file_name: str = Form(..., alias="fileName"),
    path: str | None = Form(None),
    folder_id: str | None = Form(None, alias="folderId"),
    mime_type: str | None = Form(None, alias="mimeType"),
    chunk: UploadFile = File(...),
    service: UploadService = Depends(get_upload_service),
) -> Response:
    """Store one chunk; the request carrying the last missing chunk creates the file."""
    request = ChunkUpload(
        upload_id=upload_id,
        chunk_index=chunk_index,
        total_chunks=total_chunks,
        file_name=file_name,
        path=path,
        folder_id=folder_id or None,
        mime_type=mime_type or None,
    )
    try:
        result = await service.accept_chunk(request, chunk)
    except InvalidChunkError as exc:
        logger.warning("upload.chunk.invalid", extra={"upload_id": upload_id, "chunk_index": chunk_index})
        raise _error(status.HTTP_400_BAD_REQUEST, FailureReason.INVALID_CHUNK, str(exc)) from exc
    except InvalidUploadPathError as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, FailureReason.INVALID_PATH, str(exc)) from exc
    except FolderNotFoundError as exc:
        raise _error(status.HTTP_404_NOT_FOUND, FailureReason.FOLDER_NOT_FOUND, str(exc)) from exc
    except UploadConflictError as exc:
        logger.info("upload.conflict", extra={"upload_id": upload_id, "file_name": file_name})
        raise _error(status.HTTP_409_CONFLICT, FailureReason.FILE_EXISTS, str(exc)) from exc
    except UploadReadError as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, FailureReason.UPLOAD_READ_FAILED, str(exc)) from exc
    finally:
        await chunk.close()

    if result.status is UploadStatus.ACCEPTED or result.file is None:
        return Response(status_code=status.HTTP_202_ACCEPTED)
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=result.file.to_dict())
