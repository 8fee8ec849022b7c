"""File record, download and derived asset routes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse, Response

from ..derived.audio_variants import AudioVariantService
from ..derived.derived_cache import DerivedAssetCache
from ..derived.derived_errors import AssetGenerationError, UnsupportedSourceError
from ..derived.thumbnails import ThumbnailService, ThumbnailSize
from ..derived.waveform import WaveformService
from ..exceptions import NotFoundError
from ..media.media_errors import MediaToolError
from ..repositories.file_repository import FileRepository
from ..storage.storage_errors import UnsafePathError
from ..storage.storage_paths import StoragePaths
from ..streaming.range_response import ranged_file_response
from .file_models import FileRecord

router = APIRouter(prefix="/api/files", tags=["files"])
audio_router = APIRouter(prefix="/api/audio", tags=["audio"])
logger = logging.getLogger(__name__)

ASSET_CACHE_HEADERS = {"Cache-Control": "public, max-age=31536000, immutable"}


def get_file_repo(request: Request) -> FileRepository:
    try:
        return request.app.state.file_repo  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("FileRepository is not configured") from exc


def get_storage_paths(request: Request) -> StoragePaths:
    try:
        return request.app.state.storage_paths  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("StoragePaths is not configured") from exc


def get_derived_cache(request: Request) -> DerivedAssetCache:
    try:
        return request.app.state.derived_cache  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("DerivedAssetCache is not configured") from exc


def get_thumbnail_service(request: Request) -> ThumbnailService:
    try:
        return request.app.state.thumbnail_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("ThumbnailService is not configured") from exc


def get_waveform_service(request: Request) -> WaveformService:
    try:
        return request.app.state.waveform_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("WaveformService is not configured") from exc


def get_audio_variant_service(request: Request) -> AudioVariantService:
    try:
        return request.app.state.audio_variant_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - misconfigured app
        raise RuntimeError("AudioVariantService is not configured") from exc


def error_detail(reason: str, message: str) -> dict[str, str]:
    return {"status": "error", "failure_reason": reason, "message": message}


def require_file(file_id: str, repo: FileRepository = Depends(get_file_repo)) -> FileRecord:
    """Resolve the ``file_id`` path parameter to a record or respond 404."""
    try:
        return repo.get_file(file_id)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_detail("file_not_found", f"File {file_id} not found"),
        ) from exc


def _source_path(file: FileRecord, paths: StoragePaths) -> Path:
    try:
        source = paths.resolve(file.path)
    except UnsafePathError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=error_detail("invalid_path", str(exc))
        ) from exc
    if not source.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_detail("file_not_found", f"File {file.id} is missing from storage"),
        )
    return source


def _generation_errors(file: FileRecord, exc: Exception) -> HTTPException:
    if isinstance(exc, UnsupportedSourceError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=error_detail("unsupported_source", str(exc))
        )
    logger.warning("derived.request.failed", extra={"file_id": file.id, "error": str(exc)})
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=error_detail("generation_failed", str(exc)),
    )


@router.get("/{file_id}")
def get_file(file: FileRecord = Depends(require_file)) -> dict[str, Any]:
    return file.to_dict()


@router.get("/{file_id}/download")
def download_file(
    request: Request,
    file: FileRecord = Depends(require_file),
    paths: StoragePaths = Depends(get_storage_paths),
) -> Response:
    source = _source_path(file, paths)
    return ranged_file_response(
        source,
        range_header=request.headers.get("range"),
        media_type=file.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{file.name}"'},
    )


@router.get("/{file_id}/thumbnail")
async def get_thumbnail(
    size: str | None = Query(None),
    file: FileRecord = Depends(require_file),
    service: ThumbnailService = Depends(get_thumbnail_service),
    cache: DerivedAssetCache = Depends(get_derived_cache),
    paths: StoragePaths = Depends(get_storage_paths),
) -> FileResponse:
    _source_path(file, paths)
    try:
        relative = await service.thumbnail(file, ThumbnailSize.parse(size))
    except (UnsupportedSourceError, AssetGenerationError, MediaToolError) as exc:
        raise _generation_errors(file, exc) from exc
    return FileResponse(cache.local_path(relative), media_type="image/webp", headers=ASSET_CACHE_HEADERS)


@router.get("/{file_id}/sprite")
async def get_sprite(
    file: FileRecord = Depends(require_file),
    service: ThumbnailService = Depends(get_thumbnail_service),
    cache: DerivedAssetCache = Depends(get_derived_cache),
    paths: StoragePaths = Depends(get_storage_paths),
) -> FileResponse:
    _source_path(file, paths)
    try:
        relative, _ = await service.sprite(file)
    except (UnsupportedSourceError, AssetGenerationError, MediaToolError) as exc:
        raise _generation_errors(file, exc) from exc
    return FileResponse(cache.local_path(relative), media_type="image/webp", headers=ASSET_CACHE_HEADERS)


@router.get("/{file_id}/sprite/meta")
async def get_sprite_meta(
    file: FileRecord = Depends(require_file),
    service: ThumbnailService = Depends(get_thumbnail_service),
    paths: StoragePaths = Depends(get_storage_paths),
) -> dict[str, Any]:
    _source_path(file, paths)
    try:
        _, meta = await service.sprite(file)
    except (UnsupportedSourceError, AssetGenerationError, MediaToolError) as exc:
        raise _generation_errors(file, exc) from exc
    return meta.model_dump()


@router.get("/{file_id}/waveform")
async def get_waveform(
    file: FileRecord = Depends(require_file),
    service: WaveformService = Depends(get_waveform_service),
    paths: StoragePaths = Depends(get_storage_paths),
) -> dict[str, Any]:
    _source_path(file, paths)
    try:
        data = await service.waveform_data(file)
    except (UnsupportedSourceError, AssetGenerationError, MediaToolError) as exc:
        raise _generation_errors(file, exc) from exc
    return data.model_dump()


@router.get("/{file_id}/waveform/image")
async def get_waveform_image(
    width: int | None = Query(None),
    height: int | None = Query(None),
    file: FileRecord = Depends(require_file),
    service: WaveformService = Depends(get_waveform_service),
    cache: DerivedAssetCache = Depends(get_derived_cache),
    paths: StoragePaths = Depends(get_storage_paths),
) -> FileResponse:
    _source_path(file, paths)
    try:
        relative = await service.waveform_image(file, width, height)
    except (UnsupportedSourceError, AssetGenerationError, MediaToolError) as exc:
        raise _generation_errors(file, exc) from exc
    return FileResponse(cache.local_path(relative), media_type="image/png", headers=ASSET_CACHE_HEADERS)


@audio_router.api_route("/{file_id}/stream", methods=["GET", "HEAD"])
async def stream_audio(
    request: Request,
    file: FileRecord = Depends(require_file),
    service: AudioVariantService = Depends(get_audio_variant_service),
    paths: StoragePaths = Depends(get_storage_paths),
) -> Response:
    """Range-aware audio; FLAC is served as Opus when the variant is enabled and builds."""
    if not file.is_audio:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_detail("unsupported_source", "File is not audio"),
        )
    _source_path(file, paths)
    source = await service.stream_source(file)
    return ranged_file_response(
        source.path,
        range_header=request.headers.get("range"),
        media_type=source.mime_type,
        headers={"Cache-Control": "no-cache", "X-Audio-Variant": source.variant},
        head_only=request.method == "HEAD",
    )
