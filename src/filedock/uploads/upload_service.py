"""Chunked upload assembly."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import mimetypes
import os
import re
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from fastapi import UploadFile

from ..exceptions import NotFoundError
from ..files.file_models import DEFAULT_MIME_TYPE
from ..repositories.file_repository import FileRepository, FolderRepository
from ..storage.storage_errors import UnsafePathError
from ..storage.storage_paths import (
    StoragePaths,
    build_file_relative_path,
    normalize_file_name,
    normalize_relative_path,
)
from .enrichment import EnrichmentService
from .upload_errors import (
    FolderNotFoundError,
    InvalidChunkError,
    InvalidUploadPathError,
    UploadConflictError,
    UploadReadError,
)
from .upload_models import AssembledUpload, ChunkResult, ChunkUpload, UploadStatus

logger = logging.getLogger(__name__)

_CHUNK_NAME = re.compile(r"^\d{6}$")
COPY_BUFFER_BYTES = 1024 * 1024


def list_chunks(directory: Path) -> list[Path]:
    """Completed chunk files in index order (zero padding makes name order index order)."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and _CHUNK_NAME.match(p.name))


def assemble_chunks(chunks: list[Path], destination: Path) -> tuple[int, str]:
    """Concatenate ``chunks`` into ``destination``; returns (size, sha256 hex)."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.part")
    digest = hashlib.sha256()
    size = 0
    try:
        with partial.open("wb") as sink:
            for chunk in chunks:
                with chunk.open("rb") as source:
                    while block := source.read(COPY_BUFFER_BYTES):
                        sink.write(block)
                        digest.update(block)
                        size += len(block)
        os.replace(partial, destination)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    return size, digest.hexdigest()


@dataclass(slots=True)
class UploadService:
    """Accept out-of-order chunks and turn complete uploads into file records."""

    paths: StoragePaths
    file_repo: FileRepository
    folder_repo: FolderRepository
    enrichment: EnrichmentService | None = None
    read_chunk_bytes: int = 1024 * 1024
    log: logging.Logger = field(default_factory=lambda: logger)
    _locks: dict[str, asyncio.Lock] = field(default_factory=dict, init=False, repr=False)

    def upload_lock(self, upload_id: str) -> asyncio.Lock:
        lock = self._locks.get(upload_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[upload_id] = lock
        return lock

    async def accept_chunk(self, request: ChunkUpload, body: UploadFile) -> ChunkResult:
        if request.total_chunks < 1 or not 0 <= request.chunk_index < request.total_chunks:
            raise InvalidChunkError(
                f"chunkIndex {request.chunk_index} out of range for totalChunks {request.total_chunks}"
            )
        try:
            chunk_dir = self.paths.resolve(self.paths.chunk_dir(request.upload_id))
            name = normalize_file_name(request.file_name)
        except UnsafePathError as exc:
            raise InvalidUploadPathError(str(exc)) from exc

        folder_path = self._resolve_folder_path(request)
        relative_path = build_file_relative_path(folder_path, name)
        try:
            self._ensure_target_free(request.folder_id, name, relative_path)
        except UploadConflictError:
            async with self.upload_lock(request.upload_id):
                await self._drop_chunks(request.upload_id, chunk_dir)
            raise

        async with self.upload_lock(request.upload_id):
            await self._write_chunk(chunk_dir, request.chunk_index, body)
            present = {p.name for p in await asyncio.to_thread(list_chunks, chunk_dir)}
            received = len(present)
            self.log.info(
                "upload.chunk.accepted",
                extra={
                    "upload_id": request.upload_id,
                    "chunk_index": request.chunk_index,
                    "received": received,
                    "total": request.total_chunks,
                },
            )
            expected = [StoragePaths.chunk_name(i) for i in range(request.total_chunks)]
            if not present.issuperset(expected):
                return ChunkResult(UploadStatus.ACCEPTED, received, request.total_chunks)

            # Another request may have completed the same target while chunks were in flight.
            try:
                self._ensure_target_free(request.folder_id, name, relative_path)
            except UploadConflictError:
                await self._drop_chunks(request.upload_id, chunk_dir)
                raise
            assembled = await self._assemble(chunk_dir, request.total_chunks, relative_path)
            await self._drop_chunks(request.upload_id, chunk_dir)

        record = self.file_repo.create_file(
            name=name,
            path=assembled.relative_path,
            folder_id=request.folder_id,
            size=assembled.size,
            mime_type=self._mime_type(request),
            sha256=assembled.sha256,
        )
        self.log.info(
            "upload.completed",
            extra={
                "upload_id": request.upload_id,
                "file_id": record.id,
                "size": record.size,
                "sha256": record.sha256,
            },
        )
        if self.enrichment is not None:
            record = await self.enrichment.enrich(record)
        return ChunkResult(UploadStatus.COMPLETED, request.total_chunks, request.total_chunks, record)

    def _resolve_folder_path(self, request: ChunkUpload) -> str:
        if request.folder_id:
            try:
                return self.folder_repo.get_folder(request.folder_id).path
            except NotFoundError as exc:
                raise FolderNotFoundError(f"Folder '{request.folder_id}' not found") from exc
        try:
            return normalize_relative_path(request.path)
        except UnsafePathError as exc:
            raise InvalidUploadPathError(str(exc)) from exc

    def _ensure_target_free(self, folder_id: str | None, name: str, relative_path: str) -> None:
        if folder_id is not None and self.file_repo.find_by_folder_and_name(folder_id, name) is not None:
            raise UploadConflictError(f"'{name}' already exists in this folder")
        if self.file_repo.find_by_path(relative_path) is not None:
            raise UploadConflictError(f"'{relative_path}' already exists")
        if self.paths.resolve(relative_path).exists():
            raise UploadConflictError(f"'{relative_path}' already exists on disk")

    async def _write_chunk(self, chunk_dir: Path, index: int, body: UploadFile) -> None:
        chunk_dir.mkdir(parents=True, exist_ok=True)
        target = chunk_dir / StoragePaths.chunk_name(index)
        partial = chunk_dir / f"{target.name}.{uuid.uuid4().hex}.tmp"
        try:
            with partial.open("wb") as sink:
                while True:
                    block = await body.read(self.read_chunk_bytes)
                    if not block:
                        break
                    await asyncio.to_thread(sink.write, block)
            os.replace(partial, target)
        except OSError as exc:
            partial.unlink(missing_ok=True)
            self.log.error("upload.chunk.write_failed", exc_info=exc)
            raise UploadReadError(str(exc)) from exc

    async def _assemble(self, chunk_dir: Path, total: int, relative_path: str) -> AssembledUpload:
        chunks = [chunk_dir / StoragePaths.chunk_name(i) for i in range(total)]
        size, digest = await asyncio.to_thread(assemble_chunks, chunks, self.paths.resolve(relative_path))
        return AssembledUpload(relative_path=relative_path, size=size, sha256=digest)

    async def _drop_chunks(self, upload_id: str, chunk_dir: Path) -> None:
        """Forget an upload; callers hold its lock."""
        await asyncio.to_thread(shutil.rmtree, chunk_dir, True)
        self._locks.pop(upload_id, None)

    @staticmethod
    def _mime_type(request: ChunkUpload) -> str:
        if request.mime_type:
            return request.mime_type
        guessed, _ = mimetypes.guess_type(request.file_name)
        return guessed or DEFAULT_MIME_TYPE
