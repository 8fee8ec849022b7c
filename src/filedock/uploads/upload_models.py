"""Data structures for chunked uploads."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ..files.file_models import FileRecord


class UploadStatus(StrEnum):
    ACCEPTED = "accepted"
    COMPLETED = "completed"


class FailureReason(StrEnum):
    """``failure_reason`` values returned by the upload endpoint."""

    INVALID_CHUNK = "invalid_chunk"
    INVALID_PATH = "invalid_path"
    FOLDER_NOT_FOUND = "folder_not_found"
    FILE_EXISTS = "file_exists"
    UPLOAD_READ_FAILED = "upload_read_failed"


@dataclass(slots=True)
class ChunkUpload:
    """Form fields that accompany one chunk."""

    upload_id: str
    chunk_index: int
    total_chunks: int
    file_name: str
    path: str | None = None
    folder_id: str | None = None
    mime_type: str | None = None


@dataclass(slots=True)
class ChunkResult:
    status: UploadStatus
    received_chunks: int
    total_chunks: int
    file: FileRecord | None = None


@dataclass(slots=True)
class AssembledUpload:
    relative_path: str
    size: int
    sha256: str
