"""Helpers that put a source file on disk and register it."""

from __future__ import annotations

from src.filedock.files.file_models import FileRecord
from src.filedock.repositories.file_repository import FileRepository
from src.filedock.storage.storage_paths import StoragePaths


def store_file(
    storage: StoragePaths,
    file_repo: FileRepository,
    *,
    name: str,
    data: bytes,
    mime_type: str,
    folder: str = "",
) -> FileRecord:
    relative = f"{folder}/{name}" if folder else name
    target = storage.resolve(relative)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return file_repo.create_file(
        name=name,
        path=relative,
        folder_id=None,
        size=len(data),
        mime_type=mime_type,
    )
