"""Persistence layer for file and folder records."""

from __future__ import annotations

import json
import uuid
from collections.abc import Callable
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.db_models import FileModel, FolderModel, as_utc, utc_now
from ..exceptions import NotFoundError, handle_sqlalchemy_errors
from ..files.file_models import FileRecord, FolderRecord


class FileRepository:
    """Read and write ``file`` rows."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get_file(self, file_id: str) -> FileRecord:
        with self._session_factory() as session:
            model = session.get(FileModel, file_id)
            if model is None:
                raise NotFoundError(f"File '{file_id}' not found")
            return self._to_domain(model)

    def find_by_folder_and_name(self, folder_id: str | None, name: str) -> FileRecord | None:
        """Return the file stored under ``name`` in ``folder_id`` (root when ``None``)."""
        with self._session_factory() as session:
            stmt = select(FileModel).where(FileModel.name == name)
            if folder_id is None:
                stmt = stmt.where(FileModel.folder_id.is_(None))
            else:
                stmt = stmt.where(FileModel.folder_id == folder_id)
            model = session.execute(stmt.limit(1)).scalar_one_or_none()
            return self._to_domain(model) if model is not None else None

    def find_by_path(self, path: str) -> FileRecord | None:
        with self._session_factory() as session:
            stmt = select(FileModel).where(FileModel.path == path).limit(1)
            model = session.execute(stmt).scalar_one_or_none()
            return self._to_domain(model) if model is not None else None

    def create_file(
        self,
        *,
        name: str,
        path: str,
        folder_id: str | None,
        size: int,
        mime_type: str,
        sha256: str | None = None,
    ) -> FileRecord:
        now = utc_now()
        model = FileModel(
            id=uuid.uuid4().hex,
            name=name,
            path=path,
            folder_id=folder_id,
            size=size,
            mime_type=mime_type,
            sha256=sha256,
            created_at=now,
            updated_at=now,
        )
        with handle_sqlalchemy_errors(entity="file"):
            with self._session_factory() as session:
                session.add(model)
                session.commit()
        return self._to_domain(model)

    def update_metadata(self, file_id: str, metadata: dict[str, Any]) -> None:
        """Replace the metadata blob attached to a file."""
        with self._session_factory() as session:
            model = session.get(FileModel, file_id)
            if model is None:
                raise NotFoundError(f"File '{file_id}' not found")
            model.metadata_json = json.dumps(metadata)
            model.updated_at = utc_now()
            session.commit()

    @staticmethod
    def _to_domain(model: FileModel) -> FileRecord:
        return FileRecord(
            id=model.id,
            name=model.name,
            path=model.path,
            folder_id=model.folder_id,
            size=model.size,
            mime_type=model.mime_type,
            sha256=model.sha256,
            metadata=json.loads(model.metadata_json) if model.metadata_json else None,
            created_at=as_utc(model.created_at),
        )


class FolderRepository:
    """Resolve folder ids to their relative storage paths."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get_folder(self, folder_id: str) -> FolderRecord:
        with self._session_factory() as session:
            model = session.get(FolderModel, folder_id)
            if model is None:
                raise NotFoundError(f"Folder '{folder_id}' not found")
            return FolderRecord(
                id=model.id,
                name=model.name,
                path=model.path,
                parent_id=model.parent_id,
            )

    def create_folder(self, *, name: str, path: str, parent_id: str | None = None) -> FolderRecord:
        model = FolderModel(id=uuid.uuid4().hex, name=name, path=path, parent_id=parent_id)
        with handle_sqlalchemy_errors(entity="folder"):
            with self._session_factory() as session:
                session.add(model)
                session.commit()
        return FolderRecord(id=model.id, name=model.name, path=model.path, parent_id=model.parent_id)
