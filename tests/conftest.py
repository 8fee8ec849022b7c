from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.filedock.db.db_init import init_db
from src.filedock.repositories.file_repository import FileRepository, FolderRepository
from src.filedock.storage.storage_paths import StoragePaths


@pytest.fixture
def session_factory(tmp_path: Path) -> sessionmaker[Session]:
    engine = create_engine(f"sqlite:///{tmp_path / 'filedock.db'}", future=True)
    init_db(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def storage(tmp_path: Path) -> StoragePaths:
    root = tmp_path / "storage"
    root.mkdir()
    return StoragePaths(root)


@pytest.fixture
def file_repo(session_factory: sessionmaker[Session]) -> FileRepository:
    return FileRepository(session_factory)


@pytest.fixture
def folder_repo(session_factory: sessionmaker[Session]) -> FolderRepository:
    return FolderRepository(session_factory)
