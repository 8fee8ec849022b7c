"""Smoke tests for Alembic migrations against a throwaway SQLite database."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def test_upgrade_head_then_downgrade_base(tmp_path, monkeypatch) -> None:
    url = f"sqlite:///{tmp_path / 'migrations.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))

    command.upgrade(config, "head")

    engine = create_engine(url)
    try:
        inspector = inspect(engine)
        tables = set(inspector.get_table_names())
        assert {"folder", "file", "transcode_job", "video_track", "subtitle"} <= tables
        job_indexes = {index["name"] for index in inspector.get_indexes("transcode_job")}
        assert {"ix_transcode_job_file_id", "ix_transcode_job_status"} <= job_indexes

        command.downgrade(config, "base")
        assert set(inspect(engine).get_table_names()) <= {"alembic_version"}
    finally:
        engine.dispose()
