"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db


@dataclass(slots=True)
class StorageSettings:
    root: Path
    upload_read_chunk_bytes: int
    stale_upload_seconds: float


@dataclass(slots=True)
class ToolSettings:
    ffmpeg_binary: str
    ffprobe_binary: str


@dataclass(slots=True)
class TranscodeSettings:
    quality: str
    timeout_seconds: float | None


@dataclass(slots=True)
class AudioSettings:
    transcode_flac: bool
    opus_bitrate_kbps: int


@dataclass(slots=True)
class AppConfig:
    storage: StorageSettings
    tools: ToolSettings
    transcode: TranscodeSettings
    audio: AudioSettings
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]
    log_level: str = "INFO"


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def load_config() -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    load_dotenv()

    root = Path(os.getenv("STORAGE_PATH", "./storage")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    storage = StorageSettings(
        root=root,
        upload_read_chunk_bytes=int(os.getenv("UPLOAD_READ_CHUNK_BYTES", 1024 * 1024)),
        stale_upload_seconds=float(os.getenv("UPLOAD_STALE_SECONDS", 24 * 60 * 60)),
    )

    tools = ToolSettings(
        ffmpeg_binary=os.getenv("FFMPEG_BINARY", "ffmpeg"),
        ffprobe_binary=os.getenv("FFPROBE_BINARY", "ffprobe"),
    )

    timeout = float(os.getenv("TRANSCODE_TIMEOUT_SECONDS", 4 * 60 * 60))
    transcode = TranscodeSettings(
        quality=os.getenv("TRANSCODE_QUALITY", "720p"),
        timeout_seconds=timeout if timeout > 0 else None,
    )

    bitrate = int(os.getenv("AUDIO_OPUS_BITRATE_KBPS", 160))
    audio = AudioSettings(
        transcode_flac=_env_flag("AUDIO_TRANSCODE_FLAC"),
        opus_bitrate_kbps=min(max(bitrate, 64), 512),
    )

    database_url = os.getenv("DATABASE_URL", "sqlite:///filedock.db")
    engine = create_engine(database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    init_db(engine)

    return AppConfig(
        storage=storage,
        tools=tools,
        transcode=transcode,
        audio=audio,
        database_url=database_url,
        engine=engine,
        session_factory=session_factory,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
