"""ORM models and schema helpers for filedock."""

from .db_models import (
    Base,
    FileModel,
    FolderModel,
    SubtitleModel,
    TranscodeJobModel,
    VideoTrackModel,
)

__all__ = [
    "Base",
    "FileModel",
    "FolderModel",
    "SubtitleModel",
    "TranscodeJobModel",
    "VideoTrackModel",
]
