"""Data structures describing stored files."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(slots=True)
class FileRecord:
    """Snapshot of a ``file`` row."""

    id: str
    name: str
    path: str
    folder_id: str | None
    size: int
    mime_type: str
    sha256: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video/")

    @property
    def is_audio(self) -> bool:
        return self.mime_type.startswith("audio/")

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "folderId": self.folder_id,
            "size": self.size,
            "mimeType": self.mime_type,
            "sha256": self.sha256,
            "metadata": self.metadata,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class FolderRecord:
    id: str
    name: str
    path: str
    parent_id: str | None = None
