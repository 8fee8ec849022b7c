"""Safe path resolution and the deterministic layout of derived assets."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from .storage_errors import UnsafePathError

THUMBNAILS_DIR = ".thumbnails"
WAVEFORMS_DIR = ".waveforms"
AUDIO_DIR = ".audio"
CHUNKS_DIR = ".chunks"
HLS_DIR = ".hls"
SUBTITLES_DIR = ".subtitles"

_FORBIDDEN_NAME_CHARS = set('<>:"|?*\\/\x00')


def normalize_relative_path(raw: str | None) -> str:
    """Normalize a client supplied folder path to ``a/b/c`` form.

    Empty input maps to ``""`` (storage root). Parent references and
    absolute paths raise :class:`UnsafePathError`.
    """
    if raw is None:
        return ""
    cleaned = raw.replace("\\", "/").strip()
    if cleaned.startswith("/"):
        cleaned = cleaned.lstrip("/")
    parts: list[str] = []
    for part in PurePosixPath(cleaned).parts:
        if part in ("", "."):
            continue
        if part == "..":
            raise UnsafePathError(f"Parent references are not allowed: {raw!r}")
        if "\x00" in part:
            raise UnsafePathError("Null bytes are not allowed in paths")
        parts.append(part)
    return "/".join(parts)


def normalize_file_name(raw: str) -> str:
    """Validate a single path segment used as a file name."""
    name = (raw or "").strip()
    if not name or name in (".", ".."):
        raise UnsafePathError("File name must not be empty")
    if any(char in _FORBIDDEN_NAME_CHARS for char in name):
        raise UnsafePathError(f"File name contains forbidden characters: {raw!r}")
    if len(name) > 255:
        raise UnsafePathError("File name is too long")
    return name


def build_file_relative_path(folder_path: str, file_name: str) -> str:
    folder = normalize_relative_path(folder_path)
    name = normalize_file_name(file_name)
    return f"{folder}/{name}" if folder else name


@dataclass(slots=True)
class StoragePaths:
    """Resolve relative storage paths under a single root directory."""

    root: Path

    def __post_init__(self) -> None:
        self.root = Path(self.root).resolve()

    def resolve(self, relative: str | PurePosixPath) -> Path:
        """Absolute path for ``relative``; rejects anything escaping the root."""
        candidate = (self.root / str(relative)).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise UnsafePathError(f"Path escapes storage root: {relative!s}")
        return candidate

    def resolve_within(self, base: str, name: str) -> Path:
        """Resolve ``name`` inside the ``base`` directory, rejecting escapes from ``base``."""
        base_path = self.resolve(base)
        candidate = (base_path / name).resolve()
        if base_path not in candidate.parents:
            raise UnsafePathError(f"Path escapes {base}: {name!r}")
        return candidate

    # chunked uploads

    def chunk_dir(self, upload_id: str) -> str:
        return f"{CHUNKS_DIR}/{normalize_file_name(upload_id)}"

    @staticmethod
    def chunk_name(index: int) -> str:
        return f"{index:06d}"

    # streaming trees

    @staticmethod
    def hls_dir(file_id: str) -> str:
        return f"{HLS_DIR}/{file_id}"

    @staticmethod
    def subtitles_dir(file_id: str) -> str:
        return f"{SUBTITLES_DIR}/{file_id}"

    # derived assets

    @staticmethod
    def derived_dirs(file_id: str) -> list[str]:
        """Every directory holding assets derived from ``file_id``."""
        return [
            f"{THUMBNAILS_DIR}/{file_id}",
            f"{WAVEFORMS_DIR}/{file_id}",
            f"{AUDIO_DIR}/{file_id}",
            f"{HLS_DIR}/{file_id}",
            f"{SUBTITLES_DIR}/{file_id}",
        ]

    @staticmethod
    def thumbnail(file_id: str, size: str) -> str:
        return f"{THUMBNAILS_DIR}/{file_id}/{size}.webp"

    @staticmethod
    def video_thumbnail(file_id: str, size: str) -> str:
        return f"{THUMBNAILS_DIR}/{file_id}/video_{size}.webp"

    @staticmethod
    def sprite(file_id: str) -> str:
        return f"{THUMBNAILS_DIR}/{file_id}/sprite.webp"

    @staticmethod
    def sprite_meta(file_id: str) -> str:
        return f"{THUMBNAILS_DIR}/{file_id}/sprite.json"

    @staticmethod
    def waveform_data(file_id: str) -> str:
        return f"{WAVEFORMS_DIR}/{file_id}/waveform.json"

    @staticmethod
    def waveform_image(file_id: str, width: int, height: int) -> str:
        return f"{WAVEFORMS_DIR}/{file_id}/waveform_{width}x{height}.png"

    @staticmethod
    def audio_variant(file_id: str, variant: str, extension: str) -> str:
        return f"{AUDIO_DIR}/{file_id}/{variant}.{extension}"
