"""Domain-specific exceptions for chunked uploads."""

from ..exceptions import AppError


class UploadError(AppError):
    """Base class for upload errors."""


class InvalidChunkError(UploadError):
    """Raised when chunk index or total is out of range."""


class InvalidUploadPathError(UploadError):
    """Raised when the target folder path or file name is unusable."""


class UploadConflictError(UploadError):
    """Raised when the target (folder, name) is already taken."""


class FolderNotFoundError(UploadError):
    """Raised when ``folderId`` does not match a folder record."""


class UploadReadError(UploadError):
    """Raised when reading the chunk body fails."""
