"""Exceptions raised by storage path resolution."""

from ..exceptions import AppError


class UnsafePathError(AppError):
    """Raised when a relative path would resolve outside the storage root."""
