"""Exceptions raised by the transcode queue."""

from ..exceptions import AppError, NotFoundError


class TranscodeError(AppError):
    """Base class for transcode queue errors."""


class TranscodeJobNotFoundError(NotFoundError):
    """Raised when a job id does not match any transcode_job row."""


class JobNotCancellableError(TranscodeError):
    """Raised when a job has already left the pending state."""
