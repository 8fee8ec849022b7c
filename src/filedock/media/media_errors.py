"""Exceptions raised while running external media tools."""

from ..exceptions import AppError


class MediaToolError(AppError):
    """Base class for prober and encoder failures.

    ``stderr`` keeps the tail of the tool's diagnostic output.
    """

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base}: {self.stderr}" if self.stderr else base


class ProbeFailed(MediaToolError):
    """ffprobe exited non-zero or returned an unreadable report."""


class EncoderFailed(MediaToolError):
    """ffmpeg exited non-zero or produced no output."""
