"""Shared error hierarchy for filedock persistence and services."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import exc as sa_exc

__all__ = [
    "AppError",
    "RepositoryError",
    "NotFoundError",
    "IntegrityConstraintViolation",
    "DatabaseOperationError",
    "handle_sqlalchemy_errors",
]


class AppError(Exception):
    """Base class for filedock errors."""


class RepositoryError(AppError):
    """A record store operation failed."""


class NotFoundError(RepositoryError, KeyError):
    """A file, folder or job record does not exist.

    Subclasses :class:`KeyError` so callers that look records up by id can
    keep catching the builtin.
    """

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "record not found"


class IntegrityConstraintViolation(RepositoryError):
    """A unique or foreign key constraint rejected the write."""


class DatabaseOperationError(RepositoryError):
    """The database driver reported an unexpected failure."""


@contextmanager
def handle_sqlalchemy_errors(*, entity: str) -> Iterator[None]:
    """Re-raise SQLAlchemy driver errors as :class:`RepositoryError` subclasses."""

    try:
        yield
    except sa_exc.IntegrityError as exc:
        raise IntegrityConstraintViolation(f"{entity}: constraint violated") from exc
    except sa_exc.DBAPIError as exc:
        raise DatabaseOperationError(f"{entity}: {exc.__class__.__name__}") from exc
