"""Exceptions raised while producing derived assets."""

from ..exceptions import AppError


class DerivedAssetError(AppError):
    """Base class for derived asset failures."""


class UnsupportedSourceError(DerivedAssetError):
    """The source file's type has no asset of the requested kind."""


class AssetGenerationError(DerivedAssetError):
    """A generator could not produce the asset."""
