"""Persistence failures. These are fatal to a run but never destroy its checkpoint."""

from __future__ import annotations


class PersistenceError(Exception):
    """Base exception for storage failures."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class StoreError(PersistenceError):
    """The key-value store could not be read or written."""
    pass


class SinkError(PersistenceError):
    """The output dataset did not accept a record."""
    pass
