"""
Error types raised by keyword storage and remote keyword fetching.
"""

from typing import Optional


class KeywordSyncError(Exception):
    """Base class for failures while persisting or fetching keywords."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class StorageError(KeywordSyncError):
    """The secure keyword store could not be read or written."""


class NetworkError(KeywordSyncError):
    """The remote keyword service could not be reached or answered with an error status."""

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message, cause)
        self.status = status


class DecodeError(KeywordSyncError):
    """The remote keyword service returned a payload that could not be parsed."""
