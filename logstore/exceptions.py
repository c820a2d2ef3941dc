"""Custom exception hierarchy for logstore.

Raw stream failures during a retrieve (reading the object body or writing the
caller's output) are deliberately not part of this hierarchy; they propagate
as the ``OSError`` (or botocore streaming error) that caused them.
"""

from __future__ import annotations


class LogStoreError(Exception):
    """Base exception for all logstore-specific errors."""

    def __init__(self, message: str, details: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(LogStoreError):
    """Raised when configuration is invalid or missing."""
    pass


class StorageError(LogStoreError):
    """Raised when a storage request fails."""
    pass


class S3Error(StorageError):
    """Raised when S3 reports an error response."""

    def __init__(
        self,
        message: str,
        details: dict[str, str] | None = None,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        self.error_code = error_code


__all__ = [
    "LogStoreError",
    "ConfigurationError",
    "StorageError",
    "S3Error",
]
