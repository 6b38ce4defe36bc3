"""
Exception types shared by the storage, database and upload layers.

Every error carries the HTTP status the API should answer with; the app
registers a single handler that turns them into ``{"detail": ...}`` bodies.
"""

from __future__ import annotations

from typing import Optional


class BackendError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigurationError(BackendError):
    """Required settings are missing or invalid; the app must not start."""


class UploadValidationError(BackendError):
    """The uploaded file or form fields were rejected."""

    status_code = 400


class PayloadTooLargeError(UploadValidationError):
    status_code = 413


class NotFoundError(BackendError):
    status_code = 404


class StorageError(BackendError):
    """Wraps boto3 errors so callers never see raw AWS responses."""


class StorageWriteError(BackendError):
    """The object write failed and the pending record was rolled back."""

    def __init__(self, message: str, upload_id: str, key: str):
        super().__init__(message)
        self.upload_id = upload_id
        self.key = key


class CompensationError(BackendError):
    """
    Rolling back a failed upload did not complete.

    The metadata row ``upload_id`` may still exist with no object behind it.
    ``original`` is the error that triggered the rollback.
    """

    def __init__(
        self,
        message: str,
        upload_id: str,
        key: str,
        original: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.upload_id = upload_id
        self.key = key
        self.original = original
