# backend/gallery/exceptions.py
"""
Domain exceptions for the gallery pipeline.

The taxonomy decides what happens to a failure:

- ValidationError: bad input, never retried, message shown to the caller verbatim
- NotFoundError: target row or file is absent, reported and not retried
- StorageError: disk, permission or codec failure, partial artifacts are cleaned up
- JobCancelledError: a background job's source record vanished, terminal
- OperationTimeoutError: a bounded operation exceeded its budget, retried as transient

Concurrency exhaustion on the photo sequence lives with the database
exceptions as SequenceConflictError.
"""

from typing import List, Optional

from .enums import PathErrorReason


class GalleryError(Exception):
    """Base class for all gallery domain errors."""

    pass


class ValidationError(GalleryError):
    """
    Raised for input that fails validation.

    Batch validators attach every per-item failure in `errors` so callers can
    report all of them, not just the first.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors if errors is not None else [message]


class NotFoundError(GalleryError):
    """Raised when a place, photo or file does not exist."""

    pass


class StorageError(GalleryError):
    """Raised for blob store and image codec failures."""

    pass


class UploadFailedError(StorageError):
    """Raised when every file in an upload batch failed."""

    def __init__(self, message: str, errors: List[str]):
        super().__init__(message)
        self.errors = errors


class ThumbnailLockBusyError(StorageError):
    """Raised when another process holds a live thumbnail lock for the image."""

    pass


class JobCancelledError(GalleryError):
    """Raised by job handlers whose source record no longer exists."""

    pass


class OperationTimeoutError(GalleryError):
    """Raised when a bounded operation exceeds its time budget."""

    pass


class PathValidationError(GalleryError):
    """
    Raised when a path cannot be safely resolved inside the blob root.

    Attributes:
        reason: invalid_id, invalid_path or access_denied
    """

    def __init__(self, message: str, reason: PathErrorReason):
        super().__init__(message)
        self.reason = reason
