"""
Database Operation Exceptions - Clean Error Handling Pattern

Database operations raise these; services
catch them and decide what to log.

Usage Examples:
    try:
        conn.execute(query, params)
    except SQLAlchemyError as e:
        raise PhotoOperationError(
            "Failed to load photos", operation="get_photos_for_place"
        ) from e
"""

from typing import Any, Dict, Optional


class DatabaseOperationError(Exception):
    """
    Base exception for all database operation failures.

    Provides a clean interface for database errors without requiring
    logging dependencies in the database layer.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}

    def __str__(self):
        if self.operation:
            return f"{self.operation}: {super().__str__()}"
        return super().__str__()


class PlaceOperationError(DatabaseOperationError):
    """Place-specific database operation errors."""

    pass


class PhotoOperationError(DatabaseOperationError):
    """Photo-specific database operation errors."""

    pass


class SequenceConflictError(PhotoOperationError):
    """
    Photo insert kept colliding on (place_id, photo_num) or (place_id, slug)
    and ran out of attempts.
    """

    pass


class ThumbnailJobOperationError(DatabaseOperationError):
    """Thumbnail job queue database operation errors."""

    pass


class DatabaseInitializationError(DatabaseOperationError):
    """Raised when schema creation fails."""

    pass


class DatabaseConnectionError(DatabaseOperationError):
    """Raised when the engine cannot be created or is not available."""

    pass
