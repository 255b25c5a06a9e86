# backend/gallery/enums.py
"""
Application Enums - Centralized enum definitions.

Kept in one module so constants, models and services can share them
without circular imports.
"""

from enum import Enum


# =============================================================================
# PHOTO SYSTEM
# =============================================================================


class ThumbnailStatus(str, Enum):
    """Derived artifact progress for a photo. Must be: pending, processing, completed, failed."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ThumbnailVariant(str, Enum):
    """Fixed-size raster variants produced for every photo."""

    THUMB = "thumb"
    SMALL = "small"
    MEDIUM = "medium"


class ImageFormat(str, Enum):
    """Image formats recognised by magic number."""

    JPEG = "JPEG"
    PNG = "PNG"
    WEBP = "WebP"
    GIF = "GIF"


# =============================================================================
# JOB SYSTEMS
# =============================================================================


class JobStatus(str, Enum):
    """Background job statuses."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GalleryJobType(str, Enum):
    """Job types carried by the thumbnail job queue."""

    THUMBNAIL = "thumbnail"
    OG_IMAGE = "og_image"


class JobOutcome(str, Enum):
    """Result of a single job attempt as seen by the job processing loop."""

    COMPLETED = "completed"
    RETRY = "retry"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PathErrorReason(str, Enum):
    """Why a path could not be resolved inside the blob root."""

    INVALID_ID = "invalid_id"
    INVALID_PATH = "invalid_path"
    ACCESS_DENIED = "access_denied"


# =============================================================================
# LOGGING SYSTEM
# =============================================================================


class LogLevel(str, Enum):
    """Log level constants for centralized logging system."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogSource(str, Enum):
    """Log source constants for identifying log origins."""

    SYSTEM = "system"
    WORKER = "worker"
    DATABASE = "database"
    SCHEDULER = "scheduler"
    PIPELINE = "pipeline"
    CLI = "cli"


class LogEmoji(str, Enum):
    """Type-safe emoji constants for log messages."""

    SUCCESS = "✅"
    COMPLETED = "✅"
    PENDING = "⏳"
    FAILED = "❌"
    ERROR = "❌"
    WARNING = "⚠️"
    INFO = "ℹ️"
    DEBUG = "🐞"
    CANCELED = "🚫"
    PROCESSING = "🔄"
    JOB = "🔄"
    RETRY = "🔁"
    UPLOAD = "📤"
    PHOTO = "📷"
    IMAGE = "🖼️"
    FOLDER = "📁"
    CLEANUP = "🧹"
    DELETE = "🗑️"
    LOCK = "🔒"
    SECURITY = "🛡️"
    DATABASE = "🗄️"
    SCHEDULER = "⏰"
    STARTUP = "🚀"
    SHUTDOWN = "🛑"
    FAVORITE = "⭐"


class LoggerName(str, Enum):
    """Logger name constants for categorizing log entries."""

    SYSTEM = "system"
    DATABASE = "database"
    PATH_RESOLVER = "path_resolver"
    FILE_VALIDATOR = "file_validator"
    SLUG_GENERATOR = "slug_generator"
    PHOTO_OPERATIONS = "photo_operations"
    PLACE_SERVICE = "place_service"
    UPLOAD_PIPELINE = "upload_pipeline"
    THUMBNAIL_PIPELINE = "thumbnail_pipeline"
    THUMBNAIL_JOBS = "thumbnail_jobs"
    THUMBNAIL_WORKER = "thumbnail_worker"
    ORPHAN_RECONCILER = "orphan_reconciler"
    SCHEDULER_WORKER = "scheduler_worker"
    MAINTENANCE = "maintenance"
