"""
Centralized Logger Service Module.

Usage:
    from gallery.services.logger import get_service_logger
    from gallery.enums import LoggerName, LogSource

    logger = get_service_logger(LoggerName.THUMBNAIL_WORKER, LogSource.WORKER)
    logger.info("Job finished", extra_context={"job_id": 7})
"""

# Re-export commonly used enums for convenience
from ...enums import LogEmoji, LoggerName, LogLevel, LogSource
from .logger_service import ServiceLogger, configure_logging, get_service_logger

__all__ = [
    "ServiceLogger",
    "configure_logging",
    "get_service_logger",
    # Enums
    "LogLevel",
    "LogSource",
    "LoggerName",
    "LogEmoji",
]
