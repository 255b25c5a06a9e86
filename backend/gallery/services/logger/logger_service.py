# backend/gallery/services/logger/logger_service.py
"""
Logger service built on loguru.

`configure_logging` installs the sinks once per process and
`get_service_logger` hands out small per-component loggers that tag every
record with the component's logger name, source and emoji.
"""

import sys
from typing import Any, Dict, Optional

from loguru import logger

from ...enums import LogEmoji, LoggerName, LogLevel, LogSource

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[logger_name]}</cyan> | "
    "<level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[source]} | "
    "{extra[logger_name]} | {message} | {extra[context]}"
)

_LEVEL_FALLBACK_EMOJI = {
    LogLevel.ERROR: LogEmoji.ERROR,
    LogLevel.WARNING: LogEmoji.WARNING,
    LogLevel.INFO: LogEmoji.INFO,
    LogLevel.DEBUG: LogEmoji.DEBUG,
}


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    log_file: Optional[str] = None,
    colorize: Optional[bool] = None,
) -> None:
    """
    Replace loguru's default sink with the gallery console sink and an
    optional rotating file sink.

    Args:
        level: Minimum level for both sinks
        log_file: Path of the rotating log file, or None for console only
        colorize: Force ANSI colours on or off (auto-detected when None)
    """
    logger.remove()
    logger.configure(
        extra={
            "logger_name": LoggerName.SYSTEM.value,
            "source": LogSource.SYSTEM.value,
            "context": {},
        }
    )
    logger.add(
        sys.stderr,
        level=level.value,
        format=CONSOLE_FORMAT,
        colorize=colorize,
        backtrace=False,
        diagnose=False,
    )
    if log_file:
        logger.add(
            log_file,
            level=level.value,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="14 days",
            compression="gz",
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )


class ServiceLogger:
    """
    Pre-configured logger for a single component.

    Emoji priority system (highest to lowest):
    1. Direct: emoji passed to the log call
    2. Instance-set: default emoji given to the factory
    3. Fallback: emoji for the log level
    """

    def __init__(
        self,
        logger_name: LoggerName,
        source: LogSource = LogSource.SYSTEM,
        default_emoji: Optional[LogEmoji] = None,
    ):
        self.logger_name = logger_name
        self.source = source
        self.default_emoji = default_emoji

    def _resolve_emoji(
        self, method_emoji: Optional[LogEmoji], level: LogLevel
    ) -> LogEmoji:
        if method_emoji is not None:
            return method_emoji
        if self.default_emoji is not None:
            return self.default_emoji
        return _LEVEL_FALLBACK_EMOJI[level]

    def _log(
        self,
        level: LogLevel,
        message: str,
        emoji: Optional[LogEmoji],
        context: Optional[Dict[str, Any]],
        exception: Optional[BaseException] = None,
    ) -> None:
        bound = logger.bind(
            logger_name=self.logger_name.value,
            source=self.source.value,
            context=context or {},
        )
        if exception is not None:
            bound = bound.opt(exception=exception)
        resolved = self._resolve_emoji(emoji, level)
        bound.log(level.value, f"{resolved.value} {message}")

    def error(
        self,
        message: str,
        exception: Optional[BaseException] = None,
        error_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        """Log an error, attaching the traceback when an exception is given."""
        self._log(LogLevel.ERROR, message, emoji, error_context, exception)

    def warning(
        self,
        message: str,
        extra_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        self._log(LogLevel.WARNING, message, emoji, extra_context)

    def info(
        self,
        message: str,
        extra_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        self._log(LogLevel.INFO, message, emoji, extra_context)

    def debug(
        self,
        message: str,
        extra_context: Optional[Dict[str, Any]] = None,
        emoji: Optional[LogEmoji] = None,
    ) -> None:
        self._log(LogLevel.DEBUG, message, emoji, extra_context)


def get_service_logger(
    logger_name: LoggerName,
    source: LogSource = LogSource.SYSTEM,
    default_emoji: Optional[LogEmoji] = None,
) -> ServiceLogger:
    """
    Factory function to create a pre-configured logger for a specific service.

    Args:
        logger_name: The logger name enum to use for all calls
        source: The log source enum to use for all calls (defaults to SYSTEM)
        default_emoji: Instance-level default emoji that overrides level-based fallbacks

    Returns:
        ServiceLogger instance with error, warning, info, debug methods

    Example:
        logger = get_service_logger(LoggerName.UPLOAD_PIPELINE, LogSource.PIPELINE)
        logger.info("Uploaded 3 photos", extra_context={"place_id": 42})
    """
    return ServiceLogger(logger_name, source, default_emoji)
