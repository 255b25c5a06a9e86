# backend/gallery/utils/time_utils.py
"""
Time helpers. All timestamps stored or compared by the pipeline are UTC.
"""

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

UTC_TIMEZONE = timezone.utc


def utc_now() -> datetime:
    """
    Get current UTC timestamp (timezone-aware).

    Returns:
        Current UTC datetime object
    """
    return datetime.now(UTC_TIMEZONE)


def utc_timestamp() -> str:
    """Current UTC timestamp as ISO string."""
    return utc_now().isoformat()


def unix_timestamp() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


def file_age_seconds(path: Union[str, Path], now: Optional[float] = None) -> float:
    """
    Age of a file or directory based on its mtime.

    Args:
        path: File or directory to inspect
        now: Reference Unix time (defaults to time.time())

    Returns:
        Seconds since last modification (never negative)

    Raises:
        OSError: If the path cannot be stat'ed
    """
    reference = time.time() if now is None else now
    return max(0.0, reference - Path(path).stat().st_mtime)
