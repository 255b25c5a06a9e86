# backend/gallery/services/thumbnail_pipeline/file_lock.py
"""
Exclusive-create lock files guarding thumbnail generation of one image.

The lock is the only inter-process mutual exclusion in the blob store.
A lock older than the timeout is stale: it is taken over by writing a
fresh lock to a temp path and renaming it over the old one, then reading
the token back to confirm ownership.
"""

import os
import secrets
from pathlib import Path
from typing import Optional

from ...enums import LogEmoji, LoggerName, LogSource
from ...exceptions import ThumbnailLockBusyError
from ...utils.file_helpers import temp_path_for
from ...utils.time_utils import file_age_seconds, utc_timestamp
from ..logger import get_service_logger

logger = get_service_logger(LoggerName.THUMBNAIL_PIPELINE, LogSource.PIPELINE)


class ThumbnailLock:
    """
    Context manager holding `{stem}.lock` for the duration of a generation pass.

    Args:
        lock_path: Path of the lock file
        timeout_seconds: Age after which an existing lock is treated as stale

    Raises:
        ThumbnailLockBusyError: On enter, if a live lock is held by someone else
    """

    def __init__(self, lock_path: Path, timeout_seconds: float):
        self.lock_path = Path(lock_path)
        self.timeout_seconds = timeout_seconds
        self.token = secrets.token_hex(16)
        self.acquired = False

    def _lock_contents(self) -> bytes:
        return f"{self.token}\n{os.getpid()}\n{utc_timestamp()}\n".encode()

    def _read_token(self) -> Optional[str]:
        try:
            return self.lock_path.read_text().split("\n", 1)[0]
        except OSError:
            return None

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        try:
            os.write(fd, self._lock_contents())
        finally:
            os.close(fd)
        return True

    def _take_over_stale(self) -> bool:
        temp_lock = temp_path_for(self.lock_path)
        temp_lock.write_bytes(self._lock_contents())
        os.replace(temp_lock, self.lock_path)
        # A second stale detector may have renamed its own lock over ours
        return self._read_token() == self.token

    def acquire(self) -> None:
        if self._try_create():
            self.acquired = True
            return

        try:
            age = file_age_seconds(self.lock_path)
        except FileNotFoundError:
            # Released between our create attempt and the stat
            if self._try_create():
                self.acquired = True
                return
            raise ThumbnailLockBusyError(f"Lock busy: {self.lock_path.name}")

        if age < self.timeout_seconds:
            raise ThumbnailLockBusyError(
                f"Thumbnail generation already in progress ({self.lock_path.name}, "
                f"{age:.0f}s old)"
            )

        logger.warning(
            f"Replacing stale thumbnail lock {self.lock_path.name} ({age:.0f}s old)",
            emoji=LogEmoji.LOCK,
            extra_context={"lock_path": str(self.lock_path), "age_seconds": age},
        )
        if not self._take_over_stale():
            raise ThumbnailLockBusyError(
                f"Lost stale lock takeover race for {self.lock_path.name}"
            )
        self.acquired = True

    def release(self) -> None:
        if not self.acquired:
            return
        self.acquired = False
        if self._read_token() != self.token:
            # Our lock went stale and someone else owns the file now
            return
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass

    def __enter__(self) -> "ThumbnailLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
