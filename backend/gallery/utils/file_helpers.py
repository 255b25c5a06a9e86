# backend/gallery/utils/file_helpers.py
"""
Filesystem helpers shared by the upload pipeline, thumbnail engine and
orphan reconciler.
"""

import os
import secrets
from pathlib import Path
from typing import Union

from ..constants import TEMP_FILE_MARKER
from ..enums import LogEmoji, LoggerName
from ..services.logger import get_service_logger

logger = get_service_logger(LoggerName.SYSTEM)


def delete_file_safe(file_path: Union[str, Path]) -> bool:
    """
    Delete a file, logging any errors. Returns True if deleted, False otherwise.

    A missing file is not an error.

    Args:
        file_path: Path to the file to delete
    """
    path = Path(file_path)
    try:
        path.unlink()
        logger.debug(
            f"Deleted file: {path.name}",
            emoji=LogEmoji.DELETE,
            extra_context={"operation": "file_delete", "file_path": str(path)},
        )
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.error(
            f"Failed to delete file {path}",
            emoji=LogEmoji.ERROR,
            error_context={"operation": "file_delete", "file_path": str(path)},
            exception=e,
        )
        return False


def temp_path_for(final_path: Path) -> Path:
    """
    Unique sibling temp path for an atomic write of `final_path`.

    "abc-thumb.webp" becomes "abc-thumb.tmp.<token>.webp" so the temp file
    lives on the same volume and is recognisable by the orphan reconciler.
    """
    token = secrets.token_hex(6)
    return final_path.with_name(
        f"{final_path.stem}{TEMP_FILE_MARKER}{token}{final_path.suffix}"
    )


def is_temp_file_name(name: str) -> bool:
    return TEMP_FILE_MARKER in name


def fsync_file(path: Path) -> None:
    """Flush file contents to disk before it is renamed into place."""
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def replace_atomic(temp_path: Path, final_path: Path) -> None:
    """Rename a fully written temp file over its final name."""
    os.replace(temp_path, final_path)
