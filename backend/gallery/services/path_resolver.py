# backend/gallery/services/path_resolver.py
"""
Path resolution confined to the blob root.

Every filesystem path the pipeline touches for a place comes from here.
Two checks apply to each path:
1. the file name component is sanitized (no "..", separators, colons or
   leading dots)
2. the final normalized absolute path must sit strictly inside the root
"""

import shutil
from pathlib import Path
from typing import Optional, Union

from ..config import settings
from ..constants import MAX_ID_VALUE
from ..enums import LogEmoji, LoggerName, PathErrorReason
from ..exceptions import NotFoundError, PathValidationError
from .logger import get_service_logger

logger = get_service_logger(LoggerName.PATH_RESOLVER)


def validate_id(value, param_name: str = "place_id") -> int:
    """
    Validate a database id used as a directory name.

    Raises:
        PathValidationError: invalid_id for non-integers and out-of-range values
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise PathValidationError(
            f"{param_name} must be a valid integer", PathErrorReason.INVALID_ID
        )
    if value < 1 or value > MAX_ID_VALUE:
        logger.warning(
            f"Invalid {param_name}: {value}",
            emoji=LogEmoji.SECURITY,
            extra_context={"param": param_name, "value": value},
        )
        raise PathValidationError(
            f"{param_name} must be between 1 and {MAX_ID_VALUE}",
            PathErrorReason.INVALID_ID,
        )
    return value


def sanitize_path_component(component: Optional[str]) -> str:
    """
    Reject path components that could escape their directory.

    Raises:
        PathValidationError: invalid_path
    """
    if not component or not isinstance(component, str):
        raise PathValidationError("Invalid path", PathErrorReason.INVALID_PATH)

    problem = None
    if ".." in component:
        problem = "contains '..' sequence"
    elif "/" in component or "\\" in component:
        problem = "contains separator"
    elif ":" in component:
        problem = "contains colon"
    elif component.startswith("."):
        problem = "starts with dot"
    elif "\x00" in component:
        problem = "contains NUL byte"

    if problem:
        logger.warning(
            f"Path traversal attempt detected: path component {problem}: {component!r}",
            emoji=LogEmoji.SECURITY,
            extra_context={
                "component": component,
                "security_violation": "path_traversal",
            },
        )
        raise PathValidationError("Invalid path", PathErrorReason.INVALID_PATH)

    return component


class PathResolver:
    """
    Resolves place directories and photo paths under a fixed root.

    Args:
        root: Directory holding one subdirectory per place
              (defaults to settings.places_directory)
    """

    def __init__(self, root: Optional[Union[str, Path]] = None):
        base = Path(root) if root is not None else settings.places_directory
        self.root = base.expanduser().resolve()

    def _ensure_within_root(self, candidate: Path) -> Path:
        normalized = candidate.resolve()
        if normalized == self.root or not normalized.is_relative_to(self.root):
            logger.warning(
                f"Path traversal attempt blocked: {normalized} is outside {self.root}",
                emoji=LogEmoji.SECURITY,
                extra_context={
                    "attempted_path": str(normalized),
                    "root": str(self.root),
                    "security_violation": "path_traversal",
                },
            )
            raise PathValidationError("Access denied", PathErrorReason.ACCESS_DENIED)
        return normalized

    def places_root(self) -> Path:
        """Root directory holding one subdirectory per place."""
        return self.root

    def resolve_directory(self, place_id: int) -> Path:
        """
        Directory for a place.

        Raises:
            PathValidationError: invalid_id or access_denied
        """
        valid_id = validate_id(place_id)
        return self._ensure_within_root(self.root / str(valid_id))

    def resolve_path(self, place_id: int, file_name: str) -> Path:
        """
        Path of a file inside a place directory.

        Raises:
            PathValidationError: invalid_id, invalid_path or access_denied
        """
        valid_id = validate_id(place_id)
        valid_name = sanitize_path_component(file_name)
        return self._ensure_within_root(self.root / str(valid_id) / valid_name)

    def resolve_existing_path(self, place_id: int, file_name: str) -> Path:
        """
        Like resolve_path, but the file must exist.

        Raises:
            NotFoundError: If the file is missing
        """
        path = self.resolve_path(place_id, file_name)
        if not path.is_file():
            logger.warning(f"File not found: {file_name} for place {place_id}")
            raise NotFoundError(f"File not found: {file_name}")
        return path

    def create_directory(self, place_id: int) -> Path:
        """Create the place directory. Existing directories are fine."""
        directory = self.resolve_directory(place_id)
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def delete_directory(self, place_id: int) -> bool:
        """
        Recursively delete the place directory.

        Returns:
            True if something was deleted, False if it did not exist
        """
        directory = self.resolve_directory(place_id)
        if not directory.exists():
            return False
        shutil.rmtree(directory)
        logger.info(
            f"Deleted directory for place {place_id}",
            emoji=LogEmoji.DELETE,
            extra_context={"place_id": place_id, "directory": str(directory)},
        )
        return True
