# backend/gallery/services/file_validator.py
"""
Upload validation.

Checks run in a fixed order and stop at the first failure:
file name -> size -> extension -> declared MIME type -> magic number ->
dimensions. The dimension probe only parses the image header, so a
decompression bomb is rejected before any pixel data is decoded.
Nothing here writes to the blob store.
"""

import os
import warnings
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from ..config import settings
from ..constants import (
    ALLOWED_EXTENSIONS,
    ALLOWED_MIME_TYPES,
    GIF_MAGICS,
    JPEG_MAGIC,
    MAGIC_NUMBER_READ_BYTES,
    MAX_FILENAME_LENGTH,
    PNG_MAGIC,
    WEBP_FORMAT_MAGIC,
    WEBP_RIFF_MAGIC,
)
from ..enums import ImageFormat, LogEmoji, LoggerName
from ..exceptions import ValidationError
from ..models.upload_model import UploadedFile
from .logger import get_service_logger

logger = get_service_logger(LoggerName.FILE_VALIDATOR)


def detect_format_from_magic(header: bytes) -> Optional[ImageFormat]:
    """
    Identify an image format from its leading bytes.

    Args:
        header: At least the first 12 bytes of the file

    Returns:
        The detected format, or None for unknown content
    """
    if header.startswith(JPEG_MAGIC):
        return ImageFormat.JPEG
    if header.startswith(PNG_MAGIC):
        return ImageFormat.PNG
    if (
        len(header) >= 12
        and header[:4] == WEBP_RIFF_MAGIC
        and header[8:12] == WEBP_FORMAT_MAGIC
    ):
        return ImageFormat.WEBP
    if header[:6] in GIF_MAGICS:
        return ImageFormat.GIF
    return None


def normalized_extension(filename: str) -> str:
    """Lowercased extension including the dot, '' if there is none."""
    return os.path.splitext(filename)[1].lower()


class FileValidator:
    """
    Validates uploads against size, type and dimension limits.

    Limits default to the application settings; pass explicit values to
    override them (tests, CLI tools).
    """

    def __init__(
        self,
        max_file_size_mb: Optional[int] = None,
        max_files_per_upload: Optional[int] = None,
        max_image_width: Optional[int] = None,
        max_image_height: Optional[int] = None,
        max_image_pixels: Optional[int] = None,
    ):
        self.max_file_size_mb = max_file_size_mb or settings.max_file_size_mb
        self.max_files_per_upload = (
            max_files_per_upload or settings.max_files_per_upload
        )
        self.max_image_width = max_image_width or settings.max_image_width
        self.max_image_height = max_image_height or settings.max_image_height
        self.max_image_pixels = max_image_pixels or settings.max_image_pixels

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def validate(self, upload: UploadedFile) -> ImageFormat:
        """
        Validate a single upload.

        Returns:
            The format detected from the file's magic number

        Raises:
            ValidationError: With the first failing check's message
        """
        self._validate_file_name(upload.filename)
        self._validate_file_size(upload.path)
        self._validate_extension(upload.filename)
        self._validate_mime_type(upload.content_type)
        detected = self._validate_magic_number(upload.path)
        self._validate_dimensions(upload.path)
        logger.debug(f"Image {upload.filename}: detected format {detected.value}")
        return detected

    def validate_count(self, count: int) -> None:
        if count <= 0:
            raise ValidationError("No files provided")
        if count > self.max_files_per_upload:
            raise ValidationError(
                f"Too many files ({count}). Maximum allowed: {self.max_files_per_upload}"
            )

    def validate_batch(self, uploads: Sequence[UploadedFile]) -> List[ImageFormat]:
        """
        Validate a batch, reporting every failing file.

        Returns:
            Detected formats in upload order

        Raises:
            ValidationError: `errors` lists "File {i} ({name}): {reason}" for
                each failing file, or the single count error
        """
        self.validate_count(len(uploads))

        formats: List[ImageFormat] = []
        errors: List[str] = []
        for index, upload in enumerate(uploads, start=1):
            try:
                formats.append(self.validate(upload))
            except ValidationError as e:
                errors.append(f"File {index} ({upload.filename}): {e}")

        if errors:
            logger.warning(
                f"Upload batch rejected: {len(errors)} of {len(uploads)} files invalid",
                emoji=LogEmoji.SECURITY,
                extra_context={"errors": errors},
            )
            raise ValidationError("; ".join(errors), errors=errors)
        return formats

    # Individual checks

    def _validate_file_name(self, filename: Optional[str]) -> None:
        if not filename:
            raise ValidationError("Invalid file name")
        if ".." in filename or "/" in filename or "\\" in filename:
            raise ValidationError(
                "File name contains invalid characters (possible path traversal attempt)"
            )
        if len(filename) > MAX_FILENAME_LENGTH:
            raise ValidationError(
                f"File name is too long (max {MAX_FILENAME_LENGTH} characters)"
            )

    def _validate_file_size(self, path: Path) -> None:
        try:
            size = path.stat().st_size
        except OSError as e:
            raise ValidationError("Unable to read file size") from e
        if size == 0:
            raise ValidationError("File is empty")
        if size > self.max_file_size_bytes:
            size_mb = round(size / 1024 / 1024, 2)
            raise ValidationError(
                f"File size ({size_mb} MB) exceeds maximum allowed size "
                f"({self.max_file_size_mb} MB)"
            )

    def _validate_extension(self, filename: str) -> None:
        extension = normalized_extension(filename)
        if not extension:
            raise ValidationError("File has no extension")
        if extension not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                f"File extension '{extension}' is not allowed. "
                f"Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )

    def _validate_mime_type(self, content_type: Optional[str]) -> None:
        if not content_type:
            raise ValidationError("File MIME type is missing")
        if content_type.lower() not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                f"MIME type '{content_type}' is not allowed. "
                f"Allowed: {', '.join(sorted(ALLOWED_MIME_TYPES))}"
            )

    def _validate_magic_number(self, path: Path) -> ImageFormat:
        try:
            with open(path, "rb") as f:
                header = f.read(MAGIC_NUMBER_READ_BYTES)
        except OSError as e:
            raise ValidationError("Unable to open file for validation") from e

        if len(header) < 8:
            raise ValidationError(
                f"File is too small to validate ({len(header)} bytes)"
            )
        detected = detect_format_from_magic(header)
        if detected is None:
            raise ValidationError(
                "File content does not match any valid image format (invalid magic number)"
            )
        return detected

    def _validate_dimensions(self, path: Path) -> None:
        # Image.open only parses the header; pixel data is decoded lazily
        # and never requested here.
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", Image.DecompressionBombWarning)
                with Image.open(path) as img:
                    width, height = img.size
        except Image.DecompressionBombError as e:
            raise ValidationError(
                "Image dimensions exceed the maximum allowed pixel count"
            ) from e
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            raise ValidationError("Unable to read image dimensions") from e

        if width <= 0 or height <= 0:
            raise ValidationError("Image has invalid dimensions")
        if width > self.max_image_width or height > self.max_image_height:
            raise ValidationError(
                f"Image dimensions {width}x{height} exceed maximum "
                f"{self.max_image_width}x{self.max_image_height}"
            )
        if width * height > self.max_image_pixels:
            raise ValidationError(
                f"Image has {width * height} pixels, maximum allowed is "
                f"{self.max_image_pixels}"
            )


def read_image_dimensions(path: Path) -> Optional[Tuple[int, int]]:
    """
    Intrinsic (width, height) of a stored image from its header, or None if
    the file cannot be parsed.
    """
    try:
        with Image.open(path) as img:
            return img.size
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return None
