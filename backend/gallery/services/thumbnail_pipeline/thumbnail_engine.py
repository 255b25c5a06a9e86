# backend/gallery/services/thumbnail_pipeline/thumbnail_engine.py
"""
Thumbnail Engine Component

Derives the fixed-size WebP variants (200/400/800 px on the longer side)
of a primary image.

Guarantees:
- readers never observe a partially written variant: each one is encoded
  to a temp file, fsync'ed and renamed into place
- a pass either produces every variant or leaves no variant behind
- variants are rendered upright (EXIF orientation applied), matching the
  social preview
- one pass per image at a time, across processes, via ThumbnailLock
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import List, Optional, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from ...config import settings
from ...constants import THUMBNAIL_FORMAT
from ...enums import LogEmoji, LoggerName, LogSource, ThumbnailVariant
from ...exceptions import (
    NotFoundError,
    OperationTimeoutError,
    StorageError,
)
from ...utils.file_helpers import (
    delete_file_safe,
    fsync_file,
    replace_atomic,
    temp_path_for,
)
from ..logger import get_service_logger
from .file_lock import ThumbnailLock
from .naming import (
    calculate_dimensions,
    lock_file_name,
    og_file_name,
    variant_file_names,
)

logger = get_service_logger(LoggerName.THUMBNAIL_PIPELINE, LogSource.PIPELINE)

PathLike = Union[str, Path]

# Pillow failures on unreadable or oversized input
RENDER_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    SyntaxError,
    ValueError,
    MemoryError,
)


def _discard_late_result(future: Future) -> None:
    """Delete the temp file of a render that finished after its caller gave up."""
    if future.cancelled() or future.exception() is not None:
        return
    delete_file_safe(future.result())


class ThumbnailEngine:
    """
    Generates and deletes thumbnail variants for primary blobs.

    Args:
        quality: WebP quality (1-100)
        variant_attempts: Attempts per variant before the pass fails
        backoff_seconds: Linear backoff unit between attempts
        variant_timeout_seconds: Budget for one variant attempt
        lock_timeout_seconds: Age after which a lock file is stale
    """

    def __init__(
        self,
        quality: Optional[int] = None,
        variant_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        variant_timeout_seconds: Optional[float] = None,
        lock_timeout_seconds: Optional[float] = None,
    ):
        self.quality = quality if quality is not None else settings.thumbnail_quality
        self.variant_attempts = (
            variant_attempts
            if variant_attempts is not None
            else settings.thumbnail_variant_attempts
        )
        self.backoff_seconds = (
            backoff_seconds
            if backoff_seconds is not None
            else settings.thumbnail_variant_backoff_seconds
        )
        self.variant_timeout_seconds = (
            variant_timeout_seconds
            if variant_timeout_seconds is not None
            else settings.thumbnail_variant_timeout_seconds
        )
        self.lock_timeout_seconds = (
            lock_timeout_seconds
            if lock_timeout_seconds is not None
            else settings.thumbnail_lock_timeout_seconds
        )
        self._executor = ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="thumbnail-render"
        )

    def close(self) -> None:
        """Stop the render thread pool without waiting for hung renders."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    # Public API

    def generate(
        self, source_path: PathLike, base_name: str, output_dir: PathLike
    ) -> Tuple[int, int]:
        """
        Generate every thumbnail variant of a source image.

        Args:
            source_path: Primary blob to read
            base_name: Primary blob file name (variants derive from its stem)
            output_dir: Directory receiving the variants and the lock file

        Returns:
            (width, height) of the source image

        Raises:
            NotFoundError: Source missing
            ThumbnailLockBusyError: Another worker is generating this image
            OperationTimeoutError: A variant exceeded its time budget on every attempt
            StorageError: Decode, encode or filesystem failure
        """
        source = Path(source_path)
        output = Path(output_dir)
        if not source.is_file():
            raise NotFoundError(f"Original file not found: {source.name}")

        source_dimensions = self._read_dimensions(source)
        output.mkdir(parents=True, exist_ok=True)

        with ThumbnailLock(output / lock_file_name(base_name), self.lock_timeout_seconds):
            written: List[Path] = []
            try:
                for variant, file_name, max_dimension in variant_file_names(base_name):
                    final_path = output / file_name
                    self._generate_variant_with_retry(
                        source, final_path, variant, max_dimension
                    )
                    written.append(final_path)
            except Exception as e:
                # Older variants of this image must not outlive a failed pass either
                for _, file_name, _ in variant_file_names(base_name):
                    delete_file_safe(output / file_name)
                logger.error(
                    f"Thumbnail generation failed for {base_name}, removed "
                    f"{len(written)} variants written in this pass",
                    error_context={"base_name": base_name, "error": str(e)},
                )
                raise

        logger.info(
            f"Generated all thumbnails for {base_name}",
            emoji=LogEmoji.IMAGE,
            extra_context={
                "base_name": base_name,
                "width": source_dimensions[0],
                "height": source_dimensions[1],
            },
        )
        return source_dimensions

    def delete(self, base_name: str, directory: PathLike) -> int:
        """
        Delete all variants and the social preview of a primary blob.

        Returns:
            Number of files removed (missing files are ignored)
        """
        directory = Path(directory)
        names = [name for _, name, _ in variant_file_names(base_name)]
        names.append(og_file_name(base_name))
        return sum(1 for name in names if delete_file_safe(directory / name))

    def variants_exist(self, base_name: str, directory: PathLike) -> bool:
        directory = Path(directory)
        return all(
            (directory / name).is_file() for _, name, _ in variant_file_names(base_name)
        )

    # Internals

    def _read_dimensions(self, source: Path) -> Tuple[int, int]:
        try:
            with Image.open(source) as img:
                return img.size
        except RENDER_ERRORS as e:
            raise StorageError(f"Cannot read image {source.name}: {e}") from e

    def _generate_variant_with_retry(
        self,
        source: Path,
        final_path: Path,
        variant: ThumbnailVariant,
        max_dimension: int,
    ) -> None:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.variant_attempts + 1):
            try:
                self._generate_variant(source, final_path, max_dimension)
                return
            except (StorageError, OperationTimeoutError) as e:
                last_error = e
                logger.warning(
                    f"Variant {variant.value} of {source.name} failed "
                    f"(attempt {attempt}/{self.variant_attempts}): {e}",
                    emoji=LogEmoji.RETRY,
                )
                if attempt < self.variant_attempts and self.backoff_seconds > 0:
                    time.sleep(self.backoff_seconds * attempt)

        assert last_error is not None
        raise last_error

    def _generate_variant(
        self, source: Path, final_path: Path, max_dimension: int
    ) -> None:
        future = self._executor.submit(
            self._render_variant, source, final_path, max_dimension
        )
        try:
            temp_path = future.result(timeout=self.variant_timeout_seconds)
        except FutureTimeoutError as e:
            future.add_done_callback(_discard_late_result)
            raise OperationTimeoutError(
                f"Rendering {final_path.name} exceeded "
                f"{self.variant_timeout_seconds}s"
            ) from e

        try:
            fsync_file(temp_path)
            replace_atomic(temp_path, final_path)
        except OSError as e:
            delete_file_safe(temp_path)
            raise StorageError(f"Failed to move {final_path.name} into place: {e}") from e

    def _render_variant(self, source: Path, final_path: Path, max_dimension: int) -> Path:
        """Encode one variant to a temp file next to its final path."""
        temp_path = temp_path_for(final_path)
        try:
            with Image.open(source) as opened:
                img = ImageOps.exif_transpose(opened)
                if img.mode not in ("RGB", "RGBA"):
                    img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
                size = calculate_dimensions(img.width, img.height, max_dimension)
                resized = img.resize(size, Image.Resampling.LANCZOS)
                resized.save(
                    temp_path,
                    THUMBNAIL_FORMAT,
                    quality=self.quality,
                    method=4,
                )
            return temp_path
        except RENDER_ERRORS as e:
            delete_file_safe(temp_path)
            raise StorageError(f"Failed to render {final_path.name}: {e}") from e
