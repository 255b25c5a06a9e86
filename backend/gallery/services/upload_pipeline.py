# backend/gallery/services/upload_pipeline.py
"""
Upload Pipeline - batch photo upload and photo mutations.

Upload sequence:
1. validate the whole batch (every failing file is reported)
2. the place must exist
3. create the place directory if needed
4. per file, independently: copy to a uuid-named blob, read its dimensions,
   append it to the place's photo sequence, queue thumbnail generation

A file that fails in step 4 does not abort the others. If its database
insert fails, the blob and anything derived from it are deleted before
the call returns, so no blob outlives a failed upload without a row.
Queueing the thumbnail job is best-effort.
"""

import shutil
import uuid
from pathlib import Path
from typing import List, Optional, Sequence

from ..constants import EXTENSION_NORMALIZATION
from ..database.core import SyncDatabase
from ..database.exceptions import DatabaseOperationError
from ..database.photo_operations import SyncPhotoOperations
from ..database.place_operations import SyncPlaceOperations
from ..database.thumbnail_job_operations import SyncThumbnailJobOperations
from ..enums import LogEmoji, LoggerName, LogSource
from ..exceptions import (
    GalleryError,
    NotFoundError,
    StorageError,
    UploadFailedError,
)
from ..models.photo_model import Photo
from ..models.upload_model import UploadedFile, UploadResult
from ..utils.file_helpers import delete_file_safe, fsync_file, replace_atomic, temp_path_for
from .file_validator import FileValidator, normalized_extension, read_image_dimensions
from .logger import get_service_logger
from .path_resolver import PathResolver
from .thumbnail_job_service import ThumbnailJobService
from .thumbnail_pipeline.naming import derived_file_names

logger = get_service_logger(LoggerName.UPLOAD_PIPELINE, LogSource.PIPELINE)


def stored_file_name(original_filename: str) -> str:
    """uuid4 hex plus the normalized lowercase extension (".jpeg" -> ".jpg")."""
    extension = normalized_extension(original_filename)
    extension = EXTENSION_NORMALIZATION.get(extension, extension)
    return f"{uuid.uuid4().hex}{extension}"


class UploadPipeline:
    """
    Orchestrates validation, blob storage, sequencing and job queueing.

    Args:
        db: Database holding places, photos and the job queue
        path_resolver: Resolver for the blob root
        validator: Upload validator
    """

    def __init__(
        self,
        db: SyncDatabase,
        path_resolver: Optional[PathResolver] = None,
        validator: Optional[FileValidator] = None,
        job_service: Optional[ThumbnailJobService] = None,
    ):
        self.db = db
        self.path_resolver = path_resolver or PathResolver()
        self.validator = validator or FileValidator()
        self.photo_ops = SyncPhotoOperations(db)
        self.place_ops = SyncPlaceOperations(db)
        self.job_ops = SyncThumbnailJobOperations(db)
        self.job_service = job_service or ThumbnailJobService(db)

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload_photos(
        self, place_id: int, files: Sequence[UploadedFile]
    ) -> UploadResult:
        """
        Upload a batch of photos to a place.

        Returns:
            UploadResult with the number stored and one error per failed file

        Raises:
            ValidationError: The batch failed validation (lists every bad file)
            NotFoundError: The place does not exist
            PathValidationError: The place directory cannot be resolved
            UploadFailedError: Every file failed (lists every failure)
        """
        self.validator.validate_batch(files)

        if not self.place_ops.place_exists(place_id):
            logger.warning(f"Place not found for upload: {place_id}")
            raise NotFoundError(f"Place {place_id} not found")

        directory = self.path_resolver.create_directory(place_id)

        photo_ids: List[int] = []
        errors: List[str] = []
        for upload in files:
            try:
                photo_ids.append(self._store_file(place_id, directory, upload))
            except (GalleryError, DatabaseOperationError, OSError) as e:
                logger.warning(
                    f"Upload of {upload.filename} to place {place_id} failed: {e}",
                    emoji=LogEmoji.UPLOAD,
                    extra_context={"place_id": place_id, "filename": upload.filename},
                )
                errors.append(f"{upload.filename}: {e}")

        if not photo_ids:
            logger.error(
                f"All {len(files)} uploads to place {place_id} failed",
                error_context={"place_id": place_id, "errors": errors},
            )
            raise UploadFailedError(
                f"Failed to upload any photos: {'; '.join(errors)}", errors
            )

        logger.info(
            f"Uploaded {len(photo_ids)} of {len(files)} photos to place {place_id}",
            emoji=LogEmoji.UPLOAD,
            extra_context={
                "place_id": place_id,
                "uploaded": len(photo_ids),
                "failed": len(errors),
            },
        )
        return UploadResult(uploaded=len(photo_ids), photo_ids=photo_ids, errors=errors)

    def _store_file(self, place_id: int, directory: Path, upload: UploadedFile) -> int:
        file_name = stored_file_name(upload.filename or "")
        blob_path = self.path_resolver.resolve_path(place_id, file_name)

        self._write_blob(upload.path, blob_path)
        try:
            dimensions = read_image_dimensions(blob_path)
            if dimensions is None:
                raise StorageError("Unable to read image dimensions")
            width, height = dimensions
            inserted = self.photo_ops.insert_photo(place_id, file_name, width, height)
        except Exception:
            self._remove_blob(directory, file_name)
            raise

        logger.debug(
            f"Saved photo {inserted.photo_num} for place {place_id}: "
            f"{file_name} ({width}x{height})",
            emoji=LogEmoji.PHOTO,
        )
        self.job_service.enqueue_thumbnail(inserted.photo_id, place_id, file_name)
        return inserted.photo_id

    @staticmethod
    def _write_blob(source: Path, destination: Path) -> None:
        temp_path = temp_path_for(destination)
        try:
            shutil.copyfile(source, temp_path)
            fsync_file(temp_path)
            replace_atomic(temp_path, destination)
        except OSError as e:
            delete_file_safe(temp_path)
            raise StorageError(f"Failed to store file: {e}") from e

    @staticmethod
    def _remove_blob(directory: Path, file_name: str) -> None:
        delete_file_safe(directory / file_name)
        for derived in derived_file_names(file_name):
            delete_file_safe(directory / derived)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def delete_photo(self, place_id: int, photo_num: int) -> Photo:
        """
        Delete a photo row (renumbering the rest), then its blob and
        derived artifacts.

        Raises:
            NotFoundError: No photo at that position
        """
        photo = self.photo_ops.delete_photo(place_id, photo_num)

        try:
            self.job_ops.cancel_jobs_for_photo(photo.id)
        except DatabaseOperationError as e:
            # Jobs of a deleted photo cancel themselves when they run
            logger.warning(f"Failed to cancel jobs for photo {photo.id}: {e}")

        directory = self.path_resolver.resolve_directory(place_id)
        self._remove_blob(directory, photo.file_name)

        logger.info(
            f"Deleted photo {photo_num} from place {place_id}",
            emoji=LogEmoji.DELETE,
            extra_context={
                "place_id": place_id,
                "photo_id": photo.id,
                "file_name": photo.file_name,
            },
        )
        return photo

    def reorder_photos(self, place_id: int, permutation: Sequence[int]) -> None:
        """
        Raises:
            ValidationError: permutation does not match the current photos
        """
        self.photo_ops.reorder_photos(place_id, permutation)
        logger.info(
            f"Reordered {len(permutation)} photos for place {place_id}",
            extra_context={"place_id": place_id},
        )

    def set_favorite(self, place_id: int, photo_num: int, is_favorite: bool) -> bool:
        updated = self.photo_ops.set_favorite(place_id, photo_num, is_favorite)
        if not updated:
            logger.warning(
                f"Photo not found for favorite toggle: place {place_id}, "
                f"photo {photo_num}"
            )
        else:
            action = "Set" if is_favorite else "Removed"
            logger.info(
                f"{action} favorite for place {place_id}, photo {photo_num}",
                emoji=LogEmoji.FAVORITE,
            )
        return updated
