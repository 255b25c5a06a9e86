# backend/gallery/services/thumbnail_job_service.py
"""
Thumbnail Job Service - best-effort job queueing.

Enqueueing never fails the caller: an upload that stored its photo is a
success even if the job row could not be written. Photos left in `pending`
without a job are picked up by `MaintenanceService.retry_thumbnails`.
"""

from typing import Any, Dict, Union

from ..database.core import SyncDatabase
from ..database.exceptions import DatabaseOperationError
from ..database.thumbnail_job_operations import SyncThumbnailJobOperations
from ..enums import LogEmoji, LoggerName, LogSource
from ..models.thumbnail_job_model import OgImageJobPayload, ThumbnailJobPayload
from .logger import get_service_logger

logger = get_service_logger(LoggerName.THUMBNAIL_JOBS, LogSource.SYSTEM)


class ThumbnailJobService:
    """
    Queue thumbnail and social preview jobs for photos.

    Args:
        db: Database holding the job queue
    """

    def __init__(self, db: SyncDatabase) -> None:
        self.db = db
        self.job_ops = SyncThumbnailJobOperations(db)

    def enqueue_thumbnail(self, photo_id: int, place_id: int, file_name: str) -> bool:
        """
        Queue thumbnail generation for a photo.

        Returns:
            True if a job was queued or an equivalent job is already active
        """
        return self._enqueue(
            ThumbnailJobPayload(
                photo_id=photo_id, place_id=place_id, file_name=file_name
            )
        )

    def enqueue_og_image(self, photo_id: int, place_id: int, file_name: str) -> bool:
        """Queue social preview generation for a photo."""
        return self._enqueue(
            OgImageJobPayload(
                photo_id=photo_id, place_id=place_id, file_name=file_name
            )
        )

    def _enqueue(self, payload: Union[ThumbnailJobPayload, OgImageJobPayload]) -> bool:
        try:
            job = self.job_ops.enqueue(payload)
        except DatabaseOperationError as e:
            logger.error(
                f"Failed to queue {payload.job_type.value} job for photo "
                f"{payload.photo_id}",
                exception=e,
                error_context={
                    "photo_id": payload.photo_id,
                    "place_id": payload.place_id,
                    "job_type": payload.job_type.value,
                },
            )
            return False

        if job is None:
            logger.debug(
                f"Skipped duplicate {payload.job_type.value} job for photo "
                f"{payload.photo_id}"
            )
        else:
            logger.debug(
                f"Queued {payload.job_type.value} job {job.id} for photo {payload.photo_id}",
                emoji=LogEmoji.JOB,
            )
        return True

    def get_queue_statistics(self) -> Dict[str, Any]:
        try:
            return self.job_ops.get_queue_statistics()
        except DatabaseOperationError as e:
            logger.error("Failed to load job queue statistics", exception=e)
            return {}
