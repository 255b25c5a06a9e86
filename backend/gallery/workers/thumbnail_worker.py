# backend/gallery/workers/thumbnail_worker.py
"""
Thumbnail Worker - background processor for the thumbnail job queue.

Thumbnail jobs:
- photo row gone: job cancelled, nothing retried
- first attempt moves the photo from pending to processing
- source blob missing or empty: photo failed, job cancelled
- variants generated: dimensions recorded, photo completed, job completed,
  preview job queued
- any other failure is retried with capped quadratic backoff; the photo
  keeps its status until the last attempt fails, then it is marked failed

Preview (og_image) jobs follow the same retry rules but never change the
photo's thumbnail status.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from typing_extensions import assert_never

from ..config import settings
from ..database.core import SyncDatabase
from ..database.photo_operations import SyncPhotoOperations
from ..database.place_operations import SyncPlaceOperations
from ..database.thumbnail_job_operations import SyncThumbnailJobOperations
from ..enums import GalleryJobType, LogEmoji, LoggerName
from ..exceptions import JobCancelledError
from ..models.photo_model import Photo
from ..models.thumbnail_job_model import (
    OgImageJobPayload,
    ThumbnailJob,
    ThumbnailJobPayload,
)
from ..services.path_resolver import PathResolver
from ..services.thumbnail_job_service import ThumbnailJobService
from ..services.thumbnail_pipeline import (
    OgImageGenerator,
    ThumbnailEngine,
    og_file_name,
)
from .mixins.job_processing_mixin import JobProcessingMixin


class ThumbnailWorker(JobProcessingMixin[ThumbnailJob]):
    """
    Processes thumbnail and preview jobs.

    Args:
        db: Database holding photos, places and the job queue
        path_resolver: Resolver for the blob root
        engine: Thumbnail engine (built from settings if None)
        og_generator: Preview generator (built from settings if None)
        job_service: Used to queue the preview after a thumbnail succeeds
        batch_size: Jobs claimed per cycle
        worker_interval: Seconds between cycles
    """

    def __init__(
        self,
        db: SyncDatabase,
        path_resolver: Optional[PathResolver] = None,
        engine: Optional[ThumbnailEngine] = None,
        og_generator: Optional[OgImageGenerator] = None,
        job_service: Optional[ThumbnailJobService] = None,
        batch_size: Optional[int] = None,
        worker_interval: Optional[float] = None,
    ):
        super().__init__(
            name="ThumbnailWorker",
            logger_name=LoggerName.THUMBNAIL_WORKER,
            retry_base_seconds=settings.thumbnail_job_backoff_base_seconds,
            retry_cap_seconds=settings.thumbnail_job_backoff_cap_seconds,
            batch_size=batch_size or settings.job_batch_size,
            worker_interval=worker_interval or settings.job_worker_interval_seconds,
            cleanup_hours=settings.job_cleanup_hours,
            job_timeout_seconds=settings.thumbnail_job_timeout_seconds,
        )
        self.job_ops = SyncThumbnailJobOperations(db)
        self.photo_ops = SyncPhotoOperations(db)
        self.place_ops = SyncPlaceOperations(db)
        self.path_resolver = path_resolver or PathResolver()
        self.engine = engine or ThumbnailEngine()
        self.og_generator = og_generator or OgImageGenerator()
        self.job_service = job_service or ThumbnailJobService(db)

    async def initialize(self) -> None:
        self.log_info(
            f"Initialized with batch_size={self.batch_size}, "
            f"interval={self.worker_interval}s",
            emoji=LogEmoji.STARTUP,
            extra_context={
                "batch_size": self.batch_size,
                "worker_interval": self.worker_interval,
                "job_timeout_seconds": self.job_timeout_seconds,
            },
        )

    async def cleanup(self) -> None:
        self.engine.close()
        self.log_info(
            f"Final worker stats: {self.processed_jobs_total} processed, "
            f"{self.failed_jobs_total} failed, {self.retried_jobs_total} retried, "
            f"{self.cancelled_jobs_total} cancelled",
            emoji=LogEmoji.SHUTDOWN,
        )

    # Queue transitions

    def get_pending_jobs(self, batch_size: int) -> List[ThumbnailJob]:
        return self.job_ops.claim_pending_jobs(batch_size)

    def mark_job_completed(self, job_id: int) -> bool:
        return self.job_ops.mark_job_completed(job_id)

    def mark_job_cancelled(self, job_id: int, reason: str) -> bool:
        return self.job_ops.mark_job_cancelled(job_id, reason)

    def mark_job_failed(self, job_id: int, error_message: str, retry_count: int) -> bool:
        return self.job_ops.mark_job_failed(job_id, error_message, retry_count)

    def schedule_job_retry(
        self, job_id: int, retry_count: int, delay_seconds: float, error_message: str
    ) -> bool:
        return self.job_ops.schedule_retry(job_id, retry_count, delay_seconds, error_message)

    def recover_stuck_jobs(self, timeout_seconds: int) -> int:
        return self.job_ops.recover_stuck_jobs(timeout_seconds)

    def cleanup_completed_jobs(self, hours_to_keep: int) -> int:
        return self.job_ops.cleanup_completed_jobs(hours_to_keep)

    def get_queue_statistics(self) -> Dict[str, Any]:
        return self.job_ops.get_queue_statistics()

    # Handlers

    def process_single_job_impl(self, job: ThumbnailJob) -> None:
        payload = job.payload()
        match payload:
            case ThumbnailJobPayload():
                self._process_thumbnail(job, payload)
            case OgImageJobPayload():
                self._process_og_image(payload)
            case _:
                assert_never(payload)

    def _process_thumbnail(self, job: ThumbnailJob, payload: ThumbnailJobPayload) -> None:
        photo = self._load_photo(payload.photo_id)
        if job.retry_count == 0:
            self.photo_ops.mark_thumbnail_processing(photo.id)

        directory = self.path_resolver.resolve_directory(photo.place_id)
        source = self.path_resolver.resolve_path(photo.place_id, photo.file_name)
        if not self._has_content(source):
            self.photo_ops.mark_thumbnail_failed(photo.id)
            raise JobCancelledError(
                f"Source file missing or empty for photo {photo.id}: {photo.file_name}"
            )

        width, height = self.engine.generate(source, photo.file_name, directory)
        if photo.width is None or photo.height is None:
            self.photo_ops.update_dimensions(photo.id, width, height)
        self.photo_ops.mark_thumbnail_completed(photo.id)

    def _process_og_image(self, payload: OgImageJobPayload) -> None:
        photo = self._load_photo(payload.photo_id)
        place = self.place_ops.get_place(photo.place_id)
        if place is None:
            raise JobCancelledError(f"Place {photo.place_id} no longer exists")

        source = self.path_resolver.resolve_path(photo.place_id, photo.file_name)
        if not self._has_content(source):
            raise JobCancelledError(
                f"Source file missing or empty for photo {photo.id}: {photo.file_name}"
            )
        output = self.path_resolver.resolve_path(
            photo.place_id, og_file_name(photo.file_name)
        )
        self.og_generator.generate(source, output, place.name, place.location)

    def _load_photo(self, photo_id: int) -> Photo:
        photo = self.photo_ops.get_photo_by_id(photo_id)
        if photo is None:
            raise JobCancelledError(f"Photo {photo_id} no longer exists")
        return photo

    @staticmethod
    def _has_content(path: Path) -> bool:
        try:
            return path.is_file() and path.stat().st_size > 0
        except OSError:
            return False

    # Hooks

    def on_job_completed(self, job: ThumbnailJob) -> None:
        if job.job_type == GalleryJobType.THUMBNAIL:
            self.job_service.enqueue_og_image(job.photo_id, job.place_id, job.file_name)

    def on_job_exhausted(self, job: ThumbnailJob, error_message: str) -> None:
        if job.job_type == GalleryJobType.THUMBNAIL:
            self.photo_ops.mark_thumbnail_failed(job.photo_id)
