# backend/gallery/services/maintenance_service.py
"""
Maintenance Service - operational sweeps over the photo table.

- retry_thumbnails: re-queue photos whose thumbnails failed, never ran or
  were left processing without a job
- backfill_dimensions: fill width/height for photos stored without them
- generate_og_images: queue social preview images for existing photos
"""

from typing import Any, Dict, List, Optional

from ..database.core import SyncDatabase
from ..database.photo_operations import SyncPhotoOperations
from ..database.thumbnail_job_operations import SyncThumbnailJobOperations
from ..enums import (
    GalleryJobType,
    LogEmoji,
    LoggerName,
    LogSource,
    ThumbnailStatus,
)
from ..exceptions import PathValidationError
from .file_validator import read_image_dimensions
from .logger import get_service_logger
from .path_resolver import PathResolver
from .thumbnail_job_service import ThumbnailJobService
from .thumbnail_pipeline.naming import og_file_name

logger = get_service_logger(LoggerName.MAINTENANCE, LogSource.CLI)


class MaintenanceService:
    """
    Sweeps run from the maintenance CLI.

    Args:
        db: Database holding places, photos and the job queue
        path_resolver: Resolver for the blob root
        job_service: Job queueing service
    """

    def __init__(
        self,
        db: SyncDatabase,
        path_resolver: Optional[PathResolver] = None,
        job_service: Optional[ThumbnailJobService] = None,
    ):
        self.photo_ops = SyncPhotoOperations(db)
        self.job_ops = SyncThumbnailJobOperations(db)
        self.path_resolver = path_resolver or PathResolver()
        self.job_service = job_service or ThumbnailJobService(db)

    def retry_thumbnails(
        self,
        include_pending: bool = False,
        include_processing: bool = False,
        place_id: Optional[int] = None,
        dry_run: bool = False,
    ) -> Dict[str, Any]:
        """
        Reset failed (and optionally pending or processing) photos to pending
        and queue thumbnail jobs for them.

        Pending photos may have lost their job when queueing failed after
        upload; duplicate jobs for photos that still have one are suppressed
        by the queue. Processing photos are only picked up when no thumbnail
        job is active for them, i.e. the worker lost track of them.
        """
        statuses = [ThumbnailStatus.FAILED]
        if include_pending:
            statuses.append(ThumbnailStatus.PENDING)
        if include_processing:
            statuses.append(ThumbnailStatus.PROCESSING)

        photos = self.photo_ops.get_photos_by_thumbnail_status(statuses, place_id)
        queued: List[int] = []
        failed: List[int] = []
        skipped: List[int] = []

        for photo in photos:
            if photo.thumbnail_status == ThumbnailStatus.PROCESSING and (
                self.job_ops.has_active_job(photo.id, GalleryJobType.THUMBNAIL)
            ):
                skipped.append(photo.id)
                continue
            if dry_run:
                logger.info(
                    f"[DRY RUN] Would retry photo {photo.id} (place {photo.place_id}): "
                    f"{photo.file_name} [{photo.thumbnail_status.value}]"
                )
                continue
            self.photo_ops.reset_thumbnail_status(photo.id)
            if self.job_service.enqueue_thumbnail(photo.id, photo.place_id, photo.file_name):
                queued.append(photo.id)
            else:
                failed.append(photo.id)

        logger.info(
            f"Thumbnail retry: {len(photos)} found, {len(queued)} queued, "
            f"{len(failed)} failed, {len(skipped)} still running",
            emoji=LogEmoji.RETRY,
            extra_context={"dry_run": dry_run, "place_id": place_id},
        )
        return {
            "found": len(photos),
            "queued": len(queued),
            "failed": len(failed),
            "skipped_active": len(skipped),
            "photo_ids": queued,
            "dry_run": dry_run,
        }

    def backfill_dimensions(self, dry_run: bool = False) -> Dict[str, Any]:
        """Read width/height from blobs for photos stored without them."""
        photos = self.photo_ops.get_photos_missing_dimensions()
        updated = 0
        failed = 0

        for photo in photos:
            try:
                path = self.path_resolver.resolve_path(photo.place_id, photo.file_name)
            except PathValidationError as e:
                logger.warning(f"Photo {photo.id}: invalid path ({e})")
                failed += 1
                continue

            dimensions = read_image_dimensions(path) if path.is_file() else None
            if dimensions is None:
                logger.warning(
                    f"Photo {photo.id}: cannot read dimensions of {photo.file_name}"
                )
                failed += 1
                continue

            width, height = dimensions
            if dry_run:
                logger.info(f"[DRY RUN] Photo {photo.id}: {width}x{height}")
            else:
                self.photo_ops.update_dimensions(photo.id, width, height)
            updated += 1

        logger.info(
            f"Dimension backfill: {len(photos)} found, {updated} updated, {failed} failed",
            emoji=LogEmoji.PHOTO,
            extra_context={"dry_run": dry_run},
        )
        return {
            "found": len(photos),
            "updated": updated,
            "failed": failed,
            "dry_run": dry_run,
        }

    def generate_og_images(
        self,
        place_id: Optional[int] = None,
        force: bool = False,
        dry_run: bool = False,
    ) -> Dict[str, Any]:
        """
        Queue preview image jobs for photos missing one (all photos with force).
        """
        photos = self.photo_ops.get_all_photos(place_id)
        targets = []
        for photo in photos:
            if force:
                targets.append(photo)
                continue
            try:
                og_path = self.path_resolver.resolve_path(
                    photo.place_id, og_file_name(photo.file_name)
                )
            except PathValidationError:
                continue
            if not og_path.is_file():
                targets.append(photo)

        queued = 0
        for photo in targets:
            if dry_run:
                logger.info(f"[DRY RUN] Would queue preview for photo {photo.id}")
                continue
            if self.job_service.enqueue_og_image(photo.id, photo.place_id, photo.file_name):
                queued += 1

        logger.info(
            f"Preview generation: {len(targets)} of {len(photos)} photos need a "
            f"preview, {queued} queued",
            emoji=LogEmoji.IMAGE,
            extra_context={"dry_run": dry_run, "force": force, "place_id": place_id},
        )
        return {
            "photos": len(photos),
            "needed": len(targets),
            "queued": queued,
            "dry_run": dry_run,
        }
