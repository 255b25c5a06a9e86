# backend/gallery/database/thumbnail_job_operations.py
"""
Thumbnail job queue database operations.

Jobs live in the thumbnail_jobs table. Every status change is a guarded
UPDATE (`WHERE id = :id AND status = :expected`), so two workers can never
both claim or finish the same job; the loser sees rowcount 0.

Lifecycle:
    pending -> processing -> completed | failed | cancelled
    processing -> pending        (retry scheduled, or stuck job recovered)
    processing -> failed         (stuck job on its last attempt)
"""

from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..config import settings
from ..enums import GalleryJobType, JobStatus, ThumbnailStatus
from ..models.thumbnail_job_model import (
    OgImageJobPayload,
    ThumbnailJob,
    ThumbnailJobPayload,
)
from ..utils.time_utils import utc_now
from .core import SyncDatabase, row_to_dict, sql
from .exceptions import ThumbnailJobOperationError

JOB_COLUMNS = """
    id, photo_id, place_id, file_name, job_type, status, retry_count,
    max_attempts, run_after, error_message, created_at, started_at, completed_at
"""


def default_max_attempts(job_type: GalleryJobType) -> int:
    if job_type == GalleryJobType.OG_IMAGE:
        return settings.og_job_max_attempts
    return settings.thumbnail_job_max_attempts


class SyncThumbnailJobOperations:
    """
    Sync thumbnail job queue operations.

    Used by ThumbnailJobService to enqueue work and by ThumbnailWorker to
    claim, finish and retry it.
    """

    def __init__(self, db: SyncDatabase) -> None:
        self.db = db

    def enqueue(
        self,
        payload: Union[ThumbnailJobPayload, OgImageJobPayload],
        max_attempts: Optional[int] = None,
    ) -> Optional[ThumbnailJob]:
        """
        Queue a job unless an equivalent one is already pending or processing.

        Jobs are unique per (photo_id, job_type) among active jobs. The check
        below catches the common case; the partial unique index catches a
        concurrent enqueue that slips between check and insert.

        Returns:
            The new job, or None if a duplicate was suppressed
        """
        attempts = max_attempts or default_max_attempts(payload.job_type)
        try:
            with self.db.get_connection() as conn:
                if self._has_active_job(conn, payload.photo_id, payload.job_type):
                    return None

                now = utc_now()
                row = conn.execute(
                    sql(
                        f"""
                        INSERT INTO thumbnail_jobs (
                            photo_id, place_id, file_name, job_type, status,
                            retry_count, max_attempts, run_after, created_at
                        )
                        VALUES (
                            :photo_id, :place_id, :file_name, :job_type, :status,
                            0, :max_attempts, :run_after, :now
                        )
                        RETURNING {JOB_COLUMNS}
                        """
                    ),
                    {
                        "photo_id": payload.photo_id,
                        "place_id": payload.place_id,
                        "file_name": payload.file_name,
                        "job_type": payload.job_type.value,
                        "status": JobStatus.PENDING.value,
                        "max_attempts": attempts,
                        "run_after": now,
                        "now": now,
                    },
                ).first()
                return ThumbnailJob(**row_to_dict(row))
        except IntegrityError:
            return None
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to enqueue job: {e}", operation="enqueue"
            ) from e

    def claim_pending_jobs(self, batch_size: int = 5) -> List[ThumbnailJob]:
        """
        Claim up to batch_size due jobs, oldest first, moving them to processing.
        """
        try:
            with self.db.get_connection() as conn:
                now = utc_now()
                candidates = conn.execute(
                    sql(
                        """
                        SELECT id FROM thumbnail_jobs
                        WHERE status = :pending AND run_after <= :now
                        ORDER BY run_after ASC, id ASC
                        LIMIT :limit
                        """
                    ),
                    {"pending": JobStatus.PENDING.value, "now": now, "limit": batch_size},
                ).all()

                claimed: List[ThumbnailJob] = []
                for candidate in candidates:
                    row = conn.execute(
                        sql(
                            f"""
                            UPDATE thumbnail_jobs
                            SET status = :processing, started_at = :now
                            WHERE id = :id AND status = :pending
                            RETURNING {JOB_COLUMNS}
                            """
                        ),
                        {
                            "processing": JobStatus.PROCESSING.value,
                            "pending": JobStatus.PENDING.value,
                            "now": now,
                            "id": candidate.id,
                        },
                    ).first()
                    if row is not None:
                        claimed.append(ThumbnailJob(**row_to_dict(row)))
                return claimed
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to claim jobs: {e}", operation="claim_pending_jobs"
            ) from e

    def mark_job_completed(self, job_id: int) -> bool:
        return self._finish(job_id, JobStatus.COMPLETED, None, "mark_job_completed")

    def mark_job_cancelled(self, job_id: int, reason: Optional[str] = None) -> bool:
        return self._finish(job_id, JobStatus.CANCELLED, reason, "mark_job_cancelled")

    def mark_job_failed(
        self, job_id: int, error_message: str, retry_count: Optional[int] = None
    ) -> bool:
        return self._finish(
            job_id, JobStatus.FAILED, error_message, "mark_job_failed", retry_count
        )

    def _finish(
        self,
        job_id: int,
        status: JobStatus,
        error_message: Optional[str],
        operation: str,
        retry_count: Optional[int] = None,
    ) -> bool:
        retry_clause = ", retry_count = :retry_count" if retry_count is not None else ""
        query = f"""
            UPDATE thumbnail_jobs
            SET status = :status, error_message = :error_message,
                completed_at = :now{retry_clause}
            WHERE id = :id AND status = :processing
        """
        try:
            with self.db.get_connection() as conn:
                result = conn.execute(
                    sql(query),
                    {
                        "status": status.value,
                        "error_message": error_message,
                        "retry_count": retry_count,
                        "now": utc_now(),
                        "id": job_id,
                        "processing": JobStatus.PROCESSING.value,
                    },
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to update job: {e}", operation=operation
            ) from e

    def schedule_retry(
        self,
        job_id: int,
        retry_count: int,
        delay_seconds: float,
        error_message: Optional[str] = None,
    ) -> bool:
        """
        Put a processing job back to pending, due after delay_seconds.

        Args:
            job_id: ID of the job to retry
            retry_count: New retry count
            delay_seconds: Delay before the job is due again
            error_message: Failure that caused the retry
        """
        now = utc_now()
        try:
            with self.db.get_connection() as conn:
                result = conn.execute(
                    sql(
                        """
                        UPDATE thumbnail_jobs
                        SET status = :pending, retry_count = :retry_count,
                            run_after = :run_after, error_message = :error_message,
                            started_at = NULL
                        WHERE id = :id AND status = :processing
                        """
                    ),
                    {
                        "pending": JobStatus.PENDING.value,
                        "processing": JobStatus.PROCESSING.value,
                        "retry_count": retry_count,
                        "run_after": now + timedelta(seconds=delay_seconds),
                        "error_message": error_message,
                        "id": job_id,
                    },
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to schedule retry: {e}", operation="schedule_retry"
            ) from e

    def cancel_jobs_for_photo(self, photo_id: int) -> int:
        """Cancel active jobs of a photo. Returns the number cancelled."""
        try:
            with self.db.get_connection() as conn:
                result = conn.execute(
                    sql(
                        """
                        UPDATE thumbnail_jobs
                        SET status = :cancelled, completed_at = :now,
                            error_message = 'Photo deleted'
                        WHERE photo_id = :photo_id AND status IN (:pending, :processing)
                        """
                    ),
                    {
                        "cancelled": JobStatus.CANCELLED.value,
                        "pending": JobStatus.PENDING.value,
                        "processing": JobStatus.PROCESSING.value,
                        "photo_id": photo_id,
                        "now": utc_now(),
                    },
                )
                return result.rowcount
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to cancel jobs: {e}", operation="cancel_jobs_for_photo"
            ) from e

    def recover_stuck_jobs(self, timeout_seconds: int) -> int:
        """
        Handle processing jobs started more than timeout_seconds ago.

        A stuck job counts as a spent attempt: its worker crashed or hung
        mid-render. Jobs with attempts left go back to pending; jobs that
        have used their last attempt are failed, and for thumbnail jobs the
        photo is marked failed in the same transaction.

        Returns:
            Number of stuck jobs handled (requeued plus failed)
        """
        now = utc_now()
        try:
            with self.db.get_connection() as conn:
                stuck = conn.execute(
                    sql(
                        """
                        SELECT id, photo_id, job_type, retry_count, max_attempts
                        FROM thumbnail_jobs
                        WHERE status = :processing AND started_at < :stuck_before
                        ORDER BY id
                        """
                    ),
                    {
                        "processing": JobStatus.PROCESSING.value,
                        "stuck_before": now - timedelta(seconds=timeout_seconds),
                    },
                ).all()

                handled = 0
                for job in stuck:
                    retry_count = job.retry_count + 1
                    if retry_count < job.max_attempts:
                        result = conn.execute(
                            sql(
                                """
                                UPDATE thumbnail_jobs
                                SET status = :pending, retry_count = :retry_count,
                                    started_at = NULL, run_after = :now
                                WHERE id = :id AND status = :processing
                                """
                            ),
                            {
                                "pending": JobStatus.PENDING.value,
                                "processing": JobStatus.PROCESSING.value,
                                "retry_count": retry_count,
                                "now": now,
                                "id": job.id,
                            },
                        )
                        handled += result.rowcount
                        continue

                    result = conn.execute(
                        sql(
                            """
                            UPDATE thumbnail_jobs
                            SET status = :failed, retry_count = :retry_count,
                                error_message = :error_message, completed_at = :now
                            WHERE id = :id AND status = :processing
                            """
                        ),
                        {
                            "failed": JobStatus.FAILED.value,
                            "processing": JobStatus.PROCESSING.value,
                            "retry_count": retry_count,
                            "error_message": (
                                f"Job timed out after {retry_count} attempts"
                            ),
                            "now": now,
                            "id": job.id,
                        },
                    )
                    if result.rowcount == 0:
                        continue
                    handled += 1
                    if job.job_type == GalleryJobType.THUMBNAIL.value:
                        conn.execute(
                            sql(
                                """
                                UPDATE photos
                                SET thumbnail_status = :failed, updated_at = :now
                                WHERE id = :photo_id
                                """
                            ),
                            {
                                "failed": ThumbnailStatus.FAILED.value,
                                "now": now,
                                "photo_id": job.photo_id,
                            },
                        )
                return handled
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to recover stuck jobs: {e}", operation="recover_stuck_jobs"
            ) from e

    def cleanup_completed_jobs(self, hours_old: int) -> int:
        """Delete completed and cancelled jobs finished more than hours_old ago."""
        try:
            with self.db.get_connection() as conn:
                result = conn.execute(
                    sql(
                        """
                        DELETE FROM thumbnail_jobs
                        WHERE status IN (:completed, :cancelled)
                          AND completed_at < :cutoff
                        """
                    ),
                    {
                        "completed": JobStatus.COMPLETED.value,
                        "cancelled": JobStatus.CANCELLED.value,
                        "cutoff": utc_now() - timedelta(hours=hours_old),
                    },
                )
                return result.rowcount
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to clean up jobs: {e}", operation="cleanup_completed_jobs"
            ) from e

    def get_job_by_id(self, job_id: int) -> Optional[ThumbnailJob]:
        try:
            with self.db.get_connection() as conn:
                row = conn.execute(
                    sql(f"SELECT {JOB_COLUMNS} FROM thumbnail_jobs WHERE id = :id"),
                    {"id": job_id},
                ).first()
                return ThumbnailJob(**row_to_dict(row)) if row else None
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to load job: {e}", operation="get_job_by_id"
            ) from e

    def get_jobs_for_photo(self, photo_id: int) -> List[ThumbnailJob]:
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    sql(
                        f"SELECT {JOB_COLUMNS} FROM thumbnail_jobs "
                        "WHERE photo_id = :photo_id ORDER BY id"
                    ),
                    {"photo_id": photo_id},
                ).all()
                return [ThumbnailJob(**row_to_dict(row)) for row in rows]
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to load jobs: {e}", operation="get_jobs_for_photo"
            ) from e

    def has_active_job(self, photo_id: int, job_type: GalleryJobType) -> bool:
        """True if the photo has a pending or processing job of this type."""
        try:
            with self.db.get_connection() as conn:
                return self._has_active_job(conn, photo_id, job_type)
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to check active jobs: {e}", operation="has_active_job"
            ) from e

    @staticmethod
    def _has_active_job(
        conn: Connection, photo_id: int, job_type: GalleryJobType
    ) -> bool:
        row = conn.execute(
            sql(
                """
                SELECT id FROM thumbnail_jobs
                WHERE photo_id = :photo_id AND job_type = :job_type
                  AND status IN (:pending, :processing)
                LIMIT 1
                """
            ),
            {
                "photo_id": photo_id,
                "job_type": job_type.value,
                "pending": JobStatus.PENDING.value,
                "processing": JobStatus.PROCESSING.value,
            },
        ).first()
        return row is not None

    def get_queue_statistics(self) -> Dict[str, Any]:
        """Job counts per status and per type."""
        try:
            with self.db.get_connection() as conn:
                rows = conn.execute(
                    sql(
                        """
                        SELECT job_type, status, COUNT(*) AS count
                        FROM thumbnail_jobs
                        GROUP BY job_type, status
                        """
                    )
                ).all()
        except SQLAlchemyError as e:
            raise ThumbnailJobOperationError(
                f"Failed to load queue statistics: {e}",
                operation="get_queue_statistics",
            ) from e

        by_status: Dict[str, int] = {status.value: 0 for status in JobStatus}
        by_type: Dict[str, int] = {job_type.value: 0 for job_type in GalleryJobType}
        for row in rows:
            by_status[row.status] = by_status.get(row.status, 0) + row.count
            by_type[row.job_type] = by_type.get(row.job_type, 0) + row.count
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_type": by_type,
        }
