# backend/gallery/workers/mixins/job_processing_mixin.py
"""
Job Processing Mixin for background workers.

One processing cycle (`process_pending_batch`) runs synchronously on the
executor:

1. stuck `processing` jobs older than the job timeout spend an attempt and
   go back to `pending`, or fail once their attempts are used up
2. finished jobs older than the retention window are purged (periodically)
3. up to `batch_size` due jobs are claimed and handled one by one

Each job ends in exactly one outcome: completed, retry scheduled,
permanently failed or cancelled. Handlers signal cancellation by raising
JobCancelledError; any other exception is a failure subject to retry.
"""

import asyncio
import time
from abc import abstractmethod
from datetime import timedelta
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from ...constants import WORKER_ERROR_BACKOFF_SECONDS
from ...database.exceptions import DatabaseOperationError
from ...enums import JobOutcome, LogEmoji, LoggerName
from ...exceptions import JobCancelledError
from ...utils.time_utils import utc_now
from ..base_worker import BaseWorker
from .retry_manager import JobWithRetry, RetryManager

JobType = TypeVar("JobType", bound=JobWithRetry)


class JobProcessingMixin(BaseWorker, Generic[JobType]):
    """
    Abstract mixin providing the queue polling loop and job lifecycle.

    Workers implement job retrieval, the job handler and the queue
    transitions; retries, cleanup, stuck-job recovery and statistics are
    shared.
    """

    def __init__(
        self,
        name: str,
        logger_name: LoggerName,
        retry_base_seconds: float,
        retry_cap_seconds: float,
        batch_size: int = 5,
        worker_interval: float = 5,
        cleanup_hours: int = 24,
        job_timeout_seconds: int = 120,
    ):
        """
        Initialize job processing mixin.

        Args:
            name: Worker name for logging and identification
            logger_name: Logger category of the worker
            retry_base_seconds: Base of the quadratic retry backoff
            retry_cap_seconds: Upper bound on a retry delay
            batch_size: Jobs claimed per cycle
            worker_interval: Seconds between cycles
            cleanup_hours: Hours after which finished jobs are purged
            job_timeout_seconds: Age after which a processing job is stuck
        """
        super().__init__(name, logger_name)
        self.retry_manager = RetryManager(
            base_seconds=retry_base_seconds,
            cap_seconds=retry_cap_seconds,
            worker_name=name,
        )
        self.batch_size = batch_size
        self.worker_interval = worker_interval
        self.cleanup_hours = cleanup_hours
        self.job_timeout_seconds = job_timeout_seconds

        # Allows an immediate first cleanup
        self.last_cleanup_time = utc_now() - timedelta(hours=cleanup_hours)
        self._task: Optional["asyncio.Task[None]"] = None

        self.processed_jobs_total = 0
        self.failed_jobs_total = 0
        self.retried_jobs_total = 0
        self.cancelled_jobs_total = 0

    # Abstract methods that must be implemented by concrete workers

    @abstractmethod
    def get_pending_jobs(self, batch_size: int) -> Sequence[JobType]:
        """Claim up to batch_size due jobs (they come back as processing)."""
        pass

    @abstractmethod
    def process_single_job_impl(self, job: JobType) -> None:
        """
        Run the job.

        Raises:
            JobCancelledError: The job can never succeed and must not be retried
            Exception: Any other failure; the job is retried while attempts remain
        """
        pass

    @abstractmethod
    def mark_job_completed(self, job_id: int) -> bool:
        pass

    @abstractmethod
    def mark_job_cancelled(self, job_id: int, reason: str) -> bool:
        pass

    @abstractmethod
    def mark_job_failed(self, job_id: int, error_message: str, retry_count: int) -> bool:
        pass

    @abstractmethod
    def schedule_job_retry(
        self, job_id: int, retry_count: int, delay_seconds: float, error_message: str
    ) -> bool:
        pass

    @abstractmethod
    def recover_stuck_jobs(self, timeout_seconds: int) -> int:
        pass

    @abstractmethod
    def cleanup_completed_jobs(self, hours_to_keep: int) -> int:
        pass

    @abstractmethod
    def get_queue_statistics(self) -> Dict[str, Any]:
        pass

    # Hooks

    def on_job_completed(self, job: JobType) -> None:
        """Called after a job was marked completed."""
        pass

    def on_job_exhausted(self, job: JobType, error_message: str) -> None:
        """Called after a job was marked permanently failed."""
        pass

    # Shared implementation

    def process_pending_batch(self) -> List[JobOutcome]:
        """
        Run one processing cycle.

        Returns:
            Outcome of every job handled in this cycle
        """
        recovered = self.recover_stuck_jobs(self.job_timeout_seconds)
        if recovered:
            self.log_warning(
                f"Handled {recovered} stuck jobs", emoji=LogEmoji.PROCESSING
            )
        self.periodic_cleanup()

        outcomes: List[JobOutcome] = []
        for job in self.get_pending_jobs(self.batch_size):
            try:
                outcomes.append(self._process_single_job_with_lifecycle(job))
            except DatabaseOperationError as e:
                # The job stays processing and is recovered once it is stuck
                self.log_error(f"Database error while finishing job {job.id}", e)
        return outcomes

    def _process_single_job_with_lifecycle(self, job: JobType) -> JobOutcome:
        started = time.monotonic()
        try:
            self.process_single_job_impl(job)
        except JobCancelledError as e:
            self.mark_job_cancelled(job.id, str(e))
            self.cancelled_jobs_total += 1
            self.log_info(f"Job {job.id} cancelled: {e}", emoji=LogEmoji.CANCELED)
            return JobOutcome.CANCELLED
        except Exception as e:
            return self._handle_job_failure(job, e)

        if not self.mark_job_completed(job.id):
            self.log_warning(f"Job {job.id} was no longer processing when it completed")
        self.processed_jobs_total += 1
        self.log_debug(
            f"Job {job.id} completed in {(time.monotonic() - started) * 1000:.0f}ms"
        )
        self.on_job_completed(job)
        return JobOutcome.COMPLETED

    def _handle_job_failure(self, job: JobType, error: Exception) -> JobOutcome:
        """
        Schedule a retry while attempts remain, otherwise fail the job.

        Returns:
            RETRY if a retry was scheduled, FAILED otherwise
        """
        error_message = str(error) or type(error).__name__
        attempt = self.retry_manager.attempt_number(job)

        if self.retry_manager.should_retry(job):
            delay = self.retry_manager.get_retry_delay(attempt)
            if self.schedule_job_retry(job.id, attempt, delay, error_message):
                self.retried_jobs_total += 1
                self.retry_manager.log_retry_scheduled(job, delay, error_message)
                return JobOutcome.RETRY
            self.log_warning(f"Failed to schedule retry for job {job.id}")

        self.mark_job_failed(job.id, error_message, attempt)
        self.failed_jobs_total += 1
        self.logger.error(
            f"[{self.name}] Job {job.id} permanently failed after {attempt} "
            f"attempts: {error_message}",
            exception=error,
            error_context={"job_id": job.id, "attempts": attempt},
        )
        self.on_job_exhausted(job, error_message)
        return JobOutcome.FAILED

    def periodic_cleanup(self) -> None:
        """Purge finished jobs once per cleanup interval."""
        now = utc_now()
        if (now - self.last_cleanup_time).total_seconds() < self.cleanup_hours * 3600:
            return

        cleaned = self.cleanup_completed_jobs(self.cleanup_hours)
        if cleaned:
            self.log_info(
                f"Cleaned up {cleaned} finished jobs", emoji=LogEmoji.CLEANUP
            )
        self.last_cleanup_time = now

    async def start(self) -> None:
        await super().start()
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        self.running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await super().stop()

    async def run(self) -> None:
        """Poll the queue until the worker stops."""
        self.log_info(f"Starting {self.name} main loop", emoji=LogEmoji.STARTUP)

        while self.running:
            try:
                await self.run_in_executor(self.process_pending_batch)
                await asyncio.sleep(self.worker_interval)
            except asyncio.CancelledError:
                self.log_info(f"{self.name} loop cancelled")
                raise
            except Exception as e:
                self.log_error(f"Unexpected error in {self.name} loop", e)
                # Avoid a tight error loop
                await asyncio.sleep(WORKER_ERROR_BACKOFF_SECONDS)

        self.log_info(f"{self.name} main loop stopped")

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update(
            {
                "worker_interval": self.worker_interval,
                "batch_size": self.batch_size,
                "cleanup_hours": self.cleanup_hours,
                "last_cleanup": self.last_cleanup_time.isoformat(),
                "processed_jobs_total": self.processed_jobs_total,
                "failed_jobs_total": self.failed_jobs_total,
                "retried_jobs_total": self.retried_jobs_total,
                "cancelled_jobs_total": self.cancelled_jobs_total,
                "retry_config": self.retry_manager.get_stats(),
            }
        )
        try:
            status["queue_stats"] = self.get_queue_statistics()
        except DatabaseOperationError as e:
            status["queue_stats_error"] = str(e)
        return status
