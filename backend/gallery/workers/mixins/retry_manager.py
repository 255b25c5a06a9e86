# backend/gallery/workers/mixins/retry_manager.py
"""
Retry Manager for worker job processing.

Backoff is quadratic in the attempt number and capped:
delay = min(cap, base * attempt^2) seconds. The attempt budget is carried
by each job row (`max_attempts`) so thumbnail and preview jobs can differ.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Protocol, runtime_checkable

from ...enums import LogEmoji, LoggerName, LogSource
from ...services.logger import get_service_logger
from ...utils.time_utils import utc_now

logger = get_service_logger(LoggerName.THUMBNAIL_WORKER, LogSource.WORKER)


@runtime_checkable
class JobWithRetry(Protocol):
    """Protocol for jobs that support retry logic."""

    id: int
    retry_count: int
    max_attempts: int


class RetryManager:
    """
    Decides whether a failed job is retried and when.

    Args:
        base_seconds: Delay of the first retry
        cap_seconds: Upper bound on any delay
        worker_name: Name of the worker for logging purposes
    """

    def __init__(self, base_seconds: float, cap_seconds: float, worker_name: str = "Worker"):
        if base_seconds <= 0:
            raise ValueError("base_seconds must be greater than 0")
        if cap_seconds < base_seconds:
            raise ValueError("cap_seconds cannot be smaller than base_seconds")
        self.base_seconds = base_seconds
        self.cap_seconds = cap_seconds
        self.worker_name = worker_name

    @staticmethod
    def attempt_number(job: JobWithRetry) -> int:
        """1-based number of the attempt that just ran."""
        return job.retry_count + 1

    def should_retry(self, job: JobWithRetry) -> bool:
        return self.attempt_number(job) < job.max_attempts

    def get_retry_delay(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        attempt = max(attempt, 1)
        return min(self.cap_seconds, self.base_seconds * attempt**2)

    def calculate_next_retry_time(self, attempt: int) -> datetime:
        return utc_now() + timedelta(seconds=self.get_retry_delay(attempt))

    def get_retry_info(self, job: JobWithRetry) -> Dict[str, Any]:
        """
        Retry status of a job whose current attempt failed.

        Returns:
            Dictionary with the attempt number, whether a retry is allowed
            and, if so, the delay and due time
        """
        attempt = self.attempt_number(job)
        can_retry = self.should_retry(job)
        info: Dict[str, Any] = {
            "job_id": job.id,
            "attempt": attempt,
            "max_attempts": job.max_attempts,
            "can_retry": can_retry,
        }
        if can_retry:
            info["retry_delay_seconds"] = self.get_retry_delay(attempt)
            info["next_retry_time"] = self.calculate_next_retry_time(attempt).isoformat()
        return info

    def log_retry_scheduled(self, job: JobWithRetry, delay_seconds: float, error_message: str) -> None:
        logger.warning(
            f"[{self.worker_name}] Job {job.id} failed (attempt "
            f"{self.attempt_number(job)}/{job.max_attempts}), retrying in "
            f"{delay_seconds:g}s: {error_message}",
            emoji=LogEmoji.RETRY,
            extra_context={"job_id": job.id, "delay_seconds": delay_seconds},
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "worker_name": self.worker_name,
            "base_seconds": self.base_seconds,
            "cap_seconds": self.cap_seconds,
        }

    def __repr__(self) -> str:
        return (
            f"RetryManager(worker='{self.worker_name}', "
            f"base={self.base_seconds}, cap={self.cap_seconds})"
        )
