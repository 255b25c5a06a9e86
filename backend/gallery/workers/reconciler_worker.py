# backend/gallery/workers/reconciler_worker.py
"""
Reconciler Worker - runs the orphan reconciler on an apscheduler interval.

The pass itself is synchronous filesystem and database work, so it runs on
the executor. apscheduler keeps at most one scheduled instance alive and
coalesces missed runs; the reconciler's own lock turns an overlapping
`run_now()` into a skipped pass.
"""

from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import settings
from ..constants import (
    RECONCILER_JOB_ID,
    SCHEDULER_MAX_INSTANCES,
    SCHEDULER_MISFIRE_GRACE_TIME_SECONDS,
)
from ..enums import LogEmoji, LoggerName
from ..models.maintenance_model import ReconcileStats
from ..services.orphan_reconciler import OrphanReconciler
from .base_worker import BaseWorker
from .exceptions import WorkerInitializationError


class ReconcilerWorker(BaseWorker):
    """
    Schedules periodic orphan reconciliation.

    Args:
        reconciler: Reconciler to run
        interval_hours: Hours between passes
        enabled: Whether the periodic job is scheduled at all
        scheduler: Scheduler to register with (a private AsyncIOScheduler if None)
    """

    def __init__(
        self,
        reconciler: OrphanReconciler,
        interval_hours: Optional[float] = None,
        enabled: Optional[bool] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        super().__init__("ReconcilerWorker", LoggerName.SCHEDULER_WORKER)
        self.reconciler = reconciler
        self.interval_hours = (
            interval_hours
            if interval_hours is not None
            else settings.orphan_cleanup_interval_hours
        )
        self.enabled = enabled if enabled is not None else settings.orphan_cleanup_enabled
        self.scheduler = scheduler or AsyncIOScheduler()
        self.last_stats: Optional[ReconcileStats] = None

    async def initialize(self) -> None:
        if not self.enabled:
            self.log_info("Orphan reconciliation disabled, not scheduling")
            return

        try:
            self.scheduler.add_job(
                self.run_now,
                trigger="interval",
                hours=self.interval_hours,
                id=RECONCILER_JOB_ID,
                replace_existing=True,
                max_instances=SCHEDULER_MAX_INSTANCES,
                coalesce=True,
                misfire_grace_time=SCHEDULER_MISFIRE_GRACE_TIME_SECONDS,
            )
            if not self.scheduler.running:
                self.scheduler.start()
        except Exception as e:
            raise WorkerInitializationError(
                f"Failed to schedule orphan reconciliation: {e}"
            ) from e

        self.log_info(
            f"Orphan reconciliation scheduled every {self.interval_hours:g}h",
            emoji=LogEmoji.SCHEDULER,
            extra_context={"interval_hours": self.interval_hours},
        )

    async def cleanup(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.log_info("Scheduler shut down", emoji=LogEmoji.SHUTDOWN)

    async def run_now(self) -> ReconcileStats:
        """Run one reconciliation pass immediately."""
        stats = await self.run_in_executor(self.reconciler.run)
        self.last_stats = stats
        return stats

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        job = self.scheduler.get_job(RECONCILER_JOB_ID) if self.enabled else None
        status.update(
            {
                "enabled": self.enabled,
                "interval_hours": self.interval_hours,
                "next_run_time": (
                    job.next_run_time.isoformat()
                    if job is not None and job.next_run_time
                    else None
                ),
                "last_stats": self.last_stats.model_dump() if self.last_stats else None,
            }
        )
        return status
