# backend/gallery/worker.py
"""
Gallery background worker process.

Runs under one asyncio loop:
- ThumbnailWorker: polls the thumbnail job queue
- ReconcilerWorker: schedules orphan reconciliation with apscheduler

Run with `python -m gallery.worker` from the backend directory. SIGINT and
SIGTERM stop both workers and close the database pool.
"""

import asyncio
import signal
from typing import Optional

from .config import settings
from .database.core import SyncDatabase
from .enums import LogEmoji, LoggerName, LogSource
from .services.logger import configure_logging, get_service_logger
from .services.orphan_reconciler import OrphanReconciler
from .services.path_resolver import PathResolver
from .workers import ReconcilerWorker, ThumbnailWorker

logger = get_service_logger(LoggerName.SYSTEM, LogSource.SYSTEM)


class GalleryWorker:
    """
    Owns the database, the workers and the shutdown signal handling.

    Args:
        db: Database to use (a SyncDatabase from settings if None)
        install_signal_handlers: Register SIGINT/SIGTERM handlers
    """

    def __init__(
        self, db: Optional[SyncDatabase] = None, install_signal_handlers: bool = True
    ):
        if install_signal_handlers:
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

        self.db = db or SyncDatabase()
        self.db.initialize()
        path_resolver = PathResolver()

        self.thumbnail_worker = ThumbnailWorker(self.db, path_resolver=path_resolver)
        self.reconciler_worker = ReconcilerWorker(
            OrphanReconciler(self.db, path_resolver=path_resolver)
        )
        self.workers = [self.thumbnail_worker, self.reconciler_worker]
        self.running = False

    def _signal_handler(self, signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down gracefully...",
            extra_context={"signal": signum},
            emoji=LogEmoji.SHUTDOWN,
        )
        self.running = False

    async def start(self) -> None:
        """Start every worker and block until a shutdown signal arrives."""
        try:
            for worker in self.workers:
                await worker.start()
            self.running = True
            logger.info("Gallery worker started", emoji=LogEmoji.STARTUP)

            while self.running:
                await asyncio.sleep(1)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        for worker in reversed(self.workers):
            if not worker.running:
                continue
            try:
                await worker.stop()
            except Exception as e:
                logger.error(f"Error stopping {worker.name}", exception=e)
        self.db.close()
        logger.info("Database connections closed", emoji=LogEmoji.DATABASE)


async def main() -> None:
    settings.ensure_directories()
    configure_logging(settings.log_level, settings.log_file)
    worker = GalleryWorker()
    await worker.start()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    finally:
        logger.info("Gallery worker exiting", emoji=LogEmoji.SHUTDOWN)
