# backend/gallery/workers/base_worker.py
"""
Base worker class for the gallery worker process.

Provides two distinct lifecycle layers:

1. start()/stop() - called by gallery.worker to initialize and tear down a
   worker. Sets the running flag and calls initialize()/cleanup().
2. run() - optional background loop, defined by workers that poll a queue
   (ThumbnailWorker). Scheduled workers (ReconcilerWorker) leave timing to
   apscheduler instead.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from ..enums import LoggerName, LogSource
from ..services.logger import get_service_logger


class BaseWorker(ABC):
    """
    Abstract base class for gallery workers.

    Args:
        name: Worker name for logging and identification
        logger_name: Logger category used by the log helpers
    """

    def __init__(self, name: str, logger_name: LoggerName = LoggerName.SYSTEM):
        self.name = name
        self.running = False
        self.logger = get_service_logger(logger_name, LogSource.WORKER)

    async def start(self) -> None:
        """Start the worker."""
        self.log_info(f"Starting {self.name} worker")
        self.running = True
        await self.initialize()

    async def stop(self) -> None:
        """Stop the worker."""
        self.log_info(f"Stopping {self.name} worker")
        self.running = False
        await self.cleanup()

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize worker-specific resources."""
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Cleanup worker-specific resources."""
        pass

    def log_info(self, message: str, **kwargs: Any) -> None:
        """Log info message with worker name prefix."""
        self.logger.info(f"[{self.name}] {message}", **kwargs)

    def log_error(self, message: str, error: Optional[BaseException] = None) -> None:
        """Log error message with worker name prefix."""
        self.logger.error(f"[{self.name}] {message}", exception=error)

    def log_warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(f"[{self.name}] {message}", **kwargs)

    def log_debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(f"[{self.name}] {message}", **kwargs)

    async def run_in_executor(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a sync function on the default executor."""
        return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    def get_status(self) -> Dict[str, Any]:
        """
        Get current worker status.

        Job processing workers extend this with queue and retry details.
        """
        return {
            "name": self.name,
            "running": self.running,
            "worker_type": self.__class__.__name__,
        }
