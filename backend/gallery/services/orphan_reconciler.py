# backend/gallery/services/orphan_reconciler.py
"""
Orphan Reconciler - garbage collection for the blob store.

One pass over the places root:
1. numeric directories of places that no longer exist are deleted
2. in each known place directory, files that are neither a photo's blob
   nor one of its derived artifacts are deleted
3. temp files left behind by interrupted writes are deleted
4. thumbnail lock files older than the lock timeout are deleted

Everything except lock files is age-gated on mtime so uploads and
generations in flight are never touched. Individual failures are counted
and logged; a pass never raises for them. Dry-run mode logs what would be
deleted without deleting it.
"""

import os
import shutil
import threading
import time
from pathlib import Path
from typing import Optional

from ..config import settings
from ..constants import LOCK_FILE_EXTENSION
from ..database.core import SyncDatabase
from ..database.exceptions import DatabaseOperationError
from ..database.photo_operations import SyncPhotoOperations
from ..database.place_operations import SyncPlaceOperations
from ..enums import LogEmoji, LoggerName, LogSource
from ..models.maintenance_model import ReconcileStats
from ..utils.file_helpers import is_temp_file_name
from ..utils.time_utils import file_age_seconds
from .logger import get_service_logger
from .path_resolver import PathResolver
from .thumbnail_pipeline.naming import expected_file_names

logger = get_service_logger(LoggerName.ORPHAN_RECONCILER, LogSource.SYSTEM)


class OrphanReconciler:
    """
    Deletes blob store entries that no database row accounts for.

    Only one pass runs at a time per reconciler; a call made while a pass
    is running returns immediately with `skipped=True`.

    Args:
        db: Database holding places and photos
        path_resolver: Resolver whose root is scanned
        min_age_minutes: Entries younger than this are never deleted
        lock_timeout_seconds: Age after which a lock file is stale
        dry_run: Log intended deletions without deleting
    """

    def __init__(
        self,
        db: SyncDatabase,
        path_resolver: Optional[PathResolver] = None,
        min_age_minutes: Optional[float] = None,
        lock_timeout_seconds: Optional[float] = None,
        dry_run: Optional[bool] = None,
    ):
        self.place_ops = SyncPlaceOperations(db)
        self.photo_ops = SyncPhotoOperations(db)
        self.path_resolver = path_resolver or PathResolver()
        self.min_age_seconds = 60 * (
            min_age_minutes
            if min_age_minutes is not None
            else settings.orphan_file_min_age_minutes
        )
        self.lock_timeout_seconds = (
            lock_timeout_seconds
            if lock_timeout_seconds is not None
            else settings.thumbnail_lock_timeout_seconds
        )
        self.dry_run = dry_run if dry_run is not None else settings.orphan_cleanup_dry_run
        self._running = threading.Lock()

    def run(self, dry_run: Optional[bool] = None) -> ReconcileStats:
        """
        Run one reconciliation pass.

        Args:
            dry_run: Overrides the reconciler's dry-run setting for this pass
        """
        dry_run = self.dry_run if dry_run is None else dry_run
        if not self._running.acquire(blocking=False):
            logger.info(
                "Orphan reconciliation already running, skipping",
                emoji=LogEmoji.CLEANUP,
            )
            return ReconcileStats(dry_run=dry_run, skipped=True)

        try:
            return self._run_pass(dry_run)
        finally:
            self._running.release()

    # ------------------------------------------------------------------
    # Pass
    # ------------------------------------------------------------------

    def _run_pass(self, dry_run: bool) -> ReconcileStats:
        stats = ReconcileStats(dry_run=dry_run)
        root = self.path_resolver.places_root()
        if not root.is_dir():
            logger.debug(f"Places directory {root} does not exist, nothing to reconcile")
            return stats

        try:
            known_place_ids = set(self.place_ops.get_all_place_ids())
        except DatabaseOperationError as e:
            # Without the place list every directory would look orphaned
            logger.error(
                "Orphan reconciliation aborted: could not load places",
                exception=e,
            )
            stats.errors += 1
            return stats

        now = time.time()
        started = time.monotonic()
        mode = "[DRY RUN] " if dry_run else ""
        logger.info(f"{mode}Starting orphan reconciliation of {root}", emoji=LogEmoji.CLEANUP)

        try:
            with os.scandir(root) as iterator:
                entries = sorted(iterator, key=lambda entry: entry.name)
        except OSError as e:
            logger.error(f"Failed to list places directory {root}", exception=e)
            stats.errors += 1
            return stats

        for entry in entries:
            if not (entry.name.isascii() and entry.name.isdigit()):
                continue
            if not entry.is_dir(follow_symlinks=False):
                continue
            place_id = int(entry.name)
            directory = Path(entry.path)
            if place_id in known_place_ids:
                self._reconcile_place_directory(place_id, directory, stats, now, dry_run)
            else:
                self._reconcile_orphan_directory(place_id, directory, stats, now, dry_run)

        logger.info(
            f"{mode}Orphan reconciliation finished: "
            f"{stats.orphan_directories_deleted} directories, "
            f"{stats.orphan_files_deleted} files "
            f"({stats.temp_files_deleted} temp), "
            f"{stats.lock_files_deleted} lock files deleted, {stats.errors} errors",
            emoji=LogEmoji.COMPLETED,
            extra_context={
                **stats.model_dump(),
                "duration_seconds": round(time.monotonic() - started, 3),
            },
        )
        return stats

    def _reconcile_orphan_directory(
        self,
        place_id: int,
        directory: Path,
        stats: ReconcileStats,
        now: float,
        dry_run: bool,
    ) -> None:
        try:
            if file_age_seconds(directory, now) < self.min_age_seconds:
                return
        except OSError:
            return

        logger.info(
            f"{'[DRY RUN] ' if dry_run else ''}Deleting orphan directory for "
            f"non-existent place {place_id}: {directory}",
            emoji=LogEmoji.FOLDER,
            extra_context={"place_id": place_id, "directory": str(directory)},
        )
        if dry_run:
            stats.orphan_directories_deleted += 1
            return
        try:
            shutil.rmtree(directory)
            stats.orphan_directories_deleted += 1
        except OSError as e:
            logger.error(f"Failed to delete orphan directory {directory}", exception=e)
            stats.errors += 1

    def _reconcile_place_directory(
        self,
        place_id: int,
        directory: Path,
        stats: ReconcileStats,
        now: float,
        dry_run: bool,
    ) -> None:
        try:
            expected = expected_file_names(self.photo_ops.get_file_names_for_place(place_id))
        except DatabaseOperationError as e:
            logger.error(
                f"Skipping place {place_id}: could not load its photos", exception=e
            )
            stats.errors += 1
            return

        try:
            with os.scandir(directory) as iterator:
                entries = list(iterator)
        except OSError as e:
            logger.error(f"Failed to list {directory}", exception=e)
            stats.errors += 1
            return

        for entry in entries:
            name = entry.name
            if name.startswith(".") or not entry.is_file(follow_symlinks=False):
                continue
            path = Path(entry.path)
            try:
                age = file_age_seconds(path, now)
            except OSError:
                # Removed since the listing
                continue

            if name.endswith(LOCK_FILE_EXTENSION):
                if age >= self.lock_timeout_seconds and self._delete_file(
                    path, place_id, "stale lock file", stats, dry_run
                ):
                    stats.lock_files_deleted += 1
            elif is_temp_file_name(name):
                if age >= self.min_age_seconds and self._delete_file(
                    path, place_id, "stale temp file", stats, dry_run
                ):
                    stats.temp_files_deleted += 1
                    stats.orphan_files_deleted += 1
            elif name not in expected:
                if age >= self.min_age_seconds and self._delete_file(
                    path, place_id, "orphan file", stats, dry_run
                ):
                    stats.orphan_files_deleted += 1

    def _delete_file(
        self,
        path: Path,
        place_id: int,
        kind: str,
        stats: ReconcileStats,
        dry_run: bool,
    ) -> bool:
        logger.info(
            f"{'[DRY RUN] ' if dry_run else ''}Deleting {kind} for place {place_id}: "
            f"{path.name}",
            emoji=LogEmoji.DELETE,
            extra_context={"place_id": place_id, "file_path": str(path)},
        )
        if dry_run:
            return True
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete {kind} {path}", exception=e)
            stats.errors += 1
            return False

