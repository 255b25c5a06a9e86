# backend/gallery/models/maintenance_model.py
from pydantic import BaseModel, Field


class ReconcileStats(BaseModel):
    """Counters from one orphan reconciliation pass"""

    orphan_files_deleted: int = Field(default=0, description="Unreferenced files, temp files included")
    orphan_directories_deleted: int = Field(default=0, description="Directories of unknown places")
    temp_files_deleted: int = Field(default=0, description="Stale temp files from interrupted writes")
    lock_files_deleted: int = Field(default=0, description="Stale thumbnail lock files")
    errors: int = Field(default=0, description="Items that could not be inspected or deleted")
    dry_run: bool = False
    skipped: bool = Field(default=False, description="Another pass was already running")

    @property
    def total_deleted(self) -> int:
        return (
            self.orphan_files_deleted
            + self.orphan_directories_deleted
            + self.lock_files_deleted
        )
