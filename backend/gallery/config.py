# backend/gallery/config.py
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import PLACES_SUBDIRECTORY
from .enums import LogLevel


class Settings(BaseSettings):
    environment: str = "development"

    # Database
    database_url: str = Field(
        default="sqlite:///./data/gallery.db",
        description="SQLAlchemy URL (postgresql+psycopg://... in production)",
    )
    db_pool_size: int = Field(
        default=10, ge=1, le=100, description="Database connection pool size"
    )
    db_max_overflow: int = Field(
        default=20, ge=0, le=100, description="Maximum overflow connections"
    )
    db_pool_timeout: int = Field(
        default=30, ge=1, le=300, description="Database connection timeout in seconds"
    )
    db_busy_timeout_seconds: int = Field(
        default=30,
        ge=1,
        le=300,
        description="How long SQLite waits on a locked database before failing",
    )

    # ============= PATH CONFIGURATION =============
    # All blob reads and writes go through PathResolver rooted here
    static_root: str = Field(
        default="./data/static", description="Root directory of the blob store"
    )

    @property
    def static_path(self) -> Path:
        """Get static root as an absolute Path"""
        return Path(self.static_root).expanduser().resolve()

    @property
    def places_directory(self) -> Path:
        """Directory holding one subdirectory per place"""
        return self.static_path.joinpath(*PLACES_SUBDIRECTORY)

    def ensure_directories(self):
        """Create all required directories if they don't exist"""
        self.places_directory.mkdir(parents=True, exist_ok=True)
        if self.log_file:
            Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)

    # Upload validation
    max_file_size_mb: int = Field(
        default=10, ge=1, le=500, description="Maximum size of a single upload in MB"
    )
    max_files_per_upload: int = Field(
        default=50, ge=1, le=1000, description="Maximum files accepted per batch"
    )
    max_image_width: int = Field(
        default=10_000, ge=1, description="Maximum accepted image width in pixels"
    )
    max_image_height: int = Field(
        default=10_000, ge=1, description="Maximum accepted image height in pixels"
    )
    max_image_pixels: int = Field(
        default=50_000_000,
        ge=1,
        description="Maximum accepted total pixel count (decompression bomb guard)",
    )

    # Photo sequencing
    insert_max_attempts: int = Field(
        default=5, ge=1, le=20, description="Attempts for the atomic photo insert"
    )
    insert_backoff_base_ms: int = Field(
        default=10, ge=1, le=1000, description="Base delay for insert retry jitter"
    )

    # Thumbnail generation
    thumbnail_quality: int = Field(
        default=80, ge=1, le=100, description="WebP quality for thumbnail variants"
    )
    thumbnail_variant_attempts: int = Field(
        default=3, ge=1, le=10, description="Attempts per thumbnail variant"
    )
    thumbnail_variant_backoff_seconds: float = Field(
        default=0.5,
        ge=0,
        le=30,
        description="Linear backoff unit between variant attempts",
    )
    thumbnail_variant_timeout_seconds: float = Field(
        default=30, gt=0, le=600, description="Time budget for one variant attempt"
    )
    thumbnail_lock_timeout_seconds: int = Field(
        default=300,
        ge=1,
        le=86400,
        description="Age after which a thumbnail lock file is considered stale",
    )

    # Job queue
    thumbnail_job_max_attempts: int = Field(
        default=5, ge=1, le=20, description="Attempts for a thumbnail job"
    )
    thumbnail_job_backoff_base_seconds: int = Field(
        default=15, ge=1, le=3600, description="Base for base * attempt^2 backoff"
    )
    thumbnail_job_backoff_cap_seconds: int = Field(
        default=600, ge=1, le=86400, description="Upper bound on job retry delay"
    )
    thumbnail_job_timeout_seconds: int = Field(
        default=120,
        ge=10,
        le=3600,
        description="Processing jobs older than this are considered stuck",
    )
    og_job_max_attempts: int = Field(
        default=3, ge=1, le=20, description="Attempts for a social preview job"
    )
    og_font_path: Optional[str] = Field(
        default=None, description="TrueType font for social preview text (optional)"
    )
    job_worker_interval_seconds: int = Field(
        default=5, ge=1, le=3600, description="Seconds between job queue polls"
    )
    job_batch_size: int = Field(
        default=5, ge=1, le=100, description="Jobs claimed per poll"
    )
    job_cleanup_hours: int = Field(
        default=24, ge=1, le=720, description="Retention for finished jobs"
    )

    # Orphan reconciliation
    orphan_cleanup_enabled: bool = Field(
        default=True, description="Run the periodic orphan reconciler"
    )
    orphan_cleanup_interval_hours: float = Field(
        default=6, gt=0, le=168, description="Hours between reconciliation passes"
    )
    orphan_file_min_age_minutes: int = Field(
        default=30,
        ge=0,
        le=10080,
        description="Files and directories younger than this are never touched",
    )
    orphan_cleanup_dry_run: bool = Field(
        default=False, description="Log intended deletions without deleting"
    )

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_file: Optional[str] = Field(
        default=None, description="Log file path (optional)"
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v) -> LogLevel:
        """Validate log level is one of the allowed values"""
        allowed_levels = LogLevel.__members__.keys()
        v_upper = str(v.value if isinstance(v, LogLevel) else v).upper()
        if v_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(allowed_levels)}"
            )
        return LogLevel[v_upper]

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values"""
        allowed_envs = ["development", "staging", "production", "test"]
        v_lower = v.lower()
        if v_lower not in allowed_envs:
            raise ValueError(
                f"Invalid environment '{v}'. Must be one of: {', '.join(allowed_envs)}"
            )
        return v_lower

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )


# Global settings instance
settings = Settings()
