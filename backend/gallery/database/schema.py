# backend/gallery/database/schema.py
"""
Relational schema for places, photos and the thumbnail job queue.

(place_id, photo_num) and (place_id, slug) are unique so concurrent writers
that race on the photo sequence fail loudly instead of corrupting it.
photo_num has no positivity check: renumbering parks rows on negative
values inside a transaction.

thumbnail_jobs carries a partial unique index over active jobs, so two
concurrent enqueues for the same photo cannot both succeed.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    false,
)

from ..enums import JobStatus, ThumbnailStatus

metadata = MetaData()

places = Table(
    "places",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(255), nullable=False),
    Column("location", String(255), nullable=False, server_default=""),
    Column("country", String(255), nullable=False, server_default=""),
    Column("start_date", String(50), nullable=True),
    Column("end_date", String(50), nullable=True),
    Column("slug", String(120), nullable=False, unique=True),
    Column("favorites", Integer, nullable=False, server_default="0"),
    Column("sort_order", Integer, nullable=False, server_default="0"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

photos = Table(
    "photos",
    metadata,
    Column("id", Integer, primary_key=True),
    Column(
        "place_id",
        Integer,
        ForeignKey("places.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("photo_num", Integer, nullable=False),
    Column("slug", String(64), nullable=False),
    Column("file_name", String(255), nullable=False, unique=True),
    Column("is_favorite", Boolean, nullable=False, server_default=false()),
    Column("width", Integer, nullable=True),
    Column("height", Integer, nullable=True),
    Column(
        "thumbnail_status",
        String(20),
        nullable=False,
        server_default=ThumbnailStatus.PENDING.value,
    ),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("place_id", "photo_num", name="uq_photos_place_photo_num"),
    UniqueConstraint("place_id", "slug", name="uq_photos_place_slug"),
)

thumbnail_jobs = Table(
    "thumbnail_jobs",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("photo_id", Integer, nullable=False),
    Column("place_id", Integer, nullable=False),
    Column("file_name", String(255), nullable=False),
    Column("job_type", String(20), nullable=False),
    Column(
        "status", String(20), nullable=False, server_default=JobStatus.PENDING.value
    ),
    Column("retry_count", Integer, nullable=False, server_default="0"),
    Column("max_attempts", Integer, nullable=False),
    Column("run_after", DateTime(timezone=True), nullable=False),
    Column("error_message", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=True),
    Column("completed_at", DateTime(timezone=True), nullable=True),
)

Index("idx_photos_place_id", photos.c.place_id)
Index("idx_photos_thumbnail_status", photos.c.thumbnail_status)
Index("idx_thumbnail_jobs_status_run_after", thumbnail_jobs.c.status, thumbnail_jobs.c.run_after)
Index("idx_thumbnail_jobs_photo_type", thumbnail_jobs.c.photo_id, thumbnail_jobs.c.job_type)
Index("idx_thumbnail_jobs_cleanup", thumbnail_jobs.c.status, thumbnail_jobs.c.completed_at)

# At most one pending or processing job per photo and job type
_active_job = thumbnail_jobs.c.status.in_(
    [JobStatus.PENDING.value, JobStatus.PROCESSING.value]
)
Index(
    "ux_thumbnail_jobs_active",
    thumbnail_jobs.c.photo_id,
    thumbnail_jobs.c.job_type,
    unique=True,
    postgresql_where=_active_job,
    sqlite_where=_active_job,
)

GALLERY_TABLES = ("places", "photos", "thumbnail_jobs")
