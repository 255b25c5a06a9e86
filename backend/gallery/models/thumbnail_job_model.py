# backend/gallery/models/thumbnail_job_model.py
"""
Job queue rows and their typed payloads.

Each job type has its own payload model; `JobPayload` is the tagged union
the worker dispatches on.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..enums import GalleryJobType, JobStatus


class ThumbnailJobPayload(BaseModel):
    """Regenerate the thumbnail variants of one photo"""

    job_type: Literal[GalleryJobType.THUMBNAIL] = GalleryJobType.THUMBNAIL
    photo_id: int
    place_id: int
    file_name: str


class OgImageJobPayload(BaseModel):
    """Compose the social preview image of one photo"""

    job_type: Literal[GalleryJobType.OG_IMAGE] = GalleryJobType.OG_IMAGE
    photo_id: int
    place_id: int
    file_name: str


JobPayload = Annotated[
    Union[ThumbnailJobPayload, OgImageJobPayload],
    Field(discriminator="job_type"),
]

_payload_adapter: TypeAdapter = TypeAdapter(JobPayload)


class ThumbnailJob(BaseModel):
    """Job queue row"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    photo_id: int
    place_id: int
    file_name: str
    job_type: GalleryJobType
    status: JobStatus
    retry_count: int = 0
    max_attempts: int
    run_after: datetime
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def payload(self) -> Union[ThumbnailJobPayload, OgImageJobPayload]:
        """Typed payload for this row, chosen by job_type."""
        return _payload_adapter.validate_python(
            {
                "job_type": self.job_type,
                "photo_id": self.photo_id,
                "place_id": self.place_id,
                "file_name": self.file_name,
            }
        )
