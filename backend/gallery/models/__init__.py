from .maintenance_model import ReconcileStats
from .photo_model import Photo, PhotoInsertResult
from .place_model import Place, PlaceCreate
from .thumbnail_job_model import (
    JobPayload,
    OgImageJobPayload,
    ThumbnailJob,
    ThumbnailJobPayload,
)
from .upload_model import UploadedFile, UploadResult

__all__ = [
    "ReconcileStats",
    "Photo",
    "PhotoInsertResult",
    "Place",
    "PlaceCreate",
    "JobPayload",
    "OgImageJobPayload",
    "ThumbnailJob",
    "ThumbnailJobPayload",
    "UploadedFile",
    "UploadResult",
]
