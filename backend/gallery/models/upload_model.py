# backend/gallery/models/upload_model.py
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class UploadedFile(BaseModel):
    """
    A file received from a client, spooled to a local path.

    `filename` and `content_type` are client-declared and untrusted.
    """

    filename: Optional[str] = Field(None, description="Client-supplied file name")
    content_type: Optional[str] = Field(None, description="Declared MIME type")
    path: Path = Field(..., description="Local spool file holding the bytes")


class UploadResult(BaseModel):
    """Outcome of a batch upload with at least one stored photo"""

    uploaded: int = Field(..., ge=1)
    photo_ids: List[int] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
