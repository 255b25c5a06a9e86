# backend/gallery/models/photo_model.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..enums import ThumbnailStatus


class Photo(BaseModel):
    """Photo row as stored"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    place_id: int
    photo_num: int = Field(..., ge=1, description="1-based position within the place")
    slug: str
    file_name: str
    is_favorite: bool = False
    width: Optional[int] = None
    height: Optional[int] = None
    thumbnail_status: ThumbnailStatus = ThumbnailStatus.PENDING
    created_at: datetime
    updated_at: datetime


class PhotoInsertResult(BaseModel):
    """Identity assigned to a freshly inserted photo"""

    photo_id: int
    photo_num: int
    slug: str
