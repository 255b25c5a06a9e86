# backend/gallery/models/place_model.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PlaceBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Place name")
    location: str = Field(default="", max_length=255, description="City or region")
    country: str = Field(default="", max_length=255, description="Country name")
    start_date: Optional[str] = Field(None, max_length=50, description="Trip start (opaque)")
    end_date: Optional[str] = Field(None, max_length=50, description="Trip end (opaque)")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Place name cannot be blank")
        return v.strip()


class PlaceCreate(PlaceBase):
    """Model for creating a new place"""

    pass


class Place(PlaceBase):
    """Place row as stored"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    favorites: int = 0
    sort_order: int = 0
    created_at: datetime
    updated_at: datetime
