# backend/gallery/services/thumbnail_pipeline/__init__.py
"""
Thumbnail Pipeline

Derived artifacts of a primary blob:
- ThumbnailEngine: WebP variants (thumb/small/medium)
- OgImageGenerator: social preview image
- naming helpers shared with the upload pipeline and the orphan reconciler
"""

from .file_lock import ThumbnailLock
from .naming import (
    calculate_dimensions,
    derived_file_names,
    expected_file_names,
    og_file_name,
    variant_file_names,
)
from .og_image_generator import OgImageGenerator
from .thumbnail_engine import ThumbnailEngine

__all__ = [
    "ThumbnailEngine",
    "OgImageGenerator",
    "ThumbnailLock",
    "calculate_dimensions",
    "derived_file_names",
    "expected_file_names",
    "og_file_name",
    "variant_file_names",
]
