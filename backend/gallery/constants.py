# backend/gallery/constants.py
"""
Global Constants for the gallery pipeline.

Centralized location for all application constants to avoid hardcoded values
throughout the codebase.
"""

from typing import Dict, FrozenSet, Tuple

from .enums import ThumbnailVariant

# =============================================================================
# BLOB NAMING
# =============================================================================

# Maximum dimension (longer side) per variant
THUMBNAIL_VARIANT_SIZES: Dict[ThumbnailVariant, int] = {
    ThumbnailVariant.THUMB: 200,
    ThumbnailVariant.SMALL: 400,
    ThumbnailVariant.MEDIUM: 800,
}

THUMBNAIL_VARIANT_SUFFIXES: Dict[ThumbnailVariant, str] = {
    ThumbnailVariant.THUMB: "-thumb",
    ThumbnailVariant.SMALL: "-small",
    ThumbnailVariant.MEDIUM: "-medium",
}

THUMBNAIL_EXTENSION = ".webp"
THUMBNAIL_FORMAT = "WEBP"

OG_IMAGE_SUFFIX = "-og"
OG_IMAGE_EXTENSION = ".jpg"
OG_IMAGE_WIDTH = 1200
OG_IMAGE_HEIGHT = 630
OG_IMAGE_QUALITY = 85
OG_IMAGE_PADDING = 80
OG_TITLE_SIZE = 72
OG_META_SIZE = 28
OG_TITLE_MAX_CHARS = 25
OG_BRAND_TEXT = "GALLERY"
# Bottom gradient: transparent until this fraction of the height, then up to the max alpha
OG_GRADIENT_START = 0.6
OG_GRADIENT_MAX_ALPHA = 153

LOCK_FILE_EXTENSION = ".lock"
# Temp names look like "{final_stem}.tmp.{token}{ext}"
TEMP_FILE_MARKER = ".tmp."

PLACES_SUBDIRECTORY = ("images", "places")

# =============================================================================
# UPLOAD VALIDATION
# =============================================================================

ALLOWED_EXTENSIONS: FrozenSet[str] = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif"})
ALLOWED_MIME_TYPES: FrozenSet[str] = frozenset(
    {"image/jpeg", "image/png", "image/webp", "image/gif"}
)
# Stored extension for uploads, keyed by lowercased original extension
EXTENSION_NORMALIZATION: Dict[str, str] = {".jpeg": ".jpg"}

MAX_FILENAME_LENGTH = 255
MAGIC_NUMBER_READ_BYTES = 12

JPEG_MAGIC = b"\xff\xd8\xff"
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
WEBP_RIFF_MAGIC = b"RIFF"
WEBP_FORMAT_MAGIC = b"WEBP"
GIF_MAGICS: Tuple[bytes, ...] = (b"GIF87a", b"GIF89a")

# =============================================================================
# IDENTIFIERS
# =============================================================================

SLUG_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
DEFAULT_SLUG_LENGTH = 8
MAX_SLUG_ATTEMPTS = 100
MAX_TEXT_SLUG_LENGTH = 30
DEFAULT_PLACE_SLUG = "place"

MAX_ID_VALUE = 2_147_483_647

# =============================================================================
# WORKERS
# =============================================================================

RECONCILER_JOB_ID = "orphan_reconciler"
SCHEDULER_MAX_INSTANCES = 1
SCHEDULER_MISFIRE_GRACE_TIME_SECONDS = 300
# Pause after an unexpected error in a worker loop
WORKER_ERROR_BACKOFF_SECONDS = 5
