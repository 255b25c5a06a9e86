# backend/gallery/services/thumbnail_pipeline/naming.py
"""
Deterministic names of derived artifacts.

Derived files are located by name alone, without a side table:
- variants: "{stem}-thumb.webp", "{stem}-small.webp", "{stem}-medium.webp"
- social preview: "{stem}-og.jpg"
- generation lock: "{stem}.lock"
"""

from pathlib import Path
from typing import Iterable, List, Set, Tuple

from ...constants import (
    LOCK_FILE_EXTENSION,
    OG_IMAGE_EXTENSION,
    OG_IMAGE_SUFFIX,
    THUMBNAIL_EXTENSION,
    THUMBNAIL_VARIANT_SIZES,
    THUMBNAIL_VARIANT_SUFFIXES,
)
from ...enums import ThumbnailVariant


def file_stem(file_name: str) -> str:
    return Path(file_name).stem


def variant_file_name(file_name: str, variant: ThumbnailVariant) -> str:
    return f"{file_stem(file_name)}{THUMBNAIL_VARIANT_SUFFIXES[variant]}{THUMBNAIL_EXTENSION}"


def variant_file_names(file_name: str) -> List[Tuple[ThumbnailVariant, str, int]]:
    """(variant, file name, max dimension) for every configured variant."""
    return [
        (variant, variant_file_name(file_name, variant), max_dimension)
        for variant, max_dimension in THUMBNAIL_VARIANT_SIZES.items()
    ]


def og_file_name(file_name: str) -> str:
    return f"{file_stem(file_name)}{OG_IMAGE_SUFFIX}{OG_IMAGE_EXTENSION}"


def lock_file_name(file_name: str) -> str:
    return f"{file_stem(file_name)}{LOCK_FILE_EXTENSION}"


def derived_file_names(file_name: str) -> List[str]:
    """Every derived artifact name for one primary blob."""
    names = [name for _, name, _ in variant_file_names(file_name)]
    names.append(og_file_name(file_name))
    return names


def expected_file_names(file_names: Iterable[str]) -> Set[str]:
    """Primary blobs plus all of their derived artifacts."""
    expected: Set[str] = set()
    for file_name in file_names:
        expected.add(file_name)
        expected.update(derived_file_names(file_name))
    return expected


def calculate_dimensions(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """
    Fit (width, height) inside a max_dimension square, keeping aspect ratio.

    The longer side becomes max_dimension (never upscaled past the source);
    the shorter side scales proportionally, rounded to the nearest pixel.

    Examples:
        calculate_dimensions(1600, 1200, 200) -> (200, 150)
        calculate_dimensions(1000, 3000, 400) -> (133, 400)
        calculate_dimensions(120, 80, 800) -> (120, 80)
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid source dimensions {width}x{height}")
    longer = max(width, height)
    target = min(max_dimension, longer)
    if width >= height:
        return target, max(1, round(height * target / width))
    return max(1, round(width * target / height)), target
