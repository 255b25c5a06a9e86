# backend/gallery/services/thumbnail_pipeline/og_image_generator.py
"""
Social preview ("og") image composition.

A 1200x630 centre crop of the photo with a soft dark gradient along the
bottom edge carrying the place name, its location and a brand line.
Output is written like every other derived artifact: temp file, fsync,
rename.
"""

from pathlib import Path
from typing import Optional, Union

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from ...config import settings
from ...constants import (
    OG_BRAND_TEXT,
    OG_GRADIENT_MAX_ALPHA,
    OG_GRADIENT_START,
    OG_IMAGE_HEIGHT,
    OG_IMAGE_PADDING,
    OG_IMAGE_QUALITY,
    OG_IMAGE_WIDTH,
    OG_META_SIZE,
    OG_TITLE_MAX_CHARS,
    OG_TITLE_SIZE,
)
from ...enums import LogEmoji, LoggerName, LogSource
from ...exceptions import NotFoundError, StorageError
from ...utils.file_helpers import delete_file_safe, fsync_file, replace_atomic, temp_path_for
from ..logger import get_service_logger

logger = get_service_logger(LoggerName.THUMBNAIL_PIPELINE, LogSource.PIPELINE)

PathLike = Union[str, Path]


def truncate_text(text: str, max_chars: int = OG_TITLE_MAX_CHARS) -> str:
    """Shorten text to max_chars, ending with an ellipsis when cut."""
    text = text.strip()
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 1].rstrip() + "…"


def _load_font(size: int, font_path: Optional[str]):
    if font_path:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError:
            logger.warning(
                f"Could not load preview font {font_path}, using default font"
            )
    return ImageFont.load_default(size=size)


def _bottom_gradient(width: int, height: int) -> Image.Image:
    """Black overlay whose alpha ramps from 0 to the max over the bottom band."""
    start = int(height * OG_GRADIENT_START)
    band = max(1, height - start)
    alpha = Image.new("L", (1, height), 0)
    for y in range(start, height):
        alpha.putpixel((0, y), int(OG_GRADIENT_MAX_ALPHA * (y - start + 1) / band))
    overlay = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    overlay.putalpha(alpha.resize((width, height)))
    return overlay


class OgImageGenerator:
    """
    Composes the social preview image of one photo.

    Args:
        font_path: TrueType font for the text (Pillow's default font if None)
        quality: JPEG quality of the output
    """

    def __init__(
        self, font_path: Optional[str] = None, quality: int = OG_IMAGE_QUALITY
    ):
        self.font_path = font_path if font_path is not None else settings.og_font_path
        self.quality = quality

    def generate(
        self,
        source_path: PathLike,
        output_path: PathLike,
        place_name: str,
        location: str = "",
    ) -> Path:
        """
        Write the preview for source_path to output_path.

        Raises:
            NotFoundError: Source missing
            StorageError: Decode, encode or filesystem failure
        """
        source = Path(source_path)
        output = Path(output_path)
        if not source.is_file():
            raise NotFoundError(f"Original file not found: {source.name}")

        temp_path = temp_path_for(output)
        try:
            with Image.open(source) as img:
                canvas = self._compose(img, place_name, location)
            canvas.save(temp_path, "JPEG", quality=self.quality, optimize=True)
            fsync_file(temp_path)
            replace_atomic(temp_path, output)
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            delete_file_safe(temp_path)
            raise StorageError(f"Failed to generate preview {output.name}: {e}") from e

        logger.debug(
            f"Generated preview image {output.name}",
            emoji=LogEmoji.IMAGE,
            extra_context={"source": source.name, "output": str(output)},
        )
        return output

    def _compose(self, img: Image.Image, place_name: str, location: str) -> Image.Image:
        img = ImageOps.exif_transpose(img)
        cropped = ImageOps.fit(
            img.convert("RGB"),
            (OG_IMAGE_WIDTH, OG_IMAGE_HEIGHT),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )
        canvas = Image.alpha_composite(
            cropped.convert("RGBA"), _bottom_gradient(OG_IMAGE_WIDTH, OG_IMAGE_HEIGHT)
        )

        draw = ImageDraw.Draw(canvas)
        title_font = _load_font(OG_TITLE_SIZE, self.font_path)
        meta_font = _load_font(OG_META_SIZE, self.font_path)

        # Stacked from the bottom: brand, location, title
        brand_y = OG_IMAGE_HEIGHT - OG_IMAGE_PADDING
        location_y = brand_y - OG_META_SIZE - 12
        title_y = location_y - OG_TITLE_SIZE - 12

        draw.text(
            (OG_IMAGE_PADDING, title_y),
            truncate_text(place_name),
            font=title_font,
            fill=(255, 255, 255, 255),
        )
        if location:
            draw.text(
                (OG_IMAGE_PADDING + 2, location_y),
                location.upper(),
                font=meta_font,
                fill=(255, 255, 255, 217),
            )
        draw.text(
            (OG_IMAGE_PADDING + 2, brand_y),
            OG_BRAND_TEXT,
            font=meta_font,
            fill=(255, 255, 255, 153),
        )
        return canvas.convert("RGB")
