# backend/gallery/services/slug_generator.py
"""
Slug generation for URLs.

Two modes:
- random slugs for photos: short tokens from a lowercase alphanumeric
  alphabet, regenerated until unused
- text slugs for places: derived from human text, made unique by appending
  -2, -3, ...

When random regeneration runs out of attempts, a Unix timestamp is appended
to a fresh candidate and a warning is logged. The result is not re-checked.
"""

import re
import secrets
import unicodedata
from typing import Callable

from ..constants import (
    DEFAULT_PLACE_SLUG,
    DEFAULT_SLUG_LENGTH,
    MAX_SLUG_ATTEMPTS,
    MAX_TEXT_SLUG_LENGTH,
    SLUG_ALPHABET,
)
from ..enums import LoggerName
from ..exceptions import ValidationError
from ..utils.time_utils import unix_timestamp
from .logger import get_service_logger

logger = get_service_logger(LoggerName.SLUG_GENERATOR)

ExistsFn = Callable[[str], bool]

_DISALLOWED_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHEN_RUNS = re.compile(r"-+")


def random_slug(length: int = DEFAULT_SLUG_LENGTH) -> str:
    """
    Random slug drawn with a cryptographically strong source.

    Args:
        length: Number of characters (must be positive)
    """
    if length <= 0:
        raise ValueError("Slug length must be positive")
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def unique_slug(exists_fn: ExistsFn, length: int = DEFAULT_SLUG_LENGTH) -> str:
    """
    Random slug for which `exists_fn` returns False.

    Tries MAX_SLUG_ATTEMPTS candidates, then falls back to appending the
    current Unix timestamp to a fresh candidate.

    Args:
        exists_fn: Returns True when a candidate is already taken
        length: Length of the random part
    """
    for _ in range(MAX_SLUG_ATTEMPTS):
        candidate = random_slug(length)
        if not exists_fn(candidate):
            return candidate

    fallback = f"{random_slug(length)}-{unix_timestamp()}"
    logger.warning(
        f"Unique slug generation exhausted {MAX_SLUG_ATTEMPTS} attempts, "
        f"using timestamp fallback {fallback}",
        extra_context={"attempts": MAX_SLUG_ATTEMPTS, "slug": fallback},
    )
    return fallback


def _transliterate(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return decomposed.encode("ascii", "ignore").decode("ascii")


def _truncate_at_word_boundary(slug: str, max_length: int) -> str:
    if len(slug) <= max_length:
        return slug
    truncated = slug[:max_length]
    cut = truncated.rfind("-")
    return truncated[:cut] if cut > 0 else truncated


def text_slug(text: str, max_length: int = MAX_TEXT_SLUG_LENGTH) -> str:
    """
    URL-friendly slug from human text.

    "São Paulo, Brazil" -> "sao-paulo-brazil"

    Lowercases, drops accents and other non-ASCII, removes punctuation,
    turns whitespace into hyphens, collapses hyphen runs, truncates at the
    last word boundary within `max_length` and trims stray hyphens.
    """
    if not isinstance(text, str):
        return ""
    slug = _transliterate(text.lower())
    slug = _DISALLOWED_CHARS.sub("", slug)
    slug = _WHITESPACE.sub("-", slug.strip())
    slug = _HYPHEN_RUNS.sub("-", slug)
    slug = _truncate_at_word_boundary(slug, max_length)
    return slug.strip("-")


def unique_text_slug(text: str, exists_fn: ExistsFn) -> str:
    """
    Text slug made unique with numeric suffixes: base, base-2, base-3, ...

    Raises:
        ValidationError: If no free slug is found within MAX_SLUG_ATTEMPTS
    """
    base = text_slug(text) or DEFAULT_PLACE_SLUG
    if not exists_fn(base):
        return base

    for attempt in range(2, MAX_SLUG_ATTEMPTS + 1):
        candidate = f"{base}-{attempt}"
        if not exists_fn(candidate):
            return candidate

    raise ValidationError(
        f"Failed to generate unique slug after {MAX_SLUG_ATTEMPTS} attempts for: {base}"
    )
