"""Slugify - Turn titles into URL path segments.

Used for the path segment of nodes without an explicit slug and for the
auto-derived slug of project and blog nodes.
"""

from __future__ import annotations

import re
import unicodedata

DEFAULT_MAX_LENGTH = 80
FALLBACK_SLUG = "untitled"

_COMBINING_MARKS = re.compile(r"[\u0300-\u036f]")
_WHITESPACE = re.compile(r"\s+")
_ASCII_INVALID = re.compile(r"[^a-z0-9\-_]+")
_UNICODE_INVALID = re.compile(r"[^\w\-]+")


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def slugify(
    text: str | None,
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
    lowercase: bool = True,
    allow_unicode: bool = False,
    replacement: str = "-",
) -> str:
    """Convert free text into a URL-safe slug.

    Accents are stripped ("Café" -> "cafe"), whitespace and invalid
    characters become ``replacement``, repeated replacements collapse
    and are trimmed from both ends.

    Args:
        text: Input text. Empty or None yields "".
        max_length: Maximum slug length, clamped to 10..200.
        lowercase: Lowercase the result.
        allow_unicode: Keep letters and digits from all scripts instead
            of reducing to ASCII.
        replacement: Separator used for removed characters.

    Returns:
        The slug, possibly empty.
    """
    if not text:
        return ""

    limit = _clamp(max_length, 10, 200)
    slug = text.strip()

    if not allow_unicode:
        slug = _COMBINING_MARKS.sub("", unicodedata.normalize("NFKD", slug))
    if lowercase:
        slug = slug.lower()

    slug = _WHITESPACE.sub(replacement, slug)
    if allow_unicode:
        slug = _UNICODE_INVALID.sub(replacement, slug)
    else:
        slug = _ASCII_INVALID.sub(replacement, slug)

    sep = re.escape(replacement)
    slug = re.sub(f"(?:{sep}){{2,}}", replacement, slug)
    trim_edges = re.compile(f"^(?:{sep})+|(?:{sep})+$")
    slug = trim_edges.sub("", slug)

    if len(slug) > limit:
        slug = trim_edges.sub("", slug[:limit])

    return slug


def ensure_slug(text: str | None, fallback: str = FALLBACK_SLUG, **options) -> str:
    """Slugify ``text``, falling back to the slug of ``fallback`` when empty."""
    slug = slugify(text, **options)
    if slug:
        return slug
    return slugify(fallback, **options)
