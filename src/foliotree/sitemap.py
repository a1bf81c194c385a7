"""Sitemap primitives - overrides, defaults, URLs and XML rendering.

TreeProjector decides which nodes become sitemap entries; this module
holds the value types and the formatting rules shared by the JSON and
XML outputs.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from xml.sax.saxutils import escape

from foliotree.utilities.timestamps import format_timestamp, parse_timestamp

CHANGE_FREQUENCIES = ("always", "hourly", "daily", "weekly", "monthly", "yearly", "never")

SITEMAP_NAMESPACE = "http://www.sitemaps.org/schemas/sitemap/0.9"

HOME_PATH = "/"
HOME_CHANGE_FREQUENCY = "weekly"
HOME_PRIORITY = 1.0

DEFAULT_PRIORITY = 0.5
MAX_DEFAULT_DEPTH = 10


def clamp_number(value: Any, fallback: float, low: float, high: float) -> float:
    """Clamp a number (or numeric string) into ``[low, high]``.

    Non-numeric input, booleans, NaN and infinities yield ``fallback``.
    """
    number: float | None = None
    if isinstance(value, bool):
        number = None
    elif isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            number = None
    if number is None or not math.isfinite(number):
        return fallback
    return min(high, max(low, number))


def parse_change_frequency(value: Any) -> str | None:
    """Return the lowercased change frequency if valid, else None."""
    if not isinstance(value, str):
        return None
    candidate = value.strip().lower()
    return candidate if candidate in CHANGE_FREQUENCIES else None


@dataclass(frozen=True)
class SitemapOverride:
    """Per-node sitemap settings, usually stored under ``meta["sitemap"]``.

    Attributes:
        exclude: Leave the node out of the sitemap.
        include_folder_route: Emit an entry for a folder node.
        change_frequency: Replaces the depth-based default.
        priority: Replaces the depth-based default, within 0..1.
        last_modified: Replaces the node's timestamps.
    """

    exclude: bool = False
    include_folder_route: bool = False
    change_frequency: str | None = None
    priority: float | None = None
    last_modified: datetime | None = None

    @classmethod
    def from_mapping(cls, obj: Any) -> SitemapOverride:
        """Read overrides from an untrusted mapping.

        Flags only count when literally ``True``. Invalid change
        frequencies and dates are dropped; an unparsable priority
        becomes 0.5.
        """
        if not isinstance(obj, Mapping):
            return cls()
        priority = obj.get("priority")
        if priority is not None:
            priority = clamp_number(priority, DEFAULT_PRIORITY, 0.0, 1.0)
        include_folder = obj.get("includeFolderRoute", obj.get("include_folder_route"))
        return cls(
            exclude=obj.get("exclude") is True,
            include_folder_route=include_folder is True,
            change_frequency=parse_change_frequency(obj.get("changefreq")),
            priority=priority,
            last_modified=parse_timestamp(obj.get("lastmod")),
        )


@dataclass(frozen=True)
class SitemapEntry:
    """One URL of the sitemap, before it is made absolute."""

    path: str
    last_modified: datetime | None
    change_frequency: str
    priority: float

    def to_dict(self, site_url: str | None = None) -> dict[str, Any]:
        result: dict[str, Any] = {
            "path": self.path,
            "lastmod": format_timestamp(self.last_modified),
            "changefreq": self.change_frequency,
            "priority": self.priority,
        }
        if site_url is not None:
            result["loc"] = build_absolute_url(site_url, self.path)
        return result


def section_defaults(depth: int) -> tuple[str, float]:
    """Default (change frequency, priority) for a node at ``depth``.

    Deeper pages change less often and rank lower: priority drops by
    0.08 per level down to 0.1, and the frequency moves from weekly
    (depth <= 1) to monthly (<= 3) to yearly.
    """
    d = max(0, min(MAX_DEFAULT_DEPTH, depth))
    priority = round(max(0.1, 1.0 - d * 0.08), 2)
    if d <= 1:
        return "weekly", priority
    if d <= 3:
        return "monthly", priority
    return "yearly", priority


ITEM_ROUTES = {"project": "/project", "blog": "/blog"}

_ITEM_DEFAULTS = {"project": ("monthly", 0.6), "blog": ("weekly", 0.7)}


def item_defaults(kind: str) -> tuple[str, float]:
    """Default (change frequency, priority) for a project or blog page."""
    return _ITEM_DEFAULTS[kind]


def home_entry(last_modified: datetime | None = None) -> SitemapEntry:
    return SitemapEntry(
        path=HOME_PATH,
        last_modified=last_modified,
        change_frequency=HOME_CHANGE_FREQUENCY,
        priority=HOME_PRIORITY,
    )


def normalize_path(raw: str) -> str:
    """Normalize a URL path: leading slash, no query, no duplicate or trailing slashes."""
    path = (raw or "").strip()
    path = path.split("?", 1)[0].split("#", 1)[0]
    if not path.startswith("/"):
        path = "/" + path
    while "//" in path:
        path = path.replace("//", "/")
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return path


def build_absolute_url(site_url: str, path: str) -> str:
    """Join the site base URL and a path; the home path maps to the bare base."""
    base = site_url.strip().rstrip("/")
    normalized = normalize_path(path)
    if normalized == HOME_PATH:
        return base
    return f"{base}{normalized}"


def _format_priority(priority: float) -> str:
    return f"{priority:.1f}"


def render_sitemap_xml(entries: Iterable[SitemapEntry], site_url: str) -> str:
    """Render entries as a sitemaps.org ``urlset`` document."""
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<urlset xmlns="{SITEMAP_NAMESPACE}">',
    ]
    for entry in entries:
        parts = [f"<loc>{escape(build_absolute_url(site_url, entry.path))}</loc>"]
        lastmod = format_timestamp(entry.last_modified)
        if lastmod:
            parts.append(f"<lastmod>{escape(lastmod)}</lastmod>")
        if entry.change_frequency:
            parts.append(f"<changefreq>{escape(entry.change_frequency)}</changefreq>")
        if math.isfinite(entry.priority):
            parts.append(f"<priority>{_format_priority(entry.priority)}</priority>")
        lines.append(f"  <url>{''.join(parts)}</url>")
    lines.append("</urlset>")
    return "\n".join(lines) + "\n"
