"""Tests for sitemap primitives: overrides, defaults, URLs and XML."""

import math
from datetime import datetime, timezone

import pytest

from foliotree.sitemap import (
    HOME_PRIORITY,
    SitemapEntry,
    SitemapOverride,
    build_absolute_url,
    clamp_number,
    home_entry,
    normalize_path,
    parse_change_frequency,
    render_sitemap_xml,
    section_defaults,
)


class TestClampNumber:
    def test_in_range(self):
        assert clamp_number(0.3, 0.5, 0.0, 1.0) == 0.3

    def test_clamps(self):
        assert clamp_number(7, 0.5, 0.0, 1.0) == 1.0
        assert clamp_number(-2, 0.5, 0.0, 1.0) == 0.0

    def test_numeric_string(self):
        assert clamp_number(" 0.7 ", 0.5, 0.0, 1.0) == 0.7

    @pytest.mark.parametrize("value", ["high", None, True, math.nan, math.inf, [1]])
    def test_fallback(self, value):
        assert clamp_number(value, 0.5, 0.0, 1.0) == 0.5


class TestSitemapOverride:
    def test_non_mapping(self):
        assert SitemapOverride.from_mapping("nope") == SitemapOverride()

    def test_flags_must_be_true(self):
        override = SitemapOverride.from_mapping({"exclude": "true", "includeFolderRoute": 1})
        assert override.exclude is False
        assert override.include_folder_route is False

    def test_snake_case_folder_flag(self):
        override = SitemapOverride.from_mapping({"include_folder_route": True})
        assert override.include_folder_route is True

    def test_change_frequency_validated(self):
        assert SitemapOverride.from_mapping({"changefreq": "DAILY"}).change_frequency == "daily"
        assert SitemapOverride.from_mapping({"changefreq": "sometimes"}).change_frequency is None

    def test_priority(self):
        assert SitemapOverride.from_mapping({"priority": 3}).priority == 1.0
        assert SitemapOverride.from_mapping({"priority": "junk"}).priority == 0.5
        assert SitemapOverride.from_mapping({}).priority is None

    def test_lastmod(self):
        override = SitemapOverride.from_mapping({"lastmod": "2024-01-01T00:00:00Z"})
        assert override.last_modified == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert SitemapOverride.from_mapping({"lastmod": "soon"}).last_modified is None


class TestDefaults:
    def test_parse_change_frequency(self):
        assert parse_change_frequency(" Weekly ") == "weekly"
        assert parse_change_frequency(3) is None

    @pytest.mark.parametrize(
        "depth,expected",
        [
            (0, ("weekly", 1.0)),
            (1, ("weekly", 0.92)),
            (2, ("monthly", 0.84)),
            (3, ("monthly", 0.76)),
            (4, ("yearly", 0.68)),
            (10, ("yearly", 0.2)),
            (40, ("yearly", 0.2)),
            (-3, ("weekly", 1.0)),
        ],
    )
    def test_section_defaults(self, depth, expected):
        assert section_defaults(depth) == expected

    def test_priority_never_increases_with_depth(self):
        priorities = [section_defaults(d)[1] for d in range(15)]
        assert priorities == sorted(priorities, reverse=True)

    def test_home_entry(self):
        entry = home_entry()
        assert entry.path == "/"
        assert entry.priority == HOME_PRIORITY


class TestUrls:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("work/web", "/work/web"),
            ("/work//web/", "/work/web"),
            ("", "/"),
            ("/", "/"),
            ("about?x=1#top", "/about"),
        ],
    )
    def test_normalize_path(self, raw, expected):
        assert normalize_path(raw) == expected

    def test_absolute_url(self):
        assert build_absolute_url("https://example.com/", "work") == "https://example.com/work"

    def test_home_maps_to_base(self):
        assert build_absolute_url("https://example.com/", "/") == "https://example.com"


class TestRenderXml:
    def test_urlset(self):
        entries = [
            SitemapEntry(
                path="/a&b",
                last_modified=datetime(2024, 5, 1, tzinfo=timezone.utc),
                change_frequency="monthly",
                priority=0.84,
            ),
            SitemapEntry(path="/plain", last_modified=None, change_frequency="weekly", priority=1.0),
        ]
        xml = render_sitemap_xml(entries, "https://example.com")
        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert 'xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"' in xml
        assert "<loc>https://example.com/a&amp;b</loc>" in xml
        assert "<lastmod>2024-05-01T00:00:00Z</lastmod>" in xml
        assert "<priority>0.8</priority>" in xml
        assert xml.count("<url>") == 2
        # No lastmod element when the entry has none
        plain = [line for line in xml.splitlines() if "/plain" in line][0]
        assert "<lastmod>" not in plain

    def test_entry_to_dict(self):
        entry = SitemapEntry(path="/x", last_modified=None, change_frequency="yearly", priority=0.2)
        assert entry.to_dict("https://s.io") == {
            "path": "/x",
            "lastmod": None,
            "changefreq": "yearly",
            "priority": 0.2,
            "loc": "https://s.io/x",
        }
