"""Unit tests for sitemap parsing and robots.txt discovery."""

import gzip
from contextlib import asynccontextmanager

import httpx
import pytest

from src.crawler.sitemap_parser import (
    SitemapParser,
    decode_sitemap,
    extract_sitemaps_from_robots,
    fallback_sitemap_urls,
    is_sitemap_url,
    parse_sitemap_xml,
)
from src.fetcher.async_fetcher import AsyncFetcher
from src.fetcher.http_client import AsyncHTTPClient
from src.models.errors import SitemapParseError
from tests.fixtures.recipes import FakeClock

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://example.com/recipes/pancakes</loc></url>
  <url><loc> https://example.com/recipes/soup </loc></url>
  <url><loc>not-a-url</loc></url>
</urlset>"""

INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://example.com/sitemap-recipes.xml</loc></sitemap>
  <sitemap><loc>https://example.com/sitemap-pages.xml.gz</loc></sitemap>
</sitemapindex>"""


class TestParseSitemapXml:

    def test_urlset(self):
        result = parse_sitemap_xml(URLSET, "https://example.com/sitemap.xml")

        assert result.is_index is False
        assert result.locs == ["https://example.com/recipes/pancakes", "https://example.com/recipes/soup"]
        assert len(result.parse_errors) == 1

    def test_index(self):
        result = parse_sitemap_xml(INDEX)
        assert result.is_index is True
        assert len(result.locs) == 2

    def test_namespace_free_sitemap(self):
        xml = "<urlset><url><loc>https://example.com/recipes/a</loc></url></urlset>"
        assert parse_sitemap_xml(xml).locs == ["https://example.com/recipes/a"]

    def test_malformed_xml_falls_back_to_regex(self):
        xml = "<urlset><url><loc>https://example.com/recipes/a</loc></url><url><loc>https://example.com/recipes/b</loc>"
        result = parse_sitemap_xml(xml)
        assert result.locs == ["https://example.com/recipes/a", "https://example.com/recipes/b"]
        assert result.parse_errors

    def test_cdata_locs_in_fallback(self):
        xml = "<urlset><url><loc><![CDATA[https://example.com/recipes/a]]></loc></url>"
        assert parse_sitemap_xml(xml).locs == ["https://example.com/recipes/a"]

    def test_garbage_raises(self):
        with pytest.raises(SitemapParseError):
            parse_sitemap_xml("<html><body>Not a sitemap")

    def test_unknown_root_raises(self):
        with pytest.raises(SitemapParseError, match="Unknown sitemap root"):
            parse_sitemap_xml("<rss><channel/></rss>")


class TestDecodeSitemap:

    def test_gzip_detected_by_magic_bytes(self):
        assert decode_sitemap(gzip.compress(URLSET.encode())).startswith("<?xml")

    def test_leading_bom_and_junk_stripped(self):
        text = decode_sitemap(("\ufeff\n  " + URLSET).encode("utf-8"))
        assert text.startswith("<?xml")

    def test_truncated_gzip_raises(self):
        with pytest.raises(SitemapParseError):
            decode_sitemap(gzip.compress(URLSET.encode())[:20])


class TestHelpers:

    def test_robots_sitemap_directives(self):
        robots = "User-agent: *\nDisallow: /admin\nSitemap: https://example.com/a.xml\nsitemap:https://example.com/b.xml\n"
        assert extract_sitemaps_from_robots(robots) == ["https://example.com/a.xml", "https://example.com/b.xml"]

    def test_fallback_urls_exclude_already_tried(self):
        urls = fallback_sitemap_urls("https://example.com/some/page", exclude=["https://example.com/sitemap.xml"])
        assert urls[0] == "https://example.com/sitemap_index.xml"
        assert "https://example.com/sitemap.xml" not in urls
        assert all(u.startswith("https://example.com/") for u in urls)

    @pytest.mark.parametrize("url,expected", [
        ("https://example.com/sitemap.xml", True),
        ("https://example.com/sitemap.xml.gz", True),
        ("https://example.com/recipes/a", False),
    ])
    def test_is_sitemap_url(self, url, expected):
        assert is_sitemap_url(url) is expected


class TestSitemapParser:

    ROUTES = {
        "/sitemap.xml": (200, URLSET.encode()),
        "/sitemap.xml.gz": (200, gzip.compress(INDEX.encode())),
        "/robots.txt": (200, b"Sitemap: https://example.com/sitemap.xml\n"),
    }

    @asynccontextmanager
    async def parser(self, routes):
        def handler(request):
            status, body = routes.get(request.url.path, (404, b""))
            return httpx.Response(status, content=body)

        async with AsyncHTTPClient(transport=httpx.MockTransport(handler)) as http_client:
            yield SitemapParser(AsyncFetcher(http_client, sleeper=FakeClock().sleep), max_retries=1)

    @pytest.mark.asyncio
    async def test_fetch_and_parse(self):
        async with self.parser(self.ROUTES) as parser:
            result = await parser.parse_sitemap("https://example.com/sitemap.xml")
        assert len(result.locs) == 2

    @pytest.mark.asyncio
    async def test_gzipped_index(self):
        async with self.parser(self.ROUTES) as parser:
            result = await parser.parse_sitemap("https://example.com/sitemap.xml.gz")
        assert result.is_index is True

    @pytest.mark.asyncio
    async def test_unreachable_sitemap_raises_parse_error(self):
        async with self.parser(self.ROUTES) as parser:
            with pytest.raises(SitemapParseError, match="HTTP 404"):
                await parser.parse_sitemap("https://example.com/missing.xml")

    @pytest.mark.asyncio
    async def test_robots_discovery(self):
        async with self.parser(self.ROUTES) as parser:
            assert await parser.discover_from_robots("https://example.com/any") == ["https://example.com/sitemap.xml"]

    @pytest.mark.asyncio
    async def test_missing_robots_returns_empty(self):
        async with self.parser({}) as parser:
            assert await parser.discover_from_robots("https://example.com") == []
