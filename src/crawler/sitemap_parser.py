"""
Sitemap Parser.

Parses standard sitemaps, sitemap indexes and gzipped sitemaps, and
discovers sitemaps from robots.txt.

Features:
- Namespace-agnostic urlset / sitemapindex parsing
- Gzipped sitemaps (.xml.gz or gzip magic bytes)
- Regex <loc> fallback for malformed XML
- robots.txt Sitemap: directives
- Common sitemap locations for sites that do not advertise one
"""

import gzip
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlsplit
from xml.etree import ElementTree as ET

from src.models.errors import FetchError, SitemapParseError

COMMON_SITEMAP_PATHS = [
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap-index.xml",
    "/wp-sitemap.xml",
    "/recipe-sitemap.xml",
    "/recipes-sitemap.xml",
    "/sitemap-recipes.xml",
    "/post-sitemap.xml",
    "/sitemaps/sitemap.xml",
    "/sitemap.xml.gz",
    "/wp-sitemap-posts-recipe-1.xml",
    "/wp-sitemap-posts-post-1.xml",
]

_LOC_PATTERN = re.compile(r"<loc>\s*(?:<!\[CDATA\[)?\s*([^<\]]+?)\s*(?:\]\]>)?\s*</loc>", re.IGNORECASE)
_ROBOTS_SITEMAP = re.compile(r"^\s*Sitemap:\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)
_XML_START = re.compile(r"<\?xml|<urlset|<sitemapindex")
_LEADING_JUNK = re.compile(r"^[\x00-\x1f\x7f-\x9f\ufeff]+")


@dataclass
class SitemapResult:
    """
    Result of parsing a sitemap.

    Attributes:
        source_url: The sitemap this result was parsed from
        locs: Page URLs (urlset) or child sitemap URLs (index)
        is_index: Whether this is a sitemap index file
        parse_errors: Non-fatal parse errors encountered
    """
    source_url: str
    locs: List[str]
    is_index: bool
    parse_errors: List[str] = field(default_factory=list)


def clean_url(url: Optional[str]) -> Optional[str]:
    """Return url stripped if it is an absolute http(s) URL, else None."""
    if not url:
        return None
    cleaned = url.strip()
    if not cleaned.startswith(("http://", "https://")):
        return None
    if not urlsplit(cleaned).netloc:
        return None
    return cleaned


def is_sitemap_url(url: str) -> bool:
    path = urlsplit(url).path.lower()
    return path.endswith(".xml") or path.endswith(".xml.gz")


def decode_sitemap(content: bytes, url: str = "") -> str:
    """
    Decode raw sitemap bytes, decompressing gzip when needed.

    Raises:
        SitemapParseError: If gzip decompression fails
    """
    if content[:2] == b"\x1f\x8b":
        try:
            content = gzip.decompress(content)
        except (OSError, EOFError) as e:
            raise SitemapParseError(f"Failed to decompress gzipped sitemap {url}: {e}")

    text = content.decode("utf-8", errors="replace")
    text = _LEADING_JUNK.sub("", text.strip())
    match = _XML_START.search(text)
    if match and match.start() > 0:
        text = text[match.start():]
    return text


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower()


def parse_sitemap_xml(content: str, source_url: str = "") -> SitemapResult:
    """
    Parse XML sitemap content.

    Falls back to a regex scan for <loc> elements when the XML is
    malformed; the fallback result is never treated as an index, callers
    recurse into any .xml locs they find.

    Raises:
        SitemapParseError: If neither the XML parser nor the fallback finds any loc
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        locs = [u for u in (clean_url(m) for m in _LOC_PATTERN.findall(content)) if u]
        if not locs:
            raise SitemapParseError(f"Invalid XML in {source_url}: {e}")
        return SitemapResult(source_url, locs, is_index=False, parse_errors=[f"Invalid XML: {e}"])

    root_name = _local_name(root.tag)
    if root_name not in ("urlset", "sitemapindex"):
        raise SitemapParseError(f"Unknown sitemap root element: {root.tag}")

    locs = []
    parse_errors = []
    for entry in root:
        for child in entry:
            if _local_name(child.tag) != "loc":
                continue
            url = clean_url(child.text)
            if url:
                locs.append(url)
            else:
                parse_errors.append(f"Invalid loc: {child.text!r}")

    return SitemapResult(source_url, locs, is_index=root_name == "sitemapindex", parse_errors=parse_errors)


def extract_sitemaps_from_robots(content: str) -> List[str]:
    """Extract Sitemap: URLs from robots.txt content."""
    return [u for u in (clean_url(m) for m in _ROBOTS_SITEMAP.findall(content)) if u]


def fallback_sitemap_urls(base_url: str, exclude: Optional[List[str]] = None) -> List[str]:
    """Common sitemap locations for the site at base_url, minus exclude."""
    parts = urlsplit(base_url)
    origin = f"{parts.scheme}://{parts.netloc}"
    excluded = set(exclude or [])
    seen = set()
    urls = []
    for path in COMMON_SITEMAP_PATHS:
        url = origin + path
        if url not in excluded and url not in seen:
            seen.add(url)
            urls.append(url)
    return urls


class SitemapParser:
    """
    Fetches and parses sitemaps through the pipeline fetcher.

    All network I/O goes through AsyncFetcher, so sitemap requests are
    paced and retried like page requests.
    """

    def __init__(
        self,
        fetcher: 'AsyncFetcher',
        max_retries: int = 2,
        logger: Optional['StructuredLogger'] = None,
    ):
        """
        Initialize the sitemap parser.

        Args:
            fetcher: Fetcher used for sitemap and robots.txt requests
            max_retries: Attempts per sitemap request
            logger: Optional structured logger
        """
        self.fetcher = fetcher
        self.max_retries = max_retries
        self.logger = logger

    async def parse_sitemap(self, url: str) -> SitemapResult:
        """
        Fetch and parse a sitemap or sitemap index.

        Raises:
            SitemapParseError: If the sitemap cannot be fetched or parsed
        """
        try:
            content = await self.fetcher.fetch_bytes(
                url,
                max_retries=self.max_retries,
                headers={"Accept": "application/xml, text/xml, application/gzip, */*"},
            )
        except FetchError as e:
            raise SitemapParseError(f"Failed to fetch sitemap {url}: {e.cause}")

        result = parse_sitemap_xml(decode_sitemap(content, url), url)
        if self.logger:
            self.logger.log(
                "sitemap_parsed",
                url=url,
                is_index=result.is_index,
                locs=len(result.locs),
                parse_errors=len(result.parse_errors),
            )
        return result

    async def discover_from_robots(self, base_url: str) -> List[str]:
        """
        Discover sitemap URLs from the site's robots.txt.

        Returns:
            Sitemap URLs; empty if robots.txt is unreachable
        """
        parts = urlsplit(base_url)
        robots_url = f"{parts.scheme}://{parts.netloc}/robots.txt"
        try:
            content = await self.fetcher.fetch_text(robots_url, max_retries=1)
        except FetchError as e:
            if self.logger:
                self.logger.log("robots_unavailable", url=robots_url, error=e.cause)
            return []
        return extract_sitemaps_from_robots(content)
