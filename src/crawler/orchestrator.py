"""Crawl orchestrator: discovers recipe URLs for registry targets."""

import logging
import re
import time
from typing import Dict, List, Optional, Pattern, Union
from urllib.parse import urldefrag, urljoin, urlsplit

from bs4 import BeautifulSoup

from src.crawler.sitemap_parser import SitemapParser, fallback_sitemap_urls, is_sitemap_url
from src.fetcher.rate_limiter import extract_domain
from src.models.config import DEFAULT_RECIPE_URL_PATTERN
from src.models.data_models import CrawlResult, CrawlTarget
from src.models.errors import FetchError, SitemapParseError


class CrawlOrchestrator:
    """
    Discovers candidate recipe URLs for a CrawlTarget.

    Discovery order:
    1. The target's sitemap and sub-sitemaps, recursing into sitemap indexes
    2. When none of those is reachable: robots.txt Sitemap: directives,
       then common sitemap locations
    3. When sitemaps yield no recipe URLs: links on the homepage

    Every request goes through the shared fetcher, whose DomainPacer keeps
    successive requests to one domain at least the pacing interval apart.
    """

    def __init__(
        self,
        fetcher: 'AsyncFetcher',
        recipe_pattern: Union[str, Pattern[str]] = DEFAULT_RECIPE_URL_PATTERN,
        sitemap_parser: Optional[SitemapParser] = None,
        max_sitemaps: int = 200,
        logger: Optional['StructuredLogger'] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            fetcher: Shared fetcher (carries the per-domain pacer)
            recipe_pattern: Matcher for recipe article URLs
            sitemap_parser: Sitemap parser (default: one built on fetcher)
            max_sitemaps: Upper bound on sitemaps visited per target
            logger: Optional structured logger
        """
        self.fetcher = fetcher
        if isinstance(recipe_pattern, str):
            recipe_pattern = re.compile(recipe_pattern, re.IGNORECASE)
        self.recipe_pattern = recipe_pattern
        self.sitemap_parser = sitemap_parser or SitemapParser(fetcher, logger=logger)
        self.max_sitemaps = max_sitemaps
        self.logger = logger

    def is_recipe_url(self, url: str) -> bool:
        return bool(self.recipe_pattern.search(url))

    async def discover_urls(self, target: CrawlTarget, limit: Optional[int] = None) -> List[str]:
        """
        Discover recipe URLs for target.

        Args:
            target: Site to crawl
            limit: Maximum number of URLs to return

        Returns:
            Recipe URLs in discovery order, without duplicates
        """
        result = await self.crawl_target(target, limit)
        return result.urls

    async def crawl_target(self, target: CrawlTarget, limit: Optional[int] = None) -> CrawlResult:
        """
        Discover recipe URLs for target and report how they were found.

        Never raises for network or parse failures; they are collected in
        CrawlResult.errors.
        """
        start = time.monotonic()
        found: Dict[str, None] = {}
        errors: List[str] = []
        visited: set = set()

        seeds = [u for u in [target.sitemap_url, *target.sub_sitemaps] if u]
        reachable = False
        for seed in seeds:
            reachable |= await self._crawl_sitemap(seed, found, errors, visited, limit)

        if not reachable:
            self._log("discovery_fallback", target=target.name, via="robots")
            for sitemap_url in await self.sitemap_parser.discover_from_robots(target.base_url):
                reachable |= await self._crawl_sitemap(sitemap_url, found, errors, visited, limit)

        if not reachable:
            self._log("discovery_fallback", target=target.name, via="common_paths")
            for sitemap_url in fallback_sitemap_urls(target.base_url, exclude=list(visited)):
                if await self._crawl_sitemap(sitemap_url, found, errors, visited, limit):
                    break

        discovered_via = "sitemap"
        if not found:
            discovered_via = "homepage"
            self._log("discovery_fallback", target=target.name, via="homepage")
            await self._walk_homepage(target.base_url, found, errors, limit)

        urls = list(found)
        if limit is not None:
            urls = urls[:limit]

        duration_ms = (time.monotonic() - start) * 1000
        self._log(
            "discovery_complete",
            target=target.name,
            urls=len(urls),
            errors=len(errors),
            via=discovered_via,
            elapsed_ms=round(duration_ms, 1),
        )
        return CrawlResult(
            target=target,
            urls=urls,
            errors=errors,
            discovered_via=discovered_via,
            duration_ms=duration_ms,
        )

    async def discover_all(
        self,
        targets: List[CrawlTarget],
        limit_per_target: Optional[int] = None,
    ) -> List[CrawlResult]:
        """Crawl active targets, highest priority first."""
        ordered = sorted((t for t in targets if t.active), key=lambda t: t.priority, reverse=True)
        results = []
        for target in ordered:
            results.append(await self.crawl_target(target, limit_per_target))
        return results

    async def _crawl_sitemap(
        self,
        sitemap_url: str,
        found: Dict[str, None],
        errors: List[str],
        visited: set,
        limit: Optional[int],
    ) -> bool:
        """
        Walk a sitemap tree breadth-first.

        Returns:
            True if the root sitemap was fetched and parsed
        """
        queue = [sitemap_url]
        root_ok = False

        while queue:
            if limit is not None and len(found) >= limit:
                break
            if len(visited) >= self.max_sitemaps:
                errors.append(f"sitemap limit of {self.max_sitemaps} reached")
                break

            url = queue.pop(0)
            if url in visited:
                continue
            visited.add(url)

            try:
                result = await self.sitemap_parser.parse_sitemap(url)
            except SitemapParseError as e:
                errors.append(str(e))
                continue

            if url == sitemap_url:
                root_ok = True

            for loc in result.locs:
                if result.is_index or is_sitemap_url(loc):
                    if loc not in visited:
                        queue.append(loc)
                elif self.is_recipe_url(loc):
                    found.setdefault(loc, None)
                    if limit is not None and len(found) >= limit:
                        break

        return root_ok

    async def _walk_homepage(
        self,
        base_url: str,
        found: Dict[str, None],
        errors: List[str],
        limit: Optional[int],
    ) -> None:
        try:
            html = await self.fetcher.fetch_text(base_url)
        except FetchError as e:
            errors.append(f"homepage fetch failed: {e.cause}")
            return

        domain = extract_domain(base_url)
        soup = BeautifulSoup(html, "lxml")
        for anchor in soup.find_all("a", href=True):
            url, _ = urldefrag(urljoin(base_url, anchor["href"]))
            if urlsplit(url).scheme not in ("http", "https"):
                continue
            if extract_domain(url) != domain or not self.is_recipe_url(url):
                continue
            found.setdefault(url, None)
            if limit is not None and len(found) >= limit:
                return

    def _log(self, event: str, **kwargs) -> None:
        if self.logger:
            self.logger.log(event, level=logging.INFO, **kwargs)
