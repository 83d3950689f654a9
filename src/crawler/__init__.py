"""Recipe URL discovery."""

from .orchestrator import CrawlOrchestrator
from .sitemap_parser import SitemapParser, SitemapResult

__all__ = ["CrawlOrchestrator", "SitemapParser", "SitemapResult"]
