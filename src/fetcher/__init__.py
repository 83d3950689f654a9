"""Network layer: pacing, retrying fetches, circuit registry and headless rendering."""

from .async_fetcher import AsyncFetcher
from .circuit_breaker import CircuitRegistry
from .http_client import AsyncHTTPClient
from .rate_limiter import DomainPacer, extract_domain
from .renderer import HeadlessRenderer
from .retry_handler import RetryHandler

__all__ = [
    "AsyncFetcher",
    "AsyncHTTPClient",
    "CircuitRegistry",
    "DomainPacer",
    "HeadlessRenderer",
    "RetryHandler",
    "extract_domain",
]
