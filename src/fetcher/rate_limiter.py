"""Per-domain request pacing."""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional
from urllib.parse import urlsplit


def extract_domain(url: str) -> str:
    """Return the lower-cased host of url without a leading 'www.'."""
    host = (urlsplit(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


class DomainPacer:
    """Serializes requests per domain with a minimum spacing between them.

    Requests to one domain are admitted one at a time, each no sooner than
    min_interval seconds after the previous admission. Different domains
    never wait on each other, so the pacing nests inside whatever global
    concurrency bound the caller applies.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        now: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], any] = asyncio.sleep,
        logger: Optional['StructuredLogger'] = None,
    ):
        """Initialize pacer.

        Args:
            min_interval: Minimum seconds between two requests to one domain
            now: Clock function for time operations (default: time.monotonic)
            sleeper: Async sleep function (default: asyncio.sleep)
            logger: Optional structured logger for pacing waits
        """
        self.min_interval = min_interval
        self._now = now
        self._sleep = sleeper
        self.logger = logger

        # Per-domain admission state: {domain: last_admission_time}
        self._last_request: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, domain: str) -> asyncio.Lock:
        lock = self._locks.get(domain)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[domain] = lock
        return lock

    async def acquire(self, url_or_domain: str) -> float:
        """Wait until a request to the domain may be issued.

        Args:
            url_or_domain: Full URL or bare domain name

        Returns:
            Seconds spent waiting
        """
        domain = extract_domain(url_or_domain) if "://" in url_or_domain else url_or_domain.lower()
        if self.min_interval <= 0:
            self._last_request[domain] = self._now()
            return 0.0

        async with self._lock_for(domain):
            waited = 0.0
            last = self._last_request.get(domain)
            if last is not None:
                remaining = self.min_interval - (self._now() - last)
                # Re-check after each sleep; a coarse sleeper may wake early
                while remaining > 0:
                    if self.logger:
                        self.logger.log("pacing_wait", level=logging.DEBUG, domain=domain, wait_ms=round(remaining * 1000, 1))
                    await self._sleep(remaining)
                    waited += remaining
                    remaining = self.min_interval - (self._now() - last)
            self._last_request[domain] = self._now()
            return waited

    def last_request_time(self, domain: str) -> Optional[float]:
        """Get the last admission time for a domain (monitoring and tests)."""
        return self._last_request.get(domain)
