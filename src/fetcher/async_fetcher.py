"""Async fetcher with per-domain pacing, rotating identities and retry logic."""

import asyncio
import itertools
import logging
import time
from typing import Dict, List, Optional

import httpx

from src.fetcher.http_client import AsyncHTTPClient
from src.fetcher.rate_limiter import DomainPacer
from src.fetcher.retry_handler import RetryHandler
from src.models.data_models import ExtractionRequest
from src.models.errors import FetchError

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
]

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Upgrade-Insecure-Requests": "1",
}


class AsyncFetcher:
    """
    Retrying HTTP fetcher; the only component that performs raw network I/O.

    Responsibilities:
    - Pace requests per domain through the shared DomainPacer
    - Send a different rotating User-Agent on every attempt
    - Retry timeouts, transport errors, 403/408/429 and 5xx with linear backoff
    - Fail fast on 404 and other client errors
    - Surface exhausted retries as FetchError
    """

    def __init__(
        self,
        http_client: AsyncHTTPClient,
        pacer: Optional[DomainPacer] = None,
        retry_handler: Optional[RetryHandler] = None,
        timeout: float = 30.0,
        user_agents: Optional[List[str]] = None,
        sleeper=asyncio.sleep,
        logger: Optional['StructuredLogger'] = None,
    ):
        """
        Initialize fetcher with resilience components.

        Args:
            http_client: Makes HTTP requests with timeouts
            pacer: Serializes requests per domain (None disables pacing)
            retry_handler: Retry policy (default: 3 attempts, 1s linear backoff)
            timeout: Default per-attempt timeout in seconds
            user_agents: Identity pool rotated across attempts
            sleeper: Async sleep used for backoff
            logger: Optional structured logger for telemetry
        """
        self.http_client = http_client
        self.pacer = pacer
        self.retry_handler = retry_handler or RetryHandler()
        self.timeout = timeout
        self.user_agents = list(user_agents or USER_AGENTS)
        self._sleep = sleeper
        self.logger = logger
        self._ua_cursor = itertools.count()

    async def fetch_text(
        self,
        url: str,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        request: Optional[ExtractionRequest] = None,
    ) -> str:
        """
        Fetch url and return the decoded body.

        Args:
            url: URL to fetch
            max_retries: Total attempts (default: retry handler setting)
            timeout: Per-attempt timeout in seconds
            headers: Extra headers merged over the browser defaults
            request: Optional ExtractionRequest whose attempt_count is tracked

        Raises:
            FetchError: If every attempt failed or the failure is not retryable
        """
        response = await self._fetch(url, max_retries, timeout, headers, request)
        return response.text

    async def fetch_bytes(
        self,
        url: str,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> bytes:
        """Fetch url and return the raw body (used for gzipped sitemaps)."""
        response = await self._fetch(url, max_retries, timeout, headers, None)
        return response.content

    def _headers_for_attempt(self, extra: Optional[Dict[str, str]]) -> Dict[str, str]:
        headers = dict(BROWSER_HEADERS)
        headers["User-Agent"] = self.user_agents[next(self._ua_cursor) % len(self.user_agents)]
        if extra:
            headers.update(extra)
        return headers

    async def _fetch(
        self,
        url: str,
        max_retries: Optional[int],
        timeout: Optional[float],
        headers: Optional[Dict[str, str]],
        request: Optional[ExtractionRequest],
    ) -> httpx.Response:
        attempts = max_retries if max_retries is not None else self.retry_handler.max_retries
        attempts = max(1, attempts)
        timeout = timeout if timeout is not None else self.timeout

        cause = "no attempt made"
        status_code: Optional[int] = None
        made = 0

        for attempt_index in range(1, attempts + 1):
            made = attempt_index
            if request is not None:
                request.attempt_count += 1

            if self.pacer:
                await self.pacer.acquire(url)

            if self.logger:
                self.logger.fetch_start(url=url, attempt=attempt_index)

            start = time.monotonic()
            status_code = None
            failure: Dict[str, object] = {}
            try:
                response = await self.http_client.get(
                    url,
                    headers=self._headers_for_attempt(headers),
                    timeout=timeout,
                )
                response.raise_for_status()

                if self.logger:
                    self.logger.fetch_success(
                        url=url,
                        attempt=attempt_index,
                        elapsed_ms=(time.monotonic() - start) * 1000,
                    )
                return response

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                cause = f"HTTP {status_code}"
                failure = {"status_code": status_code}

            except httpx.TimeoutException:
                cause = f"timeout after {timeout}s"
                failure = {"is_timeout": True}

            except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
                cause = f"invalid URL: {e}"

            except httpx.TransportError as e:
                cause = f"transport error: {e.__class__.__name__}: {e}"
                failure = {"is_transport_error": True}

            if self.logger:
                self.logger.fetch_error(url=url, status=status_code, error=cause, attempt=attempt_index)

            if not self.retry_handler.should_retry(attempt_index, max_attempts=attempts, **failure):
                break

            await self._sleep(self.retry_handler.delay_for(attempt_index))

        if self.logger:
            self.logger.log("fetch_exhausted", level=logging.WARNING, url=url, attempts=made, status=status_code, error=cause)
        raise FetchError(url, cause, status_code=status_code, attempts=made)
