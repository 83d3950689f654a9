"""Headless-browser render fallback using Playwright Chromium."""

import asyncio
import logging
import time
from typing import Optional

from src.models.data_models import FetchedPage
from src.models.errors import FetchError


class HeadlessRenderer:
    """
    Renders a page in headless Chromium for JavaScript-built recipe pages.

    Features:
    - Lazy Playwright initialization (import on first render)
    - One shared browser per renderer, one context per render
    - Hard wall-clock bound per render, stricter than a whole task
    - All failures surface as FetchError so the extraction chain treats
      them as "no candidate"
    """

    def __init__(
        self,
        timeout: float = 20.0,
        user_agent: Optional[str] = None,
        logger: Optional['StructuredLogger'] = None,
    ):
        """
        Initialize renderer.

        Args:
            timeout: Wall-clock bound on a single render in seconds
            user_agent: User-Agent for the browser context
            logger: Optional structured logger for telemetry
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self.logger = logger
        self._playwright = None
        self._browser = None
        self._error_types: tuple = ()
        self._start_lock = asyncio.Lock()

    async def __aenter__(self):
        """Async context manager entry; the browser starts on first render."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def _ensure_browser(self) -> None:
        async with self._start_lock:
            if self._browser is not None:
                return
            try:
                from playwright.async_api import Error as PlaywrightError
                from playwright.async_api import async_playwright
            except ImportError:
                raise RuntimeError(
                    "Playwright not installed. Install with: "
                    "pip install playwright && playwright install chromium"
                )

            self._error_types = (PlaywrightError,)
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                ],
            )

    async def render(self, url: str, timeout: Optional[float] = None) -> FetchedPage:
        """
        Load url in a headless browser and return the rendered DOM.

        Args:
            url: URL to render
            timeout: Override of the render timeout in seconds

        Returns:
            FetchedPage with rendered=True

        Raises:
            FetchError: On launch failure, navigation error or timeout
        """
        timeout = timeout if timeout is not None else self.timeout
        if self.logger:
            self.logger.log("render_start", url=url, timeout_s=timeout)

        start = time.monotonic()
        try:
            html = await asyncio.wait_for(self._render_html(url, timeout), timeout=timeout)
        except asyncio.TimeoutError:
            self._log_error(url, f"render timeout after {timeout}s")
            raise FetchError(url, f"render timeout after {timeout}s", attempts=1)
        except RuntimeError as e:
            self._log_error(url, str(e))
            raise FetchError(url, str(e), attempts=0)
        except Exception as e:
            if self._error_types and isinstance(e, self._error_types):
                self._log_error(url, str(e))
                raise FetchError(url, f"render failed: {e}", attempts=1)
            raise

        if self.logger:
            self.logger.log("render_complete", url=url, elapsed_ms=round((time.monotonic() - start) * 1000, 1))
        return FetchedPage(url=url, html=html, rendered=True)

    async def _render_html(self, url: str, timeout: float) -> str:
        await self._ensure_browser()
        context = await self._browser.new_context(user_agent=self.user_agent)
        try:
            page = await context.new_page()
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout * 1000)
            try:
                await page.wait_for_load_state("networkidle", timeout=min(5000, timeout * 500))
            except Exception as e:
                # Pages with long-polling never go idle; the DOM is still usable
                if not (self._error_types and isinstance(e, self._error_types)):
                    raise
            return await page.content()
        finally:
            await context.close()

    def _log_error(self, url: str, error: str) -> None:
        if self.logger:
            self.logger.log("render_error", level=logging.WARNING, url=url, error=error)

    async def close(self) -> None:
        """Close browser and Playwright instance."""
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
