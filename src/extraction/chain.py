"""Ordered, confidence-scored extraction strategy chain."""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

from src.extraction.strategies import DEFAULT_STRATEGIES, DOM_STRATEGIES, Strategy
from src.extraction.validation import score_confidence
from src.models.data_models import (
    Candidate,
    ExtractionMethod,
    ExtractionRequest,
    ExtractionResult,
    FetchedPage,
    NoMatch,
)
from src.models.errors import ExtractionExhaustedError, PipelineError, ValidationFailure


class ExtractionChain:
    """
    Runs extraction strategies in priority order until one yields a
    candidate that passes validation.

    Order: structured metadata, microdata, site-specific rules, generic
    heuristics, then (optionally) a headless render that reruns strategies
    against the rendered DOM. Later strategies never run once a valid
    candidate exists. HTML parsing is CPU-bound and runs in a thread pool
    so the event loop stays free for network I/O.
    """

    def __init__(
        self,
        fetcher: Optional['AsyncFetcher'] = None,
        renderer: Optional['HeadlessRenderer'] = None,
        strategies: Optional[List[Tuple[ExtractionMethod, Strategy]]] = None,
        render_enabled: bool = False,
        render_strategies: str = "all",
        render_timeout: float = 20.0,
        fetch_timeout: Optional[float] = None,
        fetch_max_retries: Optional[int] = None,
        parse_workers: int = 4,
        logger: Optional['StructuredLogger'] = None,
    ):
        """
        Initialize extraction chain.

        Args:
            fetcher: Fetcher used when extract() is not handed content
            renderer: Headless renderer for the last-resort fallback
            strategies: Ordered (method, strategy) pairs (default: all four DOM strategies)
            render_enabled: Whether the render fallback may run
            render_strategies: "all" reruns every strategy on rendered DOM,
                "dom_only" reruns only site-specific and generic
            render_timeout: Wall-clock bound on the render fallback in seconds
            fetch_timeout: Per-attempt fetch timeout in seconds
            fetch_max_retries: Fetch attempts per URL
            parse_workers: Threads for HTML parsing
            logger: Optional structured logger for telemetry
        """
        self.fetcher = fetcher
        self.renderer = renderer
        self.strategies = list(strategies or DEFAULT_STRATEGIES)
        self.render_enabled = render_enabled
        self.render_strategies = render_strategies
        self.render_timeout = render_timeout
        self.fetch_timeout = fetch_timeout
        self.fetch_max_retries = fetch_max_retries
        self.parse_workers = parse_workers
        self.logger = logger
        self._executor: Optional[ThreadPoolExecutor] = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.parse_workers,
                thread_name_prefix="extract",
            )
        return self._executor

    def close(self) -> None:
        """Shut down the parsing thread pool."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def _render_pass_strategies(self) -> List[Tuple[ExtractionMethod, Strategy]]:
        if self.render_strategies == "dom_only":
            allowed = {method for method, _ in DOM_STRATEGIES}
            return [(m, s) for m, s in self.strategies if m in allowed]
        return self.strategies

    async def extract(
        self,
        url: str,
        content: Optional[str] = None,
        request: Optional[ExtractionRequest] = None,
    ) -> ExtractionResult:
        """
        Extract a validated recipe from url.

        Args:
            url: Recipe page URL
            content: Already-fetched HTML; fetched through the fetcher when None
            request: Optional ExtractionRequest for attempt accounting

        Returns:
            The first candidate that passes validation, scored

        Raises:
            FetchError: If content had to be fetched and the fetch failed
            ExtractionExhaustedError: If no strategy produced a valid candidate
        """
        start = time.monotonic()

        if content is None:
            if self.fetcher is None:
                raise RuntimeError("ExtractionChain needs a fetcher when no content is supplied")
            content = await self.fetcher.fetch_text(
                url,
                max_retries=self.fetch_max_retries,
                timeout=self.fetch_timeout,
                request=request,
            )

        attempts: Dict[str, str] = {}
        rejected: List[dict] = []

        page = FetchedPage(url=url, html=content)
        result = await self._run_pass(page, self.strategies, attempts, rejected, start)
        if result is not None:
            return result

        if self.render_enabled and self.renderer is not None:
            rendered = await self._render(url, request, attempts)
            if rendered is not None:
                result = await self._run_pass(
                    rendered, self._render_pass_strategies(), attempts, rejected, start
                )
                if result is not None:
                    return result

        partial_data = rejected[-1] if rejected else None
        raise ExtractionExhaustedError(url, attempts, partial_data)

    async def _render(
        self,
        url: str,
        request: Optional[ExtractionRequest],
        attempts: Dict[str, str],
    ) -> Optional[FetchedPage]:
        name = ExtractionMethod.RENDERED.value
        if request is not None and request.deadline is not None:
            remaining = request.deadline - time.monotonic()
            if remaining < self.render_timeout:
                attempts[name] = f"skipped: {max(0.0, remaining):.1f}s left before task deadline"
                self._log("render_skipped", url, name, attempts[name], level=logging.INFO)
                return None

        # The render is another request to the same domain
        if self.fetcher is not None and self.fetcher.pacer is not None:
            await self.fetcher.pacer.acquire(url)

        try:
            return await self.renderer.render(url, timeout=self.render_timeout)
        except PipelineError as e:
            attempts[name] = str(e)
            return None

    async def _run_pass(
        self,
        page: FetchedPage,
        strategies: List[Tuple[ExtractionMethod, Strategy]],
        attempts: Dict[str, str],
        rejected: List[dict],
        start: float,
    ) -> Optional[ExtractionResult]:
        loop = asyncio.get_running_loop()
        prefix = "rendered/" if page.rendered else ""

        for method, strategy in strategies:
            name = f"{prefix}{method.value}"
            self._log("strategy_attempt", page.url, name, "")

            try:
                outcome = await loop.run_in_executor(self._get_executor(), strategy, page, page.url)
            except Exception as e:
                # A throwing strategy is a skipped strategy, never a failed task
                attempts[name] = f"{e.__class__.__name__}: {e}"
                self._log("strategy_error", page.url, name, attempts[name], level=logging.WARNING)
                continue

            if isinstance(outcome, NoMatch):
                attempts[name] = outcome.reason
                self._log("strategy_no_match", page.url, name, outcome.reason)
                continue

            result = self._accept(page, outcome, attempts, rejected, name, start)
            if result is not None:
                return result

        return None

    def _accept(
        self,
        page: FetchedPage,
        candidate: Candidate,
        attempts: Dict[str, str],
        rejected: List[dict],
        name: str,
        start: float,
    ) -> Optional[ExtractionResult]:
        method = ExtractionMethod.RENDERED if page.rendered else candidate.method
        try:
            result = ExtractionResult(
                url=page.url,
                method=method,
                confidence=score_confidence(candidate.fields, method),
                fields=candidate.fields,
                processing_time_ms=round((time.monotonic() - start) * 1000, 1),
            )
        except ValidationFailure as e:
            attempts[name] = f"validation failed: {e.reason}"
            if e.partial_data is not None:
                rejected.append(e.partial_data)
            self._log("candidate_rejected", page.url, name, e.reason)
            return None

        if self.logger:
            self.logger.extraction_success(
                url=page.url,
                method=result.method.value,
                confidence=result.confidence,
                elapsed_ms=result.processing_time_ms,
            )
        return result

    def _log(self, event: str, url: str, strategy: str, detail: str, level: int = logging.DEBUG) -> None:
        if self.logger:
            self.logger.log(event, level=level, url=url, strategy=strategy, detail=detail)
