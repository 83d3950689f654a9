"""Pipeline orchestrator wiring discovery and batch extraction from configuration."""

from typing import List, Optional, Tuple

import httpx

from src.cache.result_cache import ResultCache
from src.crawler.orchestrator import CrawlOrchestrator
from src.extraction.chain import ExtractionChain
from src.fetcher.async_fetcher import AsyncFetcher
from src.fetcher.circuit_breaker import CircuitRegistry
from src.fetcher.http_client import AsyncHTTPClient
from src.fetcher.rate_limiter import DomainPacer
from src.fetcher.renderer import HeadlessRenderer
from src.fetcher.retry_handler import RetryHandler
from src.models.config import PipelineConfig
from src.models.data_models import BatchRunStats, CrawlResult, CrawlTarget
from src.monitoring.logger import StructuredLogger
from src.monitoring.qa_sink import QASink
from src.pipeline.batch_controller import BatchController, ProgressCallback, RecipePipeline


class PipelineOrchestrator:
    """
    Builds every pipeline component from a PipelineConfig.

    Cache and circuit registry live as long as the orchestrator, so they
    survive across runs made with the same instance. Network components are
    created on entry and released on exit:

        async with PipelineOrchestrator(config) as orchestrator:
            stats = await orchestrator.run(urls)
    """

    def __init__(
        self,
        config: PipelineConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        """
        Initialize orchestrator with pipeline configuration.

        Args:
            config: Pipeline configuration object
            transport: Optional httpx transport (tests route requests to an ASGI app)
            logger: Optional structured logger (default: one at config.log_level)
        """
        self.config = config
        self.transport = transport
        self.logger = logger or StructuredLogger(level=config.log_level)

        self.cache = ResultCache(
            ttl_seconds=config.cache_ttl_ms / 1000,
            max_entries=config.cache_max_entries,
        )
        self.circuits = CircuitRegistry(
            failure_threshold=config.circuit_failure_threshold,
            cooldown_seconds=(
                config.circuit_cooldown_ms / 1000 if config.circuit_cooldown_ms is not None else None
            ),
            logger=self.logger,
        )
        self.qa_sink = QASink(config.qa_log_path, logger=self.logger)

        self._http_client: Optional[AsyncHTTPClient] = None
        self.fetcher: Optional[AsyncFetcher] = None
        self.renderer: Optional[HeadlessRenderer] = None
        self.chain: Optional[ExtractionChain] = None
        self.controller: Optional[BatchController] = None
        self.crawler: Optional[CrawlOrchestrator] = None

    async def __aenter__(self):
        config = self.config
        fetch_timeout = config.fetch_timeout_ms / 1000

        self._http_client = AsyncHTTPClient(timeout=fetch_timeout, transport=self.transport)
        await self._http_client.__aenter__()

        self.fetcher = AsyncFetcher(
            self._http_client,
            pacer=DomainPacer(min_interval=config.domain_pacing_ms / 1000, logger=self.logger),
            retry_handler=RetryHandler(
                max_retries=config.fetch_max_retries,
                base_delay=config.retry_base_delay_ms / 1000,
            ),
            timeout=fetch_timeout,
            logger=self.logger,
        )

        if config.render_enabled:
            self.renderer = HeadlessRenderer(timeout=config.render_timeout_ms / 1000, logger=self.logger)

        self.chain = ExtractionChain(
            fetcher=self.fetcher,
            renderer=self.renderer,
            render_enabled=config.render_enabled,
            render_strategies=config.render_strategies,
            render_timeout=config.render_timeout_ms / 1000,
            parse_workers=config.parse_workers,
            logger=self.logger,
        )
        self.controller = BatchController(
            RecipePipeline(self.cache, self.circuits, self.chain, logger=self.logger),
            self.qa_sink,
            concurrency=config.concurrency,
            batch_size=config.batch_size,
            inter_task_delay=config.inter_task_delay_ms / 1000,
            task_timeout=config.task_timeout_ms / 1000,
            logger=self.logger,
        )
        self.crawler = CrawlOrchestrator(
            self.fetcher,
            recipe_pattern=config.compiled_recipe_pattern,
            logger=self.logger,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.chain is not None:
            self.chain.close()
        if self.renderer is not None:
            await self.renderer.close()
        if self._http_client is not None:
            await self._http_client.__aexit__(exc_type, exc_val, exc_tb)
        self._http_client = None

    def _require_started(self) -> None:
        if self.controller is None or self._http_client is None:
            raise RuntimeError("PipelineOrchestrator must be used as an async context manager")

    async def run(
        self,
        urls: List[str],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> BatchRunStats:
        """
        Extract recipes from urls.

        Returns:
            BatchRunStats for the run; per-URL failures never raise
        """
        self._require_started()
        self.logger.log("pipeline_start", urls=len(urls))
        return await self.controller.run(urls, progress_callback=progress_callback)

    async def discover(
        self,
        targets: List[CrawlTarget],
        limit_per_target: Optional[int] = None,
    ) -> List[CrawlResult]:
        """Discover recipe URLs for active targets, highest priority first."""
        self._require_started()
        return await self.crawler.discover_all(targets, limit_per_target)

    async def crawl_and_run(
        self,
        targets: List[CrawlTarget],
        limit_per_target: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Tuple[List[CrawlResult], BatchRunStats]:
        """Discover URLs for targets, then extract every discovered URL once."""
        crawl_results = await self.discover(targets, limit_per_target)

        urls: List[str] = []
        seen = set()
        for crawl_result in crawl_results:
            for url in crawl_result.urls:
                if url not in seen:
                    seen.add(url)
                    urls.append(url)

        stats = await self.run(urls, progress_callback=progress_callback)
        return crawl_results, stats
