"""Batch controller driving URLs through the extraction pipeline."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from src.cache.result_cache import ResultCache
from src.extraction.chain import ExtractionChain
from src.extraction.validation import is_recipe_usable
from src.fetcher.circuit_breaker import CircuitRegistry
from src.fetcher.rate_limiter import extract_domain
from src.models.data_models import BatchRunStats, ErrorRecord, ExtractionRequest, ExtractionResult
from src.models.errors import (
    CircuitOpenError,
    ExtractionExhaustedError,
    FetchError,
    PipelineError,
    ValidationFailure,
)
from src.monitoring.qa_sink import QASink
from src.processor.aggregator import RunStatsAggregator

ProgressCallback = Callable[[int, int], None]

log = logging.getLogger(__name__)


class RecipePipeline:
    """
    Per-URL task: Cache -> Circuit Registry -> Fetcher -> Extraction Chain -> Cache.

    Cache and circuit registry are injected so several pipelines can run
    isolated in one process and tests can substitute fakes.
    """

    def __init__(
        self,
        cache: ResultCache,
        circuits: CircuitRegistry,
        chain: ExtractionChain,
        logger: Optional['StructuredLogger'] = None,
    ):
        self.cache = cache
        self.circuits = circuits
        self.chain = chain
        self.logger = logger

    async def extract(self, url: str) -> ExtractionResult:
        """Extract url, serving repeated calls within the cache TTL from the cache."""
        result, _ = await self.resolve(ExtractionRequest(url=url))
        return result

    async def resolve(self, request: ExtractionRequest) -> Tuple[ExtractionResult, bool]:
        """
        Resolve one request.

        Returns:
            (result, from_cache)

        Raises:
            CircuitOpenError: Domain is blocked; no fetch was attempted
            FetchError: Fetch failed after retries
            ExtractionExhaustedError: No strategy produced a valid candidate
        """
        url = request.url
        cached = self._cache_get(url)
        if cached is not None:
            return cached, True

        domain = extract_domain(url)
        if self.circuits.is_blocked(domain):
            raise CircuitOpenError(domain, self.circuits.status(domain).blocked_reason)

        try:
            result = await self.chain.extract(url, request=request)
        except FetchError as e:
            self.circuits.record_failure(domain, e.cause)
            raise
        except ExtractionExhaustedError:
            self.circuits.record_failure(domain, "extraction exhausted")
            raise

        self.circuits.record_success(domain)
        self._cache_set(url, result)
        return result, False

    def record_failure(self, url: str, reason: str) -> None:
        """Count a failure raised outside the chain (deadline, crash) against the domain."""
        self.circuits.record_failure(extract_domain(url), reason)

    def _cache_get(self, url: str) -> Optional[ExtractionResult]:
        # Cache problems degrade to a miss, never to a failed task
        try:
            cached = self.cache.get(url)
        except Exception as e:
            self._log("cache_error", logging.WARNING, url=url, operation="get", error=str(e))
            return None
        if self.logger:
            self.logger.cache_event("cache_hit" if cached is not None else "cache_miss", url)
        return cached

    def _cache_set(self, url: str, result: ExtractionResult) -> None:
        try:
            self.cache.set(url, result)
        except Exception as e:
            self._log("cache_error", logging.WARNING, url=url, operation="set", error=str(e))

    def _log(self, event: str, level: int, **kwargs) -> None:
        if self.logger:
            self.logger.log(event, level=level, **kwargs)


class BatchController:
    """
    Drives a bounded worker pool over a URL list.

    URLs are split into sequential batches of batch_size. Within a batch
    at most `concurrency` workers pull ExtractionRequests from a queue;
    each worker sleeps inter_task_delay after every task before taking the
    next one. A blocked domain short-circuits without a fetch and without
    the delay. No single failure aborts the run.
    """

    def __init__(
        self,
        pipeline: RecipePipeline,
        qa_sink: QASink,
        concurrency: int = 5,
        batch_size: int = 50,
        inter_task_delay: float = 0.5,
        task_timeout: float = 90.0,
        sleeper=asyncio.sleep,
        logger: Optional['StructuredLogger'] = None,
    ):
        """
        Initialize batch controller.

        Args:
            pipeline: Per-URL task runner
            qa_sink: Receives one entry per failed task
            concurrency: Maximum in-flight tasks
            batch_size: Tasks per sequential batch
            inter_task_delay: Seconds a worker waits after each task
            task_timeout: Wall-clock bound on a single task in seconds
            sleeper: Async sleep used for the inter-task delay
            logger: Optional structured logger
        """
        self.pipeline = pipeline
        self.qa_sink = qa_sink
        self.concurrency = concurrency
        self.batch_size = batch_size
        self.inter_task_delay = inter_task_delay
        self.task_timeout = task_timeout
        self._sleep = sleeper
        self.logger = logger

    async def run(
        self,
        urls: List[str],
        concurrency: Optional[int] = None,
        batch_size: Optional[int] = None,
        inter_task_delay: Optional[float] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> BatchRunStats:
        """
        Process every URL and return the run statistics.

        Args:
            urls: URLs to process
            concurrency: Override of the maximum in-flight tasks
            batch_size: Override of the batch size
            inter_task_delay: Override of the inter-task delay in seconds
            progress_callback: Called with (processed, total) after each task

        Returns:
            Immutable BatchRunStats snapshot, computed after all tasks settle
        """
        concurrency = self.concurrency if concurrency is None else concurrency
        batch_size = self.batch_size if batch_size is None else batch_size
        delay = self.inter_task_delay if inter_task_delay is None else inter_task_delay
        if concurrency <= 0 or batch_size <= 0:
            raise ValueError("concurrency and batch_size must be positive")

        aggregator = RunStatsAggregator()
        aggregator.start_timer()
        total = len(urls)

        if self.logger:
            self.logger.log("run_start", urls=total, concurrency=concurrency, batch_size=batch_size)

        for batch_index, offset in enumerate(range(0, total, batch_size), start=1):
            batch = urls[offset:offset + batch_size]
            batch_start = time.monotonic()

            queue: asyncio.Queue = asyncio.Queue()
            for url in batch:
                queue.put_nowait(ExtractionRequest(url=url))

            workers = [
                asyncio.create_task(self._worker(queue, aggregator, delay, total, progress_callback))
                for _ in range(min(concurrency, len(batch)))
            ]
            await asyncio.gather(*workers)

            if self.logger:
                self.logger.batch_processed(
                    batch=batch_index,
                    batch_size=len(batch),
                    processed=aggregator.processed,
                    total=total,
                    elapsed_ms=(time.monotonic() - batch_start) * 1000,
                )

        aggregator.stop_timer()
        stats = aggregator.snapshot()

        if self.logger:
            self.logger.log(
                "run_complete",
                total_processed=stats.total_processed,
                successful=stats.successful,
                failed=stats.failed,
                success_rate=round(stats.success_rate, 4),
                duration_ms=round(stats.duration_ms, 1),
            )
        return stats

    async def _worker(
        self,
        queue: asyncio.Queue,
        aggregator: RunStatsAggregator,
        delay: float,
        total: int,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        while True:
            try:
                request = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            used_slot = await self._process(request, aggregator)

            if progress_callback:
                progress_callback(aggregator.processed, total)

            if used_slot and delay > 0:
                await self._sleep(delay)

    async def _process(self, request: ExtractionRequest, aggregator: RunStatsAggregator) -> bool:
        """
        Run one task and record its outcome.

        Returns:
            False if the task was short-circuited by an open circuit
        """
        url = request.url
        request.deadline = time.monotonic() + self.task_timeout

        try:
            result, from_cache = await asyncio.wait_for(
                self.pipeline.resolve(request),
                timeout=self.task_timeout,
            )
        except CircuitOpenError as e:
            self._record_failure(aggregator, url, e)
            return False
        except asyncio.TimeoutError:
            self.pipeline.record_failure(url, "task timeout")
            error = FetchError(url, f"task timed out after {self.task_timeout}s", attempts=request.attempt_count)
            self._record_failure(aggregator, url, error)
            return True
        except PipelineError as e:
            self._record_failure(aggregator, url, e)
            return True
        except Exception as e:
            # A bug in one task must not abort the run
            if self.logger:
                self.logger.log("task_crashed", level=logging.ERROR, url=url, error=repr(e))
            self.pipeline.record_failure(url, repr(e))
            self._record_failure(aggregator, url, e)
            return True

        if not is_recipe_usable(result.fields):
            failure = ValidationFailure("recipe not usable", result.fields.to_dict())
            self._record_failure(aggregator, url, failure)
            return True

        aggregator.add_success(result, from_cache=from_cache)
        return True

    def _record_failure(self, aggregator: RunStatsAggregator, url: str, error: Exception) -> None:
        error_type = getattr(error, "error_type", "unexpected_error")
        message = str(error) or error.__class__.__name__

        aggregator.add_error(ErrorRecord(
            url=url,
            error=message,
            error_type=error_type,
            timestamp=datetime.now(timezone.utc).isoformat(),
        ))
        if self.logger:
            self.logger.task_failed(url=url, error_type=error_type, error=message)
        try:
            self.qa_sink.record(url, message, getattr(error, "partial_data", None))
        except Exception as e:
            # The run outlives its QA log
            if self.logger is None:
                log.error("qa_record_failed url=%s error=%r", url, e)
            else:
                self.logger.log("qa_record_failed", level=logging.ERROR, url=url, error=repr(e))
