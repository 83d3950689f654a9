"""Thread-safe aggregator for collecting batch run results."""

import threading
import time
from typing import Dict, List

from src.models.data_models import BatchRunStats, ErrorRecord, ExtractionResult


class RunStatsAggregator:
    """
    Thread-safe aggregator for extraction results and errors.

    Uses a lock so concurrent tasks can record outcomes without
    losing updates. Counters only ever grow during a run; snapshot()
    returns an immutable BatchRunStats.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._results: List[ExtractionResult] = []
        self._errors: List[ErrorRecord] = []
        self._method_counts: Dict[str, int] = {}
        self._error_breakdown: Dict[str, int] = {}
        self._cache_hits = 0
        self._start_time: float = 0.0
        self._end_time: float = 0.0

    def start_timer(self) -> None:
        """Start timing the run."""
        self._start_time = time.monotonic()
        self._end_time = 0.0

    def stop_timer(self) -> None:
        """Stop timing the run."""
        self._end_time = time.monotonic()

    def add_success(self, result: ExtractionResult, from_cache: bool = False) -> None:
        """
        Record a successful task.

        Args:
            result: Validated extraction result
            from_cache: Whether the result was served by the cache
        """
        method = "cache" if from_cache else result.method.value
        with self._lock:
            self._results.append(result)
            self._method_counts[method] = self._method_counts.get(method, 0) + 1
            if from_cache:
                self._cache_hits += 1

    def add_error(self, error: ErrorRecord) -> None:
        """
        Record a failed task.

        Args:
            error: Error record to add
        """
        with self._lock:
            self._errors.append(error)
            self._error_breakdown[error.error_type] = self._error_breakdown.get(error.error_type, 0) + 1

    @property
    def processed(self) -> int:
        with self._lock:
            return len(self._results) + len(self._errors)

    def snapshot(self) -> BatchRunStats:
        """
        Build the run summary.

        Returns:
            BatchRunStats with success rate in the 0.0-1.0 range
        """
        with self._lock:
            end = self._end_time or time.monotonic()
            duration_ms = (end - self._start_time) * 1000 if self._start_time else 0.0

            successful = len(self._results)
            failed = len(self._errors)
            total = successful + failed
            success_rate = successful / total if total > 0 else 0.0

            return BatchRunStats(
                total_processed=total,
                successful=successful,
                failed=failed,
                success_rate=success_rate,
                duration_ms=duration_ms,
                errors=list(self._errors),
                successful_results=list(self._results),
                cache_hits=self._cache_hits,
                method_counts=dict(self._method_counts),
                error_breakdown=dict(self._error_breakdown),
            )

    def get_results(self) -> List[ExtractionResult]:
        """Get all successful results."""
        with self._lock:
            return self._results.copy()

    def get_errors(self) -> List[ErrorRecord]:
        """Get all errors."""
        with self._lock:
            return self._errors.copy()
