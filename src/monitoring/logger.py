"""Structured logging for pipeline monitoring."""

import json
import logging
from typing import Optional


class StructuredLogger:
    """Structured logger with uniform schema."""

    def __init__(self, name: str = "recipe_pipeline", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def log(self, event: str, level: int = logging.INFO, **kwargs) -> None:
        """
        Log structured event.

        Standard keys: event, url, domain, attempt, status, elapsed_ms,
                      method, strategy, cb_state, batch, error
        """
        log_data = {"event": event, **kwargs}
        self.logger.log(level, json.dumps(log_data, default=str))

    def fetch_start(self, url: str, attempt: int) -> None:
        self.log("fetch_start", level=logging.DEBUG, url=url, attempt=attempt)

    def fetch_success(self, url: str, attempt: int, elapsed_ms: float) -> None:
        self.log("fetch_success", url=url, attempt=attempt, elapsed_ms=round(elapsed_ms, 1))

    def fetch_error(self, url: str, status: Optional[int], error: str, attempt: int) -> None:
        self.log("fetch_error", level=logging.WARNING, url=url, status=status, error=error, attempt=attempt)

    def circuit_breaker_state(self, domain: str, state: str, reason: Optional[str] = None) -> None:
        self.log("circuit_breaker", level=logging.WARNING, domain=domain, cb_state=state, reason=reason)

    def cache_event(self, event: str, url: str) -> None:
        self.log(event, level=logging.DEBUG, url=url)

    def extraction_success(self, url: str, method: str, confidence: int, elapsed_ms: float) -> None:
        self.log(
            "extraction_success",
            url=url,
            method=method,
            confidence=confidence,
            elapsed_ms=round(elapsed_ms, 1),
        )

    def task_failed(self, url: str, error_type: str, error: str) -> None:
        self.log("task_failed", level=logging.WARNING, url=url, error_type=error_type, error=error)

    def batch_processed(self, batch: int, batch_size: int, processed: int, total: int, elapsed_ms: float) -> None:
        self.log(
            "batch_processed",
            batch=batch,
            batch_size=batch_size,
            processed=processed,
            total=total,
            elapsed_ms=round(elapsed_ms, 1),
        )
