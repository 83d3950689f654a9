"""Unit tests for StructuredLogger."""

import json
import logging

from src.monitoring.logger import StructuredLogger


class TestStructuredLogger:

    def test_events_are_json_lines(self, caplog):
        logger = StructuredLogger(name="test_structured_json", level="DEBUG")
        with caplog.at_level(logging.DEBUG, logger="test_structured_json"):
            logger.fetch_success(url="https://example.com/recipes/a", attempt=1, elapsed_ms=12.345)

        payload = json.loads(caplog.records[-1].getMessage())
        assert payload == {
            "event": "fetch_success",
            "url": "https://example.com/recipes/a",
            "attempt": 1,
            "elapsed_ms": 12.3,
        }

    def test_levels(self, caplog):
        logger = StructuredLogger(name="test_structured_levels", level="DEBUG")
        with caplog.at_level(logging.DEBUG, logger="test_structured_levels"):
            logger.task_failed(url="https://example.com/recipes/a", error_type="fetch_error", error="HTTP 500")
            logger.cache_event("cache_hit", "https://example.com/recipes/a")

        assert [r.levelno for r in caplog.records] == [logging.WARNING, logging.DEBUG]

    def test_level_filters_debug(self, caplog):
        logger = StructuredLogger(name="test_structured_filter", level="INFO")
        with caplog.at_level(logging.INFO, logger="test_structured_filter"):
            logger.fetch_start(url="https://example.com/recipes/a", attempt=1)
        assert caplog.records == []

    def test_circuit_state_event(self, caplog):
        logger = StructuredLogger(name="test_structured_circuit")
        with caplog.at_level(logging.INFO, logger="test_structured_circuit"):
            logger.circuit_breaker_state("example.com", "open", reason="rate_limit")

        payload = json.loads(caplog.records[-1].getMessage())
        assert payload["cb_state"] == "open"
        assert payload["domain"] == "example.com"
