"""Unit tests for the per-domain circuit registry."""

import threading
from unittest.mock import Mock

import pytest

from src.fetcher.circuit_breaker import CircuitRegistry, MonotonicClock, classify_failure
from src.models.data_models import CircuitState
from tests.fixtures.recipes import FakeClock


class TestCircuitRegistryBasics:

    def test_unknown_domain_is_closed_and_allowed(self):
        registry = CircuitRegistry()
        assert registry.state("example.com") == CircuitState.CLOSED
        assert registry.is_blocked("example.com") is False

    def test_uses_monotonic_clock_by_default(self):
        assert isinstance(CircuitRegistry().clock, MonotonicClock)

    def test_status_returns_copy(self):
        registry = CircuitRegistry()
        registry.record_failure("example.com", "HTTP 500")

        status = registry.status("example.com")
        status.consecutive_failures = 99

        assert registry.status("example.com").consecutive_failures == 1


class TestCircuitRegistryTransitions:

    def test_blocks_at_threshold(self):
        registry = CircuitRegistry(failure_threshold=3)
        for _ in range(2):
            registry.record_failure("example.com", "HTTP 500")
        assert registry.is_blocked("example.com") is False

        registry.record_failure("example.com", "HTTP 500")
        assert registry.is_blocked("example.com") is True
        assert registry.state("example.com") == CircuitState.OPEN

    def test_success_resets_counter_and_unblocks(self):
        registry = CircuitRegistry(failure_threshold=2)
        registry.record_failure("example.com")
        registry.record_failure("example.com")
        assert registry.is_blocked("example.com")

        registry.record_success("example.com")

        status = registry.status("example.com")
        assert status.blocked is False
        assert status.consecutive_failures == 0
        assert status.blocked_reason is None

    def test_interleaved_success_prevents_blocking(self):
        registry = CircuitRegistry(failure_threshold=3)
        for _ in range(5):
            registry.record_failure("example.com")
            registry.record_failure("example.com")
            registry.record_success("example.com")
        assert registry.is_blocked("example.com") is False

    def test_domains_are_independent(self):
        registry = CircuitRegistry(failure_threshold=1)
        registry.record_failure("a.com")
        assert registry.is_blocked("a.com")
        assert not registry.is_blocked("b.com")

    def test_blocked_reason_is_classified(self):
        registry = CircuitRegistry(failure_threshold=1)
        registry.record_failure("example.com", "HTTP 429")
        assert registry.status("example.com").blocked_reason == "rate_limit"

    def test_no_cooldown_stays_blocked(self):
        clock = FakeClock()
        registry = CircuitRegistry(failure_threshold=1, clock=clock)
        registry.record_failure("example.com")
        clock.advance(10_000)
        assert registry.is_blocked("example.com") is True

    def test_blocked_domains_and_reset(self):
        registry = CircuitRegistry(failure_threshold=1)
        registry.record_failure("a.com")
        registry.record_failure("b.com")
        assert {s.domain for s in registry.blocked_domains()} == {"a.com", "b.com"}

        registry.reset("a.com")
        assert [s.domain for s in registry.blocked_domains()] == ["b.com"]

        registry.reset()
        assert registry.blocked_domains() == []

    def test_transitions_are_logged(self):
        logger = Mock()
        registry = CircuitRegistry(failure_threshold=1, logger=logger)
        registry.record_failure("example.com", "HTTP 503")
        registry.record_success("example.com")

        states = [c.kwargs["state"] for c in logger.circuit_breaker_state.call_args_list]
        assert states == ["open", "closed"]


class TestCircuitRegistryHalfOpen:

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def registry(self, clock):
        registry = CircuitRegistry(failure_threshold=2, cooldown_seconds=30.0, clock=clock)
        registry.record_failure("example.com")
        registry.record_failure("example.com")
        return registry

    def test_blocked_during_cooldown(self, registry, clock):
        clock.advance(29)
        assert registry.is_blocked("example.com") is True

    def test_single_probe_after_cooldown(self, registry, clock):
        clock.advance(30)
        assert registry.is_blocked("example.com") is False
        assert registry.state("example.com") == CircuitState.HALF_OPEN
        # Second caller waits for the probe
        assert registry.is_blocked("example.com") is True

    def test_probe_success_closes(self, registry, clock):
        clock.advance(30)
        registry.is_blocked("example.com")
        registry.record_success("example.com")
        assert registry.state("example.com") == CircuitState.CLOSED
        assert registry.is_blocked("example.com") is False

    def test_probe_failure_reopens(self, registry, clock):
        clock.advance(30)
        registry.is_blocked("example.com")
        registry.record_failure("example.com", "timed out")

        assert registry.state("example.com") == CircuitState.OPEN
        assert registry.status("example.com").blocked_reason == "timeout"
        assert registry.is_blocked("example.com") is True


class TestCircuitRegistryConvergence:

    @pytest.mark.parametrize("threshold", [1, 3, 5])
    def test_concurrent_failures_converge_to_blocked(self, threshold):
        """Any interleaving of at least threshold failures with no success blocks the domain."""
        registry = CircuitRegistry(failure_threshold=threshold)
        failures = threshold * 4

        def fail():
            registry.record_failure("example.com", "HTTP 503")

        threads = [threading.Thread(target=fail) for _ in range(failures)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        status = registry.status("example.com")
        assert status.blocked is True
        assert status.consecutive_failures == failures


class TestClassifyFailure:

    @pytest.mark.parametrize("reason,expected", [
        ("HTTP 403", "cloudflare"),
        ("Cloudflare challenge page", "cloudflare"),
        ("captcha required", "captcha"),
        ("HTTP 429", "rate_limit"),
        ("timeout after 30.0s", "timeout"),
        ("HTTP 404", "not_found"),
        ("HTTP 500", "other"),
        (None, "other"),
    ])
    def test_classification(self, reason, expected):
        assert classify_failure(reason) == expected
