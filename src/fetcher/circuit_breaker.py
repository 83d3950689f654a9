"""Per-domain circuit registry with explicit state management."""

import threading
import time
from dataclasses import replace
from typing import Dict, List, Optional, Protocol

from src.models.data_models import CircuitState, CircuitStatus


class Clock(Protocol):
    """Clock interface for testable time management."""

    def now(self) -> float:
        """Return current time in seconds."""
        ...


class MonotonicClock:
    """Default clock implementation using time.monotonic."""

    def now(self) -> float:
        """Return current monotonic time in seconds."""
        return time.monotonic()


def classify_failure(reason: Optional[str]) -> str:
    """
    Map a free-form failure reason onto a coarse category.

    Returns one of: cloudflare, captcha, rate_limit, timeout, not_found, other
    """
    text = (reason or "").lower()
    if "cloudflare" in text or "cf-ray" in text or "403" in text:
        return "cloudflare"
    if "captcha" in text or "challenge" in text:
        return "captcha"
    if "429" in text or "rate limit" in text or "too many requests" in text:
        return "rate_limit"
    if "timeout" in text or "timed out" in text:
        return "timeout"
    if "404" in text or "not found" in text:
        return "not_found"
    return "other"


class CircuitRegistry:
    """
    Per-domain failure counter and block state.

    - CLOSED until failure_threshold consecutive failures, then OPEN (blocked)
    - Any recorded success closes the circuit and resets the counter
    - With cooldown_seconds set, an OPEN domain admits a single HALF_OPEN
      probe once the cooldown has elapsed; the probe's outcome closes or
      reopens it
    - All mutations happen under one lock so concurrent failures for the
      same domain are never lost
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: Optional[float] = None,
        clock: Optional[Clock] = None,
        logger: Optional['StructuredLogger'] = None,
    ):
        """
        Initialize circuit registry.

        Args:
            failure_threshold: Consecutive failures before a domain is blocked
            cooldown_seconds: Optional half-open window; None keeps a domain
                blocked until a success is recorded
            clock: Clock interface for time management (defaults to MonotonicClock)
            logger: Optional structured logger for state transitions
        """
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock or MonotonicClock()
        self.logger = logger
        self._circuits: Dict[str, CircuitStatus] = {}
        self._probe_in_flight: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def is_blocked(self, domain: str) -> bool:
        """
        Check whether requests to domain must be short-circuited.

        Must be called before issuing a fetch. In HALF_OPEN mode the first
        caller after the cooldown is let through as the probe.
        """
        with self._lock:
            circuit = self._circuits.get(domain)
            if circuit is None or not circuit.blocked:
                return False

            if self.cooldown_seconds is None:
                return True

            if circuit.state == CircuitState.OPEN:
                elapsed = self.clock.now() - (circuit.last_failure_at or 0.0)
                if elapsed >= self.cooldown_seconds:
                    circuit.state = CircuitState.HALF_OPEN
                    self._probe_in_flight[domain] = True
                    self._log_transition(domain, CircuitState.HALF_OPEN, circuit.blocked_reason)
                    return False
                return True

            # HALF_OPEN: only one probe at a time
            if self._probe_in_flight.get(domain):
                return True
            self._probe_in_flight[domain] = True
            return False

    def record_failure(self, domain: str, reason: Optional[str] = None) -> None:
        """
        Record a failed request for domain.

        Args:
            domain: Domain identifier
            reason: Failure description, classified into blocked_reason
        """
        with self._lock:
            circuit = self._circuits.get(domain)
            if circuit is None:
                circuit = CircuitStatus(domain=domain)
                self._circuits[domain] = circuit

            circuit.consecutive_failures += 1
            circuit.last_failure_at = self.clock.now()

            if circuit.state == CircuitState.HALF_OPEN:
                # Failed probe - reopen circuit
                circuit.state = CircuitState.OPEN
                circuit.blocked = True
                circuit.blocked_reason = classify_failure(reason)
                self._probe_in_flight[domain] = False
                self._log_transition(domain, CircuitState.OPEN, circuit.blocked_reason)
                return

            if not circuit.blocked and circuit.consecutive_failures >= self.failure_threshold:
                circuit.state = CircuitState.OPEN
                circuit.blocked = True
                circuit.blocked_reason = classify_failure(reason)
                self._log_transition(domain, CircuitState.OPEN, circuit.blocked_reason)

    def record_success(self, domain: str) -> None:
        """Record a successful request; closes the circuit for domain."""
        with self._lock:
            circuit = self._circuits.get(domain)
            if circuit is None:
                return
            was_blocked = circuit.blocked
            circuit.consecutive_failures = 0
            circuit.blocked = False
            circuit.blocked_reason = None
            circuit.state = CircuitState.CLOSED
            self._probe_in_flight[domain] = False
            if was_blocked:
                self._log_transition(domain, CircuitState.CLOSED, None)

    def status(self, domain: str) -> CircuitStatus:
        """
        Get a snapshot of the circuit for domain.

        Args:
            domain: Domain identifier

        Returns:
            Copy of the current CircuitStatus (CLOSED default for unknown domains)
        """
        with self._lock:
            circuit = self._circuits.get(domain)
            if circuit is None:
                return CircuitStatus(domain=domain)
            return replace(circuit)

    def state(self, domain: str) -> CircuitState:
        return self.status(domain).state

    def blocked_domains(self) -> List[CircuitStatus]:
        with self._lock:
            return [replace(c) for c in self._circuits.values() if c.blocked]

    def reset(self, domain: Optional[str] = None) -> None:
        """Reset one domain, or every domain when none is given."""
        with self._lock:
            if domain is None:
                self._circuits.clear()
                self._probe_in_flight.clear()
            else:
                self._circuits.pop(domain, None)
                self._probe_in_flight.pop(domain, None)

    def _log_transition(self, domain: str, state: CircuitState, reason: Optional[str]) -> None:
        if self.logger:
            self.logger.circuit_breaker_state(domain=domain, state=state.value, reason=reason)
