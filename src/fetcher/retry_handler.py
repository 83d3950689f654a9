"""Retry policy with linear backoff."""

from typing import FrozenSet, Optional


def calculate_backoff_delay(attempt_index: int, base_delay: float = 1.0) -> float:
    """
    Calculate linear backoff delay.

    Formula: attempt_index * base_delay

    Args:
        attempt_index: Attempt that just failed (1-indexed)
        base_delay: Base delay in seconds

    Returns:
        Delay in seconds before the next attempt
    """
    return max(0, attempt_index) * base_delay


class RetryHandler:
    """
    Decides whether a failed fetch attempt should be retried.

    Retries on: 403, 408, 429 and 5xx status codes, timeouts and transport errors
    Fails fast on: 404 and every other 4xx
    Backoff: Linear, attempt_index * base_delay
    """

    RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({403, 408, 429})

    def __init__(self, max_retries: int = 3, base_delay: float = 1.0):
        """
        Initialize retry handler.

        Args:
            max_retries: Total attempts per URL
            base_delay: Base delay for linear backoff
        """
        self.max_retries = max_retries
        self.base_delay = base_delay

    def is_retryable(
        self,
        status_code: Optional[int] = None,
        is_timeout: bool = False,
        is_transport_error: bool = False,
    ) -> bool:
        """
        Check if error is retryable.

        Args:
            status_code: HTTP status code
            is_timeout: Whether the error was a timeout
            is_transport_error: Whether the connection failed before a response

        Returns:
            True if error should be retried
        """
        if is_timeout or is_transport_error:
            return True
        if status_code is None:
            return False
        if status_code in self.RETRYABLE_STATUS_CODES:
            return True
        return 500 <= status_code < 600

    def should_retry(self, attempt_index: int, max_attempts: Optional[int] = None, **kwargs) -> bool:
        """
        True if another attempt remains and the failure is retryable.

        max_attempts overrides max_retries for a single call site; the
        remaining kwargs are passed to is_retryable.
        """
        limit = self.max_retries if max_attempts is None else max_attempts
        return attempt_index < limit and self.is_retryable(**kwargs)

    def delay_for(self, attempt_index: int) -> float:
        return calculate_backoff_delay(attempt_index, self.base_delay)
