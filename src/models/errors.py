"""Error taxonomy for the extraction pipeline.

All per-URL failures derive from PipelineError so the batch task wrapper can
catch them in one place. ConfigurationError is the only fatal condition and
is raised before any task is scheduled.
"""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for per-URL pipeline failures."""

    error_type = "pipeline_error"


class FetchError(PipelineError):
    """Network or timeout failure that survived every retry."""

    error_type = "fetch_error"

    def __init__(
        self,
        url: str,
        cause: str,
        status_code: Optional[int] = None,
        attempts: int = 0,
    ):
        self.url = url
        self.cause = cause
        self.status_code = status_code
        self.attempts = attempts
        super().__init__(f"Failed to fetch {url} after {attempts} attempt(s): {cause}")


class CircuitOpenError(PipelineError):
    """Domain is blocked by the circuit registry; no fetch was attempted."""

    error_type = "circuit_open"

    def __init__(self, domain: str, reason: Optional[str] = None):
        self.domain = domain
        self.reason = reason
        message = f"Circuit open for {domain}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class ValidationFailure(PipelineError):
    """Candidate is structurally present but violates record invariants."""

    error_type = "validation_failure"

    def __init__(self, reason: str, partial_data: Optional[Dict[str, Any]] = None):
        self.reason = reason
        self.partial_data = partial_data
        super().__init__(reason)


class ExtractionExhaustedError(PipelineError):
    """Every strategy ran without producing a valid candidate."""

    error_type = "extraction_exhausted"

    def __init__(
        self,
        url: str,
        attempts: Dict[str, str],
        partial_data: Optional[Dict[str, Any]] = None,
    ):
        self.url = url
        self.attempts = attempts
        self.partial_data = partial_data
        details = "; ".join(f"{name}: {error}" for name, error in attempts.items())
        super().__init__(f"All extraction strategies failed for {url}. {details}")


class SitemapParseError(Exception):
    """Sitemap could not be fetched or parsed."""


class ConfigurationError(Exception):
    """Startup misconfiguration such as an unreadable site registry."""
