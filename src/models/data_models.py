"""Core data models for the recipe extraction pipeline."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from src.models.errors import ValidationFailure

MIN_INGREDIENTS = 2
MIN_INSTRUCTIONS = 1


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ExtractionMethod(Enum):
    """Strategy that produced an extraction result."""
    STRUCTURED = "structured"
    MICRODATA = "microdata"
    SITE_SPECIFIC = "site_specific"
    GENERIC = "generic"
    RENDERED = "rendered"
    CACHE = "cache"


@dataclass(frozen=True)
class CrawlTarget:
    """A recipe site from the static site registry."""
    name: str
    base_url: str
    sitemap_url: Optional[str] = None
    sub_sitemaps: List[str] = field(default_factory=list)
    category: str = "General"
    priority: int = 5
    active: bool = True


@dataclass
class ExtractionRequest:
    """Per-URL unit of work, alive from dequeue until a terminal result."""
    url: str
    attempt_count: int = 0
    deadline: Optional[float] = None  # monotonic seconds


@dataclass
class RecipeFields:
    """Raw recipe record handed to downstream enrichment."""
    title: str = ""
    description: Optional[str] = None
    image_url: Optional[str] = None
    servings: Optional[int] = None
    prep_time_minutes: Optional[int] = None
    cook_time_minutes: Optional[int] = None
    total_time_minutes: Optional[int] = None
    ingredients: List[str] = field(default_factory=list)
    instructions: List[str] = field(default_factory=list)
    author: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecipeFields":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class FetchedPage:
    """Raw HTML as returned by the fetcher or the headless renderer."""
    url: str
    html: str
    rendered: bool = False


@dataclass
class Candidate:
    """Strategy output that has not been validated yet."""
    method: ExtractionMethod
    fields: RecipeFields


@dataclass
class NoMatch:
    """Strategy found nothing it recognises on the page."""
    method: ExtractionMethod
    reason: str


StrategyOutcome = Union[Candidate, NoMatch]


def check_invariants(fields: RecipeFields) -> None:
    """Raise ValidationFailure unless fields form a usable recipe record."""
    if not fields.title or not fields.title.strip():
        raise ValidationFailure("missing title", fields.to_dict())
    if len(fields.ingredients) < MIN_INGREDIENTS:
        raise ValidationFailure(
            f"expected at least {MIN_INGREDIENTS} ingredients, found {len(fields.ingredients)}",
            fields.to_dict(),
        )
    if len(fields.instructions) < MIN_INSTRUCTIONS:
        raise ValidationFailure(
            f"expected at least {MIN_INSTRUCTIONS} instruction, found {len(fields.instructions)}",
            fields.to_dict(),
        )


@dataclass(frozen=True)
class ExtractionResult:
    """Validated extraction; construction fails for invariant-violating fields."""
    url: str
    method: ExtractionMethod
    confidence: int
    fields: RecipeFields
    processing_time_ms: float

    def __post_init__(self):
        check_invariants(self.fields)
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be within 0-100, got: {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method.value,
            "confidence": self.confidence,
            "fields": self.fields.to_dict(),
            "processing_time_ms": self.processing_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractionResult":
        return cls(
            url=data["url"],
            method=ExtractionMethod(data["method"]),
            confidence=data["confidence"],
            fields=RecipeFields.from_dict(data["fields"]),
            processing_time_ms=data["processing_time_ms"],
        )


@dataclass
class CacheEntry:
    """Cached extraction result; expires by TTL comparison at read time."""
    key: str
    value: ExtractionResult
    created_at: float
    ttl: float  # seconds

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


@dataclass
class CircuitStatus:
    """Snapshot of the circuit for a single domain."""
    domain: str
    consecutive_failures: int = 0
    blocked: bool = False
    blocked_reason: Optional[str] = None
    last_failure_at: Optional[float] = None
    state: CircuitState = CircuitState.CLOSED


@dataclass
class ErrorRecord:
    """Error information for tracking and reporting."""
    url: str
    error: str
    error_type: str
    timestamp: str  # ISO-8601 UTC


@dataclass
class QAEntry:
    """One line of the QA sink."""
    timestamp: str
    url: str
    error: str
    partial_data: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class BatchRunStats:
    """Immutable snapshot of a batch controller run."""
    total_processed: int
    successful: int
    failed: int
    success_rate: float  # Range 0.0-1.0
    duration_ms: float
    errors: List[ErrorRecord]
    successful_results: List[ExtractionResult]
    cache_hits: int = 0
    method_counts: Dict[str, int] = field(default_factory=dict)
    error_breakdown: Dict[str, int] = field(default_factory=dict)


@dataclass
class CrawlResult:
    """URLs discovered for a single crawl target."""
    target: CrawlTarget
    urls: List[str]
    errors: List[str]
    discovered_via: str  # "sitemap" or "homepage"
    duration_ms: float
