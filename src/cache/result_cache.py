"""TTL cache for extraction results keyed by normalized URL."""

import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from src.models.data_models import CacheEntry, ExtractionResult

KEY_PREFIX = "recipe:v2:"
TRACKING_PARAMS = frozenset({"fbclid", "gclid", "mc_cid", "mc_eid"})


def normalize_url(url: str) -> str:
    """
    Normalize a URL into a cache key.

    Lower-cases scheme and host, drops the fragment and tracking
    parameters (utm_*, fbclid, gclid) and keeps remaining query order.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return f"{KEY_PREFIX}{url}"

    query = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not k.lower().startswith("utm_") and k.lower() not in TRACKING_PARAMS
    ]
    path = parts.path or "/"
    normalized = urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, urlencode(query), ""))
    return f"{KEY_PREFIX}{normalized}"


class ResultCache:
    """
    In-memory result cache with per-entry TTL.

    - get() treats an expired entry as a miss and evicts it
    - set() always overwrites
    - max_entries bounds memory; the oldest entry is evicted first
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_entries: int = 5000,
        now: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize cache.

        Args:
            ttl_seconds: Default time to live for entries
            max_entries: Upper bound on stored entries
            now: Clock function (default: time.monotonic)
        """
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._now = now
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, url: str) -> Optional[ExtractionResult]:
        """Return the cached result for url, or None on miss or expiry."""
        key = normalize_url(url)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.is_expired(self._now()):
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def set(self, url: str, result: ExtractionResult, ttl: Optional[float] = None) -> None:
        """Store result for url, replacing any previous entry."""
        key = normalize_url(url)
        entry = CacheEntry(
            key=key,
            value=result,
            created_at=self._now(),
            ttl=self.ttl_seconds if ttl is None else ttl,
        )
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = entry
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, url: str) -> None:
        with self._lock:
            self._entries.pop(normalize_url(url), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Evict every expired entry; returns the number removed."""
        now = self._now()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def stats(self) -> Dict[str, float]:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / lookups if lookups else 0.0,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
