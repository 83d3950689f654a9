"""Extraction result cache."""

from .result_cache import ResultCache, normalize_url

__all__ = ["ResultCache", "normalize_url"]
