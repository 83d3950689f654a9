"""Recipe value normalization and run statistics."""

from .aggregator import RunStatsAggregator
from .normalizer import build_recipe_fields, clean_text, normalize_instructions, parse_duration_minutes

__all__ = [
    "RunStatsAggregator",
    "build_recipe_fields",
    "clean_text",
    "normalize_instructions",
    "parse_duration_minutes",
]
