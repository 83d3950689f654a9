"""Extraction strategy chain."""

from .chain import ExtractionChain
from .strategies import DEFAULT_STRATEGIES, DOM_STRATEGIES
from .validation import is_recipe_usable, score_confidence

__all__ = ["DEFAULT_STRATEGIES", "DOM_STRATEGIES", "ExtractionChain", "is_recipe_usable", "score_confidence"]
