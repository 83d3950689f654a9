"""Candidate validation and confidence scoring."""

from typing import Dict

from src.models.data_models import ExtractionMethod, RecipeFields, check_invariants

BASE_CONFIDENCE = 60
MAX_CONFIDENCE = 100

METHOD_BONUS: Dict[ExtractionMethod, int] = {
    ExtractionMethod.STRUCTURED: 20,
    ExtractionMethod.MICRODATA: 15,
    ExtractionMethod.SITE_SPECIFIC: 15,
    ExtractionMethod.RENDERED: 10,
    ExtractionMethod.GENERIC: 5,
}

# Completeness increments per optional field present
FIELD_BONUS = {
    "description": 3,
    "image_url": 3,
    "servings": 2,
    "prep_time_minutes": 2,
    "cook_time_minutes": 2,
    "author": 2,
}
RICH_LIST_SIZE = 5
RICH_LIST_BONUS = 3


def score_confidence(fields: RecipeFields, method: ExtractionMethod) -> int:
    """
    Compute a 0-100 confidence score for an accepted candidate.

    score = 60 + method bonus + completeness bonus, capped at 100. The
    score is informational; it never gates acceptance.

    Args:
        fields: Extracted recipe fields
        method: Strategy that produced them

    Returns:
        Confidence score
    """
    score = BASE_CONFIDENCE + METHOD_BONUS.get(method, 0)

    for field_name, bonus in FIELD_BONUS.items():
        if getattr(fields, field_name):
            score += bonus

    if len(fields.ingredients) >= RICH_LIST_SIZE:
        score += RICH_LIST_BONUS
    if len(fields.instructions) >= RICH_LIST_SIZE:
        score += RICH_LIST_BONUS

    return min(MAX_CONFIDENCE, score)


def validate_candidate(fields: RecipeFields) -> None:
    """
    Raise ValidationFailure unless fields satisfy the record invariants.

    Requires a non-empty title, at least 2 ingredients and at least
    1 instruction.
    """
    check_invariants(fields)


def is_recipe_usable(fields: RecipeFields) -> bool:
    """Domain-level usability rule applied after extraction.

    Looser than the record invariants (one ingredient suffices), so it only
    rejects results that were corrupted after validation.
    """
    return bool(fields.title and fields.title.strip()) and len(fields.ingredients) >= 1 and len(fields.instructions) >= 1
