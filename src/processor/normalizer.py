"""Value normalizer for converting heterogeneous recipe data to RecipeFields.

Recipe pages describe the same record in many shapes: schema.org objects with
nested sections, string or list yields, ISO-8601 or free-text durations, image
objects, author lists. This module provides flexible, defensive parsing that
every extraction strategy shares.
"""

import html
import re
from typing import Any, Dict, List, Optional

from src.models.data_models import RecipeFields

_WHITESPACE = re.compile(r"\s+")
_ISO_DURATION = re.compile(
    r"^P(?:(\d+)Y)?(?:(\d+)M)?(?:(\d+)W)?(?:(\d+)D)?"
    r"(?:T(?:(\d+(?:\.\d+)?)H)?(?:(\d+(?:\.\d+)?)M)?(?:(\d+(?:\.\d+)?)S)?)?$",
    re.IGNORECASE,
)
_HOURS_TEXT = re.compile(r"(\d+(?:\.\d+)?)\s*(?:h|hr|hrs|hour|hours)\b", re.IGNORECASE)
_MINUTES_TEXT = re.compile(r"(\d+)\s*(?:m|min|mins|minute|minutes)\b", re.IGNORECASE)
_RANGE = re.compile(r"(\d+)\s*(?:[-–—]|to)\s*(\d+)")
_NUMBER = re.compile(r"\d+")

MAX_SERVINGS = 50


def clean_text(value: Any) -> str:
    """
    Collapse whitespace and unescape HTML entities.

    Args:
        value: Any value; non-strings are converted with str()

    Returns:
        Cleaned string ("" for None)
    """
    if value is None:
        return ""
    text = html.unescape(str(value))
    return _WHITESPACE.sub(" ", text).strip()


def parse_duration_minutes(value: Any) -> Optional[int]:
    """
    Parse a duration into whole minutes.

    Handles:
    - ISO-8601 durations: "PT1H30M", "P0DT0H20M0.000S", "PT45S"
    - Free text: "1 hour 20 mins", "1.5 hrs", "25 minutes"
    - Plain numbers (taken as minutes)

    Args:
        value: Raw duration value

    Returns:
        Minutes, or None if nothing usable was found

    Examples:
        >>> parse_duration_minutes("PT1H30M")
        90
        >>> parse_duration_minutes("P0DT0H20M0.000S")
        20
        >>> parse_duration_minutes("about 10 minutes")
        10
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None
    if isinstance(value, list):
        return parse_duration_minutes(value[0]) if value else None

    text = clean_text(value)
    if not text:
        return None

    match = _ISO_DURATION.match(text)
    if match and text.upper() not in ("P", "PT"):
        years, months, weeks, days, hours, minutes, seconds = (float(g) if g else 0.0 for g in match.groups())
        total = (
            years * 365 * 24 * 60
            + months * 30 * 24 * 60
            + weeks * 7 * 24 * 60
            + days * 24 * 60
            + hours * 60
            + minutes
            + seconds / 60
        )
        return int(round(total))

    hours = _HOURS_TEXT.search(text)
    minutes = _MINUTES_TEXT.search(text)
    if hours or minutes:
        total = (float(hours.group(1)) * 60 if hours else 0) + (int(minutes.group(1)) if minutes else 0)
        return int(round(total))

    number = _NUMBER.search(text)
    return int(number.group(0)) if number else None


def parse_servings(value: Any) -> Optional[int]:
    """
    Parse a recipe yield into a serving count.

    Ranges ("4 to 6", "2-3") resolve to the higher number. Results are
    clamped to 1..50. Missing or number-free yields return None; no
    default serving count is invented.

    Examples:
        >>> parse_servings("Serves 4-6")
        6
        >>> parse_servings(["8", "8 slices"])
        8
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, list):
        for item in value:
            parsed = parse_servings(item)
            if parsed is not None:
                return parsed
        return None
    if isinstance(value, (int, float)):
        return min(max(int(value), 1), MAX_SERVINGS)

    text = clean_text(value)
    range_match = _RANGE.search(text)
    if range_match:
        return min(max(int(range_match.group(2)), 1), MAX_SERVINGS)

    number = _NUMBER.search(text)
    if number:
        return min(max(int(number.group(0)), 1), MAX_SERVINGS)
    return None


def extract_image_url(value: Any) -> Optional[str]:
    """
    Extract an image URL from a string, ImageObject or list of either.

    Tries common field names on objects: url, contentUrl, @id
    """
    if not value:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        for item in value:
            url = extract_image_url(item)
            if url:
                return url
        return None
    if isinstance(value, dict):
        for field in ("url", "contentUrl", "@id"):
            nested = value.get(field)
            if isinstance(nested, str) and nested.strip():
                return nested.strip()
    return None


def extract_author(value: Any) -> Optional[str]:
    """
    Extract an author name from a string, Person/Organization or list.

    Lists are joined with ", ".
    """
    if not value:
        return None
    if isinstance(value, str):
        return clean_text(value) or None
    if isinstance(value, dict):
        name = value.get("name")
        return clean_text(name) or None if name else None
    if isinstance(value, list):
        names = [extract_author(item) for item in value]
        names = [n for n in names if n]
        return ", ".join(names) if names else None
    return None


def normalize_ingredients(value: Any) -> List[str]:
    """
    Normalize an ingredient list to non-empty strings.

    Accepts a list of strings or objects with text/name, or a single
    newline-separated string.
    """
    if not value:
        return []
    if isinstance(value, str):
        items: List[Any] = value.splitlines()
    elif isinstance(value, list):
        items = value
    else:
        items = [value]

    ingredients = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("text") or item.get("name") or ""
        text = clean_text(item)
        if text:
            ingredients.append(text)
    return ingredients


def normalize_instructions(value: Any) -> List[str]:
    """
    Flatten recipe instructions into ordered step strings.

    Handles:
    - Plain strings (split on newlines)
    - Lists of strings
    - HowToStep objects (text, then name)
    - HowToSection objects whose itemListElement holds further steps
    - Arbitrary nesting of the above

    Examples:
        >>> normalize_instructions([
        ...     {"@type": "HowToSection", "name": "Sauce", "itemListElement": [
        ...         {"@type": "HowToStep", "text": "Melt butter."},
        ...     ]},
        ...     "Serve.",
        ... ])
        ['Melt butter.', 'Serve.']
    """
    steps: List[str] = []

    def _walk(node: Any) -> None:
        if node is None:
            return
        if isinstance(node, str):
            for line in node.splitlines():
                text = clean_text(line)
                if text:
                    steps.append(text)
            return
        if isinstance(node, list):
            for item in node:
                _walk(item)
            return
        if isinstance(node, dict):
            children = node.get("itemListElement")
            if children:
                _walk(children)
                return
            text = node.get("text") or node.get("name")
            if text:
                _walk(text)

    _walk(value)
    return steps


def _first_present(raw: Dict[str, Any], fields: List[str]) -> Any:
    for field in fields:
        value = raw.get(field)
        if value not in (None, "", []):
            return value
    return None


def build_recipe_fields(raw: Dict[str, Any]) -> RecipeFields:
    """
    Normalize a schema.org-shaped recipe mapping into RecipeFields.

    Field Extraction Strategy:
    - Title: name, headline, title
    - Ingredients: recipeIngredient, then legacy ingredients
    - Instructions: recipeInstructions, instructions (sections flattened)
    - Yield: recipeYield, yield, servings
    - Times: prepTime/cookTime/totalTime; total falls back to prep + cook

    Missing values stay None; validation happens downstream.
    """
    prep = parse_duration_minutes(raw.get("prepTime"))
    cook = parse_duration_minutes(raw.get("cookTime"))
    total = parse_duration_minutes(raw.get("totalTime"))
    if total is None and (prep is not None or cook is not None):
        total = (prep or 0) + (cook or 0)

    title = clean_text(_first_present(raw, ["name", "headline", "title"]))
    description = clean_text(raw.get("description")) or None

    return RecipeFields(
        title=title,
        description=description,
        image_url=extract_image_url(raw.get("image") or raw.get("thumbnailUrl")),
        servings=parse_servings(_first_present(raw, ["recipeYield", "yield", "servings"])),
        prep_time_minutes=prep,
        cook_time_minutes=cook,
        total_time_minutes=total,
        ingredients=normalize_ingredients(_first_present(raw, ["recipeIngredient", "ingredients"])),
        instructions=normalize_instructions(_first_present(raw, ["recipeInstructions", "instructions"])),
        author=extract_author(raw.get("author")),
    )
