"""Extraction strategies.

Each strategy is a pure function ``(page, url) -> Candidate | NoMatch``.
"Nothing recognisable on this page" is a NoMatch; a raised exception means
the input itself was malformed. Strategies never validate; the chain does.
"""

import json
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from src.extraction.site_rules import SiteRule, rule_for
from src.models.data_models import Candidate, ExtractionMethod, FetchedPage, NoMatch, RecipeFields, StrategyOutcome
from src.processor.normalizer import (
    build_recipe_fields,
    clean_text,
    normalize_instructions,
    parse_servings,
)

Strategy = Callable[[FetchedPage, str], StrategyOutcome]

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_RECIPE_ITEMTYPE = re.compile(r"schema\.org/Recipe\b", re.IGNORECASE)

GENERIC_TITLE_SELECTORS = [
    "h1.recipe-title",
    "h1.entry-title",
    'h1[itemprop="name"]',
    ".recipe-header h1",
    "h1",
    "title",
]
GENERIC_INGREDIENT_SELECTORS = [
    ".recipe-ingredients li",
    ".ingredients li",
    '[itemprop="recipeIngredient"]',
    "li.ingredient",
    "ul.ingredients-list li",
    ".wprm-recipe-ingredient",
    ".tasty-recipes-ingredients li",
]
GENERIC_INSTRUCTION_SELECTORS = [
    ".recipe-instructions li",
    ".instructions li",
    '[itemprop="recipeInstructions"] li',
    "ol.instructions li",
    ".directions li",
    ".wprm-recipe-instruction-text",
    ".tasty-recipes-instructions li",
]


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def _select_texts(soup: BeautifulSoup, selectors: List[str]) -> List[str]:
    """Texts of the first selector that matches at least one non-empty element."""
    for selector in selectors:
        texts = [clean_text(el.get_text(" ")) for el in soup.select(selector)]
        texts = [t for t in texts if t]
        if texts:
            return texts
    return []


def _select_first_text(soup: BeautifulSoup, selectors: List[str]) -> Optional[str]:
    texts = _select_texts(soup, selectors)
    return texts[0] if texts else None


def _select_image(soup: BeautifulSoup, selectors: List[str]) -> Optional[str]:
    for selector in selectors:
        el = soup.select_one(selector)
        if el is None:
            continue
        for attr in ("src", "data-src", "content", "href"):
            value = el.get(attr)
            if value:
                return value.strip()
    return None


def _meta_content(soup: BeautifulSoup, *names: str) -> Optional[str]:
    for name in names:
        el = soup.find("meta", attrs={"property": name}) or soup.find("meta", attrs={"name": name})
        if el and el.get("content"):
            return clean_text(el["content"])
    return None


# --- Structured metadata (JSON-LD) ---

def _load_json_ld(text: str) -> Any:
    """
    Parse a JSON-LD block, tolerating raw control characters.

    Raises:
        ValueError: If the block is not valid JSON even after sanitizing
    """
    try:
        return json.loads(text, strict=False)
    except json.JSONDecodeError:
        return json.loads(_CONTROL_CHARS.sub(" ", text), strict=False)


def _iter_json_ld_nodes(data: Any) -> Iterator[Dict[str, Any]]:
    """Walk arrays and @graph containers, yielding every object node."""
    if isinstance(data, list):
        for item in data:
            yield from _iter_json_ld_nodes(item)
    elif isinstance(data, dict):
        yield data
        graph = data.get("@graph")
        if graph:
            yield from _iter_json_ld_nodes(graph)


def _is_recipe_node(node: Dict[str, Any]) -> bool:
    node_type = node.get("@type")
    types = node_type if isinstance(node_type, list) else [node_type]
    return any(isinstance(t, str) and t.split("/")[-1].lower() == "recipe" for t in types)


def extract_structured(page: FetchedPage, url: str) -> StrategyOutcome:
    """
    Extract a recipe from schema.org JSON-LD blocks.

    Handles @graph containers, top-level arrays, @type lists and nested
    HowToSection instructions. Malformed blocks are skipped while any
    other block still parses; if every Recipe-bearing block is malformed
    the error is raised.
    """
    soup = parse_html(page.html)
    scripts = soup.find_all("script", attrs={"type": re.compile(r"application/ld\+json", re.I)})
    if not scripts:
        return NoMatch(ExtractionMethod.STRUCTURED, "no JSON-LD blocks")

    parse_error: Optional[Exception] = None
    for script in scripts:
        text = (script.string or script.get_text() or "").strip()
        if not text:
            continue
        try:
            data = _load_json_ld(text)
        except ValueError as e:
            if "Recipe" in text:
                parse_error = e
            continue

        for node in _iter_json_ld_nodes(data):
            if _is_recipe_node(node):
                return Candidate(ExtractionMethod.STRUCTURED, build_recipe_fields(node))

    if parse_error is not None:
        raise ValueError(f"malformed JSON-LD: {parse_error}")
    return NoMatch(ExtractionMethod.STRUCTURED, "no Recipe node in JSON-LD")


# --- Embedded microdata ---

def _itemprop_value(el: Tag) -> str:
    for attr in ("content", "datetime"):
        value = el.get(attr)
        if value:
            return clean_text(value)
    if el.name in ("img", "source"):
        return (el.get("src") or "").strip()
    if el.name in ("a", "link"):
        return (el.get("href") or "").strip()
    return clean_text(el.get_text(" "))


def _itemprops(container: Tag, *names: str) -> List[Tag]:
    return container.find_all(attrs={"itemprop": lambda v: v and any(n in v.split() for n in names)})


def _own_itemprops(container: Tag, *names: str) -> List[Tag]:
    """Itemprops that belong to container itself, not to a nested itemscope."""
    return [
        el for el in _itemprops(container, *names)
        if el.find_parent(attrs={"itemscope": True}) is container
    ]


def _microdata_instructions(container: Tag) -> List[str]:
    steps: List[str] = []
    for el in _itemprops(container, "recipeInstructions"):
        step_texts = _itemprops(el, "text")
        if step_texts:
            steps.extend(clean_text(s.get_text(" ")) for s in step_texts)
            continue
        items = el.find_all("li")
        if items:
            steps.extend(clean_text(li.get_text(" ")) for li in items)
            continue
        steps.extend(normalize_instructions(el.get_text("\n")))
    return [s for s in steps if s]


def extract_microdata(page: FetchedPage, url: str) -> StrategyOutcome:
    """
    Extract a recipe from schema.org microdata (itemtype=.../Recipe).

    Supports recipeIngredient and the legacy ingredients property,
    HowToStep children, and content/datetime attributes for times.
    """
    soup = parse_html(page.html)
    container = soup.find(attrs={"itemtype": _RECIPE_ITEMTYPE})
    if container is None:
        return NoMatch(ExtractionMethod.MICRODATA, "no schema.org/Recipe itemscope")

    def first(name: str) -> Optional[str]:
        for el in _own_itemprops(container, name):
            value = _itemprop_value(el)
            if value:
                return value
        return None

    author = None
    author_el = next(iter(_own_itemprops(container, "author")), None)
    if author_el is not None:
        name_el = next(iter(_itemprops(author_el, "name")), None)
        author = _itemprop_value(name_el) if name_el is not None else _itemprop_value(author_el)

    raw = {
        "name": first("name"),
        "description": first("description"),
        "image": first("image"),
        "recipeYield": first("recipeYield"),
        "prepTime": first("prepTime"),
        "cookTime": first("cookTime"),
        "totalTime": first("totalTime"),
        "recipeIngredient": [_itemprop_value(el) for el in _own_itemprops(container, "recipeIngredient", "ingredients")],
        "recipeInstructions": _microdata_instructions(container),
        "author": author,
    }
    return Candidate(ExtractionMethod.MICRODATA, build_recipe_fields(raw))


# --- Site-specific rule sets ---

def _apply_rule(soup: BeautifulSoup, rule: SiteRule) -> RecipeFields:
    return RecipeFields(
        title=_select_first_text(soup, rule.title) or "",
        description=_select_first_text(soup, rule.description),
        image_url=_select_image(soup, rule.image),
        servings=parse_servings(_select_first_text(soup, rule.servings)),
        ingredients=_select_texts(soup, rule.ingredients),
        instructions=_select_texts(soup, rule.instructions),
        author=_select_first_text(soup, rule.author),
    )


def extract_site_specific(page: FetchedPage, url: str) -> StrategyOutcome:
    """Apply the selector table registered for the page's domain."""
    rule = rule_for(url)
    if rule is None:
        return NoMatch(ExtractionMethod.SITE_SPECIFIC, "no site rule for domain")

    fields = _apply_rule(parse_html(page.html), rule)
    if not fields.ingredients and not fields.instructions:
        return NoMatch(ExtractionMethod.SITE_SPECIFIC, "site rule matched no recipe content")
    return Candidate(ExtractionMethod.SITE_SPECIFIC, fields)


# --- Generic heuristics ---

def extract_generic(page: FetchedPage, url: str) -> StrategyOutcome:
    """
    Apply ordered generic selectors, with meta-tag fallbacks for the
    title, description, image and author.
    """
    soup = parse_html(page.html)
    ingredients = _select_texts(soup, GENERIC_INGREDIENT_SELECTORS)
    instructions = _select_texts(soup, GENERIC_INSTRUCTION_SELECTORS)
    if not ingredients and not instructions:
        return NoMatch(ExtractionMethod.GENERIC, "no ingredient or instruction markup")

    title = _select_first_text(soup, GENERIC_TITLE_SELECTORS) or _meta_content(soup, "og:title") or ""
    image = _meta_content(soup, "og:image") or _select_image(soup, ["img[itemprop=image]", "article img"])

    fields = RecipeFields(
        title=title,
        description=_meta_content(soup, "description", "og:description"),
        image_url=image,
        ingredients=ingredients,
        instructions=instructions,
        author=_meta_content(soup, "author", "article:author"),
    )
    return Candidate(ExtractionMethod.GENERIC, fields)


# Priority order; earlier strategies are trusted more
DEFAULT_STRATEGIES: List[Tuple[ExtractionMethod, Strategy]] = [
    (ExtractionMethod.STRUCTURED, extract_structured),
    (ExtractionMethod.MICRODATA, extract_microdata),
    (ExtractionMethod.SITE_SPECIFIC, extract_site_specific),
    (ExtractionMethod.GENERIC, extract_generic),
]

# Strategies rerun against rendered DOM when render_strategies == "dom_only"
DOM_STRATEGIES: List[Tuple[ExtractionMethod, Strategy]] = [
    (ExtractionMethod.SITE_SPECIFIC, extract_site_specific),
    (ExtractionMethod.GENERIC, extract_generic),
]
