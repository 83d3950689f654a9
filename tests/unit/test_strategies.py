"""Unit tests for the individual extraction strategies."""

import json

import pytest

from src.extraction.site_rules import rule_for
from src.extraction.strategies import (
    extract_generic,
    extract_microdata,
    extract_site_specific,
    extract_structured,
)
from src.models.data_models import Candidate, ExtractionMethod, FetchedPage, NoMatch
from tests.fixtures.recipes import (
    ALLRECIPES_PAGE,
    ARTICLE_PAGE,
    GENERIC_PAGE,
    MICRODATA_PAGE,
    json_ld_page,
)

URL = "https://example.com/recipes/test"


def page(html: str, url: str = URL) -> FetchedPage:
    return FetchedPage(url=url, html=html)


class TestStructuredStrategy:

    def test_plain_recipe_node(self):
        outcome = extract_structured(page(json_ld_page(recipeYield="4", totalTime="PT30M")), URL)

        assert isinstance(outcome, Candidate)
        assert outcome.method == ExtractionMethod.STRUCTURED
        assert outcome.fields.title == "Classic Pancakes"
        assert outcome.fields.ingredients == ["1 cup flour", "1 egg", "1 cup milk"]
        assert outcome.fields.instructions == ["Mix everything.", "Fry in a pan."]
        assert outcome.fields.servings == 4
        assert outcome.fields.total_time_minutes == 30

    def test_graph_container_and_type_list(self):
        data = {
            "@context": "https://schema.org",
            "@graph": [
                {"@type": "WebPage", "name": "Page"},
                {"@type": ["Recipe", "NewsArticle"], "name": "Graph Stew",
                 "recipeIngredient": ["beef", "carrot"], "recipeInstructions": "Simmer."},
            ],
        }
        html = f'<script type="application/ld+json">{json.dumps(data)}</script>'

        outcome = extract_structured(page(html), URL)

        assert isinstance(outcome, Candidate)
        assert outcome.fields.title == "Graph Stew"

    def test_top_level_array(self):
        data = [{"@type": "Organization"}, {"@type": "Recipe", "name": "Array Soup",
                                            "recipeIngredient": ["a", "b"], "recipeInstructions": ["c"]}]
        html = f'<script type="application/ld+json">{json.dumps(data)}</script>'
        assert extract_structured(page(html), URL).fields.title == "Array Soup"

    def test_raw_control_characters_tolerated(self):
        html = (
            '<script type="application/ld+json">'
            '{"@type": "Recipe", "name": "Tab\tCake", "recipeIngredient": ["a", "b"], '
            '"recipeInstructions": "Line one\nLine two"}'
            "</script>"
        )
        outcome = extract_structured(page(html), URL)
        assert isinstance(outcome, Candidate)
        assert outcome.fields.instructions == ["Line one", "Line two"]

    def test_no_json_ld_is_no_match(self):
        assert isinstance(extract_structured(page(GENERIC_PAGE), URL), NoMatch)

    def test_non_recipe_json_ld_is_no_match(self):
        html = '<script type="application/ld+json">{"@type": "Article", "headline": "News"}</script>'
        assert isinstance(extract_structured(page(html), URL), NoMatch)

    def test_malformed_recipe_block_raises(self):
        html = '<script type="application/ld+json">{"@type": "Recipe", "name": </script>'
        with pytest.raises(ValueError, match="malformed JSON-LD"):
            extract_structured(page(html), URL)

    def test_malformed_block_ignored_when_another_matches(self):
        broken = '<script type="application/ld+json">{"@type": "Recipe", </script>'
        assert isinstance(extract_structured(page(broken + json_ld_page()), URL), Candidate)

    def test_does_not_validate(self):
        outcome = extract_structured(page(json_ld_page(ingredients=["only one"])), URL)
        assert isinstance(outcome, Candidate)
        assert len(outcome.fields.ingredients) == 1


class TestMicrodataStrategy:

    def test_recipe_itemscope(self):
        outcome = extract_microdata(page(MICRODATA_PAGE), URL)

        assert isinstance(outcome, Candidate)
        fields = outcome.fields
        assert fields.title == "Roasted Tomato Soup"
        assert fields.ingredients == ["1 kg tomatoes", "1 onion"]
        assert fields.instructions == ["Roast the tomatoes.", "Blend and simmer."]
        assert fields.prep_time_minutes == 15
        assert fields.cook_time_minutes == 45
        assert fields.servings == 6
        assert fields.author == "Jane Cook"

    def test_no_itemscope_is_no_match(self):
        assert isinstance(extract_microdata(page(GENERIC_PAGE), URL), NoMatch)


class TestSiteSpecificStrategy:

    def test_rule_lookup_strips_www_and_matches_subdomains(self):
        assert rule_for("https://www.allrecipes.com/recipe/1/x") is not None
        assert rule_for("https://uk.bbcgoodfood.com/recipes/x") is not None
        assert rule_for("https://example.com/recipes/x") is None

    def test_applies_domain_rule(self):
        url = "https://www.allrecipes.com/recipe/123/chicken-pot-pie/"
        outcome = extract_site_specific(page(ALLRECIPES_PAGE, url), url)

        assert isinstance(outcome, Candidate)
        assert outcome.method == ExtractionMethod.SITE_SPECIFIC
        assert outcome.fields.title == "Chicken Pot Pie"
        assert outcome.fields.ingredients == ["2 cups chicken", "1 pie crust", "1 cup peas"]
        assert outcome.fields.instructions == ["Fill the crust.", "Bake."]

    def test_unknown_domain_is_no_match(self):
        assert isinstance(extract_site_specific(page(ALLRECIPES_PAGE), URL), NoMatch)

    def test_rule_without_content_is_no_match(self):
        url = "https://www.allrecipes.com/recipe/1/x"
        assert isinstance(extract_site_specific(page(ARTICLE_PAGE, url), url), NoMatch)


class TestGenericStrategy:

    def test_selectors_and_meta_fallbacks(self):
        outcome = extract_generic(page(GENERIC_PAGE), URL)

        assert isinstance(outcome, Candidate)
        fields = outcome.fields
        assert fields.title == "Simple Garden Salad"
        assert fields.ingredients == ["1 head lettuce", "2 tomatoes"]
        assert fields.instructions == ["Chop.", "Toss."]
        assert fields.description == "A quick weeknight salad."
        assert fields.image_url == "https://cdn.example.com/salad.jpg"
        assert fields.author == "Sam Greens"

    def test_page_without_recipe_markup_is_no_match(self):
        assert isinstance(extract_generic(page(ARTICLE_PAGE), URL), NoMatch)
