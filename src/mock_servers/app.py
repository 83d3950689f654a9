"""FastAPI mock recipe site for testing discovery and extraction."""

import gzip
import html
import json
import os
import random
import time
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import HTMLResponse, PlainTextResponse

XML_MEDIA_TYPE = "application/xml"

RECIPES: Dict[str, Dict] = {
    "classic-pancakes": {
        "kind": "structured",
        "title": "Classic Pancakes",
        "description": "Fluffy weekend pancakes.",
        "author": "Test Kitchen",
        "yield": "4-6 servings",
        "prep": "PT10M",
        "cook": "PT15M",
        "ingredients": ["1 1/2 cups flour", "2 tbsp sugar", "1 1/4 cups milk", "1 egg", "3 tbsp butter"],
        "instructions": [
            "Whisk the dry ingredients.",
            "Beat in milk, egg and melted butter.",
            "Cook on a hot griddle until golden.",
        ],
    },
    "tomato-soup": {
        "kind": "microdata",
        "title": "Roasted Tomato Soup",
        "description": "A smooth soup from roasted tomatoes.",
        "author": "Test Kitchen",
        "yield": "4",
        "prep": "PT15M",
        "cook": "PT45M",
        "ingredients": ["1 kg tomatoes", "1 onion", "2 cloves garlic", "500 ml stock"],
        "instructions": ["Roast the tomatoes, onion and garlic.", "Blend with stock and simmer."],
    },
    "garden-salad": {
        "kind": "generic",
        "title": "Simple Garden Salad",
        "ingredients": ["1 head lettuce", "2 tomatoes", "1 cucumber", "2 tbsp olive oil"],
        "instructions": ["Chop the vegetables.", "Toss with olive oil and season."],
    },
    "lonely-toast": {
        "kind": "single_ingredient",
        "title": "Toast",
        "ingredients": ["1 slice bread"],
        "instructions": ["Toast the bread."],
    },
    "kitchen-stories": {"kind": "article", "title": "Stories From Our Kitchen"},
    "broken-stew": {"kind": "error", "title": "Broken Stew"},
}


def _json_ld_html(recipe: Dict, ingredients: Optional[List[str]] = None) -> str:
    data = {
        "@context": "https://schema.org",
        "@graph": [
            {"@type": "WebSite", "name": "Mock Recipes"},
            {
                "@type": ["Recipe"],
                "name": recipe["title"],
                "description": recipe.get("description"),
                "author": {"@type": "Person", "name": recipe.get("author")},
                "image": [{"@type": "ImageObject", "url": "https://cdn.example.test/pancakes.jpg"}],
                "recipeYield": recipe.get("yield"),
                "prepTime": recipe.get("prep"),
                "cookTime": recipe.get("cook"),
                "recipeIngredient": ingredients if ingredients is not None else recipe["ingredients"],
                "recipeInstructions": [
                    {"@type": "HowToStep", "text": step} for step in recipe["instructions"]
                ],
            },
        ],
    }
    return (
        f"<html><head><title>{html.escape(recipe['title'])}</title>"
        f'<script type="application/ld+json">{json.dumps(data)}</script>'
        f"</head><body><h1>{html.escape(recipe['title'])}</h1></body></html>"
    )


def _microdata_html(recipe: Dict) -> str:
    ingredients = "".join(
        f'<li itemprop="recipeIngredient">{html.escape(i)}</li>' for i in recipe["ingredients"]
    )
    steps = "".join(
        f'<li itemprop="recipeInstructions">{html.escape(s)}</li>' for s in recipe["instructions"]
    )
    return (
        "<html><head><title>Mock Recipes</title></head><body>"
        '<div itemscope itemtype="https://schema.org/Recipe">'
        f'<h1 itemprop="name">{html.escape(recipe["title"])}</h1>'
        f'<p itemprop="description">{html.escape(recipe["description"])}</p>'
        f'<span itemprop="author">{html.escape(recipe["author"])}</span>'
        f'<meta itemprop="recipeYield" content="{recipe["yield"]}">'
        f'<meta itemprop="prepTime" content="{recipe["prep"]}">'
        f'<meta itemprop="cookTime" content="{recipe["cook"]}">'
        f"<ul>{ingredients}</ul><ol>{steps}</ol>"
        "</div></body></html>"
    )


def _generic_html(recipe: Dict) -> str:
    ingredients = "".join(f"<li>{html.escape(i)}</li>" for i in recipe["ingredients"])
    steps = "".join(f"<li>{html.escape(s)}</li>" for s in recipe["instructions"])
    return (
        "<html><head><title>Mock Recipes</title>"
        '<meta name="description" content="A quick weeknight salad.">'
        "</head><body>"
        f'<h1 class="recipe-title">{html.escape(recipe["title"])}</h1>'
        f'<div class="recipe-ingredients"><ul>{ingredients}</ul></div>'
        f'<div class="recipe-instructions"><ol>{steps}</ol></div>'
        "</body></html>"
    )


def _article_html(recipe: Dict) -> str:
    return (
        f"<html><head><title>{html.escape(recipe['title'])}</title></head><body>"
        f"<h1>{html.escape(recipe['title'])}</h1>"
        "<p>We have been cooking together for twenty years.</p>"
        "</body></html>"
    )


def render_recipe_page(slug: str) -> str:
    """HTML for a mock recipe page, shaped by the recipe's kind."""
    recipe = RECIPES[slug]
    kind = recipe["kind"]
    if kind == "structured":
        return _json_ld_html(recipe)
    if kind == "microdata":
        return _microdata_html(recipe)
    if kind == "generic":
        return _generic_html(recipe)
    if kind == "single_ingredient":
        return _json_ld_html({**recipe, "description": None, "author": None}, recipe["ingredients"])
    return _article_html(recipe)


def _urlset(urls: List[str]) -> str:
    entries = "".join(f"<url><loc>{url}</loc></url>" for url in urls)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</urlset>'
    )


def _sitemap_index(urls: List[str]) -> str:
    entries = "".join(f"<sitemap><loc>{url}</loc></sitemap>" for url in urls)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</sitemapindex>'
    )


def create_recipe_site(
    name: str = "mock-recipes",
    random_seed: Optional[int] = None,
    error_rate: float = 0.0,
    extra_latency_ms: int = 0,
    serve_sitemaps: bool = True,
    gzip_sitemaps: bool = False,
) -> FastAPI:
    """
    Create a FastAPI mock recipe site with configurable behavior.

    Routes: /robots.txt, /sitemap_index.xml, /sitemap-recipes.xml(.gz),
    /sitemap-pages.xml, /, /recipes/{slug}, /about, /health.

    Args:
        name: Site name
        random_seed: Seed for deterministic error injection
        error_rate: Probability of a 503 on recipe pages (0.0-1.0)
        extra_latency_ms: Additional latency in milliseconds
        serve_sitemaps: When False every sitemap route returns 404, forcing
            discovery to fall back to the homepage
        gzip_sitemaps: Serve the recipe sitemap gzipped under .xml.gz

    Returns:
        FastAPI application
    """
    app = FastAPI(title=f"Mock Recipe Site - {name}")
    rng = random.Random(random_seed)
    recipe_sitemap = "/sitemap-recipes.xml.gz" if gzip_sitemaps else "/sitemap-recipes.xml"

    def origin(request: Request) -> str:
        return str(request.base_url).rstrip("/")

    def require_sitemaps() -> None:
        if not serve_sitemaps:
            raise HTTPException(status_code=404, detail="Not found")

    @app.get("/robots.txt", response_class=PlainTextResponse)
    async def robots(request: Request):
        lines = ["User-agent: *", "Disallow: /admin/"]
        if serve_sitemaps:
            lines.append(f"Sitemap: {origin(request)}/sitemap_index.xml")
        return "\n".join(lines) + "\n"

    @app.get("/sitemap_index.xml")
    async def sitemap_index(request: Request):
        require_sitemaps()
        base = origin(request)
        body = _sitemap_index([f"{base}{recipe_sitemap}", f"{base}/sitemap-pages.xml"])
        return Response(content=body, media_type=XML_MEDIA_TYPE)

    @app.get(recipe_sitemap)
    async def recipes_sitemap(request: Request):
        require_sitemaps()
        base = origin(request)
        body = _urlset([f"{base}/recipes/{slug}" for slug in RECIPES])
        if gzip_sitemaps:
            return Response(content=gzip.compress(body.encode("utf-8")), media_type="application/gzip")
        return Response(content=body, media_type=XML_MEDIA_TYPE)

    @app.get("/sitemap-pages.xml")
    async def pages_sitemap(request: Request):
        require_sitemaps()
        base = origin(request)
        return Response(content=_urlset([f"{base}/", f"{base}/about"]), media_type=XML_MEDIA_TYPE)

    @app.get("/", response_class=HTMLResponse)
    async def homepage():
        links = "".join(
            f'<li><a href="/recipes/{slug}">{html.escape(r["title"])}</a></li>' for slug, r in RECIPES.items()
        )
        return (
            f"<html><head><title>{html.escape(name)}</title></head><body>"
            f'<nav><a href="/about">About</a> <a href="https://elsewhere.test/recipes/foreign">Partner</a></nav>'
            f"<ul>{links}</ul></body></html>"
        )

    @app.get("/about", response_class=HTMLResponse)
    async def about():
        return "<html><body><h1>About us</h1><p>A mock recipe site.</p></body></html>"

    @app.get("/recipes/{slug}", response_class=HTMLResponse)
    async def recipe_page(slug: str):
        if extra_latency_ms > 0:
            time.sleep(extra_latency_ms / 1000.0)

        if slug not in RECIPES:
            raise HTTPException(status_code=404, detail="Recipe not found")
        if RECIPES[slug]["kind"] == "error":
            raise HTTPException(status_code=500, detail="Simulated error")
        if rng.random() < error_rate:
            raise HTTPException(status_code=503, detail="Simulated error")

        return render_recipe_page(slug)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "site": name}

    return app


def create_app() -> FastAPI:
    """
    Factory function reading site behavior from the environment.

    SERVE_SITEMAPS=0 disables sitemaps, GZIP_SITEMAPS=1 gzips the recipe
    sitemap, ERROR_RATE and EXTRA_LATENCY_MS inject failures and latency.
    """
    return create_recipe_site(
        name=os.getenv("SITE_NAME", "mock-recipes"),
        random_seed=int(os.getenv("RANDOM_SEED", 42)),
        error_rate=float(os.getenv("ERROR_RATE", 0.0)),
        extra_latency_ms=int(os.getenv("EXTRA_LATENCY_MS", 0)),
        serve_sitemaps=os.getenv("SERVE_SITEMAPS", "1") != "0",
        gzip_sitemaps=os.getenv("GZIP_SITEMAPS", "0") == "1",
    )
