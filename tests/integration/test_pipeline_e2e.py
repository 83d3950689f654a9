"""End-to-end tests: discovery and extraction against the in-process mock recipe site."""

import json

import httpx
import pytest

from src.mock_servers import RECIPES, create_recipe_site
from src.models.data_models import CrawlTarget
from src.pipeline.orchestrator import PipelineOrchestrator
from src.pipeline.output import JSONOutputFormatter

BASE = "http://recipes.test"

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


def target(**kwargs) -> CrawlTarget:
    return CrawlTarget(name="Mock Recipes", base_url=BASE, **kwargs)


async def crawl_and_run(config, site, targets):
    transport = httpx.ASGITransport(app=site)
    async with PipelineOrchestrator(config, transport=transport) as orchestrator:
        return await orchestrator.crawl_and_run(targets)


async def test_sitemap_discovery_and_extraction(sample_config, tmp_path):
    crawl_results, stats = await crawl_and_run(
        sample_config,
        create_recipe_site(random_seed=42),
        [target(sitemap_url=f"{BASE}/sitemap_index.xml")],
    )

    discovered = crawl_results[0]
    assert discovered.discovered_via == "sitemap"
    assert discovered.urls == [f"{BASE}/recipes/{slug}" for slug in RECIPES]

    assert stats.total_processed == 6
    assert stats.successful == 3
    assert stats.failed == 3
    assert stats.success_rate == pytest.approx(0.5)
    assert stats.method_counts == {"structured": 1, "microdata": 1, "generic": 1}
    assert stats.error_breakdown == {"extraction_exhausted": 2, "fetch_error": 1}

    by_url = {r.url: r for r in stats.successful_results}
    pancakes = by_url[f"{BASE}/recipes/classic-pancakes"]
    assert pancakes.fields.title == "Classic Pancakes"
    assert pancakes.fields.servings == 6
    assert pancakes.fields.prep_time_minutes == 10
    assert pancakes.fields.image_url == "https://cdn.example.test/pancakes.jpg"
    assert len(pancakes.fields.ingredients) == 5

    soup = by_url[f"{BASE}/recipes/tomato-soup"]
    assert soup.fields.cook_time_minutes == 45
    assert soup.fields.author == "Test Kitchen"

    failed = {e.url: e.error_type for e in stats.errors}
    assert failed[f"{BASE}/recipes/broken-stew"] == "fetch_error"
    assert failed[f"{BASE}/recipes/lonely-toast"] == "extraction_exhausted"

    with open(sample_config.qa_log_path, encoding="utf-8") as f:
        qa_entries = [json.loads(line) for line in f]
    assert sorted(e["url"] for e in qa_entries) == sorted(failed)

    report_path = tmp_path / "report.json"
    JSONOutputFormatter().save(stats, str(report_path))
    report = json.loads(report_path.read_text(encoding="utf-8"))
    assert report["summary"]["successful"] == 3
    assert len(report["recipes"]) == 3


async def test_single_ingredient_page_keeps_partial_data(sample_config):
    await crawl_and_run(
        sample_config,
        create_recipe_site(random_seed=42),
        [target(sitemap_url=f"{BASE}/sitemap_index.xml")],
    )

    with open(sample_config.qa_log_path, encoding="utf-8") as f:
        entries = {e["url"]: e for e in (json.loads(line) for line in f)}
    toast = entries[f"{BASE}/recipes/lonely-toast"]
    assert toast["partial_data"]["title"] == "Toast"
    assert toast["partial_data"]["ingredients"] == ["1 slice bread"]


async def test_robots_discovery_with_gzipped_sitemap(sample_config):
    crawl_results, stats = await crawl_and_run(
        sample_config,
        create_recipe_site(gzip_sitemaps=True),
        [target()],
    )

    assert crawl_results[0].discovered_via == "sitemap"
    assert len(crawl_results[0].urls) == len(RECIPES)
    assert stats.successful == 3


async def test_homepage_fallback_without_sitemaps(sample_config):
    crawl_results, stats = await crawl_and_run(
        sample_config,
        create_recipe_site(serve_sitemaps=False),
        [target(sitemap_url=f"{BASE}/sitemap_index.xml")],
    )

    discovered = crawl_results[0]
    assert discovered.discovered_via == "homepage"
    assert discovered.urls == [f"{BASE}/recipes/{slug}" for slug in RECIPES]
    assert all("elsewhere.test" not in url for url in discovered.urls)
    assert stats.successful == 3


async def test_failing_domain_gets_blocked(sample_config):
    config = sample_config.model_copy(update={"circuit_failure_threshold": 2, "concurrency": 1})
    urls = [f"{BASE}/recipes/broken-stew"] + [f"{BASE}/recipes/no-such-{i}" for i in range(3)]
    transport = httpx.ASGITransport(app=create_recipe_site())

    async with PipelineOrchestrator(config, transport=transport) as orchestrator:
        stats = await orchestrator.run(urls)
        assert orchestrator.circuits.is_blocked("recipes.test")

    assert stats.error_breakdown == {"fetch_error": 2, "circuit_open": 2}
