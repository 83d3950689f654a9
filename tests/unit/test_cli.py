"""Unit tests for CLI interface."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from src.models.data_models import BatchRunStats, CrawlResult, CrawlTarget
from src.pipeline.main import cli, read_urls_file
from tests.fixtures.recipes import make_result


@pytest.fixture
def config_file(tmp_path):
    """Config and site registry pointing into tmp_path."""
    sites_file = tmp_path / "sites.yaml"
    with open(sites_file, 'w') as f:
        yaml.dump({"sites": [
            {"name": "Alpha", "base_url": "https://alpha.test", "priority": 3},
            {"name": "Beta", "base_url": "https://beta.test", "priority": 8},
            {"name": "Gamma", "base_url": "https://gamma.test", "active": False},
        ]}, f)

    path = tmp_path / "config.yaml"
    with open(path, 'w') as f:
        yaml.dump({
            "sites_file": str(sites_file),
            "output_directory": str(tmp_path / "out"),
            "qa_log_path": str(tmp_path / "qa_log.jsonl"),
        }, f)
    return path


@pytest.fixture
def mock_stats():
    """A run with one recipe and no failures."""
    return BatchRunStats(
        total_processed=1,
        successful=1,
        failed=0,
        success_rate=1.0,
        duration_ms=42.0,
        errors=[],
        successful_results=[make_result()],
        method_counts={"structured": 1},
    )


def mock_orchestrator(orchestrator_class, stats=None, crawl_results=None):
    """Wire a patched PipelineOrchestrator class to return canned results."""
    orchestrator = MagicMock()
    orchestrator.run = AsyncMock(return_value=stats)
    orchestrator.discover = AsyncMock(return_value=crawl_results or [])
    orchestrator.crawl_and_run = AsyncMock(return_value=(crawl_results or [], stats))
    orchestrator_class.return_value.__aenter__.return_value = orchestrator
    return orchestrator


def test_cli_help():
    """Test that CLI help message works."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"], obj={})

    assert result.exit_code == 0
    assert "Recipe Pipeline" in result.output
    assert "--config" in result.output
    for command in ("run", "discover", "sites"):
        assert command in result.output


def test_cli_version():
    """Test that version flag works."""
    result = CliRunner().invoke(cli, ["--version"], obj={})

    assert result.exit_code == 0
    assert "1.0.0" in result.output


def test_sites_lists_registry(config_file):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "sites"], obj={})

    assert result.exit_code == 0
    for name in ("Alpha", "Beta", "Gamma"):
        assert name in result.output


def test_sites_with_missing_registry_exits_1(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"sites_file: {tmp_path / 'absent.yaml'}\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--config", str(config_file), "sites"], obj={})

    assert result.exit_code == 1
    assert "Configuration error" in result.output


@patch("src.pipeline.main.PipelineOrchestrator")
def test_run_with_urls_file(mock_orchestrator_class, config_file, mock_stats, tmp_path):
    """URLs from the file are extracted and the report is written."""
    orchestrator = mock_orchestrator(mock_orchestrator_class, stats=mock_stats)
    urls_file = tmp_path / "urls.txt"
    urls_file.write_text(
        "# weekend baking\nhttps://example.com/recipes/pancakes\n\nhttps://example.com/recipes/waffles\n",
        encoding="utf-8",
    )
    output = tmp_path / "report.json"

    result = CliRunner().invoke(cli, [
        "--config", str(config_file),
        "run", "--urls-file", str(urls_file), "--output", str(output), "--no-progress",
    ], obj={})

    assert result.exit_code == 0, result.output
    orchestrator.run.assert_awaited_once_with([
        "https://example.com/recipes/pancakes",
        "https://example.com/recipes/waffles",
    ])
    report = json.loads(output.read_text(encoding="utf-8"))
    assert report["summary"]["successful"] == 1
    assert "Run complete: 1/1" in result.output


@patch("src.pipeline.main.PipelineOrchestrator")
def test_run_applies_overrides(mock_orchestrator_class, config_file, mock_stats, tmp_path):
    mock_orchestrator(mock_orchestrator_class, stats=mock_stats)
    urls_file = tmp_path / "urls.txt"
    urls_file.write_text("https://example.com/recipes/pancakes\n", encoding="utf-8")

    result = CliRunner().invoke(cli, [
        "--config", str(config_file), "--log-level", "debug",
        "run", "-u", str(urls_file), "-n", "9", "-b", "4", "--delay-ms", "0", "--render", "--no-progress",
    ], obj={})

    assert result.exit_code == 0, result.output
    config = mock_orchestrator_class.call_args.args[0]
    assert config.concurrency == 9
    assert config.batch_size == 4
    assert config.inter_task_delay_ms == 0
    assert config.render_enabled is True
    assert config.log_level == "DEBUG"


@patch("src.pipeline.main.PipelineOrchestrator")
def test_run_crawls_selected_sites(mock_orchestrator_class, config_file, mock_stats):
    orchestrator = mock_orchestrator(mock_orchestrator_class, stats=mock_stats)

    result = CliRunner().invoke(cli, [
        "--config", str(config_file), "run", "--site", "alpha", "--limit", "5", "--no-progress",
    ], obj={})

    assert result.exit_code == 0, result.output
    targets, limit = orchestrator.crawl_and_run.await_args.args
    assert [t.name for t in targets] == ["Alpha"]
    assert limit == 5


def test_run_unknown_site_exits_1(config_file):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "run", "--site", "Nowhere"], obj={})

    assert result.exit_code == 1
    assert "Unknown site" in result.output


def test_run_invalid_config_exits_1(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("concurrency: 0\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--config", str(config_file), "run", "--no-progress"], obj={})

    assert result.exit_code == 1
    assert "Configuration error" in result.output


@patch("src.pipeline.main.PipelineOrchestrator")
def test_discover_writes_urls(mock_orchestrator_class, config_file, tmp_path):
    crawl_results = [
        CrawlResult(
            target=CrawlTarget(name="Beta", base_url="https://beta.test"),
            urls=["https://beta.test/recipes/soup"],
            errors=[],
            discovered_via="sitemap",
            duration_ms=3.0,
        )
    ]
    orchestrator = mock_orchestrator(mock_orchestrator_class, crawl_results=crawl_results)
    output = tmp_path / "urls.json"

    result = CliRunner().invoke(cli, ["--config", str(config_file), "discover", "-o", str(output)], obj={})

    assert result.exit_code == 0, result.output
    targets, _ = orchestrator.discover.await_args.args
    assert [t.name for t in targets] == ["Beta", "Alpha"]
    assert json.loads(output.read_text(encoding="utf-8"))["total_urls"] == 1


def test_read_urls_file(tmp_path):
    path = tmp_path / "urls.txt"
    path.write_text("  https://a.test/recipes/x  \n# skip\n\nhttps://b.test/recipes/y\n", encoding="utf-8")
    assert read_urls_file(path) == ["https://a.test/recipes/x", "https://b.test/recipes/y"]
