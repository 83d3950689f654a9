"""CLI entry point for the recipe extraction pipeline.

Commands:
    run       Extract recipes from a URL file or from URLs discovered via the site registry
    discover  Discover recipe URLs for registry sites without extracting them
    sites     List the site registry
"""

import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from src.models.config import ConfigManager, PipelineConfig, SiteRegistry
from src.models.data_models import BatchRunStats, CrawlResult, CrawlTarget
from src.models.errors import ConfigurationError
from src.pipeline.orchestrator import PipelineOrchestrator
from src.pipeline.output import JSONOutputFormatter


console = Console()


def _load_config(config_path: Path, overrides: Dict[str, object]) -> PipelineConfig:
    return ConfigManager(config_path).load_config(overrides)


def _select_targets(config: PipelineConfig, site_names: Tuple[str, ...]) -> List[CrawlTarget]:
    """
    Load the registry and pick the targets to crawl.

    Raises:
        ConfigurationError: If the registry is invalid or a named site is unknown
    """
    registry = SiteRegistry.load(Path(config.sites_file))
    if not site_names:
        return registry.active_targets()

    targets = []
    for name in site_names:
        target = registry.get(name)
        if target is None:
            raise ConfigurationError(f"Unknown site: {name}")
        targets.append(target)
    return targets


def read_urls_file(path: Path) -> List[str]:
    """Read one URL per line, skipping blank lines and # comments."""
    urls = []
    with open(path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                urls.append(line)
    return urls


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(path_type=Path),
    default="config/config.yaml",
    show_default=True,
    help="Path to configuration YAML file",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
@click.version_option(version="1.0.0", prog_name="recipe-pipeline")
@click.pass_context
def cli(ctx: click.Context, config_path: Path, log_level: Optional[str]) -> None:
    """
    Recipe Pipeline - discover recipe pages and extract structured recipes.

    Examples:

        # Crawl every active registry site and extract what was found
        $ python -m src.pipeline.main run --limit 20

        # Extract a fixed list of URLs
        $ python -m src.pipeline.main run --urls-file urls.txt --concurrency 10

        # Only discover URLs for one site
        $ python -m src.pipeline.main discover --site "Serious Eats" -o out/urls.json
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["overrides"] = {"log_level": log_level.upper()} if log_level else {}


@cli.command()
@click.option("--urls-file", "-u", type=click.Path(exists=True, path_type=Path), help="File with one URL per line")
@click.option("--site", "-s", "sites", multiple=True, help="Registry site name (repeatable; default: all active)")
@click.option("--limit", type=int, help="Maximum URLs discovered per site")
@click.option("--concurrency", "-n", type=int, help="Maximum in-flight tasks (overrides config)")
@click.option("--batch-size", "-b", type=int, help="Tasks per batch (overrides config)")
@click.option("--delay-ms", type=int, help="Inter-task delay in milliseconds (overrides config)")
@click.option("--render/--no-render", default=None, help="Enable the headless-render fallback (overrides config)")
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Run report path (overrides config)")
@click.option("--no-progress", is_flag=True, help="Disable progress bars (useful for CI/CD)")
@click.pass_context
def run(
    ctx: click.Context,
    urls_file: Optional[Path],
    sites: Tuple[str, ...],
    limit: Optional[int],
    concurrency: Optional[int],
    batch_size: Optional[int],
    delay_ms: Optional[int],
    render: Optional[bool],
    output: Optional[Path],
    no_progress: bool,
) -> None:
    """Extract recipes and write the run report."""
    overrides = dict(ctx.obj["overrides"])
    overrides.update({
        "concurrency": concurrency,
        "batch_size": batch_size,
        "inter_task_delay_ms": delay_ms,
        "render_enabled": render,
    })

    try:
        config = _load_config(ctx.obj["config_path"], overrides)
        urls = read_urls_file(urls_file) if urls_file else None
        targets = [] if urls is not None else _select_targets(config, sites)
        output_path = output if output else config.output_path

        _display_config_summary(config, no_progress)

        stats = asyncio.run(_run_with_progress(config, urls, targets, limit, no_progress))

        JSONOutputFormatter().save(stats, str(output_path))
        _display_results(stats, output_path, no_progress)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Pipeline interrupted by user[/yellow]")
        sys.exit(130)


@cli.command()
@click.option("--site", "-s", "sites", multiple=True, help="Registry site name (repeatable; default: all active)")
@click.option("--limit", type=int, help="Maximum URLs per site")
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Write discovered URLs as JSON")
@click.pass_context
def discover(ctx: click.Context, sites: Tuple[str, ...], limit: Optional[int], output: Optional[Path]) -> None:
    """Discover recipe URLs for registry sites."""
    try:
        config = _load_config(ctx.obj["config_path"], ctx.obj["overrides"])
        targets = _select_targets(config, sites)
        crawl_results = asyncio.run(_discover(config, targets, limit))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        sys.exit(1)

    table = Table(title="Discovered URLs")
    table.add_column("Site", style="cyan")
    table.add_column("URLs", justify="right", style="green")
    table.add_column("Via", style="magenta")
    table.add_column("Errors", justify="right", style="yellow")
    for result in crawl_results:
        table.add_row(result.target.name, str(len(result.urls)), result.discovered_via, str(len(result.errors)))
    console.print(table)

    if output:
        JSONOutputFormatter().save_discovery(crawl_results, str(output))
        console.print(f"[bold]Output saved to:[/bold] {output}")


@cli.command()
@click.pass_context
def sites(ctx: click.Context) -> None:
    """List the site registry."""
    try:
        config = _load_config(ctx.obj["config_path"], ctx.obj["overrides"])
        registry = SiteRegistry.load(Path(config.sites_file))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        sys.exit(1)

    table = Table(title="Site Registry")
    table.add_column("Name", style="cyan")
    table.add_column("Base URL")
    table.add_column("Category")
    table.add_column("Priority", justify="right")
    table.add_column("Active", justify="center")
    for target in sorted(registry.targets, key=lambda t: t.priority, reverse=True):
        table.add_row(
            target.name,
            target.base_url,
            target.category,
            str(target.priority),
            "yes" if target.active else "no",
        )
    console.print(table)


async def _discover(
    config: PipelineConfig,
    targets: List[CrawlTarget],
    limit: Optional[int],
) -> List[CrawlResult]:
    async with PipelineOrchestrator(config) as orchestrator:
        return await orchestrator.discover(targets, limit)


async def _run_with_progress(
    config: PipelineConfig,
    urls: Optional[List[str]],
    targets: List[CrawlTarget],
    limit: Optional[int],
    no_progress: bool,
) -> BatchRunStats:
    """
    Run the pipeline, with a rich progress bar unless disabled.

    Args:
        config: Pipeline configuration
        urls: Explicit URLs; None means discover them from targets
        targets: Registry targets to crawl when urls is None
        limit: Maximum URLs discovered per target
        no_progress: Whether to disable progress bars

    Returns:
        Batch run statistics
    """
    async with PipelineOrchestrator(config) as orchestrator:
        if no_progress:
            console.print("[cyan]Running pipeline...[/cyan]")
            if urls is not None:
                return await orchestrator.run(urls)
            _, stats = await orchestrator.crawl_and_run(targets, limit)
            return stats

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            if urls is None:
                discover_task = progress.add_task("[cyan]Discovering URLs...", total=None)
                crawl_results = await orchestrator.discover(targets, limit)
                urls = list(dict.fromkeys(u for result in crawl_results for u in result.urls))
                progress.update(discover_task, total=1, completed=1)

            extract_task = progress.add_task("[green]Extracting recipes...", total=len(urls))

            def on_progress(processed: int, total: int) -> None:
                progress.update(extract_task, completed=processed, total=total)

            return await orchestrator.run(urls, progress_callback=on_progress)


def _display_config_summary(config: PipelineConfig, no_progress: bool) -> None:
    """Display configuration summary before running."""
    if no_progress:
        return

    console.print("\n[bold cyan]Pipeline Configuration[/bold cyan]")
    console.print(f"  Concurrency: {config.concurrency}")
    console.print(f"  Batch Size: {config.batch_size}")
    console.print(f"  Inter-task Delay: {config.inter_task_delay_ms}ms")
    console.print(f"  Domain Pacing: {config.domain_pacing_ms}ms")
    console.print(f"  Render Fallback: {'on' if config.render_enabled else 'off'}")
    console.print()


def _display_results(stats: BatchRunStats, output_path: Path, no_progress: bool) -> None:
    """Display final results summary."""
    if no_progress:
        console.print(f"Run complete: {stats.successful}/{stats.total_processed} recipes extracted")
        console.print(f"Output saved to: {output_path}")
        return

    console.print("\n[bold green]Run Complete![/bold green]\n")

    summary_table = Table(title="Execution Summary", show_header=False)
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Value", style="green")
    summary_table.add_row("Processed", str(stats.total_processed))
    summary_table.add_row("Successful", str(stats.successful))
    summary_table.add_row("Failed", str(stats.failed))
    summary_table.add_row("Success Rate", f"{stats.success_rate * 100:.1f}%")
    summary_table.add_row("Cache Hits", str(stats.cache_hits))
    summary_table.add_row("Duration", f"{stats.duration_ms / 1000:.2f}s")
    console.print(summary_table)
    console.print()

    if stats.method_counts:
        method_table = Table(title="Extraction Methods")
        method_table.add_column("Method", style="cyan")
        method_table.add_column("Recipes", justify="right", style="green")
        for method, count in sorted(stats.method_counts.items(), key=lambda item: -item[1]):
            method_table.add_row(method, str(count))
        console.print(method_table)
        console.print()

    if stats.error_breakdown:
        error_table = Table(title="Errors")
        error_table.add_column("Type", style="yellow")
        error_table.add_column("Count", justify="right", style="red")
        for error_type, count in sorted(stats.error_breakdown.items(), key=lambda item: -item[1]):
            error_table.add_row(error_type, str(count))
        console.print(error_table)
        console.print()

    console.print(f"[bold]Output saved to:[/bold] {output_path}")
    console.print()


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
