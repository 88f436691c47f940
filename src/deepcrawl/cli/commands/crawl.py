"""CLI command for breadth-first crawling from a start URL."""

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from ...foundation.errors import CrawlerError, ErrorContext, handle_error
from ...foundation.logging import get_logger
from ...models.crawl import CrawlOptions
from ...models.jobs import Job, JobStatus
from ...services.crawl import CrawlService

console = Console()
logger = get_logger(__name__)

MONITOR_INTERVAL = 0.5  # seconds


@click.command()
@click.argument("start_url")
@click.option(
    "--strategy",
    type=click.Choice(["domain", "all"]),
    help="Follow same-domain links only, or every link"
)
@click.option(
    "--max-depth",
    type=click.IntRange(1, 10),
    help="Maximum crawl depth (the start page is depth 0)"
)
@click.option(
    "--max-pages",
    type=click.IntRange(1, 1000),
    help="Maximum number of pages to scrape"
)
@click.option(
    "--concurrency",
    type=click.IntRange(1, 20),
    help="Number of pages fetched at the same time"
)
@click.option(
    "--timeout",
    type=click.IntRange(1000, 60000),
    help="Per-page fetch timeout in milliseconds"
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    help="Write the finished job to this file as JSON"
)
@click.option(
    "--monitor",
    is_flag=True,
    help="Show crawl progress while it runs"
)
@click.pass_context
def crawl(ctx, start_url, strategy, max_depth, max_pages, concurrency, timeout, output, monitor):
    """Crawl pages breadth-first starting from START_URL.

    Unset options fall back to the configured defaults.

    Examples:

        # Crawl two levels of a site
        deepcrawl crawl https://example.com --max-depth 2

        # Follow external links too and watch progress
        deepcrawl crawl https://example.com --strategy all --monitor

        # Save every scraped page as JSON
        deepcrawl crawl https://example.com --output crawl.json
    """
    quiet = ctx.obj.get('quiet', False)
    service_factory = ctx.obj.get('service_factory', CrawlService)

    overrides = {
        "strategy": strategy,
        "max_depth": max_depth,
        "max_pages": max_pages,
        "concurrency": concurrency,
        "timeout": timeout,
    }

    try:
        job = asyncio.run(_run_crawl(service_factory, start_url, overrides, monitor, quiet))
    except CrawlerError as e:
        handle_error(e, ErrorContext(operation="crawl", url=start_url))
        raise click.ClickException(f"Crawling failed: {e.message}") from e

    if job.status != JobStatus.COMPLETED:
        raise click.ClickException(f"Crawling failed: {job.error or job.status.value}")

    _handle_crawl_output(job, output, quiet)


async def _run_crawl(
    service_factory: Callable[[], CrawlService],
    start_url: str,
    overrides: Dict[str, Any],
    monitor: bool,
    quiet: bool
) -> Job:
    """Start a crawl job and wait for it to finish."""
    async with service_factory() as service:
        options = service.build_options(start_url, **overrides)
        job_id = await service.start_crawl(options)

        if not quiet:
            console.print(f"[green]Crawl started:[/green] {job_id}")

        if monitor and not quiet:
            await _monitor_crawl_progress(service, job_id, options)

        return await service.wait_for_crawl(job_id)


async def _monitor_crawl_progress(service: CrawlService, job_id: str, options: CrawlOptions) -> None:
    """Poll the job and render a progress bar until it ends."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=False
    ) as progress:
        task = progress.add_task("Crawling pages...", total=options.max_pages)

        while True:
            snapshot = await service.get_crawl_status(job_id)
            metrics = snapshot.metrics

            progress.update(
                task,
                completed=metrics.pages_scraped,
                description=(
                    f"Crawled {metrics.pages_scraped} pages "
                    f"(depth {metrics.current_depth}, {metrics.errors} errors)"
                ),
            )

            if snapshot.status.is_terminal:
                break

            await asyncio.sleep(MONITOR_INTERVAL)


def _handle_crawl_output(job: Job, output_path: Optional[str], quiet: bool) -> None:
    """Print the crawl summary and optionally save the job as JSON."""
    if output_path:
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(job.to_dict(), indent=2), encoding="utf-8")

    if quiet:
        click.echo(job.id)
        return

    _show_crawl_summary(job)

    if output_path:
        console.print(f"[green]Results saved to:[/green] {output_path}")


def _show_crawl_summary(job: Job) -> None:
    result = job.result

    table = Table(title="Crawl Summary")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Job ID", job.id)
    table.add_row("Status", job.status.value)
    table.add_row("Start URL", escape(job.options.start_url))
    table.add_row("Strategy", job.options.strategy.value)
    table.add_row("Pages Scraped", str(job.metrics.pages_scraped))
    table.add_row("Links Discovered", str(job.metrics.links_discovered))
    table.add_row("Errors", str(job.metrics.errors))
    table.add_row("Max Depth Reached", str(job.metrics.current_depth))
    if result is not None:
        table.add_row("Duration", f"{result.duration / 1000:.2f}s")

    console.print(table)

    if result is None:
        return

    if result.pages:
        pages = Table(title="Pages")
        pages.add_column("Depth", justify="right")
        pages.add_column("URL", style="cyan")
        pages.add_column("Title")
        for page in result.pages:
            pages.add_row(str(page.depth), escape(page.url), escape(page.title))
        console.print(pages)

    if result.errors:
        errors = Table(title="Errors")
        errors.add_column("URL", style="cyan")
        errors.add_column("Error", style="red")
        for error in result.errors:
            errors.add_row(escape(error.url), escape(error.error))
        console.print(errors)
