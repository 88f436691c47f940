"""CLI command for scraping many pages at once."""

import asyncio
import json
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ...foundation.errors import CrawlerError, ErrorContext, handle_error
from ...foundation.logging import get_logger
from ...models.scrape import BatchScrapeResult
from ...services.crawl import CrawlService

console = Console()
logger = get_logger(__name__)


@click.command()
@click.argument("urls", nargs=-1, required=False)
@click.option(
    "--file",
    "-f",
    "file_path",
    type=click.Path(exists=True, dir_okay=False),
    help="File with URLs (one per line, or a JSON list)"
)
@click.option(
    "--concurrency",
    type=click.IntRange(1, 20),
    help="Number of pages scraped at the same time"
)
@click.option(
    "--timeout",
    type=click.IntRange(1000, 60000),
    help="Fetch timeout in milliseconds"
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    help="Write the batch result to this file as JSON"
)
@click.pass_context
def batch(ctx, urls, file_path, concurrency, timeout, output):
    """Scrape a list of URLs without following links.

    URLs can be given as arguments, in a file, or both.

    Examples:

        # Scrape two pages
        deepcrawl batch https://example.com https://example.org

        # Scrape URLs from a file, three at a time
        deepcrawl batch --file urls.txt --concurrency 3
    """
    quiet = ctx.obj.get('quiet', False)
    service_factory = ctx.obj.get('service_factory', CrawlService)

    url_list = _get_urls_from_input(urls, file_path)
    if not url_list:
        raise click.UsageError("No URLs provided. Use --file or provide URLs as arguments.")

    if not quiet:
        console.print(f"Scraping {len(url_list)} URLs...")

    try:
        result = asyncio.run(_run_batch(service_factory, url_list, concurrency, timeout))
    except CrawlerError as e:
        handle_error(e, ErrorContext(operation="scrape_batch"))
        raise click.ClickException(f"Batch scraping failed: {e.message}") from e

    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        if not quiet:
            console.print(f"[green]Results saved to:[/green] {output}")

    if not quiet:
        _show_batch_summary(result)


def _get_urls_from_input(urls: Sequence[str], file_path: Optional[str]) -> List[str]:
    """Collect URLs from arguments and an optional file, without duplicates."""
    url_list = list(urls)

    if file_path:
        content = Path(file_path).read_text(encoding="utf-8").strip()

        if file_path.endswith('.json'):
            data = json.loads(content) if content else []
            if isinstance(data, dict):
                data = data.get('urls', [])
            url_list.extend(str(url) for url in data)
        else:
            for line in content.splitlines():
                line = line.strip()
                if line and not line.startswith('#'):
                    url_list.append(line)

    # dict.fromkeys keeps first-seen order
    return list(dict.fromkeys(url_list))


async def _run_batch(
    service_factory: Callable[[], CrawlService],
    urls: List[str],
    concurrency: Optional[int],
    timeout: Optional[int]
) -> BatchScrapeResult:
    async with service_factory() as service:
        return await service.scrape_batch(urls, concurrency=concurrency, timeout=timeout)


def _show_batch_summary(result: BatchScrapeResult) -> None:
    summary = Table(title="Batch Summary")
    summary.add_column("Property", style="cyan")
    summary.add_column("Value", style="green")

    summary.add_row("Total", str(result.stats.total))
    summary.add_row("Successful", str(result.stats.success))
    summary.add_row("Failed", str(result.stats.failed))
    summary.add_row("Duration", f"{result.stats.duration} ms")
    console.print(summary)

    if result.results:
        pages = Table(title="Pages")
        pages.add_column("URL", style="cyan")
        pages.add_column("Title")
        pages.add_column("Links", justify="right")
        for page in result.results:
            pages.add_row(escape(page.url), escape(page.title), str(len(page.links)))
        console.print(pages)

    if result.errors:
        errors = Table(title="Errors")
        errors.add_column("URL", style="cyan")
        errors.add_column("Error", style="red")
        for error in result.errors:
            errors.add_row(escape(error.url), escape(error.error))
        console.print(errors)
