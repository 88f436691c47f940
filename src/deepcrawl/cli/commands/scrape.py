"""CLI command for scraping a single page."""

import asyncio
import json
from pathlib import Path
from typing import Callable, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ...foundation.errors import CrawlerError, ErrorContext, handle_error
from ...foundation.logging import get_logger
from ...models.crawl import PageData
from ...services.crawl import CrawlService

console = Console()
logger = get_logger(__name__)

TEXT_PREVIEW_LENGTH = 500


@click.command()
@click.argument("url")
@click.option(
    "--timeout",
    type=click.IntRange(1000, 60000),
    help="Fetch timeout in milliseconds"
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    help="Write the scraped page to this file as JSON"
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Output format"
)
@click.pass_context
def scrape(ctx, url, timeout, output, output_format):
    """Scrape a single page without following its links.

    Examples:

        # Show title, links and a text preview
        deepcrawl scrape https://example.com

        # Print the page as JSON
        deepcrawl scrape https://example.com --format json
    """
    quiet = ctx.obj.get('quiet', False)
    service_factory = ctx.obj.get('service_factory', CrawlService)

    try:
        page = asyncio.run(_run_scrape(service_factory, url, timeout))
    except CrawlerError as e:
        handle_error(e, ErrorContext(operation="scrape", url=url))
        raise click.ClickException(f"Scraping failed: {e.message}") from e

    _handle_scrape_output(page, output, output_format, quiet)


async def _run_scrape(
    service_factory: Callable[[], CrawlService],
    url: str,
    timeout: Optional[int]
) -> PageData:
    async with service_factory() as service:
        return await service.scrape(url, timeout=timeout)


def _handle_scrape_output(
    page: PageData,
    output_path: Optional[str],
    output_format: str,
    quiet: bool
) -> None:
    """Print and optionally save a scraped page."""
    if output_path:
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(page.to_dict(), indent=2), encoding="utf-8")
        if not quiet:
            console.print(f"[green]Page saved to:[/green] {output_path}")
        return

    if output_format == "json":
        click.echo(json.dumps(page.to_dict(), indent=2))
        return

    if quiet:
        click.echo(page.title)
        return

    _show_page(page)


def _show_page(page: PageData) -> None:
    table = Table(title="Scraped Page")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("URL", escape(page.url))
    table.add_row("Title", escape(page.title))
    table.add_row("Links", str(len(page.links)))
    table.add_row("Text Length", str(len(page.text)))
    if page.meta and page.meta.description:
        table.add_row("Description", escape(page.meta.description))
    if page.meta and page.meta.keywords:
        table.add_row("Keywords", escape(", ".join(page.meta.keywords)))

    console.print(table)

    preview = page.text[:TEXT_PREVIEW_LENGTH]
    if len(page.text) > TEXT_PREVIEW_LENGTH:
        preview += "..."
    if preview:
        console.print("\n[bold]Text:[/bold]")
        console.print(preview, markup=False, highlight=False)
