"""Main CLI entry point for deepcrawl."""

import sys
from typing import Optional

import click
from rich.console import Console
from rich.traceback import install

from ..foundation.config import ConfigManager, set_config_manager
from ..foundation.errors import CrawlerError
from ..foundation.logging import setup_logging
from ..services.crawl import CrawlService
from ..version import __version__
from .commands import batch, config, crawl, scrape, serve

install(show_locals=False)

console = Console()


def setup_cli_logging(verbose: int, use_colors: bool = True) -> None:
    """Setup logging based on verbosity level.

    Args:
        verbose: Verbosity level (0-3)
        use_colors: Colour the console handler
    """
    level_map = {
        0: "WARNING",
        1: "INFO",
        2: "DEBUG",
        3: "DEBUG"
    }

    setup_logging(level=level_map.get(verbose, "DEBUG"), use_colors=use_colors)


def handle_cli_error(error: Exception, debug: bool = False) -> int:
    """Print an error raised outside click's own handling.

    Args:
        error: Exception that occurred
        debug: Whether to show the traceback

    Returns:
        Exit code
    """
    if isinstance(error, CrawlerError):
        console.print(f"[red]Error:[/red] {error.message}")
        if error.details:
            console.print(f"Details: {error.details}")
        return 1
    elif isinstance(error, click.ClickException):
        error.show()
        return error.exit_code
    else:
        if debug:
            console.print_exception()
        else:
            console.print(f"[red]Unexpected error:[/red] {error}")
            console.print("Use --verbose for more details")
        return 1


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path"
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (use -v, -vv)"
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    help="Suppress output except errors"
)
@click.option(
    "--no-color",
    is_flag=True,
    help="Disable colored output"
)
@click.version_option(version=__version__, prog_name="deepcrawl")
@click.pass_context
def cli(ctx, config_path, verbose, quiet, no_color):
    """deepcrawl - breadth-first web scraping and crawling.

    Examples:

        # Scrape a single page
        deepcrawl scrape https://example.com

        # Crawl a site two levels deep
        deepcrawl crawl https://example.com --max-depth 2 --monitor

        # Scrape URLs listed in a file
        deepcrawl batch --file urls.txt

        # Run the HTTP API
        deepcrawl serve --port 3000
    """
    ctx.ensure_object(dict)

    if quiet:
        verbose = 0

    manager = ConfigManager(config_path)
    manager.load_hierarchical()
    set_config_manager(manager)

    setup_cli_logging(verbose, use_colors=not no_color)

    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet
    ctx.obj['no_color'] = no_color
    ctx.obj['config_path'] = config_path
    ctx.obj.setdefault('service_factory', CrawlService)

    if no_color:
        console.no_color = True


cli.add_command(scrape)
cli.add_command(batch)
cli.add_command(crawl)
cli.add_command(serve)
cli.add_command(config)


def main(args: Optional[list] = None, standalone_mode: bool = True) -> int:
    """Main entry point for the CLI.

    Args:
        args: Command line arguments (defaults to sys.argv)
        standalone_mode: Whether to run in standalone mode

    Returns:
        Exit code
    """
    if args is None:
        args = sys.argv[1:]

    try:
        result = cli(args, standalone_mode=standalone_mode)
        return result if isinstance(result, int) else 0
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user.[/yellow]")
        return 130
    except Exception as e:
        debug = any(arg in ("--verbose", "-v", "-vv", "-vvv") for arg in args)
        return handle_cli_error(e, debug)


if __name__ == "__main__":
    sys.exit(main())
