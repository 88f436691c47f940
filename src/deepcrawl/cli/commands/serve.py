"""CLI command for running the HTTP API."""

import click
import uvicorn
from rich.console import Console

from ...api.app import create_app
from ...foundation.config import get_config
from ...foundation.logging import get_logger

console = Console()
logger = get_logger(__name__)


@click.command()
@click.option(
    "--host",
    help="Interface to bind (default: api.host from configuration)"
)
@click.option(
    "--port",
    type=click.IntRange(1, 65535),
    help="Port to listen on (default: api.port from configuration)"
)
@click.pass_context
def serve(ctx, host, port):
    """Run the deepcrawl HTTP API.

    Examples:

        deepcrawl serve

        deepcrawl serve --host 0.0.0.0 --port 8080
    """
    quiet = ctx.obj.get('quiet', False)
    config = get_config()

    host = host or config.api.host
    port = port or config.api.port

    app = create_app(config=config)
    logger.info(f"Starting API server on {host}:{port}")

    if not quiet:
        console.print(f"[green]Serving deepcrawl API on[/green] http://{host}:{port}")

    # log_config=None keeps the handlers installed by the CLI
    uvicorn.run(app, host=host, port=port, log_config=None)
