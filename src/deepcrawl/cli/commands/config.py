"""CLI commands for managing configuration."""

import json
from pathlib import Path
from typing import Any, Dict

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from ...foundation.config import get_config_manager
from ...foundation.errors import ErrorContext, handle_error
from ...foundation.logging import get_logger

console = Console()
logger = get_logger(__name__)


@click.group()
def config():
    """Inspect and initialise configuration.

    Settings are merged from /etc/deepcrawl/config.yaml,
    ~/.deepcrawl/config.yaml (or DEEPCRAWL_CONFIG_PATH), the --config file
    and DEEPCRAWL_<SECTION>__<KEY> environment variables, in that order.

    Examples:

        # Show the merged configuration
        deepcrawl config show

        # Show one section as JSON
        deepcrawl config show --section crawl --format json

        # Write a default configuration file
        deepcrawl config init
    """


@config.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["yaml", "json", "table"]),
    default="table",
    show_default=True,
    help="Output format"
)
@click.option(
    "--section",
    help="Show only specific configuration section"
)
def show(output_format, section):
    """Show current configuration."""
    config_manager = get_config_manager()

    if section:
        config_data = config_manager.get_section(section)
        if config_data is None:
            raise click.ClickException(f"Configuration section '{section}' not found")
    else:
        config_data = config_manager.get_all_settings()

    if output_format == "json":
        click.echo(json.dumps(config_data, indent=2, default=str))
    elif output_format == "yaml":
        click.echo(yaml.safe_dump(config_data, default_flow_style=False), nl=False)
    elif section:
        _show_config_section(section, config_data)
    else:
        _show_config_tree(config_data)


@config.command()
@click.option(
    "--path",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Configuration file path (default: ~/.deepcrawl/config.yaml)"
)
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing configuration file"
)
@click.pass_context
def init(ctx, config_path, force):
    """Write a configuration file with default values."""
    quiet = ctx.obj.get('quiet', False)
    config_manager = get_config_manager()

    config_file = Path(config_path) if config_path else config_manager.get_default_config_path()

    if config_file.exists() and not force:
        raise click.ClickException(
            f"Configuration file already exists: {config_file}. Use --force to overwrite."
        )

    try:
        created = config_manager.create_default_config(config_file)
    except OSError as e:
        handle_error(e, ErrorContext(operation="config_init", metadata={"path": str(config_file)}))
        raise click.ClickException(f"Failed to initialize configuration: {e}") from e

    if quiet:
        click.echo(str(created))
    else:
        console.print(f"[green]Default configuration created:[/green] {created}")


@config.command()
def validate():
    """Validate the merged configuration."""
    result = get_config_manager().validate_config()

    for warning in result["warnings"]:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")

    if not result["valid"]:
        for error in result["errors"]:
            console.print(f"[red]Error:[/red] {escape(error)}")
        raise click.ClickException("Configuration is invalid")

    console.print("[green]Configuration is valid[/green]")


def _show_config_tree(config_data: Dict[str, Any]) -> None:
    """Show configuration as a tree structure."""
    tree = Tree("Configuration")

    def add_dict_to_tree(parent_node, data):
        for key, value in data.items():
            if isinstance(value, dict):
                add_dict_to_tree(parent_node.add(f"[bold cyan]{key}[/bold cyan]"), value)
            elif isinstance(value, str):
                parent_node.add(f'{key}: "{escape(value)}"')
            elif isinstance(value, bool):
                parent_node.add(f"{key}: [green]{value}[/green]")
            elif isinstance(value, (int, float)):
                parent_node.add(f"{key}: [yellow]{value}[/yellow]")
            else:
                parent_node.add(f"{key}: {escape(str(value))}")

    add_dict_to_tree(tree, config_data)
    console.print(tree)


def _show_config_section(section_name: str, config_data: Dict[str, Any]) -> None:
    """Show a specific configuration section as a table."""
    table = Table(title=f"Configuration Section: {section_name}")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Type", style="yellow")

    for key, value in config_data.items():
        value_str = json.dumps(value) if isinstance(value, (list, dict)) else str(value)
        table.add_row(key, escape(value_str), type(value).__name__)

    console.print(table)
