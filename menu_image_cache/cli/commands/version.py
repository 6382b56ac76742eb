"""Version command."""

import platform

import click
import PIL
from rich.console import Console
from rich.table import Table

from ... import __version__
from ...config import CacheConfig

console = Console()


@click.command()
@click.option("--verbose", "-v", "details", is_flag=True, help="Also show runtime and cache format versions")
def version(details: bool) -> None:
    """Show Menu Image Cache version.

    Examples:

        menu-cache version

        menu-cache version -v
    """
    console.print(f"[bold]Menu Image Cache[/bold] v{__version__}")

    if details:
        console.print()
        table = Table(title="Runtime")
        table.add_column("Component", style="cyan")
        table.add_column("Version")
        table.add_row("python", platform.python_version())
        table.add_row("pillow", PIL.__version__)
        table.add_row("cache format", CacheConfig().cache_version)
        console.print(table)
