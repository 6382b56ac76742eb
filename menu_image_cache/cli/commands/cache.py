"""Cache inspection and maintenance commands."""

import click
from rich.console import Console
from rich.table import Table

from ...manager import cache_key
from ...types import ImageFormat
from ...utils.formatting import format_bytes
from ..app import build_manager

console = Console()


@click.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show cache location, size and usage.

    Examples:

        menu-cache stats

        menu-cache -c menu-cache.yaml stats
    """
    manager = build_manager(ctx)
    snapshot = manager.get_stats()

    table = Table(title="Menu Image Cache")
    table.add_column("Metric", style="cyan")
    table.add_column("Value")

    color = "green" if snapshot.enabled else "red"
    table.add_row("enabled", f"[{color}]{snapshot.enabled}[/{color}]")
    table.add_row("directory", str(snapshot.cache_dir))
    table.add_row("images", str(snapshot.file_count))
    table.add_row("size", format_bytes(snapshot.total_bytes))
    table.add_row("limit", format_bytes(snapshot.max_bytes))
    table.add_row("usage", f"{snapshot.usage_ratio:.0%}")

    console.print(table)


@click.command()
@click.argument("url")
@click.pass_context
def get(ctx: click.Context, url: str) -> None:
    """Report whether an image is cached for URL.

    Exits with status 1 when the image is not cached.

    Examples:

        menu-cache get https://cdn.example.com/menu/burger.png
    """
    manager = build_manager(ctx)
    if not manager.is_enabled:
        console.print("[yellow]Caching is disabled[/yellow]")
        raise SystemExit(1)

    image = manager.get_cached_image(url)
    if image is None:
        console.print(f"[red]✗ Not cached:[/red] {url}")
        raise SystemExit(1)

    table = Table(title="Cached Image")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("url", url)
    table.add_row("size", f"{image.size[0]}x{image.size[1]}")
    table.add_row("mode", image.mode)
    for image_format in ImageFormat:
        path = manager.cache_dir / cache_key(url, image_format)
        if path.is_file():
            table.add_row("format", image_format.name)
            table.add_row("file", path.name)
            table.add_row("stored", format_bytes(path.stat().st_size))
    console.print(table)


@click.command()
@click.pass_context
def cleanup(ctx: click.Context) -> None:
    """Evict least recently used images if over the size limit.

    Examples:

        menu-cache cleanup
    """
    manager = build_manager(ctx)
    deleted = manager.cleanup_if_needed()
    if deleted:
        console.print(f"[green]✓ Removed {deleted} images[/green] ({format_bytes(manager.get_cache_size())} remaining)")
    else:
        console.print("[dim]Cache is within its size limit[/dim]")


@click.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear(ctx: click.Context, yes: bool) -> None:
    """Delete every cached image and all metadata.

    Examples:

        menu-cache clear

        menu-cache clear -y
    """
    if not yes:
        click.confirm("Delete all cached menu images?", abort=True)

    manager = build_manager(ctx)
    count = manager.get_cached_image_count()
    manager.clear_cache()
    console.print(f"[green]✓ Cleared {count} cached images[/green]")
