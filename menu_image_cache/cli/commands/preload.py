"""Preload command."""

import asyncio
from datetime import date, datetime
from typing import Any, List

import click
import yaml
from rich.console import Console

from ...manager import ImageCacheManager
from ...types import ImageMetadata, PreloadItem
from ...utils.formatting import format_bytes
from ..app import build_manager

console = Console()


def load_items(path: str) -> List[PreloadItem]:
    """
    Read preload entries from a YAML or JSON file.

    The file holds a list whose entries are either a URL string or a mapping
    with ``url`` and an optional ``timestamp`` (epoch seconds or a date).
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or []

    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        raise ValueError("expected a list of items")

    items = []
    for entry in data:
        if isinstance(entry, str):
            entry = {"url": entry}
        if not isinstance(entry, dict) or not entry.get("url"):
            raise ValueError(f"invalid item: {entry!r}")
        url = str(entry["url"])
        items.append(PreloadItem(url, ImageMetadata(url=url, timestamp=_to_timestamp(entry.get("timestamp", 0)))))
    return items


def _to_timestamp(value: Any) -> float:
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).timestamp()
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"invalid timestamp: {value!r}")
    return float(value)


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--kind", "-k",
    type=click.Choice(["icons", "items"]),
    default="items",
    help="Category icons (all at once) or menu items (batched)",
)
@click.option("--batch-size", "-b", type=click.IntRange(min=1), default=None, help="Images per batch (items only)")
@click.pass_context
def preload(ctx: click.Context, file: str, kind: str, batch_size: int) -> None:
    """Download and cache the images listed in FILE.

    FILE is a YAML or JSON list of URLs or {url, timestamp} entries.

    Examples:

        menu-cache preload items.yaml

        menu-cache preload icons.json --kind icons

        menu-cache preload items.yaml -b 5
    """
    try:
        items = load_items(file)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Cannot read {file}: {e}[/red]")
        raise SystemExit(1)

    manager = build_manager(ctx)
    if not manager.is_enabled:
        console.print("[yellow]Caching is disabled, nothing to do[/yellow]")
        raise SystemExit(1)

    loaded = asyncio.run(_preload(manager, items, kind, batch_size))
    console.print(
        f"[green]✓ Cached {loaded} of {len(items)} images[/green] "
        f"({format_bytes(manager.get_cache_size())} on disk)"
    )


async def _preload(manager: ImageCacheManager, items: List[PreloadItem], kind: str, batch_size: int) -> int:
    try:
        if kind == "icons":
            return await manager.preload_category_icons(items)
        return await manager.preload_menu_items(items, batch_size=batch_size)
    finally:
        await manager.close()
