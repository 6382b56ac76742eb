"""Kill switch and emergency reset commands."""

import click
from rich.console import Console

from ...config import CacheConfig
from ...manager import ImageCacheManager
from ...settings import SettingsStore, perform_emergency_cleanup
from ..app import build_manager, load_config

console = Console()


@click.command()
@click.pass_context
def enable(ctx: click.Context) -> None:
    """Turn caching back on after it was disabled.

    Examples:

        menu-cache enable
    """
    manager = build_manager(ctx)
    if manager.enable():
        console.print("[green]✓ Caching enabled[/green]")
    else:
        console.print("[red]✗ Caching could not be enabled (see log)[/red]")
        raise SystemExit(1)


@click.command()
@click.option("--reason", "-r", default="disabled from command line", help="Reason recorded in the log")
@click.pass_context
def disable(ctx: click.Context, reason: str) -> None:
    """Turn caching off and delete all cached images.

    Examples:

        menu-cache disable

        menu-cache disable -r "bad CDN images"
    """
    manager = build_manager(ctx)
    manager.disable(reason)
    console.print("[yellow]Caching disabled[/yellow]")


@click.command()
@click.option("--all", "reset_all", is_flag=True, help="Reset even when the cache state looks healthy")
@click.pass_context
def reset(ctx: click.Context, reset_all: bool) -> None:
    """Emergency reset of all persisted cache settings.

    Clears the metadata table, the cache version and the kill switch
    without opening the cache, then wipes the image directory. Use when the
    cache keeps failing at startup or disabled itself after corruption.

    Examples:

        menu-cache reset

        menu-cache reset --all
    """
    config = load_config(ctx)
    store = SettingsStore(config.get_state_dir())

    cleared = perform_emergency_cleanup(store)
    if not cleared and reset_all:
        store.reset()
        cleared = True

    if not cleared:
        console.print("[dim]Cache state is healthy, nothing to reset[/dim]")
        return

    _wipe_images(config, store)
    console.print("[green]✓ Cache settings reset[/green]")


def _wipe_images(config: CacheConfig, store: SettingsStore) -> None:
    # A fresh store carries no version, so opening the cache wipes it
    manager = ImageCacheManager(config, settings=store)
    manager.clear_cache(reason="emergency reset")
