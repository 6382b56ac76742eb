"""Menu Image Cache CLI application."""

import os
from dataclasses import replace
from pathlib import Path

import click
import yaml
from rich.console import Console

from .. import __version__
from ..config import CacheConfig
from ..manager import ImageCacheManager
from ..utils.logging import setup_logging

console = Console()


def find_config() -> str | None:
    """
    Find config file using standard priority order:

    1. MENU_CACHE_CONFIG environment variable
    2. .menu-cache.yaml in current directory (project config)
    3. ~/.config/menu-image-cache/config.yaml (user config)

    Returns None if no config found.
    """
    # 1. Environment variable (highest priority)
    env_config = os.environ.get("MENU_CACHE_CONFIG")
    if env_config:
        path = Path(env_config)
        if path.exists():
            return str(path)

    # 2. Project config in current directory
    project_config = Path.cwd() / ".menu-cache.yaml"
    if project_config.exists():
        return str(project_config)

    # 3. User config in ~/.config/menu-image-cache/
    user_config = Path.home() / ".config" / "menu-image-cache" / "config.yaml"
    if user_config.exists():
        return str(user_config)

    return None


def load_config(ctx: click.Context) -> CacheConfig:
    """Config for this invocation: the resolved file, or defaults."""
    config_path = ctx.obj.get("config")
    try:
        config = CacheConfig.load(config_path) if config_path else CacheConfig()
        if ctx.obj.get("cache_dir"):
            # replace() re-runs validation
            config = replace(config, cache_dir=ctx.obj["cache_dir"])
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid config {config_path or 'options'}:[/red]")
        console.print(f"  {e}", markup=False)
        raise SystemExit(1)

    if ctx.obj.get("debug"):
        config.log_level = "DEBUG"
    elif not ctx.obj.get("verbose"):
        config.log_level = "WARNING"
    setup_logging(config)
    return config


def build_manager(ctx: click.Context) -> ImageCacheManager:
    """Create a manager for a one-shot command."""
    return ImageCacheManager(load_config(ctx))


@click.group()
@click.version_option(version=__version__, prog_name="menu-cache")
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option("--no-config", is_flag=True, help="Disable config auto-loading")
@click.option("--cache-dir", "-d", type=click.Path(file_okay=False), help="Image cache directory")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--debug", is_flag=True, help="Debug mode")
@click.pass_context
def cli(ctx: click.Context, config: str, no_config: bool, cache_dir: str, verbose: bool, debug: bool) -> None:
    """Menu Image Cache — inspect and manage the menu image cache.

    Config file locations (in priority order):

        1. -c/--config PATH (explicit)

        2. MENU_CACHE_CONFIG env var

        3. .menu-cache.yaml (project config)

        4. ~/.config/menu-image-cache/config.yaml (user config)

    Examples:

        menu-cache stats

        menu-cache preload items.yaml --batch-size 5

        menu-cache get https://cdn.example.com/menu/burger.png
    """
    ctx.ensure_object(dict)

    # Determine config file
    if no_config:
        config = None
    elif config is None:
        config = find_config()
        if config and verbose:
            console.print(f"[dim]Using config: {config}[/dim]")

    ctx.obj["config"] = config
    ctx.obj["cache_dir"] = cache_dir
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug


# Import and register commands
from .commands import cache, preload, switch, version

cli.add_command(cache.stats)
cli.add_command(cache.get)
cli.add_command(cache.cleanup)
cli.add_command(cache.clear)
cli.add_command(preload.preload)
cli.add_command(switch.enable)
cli.add_command(switch.disable)
cli.add_command(switch.reset)
cli.add_command(version.version)
