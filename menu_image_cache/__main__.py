"""Allow ``python -m menu_image_cache``."""

from .cli import cli

if __name__ == "__main__":
    cli()
