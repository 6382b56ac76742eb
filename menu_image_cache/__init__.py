"""
Menu Image Cache — persistent image cache for restaurant menu apps.

Keeps menu category icons and item photos on local disk so menus render
without waiting on the network. Images with transparency are stored as PNG,
opaque ones as JPEG; the cache is bounded by size with LRU eviction and
disables itself when its local state is corrupted.

Basic Usage:
    from menu_image_cache import ImageCacheManager, ImageMetadata

    manager = ImageCacheManager()
    manager.preload_menu_items_sync([
        (url, ImageMetadata(url=url, timestamp=item.updated_at))
        for url, item in menu.items()
    ])
    image = manager.get_cached_image(url)  # PIL.Image or None
    manager.close_sync()

Event-Driven Usage:
    from menu_image_cache import ImageCacheManager, ImageCachedEvent

    manager = ImageCacheManager.from_config("menu-cache.yaml")

    @manager.on(ImageCachedEvent)
    def on_cached(event):
        print(f"{event.url}: {event.savings_percent:.0f}% smaller")

Async Usage:
    import asyncio
    from menu_image_cache import ImageCacheManager

    async def main():
        manager = ImageCacheManager()
        await manager.preload_category_icons(icons)
        loaded = await manager.preload_menu_items(items, batch_size=10)
        await manager.close()

    asyncio.run(main())
"""

__version__ = "1.0.0"

# Configuration
from .config import CacheConfig

# Codec
from .codec import choose_format, decode_image, encode_image

# Event system
from .events import (
    CacheCleanupEvent,
    CacheClearedEvent,
    CacheDisabledEvent,
    CacheEvent,
    DownloadFailedEvent,
    EventEmitter,
    ImageCachedEvent,
    PreloadCompleteEvent,
)

# Exceptions
from .exceptions import (
    FetchError,
    ImageCacheError,
    ImageDecodeError,
    ImageEncodeError,
    MetadataCorruptError,
)

# Fetchers
from .fetcher import Fetcher, HttpxFetcher

# Main manager class
from .manager import ImageCacheManager, cache_key

# Persisted state
from .metadata import MetadataStore
from .settings import SettingsStore, perform_emergency_cleanup

# Type definitions
from .types import CacheStats, ImageFormat, ImageMetadata, PreloadItem, PreloadKind

__all__ = [
    # Version
    "__version__",
    # Main class
    "ImageCacheManager",
    "cache_key",
    # Configuration
    "CacheConfig",
    # Types
    "CacheStats",
    "ImageFormat",
    "ImageMetadata",
    "PreloadItem",
    "PreloadKind",
    # Events
    "CacheCleanupEvent",
    "CacheClearedEvent",
    "CacheDisabledEvent",
    "CacheEvent",
    "DownloadFailedEvent",
    "EventEmitter",
    "ImageCachedEvent",
    "PreloadCompleteEvent",
    # Exceptions
    "FetchError",
    "ImageCacheError",
    "ImageDecodeError",
    "ImageEncodeError",
    "MetadataCorruptError",
    # Fetchers
    "Fetcher",
    "HttpxFetcher",
    # Codec
    "choose_format",
    "decode_image",
    "encode_image",
    # Persisted state
    "MetadataStore",
    "SettingsStore",
    "perform_emergency_cleanup",
]
