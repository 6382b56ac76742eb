"""
Image cache manager — persistent cache for menu category icons and item photos.

Serves decoded images synchronously from memory or disk and fills the cache
asynchronously from remote URLs:
- PNG for images with transparency, JPEG (fixed quality) for opaque ones
- Bounded disk usage with least-recently-used eviction
- One download per URL no matter how many callers ask for it
- Self-healing: corrupted local state disables and wipes the cache instead of
  failing the caller

The cache is a pure performance optimization. Every public operation has a
safe fallback (None, False, 0) and never raises.
"""

import asyncio
import hashlib
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set

from PIL import Image

from .codec import decode_image, encode_image
from .config import CacheConfig
from .events import (
    CacheCleanupEvent,
    CacheClearedEvent,
    CacheDisabledEvent,
    DownloadFailedEvent,
    EventEmitter,
    ImageCachedEvent,
    PreloadCompleteEvent,
)
from .exceptions import FetchError, ImageDecodeError, ImageEncodeError, MetadataCorruptError
from .fetcher import Fetcher, HttpxFetcher
from .lru import DiskIndex, MemoryCache
from .metadata import MetadataStore
from .settings import CACHE_VERSION_KEY, CACHING_ENABLED_KEY, SettingsStore
from .types import CacheStats, ImageFormat, ImageMetadata, PreloadInput, PreloadItem, PreloadKind
from .utils import metrics
from .utils.formatting import format_bytes
from .utils.metrics import CacheMetrics

logger = logging.getLogger(__name__)

# Disk lookup order for get_cached_image
_LOOKUP_FORMATS = (ImageFormat.PNG, ImageFormat.JPEG)


def cache_key(url: str, image_format: ImageFormat) -> str:
    """File name of a cached image: SHA-256 of the URL plus the format extension."""
    digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
    return f"{digest}.{image_format.extension}"


def _short_name(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1] or url


def _normalize_items(items: Iterable[PreloadInput]) -> List[PreloadItem]:
    return [PreloadItem(url, metadata) for url, metadata in items]


class ImageCacheManager(EventEmitter):
    """
    Two-level (memory + disk) image cache.

    Usage (async):
        manager = ImageCacheManager(CacheConfig.load("menu-cache.yaml"))
        await manager.preload_category_icons(icons)
        loaded = await manager.preload_menu_items(items, batch_size=10)
        image = manager.get_cached_image(url)
        await manager.close()

    Usage (sync):
        manager = ImageCacheManager(config)
        manager.preload_menu_items_sync(items)
        manager.close_sync()

    Usage (event-driven):
        @manager.on(ImageCachedEvent)
        def on_cached(event):
            refresh_row(event.url)

    Events for downloads are emitted from worker threads.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        fetcher: Optional[Fetcher] = None,
        settings: Optional[SettingsStore] = None,
    ):
        """
        Initialize the cache and run the startup checks.

        Args:
            config: Cache configuration (defaults if None)
            fetcher: Byte fetcher; an HttpxFetcher is created if None
            settings: Persisted settings store; defaults to the config's state dir
        """
        super().__init__()  # Initialize EventEmitter

        self._config = config or CacheConfig()
        self._cache_dir = self._config.get_cache_dir()
        self._settings = settings or SettingsStore(self._config.get_state_dir())
        self._metadata = MetadataStore(self._settings)
        self._owns_fetcher = fetcher is None
        self._fetcher: Fetcher = fetcher or HttpxFetcher(timeout=self._config.download_timeout)

        self._memory: MemoryCache[Image.Image] = MemoryCache(self._config.memory_cache_limit)
        self._index = DiskIndex()
        self._metrics = CacheMetrics()

        # In-flight downloads: url -> task. Tasks in _storing are past the
        # network stage and are left alone by cancel_all_downloads().
        self._downloads: Dict[str, asyncio.Task] = {}
        self._storing: Set[asyncio.Task] = set()
        self._downloads_lock = threading.Lock()

        self._semaphore: Optional[asyncio.Semaphore] = None
        self._semaphore_loop: Optional[asyncio.AbstractEventLoop] = None
        self._sync_loop: Optional[asyncio.AbstractEventLoop] = None
        self._sync_loop_lock = threading.Lock()

        self._enabled = self._settings.get_bool(CACHING_ENABLED_KEY, True)
        if not self._enabled:
            logger.warning("Menu image caching disabled by kill switch")
            return

        self._initialize()

    @classmethod
    def from_config(cls, config_path: str, fetcher: Optional[Fetcher] = None) -> "ImageCacheManager":
        """Create a manager from a YAML configuration file."""
        return cls(CacheConfig.load(config_path), fetcher=fetcher)

    # === Properties ===

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def metrics(self) -> CacheMetrics:
        return self._metrics

    # === Lifecycle ===

    def _initialize(self) -> None:
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error(f"Cache initialization failed, disabling caching: {exc}")
            self.disable(f"cache directory unavailable: {exc}")
            return

        logger.debug(f"Menu image cache initialized at: {self._cache_dir}")
        self._validate_cache_version()
        self._validate_metadata()
        if not self._enabled:
            return

        self._index.rebuild(self._cache_dir)
        self.cleanup_if_needed()

    def _validate_cache_version(self) -> None:
        stored = self._settings.get(CACHE_VERSION_KEY)
        current = self._config.cache_version
        if stored == current:
            logger.debug(f"Cache version valid: {current}")
            return

        logger.info(f"Cache version mismatch (stored: {stored or 'none'}, current: {current}), clearing cache")
        self.clear_cache(reason="version mismatch")
        self._settings.set(CACHE_VERSION_KEY, current)

    def _validate_metadata(self) -> None:
        try:
            self._metadata.load()
        except MetadataCorruptError as exc:
            self._handle_corrupt_metadata(exc)

    def _handle_corrupt_metadata(self, exc: MetadataCorruptError) -> None:
        logger.warning(f"Corrupted metadata detected, clearing cache: {exc}")
        self._metadata.clear()
        self._settings.remove(CACHE_VERSION_KEY)
        self.disable("corrupted metadata")

    def disable(self, reason: str) -> None:
        """
        Turn the persisted kill switch off and wipe all cache state.

        Every operation becomes a no-op (get_cached_image returns None,
        needs_update returns True, preloads load nothing) until enable().
        """
        logger.warning(f"Disabling menu image cache: {reason}")
        self._settings.set(CACHING_ENABLED_KEY, False)
        self._enabled = False
        self.clear_cache(reason=f"disabled: {reason}")
        self.emit(CacheDisabledEvent(reason=reason))

    def enable(self) -> bool:
        """
        Turn the persisted kill switch back on and re-run the startup checks.

        Returns:
            True if the cache is enabled afterwards
        """
        self._settings.set(CACHING_ENABLED_KEY, True)
        if not self._enabled:
            logger.info("Re-enabling menu image cache")
            self._enabled = True
            self._initialize()
        return self._enabled

    async def close(self) -> None:
        """Cancel downloads and release the HTTP client if we created it."""
        self.cancel_all_downloads()
        if self._owns_fetcher and isinstance(self._fetcher, HttpxFetcher):
            await self._fetcher.aclose()

    # === Lookup ===

    def get_cached_image(self, url: str) -> Optional[Image.Image]:
        """
        Return the cached image for ``url`` or None.

        Memory first, then disk (PNG, then JPEG). Never touches the network;
        unreadable files count as a miss.
        """
        if not self._enabled:
            return None

        image = self._memory.get(url)
        if image is not None:
            self._metrics.inc(metrics.MEMORY_HITS)
            for image_format in _LOOKUP_FORMATS:
                self._index.touch(cache_key(url, image_format))
            return image

        for image_format in _LOOKUP_FORMATS:
            name = cache_key(url, image_format)
            path = self._cache_dir / name
            try:
                data = path.read_bytes()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning(f"Error reading cached image {name}: {exc}")
                continue

            try:
                image = decode_image(data)
            except ImageDecodeError as exc:
                logger.warning(f"Dropping undecodable cache file {name}: {exc}")
                if self._delete_entry(name):
                    self._prune_metadata({name})
                continue

            self._memory.put(url, image)
            self._touch_entry(name, len(data))
            self._metrics.inc(metrics.DISK_HITS)
            return image

        self._metrics.inc(metrics.MISSES)
        return None

    def is_cached(self, url: str) -> bool:
        """True if an entry for ``url`` exists in memory or on disk (no decoding)."""
        if not self._enabled:
            return False
        if url in self._memory:
            return True
        return any((self._cache_dir / cache_key(url, fmt)).is_file() for fmt in _LOOKUP_FORMATS)

    def needs_update(self, url: str, metadata: ImageMetadata) -> bool:
        """
        Staleness check: True if ``url`` should be (re)downloaded.

        True when caching is disabled, when no metadata is cached for the
        URL, when the cached URL differs, or when ``metadata.timestamp`` is
        strictly newer than the cached one. Content changes without a newer
        timestamp are not detected.
        """
        if not self._enabled:
            return True
        try:
            cached = self._metadata.get(url)
        except MetadataCorruptError as exc:
            self._handle_corrupt_metadata(exc)
            return True
        return self._is_stale(cached, url, metadata)

    def _load_metadata_table(self) -> Dict[str, ImageMetadata]:
        try:
            return self._metadata.load()
        except MetadataCorruptError as exc:
            self._handle_corrupt_metadata(exc)
            return {}

    @staticmethod
    def _is_stale(cached: Optional[ImageMetadata], url: str, metadata: ImageMetadata) -> bool:
        if cached is None:
            return True
        return cached.url != url or cached.timestamp < metadata.timestamp

    def _pending_items(self, items: List[PreloadItem]) -> List[PreloadItem]:
        table = self._load_metadata_table()
        if not self._enabled:
            return []
        return [
            item for item in items
            if not self.is_cached(item.url)
            or self._is_stale(table.get(item.url), item.url, item.metadata)
        ]

    # === Download ===

    async def fetch_image(self, url: str, metadata: ImageMetadata) -> Optional[Image.Image]:
        """
        Download, compress and cache one image.

        Concurrent calls for the same URL share a single download and all
        receive its result. Returns None on any failure or cancellation.
        """
        if not self._enabled:
            return None

        task = self._start_download(url, metadata)
        await asyncio.wait({task})

        if task.cancelled():
            return None
        exc = task.exception()
        if exc is not None:
            logger.error(f"Unexpected error caching {url}: {exc!r}")
            return None
        return task.result()

    def _start_download(self, url: str, metadata: ImageMetadata) -> asyncio.Task:
        with self._downloads_lock:
            task = self._downloads.get(url)
            if task is not None and not task.done():
                self._metrics.inc(metrics.DEDUPLICATED)
                logger.debug(f"Already downloading: {url}")
                return task

            task = asyncio.get_running_loop().create_task(self._download_and_cache(url, metadata))
            self._downloads[url] = task

        task.add_done_callback(lambda t: self._forget_download(url, t))
        return task

    def _forget_download(self, url: str, task: asyncio.Task) -> None:
        with self._downloads_lock:
            if self._downloads.get(url) is task:
                del self._downloads[url]
            self._storing.discard(task)

    def _get_semaphore(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self._config.max_concurrent_downloads)
            self._semaphore_loop = loop
        return self._semaphore

    async def _download_and_cache(self, url: str, metadata: ImageMetadata) -> Optional[Image.Image]:
        try:
            async with self._get_semaphore():
                data = await self._fetcher.fetch(url)
        except FetchError as exc:
            return self._download_failed(url, str(exc))
        except asyncio.CancelledError:
            logger.debug(f"Cancelled download: {url}")
            raise
        except Exception as exc:
            # Host-supplied fetchers may raise anything
            return self._download_failed(url, f"{type(exc).__name__}: {exc}")

        self._metrics.inc(metrics.DOWNLOADS)
        current = asyncio.current_task()
        with self._downloads_lock:
            if current is not None:
                self._storing.add(current)

        return await asyncio.to_thread(self._store_download, url, metadata, data)

    def _download_failed(self, url: str, error: str) -> None:
        logger.warning(f"Download failed: {error}")
        self._metrics.inc(metrics.FAILURES)
        self.emit(DownloadFailedEvent(url=url, error=error))
        return None

    def _store_download(self, url: str, metadata: ImageMetadata, data: bytes) -> Optional[Image.Image]:
        """Decode, encode, persist. Runs in a worker thread."""
        try:
            original = decode_image(data)
        except ImageDecodeError as exc:
            return self._download_failed(url, f"Failed to decode image data: {exc}")

        if not self._enabled:
            return original

        try:
            encoded, image_format = encode_image(original, self._config.jpeg_quality)
        except ImageEncodeError as exc:
            logger.warning(f"Failed to compress image, not caching: {exc}")
            return original

        name = cache_key(url, image_format)
        try:
            self._write_file(self._cache_dir / name, encoded)
        except OSError as exc:
            logger.warning(f"Failed to save cached image {_short_name(url)}: {exc}")
            return original

        # One blob per key: drop a copy stored under the other format
        for other in _LOOKUP_FORMATS:
            if other is not image_format:
                self._delete_entry(cache_key(url, other))
        self._index.touch(name, len(encoded))

        if not self._metadata.put(url, metadata):
            logger.warning(f"Failed to save metadata for {_short_name(url)}")

        try:
            cached = decode_image(encoded)
        except ImageDecodeError:
            cached = original
        self._memory.put(url, cached)

        savings = (len(data) - len(encoded)) / len(data) * 100
        logger.info(f"Cached: {_short_name(url)} ({image_format.name})")
        logger.debug(
            f"Size: {format_bytes(len(data))} -> {format_bytes(len(encoded))} ({savings:.0f}% saved)"
        )
        self.emit(ImageCachedEvent(
            url=url,
            image_format=image_format,
            original_bytes=len(data),
            stored_bytes=len(encoded),
        ))
        return cached

    @staticmethod
    def _write_file(path: Path, data: bytes) -> None:
        tmp_path = path.with_name(f".{path.name}.tmp.{os.getpid()}.{threading.get_ident()}")
        try:
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError:
            try:
                tmp_path.unlink()
            except OSError:
                pass
            raise

    # === Preloading ===

    async def preload_category_icons(
        self,
        items: Iterable[PreloadInput],
        on_complete: Optional[Callable[[], None]] = None,
    ) -> int:
        """
        Cache every category icon that is missing or stale, all concurrently.

        Returns once every fetch has settled (success or failure), after
        calling ``on_complete`` if given.

        Returns:
            Number of icons downloaded and cached
        """
        items = _normalize_items(items)
        loaded = 0
        if self._enabled and items:
            pending = await asyncio.to_thread(self._pending_items, items)
            logger.info(f"Preloading {len(pending)}/{len(items)} category icons")
            if pending:
                results = await asyncio.gather(
                    *(self.fetch_image(item.url, item.metadata) for item in pending)
                )
                loaded = sum(1 for image in results if image is not None)
            await asyncio.to_thread(self.cleanup_if_needed)
            self.emit(PreloadCompleteEvent(
                kind=PreloadKind.CATEGORY_ICONS, requested=len(pending), loaded=loaded,
            ))

        if on_complete is not None:
            on_complete()
        return loaded

    async def preload_menu_items(
        self,
        items: Iterable[PreloadInput],
        batch_size: Optional[int] = None,
        on_complete: Optional[Callable[[int], None]] = None,
    ) -> int:
        """
        Cache menu item images that are missing or stale, in sequential batches.

        Batch N+1 starts only after every download of batch N settled, which
        caps concurrent connections at ``batch_size``.

        Args:
            items: (url, metadata) pairs
            batch_size: Images per batch (config default if None)
            on_complete: Called with the number of images cached

        Returns:
            Number of images downloaded and cached
        """
        items = _normalize_items(items)
        if not batch_size or batch_size <= 0:
            batch_size = self._config.batch_size

        loaded = 0
        if self._enabled and items:
            pending = await asyncio.to_thread(self._pending_items, items)
            if not pending:
                logger.info("All menu items already cached")
            else:
                logger.info(
                    f"Preloading {len(pending)}/{len(items)} menu item images (batch size: {batch_size})"
                )
                for start in range(0, len(pending), batch_size):
                    if not self._enabled:
                        break
                    batch = pending[start:start + batch_size]
                    results = await asyncio.gather(
                        *(self.fetch_image(item.url, item.metadata) for item in batch)
                    )
                    loaded += sum(1 for image in results if image is not None)
                logger.info(f"Preloading complete, loaded {loaded}/{len(pending)} items")
                await asyncio.to_thread(self.cleanup_if_needed)
            self.emit(PreloadCompleteEvent(
                kind=PreloadKind.MENU_ITEMS, requested=len(pending), loaded=loaded,
            ))

        if on_complete is not None:
            on_complete(loaded)
        return loaded

    # === Cancellation and clearing ===

    def cancel_all_downloads(self) -> None:
        """
        Cancel every in-flight download and clear the registry.

        Callers awaiting a cancelled download receive None. Downloads already
        past the network stage finish and are cached normally.
        """
        with self._downloads_lock:
            downloads = list(self._downloads.items())
            storing = set(self._storing)
            self._downloads.clear()

        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        for url, task in downloads:
            if task.done() or task in storing:
                continue
            loop = task.get_loop()
            try:
                if loop is running_loop:
                    task.cancel()
                else:
                    loop.call_soon_threadsafe(task.cancel)
            except RuntimeError as exc:
                logger.debug(f"Could not cancel download {url}: {exc}")
                continue
            logger.debug(f"Cancelled download: {url}")

    def clear_memory_cache(self) -> None:
        """Drop decoded images held in memory; disk is untouched."""
        self._memory.clear()
        logger.debug("Cleared menu image memory cache")

    def clear_cache(self, reason: str = "manual") -> None:
        """
        Cancel downloads and delete every cached image and all metadata.

        Idempotent and safe when the directory is empty or missing.
        """
        self.cancel_all_downloads()
        self._memory.clear()

        removed = 0
        try:
            entries = list(self._cache_dir.iterdir())
        except FileNotFoundError:
            entries = []
        except OSError as exc:
            logger.error(f"Failed to list cache directory: {exc}")
            entries = []

        for path in entries:
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning(f"Failed to remove {path.name}: {exc}")

        self._index.clear()
        self._metadata.clear()
        if removed:
            logger.info(f"Cleared {removed} cached menu images ({reason})")
        self.emit(CacheClearedEvent(reason=reason))

    # === Eviction ===

    def cleanup_if_needed(self) -> int:
        """
        Evict least recently used images when over the size ceiling.

        Deletes oldest-accessed files until usage is at or below
        ``cleanup_target_ratio`` (80% by default) of the ceiling.

        Returns:
            Number of files deleted
        """
        if not self._enabled:
            return 0

        max_bytes = self._config.max_cache_bytes
        current = self._index.total_bytes
        if current <= max_bytes:
            return 0

        target = self._config.cleanup_target_bytes
        logger.info(
            f"Cache size ({format_bytes(current)}) exceeds limit ({format_bytes(max_bytes)}), "
            f"cleaning up old images"
        )

        deleted: Set[str] = set()
        freed = 0
        for name, size in self._index.oldest_first():
            if current - freed <= target:
                break
            if self._delete_entry(name):
                deleted.add(name)
                freed += size

        # Keep the hot set a subset of disk
        for url in self._memory.keys():
            if any(cache_key(url, fmt) in deleted for fmt in _LOOKUP_FORMATS):
                self._memory.remove(url)
        if deleted:
            self._prune_metadata(deleted)

        self._metrics.inc(metrics.EVICTIONS, len(deleted))
        remaining = self._index.total_bytes
        logger.info(f"Cleaned up {len(deleted)} old images, freed {format_bytes(freed)}")
        self.emit(CacheCleanupEvent(
            deleted_count=len(deleted), freed_bytes=freed, remaining_bytes=remaining,
        ))
        return len(deleted)

    def _prune_metadata(self, names: Set[str]) -> None:
        """Drop metadata records whose cache file is gone."""
        try:
            removed = self._metadata.prune(
                lambda url: any(cache_key(url, fmt) in names for fmt in _LOOKUP_FORMATS)
            )
        except MetadataCorruptError as exc:
            self._handle_corrupt_metadata(exc)
            return
        if removed:
            logger.debug(f"Dropped {removed} metadata records for deleted images")

    def _touch_entry(self, name: str, size: int) -> None:
        self._index.touch(name, size)
        try:
            os.utime(self._cache_dir / name)
        except OSError:
            pass

    def _delete_entry(self, name: str) -> bool:
        """Remove one cache file; True if it is gone afterwards."""
        try:
            (self._cache_dir / name).unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning(f"Failed to delete cache file {name}: {exc}")
            return False
        self._index.remove(name)
        return True

    # === Diagnostics ===

    def get_cache_size(self) -> int:
        """Total bytes of cached image files on disk."""
        total = 0
        for path in self._iter_cache_files():
            try:
                total += path.stat().st_size
            except OSError:
                continue
        return total

    def get_cached_image_count(self) -> int:
        return sum(1 for _ in self._iter_cache_files())

    def _iter_cache_files(self):
        try:
            entries = list(self._cache_dir.iterdir())
        except OSError:
            return
        for path in entries:
            if not path.name.startswith(".") and path.is_file():
                yield path

    def get_stats(self) -> CacheStats:
        with self._downloads_lock:
            in_flight = len(self._downloads)
        return CacheStats(
            enabled=self._enabled,
            cache_dir=self._cache_dir,
            total_bytes=self.get_cache_size(),
            file_count=self.get_cached_image_count(),
            memory_entries=len(self._memory),
            in_flight=in_flight,
            max_bytes=self._config.max_cache_bytes,
            counters=self._metrics.get_all(),
        )

    # === Sync wrappers ===

    def _get_sync_loop(self) -> asyncio.AbstractEventLoop:
        """Persistent event loop for the *_sync wrappers."""
        with self._sync_loop_lock:
            if self._sync_loop is None or self._sync_loop.is_closed():
                self._sync_loop = asyncio.new_event_loop()
            return self._sync_loop

    def preload_category_icons_sync(self, items: Iterable[PreloadInput]) -> int:
        """Preload category icons (sync wrapper)."""
        return self._get_sync_loop().run_until_complete(self.preload_category_icons(items))

    def preload_menu_items_sync(self, items: Iterable[PreloadInput], batch_size: Optional[int] = None) -> int:
        """Preload menu item images (sync wrapper)."""
        return self._get_sync_loop().run_until_complete(self.preload_menu_items(items, batch_size))

    def fetch_image_sync(self, url: str, metadata: ImageMetadata) -> Optional[Image.Image]:
        """Fetch and cache one image (sync wrapper)."""
        return self._get_sync_loop().run_until_complete(self.fetch_image(url, metadata))

    def close_sync(self) -> None:
        """Close the manager (sync wrapper)."""
        with self._sync_loop_lock:
            loop = self._sync_loop
        if loop is None or loop.is_closed():
            loop = asyncio.new_event_loop()
        try:
            loop.run_until_complete(self.close())
        finally:
            loop.close()
            with self._sync_loop_lock:
                self._sync_loop = None
