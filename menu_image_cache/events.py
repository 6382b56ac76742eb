"""
Menu Image Cache event system.

Lets the host (menu view layer, diagnostics UI) observe what the cache does:
- Images stored (refresh thumbnails)
- Download failures (fall back to direct network loads)
- Clears, cleanups and the kill switch firing
- Preload batches finishing
"""

import logging
import threading
import time
from abc import ABC
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Type, TypeVar

from .types import ImageFormat, PreloadKind

logger = logging.getLogger(__name__)


@dataclass
class CacheEvent(ABC):
    """Base event class for all cache events."""
    timestamp: float = field(default_factory=time.time)


@dataclass
class ImageCachedEvent(CacheEvent):
    """An image was downloaded, compressed and written to disk."""
    url: str = ""
    image_format: Optional[ImageFormat] = None
    original_bytes: int = 0
    stored_bytes: int = 0

    @property
    def savings_percent(self) -> float:
        if self.original_bytes <= 0:
            return 0.0
        return (self.original_bytes - self.stored_bytes) / self.original_bytes * 100


@dataclass
class DownloadFailedEvent(CacheEvent):
    """A fetch for this URL produced no image."""
    url: str = ""
    error: str = ""


@dataclass
class CacheClearedEvent(CacheEvent):
    """Every cached file and the metadata table were removed."""
    reason: str = ""


@dataclass
class CacheCleanupEvent(CacheEvent):
    """Least recently used files were evicted to get under the ceiling."""
    deleted_count: int = 0
    freed_bytes: int = 0
    remaining_bytes: int = 0


@dataclass
class CacheDisabledEvent(CacheEvent):
    """The kill switch fired; caching is off until re-enabled."""
    reason: str = ""


@dataclass
class PreloadCompleteEvent(CacheEvent):
    """A preload call settled."""
    kind: Optional[PreloadKind] = None
    requested: int = 0
    loaded: int = 0


E = TypeVar("E", bound=CacheEvent)


class EventEmitter:
    """
    Simple thread-safe pub/sub.

    Usage:
        emitter = EventEmitter()

        @emitter.on(ImageCachedEvent)
        def on_cached(event: ImageCachedEvent):
            refresh_thumbnail(event.url)

        emitter.emit(ImageCachedEvent(url="https://..."))
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[CacheEvent], List[Callable[..., None]]] = {}
        self._global_handlers: List[Callable[[CacheEvent], None]] = []
        self._lock = threading.Lock()

    def on(self, event_type: Type[E]) -> Callable[[Callable[[E], None]], Callable[[E], None]]:
        """
        Decorator to register an event handler.

        Args:
            event_type: The event class to handle
        """
        def decorator(func: Callable[[E], None]) -> Callable[[E], None]:
            self.add_handler(event_type, func)
            return func
        return decorator

    def on_any(self, func: Callable[[CacheEvent], None]) -> Callable[[CacheEvent], None]:
        """Register a handler for all events."""
        with self._lock:
            self._global_handlers.append(func)
        return func

    def add_handler(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def remove_handler(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        with self._lock:
            if event_type in self._handlers:
                self._handlers[event_type] = [
                    h for h in self._handlers[event_type] if h != handler
                ]

    def emit(self, event: CacheEvent) -> None:
        """
        Emit an event to all registered handlers.

        Handler lists are snapshotted under the lock and called without it.
        A failing handler is logged and never breaks the cache operation.
        """
        with self._lock:
            global_snapshot = list(self._global_handlers)
            specific_snapshot = list(self._handlers.get(type(event), []))

        for handler in global_snapshot + specific_snapshot:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler error ({type(event).__name__}): {e}")

    def clear_handlers(self, event_type: Optional[Type[E]] = None) -> None:
        with self._lock:
            if event_type is not None:
                self._handlers[event_type] = []
            else:
                self._handlers.clear()
                self._global_handlers.clear()

    def handler_count(self, event_type: Optional[Type[E]] = None) -> int:
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, []))
            return sum(len(h) for h in self._handlers.values()) + len(self._global_handlers)
