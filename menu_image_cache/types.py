"""
Menu Image Cache type definitions.

This module contains the public value types used by the cache.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple, Union


class ImageFormat(Enum):
    """On-disk encoding of a cached image."""
    PNG = "png"
    JPEG = "jpg"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def pillow_format(self) -> str:
        return "PNG" if self is ImageFormat.PNG else "JPEG"


class PreloadKind(Enum):
    """Which preload routine produced a result."""
    CATEGORY_ICONS = "category_icons"
    MENU_ITEMS = "menu_items"


@dataclass(frozen=True)
class ImageMetadata:
    """Staleness marker for one cached URL.

    Only the timestamp is compared; a changed image without a newer
    timestamp is not detected.
    """
    url: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImageMetadata":
        url = data["url"]
        timestamp = data["timestamp"]
        if not isinstance(url, str):
            raise TypeError(f"metadata url must be a string, got {type(url).__name__}")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise TypeError(f"metadata timestamp must be a number, got {type(timestamp).__name__}")
        return cls(url=url, timestamp=float(timestamp))


class PreloadItem(NamedTuple):
    """A URL to preload together with its current metadata."""
    url: str
    metadata: ImageMetadata


PreloadInput = Union[PreloadItem, tuple[str, ImageMetadata]]


@dataclass
class CacheStats:
    """Point-in-time snapshot of the cache for diagnostics."""
    enabled: bool
    cache_dir: Path
    total_bytes: int = 0
    file_count: int = 0
    memory_entries: int = 0
    in_flight: int = 0
    max_bytes: int = 0
    counters: dict[str, int] = field(default_factory=dict)

    @property
    def usage_ratio(self) -> float:
        if self.max_bytes <= 0:
            return 0.0
        return self.total_bytes / self.max_bytes
