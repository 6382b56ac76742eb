"""
LRU bookkeeping for the hot in-memory set and the files on disk.

Both structures are OrderedDicts kept in least-recently-used-first order and
guarded by a lock, since fetch completions update them from worker threads.
"""

import logging
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Generic, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


class MemoryCache(Generic[V]):
    """Decoded images keyed by URL, bounded by entry count."""

    def __init__(self, limit: int = 30):
        if limit <= 0:
            raise ValueError("limit must be greater than 0")
        self._limit = limit
        self._entries: "OrderedDict[str, V]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    def get(self, url: str) -> Optional[V]:
        with self._lock:
            value = self._entries.get(url)
            if value is not None:
                self._entries.move_to_end(url)
            return value

    def put(self, url: str, value: V) -> None:
        with self._lock:
            self._entries[url] = value
            self._entries.move_to_end(url)
            while len(self._entries) > self._limit:
                self._entries.popitem(last=False)

    def remove(self, url: str) -> None:
        with self._lock:
            self._entries.pop(url, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> List[str]:
        """URLs from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class DiskIndex:
    """
    Explicit access order of cached files (file name -> size in bytes).

    Replaces filesystem access times, which many filesystems do not maintain.
    The order is seeded from file modification times at startup; the manager
    bumps a file's mtime whenever it touches the entry so the order survives
    restarts.
    """

    def __init__(self) -> None:
        self._entries: "OrderedDict[str, int]" = OrderedDict()
        self._total = 0
        self._lock = threading.Lock()

    def rebuild(self, directory: Path) -> None:
        """Reload the index from the files currently in ``directory``."""
        found: List[Tuple[float, str, int]] = []
        try:
            for path in directory.iterdir():
                if path.name.startswith(".") or not path.is_file():
                    continue
                try:
                    st = path.stat()
                except OSError:
                    continue
                found.append((st.st_mtime, path.name, st.st_size))
        except OSError as exc:
            logger.debug(f"Cannot scan cache directory {directory}: {exc}")

        found.sort()
        with self._lock:
            self._entries = OrderedDict((name, size) for _, name, size in found)
            self._total = sum(self._entries.values())

    def touch(self, name: str, size: Optional[int] = None) -> None:
        """Mark ``name`` most recently used, recording its size if given."""
        with self._lock:
            if size is not None:
                self._total += size - self._entries.get(name, 0)
                self._entries[name] = size
            elif name not in self._entries:
                return
            self._entries.move_to_end(name)

    def remove(self, name: str) -> int:
        """Forget ``name``; returns the size it accounted for."""
        with self._lock:
            size = self._entries.pop(name, 0)
            self._total -= size
            return size

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total = 0

    def oldest_first(self) -> List[Tuple[str, int]]:
        with self._lock:
            return list(self._entries.items())

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
