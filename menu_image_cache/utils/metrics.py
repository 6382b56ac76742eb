"""
Cache counters for Menu Image Cache.

Simple in-memory counters, no external dependencies.
"""

import threading
from typing import Dict

# Counter names used by ImageCacheManager
MEMORY_HITS = "memory_hits"
DISK_HITS = "disk_hits"
MISSES = "misses"
DOWNLOADS = "downloads"
DEDUPLICATED = "deduplicated"
FAILURES = "failures"
EVICTIONS = "evictions"


class CacheMetrics:
    """
    Thread-safe counter set.

    Counters are touched from worker threads (disk reads) as well as the
    event loop, so every update happens under a lock.
    """

    def __init__(self) -> None:
        self._counters: Dict[str, int] = {}
        self._lock = threading.Lock()

    def inc(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        """Get counter value."""
        with self._lock:
            return self._counters.get(name, 0)

    def get_all(self) -> Dict[str, int]:
        """Get a copy of all counters."""
        with self._lock:
            return dict(self._counters)

    def reset(self) -> None:
        """Reset all counters."""
        with self._lock:
            self._counters.clear()
