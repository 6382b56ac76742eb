"""
Persisted settings store.

A small key-value store on local disk holding the cache-format version, the
caching kill switch and named binary blobs (the metadata table). Scalar keys
live together in ``settings.json``; each blob is its own file so a corrupt
blob can be deleted without touching the flags.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"

# Keys
CACHE_VERSION_KEY = "cache_format_version"
CACHING_ENABLED_KEY = "caching_enabled"
METADATA_BLOB = "image_metadata"


class SettingsStore:
    """
    Thread-safe settings persisted under a state directory.

    Write failures are logged and swallowed: losing a flag only costs a
    cache rebuild.
    """

    def __init__(self, state_dir: Path):
        self._dir = Path(state_dir)
        self._lock = threading.Lock()

    @property
    def state_dir(self) -> Path:
        return self._dir

    # === Scalar keys ===

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read_settings().get(key, default)

    def get_bool(self, key: str, default: bool) -> bool:
        value = self.get(key, default)
        if isinstance(value, bool):
            return value
        logger.warning(f"Ignoring non-boolean setting {key}={value!r}")
        return default

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read_settings()
            data[key] = value
            self._write_settings(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read_settings()
            if key in data:
                del data[key]
                self._write_settings(data)

    # === Blobs ===

    def blob_path(self, name: str) -> Path:
        return self._dir / f"{name}.json"

    def has_blob(self, name: str) -> bool:
        return self.blob_path(name).is_file()

    def read_blob(self, name: str) -> Optional[bytes]:
        """Return the blob contents, or None if missing or unreadable."""
        path = self.blob_path(name)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning(f"Could not read {path.name}: {exc}")
            return None

    def write_blob(self, name: str, data: bytes) -> bool:
        """Atomically replace a blob. Returns False if the write failed."""
        with self._lock:
            return self._atomic_write(self.blob_path(name), data)

    def remove_blob(self, name: str) -> None:
        try:
            self.blob_path(name).unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning(f"Could not remove blob {name}: {exc}")

    def reset(self) -> None:
        """Delete every key and blob."""
        with self._lock:
            if not self._dir.is_dir():
                return
            for path in self._dir.iterdir():
                if path.is_file() and path.suffix == ".json":
                    try:
                        path.unlink()
                    except OSError as exc:
                        logger.warning(f"Could not remove {path.name}: {exc}")

    # === Internals (lock held) ===

    def _read_settings(self) -> Dict[str, Any]:
        path = self._dir / SETTINGS_FILE
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning(f"Unreadable {SETTINGS_FILE}, using defaults: {exc}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Unexpected {SETTINGS_FILE} contents, using defaults")
            return {}
        return data

    def _write_settings(self, data: Dict[str, Any]) -> None:
        payload = json.dumps(data, indent=2, sort_keys=True).encode("utf-8")
        self._atomic_write(self._dir / SETTINGS_FILE, payload)

    def _atomic_write(self, path: Path, data: bytes) -> bool:
        tmp_path = path.with_name(f".{path.name}.tmp.{uuid4().hex[:8]}")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
            return True
        except OSError as exc:
            logger.warning(f"Failed to write {path.name}: {exc}")
            try:
                tmp_path.unlink()
            except OSError:
                pass
            return False


def perform_emergency_cleanup(store: SettingsStore) -> bool:
    """
    Clear all persisted cache state before a cache manager is created.

    Runs without decoding anything. When a metadata blob exists or the kill
    switch is off, every cache-related key and blob is removed and the cache
    rebuilds from scratch. Clearing the kill switch re-enables caching.

    Returns:
        True if anything was cleared
    """
    if not store.has_blob(METADATA_BLOB) and store.get(CACHING_ENABLED_KEY) is not False:
        logger.debug("Emergency cleanup: no cache metadata found and caching enabled")
        return False

    logger.warning("Emergency cleanup: clearing all persisted cache settings")
    store.reset()
    return True
