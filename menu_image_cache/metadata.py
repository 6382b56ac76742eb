"""Persisted url -> ImageMetadata table, stored as a single JSON blob."""

import json
import logging
import threading
from typing import Callable, Dict, Optional

from .exceptions import MetadataCorruptError
from .settings import METADATA_BLOB, SettingsStore
from .types import ImageMetadata

logger = logging.getLogger(__name__)

MAX_METADATA_BYTES = 1_000_000


class MetadataStore:
    """
    Read-modify-write access to the metadata table.

    ``load`` raises MetadataCorruptError for a blob that does not parse; the
    caller decides the recovery policy. ``put`` is more lenient and starts a
    fresh table instead.
    """

    def __init__(self, settings: SettingsStore, blob_name: str = METADATA_BLOB):
        self._settings = settings
        self._blob_name = blob_name
        self._lock = threading.Lock()

    def load(self) -> Dict[str, ImageMetadata]:
        with self._lock:
            return self._load_locked()

    def get(self, url: str) -> Optional[ImageMetadata]:
        return self.load().get(url)

    def put(self, url: str, metadata: ImageMetadata) -> bool:
        """Merge one record into the table. Returns False if persisting failed."""
        with self._lock:
            try:
                table = self._load_locked()
            except MetadataCorruptError as exc:
                logger.warning(f"Corrupted metadata during save, starting fresh: {exc}")
                self._settings.remove_blob(self._blob_name)
                table = {}

            table[url] = metadata
            return self._write_locked(table)

    def prune(self, should_drop: Callable[[str], bool]) -> int:
        """
        Drop every record whose URL matches ``should_drop``.

        Returns:
            Number of records removed

        Raises:
            MetadataCorruptError: If the stored table does not parse
        """
        with self._lock:
            table = self._load_locked()
            kept = {url: record for url, record in table.items() if not should_drop(url)}
            removed = len(table) - len(kept)
            if removed:
                self._write_locked(kept)
            return removed

    def clear(self) -> None:
        with self._lock:
            self._settings.remove_blob(self._blob_name)

    def _write_locked(self, table: Dict[str, ImageMetadata]) -> bool:
        if not table:
            self._settings.remove_blob(self._blob_name)
            return True
        payload = json.dumps(
            {key: value.to_dict() for key, value in table.items()},
            separators=(",", ":"),
        ).encode("utf-8")
        return self._settings.write_blob(self._blob_name, payload)

    def _load_locked(self) -> Dict[str, ImageMetadata]:
        data = self._settings.read_blob(self._blob_name)
        if data is None:
            return {}

        if len(data) == 0 or len(data) > MAX_METADATA_BYTES:
            logger.warning(f"Invalid metadata size, clearing: {len(data)} bytes")
            self._settings.remove_blob(self._blob_name)
            return {}

        try:
            raw = json.loads(data.decode("utf-8"))
            if not isinstance(raw, dict):
                raise TypeError(f"expected an object, got {type(raw).__name__}")
            return {
                str(key): ImageMetadata.from_dict(value)
                for key, value in raw.items()
            }
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            raise MetadataCorruptError(str(exc)) from exc
