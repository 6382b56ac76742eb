"""Exceptions raised by the lower cache layers.

The manager absorbs all of these; they only escape when the fetcher, codec or
metadata store are used directly.
"""


class ImageCacheError(Exception):
    """Base class for image cache errors."""


class FetchError(ImageCacheError):
    """Downloading the raw image bytes failed."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class ImageDecodeError(ImageCacheError):
    """Bytes could not be decoded into an image."""


class ImageEncodeError(ImageCacheError):
    """A decoded image could not be re-encoded for storage."""


class MetadataCorruptError(ImageCacheError):
    """The persisted metadata table could not be parsed."""
