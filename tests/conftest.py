"""Shared fixtures: synthetic images, an in-memory fetcher, isolated cache dirs."""

import asyncio
import io
import logging
from typing import Dict, List, Optional

import pytest
from PIL import Image

from menu_image_cache.config import CacheConfig
from menu_image_cache.exceptions import FetchError
from menu_image_cache.manager import ImageCacheManager


def make_image_bytes(mode: str = "RGB", size=(16, 16), color=None, fmt: str = "PNG") -> bytes:
    """Encode a solid-colour image in memory."""
    if color is None:
        color = (200, 40, 40, 128) if "A" in mode else (200, 40, 40)
    image = Image.new(mode, size, color)
    buf = io.BytesIO()
    image.save(buf, format=fmt)
    return buf.getvalue()


class FakeFetcher:
    """
    In-memory Fetcher.

    Returns ``responses[url]`` or ``default``; URLs in ``failing`` raise
    FetchError. When ``gate`` is set, every fetch waits for it before
    returning, which keeps downloads in flight for as long as a test needs.
    """

    def __init__(self, default: Optional[bytes] = None, responses: Optional[Dict[str, bytes]] = None):
        self.default = default if default is not None else make_image_bytes()
        self.responses = responses or {}
        self.failing: set = set()
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.active = 0
        self.max_active = 0

    async def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if url in self.failing:
                raise FetchError(url, "HTTP 404")
            return self.responses.get(url, self.default)
        finally:
            self.active -= 1


@pytest.fixture
def rgb_png() -> bytes:
    return make_image_bytes("RGB")


@pytest.fixture
def rgba_png() -> bytes:
    return make_image_bytes("RGBA")


@pytest.fixture
def config(tmp_path) -> CacheConfig:
    return CacheConfig(
        cache_dir=str(tmp_path / "images"),
        state_dir=str(tmp_path / "state"),
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def manager(config, fetcher) -> ImageCacheManager:
    return ImageCacheManager(config, fetcher=fetcher)


@pytest.fixture
def make_image():
    """Factory fixture for encoded test images."""
    return make_image_bytes


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo setup_logging() calls made by a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
