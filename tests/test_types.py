"""Tests for menu_image_cache.types module."""

from pathlib import Path

import pytest

from menu_image_cache.types import CacheStats, ImageFormat, ImageMetadata, PreloadItem


class TestImageFormat:
    def test_extensions(self):
        assert ImageFormat.PNG.extension == "png"
        assert ImageFormat.JPEG.extension == "jpg"

    def test_pillow_names(self):
        assert ImageFormat.PNG.pillow_format == "PNG"
        assert ImageFormat.JPEG.pillow_format == "JPEG"


class TestImageMetadata:
    def test_default_timestamp_is_now(self):
        assert ImageMetadata(url="u").timestamp > 0

    def test_dict_round_trip(self):
        record = ImageMetadata(url="https://x/y.png", timestamp=12.5)
        assert ImageMetadata.from_dict(record.to_dict()) == record

    def test_integer_timestamp_accepted(self):
        assert ImageMetadata.from_dict({"url": "u", "timestamp": 3}).timestamp == 3.0

    @pytest.mark.parametrize("data,error", [
        ({"url": "u"}, KeyError),
        ({"url": None, "timestamp": 1}, TypeError),
        ({"url": "u", "timestamp": True}, TypeError),
        ({"url": "u", "timestamp": "1"}, TypeError),
    ])
    def test_invalid(self, data, error):
        with pytest.raises(error):
            ImageMetadata.from_dict(data)

    def test_frozen(self):
        record = ImageMetadata(url="u", timestamp=1.0)
        with pytest.raises(AttributeError):
            record.timestamp = 2.0


class TestPreloadItem:
    def test_unpacks_like_a_tuple(self):
        url, metadata = PreloadItem("u", ImageMetadata(url="u", timestamp=1.0))
        assert url == "u"
        assert metadata.timestamp == 1.0


class TestCacheStats:
    def test_usage_ratio(self):
        stats = CacheStats(enabled=True, cache_dir=Path("/tmp"), total_bytes=250, max_bytes=1000)
        assert stats.usage_ratio == 0.25

    def test_usage_ratio_without_limit(self):
        assert CacheStats(enabled=False, cache_dir=Path("/tmp")).usage_ratio == 0.0
