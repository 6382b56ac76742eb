"""Tests for menu_image_cache.settings — SettingsStore and emergency cleanup."""

import json

import pytest

from menu_image_cache.settings import (
    CACHE_VERSION_KEY,
    CACHING_ENABLED_KEY,
    METADATA_BLOB,
    SETTINGS_FILE,
    SettingsStore,
    perform_emergency_cleanup,
)


@pytest.fixture
def store(tmp_path) -> SettingsStore:
    return SettingsStore(tmp_path / "state")


class TestScalarKeys:
    def test_missing_key_returns_default(self, store):
        assert store.get(CACHE_VERSION_KEY) is None
        assert store.get(CACHE_VERSION_KEY, "x") == "x"

    def test_set_and_get(self, store):
        store.set(CACHE_VERSION_KEY, "1.0")
        store.set(CACHING_ENABLED_KEY, False)

        assert store.get(CACHE_VERSION_KEY) == "1.0"
        assert store.get_bool(CACHING_ENABLED_KEY, True) is False

    def test_persisted_across_instances(self, store, tmp_path):
        store.set(CACHE_VERSION_KEY, "1.0")
        assert SettingsStore(tmp_path / "state").get(CACHE_VERSION_KEY) == "1.0"

    def test_remove(self, store):
        store.set(CACHE_VERSION_KEY, "1.0")
        store.remove(CACHE_VERSION_KEY)
        store.remove(CACHE_VERSION_KEY)
        assert store.get(CACHE_VERSION_KEY) is None

    def test_non_boolean_flag_uses_default(self, store):
        store.set(CACHING_ENABLED_KEY, "yes")
        assert store.get_bool(CACHING_ENABLED_KEY, True) is True

    def test_corrupt_settings_file_reads_as_empty(self, store):
        store.state_dir.mkdir(parents=True)
        (store.state_dir / SETTINGS_FILE).write_text("{broken")

        assert store.get(CACHE_VERSION_KEY) is None
        store.set(CACHE_VERSION_KEY, "1.0")
        assert json.loads((store.state_dir / SETTINGS_FILE).read_text()) == {CACHE_VERSION_KEY: "1.0"}


class TestBlobs:
    def test_missing_blob(self, store):
        assert store.read_blob(METADATA_BLOB) is None
        assert not store.has_blob(METADATA_BLOB)

    def test_write_and_read(self, store):
        assert store.write_blob(METADATA_BLOB, b"{}") is True
        assert store.read_blob(METADATA_BLOB) == b"{}"
        assert store.has_blob(METADATA_BLOB)

    def test_write_leaves_no_temp_files(self, store):
        store.write_blob(METADATA_BLOB, b"{}")
        store.set(CACHE_VERSION_KEY, "1.0")

        names = sorted(p.name for p in store.state_dir.iterdir())
        assert names == [f"{METADATA_BLOB}.json", SETTINGS_FILE]

    def test_write_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        store = SettingsStore(blocker / "state")

        assert store.write_blob(METADATA_BLOB, b"{}") is False

    def test_remove_blob(self, store):
        store.write_blob(METADATA_BLOB, b"{}")
        store.remove_blob(METADATA_BLOB)
        store.remove_blob(METADATA_BLOB)
        assert not store.has_blob(METADATA_BLOB)

    def test_reset_removes_everything(self, store):
        store.write_blob(METADATA_BLOB, b"{}")
        store.set(CACHING_ENABLED_KEY, False)

        store.reset()

        assert not store.has_blob(METADATA_BLOB)
        assert store.get(CACHING_ENABLED_KEY) is None

    def test_reset_without_directory(self, store):
        store.reset()
        assert not store.state_dir.exists()


class TestEmergencyCleanup:
    def test_healthy_state_does_nothing(self, store):
        store.set(CACHE_VERSION_KEY, "1.0")
        store.set(CACHING_ENABLED_KEY, True)

        assert perform_emergency_cleanup(store) is False
        assert store.get(CACHE_VERSION_KEY) == "1.0"

    def test_kill_switch_without_metadata_is_cleared(self, store):
        store.set(CACHE_VERSION_KEY, "1.0")
        store.set(CACHING_ENABLED_KEY, False)

        assert perform_emergency_cleanup(store) is True
        assert store.get(CACHING_ENABLED_KEY) is None
        assert store.get(CACHE_VERSION_KEY) is None

    def test_clears_all_state(self, store):
        store.write_blob(METADATA_BLOB, b"garbage")
        store.set(CACHE_VERSION_KEY, "1.0")
        store.set(CACHING_ENABLED_KEY, False)

        assert perform_emergency_cleanup(store) is True
        assert not store.has_blob(METADATA_BLOB)
        assert store.get(CACHE_VERSION_KEY) is None
        assert store.get(CACHING_ENABLED_KEY) is None
