"""
Menu Image Cache configuration handling.

Provides YAML configuration loading and validation.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_MAX_CACHE_BYTES = 50 * 1024 * 1024  # 50 MB
DEFAULT_LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_DEFAULT_ROOT = Path("~/.cache/menu-image-cache")


@dataclass
class CacheConfig:
    """
    Image cache configuration.

    Can be loaded from a YAML file or created programmatically. Loaded once
    at startup and handed to ImageCacheManager.
    """
    # Storage
    cache_dir: str = ""
    state_dir: str = ""
    max_cache_bytes: int = DEFAULT_MAX_CACHE_BYTES
    memory_cache_limit: int = 30
    jpeg_quality: int = 70
    cache_version: str = "1.0"  # bump when the on-disk format changes
    cleanup_target_ratio: float = 0.8

    # Downloads
    batch_size: int = 10
    max_concurrent_downloads: int = 8
    download_timeout: Optional[float] = None  # None = HTTP client default

    # Logging
    log_level: str = "INFO"
    log_file: str = ""
    log_format: str = DEFAULT_LOG_FORMAT
    log_max_bytes: int = 10485760  # 10MB
    log_backup_count: int = 3

    def __post_init__(self) -> None:
        if self.max_cache_bytes <= 0:
            raise ValueError("max_cache_bytes must be greater than 0")
        if self.memory_cache_limit <= 0:
            raise ValueError("memory_cache_limit must be greater than 0")
        if not 1 <= self.jpeg_quality <= 95:
            raise ValueError("jpeg_quality must be between 1 and 95")
        if not 0.0 < self.cleanup_target_ratio <= 1.0:
            raise ValueError("cleanup_target_ratio must be in (0, 1]")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be greater than 0")
        if self.max_concurrent_downloads <= 0:
            raise ValueError("max_concurrent_downloads must be greater than 0")
        if self.download_timeout is not None and self.download_timeout <= 0:
            raise ValueError("download_timeout must be greater than 0")
        if self.get_cache_dir().resolve() == self.get_state_dir().resolve():
            raise ValueError("state_dir must differ from cache_dir")
        self.cache_version = str(self.cache_version)

    @classmethod
    def load(cls, path: str) -> "CacheConfig":
        """
        Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file

        Returns:
            CacheConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If config file is invalid YAML
            ValueError: If a value is out of range
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        """
        Create configuration from a dictionary.

        Args:
            data: Configuration dictionary with optional ``cache``,
                ``download`` and ``logging`` sections

        Returns:
            CacheConfig instance
        """
        cache_cfg = data.get("cache", {}) or {}
        download_cfg = data.get("download", {}) or {}
        logging_cfg = data.get("logging", {}) or {}

        return cls(
            cache_dir=cache_cfg.get("dir", ""),
            state_dir=cache_cfg.get("state_dir", ""),
            max_cache_bytes=cache_cfg.get("max_bytes", DEFAULT_MAX_CACHE_BYTES),
            memory_cache_limit=cache_cfg.get("memory_limit", 30),
            jpeg_quality=cache_cfg.get("jpeg_quality", 70),
            cache_version=cache_cfg.get("version", "1.0"),
            cleanup_target_ratio=cache_cfg.get("cleanup_ratio", 0.8),
            batch_size=download_cfg.get("batch_size", 10),
            max_concurrent_downloads=download_cfg.get("max_concurrent", 8),
            download_timeout=download_cfg.get("timeout"),
            log_level=logging_cfg.get("level", "INFO"),
            log_file=logging_cfg.get("file", ""),
            log_format=logging_cfg.get("format", DEFAULT_LOG_FORMAT),
            log_max_bytes=logging_cfg.get("max_bytes", 10485760),
            log_backup_count=logging_cfg.get("backup_count", 3),
        )

    def get_cache_dir(self) -> Path:
        """
        Get the resolved image directory.

        Priority: explicit ``cache_dir``, then the MENU_CACHE_DIR environment
        variable, then ``~/.cache/menu-image-cache/images``.
        """
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        env_dir = os.environ.get("MENU_CACHE_DIR")
        if env_dir:
            return Path(env_dir).expanduser()
        return (_DEFAULT_ROOT / "images").expanduser()

    def get_state_dir(self) -> Path:
        """
        Get the resolved directory of the persisted settings store.

        Kept apart from the image directory so clearing images never drops
        the version and kill-switch flags.
        """
        if self.state_dir:
            return Path(self.state_dir).expanduser()
        env_dir = os.environ.get("MENU_CACHE_STATE_DIR")
        if env_dir:
            return Path(env_dir).expanduser()
        return (_DEFAULT_ROOT / "state").expanduser()

    @property
    def cleanup_target_bytes(self) -> int:
        """Usage that eviction brings the cache down to."""
        return int(self.max_cache_bytes * self.cleanup_target_ratio)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Returns:
            Configuration as dictionary
        """
        return {
            "cache": {
                "dir": self.cache_dir,
                "state_dir": self.state_dir,
                "max_bytes": self.max_cache_bytes,
                "memory_limit": self.memory_cache_limit,
                "jpeg_quality": self.jpeg_quality,
                "version": self.cache_version,
                "cleanup_ratio": self.cleanup_target_ratio,
            },
            "download": {
                "batch_size": self.batch_size,
                "max_concurrent": self.max_concurrent_downloads,
                "timeout": self.download_timeout,
            },
            "logging": {
                "level": self.log_level,
                "file": self.log_file,
                "format": self.log_format,
                "max_bytes": self.log_max_bytes,
                "backup_count": self.log_backup_count,
            },
        }

    def save(self, path: str) -> None:
        """
        Save configuration to a YAML file.

        Args:
            path: Path to save the configuration file
        """
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)
