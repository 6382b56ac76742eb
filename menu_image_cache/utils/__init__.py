"""Menu Image Cache utilities."""

from .formatting import format_bytes
from .logging import get_logger, setup_logging, setup_logging_from_dict
from .metrics import CacheMetrics

__all__ = [
    "format_bytes",
    "get_logger",
    "setup_logging",
    "setup_logging_from_dict",
    "CacheMetrics",
]
