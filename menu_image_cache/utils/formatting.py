"""Human-readable formatting helpers."""

_UNITS = ("bytes", "KB", "MB", "GB", "TB")


def format_bytes(num_bytes: int) -> str:
    """Format a byte count using decimal (file-size) units, e.g. ``1.5 MB``."""
    if num_bytes < 1000:
        return "1 byte" if num_bytes == 1 else f"{num_bytes} bytes"
    value = float(num_bytes)
    for unit in _UNITS[1:]:
        value /= 1000.0
        if value < 1000.0 or unit == _UNITS[-1]:
            return f"{value:.1f} {unit}"
    return f"{num_bytes} bytes"
