"""Time utilities for VoiseForm."""

import time


def get_monotonic_ms() -> float:
    """Milliseconds from a monotonic clock, for measuring elapsed time."""
    return time.monotonic() * 1000.0


def format_duration(duration_ms: float) -> str:
    """
    Format a duration as m:ss.

    Args:
        duration_ms: Duration in milliseconds

    Returns:
        Duration string such as "1:05"
    """
    total_seconds = max(0, int(duration_ms // 1000))
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes}:{seconds:02d}"
