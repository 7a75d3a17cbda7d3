"""Utility modules for VoiseForm."""

from .logger import SensitiveFormatter, get_logger, set_log_level
from .time import format_duration, get_monotonic_ms

__all__ = [
    'SensitiveFormatter',
    'get_logger',
    'set_log_level',
    'get_monotonic_ms',
    'format_duration',
]
