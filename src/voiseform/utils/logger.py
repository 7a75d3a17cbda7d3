"""Logging helpers with sensitive-data masking."""

import logging
import re

# Cache for loggers
_loggers: dict[str, logging.Logger] = {}
_level: int = logging.INFO


class SensitiveFormatter(logging.Formatter):
    """Formatter that masks sensitive information like API keys and audio payloads."""

    # Patterns for sensitive data (key names and their values)
    SENSITIVE_PATTERNS = [
        (r'(api_key|api-key|apiKey|secret|token|password|credential|auth_key|auth-key)'
         r'[\'"]?\s*[:=]\s*[\'"]?([^\s\'",}]+)', r'\1=***REDACTED***'),
        (r'Bearer\s+([A-Za-z0-9\-._~+/]+)', r'Bearer ***REDACTED***'),
        (r'(sk-[a-zA-Z0-9]{20,})', r'sk-***REDACTED***'),
        (r'(AIza[0-9A-Za-z\-_]{20,})', r'AIza***REDACTED***'),  # Google API keys
        (r'(data:audio/[\w.+-]+;base64,)[A-Za-z0-9+/=]+', r'\1***'),  # Audio data URIs
        (r'([A-Za-z0-9+/]{32,}={0,2})', r'***REDACTED***'),  # Base64-like strings
    ]

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        """Initialize formatter with optional format strings."""
        super().__init__(fmt, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record and mask sensitive information.

        Args:
            record: Log record to format

        Returns:
            Formatted and sanitized log message
        """
        original = super().format(record)
        return self._mask_sensitive(original)

    def _mask_sensitive(self, text: str) -> str:
        """
        Mask sensitive information in text.

        Args:
            text: Text to sanitize

        Returns:
            Sanitized text with sensitive data masked
        """
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)
        return text


def get_logger(name: str, use_sensitive_formatter: bool = True) -> logging.Logger:
    """Get or create a logger with the given name.

    Args:
        name: Logger name (usually __name__)
        use_sensitive_formatter: Whether to use SensitiveFormatter to mask sensitive data

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        handler = logging.StreamHandler()
        if use_sensitive_formatter:
            handler.setFormatter(SensitiveFormatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            ))
        else:
            handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            ))
        logger.addHandler(handler)
        logger.setLevel(_level)

    _loggers[name] = logger
    return logger


def set_log_level(level: str | int) -> None:
    """
    Apply a log level to every logger handed out by get_logger.

    Args:
        level: Level name (e.g. "DEBUG") or numeric level
    """
    global _level
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    _level = level
    for logger in _loggers.values():
        logger.setLevel(level)
