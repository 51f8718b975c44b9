"""
Logging configuration with a colored, tag-based console handler.

Usage:
    from storefront.config.logging import get_logger
    logger = get_logger("backup")
    logger.info("Backup created", extra={"tenant_id": "123", "archive_id": "2026..."})
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime

# ANSI color codes for console output
COLORS = {
    "DEBUG": "\033[36m",  # Cyan
    "INFO": "\033[32m",  # Green
    "WARNING": "\033[33m",  # Yellow
    "ERROR": "\033[31m",  # Red
    "CRITICAL": "\033[35m",  # Magenta
    "RESET": "\033[0m",
}

# Module-specific colors for tags
TAG_COLORS = {
    "backup": "\033[94m",  # Blue
    "backup.scheduler": "\033[95m",  # Magenta
    "backup.restore": "\033[93m",  # Yellow
    "backup.storage": "\033[96m",  # Cyan
    "backup.credentials": "\033[97m",  # White
    "db": "\033[92m",  # Green
}
DEFAULT_TAG_COLOR = "\033[37m"


class ColoredConsoleFormatter(logging.Formatter):
    """Formatter that adds colors and a [tag] prefix per logger name."""

    def __init__(self, use_color: bool = True) -> None:
        super().__init__()
        self.use_color = use_color

    def _color(self, code: str) -> str:
        return code if self.use_color else ""

    def format(self, record: logging.LogRecord) -> str:
        reset = self._color(COLORS["RESET"])
        level_color = self._color(COLORS.get(record.levelname, ""))

        tag = record.name
        tag_color = self._color(TAG_COLORS.get(tag, TAG_COLORS.get(tag.split(".")[0], DEFAULT_TAG_COLOR)))

        timestamp = datetime.now().strftime("%H:%M:%S")
        level_str = f"{level_color}{record.levelname:8}{reset}"
        tag_str = f"{tag_color}[{tag}]{reset}"

        extra_parts = []
        if getattr(record, "tenant_id", None):
            extra_parts.append(f"tenant={record.tenant_id}")
        if getattr(record, "archive_id", None):
            extra_parts.append(f"archive={record.archive_id}")

        extra_str = f" ({', '.join(extra_parts)})" if extra_parts else ""
        msg = f"{timestamp} {level_str} {tag_str} {record.getMessage()}{extra_str}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


# Global state
_console_handler: logging.Handler | None = None
_initialized = False


def _get_console_level() -> int:
    """Get console log level from LOG_LEVEL, falling back to settings."""
    level_name = os.getenv("LOG_LEVEL")
    if not level_name:
        from storefront.config import get_settings

        level_name = get_settings().logging.level
    return getattr(logging, level_name.upper(), logging.INFO)


def init_logging(console_level: int | None = None, use_color: bool | None = None) -> None:
    """Initialize the logging system with a colored console handler."""
    global _console_handler, _initialized

    if _initialized:
        return

    if console_level is None:
        console_level = _get_console_level()
    if use_color is None:
        from storefront.config import get_settings

        use_color = get_settings().logging.color and sys.stdout.isatty()

    # Clear any existing handlers on root logger (from basicConfig or other sources)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    _console_handler = logging.StreamHandler(sys.stdout)
    _console_handler.setLevel(console_level)
    _console_handler.setFormatter(ColoredConsoleFormatter(use_color=use_color))

    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(_console_handler)

    # Reduce noise from third-party libraries
    for noisy in ("httpx", "httpcore", "botocore", "boto3", "urllib3", "s3transfer"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    if not _initialized:
        init_logging()
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Detach the console handler (used between CLI invocations in tests)."""
    global _console_handler, _initialized
    if _console_handler is not None:
        logging.getLogger().removeHandler(_console_handler)
        _console_handler = None
    _initialized = False
