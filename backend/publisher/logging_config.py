"""
Logging configuration for the publisher.

Supports per-module log levels via environment variables:
- LOG_LEVEL: Global log level (default: INFO)
- LOG_FORMAT: Log format - simple or structured (default: structured)
- LOG_LEVEL_<MODULE>: Per-module override (e.g., LOG_LEVEL_FETCHER=DEBUG)

Lines logged while a record is being worked on carry its id, so the
download, upload and write-back of one video can be followed in a
single grep:

    with record_log_context(record.record_id):
        ...

The CLI and the HTTP trigger both call setup_logging() once at startup.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from publisher.config import Settings


# Module name mapping: settings field suffix -> logger name
MODULE_LOGGERS = {
    "fetcher": "publisher.services.fetcher",
    "pipeline": "publisher.services.pipeline",
    "lifecycle": "publisher.services.lifecycle",
    "clients": "publisher.services.clients",
}

# Logger name prefix -> short label, first match wins
SHORT_NAMES = [
    ("publisher.services.clients.", ""),
    ("publisher.services.pipeline.", "pipeline."),
    ("publisher.services.", ""),
    ("publisher.api.", "api."),
    ("publisher.", ""),
]

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

# Record currently in flight, None between records
_current_record: ContextVar[str | None] = ContextVar("current_record", default=None)


@contextmanager
def record_log_context(record_id: str) -> Iterator[None]:
    """
    Tag every log line emitted inside the block with a record id.

    Args:
        record_id: Record being processed
    """
    token = _current_record.set(record_id)
    try:
        yield
    finally:
        _current_record.reset(token)


def current_record_id() -> str | None:
    """Record id set by the innermost record_log_context, if any."""
    return _current_record.get()


def short_logger_name(name: str) -> str:
    """
    Shorten a logger name for structured output.

    Example:
        >>> short_logger_name("publisher.services.clients.notion_client")
        'notion_client'
    """
    for prefix, label in SHORT_NAMES:
        if name.startswith(prefix):
            return label + name[len(prefix):]
    return name


class StructuredFormatter(logging.Formatter):
    """
    Structured log formatter for easy parsing.

    Format: timestamp | level | logger | [record] message
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record in structured format."""
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")

        # Record tag only while a record is in flight
        record_id = current_record_id()
        prefix = f"[{record_id}] " if record_id else ""

        message = (
            f"{timestamp} | "
            f"{record.levelname:8} | "
            f"{short_logger_name(record.name):15} | "
            f"{prefix}{record.getMessage()}"
        )

        # Add exception traceback if present
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(settings: "Settings") -> None:
    """
    Configure logging based on settings.

    Args:
        settings: Application settings with log configuration
    """
    # Parse root log level, unknown names fall back to INFO
    root_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    # Choose formatter
    if settings.log_format == "structured":
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    # Add stream handler
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(root_level)
    root_logger.addHandler(handler)

    # Configure per-module loggers
    _configure_module_loggers(settings, root_level)

    # Quiet noisy third-party loggers
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _configure_module_loggers(settings: "Settings", default_level: int) -> None:
    """
    Configure individual module log levels.

    Args:
        settings: Application settings
        default_level: Default log level to use
    """
    for module_key, logger_name in MODULE_LOGGERS.items():
        # Get level from settings (e.g., settings.log_level_fetcher)
        level_str = getattr(settings, f"log_level_{module_key}", None)

        if level_str:
            level = getattr(logging, level_str.upper(), default_level)
            logging.getLogger(logger_name).setLevel(level)
