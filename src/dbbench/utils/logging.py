"""Logging utilities for dbbench."""

import logging
import sys

from pythonjsonlogger import jsonlogger

# Readiness probes poll over HTTP; per-request logs drown out the CLI's own
_QUIET_LOGGERS = ("httpx", "httpcore")


def _parse_level(log_level: str) -> int:
    level = logging.getLevelName(str(log_level).upper())
    return level if isinstance(level, int) else logging.WARNING


def setup_logging(log_level: str = "WARNING", log_format: str = "text") -> None:
    """
    Configure the root logger for a dbbench invocation.

    Records go to stderr so that what commands print on stdout (connection
    strings, JSON listings) can be piped. Unknown level names fall back to
    WARNING.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Format type (json or text)
    """
    level = _parse_level(log_level)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if log_format.lower() == "json":
        formatter = jsonlogger.JsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
            static_fields={"app": "dbbench"},
            timestamp=True,
        )
    else:
        formatter = logging.Formatter("%(levelname)s %(name)s: %(message)s")

    handler.setFormatter(formatter)
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the given name.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
