"""structlog setup for portsweep."""

import logging
from pathlib import Path
from typing import TextIO

import structlog

LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def configure_logging(level: str = "WARNING", log_file: Path | None = None) -> TextIO | None:
    """
    Configure structlog for the session.

    The terminal belongs to the TUI, so without a log file every event is
    dropped. Returns the opened log file so the caller can close it on exit.
    """
    if log_file is None:
        structlog.configure(
            processors=[structlog.processors.KeyValueRenderer()],
            wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL),
            logger_factory=structlog.ReturnLoggerFactory(),
            cache_logger_on_first_use=False,
        )
        return None

    name = level.upper()
    min_level = getattr(logging, name) if name in LEVELS else logging.WARNING
    stream = open(log_file, "a", encoding="utf-8")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"]),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        logger_factory=structlog.WriteLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )
    return stream
