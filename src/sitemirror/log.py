"""
Logging setup for the crawler.
"""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TextIO

LOGGER_NAME = "sitemirror"


@dataclass(frozen=True)
class LogConfig:
    """How the crawler should log. Passed to ``configure_logging``."""
    verbose: bool = False
    stream: TextIO = field(default_factory=lambda: sys.stderr)


class IsoFormatter(logging.Formatter):
    """Formats records as ``<ISO UTC timestamp> [LEVEL] message``."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def configure_logging(config: LogConfig) -> logging.Logger:
    """Install a single stream handler on the package logger and return it."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if config.verbose else logging.INFO)

    # Replace handlers so repeated calls (tests, re-runs) don't duplicate output
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(config.stream)
    handler.setFormatter(IsoFormatter("%(asctime)s [%(levelname)s] %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
