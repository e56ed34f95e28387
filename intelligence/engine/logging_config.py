"""
Central logging configuration for the engine and its HTTP surface.
- One-line format: timestamp, level, logger name, message.
- LOG_LEVEL from env, else config `log_level`, else INFO.
- Uvicorn loggers share the same handler so API and engine lines interleave cleanly.
"""
from __future__ import annotations

import logging
import os
import sys

from .config_loader import get


class FlushingStreamHandler(logging.StreamHandler):
    """StreamHandler that flushes after each record so logs appear immediately under uvicorn."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


def resolve_level() -> int:
    level_name = (os.environ.get("LOG_LEVEL") or get("log_level") or "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def configure_logging() -> None:
    """Configure root and uvicorn loggers. Call once at startup (e.g. in lifespan)."""
    level = resolve_level()
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = FlushingStreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = []
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        log = logging.getLogger(name)
        log.handlers = []
        log.addHandler(handler)
        log.setLevel(level)

    access_log = os.environ.get("UVICORN_ACCESS_LOG", "1").lower() in ("1", "true", "yes")
    if not access_log:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
