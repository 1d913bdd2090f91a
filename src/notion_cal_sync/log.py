"""Structured logging setup for notion-cal-sync.

Provides a consistent log format across the application with ISO 8601
timestamps and pipe-separated fields, plus a small adapter that tags every
line emitted during a sync cycle with the cycle identifier.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Sentinel to detect handlers added by setup_logging so repeated calls
# are idempotent without interfering with handlers added externally.
_HANDLER_ATTR = "_notion_cal_sync_log_handler"

# Client libraries that log every HTTP request at INFO/DEBUG.
_NOISY_LOGGERS = (
    "googleapiclient.discovery_cache",
    "googleapiclient.discovery",
    "httpx",
    "httpcore",
    "notion_client",
)


def setup_logging(level: str = "INFO", quiet_libraries: bool = True) -> None:
    """Configure the root logger with the project formatter.

    Sets the root logger level and attaches a single stderr
    :class:`logging.StreamHandler`.  Calling this function again only
    updates the level of the existing handler.

    Args:
        level: A standard logging level name (e.g. ``"DEBUG"``).
        quiet_libraries: Clamp the HTTP client loggers to ``WARNING`` so a
            cycle log stays readable at ``INFO``.

    Raises:
        ValueError: If *level* is not a recognised logging level string.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level!r}")

    root = logging.getLogger()
    root.setLevel(numeric_level)

    if quiet_libraries:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    for handler in root.handlers:
        if getattr(handler, _HANDLER_ATTR, False):
            handler.setLevel(numeric_level)
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))

    setattr(handler, _HANDLER_ATTR, True)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Return a named logger (thin wrapper over :func:`logging.getLogger`)."""
    return logging.getLogger(name)


class CycleLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with ``[cycle <id>]``.

    Used by the orchestrator so that interleaved output from concurrent
    action threads can be attributed to one cycle.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        cycle_id = (self.extra or {}).get("cycle_id", "-")
        return f"[cycle {cycle_id}] {msg}", kwargs


def cycle_logger(name: str, cycle_id: str) -> CycleLoggerAdapter:
    """Return a :class:`CycleLoggerAdapter` bound to *cycle_id*."""
    return CycleLoggerAdapter(logging.getLogger(name), {"cycle_id": cycle_id})
