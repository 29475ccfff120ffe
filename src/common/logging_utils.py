"""Centralized logging helpers.

All log output goes to stderr so a launched script's stdout stays untouched.
Structured debug events are attached through ``extra_context`` and only
rendered when the effective level is DEBUG.
"""

from __future__ import annotations

import logging
import os
import sys
import time
from typing import Any, Dict, Optional

from constants import Constants

_HANDLER_NAME = "nhx-stderr"


class _ContextFormatter(logging.Formatter):
    """Formatter that appends structured context fields at DEBUG level."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        ctx = getattr(record, "nhx_context", None)
        if ctx and record.levelno <= logging.DEBUG:
            pairs = " ".join(f"{k}={v}" for k, v in ctx.items())
            return f"{base} [{pairs}]"
        return base


def _resolve_level(name: Optional[str]) -> int:
    level = getattr(logging, str(name or "").upper(), None)
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(level: Optional[str] = None) -> None:
    """Install the stderr handler on the root logger.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Explicit level name. Defaults to NHX_LOG_LEVEL, then
            Constants.LOG_LEVEL.
    """
    root = logging.getLogger()
    if not any(getattr(h, "name", None) == _HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.name = _HANDLER_NAME
        handler.setFormatter(_ContextFormatter(Constants.LOG_FORMAT))
        root.addHandler(handler)

    name = level or os.environ.get(Constants.ENV_LOG_LEVEL) or Constants.LOG_LEVEL
    root.setLevel(_resolve_level(name))


def add_file_handler(path: str) -> None:
    """Mirror log output into a file."""
    file_handler = logging.FileHandler(path)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
    logging.getLogger().addHandler(file_handler)


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records from this logger would be emitted."""
    return logger.isEnabledFor(logging.DEBUG)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build the ``extra`` mapping for a structured log call.

    None values are dropped so call sites can pass optional fields freely.
    """
    return {"nhx_context": {k: v for k, v in fields.items() if v is not None}}


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.monotonic()
        return self

    def __exit__(self, *exc: Any) -> None:
        self._end = time.monotonic()

    def duration_ms(self) -> int:
        end = self._end if self._end is not None else time.monotonic()
        return int((end - self._start) * 1000)
