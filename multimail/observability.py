"""
Logging support for Multimail.

Contextual fields (request id, template, ...) are kept in a contextvar
so they follow a logical call across await points, and are copied
onto worker threads together with the rest of the caller's context
by the dispatcher.

Usage:
    configure_logging()

    with log_context(request_id="abc-123"):
        logger.info("Sending")  # record.request_id == "abc-123"
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"

_log_context: ContextVar[dict[str, Any]] = ContextVar("multimail_log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Add fields to the logging context of the current task/thread."""
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Drop all fields from the current logging context."""
    _log_context.set({})


@contextmanager
def log_context(**kwargs: Any) -> Iterator[dict[str, Any]]:
    """
    Temporarily extend the logging context.

    The previous context is restored on exit, whatever the exit path.
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    token = _log_context.set(current)
    try:
        yield current
    finally:
        _log_context.reset(token)


class ContextInjectingFilter(logging.Filter):
    """
    Copies the logging context onto each LogRecord.

    ``request_id`` is always present (``"-"`` when unset) so format
    strings can reference it unconditionally.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def configure_logging(level: int | str = logging.INFO, fmt: str = DEFAULT_FORMAT) -> None:
    """
    Configure root logging with context injection.

    Safe to call more than once; the filter is attached to each root
    handler a single time.
    """
    logging.basicConfig(level=level, format=fmt)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if not any(isinstance(f, ContextInjectingFilter) for f in handler.filters):
            handler.addFilter(ContextInjectingFilter())
