"""
Correlation IDs for grouping the log lines of one inbound command.

Each MQTT message and HTTP request runs under its own ID, so the
"relay on" / "relay off" lines of a pulse can be matched to the request
that caused it even when pulses on both channels interleave.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "get_correlation_id",
    "new_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "charon_correlation_id",
    default=None,
)


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Run a block under a correlation ID, restoring the previous one afterwards.

    Args:
        correlation_id: ID to use; a fresh one is generated when omitted

    Yields:
        The active correlation ID
    """
    if correlation_id is None:
        correlation_id = new_correlation_id()
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)

