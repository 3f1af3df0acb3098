"""Request-scoped overrides read by the transport stack."""

from __future__ import annotations

import contextvars
import threading
from contextlib import contextmanager
from typing import Iterator

import httpx

TRACEPARENT_EXTENSION = "traceparent"
CANCEL_EXTENSION = "cancel_event"

_traceparent_override: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "groundcover_traceparent", default=None
)


@contextmanager
def with_request_traceparent(traceparent: str) -> Iterator[None]:
    """Send ``traceparent`` on every request issued inside the block.

    The value lives in a context variable, so it follows the calling thread or
    asyncio task and never leaks into concurrent calls.
    """
    token = _traceparent_override.set(traceparent)
    try:
        yield
    finally:
        _traceparent_override.reset(token)


def current_traceparent() -> str | None:
    return _traceparent_override.get() or None


def resolve_traceparent(request: httpx.Request) -> str | None:
    return request.extensions.get(TRACEPARENT_EXTENSION) or current_traceparent()


def cancel_event_for(request: httpx.Request) -> threading.Event | None:
    event = request.extensions.get(CANCEL_EXTENSION)
    if isinstance(event, threading.Event):
        return event
    return None
