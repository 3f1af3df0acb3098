"""Per-request overrides for the groundcover clients."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class RequestOptions:
    """Overrides applied to a single call.

    ``cancel_event`` is checked before every attempt and while waiting between
    retries, in both the sync and async clients. It does not interrupt a
    network call already in flight; bound those with ``timeout``.
    """

    timeout: float | None = None
    headers: Mapping[str, str] | None = None
    query: Mapping[str, object] | None = None
    traceparent: str | None = None
    gzip: bool | None = None
    cancel_event: threading.Event | None = None
