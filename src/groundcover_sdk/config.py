"""Immutable configuration shared by the transport stack."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .exceptions import GroundcoverValidationError

DEFAULT_RETRY_COUNT = 3
DEFAULT_MIN_WAIT = 1.0
DEFAULT_MAX_WAIT = 30.0
DEFAULT_RETRY_STATUSES = frozenset({503, 429, 504, 502})
DEFAULT_JITTER_RATIO = 0.5

DEFAULT_USER_AGENT = "groundcover-python-sdk"
DEFAULT_BASE_URL = "https://api.groundcover.com"

API_KEY_ENV_VAR = "GROUNDCOVER_API_KEY"
BACKEND_ID_ENV_VAR = "GROUNDCOVER_BACKEND_ID"
BASE_URL_ENV_VAR = "GROUNDCOVER_API_URL"


@dataclass(frozen=True)
class RetryConfig:
    """Retry parameters; waits are in seconds.

    Zero, negative or empty values fall back to the package defaults, so
    ``RetryConfig(0, 0, 0, frozenset())`` equals ``RetryConfig()``.
    """

    retry_count: int = DEFAULT_RETRY_COUNT
    min_wait: float = DEFAULT_MIN_WAIT
    max_wait: float = DEFAULT_MAX_WAIT
    retry_statuses: Iterable[int] = field(default=DEFAULT_RETRY_STATUSES)
    jitter_ratio: float = DEFAULT_JITTER_RATIO

    def __post_init__(self) -> None:
        if not self.retry_count or self.retry_count <= 0:
            object.__setattr__(self, "retry_count", DEFAULT_RETRY_COUNT)
        if not self.min_wait or self.min_wait <= 0:
            object.__setattr__(self, "min_wait", DEFAULT_MIN_WAIT)
        if not self.max_wait or self.max_wait <= 0:
            object.__setattr__(self, "max_wait", DEFAULT_MAX_WAIT)
        statuses = frozenset(int(s) for s in (self.retry_statuses or ()))
        object.__setattr__(self, "retry_statuses", statuses or DEFAULT_RETRY_STATUSES)

        if self.min_wait > self.max_wait:
            raise GroundcoverValidationError("min_wait must not exceed max_wait")
        if self.jitter_ratio < 0:
            raise GroundcoverValidationError("jitter_ratio must be non-negative")


@dataclass(frozen=True)
class TransportConfig:
    api_key: str
    backend_id: str
    user_agent: str = DEFAULT_USER_AGENT

    def __repr__(self) -> str:
        return f"TransportConfig(api_key='[REDACTED]', backend_id={self.backend_id!r}, user_agent={self.user_agent!r})"
