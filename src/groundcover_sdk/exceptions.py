"""SDK-specific exceptions."""

from __future__ import annotations

from typing import Mapping


class GroundcoverError(Exception):
    """Base exception for all groundcover SDK failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: object = None,
        headers: Mapping[str, str] | None = None,
        request_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers) if headers is not None else {}
        self.request_id = request_id
        self.cause = cause

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.status_code is None:
            return str(self.args[0])
        return f"{self.status_code}: {self.args[0]}"


class GroundcoverValidationError(GroundcoverError):
    """Raised when a request cannot be built or a configuration is invalid."""


class GroundcoverHTTPError(GroundcoverError):
    """Raised for HTTP non-success responses."""


class GroundcoverAuthError(GroundcoverHTTPError):
    """Raised for authentication and authorization failures."""


class GroundcoverRateLimitError(GroundcoverHTTPError):
    """Raised for HTTP 429 responses that survived every retry."""


class GroundcoverNetworkError(GroundcoverError):
    """Raised for transport-level failures like DNS and TCP errors."""


class GroundcoverTimeoutError(GroundcoverNetworkError):
    """Raised when a request exceeds configured timeout."""


class GroundcoverCancelledError(GroundcoverError):
    """Raised when a request is cancelled while waiting to be retried."""
