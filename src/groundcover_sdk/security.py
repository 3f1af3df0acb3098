"""Header redaction and URL validation helpers."""

from __future__ import annotations

from typing import Mapping
from urllib.parse import urlparse

from .exceptions import GroundcoverValidationError

SENSITIVE_HEADERS = {
    "authorization",
    "x-api-key",
    "x-backend-id",
    "cookie",
}


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return headers with sensitive values redacted for logging."""
    redacted: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            redacted[key] = "[REDACTED]"
        else:
            redacted[key] = value
    return redacted


def validate_base_url(url: str, *, allow_http: bool = False) -> None:
    """Validate base URL to avoid scheme abuse and plaintext API keys."""
    if "\x00" in url:
        raise GroundcoverValidationError("Invalid base_url")
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise GroundcoverValidationError("base_url must include scheme and host")
    if parsed.scheme not in {"http", "https"}:
        raise GroundcoverValidationError(f"Unsupported base_url scheme: {parsed.scheme}")
    if parsed.scheme == "http" and not allow_http:
        allowed = {"localhost", "127.0.0.1", "::1"}
        host = (parsed.hostname or "").lower()
        if host not in allowed:
            raise GroundcoverValidationError("Non-HTTPS base_url is not allowed without allow_http=True")
