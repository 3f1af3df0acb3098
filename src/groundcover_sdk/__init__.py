"""Python SDK for the groundcover REST API."""

from .client import AsyncGroundcoverClient, GroundcoverClient, encode_body
from .config import RetryConfig, TransportConfig
from .context import CANCEL_EXTENSION, TRACEPARENT_EXTENSION, with_request_traceparent
from .exceptions import (
    GroundcoverAuthError,
    GroundcoverCancelledError,
    GroundcoverError,
    GroundcoverHTTPError,
    GroundcoverNetworkError,
    GroundcoverRateLimitError,
    GroundcoverTimeoutError,
    GroundcoverValidationError,
)
from .request_options import RequestOptions
from .retry import AsyncRetryTransport, RetryTransport, backoff_ceiling, jittered_backoff
from .transport import (
    AsyncAuthenticatingTransport,
    AsyncLoggingTransport,
    AuthenticatingTransport,
    LoggingTransport,
    build_async_transport,
    build_transport,
    environment_proxy,
    is_monitor_get_path,
    is_workflow_create_request,
)

__version__ = "0.1.0"

__all__ = [
    "AsyncAuthenticatingTransport",
    "AsyncGroundcoverClient",
    "AsyncLoggingTransport",
    "AsyncRetryTransport",
    "AuthenticatingTransport",
    "CANCEL_EXTENSION",
    "GroundcoverAuthError",
    "GroundcoverCancelledError",
    "GroundcoverClient",
    "GroundcoverError",
    "GroundcoverHTTPError",
    "GroundcoverNetworkError",
    "GroundcoverRateLimitError",
    "GroundcoverTimeoutError",
    "GroundcoverValidationError",
    "LoggingTransport",
    "RequestOptions",
    "RetryConfig",
    "RetryTransport",
    "TRACEPARENT_EXTENSION",
    "TransportConfig",
    "backoff_ceiling",
    "build_async_transport",
    "build_transport",
    "environment_proxy",
    "encode_body",
    "is_monitor_get_path",
    "is_workflow_create_request",
    "jittered_backoff",
    "with_request_traceparent",
]
