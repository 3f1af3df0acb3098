"""Authenticating transports and the transport stack builder.

The stack, outermost first, is::

    wrappers... -> AuthenticatingTransport -> RetryTransport -> base transport

Every layer is an ``httpx`` transport, so any ``httpx.Client`` can use the
result directly.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Sequence
from urllib.request import getproxies_environment, proxy_bypass_environment

import httpx

from .config import RetryConfig, TransportConfig
from .context import resolve_traceparent
from .retry import AsyncRetryTransport, RetryTransport
from .security import sanitize_headers

logger = logging.getLogger(__name__)

HEADER_AUTHORIZATION = "Authorization"
HEADER_BACKEND_ID = "X-Backend-Id"
HEADER_USER_AGENT = "User-Agent"
HEADER_TRACEPARENT = "traceparent"
HEADER_CONTENT_TYPE = "Content-Type"

YAML_CONTENT_TYPE = "application/x-yaml"
TEXT_CONTENT_TYPE = "text/plain"

WORKFLOW_CREATE_PATH = "/api/workflows/create"
_LOOPBACK_HOSTS = {"", "localhost", "127.0.0.1", "::1"}
_MONITOR_GET_PATH = re.compile(r"/api/monitors/[^/\s]+/?")

TransportWrapper = Callable[[httpx.BaseTransport], httpx.BaseTransport]
AsyncTransportWrapper = Callable[[httpx.AsyncBaseTransport], httpx.AsyncBaseTransport]


def is_workflow_create_request(method: str, path: str) -> bool:
    """The workflow create endpoint expects a raw text body, not JSON."""
    return method == "POST" and path == WORKFLOW_CREATE_PATH


def is_monitor_get_path(path: str) -> bool:
    """Match ``/api/monitors/{id}`` (optional trailing slash) but never silences.

    The backend serves YAML here with an unreliable content type.
    """
    return bool(_MONITOR_GET_PATH.fullmatch(path)) and "silences" not in path


def environment_proxy(url: str) -> str | None:
    """Proxy selected for ``url`` by HTTP(S)_PROXY, ALL_PROXY and NO_PROXY."""
    target = httpx.URL(url)
    proxies = getproxies_environment()
    if target.host in _LOOPBACK_HOSTS or proxy_bypass_environment(target.host, proxies):
        return None
    proxy = proxies.get(target.scheme) or proxies.get("all")
    if proxy and "://" not in proxy:
        proxy = f"http://{proxy}"
    return proxy or None


def clone_request(request: httpx.Request) -> httpx.Request:
    """Copy ``request`` so headers can be changed without touching the original."""
    return httpx.Request(
        request.method,
        request.url,
        headers=httpx.Headers(request.headers),
        stream=request.stream,
        extensions=dict(request.extensions),
    )


class _AuthenticatingMixin:
    config: TransportConfig

    def _prepare(self, request: httpx.Request) -> httpx.Request:
        prepared = clone_request(request)
        headers = prepared.headers
        headers[HEADER_AUTHORIZATION] = f"Bearer {self.config.api_key}"
        headers[HEADER_BACKEND_ID] = self.config.backend_id
        headers[HEADER_USER_AGENT] = self.config.user_agent

        traceparent = resolve_traceparent(request)
        if traceparent:
            headers[HEADER_TRACEPARENT] = traceparent

        if is_workflow_create_request(prepared.method, prepared.url.path):
            headers[HEADER_CONTENT_TYPE] = TEXT_CONTENT_TYPE
        return prepared

    @staticmethod
    def _fix_response(request: httpx.Request, response: httpx.Response) -> httpx.Response:
        if request.method != "GET" or response.status_code != 200:
            return response
        if not is_monitor_get_path(request.url.path):
            return response
        content_type = response.headers.get(HEADER_CONTENT_TYPE, "")
        if not content_type.startswith(YAML_CONTENT_TYPE):
            response.headers[HEADER_CONTENT_TYPE] = YAML_CONTENT_TYPE
        return response


class AuthenticatingTransport(httpx.BaseTransport, _AuthenticatingMixin):
    """Inject auth and identity headers, then delegate to the retrying transport.

    The caller's request is cloned first; errors from the inner transport are
    re-raised untouched.
    """

    def __init__(self, config: TransportConfig, transport: httpx.BaseTransport) -> None:
        self.config = config
        self._transport = transport

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        prepared = self._prepare(request)
        response = self._transport.handle_request(prepared)
        return self._fix_response(prepared, response)

    def close(self) -> None:
        self._transport.close()


class AsyncAuthenticatingTransport(httpx.AsyncBaseTransport, _AuthenticatingMixin):
    def __init__(self, config: TransportConfig, transport: httpx.AsyncBaseTransport) -> None:
        self.config = config
        self._transport = transport

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        prepared = self._prepare(request)
        response = await self._transport.handle_async_request(prepared)
        return self._fix_response(prepared, response)

    async def aclose(self) -> None:
        await self._transport.aclose()


class LoggingTransport(httpx.BaseTransport):
    """Debug wrapper that logs each round trip with sensitive headers redacted."""

    def __init__(self, transport: httpx.BaseTransport, *, log: logging.Logger | None = None) -> None:
        self._transport = transport
        self._log = log or logger

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        self._log.debug("-> %s %s headers=%s", request.method, request.url, sanitize_headers(request.headers))
        try:
            response = self._transport.handle_request(request)
        except httpx.HTTPError as exc:
            self._log.debug("<- %s %s failed: %r", request.method, request.url, exc)
            raise
        self._log.debug("<- %s %s status=%s", request.method, request.url, response.status_code)
        return response

    def close(self) -> None:
        self._transport.close()


class AsyncLoggingTransport(httpx.AsyncBaseTransport):
    def __init__(self, transport: httpx.AsyncBaseTransport, *, log: logging.Logger | None = None) -> None:
        self._transport = transport
        self._log = log or logger

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self._log.debug("-> %s %s headers=%s", request.method, request.url, sanitize_headers(request.headers))
        try:
            response = await self._transport.handle_async_request(request)
        except httpx.HTTPError as exc:
            self._log.debug("<- %s %s failed: %r", request.method, request.url, exc)
            raise
        self._log.debug("<- %s %s status=%s", request.method, request.url, response.status_code)
        return response

    async def aclose(self) -> None:
        await self._transport.aclose()


def build_transport(
    config: TransportConfig,
    *,
    retry: RetryConfig | None = None,
    http_transport: httpx.BaseTransport | None = None,
    wrappers: Sequence[TransportWrapper] = (),
    base_url: str | None = None,
) -> httpx.BaseTransport:
    """Compose the sync transport stack.

    ``wrappers`` are applied in order around the authenticating transport, so
    the last one is the outermost layer. Without ``http_transport`` the base
    transport routes through the environment proxy chosen for ``base_url``.
    """
    if http_transport is None:
        http_transport = httpx.HTTPTransport(proxy=environment_proxy(base_url) if base_url else None)
    transport: httpx.BaseTransport = AuthenticatingTransport(config, RetryTransport(http_transport, retry))
    for wrap in wrappers:
        transport = wrap(transport)
    return transport


def build_async_transport(
    config: TransportConfig,
    *,
    retry: RetryConfig | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
    wrappers: Sequence[AsyncTransportWrapper] = (),
    base_url: str | None = None,
) -> httpx.AsyncBaseTransport:
    if http_transport is None:
        http_transport = httpx.AsyncHTTPTransport(proxy=environment_proxy(base_url) if base_url else None)
    transport: httpx.AsyncBaseTransport = AsyncAuthenticatingTransport(config, AsyncRetryTransport(http_transport, retry))
    for wrap in wrappers:
        transport = wrap(transport)
    return transport
