"""Main synchronous and asynchronous clients for the groundcover API."""

from __future__ import annotations

import gzip
import json
import logging
import os
from types import MappingProxyType
from typing import Any, Mapping, Sequence
from urllib.parse import quote

import httpx
import yaml
from pydantic import BaseModel

from .config import (
    API_KEY_ENV_VAR,
    BACKEND_ID_ENV_VAR,
    BASE_URL_ENV_VAR,
    DEFAULT_BASE_URL,
    RetryConfig,
    TransportConfig,
)
from .context import CANCEL_EXTENSION, TRACEPARENT_EXTENSION, current_traceparent
from .exceptions import (
    GroundcoverAuthError,
    GroundcoverHTTPError,
    GroundcoverNetworkError,
    GroundcoverRateLimitError,
    GroundcoverTimeoutError,
    GroundcoverValidationError,
)
from .models import (
    CreateMonitorResponse,
    EmptyResponse,
    EventsOverTimeRequest,
    EventsOverTimeResponse,
    MonitorModel,
    WorkflowCreateResponse,
    new_equal_string_condition,
)
from .request_options import RequestOptions
from .security import validate_base_url
from .transport import (
    AsyncTransportWrapper,
    TransportWrapper,
    build_async_transport,
    build_transport,
)

logger = logging.getLogger(__name__)

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_YAML = "application/x-yaml"
CONTENT_TYPE_TEXT = "text/plain"

REASON_OOM_KILLED = "OOMKilled"
TYPE_CONTAINER_CRASH = "container_crash"


def _normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    if not headers:
        return {}
    clean: dict[str, str] = {}
    for key, value in headers.items():
        clean[str(key)] = str(value)
    return clean


def _coerce_query_params(query: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if query is None:
        return None
    normalized: dict[str, Any] = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            normalized[key] = ["" if v is None else v for v in value]
            continue
        normalized[key] = value
    return normalized or None


def _model_payload(body: Any) -> Any:
    if isinstance(body, BaseModel):
        if hasattr(body, "to_payload"):
            return body.to_payload()
        return body.model_dump(mode="json", exclude_none=True)
    return body


def _encode_text(body: Any, content_type: str) -> bytes:
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode()
    raise GroundcoverValidationError(f"{content_type} body must be str or bytes, got {type(body).__name__}")


def encode_body(body: Any, content_type: str = CONTENT_TYPE_JSON, *, compress: bool = False) -> bytes | None:
    """Serialize ``body`` for ``content_type``; optionally gzip the result."""
    if body is None:
        return None
    if content_type == CONTENT_TYPE_YAML:
        if isinstance(body, (str, bytes)):
            payload = _encode_text(body, content_type)
        else:
            try:
                payload = yaml.safe_dump(_model_payload(body), sort_keys=False).encode()
            except yaml.YAMLError as exc:
                raise GroundcoverValidationError("error marshaling the body", cause=exc)
    elif content_type == CONTENT_TYPE_JSON:
        try:
            payload = json.dumps(_model_payload(body)).encode()
        except (TypeError, ValueError) as exc:
            raise GroundcoverValidationError("error marshaling the body", cause=exc)
    else:
        payload = _encode_text(body, content_type)

    if compress:
        payload = gzip.compress(payload)
    return payload


def _monitor_yaml(monitor: MonitorModel | Mapping[str, Any]) -> bytes:
    if isinstance(monitor, Mapping):
        monitor = MonitorModel.model_validate(monitor)
    return yaml.safe_dump(monitor.to_payload(), sort_keys=False).encode()


def _oom_events_request(request: EventsOverTimeRequest) -> EventsOverTimeRequest:
    conditions = list(request.conditions)
    conditions.append(new_equal_string_condition("reason", REASON_OOM_KILLED))
    conditions.append(new_equal_string_condition("type", TYPE_CONTAINER_CRASH))
    return request.model_copy(update={"conditions": conditions})


class _BaseGroundcoverClient:
    default_timeout = 30.0

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        backend_id: str | None = None,
        timeout: float = default_timeout,
        retry: RetryConfig | None = None,
        traceparent: str | None = None,
        gzip_requests: bool = False,
        allow_http: bool = False,
    ) -> None:
        self.base_url = (base_url or os.getenv(BASE_URL_ENV_VAR) or DEFAULT_BASE_URL).rstrip("/")
        validate_base_url(self.base_url, allow_http=allow_http)
        api_key = api_key or os.getenv(API_KEY_ENV_VAR)
        backend_id = backend_id or os.getenv(BACKEND_ID_ENV_VAR)
        if not api_key:
            raise GroundcoverValidationError(f"api_key is required (or set {API_KEY_ENV_VAR})")
        if not backend_id:
            raise GroundcoverValidationError(f"backend_id is required (or set {BACKEND_ID_ENV_VAR})")
        if timeout <= 0:
            raise GroundcoverValidationError("timeout must be greater than 0")

        self.config = TransportConfig(api_key=api_key, backend_id=backend_id)
        self.retry = retry or RetryConfig()
        self.timeout = timeout
        self.traceparent = traceparent
        self.gzip_requests = gzip_requests
        self._client_kwargs: dict[str, Any] = {
            "base_url": self.base_url,
            "timeout": timeout,
            "trust_env": False,
        }

    @staticmethod
    def _path(path: str) -> str:
        if "://" in path:
            raise GroundcoverValidationError("Full URLs are not allowed in path for request method")
        if not path.startswith("/"):
            raise GroundcoverValidationError("Path must be absolute and start with '/'")
        if "\x00" in path:
            raise GroundcoverValidationError("Invalid path characters")
        return path

    def _build_request(
        self,
        client: httpx.Client | httpx.AsyncClient,
        method: str,
        path: str,
        *,
        query: Mapping[str, Any] | None,
        body: Any,
        content_type: str,
        options: RequestOptions,
    ) -> httpx.Request:
        compress = self.gzip_requests if options.gzip is None else options.gzip
        content = encode_body(body, content_type, compress=compress)

        headers = _normalize_headers(options.headers)
        if content is not None:
            headers["Content-Type"] = content_type
            if compress:
                headers["Content-Encoding"] = "gzip"

        timeout = options.timeout if options.timeout is not None else self.timeout
        if timeout <= 0:
            raise GroundcoverValidationError("timeout must be greater than 0")

        params: dict[str, Any] = {}
        for source in (options.query, query):
            params.update(_coerce_query_params(source) or {})

        extensions: dict[str, Any] = {}
        traceparent = options.traceparent or current_traceparent() or self.traceparent
        if traceparent:
            extensions[TRACEPARENT_EXTENSION] = traceparent
        if options.cancel_event is not None:
            extensions[CANCEL_EXTENSION] = options.cancel_event

        return client.build_request(
            method.upper(),
            self._path(path),
            params=params or None,
            content=content,
            headers=headers,
            timeout=timeout,
            extensions=extensions,
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        parsed_body = None
        raw_body = response.text
        if "application/json" in response.headers.get("content-type", "").lower():
            try:
                parsed_body = response.json()
            except ValueError:
                parsed_body = None

        message = raw_body or "request failed"
        if isinstance(parsed_body, Mapping):
            for key in ("error", "message"):
                if isinstance(parsed_body.get(key), str):
                    message = parsed_body[key]
                    break

        kwargs = {
            "status_code": response.status_code,
            "body": parsed_body if parsed_body is not None else raw_body,
            "headers": MappingProxyType(dict(response.headers)),
            "request_id": response.headers.get("x-request-id"),
        }
        if response.status_code in {401, 403}:
            raise GroundcoverAuthError(message, **kwargs)
        if response.status_code == 429:
            raise GroundcoverRateLimitError(message, **kwargs)
        raise GroundcoverHTTPError(message, **kwargs)

    @staticmethod
    def _parse_response(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        content_type = response.headers.get("content-type", "").lower()
        if "application/json" in content_type:
            return response.json()
        return response.content


class GroundcoverClient(_BaseGroundcoverClient):
    """Synchronous client."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        backend_id: str | None = None,
        timeout: float = _BaseGroundcoverClient.default_timeout,
        retry: RetryConfig | None = None,
        traceparent: str | None = None,
        gzip_requests: bool = False,
        http_transport: httpx.BaseTransport | None = None,
        transport_wrappers: Sequence[TransportWrapper] = (),
        httpx_client: httpx.Client | None = None,
        allow_http: bool = False,
    ) -> None:
        super().__init__(
            base_url=base_url,
            api_key=api_key,
            backend_id=backend_id,
            timeout=timeout,
            retry=retry,
            traceparent=traceparent,
            gzip_requests=gzip_requests,
            allow_http=allow_http,
        )
        if httpx_client is None:
            transport = build_transport(
                self.config,
                retry=self.retry,
                http_transport=http_transport,
                wrappers=transport_wrappers,
                base_url=self.base_url,
            )
            httpx_client = httpx.Client(transport=transport, **self._client_kwargs)
        self._httpx = httpx_client

    def __enter__(self) -> "GroundcoverClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._httpx.close()

    def request(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        body: Any = None,
        content_type: str = CONTENT_TYPE_JSON,
        options: RequestOptions | None = None,
    ) -> Any:
        request = self._build_request(
            self._httpx,
            method,
            path,
            query=query,
            body=body,
            content_type=content_type,
            options=options or RequestOptions(),
        )
        try:
            response = self._httpx.send(request)
        except httpx.TimeoutException as exc:
            logger.debug("%s %s timed out", request.method, request.url.path)
            raise GroundcoverTimeoutError("Request timed out", cause=exc)
        except httpx.TransportError as exc:
            logger.debug("%s %s failed: %r", request.method, request.url.path, exc)
            raise GroundcoverNetworkError("Network error", cause=exc)

        self._raise_for_status(response)
        return self._parse_response(response)

    def create_monitor_yaml(self, monitor_yaml: bytes | str, *, options: RequestOptions | None = None) -> CreateMonitorResponse:
        result = self.request("POST", "/api/monitors", body=monitor_yaml, content_type=CONTENT_TYPE_YAML, options=options)
        return CreateMonitorResponse.model_validate(result)

    def create_monitor(self, monitor: MonitorModel | Mapping[str, Any], *, options: RequestOptions | None = None) -> CreateMonitorResponse:
        return self.create_monitor_yaml(_monitor_yaml(monitor), options=options)

    def get_monitor(self, monitor_id: str, *, options: RequestOptions | None = None) -> bytes:
        result = self.request("GET", f"/api/monitors/{quote(monitor_id, safe='')}", options=options)
        if result is None:
            return b""
        if isinstance(result, bytes):
            return result
        return json.dumps(result).encode()

    def update_monitor_yaml(
        self,
        monitor_id: str,
        monitor_yaml: bytes | str,
        *,
        options: RequestOptions | None = None,
    ) -> EmptyResponse:
        self.request(
            "PUT",
            f"/api/monitors/{quote(monitor_id, safe='')}",
            body=monitor_yaml,
            content_type=CONTENT_TYPE_YAML,
            options=options,
        )
        return EmptyResponse()

    def update_monitor(
        self,
        monitor_id: str,
        monitor: MonitorModel | Mapping[str, Any],
        *,
        options: RequestOptions | None = None,
    ) -> EmptyResponse:
        return self.update_monitor_yaml(monitor_id, _monitor_yaml(monitor), options=options)

    def delete_monitor(self, monitor_id: str, *, options: RequestOptions | None = None) -> EmptyResponse:
        self.request("DELETE", f"/api/monitors/{quote(monitor_id, safe='')}", options=options)
        return EmptyResponse()

    def create_workflow(self, definition: str, *, options: RequestOptions | None = None) -> WorkflowCreateResponse:
        result = self.request(
            "POST",
            "/api/workflows/create",
            body=definition,
            content_type=CONTENT_TYPE_TEXT,
            options=options,
        )
        return WorkflowCreateResponse.model_validate(result)

    def events_over_time(
        self,
        request: EventsOverTimeRequest | Mapping[str, Any],
        *,
        options: RequestOptions | None = None,
    ) -> EventsOverTimeResponse:
        if isinstance(request, Mapping):
            request = EventsOverTimeRequest.model_validate(request)
        result = self.request("POST", "/api/k8s/v2/events-over-time", body=request, options=options)
        return EventsOverTimeResponse.model_validate(result or {})

    def get_oom_events(self, request: EventsOverTimeRequest, *, options: RequestOptions | None = None) -> EventsOverTimeResponse:
        return self.events_over_time(_oom_events_request(request), options=options)


class AsyncGroundcoverClient(_BaseGroundcoverClient):
    """Asynchronous client."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        backend_id: str | None = None,
        timeout: float = _BaseGroundcoverClient.default_timeout,
        retry: RetryConfig | None = None,
        traceparent: str | None = None,
        gzip_requests: bool = False,
        http_transport: httpx.AsyncBaseTransport | None = None,
        transport_wrappers: Sequence[AsyncTransportWrapper] = (),
        httpx_client: httpx.AsyncClient | None = None,
        allow_http: bool = False,
    ) -> None:
        super().__init__(
            base_url=base_url,
            api_key=api_key,
            backend_id=backend_id,
            timeout=timeout,
            retry=retry,
            traceparent=traceparent,
            gzip_requests=gzip_requests,
            allow_http=allow_http,
        )
        if httpx_client is None:
            transport = build_async_transport(
                self.config,
                retry=self.retry,
                http_transport=http_transport,
                wrappers=transport_wrappers,
                base_url=self.base_url,
            )
            httpx_client = httpx.AsyncClient(transport=transport, **self._client_kwargs)
        self._httpx = httpx_client

    async def __aenter__(self) -> "AsyncGroundcoverClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._httpx.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        body: Any = None,
        content_type: str = CONTENT_TYPE_JSON,
        options: RequestOptions | None = None,
    ) -> Any:
        request = self._build_request(
            self._httpx,
            method,
            path,
            query=query,
            body=body,
            content_type=content_type,
            options=options or RequestOptions(),
        )
        try:
            response = await self._httpx.send(request)
        except httpx.TimeoutException as exc:
            logger.debug("%s %s timed out", request.method, request.url.path)
            raise GroundcoverTimeoutError("Request timed out", cause=exc)
        except httpx.TransportError as exc:
            logger.debug("%s %s failed: %r", request.method, request.url.path, exc)
            raise GroundcoverNetworkError("Network error", cause=exc)

        self._raise_for_status(response)
        return self._parse_response(response)

    async def create_monitor_yaml(self, monitor_yaml: bytes | str, *, options: RequestOptions | None = None) -> CreateMonitorResponse:
        result = await self.request("POST", "/api/monitors", body=monitor_yaml, content_type=CONTENT_TYPE_YAML, options=options)
        return CreateMonitorResponse.model_validate(result)

    async def create_monitor(self, monitor: MonitorModel | Mapping[str, Any], *, options: RequestOptions | None = None) -> CreateMonitorResponse:
        return await self.create_monitor_yaml(_monitor_yaml(monitor), options=options)

    async def get_monitor(self, monitor_id: str, *, options: RequestOptions | None = None) -> bytes:
        result = await self.request("GET", f"/api/monitors/{quote(monitor_id, safe='')}", options=options)
        if result is None:
            return b""
        if isinstance(result, bytes):
            return result
        return json.dumps(result).encode()

    async def update_monitor_yaml(self, monitor_id: str, monitor_yaml: bytes | str, *, options: RequestOptions | None = None) -> EmptyResponse:
        await self.request(
            "PUT",
            f"/api/monitors/{quote(monitor_id, safe='')}",
            body=monitor_yaml,
            content_type=CONTENT_TYPE_YAML,
            options=options,
        )
        return EmptyResponse()

    async def update_monitor(self, monitor_id: str, monitor: MonitorModel | Mapping[str, Any], *, options: RequestOptions | None = None) -> EmptyResponse:
        return await self.update_monitor_yaml(monitor_id, _monitor_yaml(monitor), options=options)

    async def delete_monitor(self, monitor_id: str, *, options: RequestOptions | None = None) -> EmptyResponse:
        await self.request("DELETE", f"/api/monitors/{quote(monitor_id, safe='')}", options=options)
        return EmptyResponse()

    async def create_workflow(self, definition: str, *, options: RequestOptions | None = None) -> WorkflowCreateResponse:
        result = await self.request(
            "POST",
            "/api/workflows/create",
            body=definition,
            content_type=CONTENT_TYPE_TEXT,
            options=options,
        )
        return WorkflowCreateResponse.model_validate(result)

    async def events_over_time(
        self,
        request: EventsOverTimeRequest | Mapping[str, Any],
        *,
        options: RequestOptions | None = None,
    ) -> EventsOverTimeResponse:
        if isinstance(request, Mapping):
            request = EventsOverTimeRequest.model_validate(request)
        result = await self.request("POST", "/api/k8s/v2/events-over-time", body=request, options=options)
        return EventsOverTimeResponse.model_validate(result or {})

    async def get_oom_events(self, request: EventsOverTimeRequest, *, options: RequestOptions | None = None) -> EventsOverTimeResponse:
        return await self.events_over_time(_oom_events_request(request), options=options)
