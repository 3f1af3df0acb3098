from __future__ import annotations

import asyncio
import random
import threading
import time

import httpx
import pytest

from groundcover_sdk.config import RetryConfig
from groundcover_sdk.context import CANCEL_EXTENSION
from groundcover_sdk.exceptions import GroundcoverCancelledError
from groundcover_sdk.retry import AsyncRetryTransport, RetryTransport, backoff_ceiling, jittered_backoff

FAST = RetryConfig(retry_count=2, min_wait=0.01, max_wait=0.05, retry_statuses=frozenset({503}))


def _sequence(statuses: list[int]) -> tuple[httpx.MockTransport, list[httpx.Request]]:
    seen: list[httpx.Request] = []
    remaining = iter(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(next(remaining), json={"attempt": len(seen)})

    return httpx.MockTransport(handler), seen


def test_retries_until_success() -> None:
    base, seen = _sequence([503, 503, 200])
    transport = RetryTransport(base, FAST)

    response = transport.handle_request(httpx.Request("GET", "https://api.example.com/api/a"))

    assert response.status_code == 200
    assert len(seen) == 3


def test_returns_last_response_after_exhausting_retries() -> None:
    base, seen = _sequence([503, 503, 503, 200])
    transport = RetryTransport(base, FAST)

    response = transport.handle_request(httpx.Request("GET", "https://api.example.com/api/a"))

    assert response.status_code == 503
    assert len(seen) == 3
    response.read()
    assert response.json() == {"attempt": 3}


def test_non_retryable_status_is_returned_immediately() -> None:
    base, seen = _sequence([429, 200])
    transport = RetryTransport(base, FAST)

    response = transport.handle_request(httpx.Request("GET", "https://api.example.com/api/a"))

    assert response.status_code == 429
    assert len(seen) == 1


def test_zero_values_use_default_policy(monkeypatch: pytest.MonkeyPatch) -> None:
    sleeps: list[float] = []
    monkeypatch.setattr("groundcover_sdk.retry.time.sleep", sleeps.append)
    base, seen = _sequence([503, 200])
    transport = RetryTransport(base, RetryConfig(0, 0, 0, frozenset()))

    response = transport.handle_request(httpx.Request("GET", "https://api.example.com/api/a"))

    assert response.status_code == 200
    assert len(seen) == 2
    assert len(sleeps) == 1
    assert 1.0 <= sleeps[0] <= 1.5


def test_post_body_is_replayed_on_retry() -> None:
    bodies: list[bytes] = []
    statuses = iter([502, 201])

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(request.read())
        return httpx.Response(next(statuses))

    transport = RetryTransport(httpx.MockTransport(handler), RetryConfig(min_wait=0.001, max_wait=0.002))

    response = transport.handle_request(
        httpx.Request("POST", "https://api.example.com/api/monitors", content=b"title: cpu\n")
    )

    assert response.status_code == 201
    assert bodies == [b"title: cpu\n", b"title: cpu\n"]


def test_transport_errors_are_not_retried() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("connection refused", request=request)

    transport = RetryTransport(httpx.MockTransport(handler), FAST)

    with pytest.raises(httpx.ConnectError):
        transport.handle_request(httpx.Request("GET", "https://api.example.com/api/a"))
    assert calls == 1


def test_backoff_ceiling_is_monotonic_and_capped() -> None:
    delays = [backoff_ceiling(attempt, 0.01, 0.05) for attempt in range(10)]

    assert delays[0] == pytest.approx(0.01)
    assert all(a <= b for a, b in zip(delays, delays[1:]))
    assert max(delays) == pytest.approx(0.05)
    assert backoff_ceiling(1000, 1.0, 30.0) == 30.0


def test_jittered_backoff_stays_within_bounds() -> None:
    rng = random.Random(7)
    for attempt in range(12):
        delay = jittered_backoff(attempt, 1.0, 30.0, rng=rng)
        ceiling = backoff_ceiling(attempt, 1.0, 30.0)
        assert ceiling <= delay <= min(30.0, ceiling * 1.5)


def test_jittered_backoff_without_jitter_is_monotonic() -> None:
    delays = [jittered_backoff(attempt, 1.0, 30.0, jitter_ratio=0) for attempt in range(8)]

    assert delays == sorted(delays)
    assert delays[-1] == 30.0


def test_cancel_event_interrupts_backoff_wait() -> None:
    base, seen = _sequence([503, 200])
    transport = RetryTransport(base, RetryConfig(retry_count=3, min_wait=10.0, max_wait=10.0))
    cancel = threading.Event()
    request = httpx.Request("GET", "https://api.example.com/api/a", extensions={CANCEL_EXTENSION: cancel})

    timer = threading.Timer(0.05, cancel.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(GroundcoverCancelledError):
            transport.handle_request(request)
    finally:
        timer.cancel()

    assert time.monotonic() - started < 5.0
    assert len(seen) == 1


def test_cancelled_request_is_never_issued() -> None:
    base, seen = _sequence([200])
    cancel = threading.Event()
    cancel.set()
    transport = RetryTransport(base, FAST)

    with pytest.raises(GroundcoverCancelledError):
        transport.handle_request(
            httpx.Request("GET", "https://api.example.com/api/a", extensions={CANCEL_EXTENSION: cancel})
        )
    assert seen == []


def test_async_retries_until_success() -> None:
    base, seen = _sequence([503, 503, 200])
    transport = AsyncRetryTransport(base, FAST)

    response = asyncio.run(transport.handle_async_request(httpx.Request("GET", "https://api.example.com/api/a")))

    assert response.status_code == 200
    assert len(seen) == 3


def test_async_task_cancellation_interrupts_backoff_wait() -> None:
    base, seen = _sequence([503, 200])
    transport = AsyncRetryTransport(base, RetryConfig(retry_count=3, min_wait=10.0, max_wait=10.0))

    async def run() -> float:
        task = asyncio.create_task(
            transport.handle_async_request(httpx.Request("GET", "https://api.example.com/api/a"))
        )
        await asyncio.sleep(0.05)
        started = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return time.monotonic() - started

    assert asyncio.run(run()) < 1.0
    assert len(seen) == 1


def test_async_cancel_event_interrupts_backoff_wait() -> None:
    base, seen = _sequence([503, 200])
    transport = AsyncRetryTransport(base, RetryConfig(retry_count=3, min_wait=10.0, max_wait=10.0))
    cancel = threading.Event()
    request = httpx.Request("GET", "https://api.example.com/api/a", extensions={CANCEL_EXTENSION: cancel})

    async def run() -> None:
        asyncio.get_running_loop().call_later(0.05, cancel.set)
        await transport.handle_async_request(request)

    started = time.monotonic()
    with pytest.raises(GroundcoverCancelledError):
        asyncio.run(run())

    assert time.monotonic() - started < 5.0
    assert len(seen) == 1


def test_async_cancelled_request_is_never_issued() -> None:
    base, seen = _sequence([200])
    cancel = threading.Event()
    cancel.set()
    transport = AsyncRetryTransport(base, FAST)
    request = httpx.Request("GET", "https://api.example.com/api/a", extensions={CANCEL_EXTENSION: cancel})

    with pytest.raises(GroundcoverCancelledError):
        asyncio.run(transport.handle_async_request(request))
    assert seen == []
