"""Status-code driven retry transports with capped, jittered exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import random
import threading
import time

import httpx

from .config import RetryConfig
from .context import cancel_event_for
from .exceptions import GroundcoverCancelledError

logger = logging.getLogger(__name__)

_CANCEL_POLL_INTERVAL = 0.05


def backoff_ceiling(attempt: int, min_wait: float, max_wait: float) -> float:
    """Un-jittered delay before retry number ``attempt`` (0-based)."""
    if attempt < 0:
        attempt = 0
    # Avoid float overflow for very large attempt counts.
    if attempt >= 64:
        return max_wait
    return min(max_wait, min_wait * (2**attempt))


def jittered_backoff(
    attempt: int,
    min_wait: float,
    max_wait: float,
    *,
    jitter_ratio: float = 0.5,
    rng: random.Random | None = None,
) -> float:
    ceiling = backoff_ceiling(attempt, min_wait, max_wait)
    uniform = rng.uniform if rng is not None else random.uniform
    jitter = uniform(0, ceiling * jitter_ratio) if jitter_ratio > 0 else 0.0
    return min(max_wait, ceiling + jitter)


async def _wait_for_event(event: threading.Event, timeout: float) -> bool:
    """Sleep up to ``timeout`` seconds, returning early once ``event`` is set."""
    deadline = time.monotonic() + timeout
    while not event.is_set():
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return False
        await asyncio.sleep(min(remaining, _CANCEL_POLL_INTERVAL))
    return True


class _RetryDecisions:
    def __init__(self, config: RetryConfig | None = None, *, rng: random.Random | None = None) -> None:
        self.config = config or RetryConfig()
        self._rng = rng

    def should_retry(self, response: httpx.Response, retries: int) -> bool:
        if retries >= self.config.retry_count:
            return False
        return response.status_code in self.config.retry_statuses

    def delay(self, attempt: int) -> float:
        return jittered_backoff(
            attempt,
            self.config.min_wait,
            self.config.max_wait,
            jitter_ratio=self.config.jitter_ratio,
            rng=self._rng,
        )

    def log_retry(self, request: httpx.Request, response: httpx.Response, retries: int, wait: float) -> None:
        logger.debug(
            "Retrying %s %s after status %s (retry %d/%d, waiting %.3fs)",
            request.method,
            request.url.path,
            response.status_code,
            retries + 1,
            self.config.retry_count,
            wait,
        )


class RetryTransport(httpx.BaseTransport, _RetryDecisions):
    """Re-issue requests whose response status is configured as retryable.

    Transport errors raised by the wrapped transport propagate immediately.
    After the last retry the final response is returned whatever its status.
    """

    def __init__(
        self,
        transport: httpx.BaseTransport,
        config: RetryConfig | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        _RetryDecisions.__init__(self, config, rng=rng)
        self._transport = transport

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        cancel_event = cancel_event_for(request)
        retries = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise GroundcoverCancelledError("Request cancelled")
            response = self._transport.handle_request(request)
            if not self.should_retry(response, retries):
                return response

            wait = self.delay(retries)
            self.log_retry(request, response, retries, wait)
            response.close()
            if cancel_event is not None:
                if cancel_event.wait(wait):
                    raise GroundcoverCancelledError("Request cancelled while waiting to retry")
            else:
                time.sleep(wait)
            retries += 1

    def close(self) -> None:
        self._transport.close()


class AsyncRetryTransport(httpx.AsyncBaseTransport, _RetryDecisions):
    """Async counterpart of :class:`RetryTransport`.

    Backoff waits use ``asyncio.sleep`` so cancelling the calling task aborts
    the wait immediately. A cancel event attached to the request is polled
    during the wait and checked before every attempt.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        config: RetryConfig | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        _RetryDecisions.__init__(self, config, rng=rng)
        self._transport = transport

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        cancel_event = cancel_event_for(request)
        retries = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise GroundcoverCancelledError("Request cancelled")
            response = await self._transport.handle_async_request(request)
            if not self.should_retry(response, retries):
                return response

            wait = self.delay(retries)
            self.log_retry(request, response, retries, wait)
            await response.aclose()
            if cancel_event is not None:
                if await _wait_for_event(cancel_event, wait):
                    raise GroundcoverCancelledError("Request cancelled while waiting to retry")
            else:
                await asyncio.sleep(wait)
            retries += 1

    async def aclose(self) -> None:
        await self._transport.aclose()
