"""Classified retry with exponential backoff and jitter for async operations."""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from .errors import (
    AuthError,
    ConnectivityError,
    EmptyResponseError,
    PipelineCancelledError,
    RateLimitError,
    RequestRejectedError,
    ServerError,
)

__all__ = [
    "RetryOptions",
    "RetryPolicy",
    "is_retryable_error",
    "base_delay_ms",
    "compute_delay_ms",
    "with_retry",
    "retryable",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryObserver = Callable[[int, BaseException, int], None]
Sleeper = Callable[[float], Awaitable[Any]]

JITTER_RATIO = 0.25

_RETRYABLE_MESSAGES = (
    "rate limit",
    "timeout",
    "network",
    "connection",
    "temporarily unavailable",
    "service unavailable",
    "too many requests",
)
_RETRYABLE_CODES = {"RATE_LIMIT_EXCEEDED", "ETIMEDOUT", "ECONNRESET"}


def is_retryable_error(error: BaseException) -> bool:
    """Return ``True`` for transient failures worth another attempt."""

    if isinstance(error, (AuthError, RequestRejectedError, EmptyResponseError)):
        return False
    if isinstance(error, (RateLimitError, ServerError, ConnectivityError)):
        return True
    if isinstance(error, (TimeoutError, ConnectionResetError)):
        return True
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True

    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "status", None)
    if isinstance(status, int) and (status == 429 or 500 <= status < 600):
        return True

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.upper() in _RETRYABLE_CODES:
        return True

    message = str(error).lower()
    return any(token in message for token in _RETRYABLE_MESSAGES)


@dataclass(frozen=True, slots=True)
class RetryOptions:
    """Pure retry configuration. Delays are expressed in milliseconds."""

    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_multiplier: float = 2.0
    retryable: Callable[[BaseException], bool] = field(default=is_retryable_error)
    on_retry: Optional[RetryObserver] = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")


def base_delay_ms(attempt: int, options: RetryOptions) -> float:
    """Pre-jitter delay after the given (1-indexed) failed attempt."""

    exponential = options.initial_delay_ms * options.backoff_multiplier ** (attempt - 1)
    return min(exponential, options.max_delay_ms)


def compute_delay_ms(attempt: int, options: RetryOptions, rng: random.Random | None = None) -> int:
    """Capped exponential delay jittered uniformly by +/-25% and rounded."""

    capped = base_delay_ms(attempt, options)
    source = rng or random
    jitter = capped * JITTER_RATIO * (source.random() * 2 - 1)
    return round(capped + jitter)


class RetryPolicy:
    """Runs an async operation until it succeeds, fails terminally, or runs out of attempts.

    The policy holds no per-call state, so a single instance can be shared.
    ``sleep`` and ``rng`` are injectable to keep tests fast and deterministic.
    """

    def __init__(
        self,
        *,
        sleep: Sleeper | None = None,
        rng: random.Random | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self._sleep = sleep or asyncio.sleep
        self._rng = rng
        self._cancel_event = cancel_event

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        options: RetryOptions | None = None,
    ) -> T:
        opts = options or RetryOptions()
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as exc:
                if attempt >= opts.max_attempts or not opts.retryable(exc):
                    raise
                delay_ms = compute_delay_ms(attempt, opts, self._rng)
                logger.warning(
                    "Attempt %s/%s failed (%s); retrying in %sms",
                    attempt,
                    opts.max_attempts,
                    exc,
                    delay_ms,
                )
                if opts.on_retry is not None:
                    opts.on_retry(attempt, exc, delay_ms)
                await self._wait(delay_ms)
                attempt += 1

    async def _wait(self, delay_ms: int) -> None:
        seconds = max(delay_ms, 0) / 1000
        if self._cancel_event is None:
            await self._sleep(seconds)
            return
        if self._cancel_event.is_set():
            raise PipelineCancelledError("Generation was cancelled before retrying.")
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        canceller = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait({sleeper, canceller}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            canceller.cancel()
            await asyncio.gather(sleeper, canceller, return_exceptions=True)
        if canceller in done:
            raise PipelineCancelledError("Generation was cancelled while waiting to retry.")
        sleeper.result()


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
) -> T:
    """Convenience wrapper around a default :class:`RetryPolicy`."""

    return await RetryPolicy().execute(operation, options)


def retryable(options: RetryOptions | None = None):
    """Decorator turning an async function into a retrying one."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await with_retry(lambda: func(*args, **kwargs), options)

        return wrapper

    return decorator
