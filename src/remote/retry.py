# src/remote/retry.py — v2
"""Retry policy with linear backoff for shared-store calls.

Errors are classified into retryable (connection lost, timeout, DNS or
host unreachable, 5xx, malformed payload) and non-retryable (401/403,
other 4xx, insert conflicts). Non-retryable errors propagate on the first
attempt.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from artcache.remote.errors import (
    CacheBackendError,
    InvalidResponse,
    NetworkError,
)

logger = logging.getLogger(__name__)


class RetryExhausted(Exception):
    """All attempts of a retryable operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: CacheBackendError):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Operation '{operation}' failed after {attempts} attempts: {last_error}"
        )


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration: extra attempts and delay schedule.

    Delay before retry n (1-based) is base_delay_s * n ** backoff_exponent,
    so the default exponent 1.0 yields 1s, 2s.
    """

    max_retries: int = 1
    base_delay_s: float = 1.0
    backoff_exponent: float = 1.0
    jitter: bool = False


def classify_error(error: BaseException) -> CacheBackendError:
    """Map any exception raised during a store call onto the taxonomy."""
    if isinstance(error, CacheBackendError):
        return error
    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return NetworkError(f"timeout: {error}")
    if isinstance(error, httpx.TransportError):
        # ConnectError (DNS, refused), ReadError, RemoteProtocolError ...
        return NetworkError(f"{type(error).__name__}: {error}")
    if isinstance(error, (json.JSONDecodeError, ValueError, TypeError, KeyError)):
        return InvalidResponse(f"{type(error).__name__}: {error}")
    return NetworkError(f"unexpected {type(error).__name__}: {error}")


def is_retryable(error: BaseException) -> bool:
    return classify_error(error).retryable


def compute_delay(config: RetryConfig, retry_number: int) -> float:
    """Delay before the given retry (1-based)."""
    delay = config.base_delay_s * (retry_number ** config.backoff_exponent)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return delay


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    operation: str = "unknown",
    config: RetryConfig | None = None,
    **kwargs: Any,
) -> Any:
    """Execute an async store call with bounded retries.

    Raises:
        CacheBackendError: Immediately, for non-retryable errors.
        RetryExhausted: When every attempt failed with a retryable error.
    """
    config = config or RetryConfig()
    attempts = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except Exception as e:
            error = classify_error(e)
            attempts += 1

            if not error.retryable:
                if error is e:
                    raise
                raise error from e

            if attempts > config.max_retries:
                raise RetryExhausted(operation, attempts, error) from e

            delay = compute_delay(config, attempts)
            logger.warning(
                "Store call '%s' failed: %s (attempt %d/%d), retrying in %.1fs",
                operation, error, attempts, config.max_retries + 1, delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)
