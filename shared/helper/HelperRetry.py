"""Bounded retry with exponential backoff for async backend calls."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

import httpx

from shared.models.errors import ClientRequestError

T = TypeVar("T")


def is_transient_error(exc: BaseException) -> bool:
    """Return True for failures that may succeed on a later attempt.

    Timeouts and transport errors are transient, as are HTTP 429 and 5xx
    responses. Everything else (4xx, malformed payloads, validation errors)
    is persistent.

    Args:
        exc (BaseException): The raised exception.

    Returns:
        bool: Whether the call is worth retrying.
    """
    if isinstance(exc, ClientRequestError):
        return exc.is_transient
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError))


async def do_with_retry(
    operation: Callable[[], Awaitable[T]],
    logger: logging.Logger,
    label: str,
    attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    should_retry: Callable[[BaseException], bool] = is_transient_error,
) -> T:
    """Run an async operation, retrying failures accepted by should_retry.

    The delay before attempt n (1-based, n > 1) is base_delay * 2 ** (n - 2),
    capped at max_delay. Cancellation is never retried.

    Args:
        operation (Callable[[], Awaitable[T]]): Factory producing a fresh awaitable per attempt.
        logger (logging.Logger): Logger for retry warnings.
        label (str): Short description of the operation for log messages.
        attempts (int): Total number of attempts (>= 1).
        base_delay (float): Delay in seconds before the first retry.
        max_delay (float): Upper bound for a single delay.
        should_retry (Callable[[BaseException], bool]): Decides whether an error is retryable.

    Returns:
        T: The result of the first successful attempt.

    Raises:
        Exception: The last error, once attempts are exhausted or the error is not retryable.
    """
    attempts = max(1, int(attempts))
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if attempt >= attempts or not should_retry(exc):
                raise
            delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
            logger.warning(
                "%s failed (attempt %d/%d): %s. Retrying in %.2fs.",
                label, attempt, attempts, exc, delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)
    raise RuntimeError("unreachable")  # pragma: no cover
