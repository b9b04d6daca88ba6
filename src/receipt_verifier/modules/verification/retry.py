from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from receipt_verifier.core.logging import get_logger, log_event
from receipt_verifier.modules.verification.models import ReceiptClientError

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_ERRORS: tuple[str, ...] = (
    "timeout",
    "network",
    "connecterror",
    "connection reset",
    "connection refused",
    "econnreset",
    "etimedout",
    "enotfound",
    "econnrefused",
    "eai_again",
    "socket hang up",
    "remoteprotocolerror",
    "temporary failure in name resolution",
)

Sleep = Callable[[float], Awaitable[object]]
OnRetry = Callable[[int, BaseException], None]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        return min(self.initial_delay * self.backoff_multiplier**attempt, self.max_delay)


def is_client_error(exc: BaseException) -> bool:
    if isinstance(exc, ReceiptClientError):
        return 400 <= exc.status_code < 500
    if isinstance(exc, httpx.HTTPStatusError):
        return 400 <= exc.response.status_code < 500
    return False


def matches_retryable(exc: BaseException, signatures: Iterable[str]) -> bool:
    message = f"{type(exc).__name__} {exc}".lower()
    code = str(getattr(exc, "code", None) or getattr(exc, "errno", None) or "").lower()
    for signature in signatures:
        s = signature.lower()
        if s in message or (code and s in code):
            return True
    return False


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    backoff_multiplier: float = 2.0,
    retryable_errors: Iterable[str] = DEFAULT_RETRYABLE_ERRORS,
    on_retry: OnRetry | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` and retry transient failures with exponential backoff.

    An error is retried only when its class name, message or code contains one of
    ``retryable_errors`` (case-insensitive), it is not an HTTP 4xx rejection and
    attempts remain. At most ``max_retries + 1`` attempts are made.
    """
    signatures = tuple(retryable_errors)

    def should_retry(exc: BaseException, _attempt: int) -> bool:
        return matches_retryable(exc, signatures)

    return await retry_with_condition(
        operation,
        should_retry,
        max_retries=max_retries,
        initial_delay=initial_delay,
        max_delay=max_delay,
        backoff_multiplier=backoff_multiplier,
        on_retry=on_retry,
        sleep=sleep,
    )


async def retry_with_condition(
    operation: Callable[[], Awaitable[T]],
    should_retry: Callable[[BaseException, int], bool],
    *,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    backoff_multiplier: float = 2.0,
    on_retry: OnRetry | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Like :func:`retry_with_backoff`, with a caller-supplied retry predicate.

    ``should_retry(error, attempt_index)`` is consulted after each failure; client
    errors are never retried regardless of what it returns.
    """
    policy = RetryPolicy(
        max_retries=max_retries,
        initial_delay=initial_delay,
        max_delay=max_delay,
        backoff_multiplier=backoff_multiplier,
    )
    total = max_retries + 1
    for attempt in range(total):
        try:
            result = await operation()
        except Exception as exc:
            retryable = not is_client_error(exc) and should_retry(exc, attempt)
            if not retryable or attempt >= max_retries:
                if attempt > 0:
                    log_event(
                        logger,
                        "retry.exhausted",
                        level=logging.WARNING,
                        attempts=attempt + 1,
                        max_attempts=total,
                        error=str(exc) or type(exc).__name__,
                        retryable=retryable,
                    )
                raise

            delay = policy.delay_for(attempt)
            log_event(
                logger,
                "retry.attempt_failed",
                level=logging.WARNING,
                attempt=attempt + 1,
                max_attempts=total,
                error=str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
                delay_s=delay,
            )
            if on_retry is not None:
                on_retry(attempt + 1, exc)
            await sleep(delay)
            continue

        if attempt > 0:
            log_event(logger, "retry.succeeded", attempt=attempt + 1, max_attempts=total)
        return result

    raise RuntimeError("retry loop exited without a result")  # pragma: no cover
