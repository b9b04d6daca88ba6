from __future__ import annotations

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod

import httpx

from receipt_verifier.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_verification_context,
    set_verification_context,
)
from receipt_verifier.modules.verification.cache import VerificationCache
from receipt_verifier.modules.verification.fetch import PageRenderer
from receipt_verifier.modules.verification.models import (
    ReceiptParseError,
    RenderError,
    VerifyResult,
)
from receipt_verifier.modules.verification.retry import (
    RetryPolicy,
    matches_retryable,
    retry_with_condition,
)

logger = get_logger(__name__)

STRATEGY_RETRY_POLICY = RetryPolicy(max_retries=2, initial_delay=1.0)
STRATEGY_RETRYABLE_ERRORS: tuple[str, ...] = (
    "timeout",
    "network",
    "connecterror",
    "connection reset",
    "readerror",
    "writeerror",
    "econnreset",
    "etimedout",
    "remoteprotocolerror",
)


def should_retry_receipt(exc: BaseException, _attempt: int) -> bool:
    if isinstance(exc, (RenderError, ReceiptParseError)):
        return True
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    return matches_retryable(exc, STRATEGY_RETRYABLE_ERRORS)


class ReceiptStrategy(ABC):
    """Fetch-and-extract pipeline for one bank's receipts.

    ``verify`` never raises: every failure comes back as a failed
    :class:`VerifyResult`. Successful results are cached, and concurrent calls for
    the same receipt share one in-flight fetch.
    """

    code: str = ""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        cache: VerificationCache,
        renderer: PageRenderer | None = None,
        retry_policy: RetryPolicy = STRATEGY_RETRY_POLICY,
    ) -> None:
        self._client = client
        self._cache = cache
        self._renderer = renderer
        self._retry_policy = retry_policy
        self._inflight: dict[str, asyncio.Future[VerifyResult]] = {}

    def cache_key(self, reference: str, *args: str) -> str:
        return self._cache.key(self.code, reference, *args)

    @abstractmethod
    async def fetch_and_extract(self, reference: str, *args: str) -> VerifyResult:
        """One attempt: retrieve the receipt and turn it into a result.

        Raises on any failure so the retry layer can classify it.
        """

    async def verify(self, reference: str, *args: str) -> VerifyResult:
        reference = (reference or "").strip()
        if not reference:
            log_event(logger, "verification.rejected", level=logging.WARNING, provider=self.code)
            return VerifyResult.failure("Transaction reference is required")
        args = tuple((a or "").strip() for a in args)

        key = self.cache_key(reference, *args)
        cached = self._cache.get(key)
        if cached is not None:
            log_event(logger, "verification.cache_hit", provider=self.code, reference=reference)
            return cached

        inflight = self._inflight.get(key)
        if inflight is not None:
            log_event(logger, "verification.joined", provider=self.code, reference=reference)
            return await asyncio.shield(inflight)

        task = asyncio.ensure_future(self._verify_uncached(key, reference, args))
        self._inflight[key] = task
        task.add_done_callback(lambda t: self._forget(key, t))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Future[VerifyResult]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _verify_uncached(
        self, key: str, reference: str, args: tuple[str, ...]
    ) -> VerifyResult:
        tokens = set_verification_context(verification_id=str(uuid.uuid4()), provider=self.code)
        start = time.monotonic()
        log_event(logger, "verification.start", reference=reference)
        try:
            policy = self._retry_policy
            result = await retry_with_condition(
                lambda: self.fetch_and_extract(reference, *args),
                should_retry_receipt,
                max_retries=policy.max_retries,
                initial_delay=policy.initial_delay,
                max_delay=policy.max_delay,
                backoff_multiplier=policy.backoff_multiplier,
            )
        except Exception as exc:
            log_exception(
                logger,
                "verification.finish",
                reference=reference,
                status="failed",
                error_type=type(exc).__name__,
                duration_ms=monotonic_ms(start),
            )
            return VerifyResult.failure(str(exc) or type(exc).__name__)
        finally:
            reset_verification_context(tokens)

        if result.success:
            self._cache.set(key, result)
        log_event(
            logger,
            "verification.finish",
            provider=self.code,
            reference=reference,
            status="verified" if result.success else "failed",
            duration_ms=monotonic_ms(start),
        )
        return result
