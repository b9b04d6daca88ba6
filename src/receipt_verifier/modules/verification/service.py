from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from receipt_verifier.core.logging import get_logger, log_event
from receipt_verifier.modules.verification.cache import VerificationCache
from receipt_verifier.modules.verification.models import VerifyResult
from receipt_verifier.modules.verification.pool import BrowserPool
from receipt_verifier.modules.verification.strategies.base import ReceiptStrategy

logger = get_logger(__name__)


class VerificationService:
    def __init__(
        self,
        strategies: Mapping[str, ReceiptStrategy],
        *,
        cache: VerificationCache,
        pool: BrowserPool[Any] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._strategies = {code.lower(): s for code, s in strategies.items()}
        self._cache = cache
        self._pool = pool
        self._client = client
        self._sweeper: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def providers(self) -> list[str]:
        return sorted(self._strategies)

    @property
    def cache(self) -> VerificationCache:
        return self._cache

    async def verify(self, provider: str, reference: str, **provider_args: str) -> VerifyResult:
        strategy = self._strategies.get((provider or "").strip().lower())
        if strategy is None:
            log_event(logger, "verification.unsupported_provider", level=logging.WARNING, provider=provider)
            return VerifyResult.failure(f"Unsupported provider: {provider}")
        try:
            inspect.signature(strategy.verify).bind(reference, **provider_args)
        except TypeError as exc:
            return VerifyResult.failure(f"Invalid arguments for {provider}: {exc}")
        return await strategy.verify(reference, **provider_args)

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._cache.run_sweeper())

    async def cleanup(self) -> int:
        if self._pool is None:
            return 0
        return await self._pool.cleanup()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        if self._pool is not None:
            await self._pool.close_all()
        if self._client is not None:
            await self._client.aclose()
        log_event(logger, "verification.service.closed")

    async def __aenter__(self) -> VerificationService:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
