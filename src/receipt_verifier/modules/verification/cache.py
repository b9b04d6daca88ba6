from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from receipt_verifier.core.logging import get_logger, log_event
from receipt_verifier.modules.verification.models import VerifyResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: VerifyResult
    inserted_at: float
    expires_at: float


class VerificationCache:
    """Short-lived store of successful verification results.

    Entries expire ``ttl_seconds`` after they are written. Expired entries are
    dropped on access and by :meth:`sweep`, which :meth:`run_sweeper` calls
    periodically. Failures are never stored.
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        *,
        check_period: int = 60,
        log_stats: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._check_period = check_period
        self._log_stats = log_stats
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    @staticmethod
    def key(provider: str, reference: str, *discriminators: object) -> str:
        parts = ["verify", str(provider).strip(), str(reference).strip()]
        parts.extend(str(d).strip() for d in discriminators if d is not None and str(d).strip())
        return ":".join(parts).lower()

    def get(self, key: str) -> VerifyResult | None:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            self._misses += 1
            return None
        self._hits += 1
        log_event(logger, "cache.hit", level=logging.DEBUG, cache_key=key)
        return entry.value

    def set(self, key: str, value: VerifyResult, ttl: int | None = None) -> None:
        if not value.success:
            raise ValueError("failed verification results are not cacheable")
        ttl_s = ttl if ttl is not None else self._ttl
        now = self._clock()
        self._entries[key] = CacheEntry(value=value, inserted_at=now, expires_at=now + ttl_s)
        log_event(logger, "cache.set", level=logging.DEBUG, cache_key=key, ttl_s=ttl_s)

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return False
        return True

    def delete(self, key: str) -> bool:
        removed = self._entries.pop(key, None) is not None
        if removed:
            log_event(logger, "cache.delete", level=logging.DEBUG, cache_key=key)
        return removed

    def keys(self, pattern: str | None = None) -> list[str]:
        keys = list(self._entries)
        if not pattern:
            return keys
        regex = re.compile(pattern)
        return [k for k in keys if regex.search(k)]

    def delete_pattern(self, pattern: str) -> int:
        matched = self.keys(pattern)
        for key in matched:
            self.delete(key)
        return len(matched)

    def clear(self) -> None:
        self._entries.clear()
        log_event(logger, "cache.cleared")

    def sweep(self) -> int:
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            log_event(logger, "cache.swept", level=logging.DEBUG, expired=len(expired))
        return len(expired)

    def stats(self) -> dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            "keys": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": (self._hits / lookups) if lookups else 0.0,
        }

    async def run_sweeper(self, interval: float | None = None) -> None:
        period = interval if interval is not None else self._check_period
        while True:
            await asyncio.sleep(period)
            self.sweep()
            if self._log_stats:
                log_event(logger, "cache.stats", level=logging.DEBUG, **self.stats())
