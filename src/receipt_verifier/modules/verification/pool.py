from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

from playwright.async_api import Browser, Playwright, async_playwright

from receipt_verifier.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)

R = TypeVar("R")

CHROMIUM_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-breakpad",
    "--disable-client-side-phishing-detection",
    "--disable-default-apps",
    "--disable-features=TranslateUI",
    "--disable-hang-monitor",
    "--disable-ipc-flooding-protection",
    "--disable-popup-blocking",
    "--disable-prompt-on-repost",
    "--disable-renderer-backgrounding",
    "--disable-sync",
    "--metrics-recording-only",
    "--no-default-browser-check",
    "--no-pings",
    "--password-store=basic",
    "--use-mock-keychain",
)


class ResourceLauncher(Protocol[R]):
    async def launch(self) -> R: ...

    async def is_alive(self, resource: R) -> bool: ...

    async def close(self, resource: R) -> None: ...

    async def shutdown(self) -> None: ...


class PlaywrightLauncher:
    def __init__(self, *, executable_path: Path | None = None, headless: bool = True) -> None:
        self._executable_path = executable_path
        self._headless = headless
        self._playwright: Playwright | None = None
        self._start_lock = asyncio.Lock()

    async def _driver(self) -> Playwright:
        async with self._start_lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            return self._playwright

    async def launch(self) -> Browser:
        driver = await self._driver()
        kwargs: dict[str, Any] = {"headless": self._headless, "args": list(CHROMIUM_ARGS)}
        if self._executable_path:
            kwargs["executable_path"] = str(self._executable_path)
        return await driver.chromium.launch(**kwargs)

    async def is_alive(self, resource: Browser) -> bool:
        if not resource.is_connected():
            return False
        try:
            context = await resource.new_context()
            await context.close()
        except Exception:
            return False
        return True

    async def close(self, resource: Browser) -> None:
        await resource.close()

    async def shutdown(self) -> None:
        async with self._start_lock:
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None


class BrowserPool(Generic[R]):
    """Bounded set of headless browsers shared by the render fallbacks.

    Browsers are launched lazily up to ``max_size``. When every browser is
    borrowed, callers queue and are served in arrival order as browsers are
    released. Pool state is only touched between awaits on one event loop.
    """

    def __init__(self, launcher: ResourceLauncher[R], *, max_size: int = 3) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._launcher = launcher
        self._max_size = max_size
        self._pool: list[R] = []
        self._in_use: list[R] = []
        self._launching = 0
        self._waiters: deque[asyncio.Future[R | None]] = deque()

    @property
    def max_size(self) -> int:
        return self._max_size

    def _is_in_use(self, resource: R) -> bool:
        return any(r is resource for r in self._in_use)

    def _claim_idle(self) -> R | None:
        for resource in self._pool:
            if not self._is_in_use(resource):
                self._in_use.append(resource)
                return resource
        return None

    def _wake_waiter(self, value: R | None) -> bool:
        while self._waiters:
            waiter = self._waiters.popleft()
            if waiter.done():
                continue
            waiter.set_result(value)
            return True
        return False

    async def acquire(self) -> R:
        start = time.monotonic()
        while True:
            resource = self._claim_idle()
            if resource is not None:
                log_event(logger, "pool.acquire", level=logging.DEBUG, reused=True, **self.stats())
                return resource

            if len(self._pool) + self._launching < self._max_size:
                return await self._launch_and_claim()

            waiter: asyncio.Future[R | None] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            log_event(logger, "pool.wait", level=logging.DEBUG, **self.stats())
            try:
                handed = await waiter
            except asyncio.CancelledError:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)
                elif waiter.done() and not waiter.cancelled() and waiter.result() is not None:
                    self.release(waiter.result())
                raise
            if handed is not None:
                log_event(
                    logger,
                    "pool.acquire",
                    level=logging.DEBUG,
                    reused=True,
                    waited_ms=monotonic_ms(start),
                    **self.stats(),
                )
                return handed

    async def _launch_and_claim(self) -> R:
        self._launching += 1
        start = time.monotonic()
        try:
            resource = await self._launcher.launch()
        except BaseException:
            self._launching -= 1
            log_exception(logger, "pool.launch.failure", **self.stats())
            self._wake_waiter(None)
            raise
        self._launching -= 1
        self._pool.append(resource)
        self._in_use.append(resource)
        log_event(
            logger,
            "pool.launch.success",
            duration_ms=monotonic_ms(start),
            **self.stats(),
        )
        return resource

    def release(self, resource: R) -> None:
        if not self._is_in_use(resource):
            return
        if self._wake_waiter(resource):
            log_event(logger, "pool.handoff", level=logging.DEBUG, **self.stats())
            return
        self._in_use = [r for r in self._in_use if r is not resource]
        log_event(logger, "pool.release", level=logging.DEBUG, **self.stats())

    @asynccontextmanager
    async def borrow(self) -> AsyncIterator[R]:
        resource = await self.acquire()
        try:
            yield resource
        finally:
            self.release(resource)

    async def cleanup(self) -> int:
        dead: list[R] = []
        for resource in list(self._pool):
            try:
                alive = await self._launcher.is_alive(resource)
            except Exception:
                alive = False
            if not alive:
                dead.append(resource)

        if not dead:
            return 0

        self._pool = [r for r in self._pool if not any(r is d for d in dead)]
        self._in_use = [r for r in self._in_use if not any(r is d for d in dead)]
        for resource in dead:
            try:
                await self._launcher.close(resource)
            except Exception:
                log_event(logger, "pool.close.failure", level=logging.DEBUG)
        log_event(logger, "pool.evicted", level=logging.WARNING, evicted=len(dead), **self.stats())

        free_slots = self._max_size - len(self._pool) - self._launching
        for _ in range(max(0, free_slots)):
            if not self._wake_waiter(None):
                break
        return len(dead)

    async def close_all(self) -> None:
        log_event(logger, "pool.close_all.start", **self.stats())
        resources, self._pool, self._in_use = self._pool, [], []
        results = await asyncio.gather(
            *(self._launcher.close(r) for r in resources), return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                log_event(
                    logger, "pool.close.failure", level=logging.ERROR, error=str(result)
                )
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.cancel()
        await self._launcher.shutdown()
        log_event(logger, "pool.close_all.finish", closed=len(resources))

    def stats(self) -> dict[str, int]:
        return {
            "total": len(self._pool),
            "in_use": len(self._in_use),
            "available": len(self._pool) - len(self._in_use),
            "max_size": self._max_size,
            "waiting": sum(1 for w in self._waiters if not w.done()),
        }
