from __future__ import annotations

import asyncio
import signal

from receipt_verifier.core.config import Settings, settings as default_settings
from receipt_verifier.core.logging import get_logger, log_event
from receipt_verifier.modules.verification.cache import VerificationCache
from receipt_verifier.modules.verification.fetch import PageRenderer, build_http_client
from receipt_verifier.modules.verification.pool import BrowserPool, PlaywrightLauncher
from receipt_verifier.modules.verification.service import VerificationService
from receipt_verifier.modules.verification.strategies.abyssinia import AbyssiniaStrategy
from receipt_verifier.modules.verification.strategies.awash import AwashStrategy
from receipt_verifier.modules.verification.strategies.cbe import CbeStrategy

logger = get_logger(__name__)


def build_verification_service(settings: Settings | None = None) -> VerificationService:
    settings = settings or default_settings

    pool = BrowserPool(
        PlaywrightLauncher(executable_path=settings.browser_executable_path),
        max_size=settings.browser_pool_size,
    )
    cache = VerificationCache(
        settings.verification_cache_ttl,
        check_period=settings.cache_check_period,
        log_stats=settings.environment == "dev",
    )
    client = build_http_client(settings)
    renderer = PageRenderer(
        pool,
        navigation_timeout=settings.render_timeout_seconds,
        settle_seconds=settings.render_settle_seconds,
        selector_timeout=settings.table_wait_timeout_seconds,
    )

    strategies = {
        "cbe": CbeStrategy(
            client=client, cache=cache, renderer=renderer, base_url=settings.cbe_receipt_url
        ),
        "awash": AwashStrategy(client=client, cache=cache, base_url=settings.awash_receipt_url),
        "abyssinia": AbyssiniaStrategy(
            client=client,
            cache=cache,
            renderer=renderer,
            base_url=settings.abyssinia_receipt_url,
        ),
    }
    log_event(
        logger,
        "verification.service.built",
        providers=sorted(strategies),
        pool_size=settings.browser_pool_size,
        cache_ttl_s=settings.verification_cache_ttl,
    )
    return VerificationService(strategies, cache=cache, pool=pool, client=client)


def install_shutdown_handlers(
    service: VerificationService, loop: asyncio.AbstractEventLoop | None = None
) -> None:
    loop = loop or asyncio.get_running_loop()

    def _on_signal(signame: str) -> None:
        log_event(logger, "process.signal", signal=signame)
        loop.create_task(service.aclose())

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _on_signal, sig.name)
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is unavailable on Windows event loops
            signal.signal(sig, lambda _s, _f, name=sig.name: loop.call_soon_threadsafe(_on_signal, name))
