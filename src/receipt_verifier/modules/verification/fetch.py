from __future__ import annotations

import asyncio
import logging
import time

import httpx
from playwright.async_api import Browser, Response

from receipt_verifier.core.config import Settings
from receipt_verifier.core.logging import get_logger, log_event, monotonic_ms
from receipt_verifier.modules.verification.models import ReceiptClientError, RenderError
from receipt_verifier.modules.verification.pool import BrowserPool

logger = get_logger(__name__)

PDF_ACCEPT = "application/pdf"
HTML_ACCEPT = "text/html,application/xhtml+xml"


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    # Bank receipt hosts serve legacy or self-signed certificates.
    return httpx.AsyncClient(
        verify=False,
        timeout=settings.http_timeout_seconds,
        follow_redirects=True,
        headers={
            "User-Agent": settings.user_agent,
            "Accept-Language": "en-US,en;q=0.9",
        },
    )


async def fetch_document(
    client: httpx.AsyncClient, url: str, *, accept: str, tier: str = "direct"
) -> httpx.Response:
    """GET ``url`` and return the response, raising on HTTP errors.

    4xx responses become :class:`ReceiptClientError` so the retry layer fails
    fast; 5xx responses raise ``httpx.HTTPStatusError``.
    """
    start = time.monotonic()
    try:
        resp = await client.get(url, headers={"Accept": accept})
    except httpx.HTTPError as exc:
        log_event(
            logger,
            f"fetch.{tier}.failure",
            level=logging.WARNING,
            url=url,
            error=str(exc) or type(exc).__name__,
            error_type=type(exc).__name__,
            duration_ms=monotonic_ms(start),
        )
        raise

    log_event(
        logger,
        f"fetch.{tier}.response",
        url=url,
        status_code=resp.status_code,
        content_type=resp.headers.get("content-type"),
        byte_size=len(resp.content),
        duration_ms=monotonic_ms(start),
    )
    if 400 <= resp.status_code < 500:
        raise ReceiptClientError(
            f"Receipt endpoint rejected the request ({resp.status_code})",
            status_code=resp.status_code,
        )
    resp.raise_for_status()
    return resp


def looks_like_pdf_bytes(body: bytes) -> bool:
    if not body:
        return False
    b = body.lstrip()
    if b.startswith(b"\xef\xbb\xbf"):
        b = b[3:].lstrip()
    return b.startswith(b"%PDF")


class PageRenderer:
    """Loads receipt pages in pooled headless browsers."""

    def __init__(
        self,
        pool: BrowserPool[Browser],
        *,
        navigation_timeout: float = 20.0,
        settle_seconds: float = 3.0,
        selector_timeout: float = 10.0,
    ) -> None:
        self._pool = pool
        self._navigation_timeout_ms = navigation_timeout * 1000
        self._settle_seconds = settle_seconds
        self._selector_timeout_ms = selector_timeout * 1000

    async def find_document_url(self, url: str, *, content_type: str = "pdf") -> str:
        """Open ``url`` and return the URL of the first response whose content
        type contains ``content_type``."""
        start = time.monotonic()
        async with self._pool.borrow() as browser:
            context = await browser.new_context(ignore_https_errors=True)
            try:
                page = await context.new_page()
                detected: list[str] = []
                found = asyncio.Event()

                def on_response(response: Response) -> None:
                    ctype = (response.headers.get("content-type") or "").lower()
                    if content_type in ctype and not detected:
                        detected.append(response.url)
                        found.set()

                page.on("response", on_response)
                try:
                    await page.goto(
                        url, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms
                    )
                except Exception as exc:
                    # Navigating straight onto a download aborts the page load
                    # after the document response has already been seen.
                    if not detected:
                        raise RenderError(f"Render navigation failed: {exc}") from exc
                if not detected:
                    try:
                        await asyncio.wait_for(found.wait(), timeout=self._settle_seconds)
                    except asyncio.TimeoutError:
                        pass
            finally:
                await context.close()

        if not detected:
            log_event(
                logger,
                "fetch.render.no_document",
                level=logging.WARNING,
                url=url,
                content_type=content_type,
                duration_ms=monotonic_ms(start),
            )
            raise RenderError(f"No {content_type} document detected via browser pool")
        log_event(
            logger,
            "fetch.render.document_detected",
            url=url,
            document_url=detected[0],
            duration_ms=monotonic_ms(start),
        )
        return detected[0]

    async def render_html(self, url: str, *, wait_for: str = "table") -> str:
        start = time.monotonic()
        async with self._pool.borrow() as browser:
            context = await browser.new_context(ignore_https_errors=True)
            try:
                page = await context.new_page()
                try:
                    await page.goto(
                        url, wait_until="networkidle", timeout=self._navigation_timeout_ms
                    )
                    await page.wait_for_selector(wait_for, timeout=self._selector_timeout_ms)
                except Exception as exc:
                    raise RenderError(f"Rendered page never showed {wait_for!r}: {exc}") from exc
                html = await page.content()
            finally:
                await context.close()
        log_event(
            logger,
            "fetch.render.html",
            url=url,
            byte_size=len(html),
            duration_ms=monotonic_ms(start),
        )
        return html
