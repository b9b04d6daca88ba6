from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from receipt_verifier.core.logging import get_logger, log_event
from receipt_verifier.modules.verification.cache import VerificationCache
from receipt_verifier.modules.verification.extractors.pdf import PdfReceiptExtractor
from receipt_verifier.modules.verification.fetch import (
    PDF_ACCEPT,
    PageRenderer,
    fetch_document,
    looks_like_pdf_bytes,
)
from receipt_verifier.modules.verification.models import (
    DocumentUnavailableError,
    ReceiptClientError,
    RenderError,
    VerifyResult,
)
from receipt_verifier.modules.verification.retry import RetryPolicy
from receipt_verifier.modules.verification.strategies.base import (
    STRATEGY_RETRY_POLICY,
    ReceiptStrategy,
)

logger = get_logger(__name__)


class CbeStrategy(ReceiptStrategy):
    """Commercial Bank of Ethiopia: PDF slips addressed by reference + account suffix.

    The suffix is validated by the caller. Without one, the bare reference is
    looked up, which the slip service also accepts for newer references.
    """

    code = "CBE"

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        cache: VerificationCache,
        renderer: PageRenderer | None = None,
        base_url: str = "https://apps.cbe.com.et:100/?id=",
        extractor: PdfReceiptExtractor | None = None,
        retry_policy: RetryPolicy = STRATEGY_RETRY_POLICY,
    ) -> None:
        super().__init__(client=client, cache=cache, renderer=renderer, retry_policy=retry_policy)
        self._base_url = base_url
        self._extractor = extractor or PdfReceiptExtractor()

    def receipt_url(self, reference: str, account_suffix: str = "") -> str:
        return f"{self._base_url}{quote(reference + account_suffix, safe='')}"

    async def verify(self, reference: str, account_suffix: str = "") -> VerifyResult:
        return await super().verify(reference, account_suffix)

    async def fetch_and_extract(self, reference: str, account_suffix: str = "") -> VerifyResult:
        url = self.receipt_url(reference, account_suffix)
        body = await self._download(url)
        return self._extractor.extract(body)

    async def _download(self, url: str) -> bytes:
        try:
            resp = await fetch_document(self._client, url, accept=PDF_ACCEPT)
            if not looks_like_pdf_bytes(resp.content):
                raise DocumentUnavailableError("Receipt endpoint did not return a PDF")
            return resp.content
        except ReceiptClientError:
            raise
        except (httpx.HTTPError, DocumentUnavailableError) as exc:
            if self._renderer is None:
                raise
            log_event(
                logger,
                "verification.fallback",
                level=logging.WARNING,
                tier="render",
                url=url,
                reason=str(exc) or type(exc).__name__,
            )

        document_url = await self._renderer.find_document_url(url, content_type="pdf")
        resp = await fetch_document(self._client, document_url, accept=PDF_ACCEPT, tier="render")
        if not looks_like_pdf_bytes(resp.content):
            raise RenderError("Detected document is not a PDF")
        return resp.content
