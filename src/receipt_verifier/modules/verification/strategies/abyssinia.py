from __future__ import annotations

import logging
import re
from urllib.parse import quote

import httpx

from receipt_verifier.core.logging import get_logger, log_event
from receipt_verifier.modules.verification.cache import VerificationCache
from receipt_verifier.modules.verification.extractors.html import FieldLabels, HtmlTableExtractor
from receipt_verifier.modules.verification.fetch import HTML_ACCEPT, PageRenderer, fetch_document
from receipt_verifier.modules.verification.models import (
    DocumentUnavailableError,
    ReceiptClientError,
    VerifyResult,
)
from receipt_verifier.modules.verification.retry import RetryPolicy
from receipt_verifier.modules.verification.strategies.base import (
    STRATEGY_RETRY_POLICY,
    ReceiptStrategy,
)

logger = get_logger(__name__)

ABYSSINIA_LABELS = FieldLabels(
    payer=("source account name", "source account", "payer name", "payer"),
    receiver=("receiver's name", "receiver name", "receiver"),
    amount=("transferred amount", "amount", "settled amount"),
    date=("transaction date", "payment date", "date"),
    reference=("transaction reference", "reference"),
    reason=("narrative", "description", "reason"),
)

_TABLE_MARKER = re.compile(r"<table[\s>]", re.I)


class AbyssiniaStrategy(ReceiptStrategy):
    """Bank of Abyssinia slips. The slip page often builds its table client-side,
    so a page without one is rendered in a pooled browser."""

    code = "ABYSSINIA"

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        cache: VerificationCache,
        renderer: PageRenderer | None = None,
        base_url: str = "https://cs.bankofabyssinia.com/slip/?trx=",
        extractor: HtmlTableExtractor | None = None,
        retry_policy: RetryPolicy = STRATEGY_RETRY_POLICY,
    ) -> None:
        super().__init__(client=client, cache=cache, renderer=renderer, retry_policy=retry_policy)
        self._base_url = base_url
        self._extractor = extractor or HtmlTableExtractor(
            ABYSSINIA_LABELS, title_case_names=True, source="Abyssinia slip"
        )

    async def verify(self, reference: str) -> VerifyResult:
        return await super().verify(reference)

    async def fetch_and_extract(self, reference: str) -> VerifyResult:
        url = f"{self._base_url}{quote(reference, safe='')}"
        html = await self._load_html(url)
        return self._extractor.extract(html, reference=reference)

    async def _load_html(self, url: str) -> str:
        try:
            resp = await fetch_document(self._client, url, accept=HTML_ACCEPT)
            if not _TABLE_MARKER.search(resp.text):
                raise DocumentUnavailableError("Slip page has no receipt table")
            return resp.text
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
        return await self._renderer.render_html(url, wait_for="table")
