from __future__ import annotations

from urllib.parse import quote

import httpx

from receipt_verifier.modules.verification.cache import VerificationCache
from receipt_verifier.modules.verification.extractors.html import FieldLabels, HtmlTableExtractor
from receipt_verifier.modules.verification.fetch import HTML_ACCEPT, fetch_document
from receipt_verifier.modules.verification.models import VerifyResult
from receipt_verifier.modules.verification.retry import RetryPolicy
from receipt_verifier.modules.verification.strategies.base import (
    STRATEGY_RETRY_POLICY,
    ReceiptStrategy,
)

AWASH_LABELS = FieldLabels(
    payer=("sender name", "customer name"),
    payer_account=("sender account",),
    receiver=("receiver name", "beneficiary name", "recipient"),
    receiver_account=("receiver account", "beneficiary account"),
    amount=("amount",),
    date=("transaction date",),
    reference=("transaction id", "transaction reference"),
    reason=("reason", "narrative"),
)


class AwashStrategy(ReceiptStrategy):
    code = "AWASH"

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        cache: VerificationCache,
        base_url: str = "https://awashpay.awashbank.com:8225/",
        extractor: HtmlTableExtractor | None = None,
        retry_policy: RetryPolicy = STRATEGY_RETRY_POLICY,
    ) -> None:
        super().__init__(client=client, cache=cache, retry_policy=retry_policy)
        self._base_url = base_url
        self._extractor = extractor or HtmlTableExtractor(
            AWASH_LABELS, row_selector="table.info-table tr", source="Awash receipt"
        )

    async def verify(self, reference: str) -> VerifyResult:
        return await super().verify(reference)

    async def fetch_and_extract(self, reference: str) -> VerifyResult:
        url = f"{self._base_url}{quote(reference, safe='')}"
        resp = await fetch_document(self._client, url, accept=HTML_ACCEPT)
        return self._extractor.extract(resp.text, reference=reference)
