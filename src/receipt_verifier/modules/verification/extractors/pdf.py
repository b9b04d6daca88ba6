from __future__ import annotations

import re
from dataclasses import dataclass
from io import BytesIO

from pypdf import PdfReader

from receipt_verifier.modules.verification.extractors.common import (
    flatten_text,
    parse_amount,
    parse_dmy_datetime,
    title_case,
)
from receipt_verifier.modules.verification.models import ReceiptParseError, VerifyResult


@dataclass(frozen=True)
class PdfReceiptPatterns:
    payer: str
    receiver: str
    account: str
    reason: str
    amount: str
    reference: str
    date: str


CBE_PATTERNS = PdfReceiptPatterns(
    payer=r"Payer\s*:?\s*(.*?)\s+Account",
    receiver=r"Receiver\s*:?\s*(.*?)\s+Account",
    account=r"Account\s*:?\s*([A-Z0-9]?\*{4}\d{4})",
    reason=r"Reason\s*/\s*Type of service\s*:?\s*(.*?)\s+Transferred Amount",
    amount=r"Transferred Amount\s*:?\s*([\d,]+\.\d{2})\s*ETB",
    reference=r"Reference No\.?\s*\(VAT Invoice No\)\s*:?\s*([A-Z0-9]+)",
    date=r"Payment Date & Time\s*:?\s*([\d/,: ]+[APM]{2})",
)


def extract_pdf_text(body: bytes) -> str:
    try:
        reader = PdfReader(BytesIO(body))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as exc:
        raise ReceiptParseError(f"Error parsing PDF data: {exc}") from exc
    return "\n".join(pages)


class PdfReceiptExtractor:
    """Pulls transfer details out of a bank's PDF confirmation slip."""

    def __init__(self, patterns: PdfReceiptPatterns = CBE_PATTERNS) -> None:
        self._patterns = patterns

    def extract(self, body: bytes) -> VerifyResult:
        return self.extract_text(extract_pdf_text(body))

    def extract_text(self, text: str) -> VerifyResult:
        raw = flatten_text(text)
        p = self._patterns

        payer = _find(p.payer, raw)
        receiver = _find(p.receiver, raw)
        accounts = [m.group(1) for m in re.finditer(p.account, raw, re.I)]
        payer_account = accounts[0] if len(accounts) > 0 else None
        receiver_account = accounts[1] if len(accounts) > 1 else None
        reason = _find(p.reason, raw)
        amount = parse_amount(_find(p.amount, raw))
        reference = _find(p.reference, raw)
        paid_at = parse_dmy_datetime(_find(p.date, raw))

        required = {
            "payer": payer,
            "payer_account": payer_account,
            "receiver": receiver,
            "receiver_account": receiver_account,
            "amount": amount,
            "date": paid_at,
            "reference": reference,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ReceiptParseError(
                "Could not extract all required fields from PDF "
                f"(missing: {', '.join(missing)})"
            )

        return VerifyResult(
            success=True,
            payer=title_case(payer),
            payer_account=payer_account,
            receiver=title_case(receiver),
            receiver_account=receiver_account,
            amount=amount,
            date=paid_at,
            reference=reference,
            reason=reason or None,
        )


def _find(pattern: str, text: str) -> str | None:
    m = re.search(pattern, text, re.I)
    return m.group(1).strip() if m else None
