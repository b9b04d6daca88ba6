from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

CBE_SLIP_TEXT = (
    "Payer : John Doe Account ****1234 Receiver : Jane Roe Account ****5678 "
    "Reason / Type of service : Transfer Transferred Amount : 1,250.00 ETB "
    "Reference No. (VAT Invoice No) : FT24123ABC123 "
    "Payment Date & Time : 12/01/2024 10:30 AM"
)


def test_extracts_cbe_slip_fields_from_flattened_text():
    from receipt_verifier.modules.verification.extractors.pdf import PdfReceiptExtractor

    result = PdfReceiptExtractor().extract_text(CBE_SLIP_TEXT)

    assert result.success is True
    assert result.payer == "John Doe"
    assert result.payer_account == "****1234"
    assert result.receiver == "Jane Roe"
    assert result.receiver_account == "****5678"
    assert result.amount == Decimal("1250.00")
    assert result.reference == "FT24123ABC123"
    assert result.reason == "Transfer"
    assert result.date == datetime(2024, 1, 12, 10, 30)


def test_extraction_flattens_multiline_text_and_title_cases_names():
    from receipt_verifier.modules.verification.extractors.pdf import PdfReceiptExtractor

    text = CBE_SLIP_TEXT.replace("John Doe", "JOHN\n  DOE").replace("Jane Roe", "jane roe")
    text = text.replace(" Receiver", "\n\nReceiver")

    result = PdfReceiptExtractor().extract_text(text)
    assert result.payer == "John Doe"
    assert result.receiver == "Jane Roe"


def test_extraction_without_amount_is_a_parse_failure():
    from receipt_verifier.modules.verification.extractors.pdf import PdfReceiptExtractor
    from receipt_verifier.modules.verification.models import ReceiptParseError

    text = CBE_SLIP_TEXT.replace("Transferred Amount : 1,250.00 ETB", "")
    with pytest.raises(ReceiptParseError) as err:
        PdfReceiptExtractor().extract_text(text)
    assert "amount" in str(err.value)


def test_extract_reads_text_from_every_pdf_page(monkeypatch):
    from receipt_verifier.modules.verification.extractors import pdf as pdf_module

    class _Page:
        def __init__(self, text: str) -> None:
            self._text = text

        def extract_text(self) -> str:
            return self._text

    half = CBE_SLIP_TEXT.index("Reason")

    class _Reader:
        def __init__(self, _stream) -> None:
            self.pages = [_Page(CBE_SLIP_TEXT[:half]), _Page(CBE_SLIP_TEXT[half:])]

    monkeypatch.setattr(pdf_module, "PdfReader", _Reader)

    result = pdf_module.PdfReceiptExtractor().extract(b"%PDF-1.4 stub")
    assert result.success is True
    assert result.amount == Decimal("1250.00")


def test_unreadable_pdf_bytes_raise_parse_error():
    from receipt_verifier.modules.verification.extractors.pdf import extract_pdf_text
    from receipt_verifier.modules.verification.models import ReceiptParseError

    with pytest.raises(ReceiptParseError):
        extract_pdf_text(b"<html><body>Receipt not found</body></html>")
