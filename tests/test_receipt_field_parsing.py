from __future__ import annotations

from datetime import datetime
from decimal import Decimal


def test_parse_amount_strips_currency_and_grouping():
    from receipt_verifier.modules.verification.extractors.common import parse_amount

    assert parse_amount("ETB 1,250.00") == Decimal("1250.00")
    assert parse_amount("75.25 Birr.") == Decimal("75.25")
    assert parse_amount("ETB .50") == Decimal("0.50")
    assert parse_amount("Birr. 1 250.00") == Decimal("1250.00")
    assert parse_amount("n/a") is None
    assert parse_amount(None) is None


def test_dmy_timestamps_are_day_first_with_meridiem():
    from receipt_verifier.modules.verification.extractors.common import parse_dmy_datetime

    assert parse_dmy_datetime("12/01/2024 10:30 AM") == datetime(2024, 1, 12, 10, 30)
    assert parse_dmy_datetime("3/4/24, 12:05 PM") == datetime(2024, 4, 3, 12, 5)
    assert parse_dmy_datetime("01-02-2024 12:00 AM") == datetime(2024, 2, 1, 0, 0)
    assert parse_dmy_datetime("31/02/2024") is None


def test_parse_date_accepts_iso_and_textual_forms():
    from receipt_verifier.modules.verification.extractors.common import parse_date

    assert parse_date("2024-03-05T14:20:00") == datetime(2024, 3, 5, 14, 20)
    assert parse_date("05 Mar 2024 14:20") == datetime(2024, 3, 5, 14, 20)
    assert parse_date("Mar 5, 2024") == datetime(2024, 3, 5)
    assert parse_date("soon") is None


def test_title_case_and_label_normalization():
    from receipt_verifier.modules.verification.extractors.common import (
        normalize_label,
        title_case,
    )

    assert title_case("JOHN  doe") == "John  Doe"
    assert normalize_label("  Receiver's Name: ") == "receiver s name"
