from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup
from bs4.element import Tag

from receipt_verifier.modules.verification.extractors.common import (
    normalize_label,
    parse_amount,
    parse_date,
    title_case,
)
from receipt_verifier.modules.verification.models import ReceiptParseError, VerifyResult


@dataclass(frozen=True)
class FieldLabels:
    """Label synonyms per result field, most specific first."""

    payer: tuple[str, ...] = ()
    payer_account: tuple[str, ...] = ()
    receiver: tuple[str, ...] = ()
    receiver_account: tuple[str, ...] = ()
    amount: tuple[str, ...] = ()
    date: tuple[str, ...] = ()
    reference: tuple[str, ...] = ()
    reason: tuple[str, ...] = ()


def _cell_text(cell: Tag) -> str:
    return re.sub(r"\s+", " ", cell.get_text(" ", strip=True)).strip()


def _row_pairs(cells: list[Tag]) -> list[tuple[str, str]]:
    texts = [_cell_text(c) for c in cells]
    if len(texts) == 1:
        m = re.match(r"^\s*([^:=]+?)\s*[:=]\s*(.+)$", texts[0])
        return [(m.group(1), m.group(2))] if m else []
    if len(texts) == 2:
        return [(texts[0], texts[1])]
    if len(texts) == 3:
        return [(texts[0], texts[2])]
    return [(texts[i], texts[i + 1]) for i in range(0, len(texts) - 1, 2)]


class HtmlTableExtractor:
    """Reads label/value tables from a bank's HTML receipt page.

    Rows may hold ``label | : | value``, ``label | value``, a single
    ``label: value`` cell, or several label/value pairs side by side. When no
    table row matches, elements whose class or id mention the label are tried.
    """

    def __init__(
        self,
        labels: FieldLabels,
        *,
        row_selector: str = "table tr",
        title_case_names: bool = False,
        source: str = "receipt",
    ) -> None:
        self._labels = labels
        self._row_selector = row_selector
        self._title_case_names = title_case_names
        self._source = source

    def extract(self, html: str, *, reference: str | None = None) -> VerifyResult:
        soup = BeautifulSoup(html or "", "lxml")
        pairs = self._collect_pairs(soup)
        lb = self._labels

        def field(labels: tuple[str, ...]) -> str | None:
            return _lookup(pairs, labels) or _lookup_by_attribute(soup, labels)

        payer = field(lb.payer)
        receiver = field(lb.receiver)
        amount = parse_amount(field(lb.amount))

        if not receiver or amount is None:
            raise ReceiptParseError(f"Failed to parse {self._source} details")

        if self._title_case_names:
            receiver = title_case(receiver)
            payer = title_case(payer) if payer else None

        return VerifyResult(
            success=True,
            payer=payer or None,
            payer_account=field(lb.payer_account),
            receiver=receiver,
            receiver_account=field(lb.receiver_account),
            amount=amount,
            date=parse_date(field(lb.date)),
            reference=field(lb.reference) or reference,
            reason=field(lb.reason),
        )

    def _collect_pairs(self, soup: BeautifulSoup) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        for row in soup.select(self._row_selector):
            cells = row.find_all(["td", "th"], recursive=False) or row.find_all(["td", "th"])
            for label, value in _row_pairs(cells):
                norm = normalize_label(label)
                if norm and value:
                    pairs.append((norm, value))
        return pairs


def _lookup(pairs: list[tuple[str, str]], labels: tuple[str, ...]) -> str | None:
    for label in labels:
        target = normalize_label(label)
        for norm, value in pairs:
            if target in norm:
                return value
    return None


def _lookup_by_attribute(soup: BeautifulSoup, labels: tuple[str, ...]) -> str | None:
    for label in labels:
        target = normalize_label(label)
        if not target:
            continue
        for el in soup.find_all(True):
            if el.name in {"html", "body", "table", "tbody", "tr"}:
                continue
            classes = el.get("class") or []
            attr = " ".join([*classes, el.get("id") or ""])
            if not attr.strip():
                continue
            if target not in normalize_label(attr.replace("-", " ").replace("_", " ")):
                continue
            text = _cell_text(el)
            text = re.sub(rf"^\s*{re.escape(label)}\s*[:=]?\s*", "", text, flags=re.I)
            if text:
                return text
    return None
