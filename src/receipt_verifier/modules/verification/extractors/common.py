from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation

_DMY_RE = re.compile(
    r"(?<!\d)(\d{1,2})[/.-](\d{1,2})[/.-](\d{4}|\d{2})(?!\d)"
    r"(?:[,\s]+(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp][Mm])?)?"
)

_TEXT_DATE_FORMATS: tuple[str, ...] = (
    "%d %b %Y %H:%M:%S",
    "%d %b %Y %H:%M",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y %I:%M %p",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d-%b-%Y %H:%M:%S",
    "%d-%b-%Y",
    "%a %b %d %Y %H:%M:%S",
)


def flatten_text(text: str) -> str:
    t = (text or "").replace("\u202f", " ").replace("\xa0", " ")
    return re.sub(r"\s+", " ", t).strip()


def normalize_label(text: str) -> str:
    t = re.sub(r"[^\w\s]", " ", text or "")
    return re.sub(r"\s+", " ", t).strip().lower()


def title_case(text: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), text.lower()).strip()


def parse_amount(raw: str | None) -> Decimal | None:
    if not raw:
        return None
    # Tokens without digits ("ETB", "Birr.") carry no part of the number.
    tokens = (re.sub(r"[^\d.]", "", t) for t in raw.split() if re.search(r"\d", t))
    cleaned = "".join(tokens).rstrip(".")
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_dmy_datetime(raw: str | None) -> datetime | None:
    """Parse day-first receipt timestamps such as ``12/01/2024 10:30 AM``."""
    if not raw:
        return None
    m = _DMY_RE.search(raw)
    if not m:
        return None
    day, month, year_raw, hour_raw, minute_raw, second_raw, meridiem = m.groups()
    year = int(year_raw)
    if len(year_raw) <= 2:
        year += 1900 if year >= 70 else 2000
    hour = int(hour_raw or 0)
    if meridiem:
        meridiem = meridiem.lower()
        if hour == 12:
            hour = 0
        if meridiem == "pm":
            hour += 12
    try:
        return datetime(
            year,
            int(month),
            int(day),
            hour,
            int(minute_raw or 0),
            int(second_raw or 0),
        )
    except ValueError:
        return None


def parse_date(raw: str | None) -> datetime | None:
    if not raw:
        return None
    s = raw.strip()
    parsed = parse_dmy_datetime(s)
    if parsed:
        return parsed
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _TEXT_DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None
