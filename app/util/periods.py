"""
Period ("mm/yyyy") normalization.

normalize_period() accepts whatever a spreadsheet cell or a PDF line gives us:
- date/datetime objects (pandas Timestamps included)
- Excel serial numbers (days since 1899-12-30)
- "jun-25", "septiembre 2025", "2025 junio"
- "15/06/2025", "06/25", "06/2025", "2025-06", "202506", "062025"

Anything it can't read comes back unchanged so a bad period shows up in the
output instead of silently turning into "".

period_from_filename() is the last-resort fallback parsers use when the
receipt text has no period at all.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime, timedelta
from typing import Any, Optional

EXCEL_EPOCH = datetime(1899, 12, 30)

MONTHS = {
    "ene": 1, "enero": 1,
    "feb": 2, "febrero": 2,
    "mar": 3, "marzo": 3,
    "abr": 4, "abril": 4,
    "may": 5, "mayo": 5,
    "jun": 6, "junio": 6,
    "jul": 7, "julio": 7,
    "ago": 8, "agosto": 8,
    "sep": 9, "sept": 9, "set": 9, "septiembre": 9, "setiembre": 9,
    "oct": 10, "octubre": 10,
    "nov": 11, "noviembre": 11,
    "dic": 12, "diciembre": 12,
}

_YYYY_MM = re.compile(r"^(\d{4})[/\-.](\d{1,2})$")
_DD_MM_YYYY = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2,4})$")
_MM_YYYY = re.compile(r"^(\d{1,2})[/\-.](\d{2}|\d{4})$")
_MONTH_YEAR = re.compile(r"^([a-zñ]{3,12})[\s\-_/]*(\d{2}|\d{4})$")
_YEAR_MONTH = re.compile(r"^(\d{4})[\s\-_/]*([a-zñ]{3,12})$")

_FILENAME_MONTH = re.compile(
    r"(ENERO|FEBRERO|MARZO|ABRIL|MAYO|JUNIO|JULIO|AGOSTO|SEPTIEMBRE|SETIEMBRE|OCTUBRE|NOVIEMBRE|DICIEMBRE)"
    r"\s*[-_]?\s*(\d{4})",
    re.IGNORECASE,
)
_FILENAME_MM_YYYY = re.compile(r"(?<!\d)(\d{1,2})[/\-](\d{4})(?!\d)")
_FILENAME_MMYYYY = re.compile(r"(?<!\d)(\d{2})(\d{4})(?!\d)")


def _strip_accents(s: str) -> str:
    return "".join(
        c for c in unicodedata.normalize("NFKD", s) if not unicodedata.combining(c)
    )


def _year(raw: str) -> int:
    y = int(raw)
    if len(raw) == 2:
        return 2000 + y if y < 50 else 1900 + y
    return y


def _fmt(month: int, year: int) -> str:
    month = min(max(month, 1), 12)
    return f"{month:02d}/{year:04d}"


def excel_serial_to_date(serial: float) -> Optional[datetime]:
    try:
        return EXCEL_EPOCH + timedelta(days=float(serial))
    except (OverflowError, ValueError):
        return None


def normalize_period(raw: Any) -> Any:
    """Best-effort "mm/yyyy"; returns `raw` itself when nothing matches."""
    if raw is None:
        return ""
    if isinstance(raw, (datetime, date)):
        try:
            return _fmt(int(raw.month), int(raw.year))
        except (TypeError, ValueError):
            # NaT and friends
            return ""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        d = excel_serial_to_date(raw)
        return _fmt(d.month, d.year) if d else raw

    s = str(raw).strip()
    if not s:
        return raw
    low = _strip_accents(s.lower()).replace(".", " ").strip() if re.search(r"[a-z]", s.lower()) else s

    m = _MONTH_YEAR.match(low)
    if m and m.group(1) in MONTHS:
        return _fmt(MONTHS[m.group(1)], _year(m.group(2)))
    m = _YEAR_MONTH.match(low)
    if m and m.group(2) in MONTHS:
        return _fmt(MONTHS[m.group(2)], int(m.group(1)))

    m = _DD_MM_YYYY.match(s)
    if m:
        first, second, year = int(m.group(1)), int(m.group(2)), m.group(3)
        # day/month order: when the first part can't be a month, it's the day
        month = second if first > 12 or second <= 12 else first
        return _fmt(month, _year(year))

    m = _MM_YYYY.match(s)
    if m:
        return _fmt(int(m.group(1)), _year(m.group(2)))

    m = _YYYY_MM.match(s)
    if m:
        return _fmt(int(m.group(2)), int(m.group(1)))

    digits = re.sub(r"\D", "", s)
    if len(digits) == 6 and digits == s:
        yyyy, mm = int(digits[:4]), int(digits[4:])
        if 1900 <= yyyy <= 2099 and 1 <= mm <= 12:
            return _fmt(mm, yyyy)
        mm, yyyy = int(digits[:2]), int(digits[2:])
        if 1900 <= yyyy <= 2099 and 1 <= mm <= 12:
            return _fmt(mm, yyyy)

    return raw


def period_from_filename(filename: str) -> Optional[str]:
    """
    Period hints in file names, most specific first:
    "SETIEMBRE 2025" > "09-2025" > "092025" (year must be 2020-2030).
    """
    name = _strip_accents(filename or "")
    m = _FILENAME_MONTH.search(name)
    if m:
        return _fmt(MONTHS[m.group(1).lower()], int(m.group(2)))
    m = _FILENAME_MM_YYYY.search(name)
    if m and 1 <= int(m.group(1)) <= 12:
        return _fmt(int(m.group(1)), int(m.group(2)))
    for m in _FILENAME_MMYYYY.finditer(name):
        mm, yyyy = int(m.group(1)), int(m.group(2))
        if 1 <= mm <= 12 and 2020 <= yyyy <= 2030:
            return _fmt(mm, yyyy)
    return None
