"""
Number/locale helpers for Argentine/European payslip amounts.

- to_dot_decimal("77.390,06") -> "77390.06"; to_dot_decimal("27,640.12") -> "27640.12"
- to_number(): same rightmost-separator rule, NaN when it doesn't parse.
- round2 / fmt2: Decimal-based 2-decimal rounding so sums don't drift.

Every captured money token goes through to_dot_decimal so the parsers agree on
what "1.234" means.
"""

from __future__ import annotations

import math
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

# \s covers NBSP, figure space and narrow NBSP too
_SPACES = re.compile(r"\s+")
_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_CODE_PAT = re.compile(r"^\d{5}$")

_CENT = Decimal("0.01")


def is_code(key: Any) -> bool:
    """True for 5-digit concept codes like "20595"."""
    return bool(_CODE_PAT.match(str(key or "")))


def _unify_separators(s: str) -> str:
    """Rewrite s so '.' is the only (decimal) separator."""
    last_dot = s.rfind(".")
    last_comma = s.rfind(",")
    if last_dot >= 0 and last_comma >= 0:
        if last_comma > last_dot:
            return s.replace(".", "").replace(",", ".")
        return s.replace(",", "")
    if last_comma >= 0:
        after = s[last_comma + 1:]
        if 1 <= len(after) <= 3 and after.isdigit():
            return s[:last_comma].replace(",", "") + "." + after
        return s.replace(",", "")
    return s


def to_dot_decimal(raw: Any) -> str:
    """
    Canonical "1234.56" string for a locale-formatted amount.

    Always two fractional digits; "0.00" for empty/unparseable input.
    A leading minus survives.
    """
    s = _SPACES.sub("", str(raw if raw is not None else ""))
    if not s:
        return "0.00"
    s = _NON_NUMERIC.sub("", _unify_separators(s))
    negative = s.startswith("-")
    s = s.replace("-", "")
    if not s or s == ".":
        return "0.00"
    if s.count(".") > 1:
        # "1.234.567" with no comma: dots were thousands separators
        s = s.replace(".", "")
    try:
        value = Decimal(s).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return "0.00"
    if negative and value != 0:
        value = -value
    return f"{value:.2f}"


def to_number(raw: Any) -> float:
    """Locale-aware float; blank/'-'/'—' are 0, garbage is NaN."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    s = _SPACES.sub("", str(raw if raw is not None else ""))
    if s in ("", "-", "—"):
        return 0.0
    s = _unify_separators(s)
    try:
        return float(s)
    except ValueError:
        return math.nan


def to_decimal(raw: Any) -> Decimal:
    """Decimal view of to_number(); unparseable values count as 0."""
    n = to_number(raw)
    if math.isnan(n):
        return Decimal("0")
    return Decimal(str(n))


def round2(value: Any) -> Decimal:
    if not isinstance(value, Decimal):
        value = to_decimal(value)
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def fmt2(raw: Any) -> str:
    """Format any amount-like value with exactly two decimals."""
    return f"{round2(raw):.2f}"


def parse_optional(raw: Any) -> Optional[float]:
    n = to_number(raw)
    return None if math.isnan(n) else n
