"""
Heuristic accept/reject predicates.

Every threshold below was tuned by eye against real receipts; they are
heuristics, not business rules. Keep them here as named constants so tuning
one never means touching extraction control flow.

- Money candidates: percentages, small day/hour counts.
- Region OCR: table-header contamination, valid job categories.
- Replay: whether a stored value looks like a quantity that leaked into a
  money field.
"""

from __future__ import annotations

import math
import re
from typing import List, Optional

from extraction.patterns import (
    HEADER_ONLY_WORDS,
    HEADER_WORDS,
    INVALID_HEADER_PATTERNS,
    THOUSANDS_PAT,
    VALID_CATEGORIES,
)
from app.util.numbers import to_number

# Below this, an unformatted number next to a quantity column is a count, not money
QUANTITY_MONEY_THRESHOLD = 1000.0

# Auto-detected table values under this are not amounts (except JORNAL/HORAS_EXTRAS)
MONETARY_MIN_VALUE = 100.0
ALWAYS_MONETARY_PREFIXES = ("JORNAL", "HORAS_EXTRAS")

# Region text made of this many header words (or more than this share) is a header
HEADER_WORD_MAX = 3
HEADER_WORD_MAX_SHARE = 0.5

_PERCENT_AFTER = re.compile(r"^\s*%")


def is_percentage(text_after: str) -> bool:
    """True when the text right after a number starts with '%'."""
    return bool(_PERCENT_AFTER.match(text_after or ""))


def has_thousands_grouping(raw: str) -> bool:
    return bool(THOUSANDS_PAT.match((raw or "").strip()))


def passes_quantity_policy(raw: str) -> bool:
    """
    For money fields whose row also shows days/hours: keep a candidate only if
    it is large or visibly formatted as thousands.
    """
    value = to_number(raw)
    if math.isnan(value):
        return False
    return abs(value) >= QUANTITY_MONEY_THRESHOLD or has_thousands_grouping(raw)


def is_monetary_value(value: float, field_name: str) -> bool:
    if field_name.upper().startswith(ALWAYS_MONETARY_PREFIXES):
        return True
    return value >= MONETARY_MIN_VALUE


# ---------- header contamination ----------

def _words(text: str) -> List[str]:
    return [w for w in re.split(r"\s+", (text or "").upper().strip()) if w]


def is_header_word(word: str) -> bool:
    w = word.upper()
    return any(hw in w or w in hw for hw in HEADER_WORDS) if len(w) >= 3 else w in HEADER_ONLY_WORDS


def header_word_count(text: str) -> int:
    return sum(1 for w in _words(text) if is_header_word(w))


def has_valid_category(text: str) -> bool:
    words = _words(text)
    return any(w in VALID_CATEGORIES for w in words)


def mostly_header_words(text: str) -> bool:
    words = _words(text)
    if not words:
        return False
    return header_word_count(text) / len(words) > HEADER_WORD_MAX_SHARE


def is_header_contaminated(text: str) -> bool:
    """
    Should a region's extracted text be thrown away as table-header noise?

    A known job category anywhere in the text wins (CHOFER, PEON, ...), except
    for the LIQUIDACION banner which is never a value.
    """
    t = (text or "").strip()
    if not t:
        return False
    up = t.upper()
    words = _words(t)

    if re.search(r"LIQUIDACI[OÓ]N", up):
        return True
    if has_valid_category(t):
        return False
    if any(p.search(up) for p in INVALID_HEADER_PATTERNS):
        return True
    if len(words) == 1 and words[0] in HEADER_ONLY_WORDS:
        return True
    if "FUNCION" in up.replace("Ó", "O") and "SECTOR" in up and "DEDUCCION" in up.replace("Ó", "O"):
        return True
    if "SERV" in words and ("FUNCION" in up.replace("Ó", "O") or "SECTOR" in up):
        return True

    count = header_word_count(t)
    if count >= HEADER_WORD_MAX:
        return True
    if mostly_header_words(t):
        return True
    if len(words) > 1 and words[0] in HEADER_ONLY_WORDS and all(is_header_word(w) for w in words[1:]):
        return True
    return up == "SERV"


# ---------- replay override ----------

def is_likely_incorrect_value(value: Optional[str]) -> bool:
    """
    Does a stored money value look like a count that landed in an amount?

    Stored values are canonical dot-decimal, so the suspect class is a small
    whole number ("30", "3.00"): days, hours or units read from the quantity
    column. Values carrying a comma were read with locale formatting and are
    trusted.
    """
    v = (value or "").strip()
    if v in ("", "0.00", "0", "-"):
        return False
    if "," in v:
        return False
    n = to_number(v)
    if not math.isfinite(n):
        return False
    return n == int(n) and abs(n) < QUANTITY_MONEY_THRESHOLD
