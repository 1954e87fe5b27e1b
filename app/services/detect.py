"""
Employer (empresa) detection.

- detect_empresa(raw_text, filename): ordered rules from EMPRESA_RULES, first
  match wins. Strong signals are company names; weak signals are label pairs
  that only one payroll system prints together.
- detect_from_filename(name): token match on a normalized file name, with a
  confidence score. Used when the text is empty (scanned receipts) and to
  break LIME/TYSA ties.

Returns UNKNOWN rather than guessing; callers must not persist UNKNOWN records.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional, Tuple

from extraction.patterns import EMPRESA_RULES, FILENAME_TOKENS, LIME, TYSA, TYSA_HINT, UNKNOWN
from app.util.logger import get_logger

_COMPILED_RULES = [
    {
        "empresa": rule["empresa"],
        "strong": [re.compile(p, re.IGNORECASE) for p in rule["strong"]],
        "weak": [[re.compile(p, re.IGNORECASE) for p in group] for group in rule["weak"]],
    }
    for rule in EMPRESA_RULES
]


_SPACED_ACRONYM = re.compile(r"(?<![a-z0-9])((?:[a-z][._\-]){2,}[a-z])(?![a-z0-9])")


def normalize_filename(name: str) -> str:
    """'T.Y.S.A - Julio.pdf' -> 'tysa julio pdf'."""
    s = unicodedata.normalize("NFKD", name or "")
    s = "".join(c for c in s if not unicodedata.combining(c)).lower()
    s = _SPACED_ACRONYM.sub(lambda m: re.sub(r"[._\-]", "", m.group(1)), s)
    s = re.sub(r"[^a-z0-9]+", " ", s)
    return s.strip()


def detect_from_filename(name: str) -> Tuple[str, float]:
    """Whole-word hits score 0.95, hits inside a longer word 0.8."""
    words = normalize_filename(name).split()
    joined = "".join(words)
    for token, empresa in FILENAME_TOKENS:
        if token in words:
            return empresa, 0.95
    for token, empresa in FILENAME_TOKENS:
        if token in joined:
            return empresa, 0.8
    return UNKNOWN, 0.0


def _match_rules(text: str) -> Optional[str]:
    for rule in _COMPILED_RULES:
        if any(p.search(text) for p in rule["strong"]):
            return rule["empresa"]
        for group in rule["weak"]:
            if group and all(p.search(text) for p in group):
                return rule["empresa"]
    return None


def detect_empresa(raw_text: str, filename: str = "") -> str:
    logger = get_logger()
    text = raw_text or ""
    empresa = _match_rules(text)

    if empresa is None:
        by_name, confidence = detect_from_filename(filename)
        if by_name != UNKNOWN:
            logger.debug(f"Employer from filename {filename!r}: {by_name} ({confidence})")
            empresa = by_name

    # LIME layouts are shared with TYSA's workshop receipts
    if empresa == LIME and (TYSA_HINT.search(text) or TYSA_HINT.search(filename or "")
                            or detect_from_filename(filename)[0] == TYSA):
        empresa = TYSA

    empresa = empresa or UNKNOWN
    logger.info(f"Detected employer {empresa} for {filename or '<no name>'}")
    return empresa
