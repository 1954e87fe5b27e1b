"""
Sanity checks for a parsed receipt before it is shown or saved.

- Errors: the record can't be keyed or attributed (bad LEGAJO / PERIODO /
  EMPRESA, a NOMBRE that is clearly not a name, a malformed CUIL).
- Warnings: things worth a look that don't block saving (no CUIL, a money
  field that didn't parse).
- Keep conservative: a plausible value is never rejected just because it is
  unusual.

This runs after parse_receipt() and before consolidation so the UI can show
which receipts need manual fixes.
"""

import re
from typing import Any, Dict, List

from app.util.numbers import is_code, parse_optional
from extraction.patterns import CUIL_KNOWN_PREFIXES, KNOWN_EMPLOYERS

LEGAJO_MIN = 1
LEGAJO_MAX = 999999
YEAR_MIN = 2020
YEAR_MAX = 2030
NOMBRE_MIN_LEN = 3
NOMBRE_MAX_LEN = 100

_PERIODO = re.compile(r"^(\d{2})/(\d{4})$")


def _missing(value: Any) -> bool:
    return value is None or str(value).strip() in ("", "-")


def _check_legajo(value: Any, errors: List[str]) -> None:
    s = str(value or "").strip()
    if not s.isdigit():
        errors.append(f"LEGAJO must be numeric, got {s!r}")
    elif not LEGAJO_MIN <= int(s) <= LEGAJO_MAX:
        errors.append(f"LEGAJO out of range: {s}")


def _check_periodo(value: Any, errors: List[str]) -> None:
    s = str(value or "").strip()
    m = _PERIODO.match(s)
    if not m:
        errors.append(f"PERIODO must be mm/yyyy, got {s!r}")
        return
    month, year = int(m.group(1)), int(m.group(2))
    if not 1 <= month <= 12:
        errors.append(f"PERIODO month out of range: {s}")
    if not YEAR_MIN <= year <= YEAR_MAX:
        errors.append(f"PERIODO year out of range: {s}")


def _check_cuil(value: Any, errors: List[str]) -> None:
    digits = re.sub(r"\D", "", str(value))
    if len(digits) != 11:
        errors.append(f"CUIL must have 11 digits, got {value!r}")
    elif digits[:2] not in CUIL_KNOWN_PREFIXES:
        errors.append(f"CUIL has an unknown prefix: {value}")


def validate_record(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check one receipt's `data` dict.

    Returns {"is_valid": bool, "errors": [...], "warnings": [...]}.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if _missing(data.get("LEGAJO")):
        errors.append("LEGAJO is missing")
    else:
        _check_legajo(data["LEGAJO"], errors)

    if _missing(data.get("PERIODO")):
        errors.append("PERIODO is missing")
    else:
        _check_periodo(data["PERIODO"], errors)

    nombre = str(data.get("NOMBRE") or "").strip()
    if _missing(nombre):
        warnings.append("NOMBRE is missing")
    elif not NOMBRE_MIN_LEN <= len(nombre) <= NOMBRE_MAX_LEN:
        errors.append(f"NOMBRE length must be {NOMBRE_MIN_LEN}-{NOMBRE_MAX_LEN} characters")

    if _missing(data.get("CUIL")):
        warnings.append("CUIL is missing")
    else:
        _check_cuil(data["CUIL"], errors)

    empresa = str(data.get("EMPRESA") or "").strip()
    if empresa not in KNOWN_EMPLOYERS:
        errors.append(f"Unknown EMPRESA {empresa or '(empty)'}")

    for key, value in data.items():
        if is_code(key) and not _missing(value) and parse_optional(value) is None:
            warnings.append(f"{key} is not a number: {value!r}")

    return {"is_valid": not errors, "errors": errors, "warnings": warnings}
