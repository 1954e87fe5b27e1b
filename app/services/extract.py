# app/services/extract.py
"""
Extraction rules (one engine, one profile per payroll format):

- Rows come in top-to-bottom, tokens left-to-right (see app/util/layout.py).

- Concept extraction by label (LIME, TYSA, SUMAR, LIMPAR fallback):
    "Contrib.Solidaria 2,00 % 1.234,56"  -> 20540 = "1234.56"
  * find the row whose text matches one of the labels
  * numbers after the label are candidates; anything followed by "%" is dropped
  * quantity-adjacent fields ("30,00" days next to the amount) only keep
    large/thousands-formatted values, else "0.00" (manual marking fixes those)
  * nothing on the label row -> look at the value-only row below, then above
  * profile decides which candidate wins: first, second or rightmost

- Code-token extraction (LIMPAR):
    "20595 CUOTA MUTUAL 1,00 12.345,67"  -> 20595 = "12345.67"
  * every 5-digit 20xxx token on a row gets that row's amount: the rightmost
    decimal with >= 3 integer digits, else the rightmost decimal, else the
    rightmost number; "-" when the row has no numbers
  * label values only fill codes the code pass left missing or "-"

- Concept tables (ESTRATEGIA):
    "0003 JORNAL BASICO 30,00 761.375,05"  -> JORNAL = "761375.05"
  * 4-digit code at the start of the row; TABLE_CONCEPTS names it, unknown
    codes become CONCEPTO_<code>
  * value picked by column: closest to the HABERES / DEDUCCIONES header x when
    the header row is present, rightmost otherwise

- Meta fields: LEGAJO (label row + 4 rows below), PERIODO (above the legajo
  row, then "Período" rows, then the file name), CUIL (personal prefix and
  closeness to LEGAJO win), NOMBRE ("SURNAME, First" or an upper-case block
  before the CUIL). Profile regexes run first for formats that print
  "Legajo: 123" style labels.

- Never raises for a missing field: "-" for meta, "0.00" for amounts.
  parse_receipt() is the dispatcher: structural PDF errors and unknown
  employers come back as GUARDAR=false records instead of exceptions.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional, Sequence, Tuple

from app.models.schemas import ParsedDocument, ParseResult, TextRow
from app.services.detect import detect_empresa
from app.services.errors import StructuralParseError
from app.services.heuristics import is_percentage, passes_quantity_policy
from app.services.parse_pdf import PdfSource, parse_with_pdfplumber
from app.util.layout import debug_lines, token_center
from app.util.logger import get_logger
from app.util.numbers import to_dot_decimal
from app.util.periods import period_from_filename
from extraction.patterns import (
    COLUMN_FALLBACK_RATIOS,
    COLUMN_HEADER_PATTERNS,
    CUIL_FLEX,
    CUIL_LABEL,
    CUIL_PERSONAL_PREFIX,
    EMPLOYER_PROFILES,
    EURO_THOUSANDS_ONLY,
    LEGAJO_LABEL,
    LEGAJO_VALUE,
    NAME_COMMA,
    NAME_STOPWORDS,
    NAME_TRAILING_NOISE,
    NUM_TOKEN,
    NUM_TOKEN_PAT,
    PERIODO_LABEL,
    PERIODO_VALUE,
    QUANTITY_ADJACENT_FIELDS,
    TABLE_CONCEPTS,
    TABLE_ROW_PAT,
    UNKNOWN,
    UNMAPPED_CONCEPT_PREFIX,
    UPPER_NAME_BLOCK,
)

NO_VALUE = "-"
ZERO = "0.00"

LEGAJO_SCAN_ROWS = 4
PERIODO_LOOKBACK_ROWS = 3
NAME_WINDOW_ROWS = 5

_NUM_FULL = re.compile(rf"^{NUM_TOKEN}$")
_LETTERS = re.compile(r"[A-Za-zÁÉÍÓÚÑáéíóúñ]{3,}")
_WS = r"[ \t\u00A0\u2007\u202F]"


def _normalize_pdf_text(s: str) -> str:
    if not s:
        return ""
    s = re.sub(r"\r?\n+", " ", s)
    s = re.sub(_WS, " ", s)
    return re.sub(r"\s+", " ", s).strip()


def _label_pattern(label: str) -> re.Pattern:
    """Literal label, tolerant to spacing around dots and between words."""
    parts = [re.escape(p) for p in re.split(r"\s+", label.strip())]
    body = r"\s*".join(parts)
    body = body.replace(r"\.", r"\.\s*")
    return re.compile(body, re.IGNORECASE)


def to_amount(raw: str, number_style: str = "mixed") -> str:
    """Money token -> canonical decimal string (European '46.699' = 46699)."""
    s = (raw or "").strip()
    if number_style == "european" and EURO_THOUSANDS_ONLY.match(s):
        s = s.replace(".", "")
    return to_dot_decimal(s)


# ---------- candidates ----------

def money_candidates(text: str) -> List[str]:
    """Numeric substrings of `text`, skipping percentages."""
    out: List[str] = []
    for m in NUM_TOKEN_PAT.finditer(text or ""):
        if is_percentage(text[m.end():]):
            continue
        out.append(m.group(0))
    return out


def _apply_field_class(cands: List[str], field_class: str) -> List[str]:
    if field_class == "quantity_adjacent":
        return [c for c in cands if passes_quantity_policy(c)]
    return cands


def _pick(cands: Sequence[str], pick: str) -> Optional[str]:
    if not cands:
        return None
    if pick == "second":
        return cands[1] if len(cands) > 1 else cands[0]
    if pick == "rightmost":
        return cands[-1]
    return cands[0]


def extract_concept(rows: List[TextRow], labels: Sequence[str], pick: str = "first",
                    field_class: str = "money", number_style: str = "mixed") -> str:
    """
    Value for one labeled concept, "0.00" when the label or its value is missing.
    """
    patterns = [_label_pattern(lbl) for lbl in labels]
    texts = [_normalize_pdf_text(r.text) for r in rows]
    for i, text in enumerate(texts):
        for pat in patterns:
            m = pat.search(text)
            if not m:
                continue
            cands = _apply_field_class(money_candidates(text[m.end():]), field_class)
            value = _pick(cands, pick)
            if value is not None:
                return to_amount(value, number_style)
            # value printed on its own row just below/above the label
            for j in (i + 1, i - 1):
                if 0 <= j < len(texts) and not _LETTERS.search(texts[j]):
                    near = _apply_field_class(money_candidates(texts[j]), field_class)
                    if near:
                        return to_amount(near[0], number_style)
            break
    return ZERO


# ---------- code tokens (LIMPAR) ----------

def _integer_digits(raw: str) -> int:
    s = raw.lstrip("-")
    last_dot, last_comma = s.rfind("."), s.rfind(",")
    sep = max(last_dot, last_comma)
    if sep < 0:
        return len(s)
    intpart = s[:sep]
    return len(re.sub(r"\D", "", intpart))


def row_amount(row: TextRow, skip: Sequence[str] = ()) -> Optional[str]:
    """The amount a LIMPAR row carries (see module notes)."""
    nums: List[str] = []
    tokens = row.tokens
    for idx, tok in enumerate(tokens):
        t = tok.text.strip()
        if t in skip or not _NUM_FULL.match(t):
            continue
        nxt = tokens[idx + 1].text if idx + 1 < len(tokens) else ""
        if nxt.startswith("%"):
            continue
        nums.append(t)
    if not nums:
        return None
    decimals = [n for n in nums if "." in n or "," in n]
    big = [d for d in decimals if _integer_digits(d) >= 3]
    if big:
        return big[-1]
    if decimals:
        return decimals[-1]
    return nums[-1]


def extract_code_values(rows: List[TextRow], code_pattern: str,
                        number_style: str = "mixed") -> Dict[str, str]:
    pat = re.compile(code_pattern)
    out: Dict[str, str] = {}
    for row in rows:
        codes = [t.text.strip() for t in row.tokens if pat.fullmatch(t.text.strip())]
        if not codes:
            continue
        raw = row_amount(row, skip=codes)
        value = to_amount(raw, number_style) if raw is not None else NO_VALUE
        for code in codes:
            if out.get(code, NO_VALUE) == NO_VALUE:
                out[code] = value
    return out


# ---------- concept tables (ESTRATEGIA) ----------

def find_column_positions(rows: List[TextRow], page_width: Optional[float] = None) -> Dict[int, float]:
    """x of each value column, from the header row or page-width ratios."""
    cols: Dict[int, float] = {}
    for row in rows:
        for tok in row.tokens:
            for idx, pat in COLUMN_HEADER_PATTERNS.items():
                if idx not in cols and pat.match(tok.text.strip()):
                    cols[idx] = token_center(tok)[0]
        if len(cols) >= 2:
            break
    if page_width:
        for idx, ratio in COLUMN_FALLBACK_RATIOS.items():
            cols.setdefault(idx, page_width * ratio)
    return cols


def extract_table_concepts(rows: List[TextRow], page_widths: Optional[Dict[int, float]] = None,
                           number_style: str = "european") -> Dict[str, str]:
    out: Dict[str, str] = {}
    columns_by_page: Dict[int, Dict[int, float]] = {}
    for row in rows:
        text = _normalize_pdf_text(row.text)
        m = TABLE_ROW_PAT.match(text)
        if not m:
            continue
        code = m.group(1)
        name, column = TABLE_CONCEPTS.get(code, (f"{UNMAPPED_CONCEPT_PREFIX}{code}", None))
        if name in out:
            continue

        cands = []
        tokens = row.tokens[1:]
        for idx, tok in enumerate(tokens):
            t = tok.text.strip()
            if not _NUM_FULL.match(t):
                continue
            nxt = tokens[idx + 1].text if idx + 1 < len(tokens) else ""
            if nxt.startswith("%"):
                continue
            cands.append(tok)
        if name in QUANTITY_ADJACENT_FIELDS:
            cands = [c for c in cands if passes_quantity_policy(c.text)]
        if not cands:
            out[name] = ZERO
            continue

        chosen = cands[-1]
        if column is not None:
            if row.page not in columns_by_page:
                page_rows = [r for r in rows if r.page == row.page]
                width = (page_widths or {}).get(row.page)
                columns_by_page[row.page] = find_column_positions(page_rows, width)
            col_x = columns_by_page[row.page].get(column)
            if col_x is not None and len(cands) > 1:
                chosen = min(cands, key=lambda c: abs(token_center(c)[0] - col_x))
        out[name] = to_amount(chosen.text, number_style)
    return out


# ---------- meta fields ----------

def _first_group_match(patterns: Sequence[str], text: str) -> Optional[re.Match]:
    for p in patterns:
        m = re.search(p, text)
        if m:
            return m
    return None


def _fmt_period(mm: str, yyyy: str) -> Optional[str]:
    month = int(mm)
    if not 1 <= month <= 12:
        return None
    return f"{month:02d}/{yyyy}"


def find_label_row(rows: List[TextRow], pat: re.Pattern) -> Optional[int]:
    for i, row in enumerate(rows):
        if pat.search(row.text):
            return i
    return None


def extract_legajo(rows: List[TextRow], raw_text: str = "",
                   patterns: Sequence[str] = ()) -> Tuple[str, Optional[int]]:
    """(legajo, label row index)."""
    label_row = find_label_row(rows, LEGAJO_LABEL)
    m = _first_group_match(patterns, raw_text)
    if m:
        return m.group(1), label_row

    if label_row is None:
        return NO_VALUE, None
    for i in range(label_row, min(len(rows), label_row + LEGAJO_SCAN_ROWS + 1)):
        tokens = rows[i].tokens
        if i == label_row:
            # only what comes after the label on its own row
            start = next((k for k, t in enumerate(tokens) if LEGAJO_LABEL.search(t.text)), -1)
            tokens = tokens[start + 1:]
        for tok in tokens:
            t = tok.text.strip().rstrip(":")
            if "-" not in t and LEGAJO_VALUE.match(t):
                return t, label_row
    return NO_VALUE, label_row


def extract_periodo(rows: List[TextRow], raw_text: str, filename: str,
                    legajo_row: Optional[int] = None, patterns: Sequence[str] = ()) -> str:
    m = _first_group_match(patterns, raw_text)
    if m:
        found = _fmt_period(m.group(1), m.group(2))
        if found:
            return found

    if legajo_row is not None:
        for i in range(legajo_row, max(-1, legajo_row - PERIODO_LOOKBACK_ROWS - 1), -1):
            for pm in PERIODO_VALUE.finditer(rows[i].text):
                found = _fmt_period(pm.group(1), pm.group(2))
                if found:
                    return found

    candidates: List[Tuple[int, int]] = []
    for i, row in enumerate(rows):
        if not PERIODO_LABEL.search(row.text):
            continue
        for j in (i, i + 1):
            if j >= len(rows):
                continue
            for pm in PERIODO_VALUE.finditer(rows[j].text):
                month, year = int(pm.group(1)), int(pm.group(2))
                if 1 <= month <= 12:
                    candidates.append((year, month))
    if candidates:
        year, month = max(candidates)
        return f"{month:02d}/{year}"

    return period_from_filename(filename) or NO_VALUE


def format_cuil(digits: str) -> str:
    return f"{digits[:2]}-{digits[2:10]}-{digits[10:]}"


def cuil_candidates(rows: List[TextRow]) -> List[Tuple[str, int]]:
    """(11 digits, row index) for every CUIL-looking value."""
    found: List[Tuple[str, int]] = []
    for i, row in enumerate(rows):
        text = row.text
        for m in CUIL_FLEX.finditer(text):
            digits = re.sub(r"\D", "", m.group(0))
            if len(digits) == 11:
                found.append((digits, i))
        for m in CUIL_LABEL.finditer(text):
            tail = re.sub(r"\D", "", text[m.end():])
            if len(tail) >= 11:
                found.append((tail[:11], i))
    return found


def extract_cuil(rows: List[TextRow], legajo_row: Optional[int] = None) -> Tuple[str, Optional[int]]:
    cands = cuil_candidates(rows)
    if not cands:
        return NO_VALUE, None

    def rank(c: Tuple[str, int]):
        digits, idx = c
        personal = 0 if CUIL_PERSONAL_PREFIX.match(digits) else 1
        dist = abs(idx - legajo_row) if legajo_row is not None else 0
        return (personal, dist, idx)

    digits, idx = min(cands, key=rank)
    return format_cuil(digits), idx


def _clean_name(raw: str, strip: Sequence[str] = ()) -> str:
    s = NAME_TRAILING_NOISE.sub("", raw or "")
    for p in strip:
        s = re.sub(p, "", s, flags=re.IGNORECASE)
    s = re.sub(r"\s*,\s*", ", ", s)
    s = re.sub(r"\s+", " ", s).strip(" ,")
    return s


def name_from_text(text: str) -> Optional[str]:
    m = NAME_COMMA.search(text or "")
    if m:
        words = set(re.split(r"[\s,]+", m.group(0)))
        if not words & (NAME_STOPWORDS - {"DE", "Y"}):
            return _clean_name(m.group(0))
    for m in UPPER_NAME_BLOCK.finditer(text or ""):
        words = m.group(1).split()
        if any(w in NAME_STOPWORDS - {"DE", "Y"} for w in words):
            continue
        if len(words) >= 2:
            return _clean_name(m.group(1))
    return None


def extract_nombre(rows: List[TextRow], raw_text: str = "", cuil_row: Optional[int] = None,
                   legajo_row: Optional[int] = None, patterns: Sequence[str] = (),
                   strip: Sequence[str] = ()) -> str:
    m = _first_group_match(patterns, raw_text)
    if m:
        name = _clean_name(m.group(1), strip)
        if name:
            return name

    search_order: List[str] = []
    if cuil_row is not None:
        row_text = rows[cuil_row].text
        cm = CUIL_FLEX.search(row_text)
        search_order.append(row_text[:cm.start()] if cm else row_text)
        if cuil_row > 0:
            search_order.append(rows[cuil_row - 1].text)
    if legajo_row is not None:
        lo = max(0, legajo_row - NAME_WINDOW_ROWS)
        hi = min(len(rows), legajo_row + NAME_WINDOW_ROWS + 1)
        search_order.extend(rows[i].text for i in range(lo, hi))

    for text in search_order:
        name = name_from_text(text)
        if name:
            return _clean_name(name, strip)
    return NO_VALUE


# ---------- engine ----------

def parse_rows(rows: List[TextRow], raw_text: str, filename: str, empresa: str,
               page_widths: Optional[Dict[int, float]] = None) -> ParseResult:
    """
    Run one employer profile over the rows of a receipt.

    UNKNOWN (or any employer without a profile) still gets the meta fields so
    the user can see what was read, but is flagged GUARDAR=false.
    """
    logger = get_logger()
    profile = EMPLOYER_PROFILES.get(empresa, {})
    style = profile.get("number_style", "mixed")
    text = _normalize_pdf_text(raw_text)

    data: Dict[str, str] = {
        "ARCHIVO": filename,
        "EMPRESA": empresa,
        "GUARDAR": "true",
    }

    legajo, legajo_row = extract_legajo(rows, text, profile.get("legajo_patterns", ()))
    cuil, cuil_row = extract_cuil(rows, legajo_row)
    data["LEGAJO"] = legajo
    data["PERIODO"] = extract_periodo(rows, text, filename, legajo_row, profile.get("periodo_patterns", ()))
    data["CUIL"] = cuil
    data["NOMBRE"] = extract_nombre(rows, text, cuil_row, legajo_row,
                                    profile.get("nombre_patterns", ()), profile.get("nombre_strip", ()))

    if profile.get("code_pattern"):
        data.update(extract_code_values(rows, profile["code_pattern"], style))

    fallback_only = profile.get("label_fallback_only", False)
    for key, concept in profile.get("concepts", {}).items():
        if fallback_only and data.get(key, NO_VALUE) != NO_VALUE:
            continue
        data[key] = extract_concept(rows, concept["labels"], concept.get("pick", "first"),
                                    concept.get("class", "money"), style)
        if concept.get("class") == "count":
            data[key] = data[key] if data[key] != ZERO else NO_VALUE

    if profile.get("table_concepts"):
        data.update(extract_table_concepts(rows, page_widths, style))

    if not profile:
        data["GUARDAR"] = "false"
        data["ERROR"] = f"Unrecognized employer for {filename}"
        logger.info(f"No parser profile for {empresa}; {filename} will not be saved")

    logger.info(f"Parsed {filename} as {empresa}: legajo={data['LEGAJO']} periodo={data['PERIODO']}")
    logger.debug(f"Parsed fields for {filename}: {data}")
    return ParseResult(data=data, debug_lines=debug_lines(rows))


def parse_document(doc: ParsedDocument, empresa: Optional[str] = None) -> ParseResult:
    raw_text = doc.raw_text
    empresa = empresa or detect_empresa(raw_text, doc.filename)
    widths = {p.page_number: p.width for p in doc.pages}
    result = parse_rows(doc.rows, raw_text, doc.filename, empresa, widths)
    result.document = doc
    return result


def parse_receipt(source: PdfSource, filename: str, empresa: Optional[str] = None) -> ParseResult:
    """
    Dispatcher: PDF -> ParseResult, never raising for a bad file.

    A structural error becomes {GUARDAR: "false", ERROR: <message>} so a batch
    can record the failure and move on.
    """
    logger = get_logger()
    try:
        doc = parse_with_pdfplumber(source, filename=filename)
    except StructuralParseError as e:
        logger.error(f"Skipping {filename}: {e}")
        return ParseResult(data={
            "ARCHIVO": filename,
            "EMPRESA": empresa or UNKNOWN,
            "GUARDAR": "false",
            "ERROR": str(e),
        })
    return parse_document(doc, empresa)
