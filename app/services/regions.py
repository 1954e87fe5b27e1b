"""
Region OCR: reading the text inside a user-marked rectangle.

- Geometry: fields are stored relative (0..1, top-left origin) to the page.
  relative_to_pdf_region() undoes the render scale and flips y, so the same
  visual rectangle gives the same PDF region at any zoom.
- Token selection: at least 70% of the token box inside the region, so a
  word from the row above or below that grazes the edge is left out; if
  nothing qualifies, tokens whose origin is within 3 units. Empty result ->
  one retry with the region padded by 2%.
- Ordering: closest to the region center first (row then column on ties),
  same text within 5 units collapsed.
- Cleanup: header words dropped when they dominate the selection, repeated
  partial words ("CHOFE CHOFER") merged, the "CATEGORIA" label stripped from
  category fields, trailing "CUIL"/"DNI" stripped from CUIL fields, then the
  employer's replacement rules.

auto_detect_concepts() proposes fields for known concept-table rows;
FieldMarkerSession is the marking workflow; apply_ocr_rules_to_receipt()
replays a saved rule on another receipt of the same employer.
"""

from __future__ import annotations

import math
import re
import uuid
from enum import Enum
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from app.models.schemas import (
    MarkedField,
    OCRRule,
    PageText,
    ParsedDocument,
    PositionedToken,
    ReplacementRule,
    ReplayResult,
)
from app.services.consolidate import ConsolidationService
from app.services.errors import DuplicateFieldError, UnknownFieldError
from app.services.heuristics import (
    HEADER_WORD_MAX_SHARE,
    is_header_contaminated,
    is_header_word,
    is_likely_incorrect_value,
    is_monetary_value,
)
from app.services.stores import ConfigStore
from app.util.layout import (
    ROW_TOLERANCE,
    PdfRegion,
    RelativeRect,
    canvas_rect_to_relative,
    group_rows,
    relative_to_pdf_region,
    token_box,
    token_center,
)
from app.util.logger import get_logger
from app.util.numbers import to_dot_decimal, to_number
from app.util.settings import get_settings
from extraction.patterns import (
    AUTO_DETECT_CONCEPTS,
    AUTO_DETECT_LABELS,
    CATEGORY_FIELDS,
    CATEGORY_LABEL_WORDS,
    COLUMN_FALLBACK_RATIOS,
    CUIL_FIELDS,
    CUIL_SUFFIX_PAT,
    CUIL_TRAILING_UNIT_PAT,
    MULTI_INSTANCE_FIELDS,
    NUM_TOKEN,
    SPECIAL_DEDUP_CASES,
    VARIABLE_COORDINATE_FIELDS,
)

REGION_PADDING = 0.02
MIN_INSIDE_SHARE = 0.7
FALLBACK_TOLERANCE = 3.0
CENTER_TIE = 1.0
DEDUP_DISTANCE = 5.0
REDUNDANT_WORD_MAX_EXTRA = 3

# auto-detection geometry, PDF units
AUTO_LINE_TOLERANCE = 5.0
AUTO_SEARCH_DX = 120.0
AUTO_SEARCH_DY = 30.0
AUTO_SEARCH_ROWS = 2
AUTO_RECT_LEFT = 80.0
AUTO_RECT_TOP = 15.0
AUTO_RECT_WIDTH = 200.0
AUTO_RECT_HEIGHT = 25.0

TEXT_FIELDS = {"LEGAJO", "PERIODO", "NOMBRE", "EMPRESA"} | CATEGORY_FIELDS

MARKERS_KEY = "field_markers_{empresa}"
REPLACEMENTS_KEY = "ocr_replacements_{empresa}"

_NUM_FULL = re.compile(rf"^{NUM_TOKEN}$")
_MONETARY_TEXT = re.compile(r"^\d{1,3}(?:[.,]\d{3})*(?:[.,]\d{2})?$")
_CATEGORY_LABEL = "|".join(sorted((re.escape(w) for w in CATEGORY_LABEL_WORDS), key=len, reverse=True))
_CATEGORY_PREFIX = re.compile(rf"^(?:{_CATEGORY_LABEL})\b[:.]?\s*", re.IGNORECASE)
_CATEGORY_SUFFIX = re.compile(rf"\s*\b(?:{_CATEGORY_LABEL})[:.]?$", re.IGNORECASE)


def _is_category_field(field_name: str) -> bool:
    return field_name.upper() in CATEGORY_FIELDS


def _is_cuil_field(field_name: str) -> bool:
    return field_name.upper() in CUIL_FIELDS


# ---------- token selection ----------

def inside_share(tok: PositionedToken, region: PdfRegion) -> float:
    """Fraction of the token box that lies inside the region (0..1)."""
    x1, y1, x2, y2 = token_box(tok)
    area = (x2 - x1) * (y2 - y1)
    if area <= 0:
        return 1.0 if region.contains((x1 + x2) / 2.0, (y1 + y2) / 2.0) else 0.0
    dx = min(x2, region.x_max) - max(x1, region.x_min)
    dy = min(y2, region.y_max) - max(y1, region.y_min)
    if dx <= 0 or dy <= 0:
        return 0.0
    return dx * dy / area


def select_tokens(tokens: Iterable[PositionedToken], region: PdfRegion) -> List[PositionedToken]:
    tokens = [t for t in tokens if t.text.strip()]
    picked = [t for t in tokens if inside_share(t, region) >= MIN_INSIDE_SHARE]
    if not picked:
        picked = [t for t in tokens if region.contains(t.x, t.y, FALLBACK_TOLERANCE)]
    return picked


def _drop_header_noise(tokens: List[PositionedToken], field_name: str) -> List[PositionedToken]:
    if _is_category_field(field_name):
        tokens = [t for t in tokens if not t.text.strip().upper().startswith("CATEGOR")] or tokens
    headers = [t for t in tokens if is_header_word(t.text.strip())]
    if headers and (len(tokens) == 1 or len(headers) / len(tokens) > HEADER_WORD_MAX_SHARE):
        return [t for t in tokens if not is_header_word(t.text.strip())] or tokens
    return tokens


def order_tokens(tokens: List[PositionedToken], region: PdfRegion) -> List[PositionedToken]:
    """Nearest to the region center first; ties by row (top first) then x."""
    cx, cy = region.center

    def dist(tok: PositionedToken) -> float:
        tx, ty = token_center(tok)
        return math.hypot(tx - cx, ty - cy)

    def compare(a: PositionedToken, b: PositionedToken) -> int:
        da, db = dist(a), dist(b)
        if abs(da - db) > CENTER_TIE:
            return -1 if da < db else 1
        if abs(a.y - b.y) > ROW_TOLERANCE:
            return -1 if a.y > b.y else 1
        return (a.x > b.x) - (a.x < b.x)

    return sorted(tokens, key=cmp_to_key(compare))


def dedupe_tokens(tokens: List[PositionedToken]) -> List[PositionedToken]:
    kept: List[PositionedToken] = []
    for tok in tokens:
        tx, ty = token_center(tok)
        text = tok.text.strip().upper()
        if any(k.text.strip().upper() == text
               and math.hypot(tx - token_center(k)[0], ty - token_center(k)[1]) <= DEDUP_DISTANCE
               for k in kept):
            continue
        kept.append(tok)
    return kept


# ---------- text cleanup ----------

def _drop_redundant_words(words: List[str]) -> List[str]:
    """'CHOFE CHOFER' -> ['CHOFER']; only alphabetic words are compared."""
    out = []
    for i, w in enumerate(words):
        up = w.upper()
        redundant = w.isalpha() and any(
            j != i and other.isalpha() and up != other.upper() and up in other.upper()
            and len(other) - len(w) <= REDUNDANT_WORD_MAX_EXTRA
            for j, other in enumerate(words)
        )
        if not redundant:
            out.append(w)
    return out


def clean_extracted_text(text: str, field_name: str) -> str:
    s = re.sub(r"\s+", " ", text or "").strip()
    if not s:
        return ""
    s = " ".join(_drop_redundant_words(s.split(" ")))
    s = SPECIAL_DEDUP_CASES.get(s.upper(), s)

    if _is_category_field(field_name):
        s = _CATEGORY_PREFIX.sub("", s)
        s = _CATEGORY_SUFFIX.sub("", s).strip()

    if _is_cuil_field(field_name):
        m = CUIL_SUFFIX_PAT.match(s)
        s = m.group(1) if m else CUIL_TRAILING_UNIT_PAT.sub("", s).strip()
    return s


def apply_replacements(text: str, field_name: str, rules: Sequence[ReplacementRule]) -> str:
    """Case-insensitive literal substitutions registered for this field."""
    for rule in rules or ():
        if rule.field_name != field_name or not rule.from_:
            continue
        text = re.sub(re.escape(rule.from_), lambda _m, to=rule.to: to, text, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", text).strip()


def extract_text_from_region(field: MarkedField, page: PageText, render_scale: Optional[float] = None,
                             expanded: bool = False,
                             replacements: Sequence[ReplacementRule] = ()) -> str:
    """Text under one marked field, "" when the region stays empty after the padded retry."""
    logger = get_logger()
    scale = render_scale or get_settings().render_scale
    rect = RelativeRect(field.x, field.y, field.width, field.height)
    region = relative_to_pdf_region(rect, page.width, page.height, scale,
                                    padding=REGION_PADDING if expanded else 0.0)

    picked = _drop_header_noise(select_tokens(page.tokens, region), field.field_name)
    ordered = dedupe_tokens(order_tokens(picked, region))
    text = clean_extracted_text(" ".join(t.text.strip() for t in ordered), field.field_name)
    if replacements:
        text = apply_replacements(text, field.field_name, replacements)

    if not text and not expanded:
        logger.debug(f"Region for {field.field_name} on page {field.page_number} is empty; retrying padded")
        return extract_text_from_region(field, page, scale, expanded=True, replacements=replacements)
    logger.debug(f"Region {field.field_name} -> {text!r}")
    return text


# ---------- auto-detection ----------

def detect_column_x(tokens: Sequence[PositionedToken], page_width: float) -> Dict[int, float]:
    """x of the JORNAL / HAB / DEDUCCION header tokens, else fixed page fractions."""
    cols: Dict[int, float] = {}
    for tok in tokens:
        t = tok.text.strip().upper()
        if t == "JORNAL":
            cols.setdefault(0, tok.x)
        elif "HAB" in t:
            cols.setdefault(1, tok.x)
        elif "DEDUCCION" in t or "DEDUCCIÓN" in t:
            cols.setdefault(2, tok.x)
    for idx, ratio in COLUMN_FALLBACK_RATIOS.items():
        cols.setdefault(idx, page_width * ratio)
    return cols


def field_identity(field: MarkedField) -> Tuple[str, int, Optional[str], Optional[int]]:
    return (field.field_name, field.page_number, field.concept_code, field.column_index)


def _new_id(field_name: str, page_number: int, code: Optional[str] = None) -> str:
    return f"{field_name}-{page_number}-{uuid.uuid4().hex[:8]}-{code or ''}"


def _clamp(v: float) -> float:
    return max(0.0, min(1.0, v))


def _auto_rect(anchor_x: float, value_y: float, page: PageText) -> RelativeRect:
    x = _clamp((anchor_x - AUTO_RECT_LEFT) / page.width)
    y = _clamp((page.height - value_y - AUTO_RECT_TOP) / page.height)
    return RelativeRect(x, y, min(1.0 - x, AUTO_RECT_WIDTH / page.width),
                        min(1.0 - y, AUTO_RECT_HEIGHT / page.height))


def _is_monetary_text(text: str) -> bool:
    clean = re.sub(r"[^\d,.]", "", text)
    if not clean:
        return False
    return bool(_MONETARY_TEXT.match(clean)) or len(re.sub(r"[.,]", "", clean)) >= 4


def _tokens_after(tokens: List[PositionedToken], end: int) -> List[PositionedToken]:
    """Tokens that start after character `end` of " ".join(tokens)."""
    pos = 0
    for idx, tok in enumerate(tokens):
        pos += len(tok.text)
        if pos >= end:
            return tokens[idx + 1:]
        pos += 1
    return []


def auto_detect_concepts(page: PageText, existing: Sequence[MarkedField] = ()) -> List[MarkedField]:
    """
    Propose fields for the known concept-table rows of one page.

    Fields whose identity (name, page, concept code, column) is already in
    `existing` or was found earlier on the page are not proposed again.
    """
    logger = get_logger()
    tokens = [t.model_copy(update={"page": page.page_number}) for t in page.tokens if t.text.strip()]
    rows = group_rows(tokens, AUTO_LINE_TOLERANCE)
    columns = detect_column_x(tokens, page.width)
    seen = {field_identity(f) for f in existing}
    found: List[MarkedField] = []

    def propose(name: str, code: Optional[str], column: Optional[int], value_tok: PositionedToken,
                anchor_x: float) -> None:
        f = MarkedField(
            id=_new_id(name, page.page_number, code),
            field_name=name,
            page_number=page.page_number,
            detected_value=value_tok.text.strip(),
            original_detected_value=value_tok.text.strip(),
            column_index=column,
            concept_code=code,
            **_auto_rect(anchor_x, value_tok.y, page)._asdict(),
        )
        if field_identity(f) in seen:
            return
        seen.add(field_identity(f))
        found.append(f)

    for i, row in enumerate(rows):
        first = row.tokens[0].text.strip()
        code = next((c for c in AUTO_DETECT_CONCEPTS if first == c or first.startswith(c + " ")), None)
        if code is not None:
            name, column = AUTO_DETECT_CONCEPTS[code]
            col_x = columns[column]
            near_rows = rows[max(0, i - AUTO_SEARCH_ROWS): i + AUTO_SEARCH_ROWS + 1]
            cands = [
                t for r in near_rows for t in r.tokens
                if abs(t.x - col_x) < AUTO_SEARCH_DX and abs(t.y - row.y) < AUTO_SEARCH_DY
                and (t.x, t.y) != (row.tokens[0].x, row.tokens[0].y) and _is_monetary_text(t.text)
                and is_monetary_value(to_number(re.sub(r"[^\d,.]", "", t.text)), name)
            ]
            if cands:
                best = min(cands, key=lambda t: (abs(t.y - row.y) > ROW_TOLERANCE, abs(t.x - col_x)))
                propose(name, code, column, best, col_x)
            continue

        for name, pat in AUTO_DETECT_LABELS.items():
            m = pat.search(row.text)
            if not m:
                continue
            # counts: the first number printed after the label on its row
            after = [t for t in _tokens_after(row.tokens, m.end()) if _NUM_FULL.match(t.text.strip())]
            if after:
                propose(name, None, None, after[0], after[0].x)

    logger.info(f"Auto-detected {len(found)} field(s) on page {page.page_number}")
    return found


# ---------- persisted rules ----------

def markers_key(empresa: str) -> str:
    return MARKERS_KEY.format(empresa=empresa)


def replacements_key(empresa: str) -> str:
    return REPLACEMENTS_KEY.format(empresa=empresa)


def load_rule(config: ConfigStore, empresa: str) -> Optional[OCRRule]:
    logger = get_logger()
    raw = config.get(markers_key(empresa))
    if not raw or not raw.get("fields"):
        return None
    try:
        return OCRRule.model_validate(raw)
    except ValidationError as e:
        logger.error(f"Stored OCR rule for {empresa} is invalid: {e}")
        raise


def save_rule(config: ConfigStore, rule: OCRRule) -> None:
    config.set(markers_key(rule.empresa), rule.model_dump(by_alias=True, mode="json"))


def load_replacements(config: ConfigStore, empresa: str) -> List[ReplacementRule]:
    raw = config.get(replacements_key(empresa)) or {}
    return [ReplacementRule.model_validate(r) for r in raw.get("rules", [])]


def _store_replacements(config: ConfigStore, empresa: str, rules: List[ReplacementRule]) -> None:
    config.set(replacements_key(empresa), {"rules": [r.model_dump(by_alias=True) for r in rules]})


def add_replacement(config: ConfigStore, empresa: str, field_name: str, from_: str, to: str) -> List[ReplacementRule]:
    rules = load_replacements(config, empresa)
    rules.append(ReplacementRule(field_name=field_name, from_=from_, to=to))
    _store_replacements(config, empresa, rules)
    return rules


def remove_replacement(config: ConfigStore, empresa: str, index: int) -> List[ReplacementRule]:
    rules = load_replacements(config, empresa)
    if 0 <= index < len(rules):
        del rules[index]
        _store_replacements(config, empresa, rules)
    return rules


# ---------- marking session ----------

class MarkerState(str, Enum):
    IDLE = "idle"
    MARKING = "marking"
    MARKED = "marked"
    SAVED = "saved"


class FieldMarkerSession:
    """
    Marking workflow for one employer on one sample receipt.

    idle -> marking (begin_marking) -> marked (add_field) -> saved (save_rule).
    Any geometry change re-reads the region, so detected_value always matches
    the rectangle; edits after a save put the session back in "marked".
    """

    def __init__(self, empresa: str, document: ParsedDocument, config: ConfigStore,
                 render_scale: Optional[float] = None):
        self.empresa = empresa
        self.document = document
        self.config = config
        self.render_scale = render_scale or get_settings().render_scale
        self.fields: List[MarkedField] = []
        self.state = MarkerState.IDLE
        self.pending_name: Optional[str] = None
        self.replacements = load_replacements(config, empresa)

    # -- helpers --

    def _get(self, field_id: str) -> MarkedField:
        for f in self.fields:
            if f.id == field_id:
                return f
        raise UnknownFieldError(f"No marked field with id {field_id}")

    def _check_unique(self, candidate: MarkedField, ignore_id: Optional[str] = None) -> None:
        if candidate.field_name in MULTI_INSTANCE_FIELDS:
            return
        ident = field_identity(candidate)
        for f in self.fields:
            if f.id != ignore_id and field_identity(f) == ident:
                raise DuplicateFieldError(
                    f"{candidate.field_name} is already marked on page {candidate.page_number}")

    def _extract(self, field: MarkedField) -> str:
        page = self.document.page(field.page_number)
        if page is None:
            return ""
        # rules may have been added since the session started
        self.replacements = load_replacements(self.config, self.empresa)
        return extract_text_from_region(field, page, self.render_scale, replacements=self.replacements)

    def _replace(self, field: MarkedField) -> MarkedField:
        self.fields = [field if f.id == field.id else f for f in self.fields]
        self.state = MarkerState.MARKED
        return field

    # -- operations --

    def begin_marking(self, field_name: str) -> None:
        self.pending_name = field_name
        self.state = MarkerState.MARKING

    def cancel_marking(self) -> None:
        self.pending_name = None
        self.state = MarkerState.MARKED if self.fields else MarkerState.IDLE

    def add_field(self, rect: RelativeRect, field_name: Optional[str] = None, page_number: int = 1,
                  concept_code: Optional[str] = None, column_index: Optional[int] = None) -> MarkedField:
        name = field_name or self.pending_name
        if not name:
            raise UnknownFieldError("A field name is required to mark a region")
        field = MarkedField(id=_new_id(name, page_number, concept_code), field_name=name,
                            page_number=page_number, concept_code=concept_code,
                            column_index=column_index, **rect._asdict())
        self._check_unique(field)
        value = self._extract(field)
        field = field.model_copy(update={"detected_value": value, "original_detected_value": value})
        self.fields.append(field)
        self.pending_name = None
        self.state = MarkerState.MARKED
        return field

    def add_canvas_field(self, cx: float, cy: float, cw: float, ch: float, field_name: Optional[str] = None,
                         page_number: int = 1, render_scale: Optional[float] = None) -> MarkedField:
        """Mark a rectangle drawn in canvas pixels at `render_scale` (the session's by default)."""
        page = self.document.page(page_number)
        if page is None:
            raise UnknownFieldError(f"Document has no page {page_number}")
        rect = canvas_rect_to_relative(cx, cy, cw, ch, page.width, page.height,
                                       render_scale or self.render_scale)
        return self.add_field(rect, field_name, page_number)

    def move_field(self, field_id: str, x: float, y: float) -> MarkedField:
        f = self._get(field_id)
        x, y = _clamp(x), _clamp(y)
        moved = f.model_copy(update={"x": x, "y": y,
                                     "width": min(f.width, 1.0 - x), "height": min(f.height, 1.0 - y)})
        return self._replace(moved.model_copy(update={"detected_value": self._extract(moved)}))

    def resize_field(self, field_id: str, width: float, height: float) -> MarkedField:
        f = self._get(field_id)
        resized = f.model_copy(update={"width": max(0.0, min(width, 1.0 - f.x)),
                                       "height": max(0.0, min(height, 1.0 - f.y))})
        return self._replace(resized.model_copy(update={"detected_value": self._extract(resized)}))

    def edit_value(self, field_id: str, value: str) -> MarkedField:
        f = self._get(field_id)
        original = f.original_detected_value if f.original_detected_value is not None else f.detected_value
        return self._replace(f.model_copy(update={"detected_value": value, "original_detected_value": original}))

    def remove_field(self, field_id: str) -> None:
        self._get(field_id)
        self.fields = [f for f in self.fields if f.id != field_id]
        self.state = MarkerState.MARKED if self.fields else MarkerState.IDLE

    def auto_detect(self) -> List[MarkedField]:
        added: List[MarkedField] = []
        for page in self.document.pages:
            added.extend(auto_detect_concepts(page, existing=self.fields + added))
        if added:
            self.fields.extend(added)
            self.state = MarkerState.MARKED
        return added

    def save_rule(self) -> OCRRule:
        """Overwrite the employer's stored rule with the current fields."""
        logger = get_logger()
        rule = OCRRule(empresa=self.empresa, fields=list(self.fields))
        save_rule(self.config, rule)
        self.state = MarkerState.SAVED
        logger.info(f"Saved OCR rule for {self.empresa} ({len(rule.fields)} field(s))")
        return rule

    def load_rule(self) -> Optional[OCRRule]:
        """Load the stored rule and re-read every field against this document."""
        rule = load_rule(self.config, self.empresa)
        if rule is None:
            self.fields = []
            self.state = MarkerState.IDLE
            return None
        self.fields = []
        for f in rule.fields:
            value = self._extract(f)
            self.fields.append(f.model_copy(update={"detected_value": value, "original_detected_value": value}))
        self.state = MarkerState.SAVED
        return rule


# ---------- replay ----------

def _name_key(field_name: str) -> str:
    """'SEG. SEPELIO', 'Seg_Sepelio' -> 'SEGSEPELIO'."""
    return re.sub(r"[^0-9A-Z]", "", field_name.upper())


_VARIABLE_KEYS = {_name_key(f) for f in VARIABLE_COORDINATE_FIELDS}


def _is_variable_coordinate(field_name: str) -> bool:
    key = _name_key(field_name)
    return bool(key) and any(v in key or key in v for v in _VARIABLE_KEYS)


def _canonical_value(field_name: str, text: str) -> str:
    """Amounts are stored dot-decimal like parser output; identity fields verbatim."""
    if field_name.upper() in TEXT_FIELDS or _is_cuil_field(field_name):
        return text
    return to_dot_decimal(text) if _NUM_FULL.match(text) else text


def apply_ocr_rules_to_receipt(empresa: str, document: ParsedDocument, config: ConfigStore,
                               service: ConsolidationService, key: str, trust_ocr: bool = False,
                               render_scale: Optional[float] = None) -> ReplayResult:
    """
    Re-read the employer's saved regions on `document` and write the accepted
    values into the consolidated record `key`.

    Values are written over the stored ones (not summed). For fields whose
    position moves between receipts, a stored non-empty value is only
    replaced when it looks wrong (is_likely_incorrect_value) and the caller
    vouches for the rule with trust_ocr=True.
    """
    logger = get_logger()
    result = ReplayResult()
    rule = load_rule(config, empresa)
    if rule is None:
        logger.info(f"No OCR rule stored for {empresa}")
        return result
    result.rule_found = True
    replacements = load_replacements(config, empresa)

    for field in rule.fields:
        page = document.page(field.page_number)
        if page is None:
            result.rejected[field.field_name] = f"page {field.page_number} not in document"
            continue
        text = extract_text_from_region(field, page, render_scale, replacements=replacements)
        if not text:
            result.rejected[field.field_name] = "empty region"
            continue
        if is_header_contaminated(text):
            result.rejected[field.field_name] = f"table header text {text!r}"
            continue
        result.extracted[field.field_name] = _canonical_value(field.field_name, text)

    record = service.consolidated.get_by_key(key)
    if record is None:
        logger.info(f"No consolidated record {key}; OCR values not applied")
        return result

    updates: Dict[str, str] = {}
    for name, value in result.extracted.items():
        current = (record.data.get(name) or "").strip()
        if not _is_variable_coordinate(name) or current in ("", "0", "0.00", "-"):
            updates[name] = value
        elif trust_ocr and is_likely_incorrect_value(current):
            updates[name] = value
        else:
            result.rejected[name] = f"kept stored value {current}"

    stale = [c for c in CATEGORY_FIELDS
             if c not in updates and is_header_contaminated(record.data.get(c) or "")]
    if stale:
        service.remove_fields(key, stale)
    if updates:
        service.update_fields(key, updates)
    result.applied = updates
    logger.info(f"OCR rule for {empresa} applied {len(updates)} value(s) to {key}")
    return result
