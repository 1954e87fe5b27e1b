"""
Data shapes for the receipt pipeline.

- PositionedToken / TextRow / PageText: what the PDF adapter surfaces.
- ParseResult: one parsed receipt (`data` dict + debug lines).
- MarkedField / OCRRule / ReplacementRule: region-marking state that gets
  persisted per employer (ReplayResult reports a rule replay). These dump with camelCase aliases (fieldName,
  pageNumber, createdAt) so stored rules stay readable by older tooling.
- ReceiptRecord / ConsolidatedRecord: append-only history and the per
  legajo||periodo aggregate.
- OfficialRow / DiffEntry / ResultadoControl / SavedControl: reconciliation.
- FileOutcome / BatchReport: what a batch run reports back.

If a new output column is needed, it goes into `data` (a plain dict) rather
than onto these models; the models only carry identity and bookkeeping.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PositionedToken(BaseModel):
    """
    One text run from a PDF page.

    - x, y: PDF space, origin bottom-left, y grows upward (y is the baseline)
    - width/height: real box when the extractor knows it, else None
    - font_size: used to estimate a box when width/height are missing
    """

    text: str
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None
    font_size: Optional[float] = None
    page: int = 1


class TextRow(BaseModel):
    """Tokens sharing a visual line, left to right."""

    y: float
    page: int = 1
    tokens: List[PositionedToken] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return " ".join(t.text for t in self.tokens)


class PageText(BaseModel):
    page_number: int
    width: float
    height: float
    tokens: List[PositionedToken] = Field(default_factory=list)


class ParsedDocument(BaseModel):
    """All pages of one PDF plus its rows (grouped per page, top to bottom)."""

    filename: str = ""
    pages: List[PageText] = Field(default_factory=list)
    rows: List[TextRow] = Field(default_factory=list)

    @property
    def raw_text(self) -> str:
        return " ".join(t.text for p in self.pages for t in p.tokens)

    def page(self, number: int) -> Optional[PageText]:
        for p in self.pages:
            if p.page_number == number:
                return p
        return None


class DebugLine(BaseModel):
    y: int
    text: str
    tokens: List[Dict[str, Any]] = Field(default_factory=list)


class ParseResult(BaseModel):
    """
    Output of the per-employer parser.

    data keys are base fields (LEGAJO, PERIODO, NOMBRE, CUIL, EMPRESA, ARCHIVO,
    GUARDAR, ERROR) or concept keys (5-digit codes, JORNAL, ...).
    """

    data: Dict[str, str] = Field(default_factory=dict)
    debug_lines: List[DebugLine] = Field(default_factory=list)
    document: Optional[ParsedDocument] = Field(default=None, exclude=True)

    @property
    def should_save(self) -> bool:
        return self.data.get("GUARDAR", "true") != "false"


class MarkedField(BaseModel):
    """A user-drawn or auto-detected region; geometry is relative (0..1)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    field_name: str = Field(alias="fieldName")
    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    width: float = Field(ge=0.0, le=1.0)
    height: float = Field(ge=0.0, le=1.0)
    page_number: int = Field(default=1, alias="pageNumber")
    detected_value: Optional[str] = Field(default=None, alias="detectedValue")
    original_detected_value: Optional[str] = Field(default=None, alias="originalDetectedValue")
    column_index: Optional[int] = Field(default=None, alias="columnIndex")
    concept_code: Optional[str] = Field(default=None, alias="conceptCode")


class OCRRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    empresa: str
    fields: List[MarkedField] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now, alias="createdAt")


class ReplacementRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    field_name: str = Field(alias="fieldName")
    from_: str = Field(alias="from")
    to: str = ""


class ReplayResult(BaseModel):
    """What replaying an OCR rule on one receipt extracted, applied and rejected."""

    rule_found: bool = False
    extracted: Dict[str, str] = Field(default_factory=dict)
    applied: Dict[str, str] = Field(default_factory=dict)
    rejected: Dict[str, str] = Field(default_factory=dict)


class ReceiptRecord(BaseModel):
    legajo: str
    periodo: str
    nombre: Optional[str] = None
    cuil: Optional[str] = None
    filename: str
    data: Dict[str, str] = Field(default_factory=dict)
    hashes: List[str] = Field(default_factory=list)


class ConsolidatedRecord(BaseModel):
    key: str
    legajo: str
    periodo: str
    nombre: Optional[str] = None
    cuil: Optional[str] = None
    archivos: List[str] = Field(default_factory=list)
    data: Dict[str, str] = Field(default_factory=dict)


class OfficialRow(BaseModel):
    key: str
    valores: Dict[str, str] = Field(default_factory=dict)
    meta: Dict[str, str] = Field(default_factory=dict)


class DiffEntry(BaseModel):
    campo: str
    hoja2: str
    recibos: str


class DiffItem(BaseModel):
    """Signed per-code difference (official minus computed)."""

    codigo: str
    label: str
    oficial: float
    calculado: float
    delta: float
    dir: Literal["a favor", "en contra"]


class ResultadoControl(BaseModel):
    key: str
    estado: Literal["OK", "DIF"]
    diferencias: List[DiffEntry] = Field(default_factory=list)
    archivos: List[str] = Field(default_factory=list)


class ControlSummary(BaseModel):
    key: str
    legajo: str
    periodo: str
    nombre: str = ""
    difs: List[DiffItem] = Field(default_factory=list)


class SavedControl(BaseModel):
    filter_key: str
    periodo: str
    empresa: str
    summaries: List[ControlSummary] = Field(default_factory=list)
    difs: List[ResultadoControl] = Field(default_factory=list)
    oks: List[ResultadoControl] = Field(default_factory=list)
    missing: List[str] = Field(default_factory=list)
    stats: Dict[str, int] = Field(default_factory=dict)
    official_keys: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class FileOutcome(BaseModel):
    filename: str
    status: Literal["success", "skipped", "failed"]
    reason: str = ""
    key: Optional[str] = None
    content_hash: Optional[str] = None


class BatchReport(BaseModel):
    outcomes: List[FileOutcome] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def counts(self) -> Dict[str, int]:
        out = {"success": 0, "skipped": 0, "failed": 0}
        for o in self.outcomes:
            out[o.status] += 1
        return out
