"""
Reconciliation of consolidated receipts against the employer's official sheet.

- iguales_num(a, b): numbers within 0.01 are equal; if either side is not a
  number, the trimmed strings must match exactly.
- compare(): one official row vs one consolidated record over the concept
  codes -> ResultadoControl (OK, or DIF with both raw values per field).
- run_control(): every official row of a period/employer -> SavedControl with
  oks, difs, missing keys (official rows without receipts) and stats.
- read_official_workbook(): the official spreadsheet (xlsx, via pandas +
  openpyxl) -> OfficialRow list keyed legajo||periodo.

Keys are legajo||periodo on both sides; the employer is part of the filter,
not of the key.
"""

from __future__ import annotations

import io
import math
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd

from app.models.schemas import (
    ConsolidatedRecord,
    ControlSummary,
    DiffEntry,
    DiffItem,
    OfficialRow,
    ResultadoControl,
    SavedControl,
)
from app.services.consolidate import make_key
from app.services.errors import OfficialImportError
from app.util.logger import get_logger
from app.util.numbers import to_dot_decimal, to_number
from app.util.periods import normalize_period
from extraction.patterns import BASE_CODES, LIME, LIMPAR, SUMAR, TYSA, label_for

TOLERANCE = 0.01
HEADER_SCAN_ROWS = 10

# LIME sheets: fixed layout, headers on row 4, data from row 5
LIME_HEADER_ROW = 3
LIME_FIRST_DATA_ROW = 4
LIME_COLUMN_CODES = {"G": "20590", "H": "20540", "I": "20610", "J": "20595", "K": "20620"}

WorkbookSource = Union[str, bytes, io.IOBase]

_CODE_HEADER = re.compile(r"^\d{5}$")


def iguales_num(a: Any, b: Any, tol: float = TOLERANCE) -> bool:
    na, nb = to_number(a), to_number(b)
    if math.isnan(na) or math.isnan(nb):
        return str(a if a is not None else "").strip() == str(b if b is not None else "").strip()
    # float noise on values like 1000.01 vs 1000.00
    return abs(na - nb) <= tol + 1e-9


def resolve_periodo(row: Mapping[str, Any]) -> str:
    """PERIODO (or PER) over FECHA; the raw value when it does not normalize."""
    for name in ("PERIODO", "PER", "FECHA"):
        value = row.get(name)
        if value not in (None, "", "-"):
            return _period_text(value) or str(value).strip()
    return ""


def compare(official: OfficialRow, consolidated: Optional[ConsolidatedRecord],
            fields: Sequence[str] = BASE_CODES) -> ResultadoControl:
    data = consolidated.data if consolidated else {}
    difs: List[DiffEntry] = []
    for code in fields:
        oficial = official.valores.get(code, "")
        recibos = data.get(code, "")
        if not iguales_num(oficial, recibos):
            difs.append(DiffEntry(campo=label_for(code), hoja2=str(oficial), recibos=str(recibos)))
    return ResultadoControl(
        key=official.key,
        estado="OK" if not difs else "DIF",
        diferencias=difs,
        archivos=list(consolidated.archivos) if consolidated else [],
    )


def build_diff_items(official: OfficialRow, consolidated: Optional[ConsolidatedRecord],
                     fields: Sequence[str] = BASE_CODES) -> List[DiffItem]:
    """Signed per-code view of the mismatches; delta = official - computed."""
    data = consolidated.data if consolidated else {}
    items: List[DiffItem] = []
    for code in fields:
        if iguales_num(official.valores.get(code, ""), data.get(code, "")):
            continue
        oficial = _finite(to_number(official.valores.get(code, "")))
        calculado = _finite(to_number(data.get(code, "")))
        delta = round(oficial - calculado, 2)
        items.append(DiffItem(codigo=code, label=label_for(code), oficial=oficial, calculado=calculado,
                              delta=delta, dir="a favor" if delta > 0 else "en contra"))
    return items


def _finite(n: float) -> float:
    return 0.0 if math.isnan(n) else n


def run_control(officials: Iterable[OfficialRow], consolidated: Iterable[ConsolidatedRecord],
                fields: Sequence[str] = BASE_CODES, periodo: str = "", empresa: str = "") -> SavedControl:
    logger = get_logger()
    by_key: Dict[str, ConsolidatedRecord] = {r.key: r for r in consolidated}
    officials = list(officials)
    if periodo:
        officials = [o for o in officials if o.key.endswith(f"||{periodo}")]

    oks: List[ResultadoControl] = []
    difs: List[ResultadoControl] = []
    summaries: List[ControlSummary] = []
    missing: List[str] = []

    for official in officials:
        record = by_key.get(official.key)
        if record is None:
            missing.append(official.key)
            continue
        result = compare(official, record, fields)
        if result.estado == "OK":
            oks.append(result)
            continue
        difs.append(result)
        summaries.append(ControlSummary(
            key=official.key,
            legajo=record.legajo,
            periodo=record.periodo,
            nombre=record.nombre or official.meta.get("nombre", ""),
            difs=build_diff_items(official, record, fields),
        ))

    stats = {"comparados": len(oks) + len(difs), "ok": len(oks), "dif": len(difs), "faltantes": len(missing)}
    logger.info(f"Control {periodo or '*'} {empresa or '*'}: {stats}")
    return SavedControl(
        filter_key=f"{periodo}||{empresa}",
        periodo=periodo,
        empresa=empresa,
        summaries=summaries,
        difs=difs,
        oks=oks,
        missing=missing,
        stats=stats,
        official_keys=[o.key for o in officials],
    )


# ---------- official spreadsheet ----------

def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    if isinstance(value, (datetime, pd.Timestamp)) and pd.isna(value):
        return ""
    return str(value).strip()


def _period_text(value: Any) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    period = normalize_period(value)
    return period if isinstance(period, str) else _cell_text(period)


def _read_frame(source: WorkbookSource) -> pd.DataFrame:
    logger = get_logger()
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    try:
        return pd.read_excel(source, header=None, dtype=object, engine="openpyxl")
    except Exception as e:
        logger.error(f"Could not read official workbook: {e}")
        raise OfficialImportError(f"Unreadable workbook: {e}") from e


def detect_empresa_from_sheet(frame: pd.DataFrame, filename: str = "") -> str:
    """Employer named in the file name or the first rows; LIMPAR when nothing matches."""
    head = " ".join(_cell_text(v) for v in frame.head(HEADER_SCAN_ROWS).to_numpy().ravel())
    text = f"{filename} {head}".lower()
    if "lime" in text or "lima" in text:
        return LIME
    if "sumar" in text:
        return SUMAR
    if "tysa" in text:
        return TYSA
    return LIMPAR


def _col_index(letter: str) -> int:
    idx = 0
    for ch in letter.upper():
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


def _find_header_row(frame: pd.DataFrame) -> Optional[int]:
    for i in range(min(HEADER_SCAN_ROWS, len(frame))):
        if any("LEGAJO" in _cell_text(v).upper() for v in frame.iloc[i]):
            return i
    return None


def _find_col(headers: List[str], *needles: str, exact: Sequence[str] = ()) -> Optional[int]:
    for i, h in enumerate(headers):
        up = h.upper()
        if up in exact or any(n in up for n in needles):
            return i
    return None


def _generic_rows(frame: pd.DataFrame, periodo: Optional[str]) -> List[OfficialRow]:
    header_row = _find_header_row(frame)
    if header_row is None:
        raise OfficialImportError("No LEGAJO / PERIODO columns found in the workbook")
    headers = [_cell_text(v) for v in frame.iloc[header_row]]
    idx_legajo = _find_col(headers, "LEGAJO")
    idx_periodo = _find_col(headers, "PERIODO", "PERÍODO", "FECHA", exact=("PER",))
    idx_nombre = _find_col(headers, "APELLIDO", "NOMBRE")
    idx_cuil = _find_col(headers, "CUIL", "DNI")
    if idx_legajo is None or (idx_periodo is None and not periodo):
        raise OfficialImportError("No LEGAJO / PERIODO columns found in the workbook")
    code_cols = [(i, h) for i, h in enumerate(headers) if _CODE_HEADER.match(h)]

    out: List[OfficialRow] = []
    for r in range(header_row + 1, len(frame)):
        row = frame.iloc[r]
        legajo = _cell_text(row.iloc[idx_legajo])
        raw_periodo = row.iloc[idx_periodo] if idx_periodo is not None else None
        per = periodo or _period_text(raw_periodo)
        if not legajo or not per:
            continue
        valores = {code: to_dot_decimal(_cell_text(row.iloc[i])) for i, code in code_cols}
        meta = {
            "legajo": legajo,
            "periodo": per,
            "periodoRaw": _cell_text(raw_periodo),
            "nombre": _cell_text(row.iloc[idx_nombre]) if idx_nombre is not None else "",
            "cuil": _cell_text(row.iloc[idx_cuil]) if idx_cuil is not None else "",
        }
        out.append(OfficialRow(key=make_key(legajo, per), valores=valores, meta=meta))
    return out


def _lime_rows(frame: pd.DataFrame, periodo: Optional[str]) -> List[OfficialRow]:
    if not periodo:
        raise OfficialImportError("LIME workbooks carry no period; pass one explicitly")
    if len(frame) <= LIME_HEADER_ROW:
        return []
    headers = [_cell_text(v).lower() for v in frame.iloc[LIME_HEADER_ROW]]
    legajo_col = nombre_col = cuil_col = 0
    for i, h in enumerate(headers):
        if "legajo" in h:
            legajo_col = i
        if "nombre" in h or "apellido" in h:
            nombre_col = i
        if "cuil" in h or "dni" in h:
            cuil_col = i

    out: List[OfficialRow] = []
    for r in range(LIME_FIRST_DATA_ROW, len(frame)):
        row = frame.iloc[r]
        legajo = _cell_text(row.iloc[legajo_col])
        nombre = _cell_text(row.iloc[nombre_col])
        if not legajo or not nombre:
            continue
        valores = {}
        for letter, code in LIME_COLUMN_CODES.items():
            idx = _col_index(letter)
            valores[code] = to_dot_decimal(_cell_text(row.iloc[idx]) if idx < len(row) else "")
        meta = {"legajo": legajo, "periodo": periodo, "periodoRaw": "", "nombre": nombre,
                "cuil": _cell_text(row.iloc[cuil_col])}
        out.append(OfficialRow(key=make_key(legajo, periodo), valores=valores, meta=meta))
    return out


def read_official_workbook(source: WorkbookSource, empresa: Optional[str] = None,
                           periodo: Optional[str] = None, filename: str = "") -> List[OfficialRow]:
    """
    First sheet of an official workbook -> OfficialRow list.

    `periodo` overrides the sheet's period column (LIME sheets need it);
    `empresa` defaults to detect_empresa_from_sheet().
    """
    logger = get_logger()
    frame = _read_frame(source)
    empresa = empresa or detect_empresa_from_sheet(frame, filename)
    periodo = normalize_period(periodo) if periodo else None
    rows = _lime_rows(frame, periodo) if empresa == LIME else _generic_rows(frame, periodo)
    logger.info(f"Imported {len(rows)} official row(s) for {empresa}")
    return rows
