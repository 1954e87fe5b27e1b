"""
CSV output for spreadsheets.

Every file starts with a `sep=,` line so Excel in a comma-decimal locale
still splits on commas. Cells containing `,` `"` `;` or a newline are quoted,
with embedded quotes doubled. 5-digit concept codes in headers are replaced by
their labels (20595 -> CUOTA MUTUAL).

- build_aggregated_csv(): consolidated records, one row per legajo||periodo
- build_control_csv(): one row per compared key (OK / DIF and #diffs)
- build_diff_csv(): one row per field difference
- parse_csv() / stringify_csv(): plain row dicts in and out
- records_to_dataframe(): the same table as a pandas DataFrame for display
"""

from __future__ import annotations

import csv
import io
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from app.models.schemas import ConsolidatedRecord, ResultadoControl, SavedControl
from app.util.numbers import fmt2, is_code
from extraction.patterns import BASE_CODES, label_for

SEP_LINE = "sep=,"
ARCHIVO_JOINER = " + "
DEFAULT_COLUMNS = ["LEGAJO", "PERIODO", "NOMBRE", "CUIL", "EMPRESA", *BASE_CODES, "ARCHIVO"]

_NEEDS_QUOTES = re.compile(r'[",\n;]')


def esc(value: Any) -> str:
    s = "" if value is None else str(value)
    if _NEEDS_QUOTES.search(s):
        return '"' + s.replace('"', '""') + '"'
    return s


def _line(cells: Iterable[Any]) -> str:
    return ",".join(esc(c) for c in cells)


def _document(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    body = "\n".join(_line(r) for r in rows)
    return f"{SEP_LINE}\n{_line(headers)}\n{body}"


def _cell(record: ConsolidatedRecord, col: str) -> str:
    if col == "LEGAJO":
        return record.legajo
    if col == "PERIODO":
        return record.periodo
    if col == "NOMBRE":
        return record.nombre or record.data.get("NOMBRE", "")
    if col == "CUIL":
        return record.cuil or record.data.get("CUIL", "")
    if col == "ARCHIVO":
        return ARCHIVO_JOINER.join(record.archivos)
    value = record.data.get(col, "")
    if is_code(col):
        return fmt2(value) if value not in ("", "-") else value
    return value


def build_aggregated_csv(records: Iterable[ConsolidatedRecord], columns: Optional[Sequence[str]] = None) -> str:
    cols = list(columns or DEFAULT_COLUMNS)
    headers = [label_for(c) if is_code(c) else c for c in cols]
    return _document(headers, ([_cell(r, c) for c in cols] for r in records))


def build_control_csv(results: Iterable[ResultadoControl], nombres: Optional[Dict[str, str]] = None) -> str:
    nombres = nombres or {}
    rows = []
    for res in results:
        legajo, _, periodo = res.key.partition("||")
        rows.append([legajo, nombres.get(res.key, ""), periodo, res.estado, len(res.diferencias)])
    return _document(["LEGAJO", "NOMBRE", "PERIODO", "ESTADO", "#DIFERENCIAS"], rows)


def build_diff_csv(results: Iterable[ResultadoControl]) -> str:
    rows = []
    for res in results:
        legajo, _, periodo = res.key.partition("||")
        for d in res.diferencias:
            rows.append([legajo, periodo, d.campo, d.hoja2, d.recibos])
    return _document(["LEGAJO", "PERIODO", "CAMPO", "OFICIAL", "RECIBOS"], rows)


def control_to_csv(control: SavedControl) -> str:
    """Summary CSV for a saved control run, DIF rows first."""
    nombres = {s.key: s.nombre for s in control.summaries}
    return build_control_csv([*control.difs, *control.oks], nombres)


def stringify_csv(rows: Sequence[Dict[str, Any]], columns: Optional[Sequence[str]] = None) -> str:
    cols = list(columns) if columns else list(dict.fromkeys(k for r in rows for k in r))
    return _document(cols, ([r.get(c, "") for c in cols] for r in rows))


def parse_csv(text: str) -> List[Dict[str, str]]:
    """Rows of a CSV written by this module (or Excel); a leading `sep=` line is skipped."""
    lines = (text or "").lstrip("\ufeff")
    if lines.lower().startswith("sep="):
        lines = lines.split("\n", 1)[1] if "\n" in lines else ""
    reader = csv.DictReader(io.StringIO(lines))
    return [{k: (v if v is not None else "") for k, v in row.items()} for row in reader]


def records_to_dataframe(records: Iterable[ConsolidatedRecord],
                         columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    cols = list(columns or DEFAULT_COLUMNS)
    rows = [{(label_for(c) if is_code(c) else c): _cell(r, c) for c in cols} for r in records]
    return pd.DataFrame(rows, columns=[label_for(c) if is_code(c) else c for c in cols])
