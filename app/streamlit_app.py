"""
Streamlit front-end for payslip consolidation and control.

- Recibos: upload receipt PDFs, run the batch (progress + cancel-safe re-runs),
  see the consolidated legajo||periodo table and download it as CSV/JSON.
- Control: upload the employer's official workbook and compare it against the
  consolidated records; download the summary and the per-field differences.
- Reglas OCR: mark regions on a sample receipt, auto-detect concept rows,
  save the employer's rule and replay it on a consolidated record.

Everything runs locally; marked regions and replacement rules are kept in a
JSON file under the data dir (RECIBODOCS_DATA_DIR).
"""

from __future__ import annotations

# --- ensure package imports work when launched directly ---
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import json
from pathlib import Path
from typing import Any, Dict

import pandas as pd
import streamlit as st

# --- Internal modules ---
from app.services.batch import process_batch, summarize
from app.services.consolidate import ConsolidationService
from app.services.control import read_official_workbook, run_control
from app.services.errors import ReciboDocsError
from app.services.export import build_aggregated_csv, build_diff_csv, control_to_csv, records_to_dataframe
from app.services.parse_pdf import parse_with_pdfplumber
from app.services.regions import (
    FieldMarkerSession,
    add_replacement,
    apply_ocr_rules_to_receipt,
    load_replacements,
    remove_replacement,
)
from app.services.stores import CachedConfigStore, JsonFileConfigStore, TTLCache
from app.services.validate import validate_record
from app.util.layout import RelativeRect
from app.util.periods import normalize_period
from app.util.settings import get_settings
from extraction.patterns import KNOWN_EMPLOYERS

AUTO = "(auto)"

# ---------------------------- Page setup ----------------------------

st.set_page_config(page_title="ReciboDocs (Local)", layout="wide")
st.title("ReciboDocs (Local)")
st.caption("Recibos de sueldo → consolidado por legajo/período → control contra la planilla oficial.")

settings = get_settings()

if "service" not in st.session_state:
    st.session_state["service"] = ConsolidationService()
if "config" not in st.session_state:
    st.session_state["config"] = CachedConfigStore(
        JsonFileConfigStore(Path(settings.data_dir) / "config.json"),
        TTLCache(settings.cache_ttl_seconds),
    )
service: ConsolidationService = st.session_state["service"]
config = st.session_state["config"]

# ---------------------------- Sidebar help ----------------------------

with st.sidebar:
    st.header("How it works")
    st.markdown(
        "- Files are processed locally; nothing leaves this machine.\n"
        "- Parser: pdfplumber extracts words + layout; one profile per employer reads the rows.\n"
        "- Receipts for the same legajo and period are summed into one record.\n"
        "- The same file uploaded twice is detected by content hash and skipped."
    )
    st.divider()
    empresa_choice = st.selectbox("Employer", [AUTO, *KNOWN_EMPLOYERS],
                                  help="Leave on (auto) to detect it from each receipt.")
    workers = st.number_input("Parallel files", min_value=1, max_value=8, value=1)
    if st.button("Clear consolidated data"):
        st.session_state["service"] = ConsolidationService()
        st.rerun()

empresa_override = None if empresa_choice == AUTO else empresa_choice


def record_for_validation(rec) -> Dict[str, Any]:
    return {**rec.data, "LEGAJO": rec.legajo, "PERIODO": rec.periodo,
            "NOMBRE": rec.nombre or "", "CUIL": rec.cuil or ""}


tab_recibos, tab_control, tab_reglas = st.tabs(["Recibos", "Control", "Reglas OCR"])

# ---------------------------- Recibos ----------------------------

with tab_recibos:
    uploaded = st.file_uploader(
        "Upload one or more receipt PDFs",
        type=["pdf"],
        accept_multiple_files=True,
        help="Drag-and-drop or browse. Receipts of the same legajo and period are combined below.",
    )
    run_btn = st.button("Process receipts", type="primary")

    if run_btn and uploaded:
        bar = st.progress(0.0)

        def on_progress(done, total, outcome):
            bar.progress(done / total, text=f"{outcome.filename}: {outcome.status}")

        report = process_batch([(uf.name, uf.getvalue()) for uf in uploaded], service,
                               progress=on_progress, empresa=empresa_override, workers=int(workers))
        st.success(summarize(report.outcomes))
        st.dataframe(pd.DataFrame([o.model_dump() for o in report.outcomes]), use_container_width=True)

    records = service.records()
    if not records:
        st.info("Upload receipts and click **Process receipts** to see results.")
    else:
        st.markdown("## Consolidated (legajo / período)")
        st.dataframe(records_to_dataframe(records), use_container_width=True)

        col_dl1, col_dl2 = st.columns(2)
        with col_dl1:
            st.download_button(
                "Download CSV (consolidated)",
                data=build_aggregated_csv(records),
                file_name="recibos_consolidado.csv",
                mime="text/csv",
                use_container_width=True,
            )
        with col_dl2:
            st.download_button(
                "Download JSON (consolidated)",
                data=json.dumps([r.model_dump() for r in records], indent=2, ensure_ascii=False),
                file_name="recibos_consolidado.json",
                mime="application/json",
                use_container_width=True,
            )

        with st.expander("Validation"):
            for rec in records:
                res = validate_record(record_for_validation(rec))
                if res["errors"] or res["warnings"]:
                    st.write(f"**{rec.key}**", res)

# ---------------------------- Control ----------------------------

with tab_control:
    official_file = st.file_uploader("Upload the official workbook (xlsx)", type=["xlsx"])
    periodo_input = st.text_input("Period (mm/yyyy, required for LIME sheets)", value="")
    control_btn = st.button("Run control", type="primary")

    if control_btn and official_file:
        periodo = normalize_period(periodo_input) if periodo_input.strip() else ""
        try:
            officials = read_official_workbook(official_file.getvalue(), empresa=empresa_override,
                                               periodo=periodo or None, filename=official_file.name)
        except ReciboDocsError as e:
            st.error(str(e))
        else:
            saved = run_control(officials, service.records(), periodo=periodo,
                                empresa=empresa_override or "")
            stats = saved.stats
            c1, c2, c3, c4 = st.columns(4)
            c1.metric("Compared", stats["comparados"])
            c2.metric("OK", stats["ok"])
            c3.metric("DIF", stats["dif"])
            c4.metric("Missing receipts", stats["faltantes"])

            diff_rows = [
                {"key": s.key, "nombre": s.nombre, "codigo": d.codigo, "concepto": d.label,
                 "oficial": d.oficial, "calculado": d.calculado, "delta": d.delta, "dir": d.dir}
                for s in saved.summaries for d in s.difs
            ]
            st.dataframe(pd.DataFrame(diff_rows), use_container_width=True)
            if saved.missing:
                st.warning("Official rows without receipts: " + ", ".join(saved.missing))

            col_c1, col_c2 = st.columns(2)
            with col_c1:
                st.download_button("Download CSV (control)", data=control_to_csv(saved),
                                   file_name="control_resumen.csv", mime="text/csv",
                                   use_container_width=True)
            with col_c2:
                st.download_button("Download CSV (differences)", data=build_diff_csv(saved.difs),
                                   file_name="control_diferencias.csv", mime="text/csv",
                                   use_container_width=True)

# ---------------------------- Reglas OCR ----------------------------

with tab_reglas:
    rule_empresa = st.selectbox("Employer for the rule", KNOWN_EMPLOYERS, key="rule_empresa")
    sample = st.file_uploader("Sample receipt (PDF)", type=["pdf"], key="sample")

    if sample is not None:
        session_key = f"marker-{rule_empresa}-{sample.name}"
        if session_key not in st.session_state:
            try:
                doc = parse_with_pdfplumber(sample.getvalue(), filename=sample.name)
            except ReciboDocsError as e:
                st.error(str(e))
                st.stop()
            st.session_state[session_key] = FieldMarkerSession(rule_empresa, doc, config)
        session: FieldMarkerSession = st.session_state[session_key]
        st.caption(f"State: {session.state.value}")

        with st.form("mark_field"):
            name = st.text_input("Field name", value="")
            page_number = st.number_input("Page", min_value=1, value=1)
            c1, c2, c3, c4 = st.columns(4)
            x = c1.number_input("x", 0.0, 1.0, 0.1, step=0.01)
            y = c2.number_input("y", 0.0, 1.0, 0.1, step=0.01)
            w = c3.number_input("width", 0.0, 1.0, 0.2, step=0.01)
            h = c4.number_input("height", 0.0, 1.0, 0.03, step=0.01)
            if st.form_submit_button("Mark region") and name.strip():
                try:
                    session.add_field(RelativeRect(x, y, w, h), name.strip().upper(), int(page_number))
                except ReciboDocsError as e:
                    st.error(str(e))

        col_r1, col_r2, col_r3 = st.columns(3)
        with col_r1:
            if st.button("Auto-detect concepts"):
                st.write(f"{len(session.auto_detect())} field(s) detected")
        with col_r2:
            if st.button("Load saved rule"):
                if session.load_rule() is None:
                    st.info("No rule saved for this employer yet.")
        with col_r3:
            if st.button("Save rule", type="primary"):
                session.save_rule()
                st.success("Rule saved")

        if session.fields:
            st.dataframe(pd.DataFrame([f.model_dump(by_alias=True) for f in session.fields]),
                         use_container_width=True)
            to_remove = st.selectbox("Remove field", ["", *[f.id for f in session.fields]])
            if to_remove and st.button("Remove"):
                session.remove_field(to_remove)
                st.rerun()

        st.markdown("### Replacement rules")
        with st.form("replacement"):
            r1, r2, r3 = st.columns(3)
            r_field = r1.text_input("Field")
            r_from = r2.text_input("Replace")
            r_to = r3.text_input("With")
            if st.form_submit_button("Add") and r_field.strip() and r_from:
                add_replacement(config, rule_empresa, r_field.strip().upper(), r_from, r_to)
        rules = load_replacements(config, rule_empresa)
        for i, rule in enumerate(rules):
            if st.button(f"Delete {rule.field_name}: {rule.from_!r} → {rule.to!r}", key=f"rep-{i}"):
                remove_replacement(config, rule_empresa, i)
                st.rerun()

        st.markdown("### Apply rule to a consolidated record")
        keys = [r.key for r in service.records()]
        if keys:
            target = st.selectbox("Record", keys)
            trust = st.checkbox("Trust OCR over suspicious stored values", value=False)
            if st.button("Apply OCR rule"):
                result = apply_ocr_rules_to_receipt(rule_empresa, session.document, config, service,
                                                    target, trust_ocr=trust)
                st.write(result.model_dump())
        else:
            st.caption("Process receipts first to apply a rule.")
