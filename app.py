"""
RTO Qualification Import
Author: Sunil Paudel

Notes:
- Paste or upload qualification unit lists, review validation, then import.
- Only rows without validation errors are imported unless the operator opts in.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pandas as pd
import streamlit as st

from rto_import.config import Settings, configure_logging
from rto_import.drafts import DraftStore
from rto_import.errors import ImportFormatError, ImportPipelineError
from rto_import.export import export_rows_to_csv, export_rows_to_excel, export_validation_report, records_to_rows
from rto_import.import_function import handle_import
from rto_import.reconcile import OFFER_SCHEMA, QUALIFICATION_SCHEMA
from rto_import.sample_data import SAMPLE_PASTE_TEXT
from rto_import.storage import storage_from_settings
from rto_import.workflow import open_store, options_from_settings, parse_pasted_text, parse_uploaded_csv, run_import

settings = Settings.from_env()
configure_logging(settings.log_level)

st.set_page_config(page_title="RTO Qualification Import", layout="wide")
st.title("RTO Qualification Import")
st.caption("Paste or upload units, review, then reconcile into qualifications and offers")

store = open_store(settings)
drafts = DraftStore(settings.draft_path)

page = st.sidebar.radio(
    "Navigation",
    ["Paste Offer Builder", "Upload CSV", "Storage Import"],
)

if "draft" not in st.session_state:
    st.session_state.draft = drafts.load()
if "import_log" not in st.session_state:
    st.session_state.import_log = []


def _log(message: str) -> None:
    st.session_state.import_log.append(f"{datetime.now().strftime('%H:%M:%S')}  {message}")


def _show_parse(parsed) -> None:
    s = parsed.report.summary
    c1, c2, c3, c4, c5 = st.columns(5)
    c1.metric("Rows", s.rows)
    c2.metric("Qualifications", s.qualifications)
    c3.metric("Units", s.units)
    c4.metric("Core", s.cores)
    c5.metric("Elective", s.electives)
    if parsed.mapping.positional:
        st.info("No header row detected: columns read as unit_code, unit_name, unit_description, unit_type, group_label.")
    if parsed.report.errors:
        st.warning("\n".join(parsed.report.errors[:50]))
    if parsed.records:
        st.dataframe(pd.DataFrame(records_to_rows(parsed.records)), width='stretch')


def _exports(parsed, prefix: str) -> None:
    rows = records_to_rows(parsed.records)
    if not rows:
        return
    c1, c2, c3 = st.columns(3)
    ts = datetime.now().strftime('%Y%m%d_%H%M%S')
    with c1:
        if st.button("Export CSV", key=f"{prefix}_csv"):
            out = export_rows_to_csv(rows, Path("exports") / f"{prefix}_rows_{ts}.csv")
            st.success(f"Exported: {out}")
    with c2:
        if st.button("Export Excel", key=f"{prefix}_xlsx"):
            out = export_rows_to_excel(rows, Path("exports") / f"{prefix}_rows_{ts}.xlsx")
            st.success(f"Exported: {out}")
    with c3:
        if st.button("Export validation report", key=f"{prefix}_report"):
            out = export_validation_report(parsed.records, parsed.report, Path("exports") / f"{prefix}_report_{ts}.xlsx")
            st.success(f"Exported: {out}")


def _import(parsed, options, valid_only: bool) -> None:
    try:
        summary = run_import(parsed, store, options, valid_only=valid_only)
    except ImportPipelineError as exc:
        _log(f"FAILED: {exc}")
        st.error(str(exc))
        return
    _log(f"OK: {summary.to_dict()}")
    st.success(
        f"Created {summary.created}, linked {summary.linked}, skipped {summary.skipped} "
        f"(phases: {', '.join(summary.phases_completed)})"
    )


if page == "Paste Offer Builder":
    st.header("1) Paste units")
    draft = st.session_state.draft

    c1, c2, c3 = st.columns(3)
    with c1:
        qual_code = st.text_input("Qualification code", value=draft.get("qualification_code", ""))
    with c2:
        qual_name = st.text_input("Qualification name", value=draft.get("qualification_name", ""))
    with c3:
        rto_code = st.text_input("RTO code", value=draft.get("rto_code", ""))

    if st.button("Use sample data"):
        draft["text"] = SAMPLE_PASTE_TEXT
    text = st.text_area("CSV (comma-separated)", value=draft.get("text", ""), height=250)
    defaults = {k: v for k, v in {"qualification_code": qual_code, "qualification_name": qual_name, "rto_code": rto_code}.items() if v}
    parsed = None
    saved_rows = draft.get("rows") or []
    if text.strip():
        try:
            parsed = parse_pasted_text(text, defaults=defaults)
        except ImportFormatError as exc:
            st.error(str(exc))

    # a failed parse keeps the last good preview
    rows = records_to_rows(parsed.records) if parsed is not None else (saved_rows if text.strip() else [])
    draft.update({"text": text, "qualification_code": qual_code, "qualification_name": qual_name, "rto_code": rto_code, "rows": rows})
    st.session_state.draft = drafts.save(draft)

    if parsed is None and rows:
        st.caption("Last parsed rows from the saved draft")
        st.dataframe(pd.DataFrame(rows), width='stretch')

    if parsed is not None:
        inferred = parsed.context
        if inferred["qualification_code"] and not qual_code:
            st.caption(f"Detected qualification {inferred['qualification_code']}")
        _show_parse(parsed)
        _exports(parsed, "paste")

        st.header("2) Import")
        target = st.selectbox("Attach units to", options=["Offer (RTO + qualification)", "Qualification"])
        replace_streams = st.checkbox("Replace existing stream units", value=False)
        valid_only = st.checkbox("Import only rows without errors", value=True)
        if st.button("Import"):
            schema = OFFER_SCHEMA if target.startswith("Offer") else QUALIFICATION_SCHEMA
            _import(parsed, options_from_settings(settings, schema=schema, replace_stream_units=replace_streams), valid_only)

    if st.button("Clear draft"):
        drafts.clear()
        st.session_state.draft = {}

elif page == "Upload CSV":
    st.header("1) Upload CSV")
    uploaded = st.file_uploader("Qualification units CSV", type=["csv"])
    if uploaded:
        try:
            parsed = parse_uploaded_csv(uploaded)
        except ImportFormatError as exc:
            st.error(str(exc))
        else:
            _show_parse(parsed)
            _exports(parsed, "upload")
            valid_only = st.checkbox("Import only rows without errors", value=True)
            if st.button("Import into qualifications"):
                _import(parsed, options_from_settings(settings, schema=QUALIFICATION_SCHEMA), valid_only)

elif page == "Storage Import":
    st.header("Archive CSV and run batch import")
    storage = storage_from_settings(settings)
    uploaded = st.file_uploader("RTO CSV", type=["csv"])
    bucket = st.text_input("Bucket", value="rto-imports")
    company_id = st.text_input("Company ID (optional)", value="")
    dry_run = st.checkbox("Dry run (parse only, no writes)", value=True)

    if uploaded and st.button("Upload and import"):
        path = f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uploaded.name}"
        try:
            storage.upload(bucket, path, uploaded.getvalue())
        except ImportPipelineError as exc:
            st.error(f"Upload failed: {exc}")
        else:
            _log(f"stored {bucket}/{path}")
            status, body = handle_import(
                {"bucket": bucket, "path": path, "companyId": company_id or None, "dry_run": dry_run},
                store=store,
                storage=storage,
                settings=settings,
            )
            _log(f"{status}: {body}")
            if status == 200:
                st.success(f"Summary: {body.get('summary')}")
            else:
                st.error(body.get("error", "Import failed"))

with st.expander("Import log", expanded=False):
    st.code("\n".join(st.session_state.import_log) or "(empty)")
