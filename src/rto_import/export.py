"""Export helpers (CSV, Excel) for parsed previews and validation reports.
Author: Sunil Paudel
"""

from __future__ import annotations

import csv
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Sequence

import pandas as pd

from .normalizer import ImportRecord
from .validation import ValidationReport

_ROW_NO = re.compile(r"^Row (\d+):\s*")


def records_to_rows(records: Sequence[ImportRecord]) -> List[Dict]:
    return [r.to_row() for r in records]


def report_to_rows(report: ValidationReport) -> List[Dict]:
    rows: List[Dict] = []
    for message in report.errors:
        m = _ROW_NO.match(message)
        rows.append({"row": int(m.group(1)) if m else None, "message": message})
    return rows


def export_rows_to_csv(rows: Iterable[Mapping], output_path: str | Path) -> Path:
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    rows = list(rows)
    if not rows:
        out.write_text("", encoding="utf-8")
        return out

    fieldnames = list(rows[0].keys())
    with out.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)
    return out


def export_rows_to_excel(rows: Iterable[Mapping], output_path: str | Path, sheet_name: str = "Rows") -> Path:
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(list(rows))
    df.to_excel(out, index=False, sheet_name=sheet_name)
    return out


def export_validation_report(
    records: Sequence[ImportRecord],
    report: ValidationReport,
    output_path: str | Path,
) -> Path:
    """Excel workbook with the parsed rows, the row errors and the summary counts."""
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(out) as writer:
        pd.DataFrame(records_to_rows(records)).to_excel(writer, index=False, sheet_name="Rows")
        pd.DataFrame(report_to_rows(report), columns=["row", "message"]).to_excel(
            writer, index=False, sheet_name="Errors"
        )
        pd.DataFrame([report.summary.to_dict()]).to_excel(writer, index=False, sheet_name="Summary")
    return out
