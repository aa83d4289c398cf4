from __future__ import annotations

from importlib import import_module

import csv

import pandas as pd
import pytest


@pytest.fixture(scope="module")
def export_module():
    try:
        return import_module("rto_import.export")
    except ModuleNotFoundError as exc:
        pytest.skip(f"Missing export module: {exc}")


@pytest.fixture
def parsed(import_files):
    workflow = import_module("rto_import.workflow")
    text = import_files["streams.csv"] + "BSB30120,Certificate III in Business,BSBXXX999,,No name,Elective,,,,\n"
    return workflow.parse_pasted_text(text)


def test_export_contract(export_module) -> None:
    assert hasattr(export_module, "export_rows_to_csv"), "Expected rto_import.export.export_rows_to_csv(rows, output_path)"
    assert hasattr(export_module, "export_validation_report")


def test_export_csv_output(export_module, parsed, tmp_path) -> None:
    out_path = tmp_path / "exports" / "rows.csv"
    export_module.export_rows_to_csv(export_module.records_to_rows(parsed.records), out_path)

    with out_path.open(newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 5
    assert rows[0]["qualification_code"] == "BSB30120"
    assert rows[3]["stream_name"] == "ALL"
    assert rows[2]["stream_name"] == "Regional; Metro"


def test_export_csv_empty(export_module, tmp_path) -> None:
    out = export_module.export_rows_to_csv([], tmp_path / "empty.csv")
    assert out.read_text(encoding="utf-8") == ""


def test_export_excel_output(export_module, parsed, tmp_path) -> None:
    out = export_module.export_rows_to_excel(export_module.records_to_rows(parsed.records), tmp_path / "rows.xlsx")
    df = pd.read_excel(out, sheet_name="Rows")
    assert list(df["unit_code"]) == ["BSBWHS311", "BSBXCM301", "BSBTEC303", "BSBOPS304", "BSBXXX999"]


def test_validation_report_workbook(export_module, parsed, tmp_path) -> None:
    out = export_module.export_validation_report(parsed.records, parsed.report, tmp_path / "report.xlsx")
    sheets = pd.read_excel(out, sheet_name=None)
    assert set(sheets) == {"Rows", "Errors", "Summary"}
    errors = sheets["Errors"]
    assert list(errors["row"]) == [6]
    assert list(errors["message"]) == ['Row 6: Missing "unit_name"']
    assert int(sheets["Summary"]["electives"][0]) == 4
