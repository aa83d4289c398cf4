from __future__ import annotations

from importlib import import_module

import pytest


@pytest.fixture(scope="module")
def workflow_module():
    try:
        return import_module("rto_import.workflow")
    except ModuleNotFoundError as exc:
        pytest.skip(f"Missing workflow module: {exc}")


@pytest.fixture(scope="module")
def validation_module():
    try:
        return import_module("rto_import.validation")
    except ModuleNotFoundError as exc:
        pytest.skip(f"Missing validation module: {exc}")


def test_validation_contract(validation_module) -> None:
    assert hasattr(validation_module, "validate"), "Expected rto_import.validation.validate(records)"
    assert hasattr(validation_module, "summarize")


def test_minimal_csv_has_no_errors(workflow_module, import_files) -> None:
    parsed = workflow_module.parse_pasted_text(import_files["minimal.csv"])
    assert parsed.report.errors == []
    assert parsed.report.summary.to_dict() == {"rows": 1, "qualifications": 1, "units": 1, "cores": 1, "electives": 0}


def test_missing_unit_type_reports_single_error(workflow_module, import_files) -> None:
    parsed = workflow_module.parse_pasted_text(import_files["missing_unit_type.csv"])
    assert parsed.report.errors == ["Row 2: unit_type must be Core or Elective"]
    assert len(parsed.records) == 1
    assert parsed.report.invalid_rows == {2}


def test_missing_required_fields_are_listed(validation_module) -> None:
    Rec = import_module("rto_import.normalizer").ImportRecord
    rec = Rec(source_row=4, unit_code="A1", unit_type_raw="Elective", unit_type="elective")
    errors = validation_module.row_errors(rec)
    assert errors == [
        'Row 4: Missing "qualification_code"',
        'Row 4: Missing "qualification_name"',
        'Row 4: Missing "unit_name"',
        'Row 4: Missing "unit_description"',
    ]


def test_unrecognized_unit_type_is_flagged_but_classified_core(validation_module) -> None:
    Rec = import_module("rto_import.normalizer").ImportRecord
    rec = Rec(
        source_row=2,
        qualification_code="Q",
        qualification_name="N",
        unit_code="U",
        unit_name="Name",
        unit_description="Desc",
        unit_type_raw="Optional",
    )
    assert rec.unit_type == "core"
    assert validation_module.row_errors(rec) == ["Row 2: unit_type must be Core or Elective"]


def test_valid_subset_and_empty_guard(validation_module) -> None:
    Rec = import_module("rto_import.normalizer").ImportRecord
    good = Rec(2, "Q", "N", "U1", "Name", "Desc", "core", "Core")
    bad = Rec(3, "Q", "N", "U2", "", "Desc", "core", "Core")
    report = validation_module.validate([good, bad])
    assert report.ok is False
    assert report.valid_records([good, bad]) == [good]
    validation_module.ensure_importable(report)

    errors = import_module("rto_import.errors")
    only_bad = validation_module.validate([bad])
    with pytest.raises(errors.NoValidRowsError):
        validation_module.ensure_importable(only_bad)


def test_validation_does_not_mutate_records(validation_module) -> None:
    Rec = import_module("rto_import.normalizer").ImportRecord
    rec = Rec(source_row=2, unit_code="U1")
    before = rec.to_row()
    validation_module.validate([rec])
    assert rec.to_row() == before
