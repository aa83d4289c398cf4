from __future__ import annotations

from importlib import import_module

import pytest


@pytest.fixture(scope="module")
def headers_module():
    try:
        return import_module("rto_import.headers")
    except ModuleNotFoundError as exc:
        pytest.skip(f"Missing headers module: {exc}")


def test_headers_contract(headers_module) -> None:
    assert hasattr(headers_module, "resolve_headers"), "Expected rto_import.headers.resolve_headers(matrix)"
    assert hasattr(headers_module, "normalize_header_key")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Unit Code", "unit_code"),
        ("unit code ", "unit_code"),
        ("code", "unit_code"),
        ("Extra Info for names", "qualification_name"),
        ("Variation", "stream_name"),
        ("Streams", "stream_name"),
        ("IsRequired", "is_required"),
        ("Required", "is_required"),
        ("Cluster Info", "group_label"),
        ("Put application details here", "application_details"),
        ("\ufeffQualification-Code", "qualification_code"),
        ("Déscription", "unit_description"),
        ("Notes", None),
    ],
)
def test_header_synonyms(headers_module, raw, expected) -> None:
    assert headers_module.canonical_field(raw) == expected


def test_header_row_detected_when_any_cell_matches(headers_module) -> None:
    matrix = [["Foo", "Unit Code", "Bar"], ["x", "BSBWHS311", "y"]]
    mapping = headers_module.resolve_headers(matrix)
    assert mapping.has_header is True
    assert mapping.fields == [None, "unit_code", None]
    assert mapping.start_row == 1


def test_positional_fallback_when_no_cell_matches(headers_module) -> None:
    matrix = [["BSBWHS311", "WHS", "Participate", "Core", ""]]
    mapping = headers_module.resolve_headers(matrix)
    assert mapping.has_header is False
    assert mapping.positional is True
    assert mapping.fields == ["unit_code", "unit_name", "unit_description", "unit_type", "group_label"]
    assert mapping.start_row == 0


def test_header_mapping_is_never_hybrid(headers_module) -> None:
    # only one header is recognized; the rest are ignored, not filled positionally
    mapping = headers_module.resolve_headers([["Unit Code", "Whatever", "Other"]])
    assert mapping.fields == ["unit_code", None, None]


def test_duplicate_header_first_column_wins(headers_module) -> None:
    mapping = headers_module.resolve_headers([["code", "Unit Code", "name"]])
    assert mapping.fields == ["unit_code", None, "unit_name"]
    assert mapping.columns() == {"unit_code": 0, "unit_name": 2}


def test_predefined_headers_treat_every_row_as_data(headers_module) -> None:
    mapping = headers_module.resolve_headers([["BSBWHS311"]], headers=["unit_code"])
    assert mapping.has_header is False
    assert mapping.start_row == 0
    assert mapping.row_offset == 1
    assert mapping.fields == ["unit_code"]


def test_resolution_is_deterministic(headers_module) -> None:
    matrix = [["Unit Type", "Unit Code"], ["Core", "A1"]]
    assert headers_module.resolve_headers(matrix) == headers_module.resolve_headers(matrix)
