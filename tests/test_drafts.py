from __future__ import annotations

from importlib import import_module

import pytest


@pytest.fixture(scope="module")
def drafts_module():
    try:
        return import_module("rto_import.drafts")
    except ModuleNotFoundError as exc:
        pytest.skip(f"Missing drafts module: {exc}")


def test_drafts_contract(drafts_module) -> None:
    assert hasattr(drafts_module, "DraftStore"), "Expected rto_import.drafts.DraftStore(path)"


def test_draft_survives_reload(drafts_module, tmp_path) -> None:
    path = tmp_path / "state" / "drafts.json"
    drafts_module.DraftStore(path).save({"text": "a,b", "qualification_code": "BSB30120"})
    drafts_module.DraftStore(path).save({"rto_code": "45678"})

    loaded = drafts_module.DraftStore(path).load()
    assert loaded == {"text": "a,b", "qualification_code": "BSB30120", "rto_code": "45678"}


def test_drafts_are_keyed(drafts_module, tmp_path) -> None:
    path = tmp_path / "drafts.json"
    drafts_module.DraftStore(path, key="offer-1").save({"text": "one"})
    drafts_module.DraftStore(path, key="offer-2").save({"text": "two"})
    drafts_module.DraftStore(path, key="offer-1").clear()

    assert drafts_module.DraftStore(path, key="offer-1").load() == {}
    assert drafts_module.DraftStore(path, key="offer-2").load() == {"text": "two"}


def test_missing_or_corrupt_file_loads_empty(drafts_module, tmp_path) -> None:
    path = tmp_path / "drafts.json"
    assert drafts_module.DraftStore(path).load() == {}
    path.write_text("{broken", encoding="utf-8")
    assert drafts_module.DraftStore(path).load() == {}


def test_parsed_rows_survive_reload(drafts_module, tmp_path, import_files) -> None:
    workflow = import_module("rto_import.workflow")
    export = import_module("rto_import.export")
    parsed = workflow.parse_pasted_text(import_files["streams.csv"])
    rows = export.records_to_rows(parsed.records)

    path = tmp_path / "drafts.json"
    drafts_module.DraftStore(path).save({"text": import_files["streams.csv"], "rows": rows})

    loaded = drafts_module.DraftStore(path).load()
    assert loaded["rows"] == rows
    assert [r["unit_code"] for r in loaded["rows"]] == [r.unit_code for r in parsed.records]
    assert loaded["rows"][2]["stream_name"] == "Regional; Metro"
