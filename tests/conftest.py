from __future__ import annotations

from pathlib import Path

import pytest

from rto_import.db import SqliteStore
from rto_import.errors import StoreError


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture(scope="session")
def import_files(fixtures_dir: Path) -> dict[str, str]:
    import_dir = fixtures_dir / "imports"
    out: dict[str, str] = {}
    for file in import_dir.glob("*.*"):
        out[file.name] = file.read_text(encoding="utf-8")
    return out


@pytest.fixture
def store(tmp_path) -> SqliteStore:
    s = SqliteStore(tmp_path / "rto_import_test.db")
    s.init_schema()
    return s


class RecordingStore(SqliteStore):
    """SqliteStore that logs every call and can fail on a chosen table/operation."""

    def __init__(self, db_path, fail_on: tuple[str, str] | None = None) -> None:
        super().__init__(db_path)
        self.calls: list[tuple[str, str]] = []
        self.fail_on = fail_on

    def _record(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        if self.fail_on == (table, op):
            raise StoreError(table, op, "simulated failure")

    def select(self, table, columns=("*",), filters=None, order_by=None):
        self._record("select", table)
        return super().select(table, columns, filters, order_by)

    def insert(self, table, rows):
        rows = list(rows)
        self._record("insert", table)
        return super().insert(table, rows)

    def upsert(self, table, rows, on_conflict, update_columns=None):
        rows = list(rows)
        self._record("upsert", table)
        return super().upsert(table, rows, on_conflict, update_columns)

    def delete(self, table, filters):
        self._record("delete", table)
        return super().delete(table, filters)

    def writes(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] != "select"]


@pytest.fixture
def recording_store(tmp_path):
    def make(fail_on: tuple[str, str] | None = None) -> RecordingStore:
        s = RecordingStore(tmp_path / "rto_import_recorded.db", fail_on=fail_on)
        s.init_schema()
        return s

    return make
