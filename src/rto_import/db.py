"""SQLite schema + record store used by the import pipeline.
Author: Sunil Paudel

The store exposes the small query/command surface the reconciler relies on:
select-with-filter, insert, upsert-on-conflict, delete-with-filter and one
aggregation (unit ids referenced by any stream of an offer).
"""

from __future__ import annotations

import logging
import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .errors import StoreError

logger = logging.getLogger(__name__)

DB_PATH = Path("data/rto_import.db")

TABLES = {
    "rtos",
    "qualifications",
    "units",
    "qualification_units",
    "qualification_streams",
    "qualification_stream_units",
    "rto_qualification_offers",
    "rto_qualification_units",
    "offer_streams",
    "offer_stream_units",
}

_IDENT = re.compile(r"^[a-z_][a-z0-9_]*$")


@contextmanager
def get_conn(db_path: Path = DB_PATH):
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, ddl: str) -> None:
    cols = {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl}")


def init_db(db_path: Path = DB_PATH) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with get_conn(db_path) as conn:
        cur = conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS rtos (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rto_code TEXT UNIQUE NOT NULL,
                trading_name TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS qualifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                training_package TEXT,
                description TEXT
            );

            CREATE TABLE IF NOT EXISTS units (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                code TEXT UNIQUE NOT NULL,
                name TEXT NOT NULL,
                description TEXT
            );

            CREATE TABLE IF NOT EXISTS qualification_units (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                qualification_id INTEGER NOT NULL,
                unit_id INTEGER NOT NULL,
                unit_type TEXT NOT NULL CHECK(unit_type IN ('core', 'elective')),
                group_code TEXT,
                application_details TEXT,
                UNIQUE(qualification_id, unit_id),
                FOREIGN KEY(qualification_id) REFERENCES qualifications(id),
                FOREIGN KEY(unit_id) REFERENCES units(id)
            );

            CREATE TABLE IF NOT EXISTS qualification_streams (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                qualification_id INTEGER NOT NULL,
                name TEXT NOT NULL COLLATE NOCASE,
                UNIQUE(qualification_id, name),
                FOREIGN KEY(qualification_id) REFERENCES qualifications(id)
            );

            CREATE TABLE IF NOT EXISTS qualification_stream_units (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                stream_id INTEGER NOT NULL,
                unit_id INTEGER NOT NULL,
                group_code TEXT,
                is_required INTEGER NOT NULL DEFAULT 0,
                UNIQUE(stream_id, unit_id),
                FOREIGN KEY(stream_id) REFERENCES qualification_streams(id),
                FOREIGN KEY(unit_id) REFERENCES units(id)
            );

            CREATE TABLE IF NOT EXISTS rto_qualification_offers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rto_id INTEGER NOT NULL,
                qualification_id INTEGER NOT NULL,
                company_id TEXT,
                status TEXT NOT NULL DEFAULT 'draft',
                is_public INTEGER NOT NULL DEFAULT 0,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(rto_id, qualification_id),
                FOREIGN KEY(rto_id) REFERENCES rtos(id),
                FOREIGN KEY(qualification_id) REFERENCES qualifications(id)
            );

            CREATE TABLE IF NOT EXISTS rto_qualification_units (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                offer_id INTEGER NOT NULL,
                unit_id INTEGER NOT NULL,
                unit_type TEXT NOT NULL CHECK(unit_type IN ('core', 'elective')),
                group_code TEXT,
                application_details TEXT,
                is_offered INTEGER NOT NULL DEFAULT 1,
                UNIQUE(offer_id, unit_id),
                FOREIGN KEY(offer_id) REFERENCES rto_qualification_offers(id),
                FOREIGN KEY(unit_id) REFERENCES units(id)
            );

            CREATE TABLE IF NOT EXISTS offer_streams (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                offer_id INTEGER NOT NULL,
                name TEXT NOT NULL COLLATE NOCASE,
                UNIQUE(offer_id, name),
                FOREIGN KEY(offer_id) REFERENCES rto_qualification_offers(id)
            );

            CREATE TABLE IF NOT EXISTS offer_stream_units (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                offer_stream_id INTEGER NOT NULL,
                unit_id INTEGER NOT NULL,
                is_required INTEGER NOT NULL DEFAULT 0,
                UNIQUE(offer_stream_id, unit_id),
                FOREIGN KEY(offer_stream_id) REFERENCES offer_streams(id),
                FOREIGN KEY(unit_id) REFERENCES units(id)
            );
            """
        )

        # lightweight migration for DBs created before these columns existed
        _ensure_column(conn, "qualification_units", "application_details", "application_details TEXT")
        _ensure_column(conn, "rto_qualification_units", "application_details", "application_details TEXT")
        _ensure_column(conn, "rto_qualification_offers", "company_id", "company_id TEXT")


def _check_ident(*names: str) -> None:
    for name in names:
        if not _IDENT.match(name or ""):
            raise ValueError(f"Invalid identifier: {name!r}")


def _where(filters: Optional[Mapping[str, Any]]) -> Tuple[str, List[Any], bool]:
    """Build a WHERE clause. Returns (sql, params, matches_nothing)."""
    if not filters:
        return "", [], False
    parts: List[str] = []
    params: List[Any] = []
    for col, value in filters.items():
        _check_ident(col)
        if isinstance(value, (list, tuple, set, frozenset)):
            values = list(value)
            if not values:
                return "", [], True
            parts.append(f"{col} IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        elif value is None:
            parts.append(f"{col} IS NULL")
        else:
            parts.append(f"{col} = ?")
            params.append(value)
    return " WHERE " + " AND ".join(parts), params, False


class SqliteStore:
    """Record store over a SQLite file. Every call opens its own connection."""

    def __init__(self, db_path: Path = DB_PATH) -> None:
        self.db_path = Path(db_path)

    def init_schema(self) -> None:
        init_db(self.db_path)

    def _table(self, table: str) -> str:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        return table

    def select(
        self,
        table: str,
        columns: Sequence[str] = ("*",),
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        self._table(table)
        cols = [c for c in columns if c != "*"]
        _check_ident(*cols)
        where, params, empty = _where(filters)
        if empty:
            return []
        sql = f"SELECT {', '.join(cols) if cols else '*'} FROM {table}{where}"
        if order_by:
            _check_ident(order_by)
            sql += f" ORDER BY {order_by}"
        try:
            with get_conn(self.db_path) as conn:
                return [dict(r) for r in conn.execute(sql, params).fetchall()]
        except sqlite3.Error as exc:
            raise StoreError(table, "select", str(exc)) from exc

    def insert(self, table: str, rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        self._table(table)
        rows = [dict(r) for r in rows]
        if not rows:
            return []
        inserted_ids: List[int] = []
        try:
            with get_conn(self.db_path) as conn:
                cur = conn.cursor()
                for row in rows:
                    cols = list(row.keys())
                    _check_ident(*cols)
                    cur.execute(
                        f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
                        [row[c] for c in cols],
                    )
                    inserted_ids.append(cur.lastrowid)
                marks = ", ".join("?" for _ in inserted_ids)
                return [dict(r) for r in conn.execute(f"SELECT * FROM {table} WHERE id IN ({marks}) ORDER BY id", inserted_ids)]
        except sqlite3.Error as exc:
            raise StoreError(table, "insert", str(exc)) from exc

    def upsert(
        self,
        table: str,
        rows: Iterable[Mapping[str, Any]],
        on_conflict: Sequence[str],
        update_columns: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Insert rows, updating `update_columns` (default: every non-key column) on conflict.

        Returns the stored rows for the conflict keys that were written.
        """
        self._table(table)
        rows = [dict(r) for r in rows]
        if not rows:
            return []
        cols = list(rows[0].keys())
        _check_ident(*cols)
        _check_ident(*on_conflict)
        updates = [c for c in (update_columns if update_columns is not None else cols) if c not in on_conflict]
        _check_ident(*updates)
        if updates:
            action = "DO UPDATE SET " + ", ".join(f"{c}=excluded.{c}" for c in updates)
        else:
            action = "DO NOTHING"
        sql = (
            f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join(':' + c for c in cols)}) "
            f"ON CONFLICT({', '.join(on_conflict)}) {action}"
        )
        try:
            with get_conn(self.db_path) as conn:
                conn.executemany(sql, rows)
                first = on_conflict[0]
                firsts = sorted({r[first] for r in rows}, key=str)
                marks = ", ".join("?" for _ in firsts)
                stored = [dict(r) for r in conn.execute(f"SELECT * FROM {table} WHERE {first} IN ({marks})", firsts)]
        except sqlite3.Error as exc:
            raise StoreError(table, "upsert", str(exc)) from exc
        wanted = {tuple(r[c] for c in on_conflict) for r in rows}
        return [r for r in stored if tuple(r[c] for c in on_conflict) in wanted]

    def delete(self, table: str, filters: Mapping[str, Any]) -> int:
        self._table(table)
        if not filters:
            raise ValueError("delete requires at least one filter")
        where, params, empty = _where(filters)
        if empty:
            return 0
        try:
            with get_conn(self.db_path) as conn:
                return conn.execute(f"DELETE FROM {table}{where}", params).rowcount
        except sqlite3.Error as exc:
            raise StoreError(table, "delete", str(exc)) from exc

    def offer_stream_unit_ids(self, offer_id: int) -> Set[int]:
        """Distinct unit ids linked to any stream of the offer."""
        try:
            with get_conn(self.db_path) as conn:
                rows = conn.execute(
                    """
                    SELECT DISTINCT osu.unit_id
                    FROM offer_stream_units osu
                    JOIN offer_streams os ON os.id = osu.offer_stream_id
                    WHERE os.offer_id = ?
                    """,
                    (offer_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError("offer_stream_units", "aggregate", str(exc)) from exc
        return {int(r["unit_id"]) for r in rows}
