"""Reconcile normalized import records against the record store.
Author: Sunil Paudel

Phases run strictly in order, each batched and idempotent:

1. rtos            create RTOs referenced by rto_code
2. qualifications  insert missing codes, refresh names per policy
3. units           insert missing codes, refresh name/description per policy
4. offers          one draft offer per (rto, qualification) pair
5. unit_links      link units to their owner (qualification or offer)
6. streams         create named streams/variations per owner
7. stream_links    link elective units to named streams or ALL streams
8. cleanup         offer schema only: drop units no longer imported and not used by a stream

A failing store call aborts the remaining phases. Completed phases are not
rolled back; re-running with the same records converges to the same state.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .config import DEFAULT_BATCH_SIZE, NAME_POLICIES
from .errors import ReconcileError, StoreError
from .normalizer import ImportRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchemaVariant:
    """Which tables units and streams attach to."""

    name: str
    unit_link_table: str
    unit_link_owner: str
    stream_table: str
    stream_owner: str
    stream_unit_table: str
    stream_unit_stream: str
    stream_units_carry_group: bool
    owned_by_offer: bool


QUALIFICATION_SCHEMA = SchemaVariant(
    name="qualification",
    unit_link_table="qualification_units",
    unit_link_owner="qualification_id",
    stream_table="qualification_streams",
    stream_owner="qualification_id",
    stream_unit_table="qualification_stream_units",
    stream_unit_stream="stream_id",
    stream_units_carry_group=True,
    owned_by_offer=False,
)

OFFER_SCHEMA = SchemaVariant(
    name="offer",
    unit_link_table="rto_qualification_units",
    unit_link_owner="offer_id",
    stream_table="offer_streams",
    stream_owner="offer_id",
    stream_unit_table="offer_stream_units",
    stream_unit_stream="offer_stream_id",
    stream_units_carry_group=False,
    owned_by_offer=True,
)


@dataclass
class ReconcileOptions:
    schema: SchemaVariant = QUALIFICATION_SCHEMA
    batch_size: int = DEFAULT_BATCH_SIZE
    name_policy: str = "overwrite"
    # RTO picked by the operator; applies to rows without an rto_code
    rto_id: Optional[int] = None
    company_id: Optional[str] = None
    replace_stream_units: bool = False
    prune_obsolete: bool = True
    # codes from rows left out of the batch (rows with warnings); cleanup never drops them
    keep_unit_codes: Set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        if self.name_policy not in NAME_POLICIES:
            raise ValueError(f"Unknown name policy {self.name_policy!r}")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")


@dataclass
class ReconcileSummary:
    rows: int = 0
    rtos_created: int = 0
    qualifications_created: int = 0
    qualifications_updated: int = 0
    units_created: int = 0
    units_updated: int = 0
    offers_created: int = 0
    unit_links_created: int = 0
    unit_links_updated: int = 0
    unit_links_unchanged: int = 0
    unit_links_removed: int = 0
    streams_created: int = 0
    stream_links_written: int = 0
    stream_links_removed: int = 0
    skipped: int = 0
    phases_completed: List[str] = field(default_factory=list)

    @property
    def created(self) -> int:
        return (
            self.rtos_created
            + self.qualifications_created
            + self.units_created
            + self.offers_created
            + self.streams_created
        )

    @property
    def linked(self) -> int:
        return self.unit_links_created + self.unit_links_updated + self.stream_links_written

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["created"] = self.created
        out["linked"] = self.linked
        return out


@dataclass
class RunState:
    """Run-local lookups. Built fresh for every reconcile call, never shared."""

    rtos: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    default_rto: Optional[Dict[str, Any]] = None
    qualifications: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    units: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    offers: Dict[Tuple[int, int], Dict[str, Any]] = field(default_factory=dict)
    # owner id -> lower-cased stream name -> stream row
    streams: Dict[int, Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    # owner id -> unit ids named by this import
    owner_units: Dict[int, Set[int]] = field(default_factory=dict)
    # owners whose records name streams or ALL
    owners_with_streams: Set[int] = field(default_factory=set)
    skipped_rows: Set[int] = field(default_factory=set)


def chunked(items: Sequence[Any], size: int) -> Iterator[List[Any]]:
    items = list(items)
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _first_seen(pairs: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in pairs:
        if key and key not in out:
            out[key] = value
    return out


def _wants_update(stored: Optional[str], incoming: str, code: str, policy: str) -> bool:
    if not incoming or incoming == (stored or ""):
        return False
    if policy == "overwrite":
        return True
    if policy == "fill_blank":
        return not stored or stored == code
    return False


class Reconciler:
    """Converge the store with a batch of normalized records.

    `store` must provide select(table, columns, filters), insert(table, rows),
    upsert(table, rows, on_conflict, update_columns), delete(table, filters)
    and offer_stream_unit_ids(offer_id); see rto_import.db.SqliteStore.
    """

    def __init__(self, store: Any, options: Optional[ReconcileOptions] = None) -> None:
        self.store = store
        self.options = options or ReconcileOptions()
        self.schema = self.options.schema
        self.state = RunState()
        self.summary = ReconcileSummary()

    # ---------------------------
    # store helpers
    # ---------------------------

    def _select_in(
        self,
        table: str,
        column: str,
        values: Iterable[Any],
        columns: Sequence[str] = ("*",),
    ) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for batch in chunked(sorted(set(values), key=str), self.options.batch_size):
            rows.extend(self.store.select(table, columns, {column: batch}))
        return rows

    def _insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for batch in chunked(rows, self.options.batch_size):
            out.extend(self.store.insert(table, batch))
        return out

    def _upsert(
        self,
        table: str,
        rows: Sequence[Dict[str, Any]],
        on_conflict: Sequence[str],
        update_columns: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for batch in chunked(rows, self.options.batch_size):
            out.extend(self.store.upsert(table, batch, on_conflict=on_conflict, update_columns=update_columns))
        return out

    def _skip(self, rec: ImportRecord, reason: str) -> None:
        if rec.source_row not in self.state.skipped_rows:
            logger.warning("Row %d skipped: %s", rec.source_row, reason)
        self.state.skipped_rows.add(rec.source_row)

    # ---------------------------
    # resolution
    # ---------------------------

    def _rto_for(self, rec: ImportRecord) -> Optional[Dict[str, Any]]:
        if rec.rto_code:
            return self.state.rtos.get(rec.rto_code)
        return self.state.default_rto

    def _owner_for(self, rec: ImportRecord) -> Optional[int]:
        qual = self.state.qualifications.get(rec.qualification_code)
        if not qual:
            return None
        if not self.schema.owned_by_offer:
            return int(qual["id"])
        rto = self._rto_for(rec)
        if not rto:
            return None
        offer = self.state.offers.get((int(rto["id"]), int(qual["id"])))
        return int(offer["id"]) if offer else None

    def stream_index(self, owner_id: int) -> Dict[str, Dict[str, Any]]:
        """Streams of one owner keyed by trimmed lower-case name; read once per run."""
        idx = self.state.streams.get(owner_id)
        if idx is None:
            rows = self.store.select(self.schema.stream_table, ("id", "name"), {self.schema.stream_owner: owner_id})
            idx = {str(s["name"]).strip().lower(): s for s in rows}
            self.state.streams[owner_id] = idx
        return idx

    # ---------------------------
    # phases
    # ---------------------------

    def upsert_rtos(self, records: Sequence[ImportRecord]) -> None:
        codes = sorted({r.rto_code for r in records if r.rto_code})
        if codes:
            existing = self._select_in("rtos", "rto_code", codes)
            self.state.rtos = {r["rto_code"]: r for r in existing}
            missing = [{"rto_code": c, "trading_name": f"RTO {c}"} for c in codes if c not in self.state.rtos]
            if missing:
                for row in self._insert("rtos", missing):
                    self.state.rtos[row["rto_code"]] = row
                self.summary.rtos_created += len(missing)
        if self.options.rto_id is not None:
            rows = self.store.select("rtos", ("*",), {"id": self.options.rto_id})
            if not rows:
                raise StoreError("rtos", "select", f"RTO id {self.options.rto_id} not found")
            self.state.default_rto = rows[0]

    def upsert_qualifications(self, records: Sequence[ImportRecord]) -> None:
        names = _first_seen((r.qualification_code, r.qualification_name) for r in records)
        # a later row may carry the name the first row lacked
        for r in records:
            if r.qualification_code and not names.get(r.qualification_code) and r.qualification_name:
                names[r.qualification_code] = r.qualification_name
        if not names:
            return
        existing = {q["code"]: q for q in self._select_in("qualifications", "code", names)}
        missing = [
            {"code": code, "name": name or code, "training_package": code[:3]}
            for code, name in names.items()
            if code not in existing
        ]
        updates = [
            {"code": code, "name": name}
            for code, name in names.items()
            if code in existing and _wants_update(existing[code]["name"], name, code, self.options.name_policy)
        ]
        self.state.qualifications = dict(existing)
        for row in self._insert("qualifications", missing):
            self.state.qualifications[row["code"]] = row
        for row in self._upsert("qualifications", updates, on_conflict=("code",), update_columns=("name",)):
            self.state.qualifications[row["code"]] = row
        self.summary.qualifications_created += len(missing)
        self.summary.qualifications_updated += len(updates)

    def upsert_units(self, records: Sequence[ImportRecord]) -> None:
        details = _first_seen((r.unit_code, (r.unit_name, r.unit_description)) for r in records)
        if not details:
            return
        existing = {u["code"]: u for u in self._select_in("units", "code", details)}
        missing: List[Dict[str, Any]] = []
        updates: List[Dict[str, Any]] = []
        policy = self.options.name_policy
        for code, (name, description) in details.items():
            stored = existing.get(code)
            if stored is None:
                missing.append({"code": code, "name": name or code, "description": description or None})
                continue
            new_name = name if _wants_update(stored["name"], name, code, policy) else stored["name"]
            new_desc = description if _wants_update(stored.get("description"), description, "", policy) else stored.get("description")
            if new_name != stored["name"] or new_desc != stored.get("description"):
                updates.append({"code": code, "name": new_name, "description": new_desc})
        self.state.units = dict(existing)
        for row in self._insert("units", missing):
            self.state.units[row["code"]] = row
        for row in self._upsert("units", updates, on_conflict=("code",), update_columns=("name", "description")):
            self.state.units[row["code"]] = row
        self.summary.units_created += len(missing)
        self.summary.units_updated += len(updates)

    def upsert_offers(self, records: Sequence[ImportRecord]) -> None:
        pairs: Set[Tuple[int, int]] = set()
        for r in records:
            rto = self._rto_for(r)
            qual = self.state.qualifications.get(r.qualification_code)
            if rto and qual:
                pairs.add((int(rto["id"]), int(qual["id"])))
        if not pairs:
            return
        existing = self._select_in("rto_qualification_offers", "rto_id", {p[0] for p in pairs})
        self.state.offers = {
            (int(o["rto_id"]), int(o["qualification_id"])): o
            for o in existing
            if (int(o["rto_id"]), int(o["qualification_id"])) in pairs
        }
        missing = [
            {
                "rto_id": rto_id,
                "qualification_id": qual_id,
                "company_id": self.options.company_id,
                "status": "draft",
                "is_public": 0,
            }
            for rto_id, qual_id in sorted(pairs)
            if (rto_id, qual_id) not in self.state.offers
        ]
        for row in self._insert("rto_qualification_offers", missing):
            self.state.offers[(int(row["rto_id"]), int(row["qualification_id"]))] = row
        self.summary.offers_created += len(missing)

    def link_units(self, records: Sequence[ImportRecord]) -> None:
        owner_col = self.schema.unit_link_owner
        desired: Dict[Tuple[int, int], Dict[str, Any]] = {}
        for r in records:
            owner = self._owner_for(r)
            unit = self.state.units.get(r.unit_code)
            if owner is None or not unit:
                self._skip(r, f"could not resolve {self.schema.name} or unit {r.unit_code or '(blank)'}")
                continue
            unit_id = int(unit["id"])
            # last row wins for the same pair within one run
            desired[(owner, unit_id)] = {
                owner_col: owner,
                "unit_id": unit_id,
                "unit_type": r.unit_type,
                "group_code": r.group_label,
                "application_details": r.application_details,
            }
            self.state.owner_units.setdefault(owner, set()).add(unit_id)
            if r.has_stream_targets:
                self.state.owners_with_streams.add(owner)
        if not desired:
            return

        existing = {
            (int(x[owner_col]), int(x["unit_id"])): x
            for x in self._select_in(self.schema.unit_link_table, owner_col, {k[0] for k in desired})
        }
        to_insert: List[Dict[str, Any]] = []
        to_update: List[Dict[str, Any]] = []
        for key, row in desired.items():
            current = existing.get(key)
            if current is None:
                to_insert.append(row)
            elif any(current.get(c) != row[c] for c in ("unit_type", "group_code", "application_details")):
                to_update.append(row)
            else:
                self.summary.unit_links_unchanged += 1
        self._insert(self.schema.unit_link_table, to_insert)
        self._upsert(
            self.schema.unit_link_table,
            to_update,
            on_conflict=(owner_col, "unit_id"),
            update_columns=("unit_type", "group_code", "application_details"),
        )
        self.summary.unit_links_created += len(to_insert)
        self.summary.unit_links_updated += len(to_update)

    def create_streams(self, records: Sequence[ImportRecord]) -> None:
        wanted: Dict[int, Dict[str, str]] = {}
        for r in records:
            if not r.stream_names:
                continue
            owner = self._owner_for(r)
            if owner is None:
                continue
            names = wanted.setdefault(owner, {})
            for name in r.stream_names:
                names.setdefault(name.strip().lower(), name.strip())

        for owner, names in wanted.items():
            idx = self.stream_index(owner)
            missing = [{self.schema.stream_owner: owner, "name": name} for key, name in names.items() if key not in idx]
            for row in self._insert(self.schema.stream_table, missing):
                idx[str(row["name"]).strip().lower()] = row
            self.summary.streams_created += len(missing)

    def link_stream_units(self, records: Sequence[ImportRecord]) -> None:
        stream_col = self.schema.stream_unit_stream
        desired: Dict[Tuple[int, int], Dict[str, Any]] = {}
        for r in records:
            if not r.is_elective or not r.has_stream_targets:
                continue
            owner = self._owner_for(r)
            unit = self.state.units.get(r.unit_code)
            if owner is None or not unit:
                self._skip(r, "stream target without a resolved owner or unit")
                continue
            idx = self.stream_index(owner)
            targets = list(idx.values()) if r.all_streams else []
            for name in r.stream_names:
                stream = idx.get(name.strip().lower())
                if stream is None:
                    self._skip(r, f"stream {name!r} not found")
                    continue
                targets.append(stream)
            for stream in targets:
                row: Dict[str, Any] = {stream_col: int(stream["id"]), "unit_id": int(unit["id"]), "is_required": int(r.is_required)}
                if self.schema.stream_units_carry_group:
                    row["group_code"] = r.group_label
                desired[(int(stream["id"]), int(unit["id"]))] = row
        if not desired:
            return

        rows = list(desired.values())
        if self.options.replace_stream_units:
            by_stream: Dict[int, List[Dict[str, Any]]] = {}
            for row in rows:
                by_stream.setdefault(row[stream_col], []).append(row)
            # per stream: delete strictly before insert
            for stream_id in sorted(by_stream):
                self.summary.stream_links_removed += self.store.delete(self.schema.stream_unit_table, {stream_col: stream_id})
                self._insert(self.schema.stream_unit_table, by_stream[stream_id])
        else:
            self._upsert(self.schema.stream_unit_table, rows, on_conflict=(stream_col, "unit_id"))
        self.summary.stream_links_written += len(rows)

    def prune_obsolete_units(self, records: Sequence[ImportRecord]) -> None:
        """Offer units neither imported now nor referenced by any stream are removed."""
        owner_col = self.schema.unit_link_owner
        kept = {int(u["id"]) for u in self._select_in("units", "code", self.options.keep_unit_codes, ("id",))}
        for offer_id, imported in sorted(self.state.owner_units.items()):
            if offer_id in self.state.owners_with_streams:
                continue
            linked = {
                int(x["unit_id"])
                for x in self.store.select(self.schema.unit_link_table, ("unit_id",), {owner_col: offer_id})
            }
            protected = self.store.offer_stream_unit_ids(offer_id)
            to_delete = sorted(linked - imported - kept - protected)
            for batch in chunked(to_delete, self.options.batch_size):
                self.summary.unit_links_removed += self.store.delete(
                    self.schema.unit_link_table, {owner_col: offer_id, "unit_id": batch}
                )
            if to_delete:
                logger.info("offer %s: removed %d obsolete unit link(s)", offer_id, len(to_delete))

    # ---------------------------
    # driver
    # ---------------------------

    def _phase(self, name: str, fn: Callable[[Sequence[ImportRecord]], None], records: Sequence[ImportRecord]) -> None:
        logger.info("reconcile phase %s: start", name)
        try:
            fn(records)
        except StoreError as exc:
            logger.error("reconcile phase %s failed: %s", name, exc)
            self.summary.skipped = len(self.state.skipped_rows)
            raise ReconcileError(name, str(exc), self.summary) from exc
        self.summary.phases_completed.append(name)

    def run(self, records: Sequence[ImportRecord]) -> ReconcileSummary:
        self.summary.rows = len(records)
        self._phase("rtos", self.upsert_rtos, records)
        self._phase("qualifications", self.upsert_qualifications, records)
        self._phase("units", self.upsert_units, records)
        self._phase("offers", self.upsert_offers, records)
        self._phase("unit_links", self.link_units, records)
        self._phase("streams", self.create_streams, records)
        self._phase("stream_links", self.link_stream_units, records)
        if self.schema.owned_by_offer and self.options.prune_obsolete:
            self._phase("cleanup", self.prune_obsolete_units, records)
        self.summary.skipped = len(self.state.skipped_rows)
        logger.info("reconcile done: %s", self.summary.to_dict())
        return self.summary


def reconcile(
    records: Sequence[ImportRecord],
    store: Any,
    options: Optional[ReconcileOptions] = None,
) -> ReconcileSummary:
    return Reconciler(store, options).run(records)
