"""Row validation and operator-facing counts. Pure functions, no store access.
Author: Sunil Paudel
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Sequence, Set

from .errors import NoValidRowsError
from .normalizer import ImportRecord, is_recognized_unit_type

REQUIRED_FIELDS = (
    "qualification_code",
    "qualification_name",
    "unit_code",
    "unit_name",
    "unit_description",
    "unit_type",
)


@dataclass
class ImportSummary:
    rows: int = 0
    qualifications: int = 0
    units: int = 0
    cores: int = 0
    electives: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ValidationReport:
    errors: List[str] = field(default_factory=list)
    invalid_rows: Set[int] = field(default_factory=set)
    summary: ImportSummary = field(default_factory=ImportSummary)

    @property
    def ok(self) -> bool:
        return not self.errors

    def valid_records(self, records: Sequence[ImportRecord]) -> List[ImportRecord]:
        return [r for r in records if r.source_row not in self.invalid_rows]


def row_errors(record: ImportRecord) -> List[str]:
    errs: List[str] = []
    for name in REQUIRED_FIELDS:
        # an empty unit_type is reported by the classification check below
        if name == "unit_type":
            continue
        if not getattr(record, name):
            errs.append(f'Row {record.source_row}: Missing "{name}"')
    if not is_recognized_unit_type(record.unit_type_raw):
        errs.append(f"Row {record.source_row}: unit_type must be Core or Elective")
    return errs


def summarize(records: Sequence[ImportRecord]) -> ImportSummary:
    return ImportSummary(
        rows=len(records),
        qualifications=len({r.qualification_code for r in records if r.qualification_code}),
        units=len({r.unit_code for r in records if r.unit_code}),
        cores=sum(1 for r in records if r.unit_type == "core"),
        electives=sum(1 for r in records if r.unit_type == "elective"),
    )


def validate(records: Sequence[ImportRecord]) -> ValidationReport:
    report = ValidationReport(summary=summarize(records))
    for rec in records:
        errs = row_errors(rec)
        if errs:
            report.errors.extend(errs)
            report.invalid_rows.add(rec.source_row)
    return report


def ensure_importable(report: ValidationReport) -> None:
    """Warnings never block an import unless no valid row remains."""
    if report.summary.rows - len(report.invalid_rows) <= 0:
        raise NoValidRowsError("No valid rows to import. Fix the reported rows and try again.")
