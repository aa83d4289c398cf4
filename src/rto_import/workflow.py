"""Workflow helpers wiring the pipeline stages together.
Author: Sunil Paudel

parse_* functions never touch the store; run_import is the only step that writes.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Mapping, Optional, Union

import pandas as pd

from .config import Settings
from .db import SqliteStore
from .errors import ImportFormatError, NoValidRowsError, TabSeparatedInputError
from .headers import HeaderMapping, POSITIONAL_FIELDS, resolve_headers
from .normalizer import ImportRecord, infer_context, normalize_rows
from .reconcile import ReconcileOptions, ReconcileSummary, SchemaVariant, reconcile
from .tokenizer import tokenize
from .validation import ValidationReport, ensure_importable, validate

logger = logging.getLogger(__name__)

CsvSource = Union[str, Path, bytes, BinaryIO]


@dataclass
class ParseResult:
    records: List[ImportRecord] = field(default_factory=list)
    mapping: HeaderMapping = field(default_factory=lambda: HeaderMapping(list(POSITIONAL_FIELDS), has_header=False))
    report: ValidationReport = field(default_factory=ValidationReport)

    @property
    def context(self) -> Dict[str, str]:
        return infer_context(self.records)

    def importable_records(self) -> List[ImportRecord]:
        return self.report.valid_records(self.records)


def _parse_matrix(matrix, mapping: HeaderMapping, defaults: Optional[Mapping[str, Any]]) -> ParseResult:
    records = normalize_rows(matrix, mapping, defaults=defaults)
    report = validate(records)
    logger.info(
        "parsed %d record(s): %d error(s), %d invalid row(s)",
        len(records),
        len(report.errors),
        len(report.invalid_rows),
    )
    return ParseResult(records=records, mapping=mapping, report=report)


def parse_pasted_text(text: str, defaults: Optional[Mapping[str, Any]] = None) -> ParseResult:
    """Tokenize clipboard text, detect headers (or fall back to positional), normalize and validate.

    `defaults` fills empty fields on every row, e.g. the qualification and
    RTO chosen in a form.
    """
    matrix = tokenize(text)
    if not matrix:
        return ParseResult()
    return _parse_matrix(matrix, resolve_headers(matrix), defaults)


def _read_matrix(source: CsvSource) -> List[List[str]]:
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(bytes(source))
    try:
        df = pd.read_csv(
            source,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError:
        return []
    except pd.errors.ParserError as exc:
        raise ImportFormatError(f"Could not parse CSV: {exc}") from exc
    # short rows come back as NaN
    return df.fillna("").values.tolist()


def parse_uploaded_csv(source: CsvSource, defaults: Optional[Mapping[str, Any]] = None) -> ParseResult:
    """Header-aware CSV read of an uploaded file (path, bytes or file object).

    Cells are read raw so the header row goes through the same detection as a
    paste; a file without known column names is read positionally.
    """
    matrix = _read_matrix(source)
    if not matrix:
        return ParseResult()
    if len(matrix[0]) == 1 and "\t" in matrix[0][0]:
        raise TabSeparatedInputError()
    return _parse_matrix(matrix, resolve_headers(matrix), defaults)


def options_from_settings(settings: Settings, schema: Optional[SchemaVariant] = None, **overrides: Any) -> ReconcileOptions:
    kwargs: Dict[str, Any] = {"batch_size": settings.batch_size, "name_policy": settings.name_policy}
    if schema is not None:
        kwargs["schema"] = schema
    kwargs.update(overrides)
    return ReconcileOptions(**kwargs)


def open_store(settings: Settings) -> SqliteStore:
    store = SqliteStore(settings.db_path)
    store.init_schema()
    return store


def run_import(
    parsed: ParseResult,
    store: Any,
    options: Optional[ReconcileOptions] = None,
    valid_only: bool = True,
) -> ReconcileSummary:
    """Reconcile parsed records. With valid_only, rows flagged by validation are left out.

    Units on left-out rows are still part of the source, so offer cleanup keeps them.
    """
    if valid_only:
        ensure_importable(parsed.report)
        records = parsed.importable_records()
    else:
        records = list(parsed.records)
        if not records:
            raise NoValidRowsError("No rows to import.")
    options = options or ReconcileOptions()
    keep = {r.unit_code for r in parsed.records if r.unit_code}
    options = replace(options, keep_unit_codes=set(options.keep_unit_codes) | keep)
    logger.info("importing %d of %d record(s)", len(records), len(parsed.records))
    return reconcile(records, store, options)
