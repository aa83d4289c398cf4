"""Header detection for pasted/uploaded import grids.
Author: Sunil Paudel

Row 0 is a header when at least one of its cells normalizes to a known
synonym; otherwise the fixed positional layout is used and row 0 is data.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .normalizer import clean_text

logger = logging.getLogger(__name__)

CANONICAL_FIELDS = (
    "qualification_code",
    "qualification_name",
    "unit_code",
    "unit_name",
    "unit_description",
    "unit_type",
    "group_label",
    "stream_name",
    "rto_code",
    "is_required",
    "application_details",
)

POSITIONAL_FIELDS = ("unit_code", "unit_name", "unit_description", "unit_type", "group_label")

# normalized header key -> canonical field
HEADER_SYNONYMS: Dict[str, str] = {
    "qualification_code": "qualification_code",
    "qualification": "qualification_code",
    "qual_code": "qualification_code",
    "qualification_name": "qualification_name",
    "qual_name": "qualification_name",
    "qualification_title": "qualification_name",
    "extra_info_for_names": "qualification_name",
    "unit_code": "unit_code",
    "code": "unit_code",
    "unit": "unit_code",
    "unit_name": "unit_name",
    "unit_title": "unit_name",
    "title": "unit_name",
    "name": "unit_name",
    "unit_description": "unit_description",
    "description": "unit_description",
    "unit_type": "unit_type",
    "type": "unit_type",
    "core_elective": "unit_type",
    "group_label": "group_label",
    "group": "group_label",
    "group_code": "group_label",
    "cluster": "group_label",
    "cluster_info": "group_label",
    "stream_name": "stream_name",
    "stream_names": "stream_name",
    "stream": "stream_name",
    "streams": "stream_name",
    "variation": "stream_name",
    "variations": "stream_name",
    "qualification_variation": "stream_name",
    "rto_code": "rto_code",
    "rto": "rto_code",
    "rto_number": "rto_code",
    "is_required": "is_required",
    "isrequired": "is_required",
    "required": "is_required",
    "application_details": "application_details",
    "put_application_details_here": "application_details",
}

_NON_ALNUM = re.compile(r"[^0-9a-z]+")


def strip_accents(s: str) -> str:
    s = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in s if not unicodedata.combining(ch))


def normalize_header_key(value: object) -> str:
    """'Unit Code ' -> 'unit_code', 'Extra Info for names' -> 'extra_info_for_names'."""
    s = "" if value is None else str(value)
    s = strip_accents(clean_text(s).lower())
    return _NON_ALNUM.sub("_", s).strip("_")


def canonical_field(value: object) -> Optional[str]:
    return HEADER_SYNONYMS.get(normalize_header_key(value))


@dataclass
class HeaderMapping:
    """Column index -> canonical field (None for ignored columns)."""

    fields: List[Optional[str]]
    has_header: bool
    header_cells: List[str] = field(default_factory=list)
    # header lines consumed before the matrix (predefined headers)
    row_offset: int = 0

    @property
    def start_row(self) -> int:
        return 1 if self.has_header else 0

    @property
    def positional(self) -> bool:
        return not self.header_cells

    def field_for(self, column: int) -> Optional[str]:
        if 0 <= column < len(self.fields):
            return self.fields[column]
        return None

    def columns(self) -> Dict[str, int]:
        return {f: idx for idx, f in enumerate(self.fields) if f}


def map_header_cells(cells: Sequence[object]) -> List[Optional[str]]:
    """Map header cells to fields; a field claimed by an earlier column is not reassigned."""
    claimed = set()
    out: List[Optional[str]] = []
    for cell in cells:
        f = canonical_field(cell)
        if f and f not in claimed:
            claimed.add(f)
            out.append(f)
        else:
            out.append(None)
    return out


def resolve_headers(matrix: Sequence[Sequence[str]], headers: Optional[Sequence[str]] = None) -> HeaderMapping:
    """Decide whether row 0 is a header and build the column mapping.

    `headers` is a predefined header list (e.g. from a header-aware CSV
    reader); when given, every matrix row is treated as data.
    """
    if headers is not None:
        mapping = HeaderMapping(
            map_header_cells(headers),
            has_header=False,
            header_cells=[str(h) for h in headers],
            row_offset=1,
        )
        logger.debug("predefined headers %s -> %s", list(headers), mapping.fields)
        return mapping

    first = list(matrix[0]) if matrix else []
    fields = map_header_cells(first)
    if any(fields):
        logger.debug("header row detected %s -> %s", first, fields)
        return HeaderMapping(fields, has_header=True, header_cells=[str(c) for c in first])

    logger.debug("no header detected, using positional mapping %s", list(POSITIONAL_FIELDS))
    return HeaderMapping(list(POSITIONAL_FIELDS), has_header=False)
