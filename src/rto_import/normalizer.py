"""Row normalization: raw grid rows -> canonical import records.
Author: Sunil Paudel
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

if TYPE_CHECKING:
    from .headers import HeaderMapping

logger = logging.getLogger(__name__)

_BOM = re.compile("^\ufeff")
_ZERO_WIDTH = re.compile("[\u200b-\u200d\u2060\ufeff]")
_BIDI = re.compile("[\u200e\u200f\u202a-\u202e]")
_STREAM_SPLIT = re.compile(r"[;|,]")
_TRUE_TOKENS = {"1", "true", "yes", "y"}

ALL_STREAMS = "ALL"


def clean_text(value: Any) -> str:
    """Strip BOM, zero-width and bidi marks, turn NBSP into a space, trim."""
    if value is None:
        return ""
    text = str(value)
    text = _BOM.sub("", text)
    text = _ZERO_WIDTH.sub("", text)
    text = _BIDI.sub("", text)
    return text.replace("\u00a0", " ").strip()


def normalize_code(value: Any) -> str:
    return clean_text(value).upper()


def classify_unit_type(value: Any) -> str:
    # Lenient: anything that is not recognisably elective is treated as core.
    v = clean_text(value).lower()
    if "elective" in v or v == "e":
        return "elective"
    return "core"


def is_recognized_unit_type(value: Any) -> bool:
    v = clean_text(value).lower()
    return v in {"c", "e"} or "core" in v or "elective" in v


def to_bool(value: Any) -> bool:
    return clean_text(value).lower() in _TRUE_TOKENS


def split_stream_names(value: Any) -> List[str]:
    seen = set()
    names: List[str] = []
    for part in _STREAM_SPLIT.split(clean_text(value)):
        name = part.strip()
        if name and name.lower() not in seen:
            seen.add(name.lower())
            names.append(name)
    return names


@dataclass
class ImportRecord:
    source_row: int
    qualification_code: str = ""
    qualification_name: str = ""
    unit_code: str = ""
    unit_name: str = ""
    unit_description: str = ""
    unit_type: str = "core"
    unit_type_raw: str = ""
    group_label: Optional[str] = None
    stream_names: List[str] = field(default_factory=list)
    all_streams: bool = False
    is_required: bool = False
    rto_code: str = ""
    application_details: Optional[str] = None

    @property
    def is_elective(self) -> bool:
        return self.unit_type == "elective"

    @property
    def has_stream_targets(self) -> bool:
        return self.all_streams or bool(self.stream_names)

    @property
    def training_package(self) -> str:
        return self.qualification_code[:3]

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row["stream_name"] = "; ".join(([ALL_STREAMS] if self.all_streams else []) + self.stream_names)
        del row["stream_names"]
        del row["all_streams"]
        return row


def normalize_row(
    raw_row: Sequence[Any],
    mapping: "HeaderMapping",
    source_row: int,
    defaults: Optional[Mapping[str, Any]] = None,
) -> Optional[ImportRecord]:
    """Map one raw row through the column mapping. Returns None when the row has no usable signal."""
    values: Dict[str, str] = {}
    for idx, cell in enumerate(raw_row):
        name = mapping.field_for(idx)
        if not name:
            continue
        values[name] = clean_text(cell)

    for key, value in (defaults or {}).items():
        if not values.get(key):
            values[key] = clean_text(value)

    if not (values.get("unit_code") or values.get("unit_name") or values.get("unit_description")):
        return None

    stream_tokens = split_stream_names(values.get("stream_name", ""))
    all_streams = any(t.upper() == ALL_STREAMS for t in stream_tokens)
    raw_type = values.get("unit_type", "")

    return ImportRecord(
        source_row=source_row,
        qualification_code=normalize_code(values.get("qualification_code")),
        qualification_name=values.get("qualification_name", ""),
        unit_code=normalize_code(values.get("unit_code")),
        unit_name=values.get("unit_name", ""),
        unit_description=values.get("unit_description", ""),
        unit_type=classify_unit_type(raw_type),
        unit_type_raw=raw_type,
        group_label=values.get("group_label") or None,
        stream_names=[t for t in stream_tokens if t.upper() != ALL_STREAMS],
        all_streams=all_streams,
        is_required=to_bool(values.get("is_required")),
        rto_code=normalize_code(values.get("rto_code")),
        application_details=values.get("application_details") or None,
    )


def normalize_rows(
    matrix: Sequence[Sequence[Any]],
    mapping: "HeaderMapping",
    defaults: Optional[Mapping[str, Any]] = None,
) -> List[ImportRecord]:
    """Normalize every data row of the matrix.

    `source_row` is the 1-based source line of the row, header included, so
    the first data row under a header is row 2.
    """
    records: List[ImportRecord] = []
    dropped = 0
    for idx in range(mapping.start_row, len(matrix)):
        rec = normalize_row(matrix[idx], mapping, source_row=idx + 1 + mapping.row_offset, defaults=defaults)
        if rec is None:
            dropped += 1
            continue
        records.append(rec)
    logger.info("normalized %d row(s), dropped %d without unit data", len(records), dropped)
    return records


def infer_context(records: Sequence[ImportRecord]) -> Dict[str, str]:
    """First qualification/RTO code seen, used to prefill form fields."""
    return {
        "qualification_code": next((r.qualification_code for r in records if r.qualification_code), ""),
        "rto_code": next((r.rto_code for r in records if r.rto_code), ""),
    }
