"""Runtime settings and logging setup.
Author: Sunil Paudel

Every value has a module default and can be overridden through the environment.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

DEFAULT_DB_PATH = Path("data/rto_import.db")
DEFAULT_STORAGE_ROOT = Path("data/storage")
DEFAULT_DRAFT_PATH = Path("data/drafts.json")
DEFAULT_BATCH_SIZE = 500
NAME_POLICIES = ("overwrite", "fill_blank", "keep")

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        return default
    return value if value > 0 else default


def _origins_env(name: str) -> List[str]:
    raw = (os.getenv(name) or "*").strip()
    if raw == "*":
        return ["*"]
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass
class Settings:
    db_path: Path = DEFAULT_DB_PATH
    batch_size: int = DEFAULT_BATCH_SIZE
    name_policy: str = "overwrite"
    storage_root: Path = DEFAULT_STORAGE_ROOT
    storage_url: Optional[str] = None
    storage_key: Optional[str] = None
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    draft_path: Path = DEFAULT_DRAFT_PATH
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.name_policy not in NAME_POLICIES:
            raise ValueError(f"Unknown name policy {self.name_policy!r}; expected one of {', '.join(NAME_POLICIES)}")

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            db_path=Path(os.getenv("RTO_IMPORT_DB_PATH") or DEFAULT_DB_PATH),
            batch_size=_int_env("RTO_IMPORT_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            name_policy=(os.getenv("RTO_IMPORT_NAME_POLICY") or "overwrite").strip().lower(),
            storage_root=Path(os.getenv("RTO_IMPORT_STORAGE_ROOT") or DEFAULT_STORAGE_ROOT),
            storage_url=(os.getenv("RTO_IMPORT_STORAGE_URL") or "").strip() or None,
            storage_key=(os.getenv("RTO_IMPORT_STORAGE_KEY") or "").strip() or None,
            allowed_origins=_origins_env("ALLOWED_ORIGINS"),
            draft_path=Path(os.getenv("RTO_IMPORT_DRAFT_PATH") or DEFAULT_DRAFT_PATH),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        )


def configure_logging(level: str = "INFO") -> logging.Logger:
    root = logging.getLogger("rto_import")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not root.handlers:
        sh = logging.StreamHandler(sys.stdout)
        sh.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(sh)
    return root
