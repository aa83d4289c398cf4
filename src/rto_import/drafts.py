"""Draft persistence for the operator UI.
Author: Sunil Paudel

Keeps paste text, form fields and parsed preview rows between sessions in a
small JSON file. Nothing in the import pipeline reads drafts.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping

from .config import DEFAULT_DRAFT_PATH

logger = logging.getLogger(__name__)


class DraftStore:
    def __init__(self, path: Path = DEFAULT_DRAFT_PATH, key: str = "default") -> None:
        self.path = Path(path)
        self.key = key

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("ignoring unreadable draft file %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    def load(self) -> Dict[str, Any]:
        draft = self._read_all().get(self.key)
        return dict(draft) if isinstance(draft, dict) else {}

    def save(self, patch: Mapping[str, Any]) -> Dict[str, Any]:
        """Merge `patch` into the stored draft and return the result."""
        data = self._read_all()
        draft = data.get(self.key) if isinstance(data.get(self.key), dict) else {}
        draft.update(patch)
        data[self.key] = draft
        self._write_all(data)
        return dict(draft)

    def clear(self) -> None:
        data = self._read_all()
        if data.pop(self.key, None) is not None:
            self._write_all(data)
