"""Error taxonomy for the import pipeline.
Author: Sunil Paudel
"""

from __future__ import annotations

from typing import Any, Optional


class ImportPipelineError(Exception):
    """Base class for every error raised by the pipeline."""


class ImportFormatError(ImportPipelineError):
    """Raw text could not be tokenized. Blocks the import entirely."""


class TabSeparatedInputError(ImportFormatError):
    def __init__(self) -> None:
        super().__init__("It looks like you pasted tab-separated data. Please paste CSV (comma-separated).")


class UnterminatedQuoteError(ImportFormatError):
    def __init__(self, line: int) -> None:
        self.line = line
        super().__init__(f"Unterminated quoted field starting on line {line}.")


class NoValidRowsError(ImportPipelineError):
    """Validation left nothing to import."""


class StoreError(ImportPipelineError):
    """A record store primitive failed. Message reads '<table> <operation>: <detail>'."""

    def __init__(self, table: str, operation: str, detail: str) -> None:
        self.table = table
        self.operation = operation
        self.detail = detail
        super().__init__(f"{table} {operation}: {detail}")


class ReconcileError(ImportPipelineError):
    def __init__(self, phase: str, message: str, summary: Optional[Any] = None) -> None:
        self.phase = phase
        self.summary = summary
        super().__init__(f"{phase} phase failed: {message}")


class StorageError(ImportPipelineError):
    """Blob storage download/upload failed."""


class BlobNotFoundError(StorageError):
    pass
