"""CSV tokenizer for pasted spreadsheet text.
Author: Sunil Paudel

Handles quoted fields (embedded commas/newlines, doubled quotes) and
CR, LF or CRLF record separators. Blank records are dropped.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

from .errors import TabSeparatedInputError, UnterminatedQuoteError

logger = logging.getLogger(__name__)

QUOTE = '"'
DELIMITER = ","
# leading non-blank lines inspected by the tab guard
SNIFF_LINES = 5


def _content_lines(text: str, limit: int) -> List[str]:
    lines = [line for line in text.replace("\r\n", "\n").replace("\r", "\n").split("\n") if line.strip()]
    return lines[:limit]


def _unquoted_counts(line: str) -> Tuple[int, int]:
    tabs = commas = 0
    in_quotes = False
    for ch in line:
        if ch == QUOTE:
            in_quotes = not in_quotes
        elif not in_quotes and ch == "\t":
            tabs += 1
        elif not in_quotes and ch == DELIMITER:
            commas += 1
    return tabs, commas


def looks_tab_separated(text: str) -> bool:
    """Clipboard data from spreadsheet tools arrives tab-delimited by default.

    Tabs are weighed against commas outside quotes over the first few lines,
    so a comma inside a cell such as "Cert III, Business" does not hide a tab paste.
    """
    tabs = commas = 0
    for line in _content_lines(text, SNIFF_LINES):
        t, c = _unquoted_counts(line)
        tabs += t
        commas += c
    return tabs > commas


def parse_csv(text: str) -> List[List[str]]:
    rows: List[List[str]] = []
    row: List[str] = []
    field: List[str] = []
    in_quotes = False
    at_field_start = True
    line = 1
    quote_line = 1
    i = 0
    n = len(text)

    def end_field() -> None:
        row.append("".join(field))
        field.clear()

    def end_row() -> None:
        nonlocal row
        rows.append(row)
        row = []

    while i < n:
        ch = text[i]

        if in_quotes:
            if ch == QUOTE:
                if i + 1 < n and text[i + 1] == QUOTE:
                    field.append(QUOTE)
                    i += 2
                    continue
                in_quotes = False
                i += 1
                continue
            if ch == "\n" or (ch == "\r" and not (i + 1 < n and text[i + 1] == "\n")):
                line += 1
            field.append(ch)
            i += 1
            continue

        if ch == QUOTE and at_field_start:
            # leading blanks before an opening quote are not content
            field.clear()
            in_quotes = True
            at_field_start = False
            quote_line = line
            i += 1
            continue
        if ch == DELIMITER:
            end_field()
            at_field_start = True
            i += 1
            continue
        if ch == "\r" or ch == "\n":
            if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
                i += 1
            end_field()
            end_row()
            at_field_start = True
            line += 1
            i += 1
            continue

        # a quote after field content is kept literally (e.g. 12" screen)
        field.append(ch)
        if at_field_start and not ch.isspace():
            at_field_start = False
        i += 1

    if in_quotes:
        raise UnterminatedQuoteError(quote_line)

    if field or row:
        end_field()
        end_row()

    return [r for r in rows if any(c.strip() for c in r)]


def tokenize(text: str) -> List[List[str]]:
    """Turn raw pasted/uploaded text into a matrix of string cells.

    Raises TabSeparatedInputError for tab-delimited clipboard data and
    UnterminatedQuoteError for a quoted field that never closes.
    """
    if not text or not text.strip():
        return []
    if looks_tab_separated(text):
        raise TabSeparatedInputError()
    matrix = parse_csv(text)
    logger.debug("tokenized %d record(s)", len(matrix))
    return matrix
