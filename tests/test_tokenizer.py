from __future__ import annotations

from importlib import import_module

import pytest


@pytest.fixture(scope="module")
def tokenizer_module():
    try:
        return import_module("rto_import.tokenizer")
    except ModuleNotFoundError as exc:
        pytest.skip(f"Missing tokenizer module: {exc}")


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def test_tokenizer_contract(tokenizer_module) -> None:
    assert hasattr(tokenizer_module, "tokenize"), "Expected rto_import.tokenizer.tokenize(text)"
    assert hasattr(tokenizer_module, "parse_csv")


@pytest.mark.parametrize(
    "value",
    [
        'plain',
        'comma, inside',
        'say "hello"',
        'line one\nline two',
        'crlf\r\ninside, and "quotes"',
        '""',
    ],
)
def test_quoted_field_survives_tokenizing(tokenizer_module, value) -> None:
    text = f"{_quote(value)},next\n"
    assert tokenizer_module.tokenize(text) == [[value, "next"]]


def test_record_separators_and_blank_lines(tokenizer_module) -> None:
    text = "a,b\r\nc,d\re,f\n\n , \ng,h"
    assert tokenizer_module.tokenize(text) == [["a", "b"], ["c", "d"], ["e", "f"], ["g", "h"]]


def test_trailing_empty_cell_is_kept(tokenizer_module) -> None:
    assert tokenizer_module.tokenize("a,b,\n") == [["a", "b", ""]]


def test_literal_quote_inside_unquoted_field(tokenizer_module) -> None:
    assert tokenizer_module.tokenize('12" screen,x') == [['12" screen', "x"]]


def test_empty_input_yields_empty_matrix(tokenizer_module) -> None:
    assert tokenizer_module.tokenize("") == []
    assert tokenizer_module.tokenize("  \n\n") == []


def test_tab_separated_paste_is_rejected(tokenizer_module, import_files) -> None:
    errors = import_module("rto_import.errors")
    with pytest.raises(errors.TabSeparatedInputError) as exc_info:
        tokenizer_module.tokenize(import_files["tab_pasted.txt"])
    assert "tab-separated" in str(exc_info.value)
    assert isinstance(exc_info.value, errors.ImportFormatError)


def test_tab_inside_csv_is_not_rejected(tokenizer_module) -> None:
    assert tokenizer_module.tokenize("a\tb,c\n") == [["a\tb", "c"]]


@pytest.mark.parametrize(
    "text",
    [
        "qualification_code\tqualification_name\nBSB30120\tCert III, Business\n",
        "Code\tName, long\tType\nBSBWHS311\tWHS, safety\tCore\n",
        "\n\nunit_code\tunit_name\tunit_type\n",
    ],
)
def test_tab_paste_with_commas_in_cells_is_rejected(tokenizer_module, text) -> None:
    errors = import_module("rto_import.errors")
    with pytest.raises(errors.TabSeparatedInputError):
        tokenizer_module.tokenize(text)


def test_quoted_commas_do_not_count_against_tabs(tokenizer_module) -> None:
    assert tokenizer_module.looks_tab_separated('a\t"b, c, d"\n') is True
    assert tokenizer_module.looks_tab_separated('"a\tb\tc",d\n') is False


def test_unterminated_quote_reports_start_line(tokenizer_module) -> None:
    errors = import_module("rto_import.errors")
    with pytest.raises(errors.UnterminatedQuoteError) as exc_info:
        tokenizer_module.tokenize('a,b\nc,"never\nclosed')
    assert exc_info.value.line == 2
