"""Tests for delimiter matching."""

import logging

import pytest

from bibdb.delimiters import (
    TextCursor,
    find_closing_paren,
    match_braces,
    match_delimiter,
    match_paren_or_brace,
    match_quotes,
    next_record_start,
    split_top_level,
)


def test_match_braces_nested() -> None:
    """Nested braces balance and the cursor lands on the outer closing brace."""
    text = "{a {b} c}"
    cursor = TextCursor(text)

    assert match_braces(cursor)
    assert cursor.pos == len(text) - 1


def test_match_braces_unbalanced_logs_once(caplog: pytest.LogCaptureFixture) -> None:
    """An unbalanced brace fails, moves one character on and logs one warning."""
    cursor = TextCursor("{a {b c}")

    with caplog.at_level(logging.WARNING, logger="bibdb.delimiters"):
        assert not match_braces(cursor)

    assert cursor.pos == 1
    assert len(caplog.records) == 1
    assert "line 1" in caplog.records[0].getMessage().lower()


def test_match_braces_reports_line_number(caplog: pytest.LogCaptureFixture) -> None:
    cursor = TextCursor("first\nsecond {open\nthird", pos=13)

    with caplog.at_level(logging.WARNING, logger="bibdb.delimiters"):
        assert not match_braces(cursor)

    assert "Line 2" in caplog.records[0].getMessage()


def test_match_quotes_skips_escaped_quote() -> None:
    """A backslash-escaped quote does not end the string."""
    text = '"a \\" b"'
    cursor = TextCursor(text)

    assert match_quotes(cursor)
    assert cursor.pos == len(text) - 1


def test_match_quotes_unterminated() -> None:
    cursor = TextCursor('"never closed')

    assert not match_quotes(cursor)
    assert cursor.pos == 1


def test_match_delimiter_dispatches() -> None:
    brace_cursor = TextCursor("{x} rest")
    quote_cursor = TextCursor('"x" rest')

    assert match_delimiter(brace_cursor)
    assert match_delimiter(quote_cursor)
    assert brace_cursor.pos == 2
    assert quote_cursor.pos == 2


def test_match_delimiter_rejects_other_characters() -> None:
    cursor = TextCursor("abc")

    assert not match_delimiter(cursor)
    assert cursor.pos == 1


def test_paren_matching_tolerates_unbalanced_parentheses() -> None:
    """Parentheses inside field text are not counted."""
    text = "@article(key,\n  title = {An (unbalanced remark}\n)\n@book{other,\n}\n"
    start = text.index("(")
    cursor = TextCursor(text, pos=start)

    assert match_paren_or_brace(cursor)
    assert text[cursor.pos] == ")"
    assert cursor.pos < text.index("@book")


def test_paren_matching_fails_without_closing_parenthesis() -> None:
    text = "@article(key,\n  title = {x}\n@book{other,\n}\n"
    assert find_closing_paren(text, text.index("(")) == -1


def test_paren_matching_respects_limit() -> None:
    text = "(abc) def)"
    assert find_closing_paren(text, 0, limit=6) == 4


def test_next_record_start() -> None:
    text = "@a{x}\nnot @here\n@b{y}"
    assert next_record_start(text, 0) == text.index("@b")
    assert next_record_start(text, text.index("@b")) == len(text)


def test_split_top_level_ignores_nested_commas() -> None:
    text = 'a = {x, y}, b = "p, q", c = 3'
    pieces = [piece.strip() for _offset, piece in split_top_level(text, ",")]

    assert pieces == ["a = {x, y}", 'b = "p, q"', "c = 3"]


def test_split_top_level_offsets() -> None:
    text = "ab,cd"
    assert split_top_level(text, ",") == [(0, "ab"), (3, "cd")]


def test_cursor_line_uses_first_line() -> None:
    cursor = TextCursor("x\ny", pos=2, first_line=10)
    assert cursor.line == 11
