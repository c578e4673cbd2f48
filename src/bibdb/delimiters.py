"""Matching of BibTeX delimiters: braces, quotes and parentheses.

The ``find_*`` functions are pure scanners returning the index of the
closing delimiter (or ``-1``). The ``match_*`` functions operate on a
:class:`TextCursor`, move it onto the closing delimiter on success and, on
failure, move it one character forward so the caller can resynchronize and
log a warning carrying the line number.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

# A record boundary is an "@" at the beginning of a line
RECORD_START_RE = re.compile(r"^@", re.MULTILINE)


class TextCursor:
    """A position inside a text buffer.

    ``first_line`` is the line number of ``text[0]`` in the original file,
    so cursors over substrings still report file line numbers.
    """

    __slots__ = ("text", "pos", "first_line")

    def __init__(self, text: str, pos: int = 0, first_line: int = 1) -> None:
        self.text = text
        self.pos = pos
        self.first_line = first_line

    @property
    def line(self) -> int:
        return self.first_line + self.text.count("\n", 0, self.pos)

    @property
    def char(self) -> str:
        if self.pos >= len(self.text):
            return ""
        return self.text[self.pos]

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def skip_whitespace(self) -> None:
        text = self.text
        while self.pos < len(text) and text[self.pos].isspace():
            self.pos += 1

    def __repr__(self) -> str:
        return f"TextCursor(pos={self.pos}, line={self.line})"


def _bound(text: str, limit: int | None) -> int:
    if limit is None or limit > len(text):
        return len(text)
    return limit


def next_record_start(text: str, pos: int, limit: int | None = None) -> int:
    """Return the index of the next line-initial ``@`` after ``pos``, or the bound."""
    end = _bound(text, limit)
    match = RECORD_START_RE.search(text, pos + 1, end)
    return match.start() if match else end


def find_closing_brace(text: str, start: int, limit: int | None = None) -> int:
    """Find the brace closing the one at ``text[start]``, honouring nesting."""
    end = _bound(text, limit)
    depth = 0
    for index in range(start, end):
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


def find_closing_quote(text: str, start: int, limit: int | None = None) -> int:
    """Find the double quote closing the one at ``text[start]``.

    A quote preceded by a backslash does not terminate the string.
    """
    end = _bound(text, limit)
    index = start + 1
    while index < end:
        index = text.find('"', index, end)
        if index == -1:
            return -1
        if text[index - 1] != "\\":
            return index
        index += 1
    return -1


def find_closing_paren(text: str, start: int, limit: int | None = None) -> int:
    """Find the parenthesis closing a ``@type(...)`` record opened at ``text[start]``.

    Field text may contain unbalanced parentheses, so nesting is not counted:
    the record is taken to end at the last ``)`` before the next line-initial
    ``@`` (or the bound).
    """
    boundary = next_record_start(text, start, limit)
    return text.rfind(")", start + 1, boundary)


def find_closing_delimiter(text: str, start: int, limit: int | None = None) -> int:
    """Dispatch on ``text[start]``: braces or quotes."""
    opener = text[start] if start < len(text) else ""
    if opener == "{":
        return find_closing_brace(text, start, limit)
    if opener == '"':
        return find_closing_quote(text, start, limit)
    return -1


def _report(cursor: TextCursor, found: int, what: str) -> bool:
    if found == -1:
        logger.warning(f"Line {cursor.line}: unmatched {what}")
        cursor.pos += 1
        return False
    cursor.pos = found
    return True


def match_braces(cursor: TextCursor, limit: int | None = None) -> bool:
    """Move ``cursor`` from an opening brace onto its closing brace."""
    return _report(cursor, find_closing_brace(cursor.text, cursor.pos, limit), "brace")


def match_quotes(cursor: TextCursor, limit: int | None = None) -> bool:
    """Move ``cursor`` from an opening quote onto its closing quote."""
    return _report(cursor, find_closing_quote(cursor.text, cursor.pos, limit), "quote")


def match_parens(cursor: TextCursor, limit: int | None = None) -> bool:
    """Move ``cursor`` from an opening parenthesis onto the record's closing one."""
    return _report(cursor, find_closing_paren(cursor.text, cursor.pos, limit), "parenthesis")


def match_delimiter(cursor: TextCursor, limit: int | None = None) -> bool:
    """Match a brace- or quote-delimited value, depending on the character under the cursor."""
    if cursor.char == "{":
        return match_braces(cursor, limit)
    if cursor.char == '"':
        return match_quotes(cursor, limit)
    return _report(cursor, -1, "delimiter")


def match_paren_or_brace(cursor: TextCursor, limit: int | None = None) -> bool:
    """Match the delimiter enclosing a whole record: ``{...}`` or ``(...)``."""
    if cursor.char == "(":
        return match_parens(cursor, limit)
    if cursor.char == "{":
        return match_braces(cursor, limit)
    return _report(cursor, -1, "record delimiter")


def split_top_level(text: str, separator: str) -> list[tuple[int, str]]:
    """Split ``text`` at ``separator`` characters outside braces and quotes.

    Returns ``(offset, piece)`` pairs; offsets point into ``text``.
    """
    pieces: list[tuple[int, str]] = []
    depth = 0
    in_quotes = False
    piece_start = 0
    for index, char in enumerate(text):
        if char == "{":
            depth += 1
        elif char == "}":
            depth = max(depth - 1, 0)
        elif char == '"' and depth == 0 and (index == 0 or text[index - 1] != "\\"):
            in_quotes = not in_quotes
        elif char == separator and depth == 0 and not in_quotes:
            pieces.append((piece_start, text[piece_start:index]))
            piece_start = index + 1
    pieces.append((piece_start, text[piece_start:]))
    return pieces
