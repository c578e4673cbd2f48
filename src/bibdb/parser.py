"""Reading BibTeX text into a :class:`~bibdb.database.Database`.

The reader is deliberately forgiving: a record that cannot be read is
logged and skipped, and reading resumes at the next ``@`` found at the
start of a line.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .database import Database
from .delimiters import (
    TextCursor,
    find_closing_brace,
    find_closing_paren,
    next_record_start,
    split_top_level,
)
from .model import TYPE_FIELD, FieldValue, is_valid_value
from .types import DuplicatePolicy, Severity

logger = logging.getLogger(__name__)

# Characters BibTeX allows in entry types and field names
IDENTIFIER_RE = re.compile(r"[^\"@\\&$#%',={}() \t\r\n\f]+")
# Entry keys additionally exclude brackets and carets but may contain parentheses
KEY_RE = re.compile(r"[^\[\]^\"@\\&$#%',={} \t\r\n\f]+")

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True, slots=True)
class ParseIssue:
    """A problem met while reading one record."""

    line: int
    severity: Severity
    message: str

    def __str__(self) -> str:
        return f"line {self.line}: {self.message}"


@dataclass(slots=True)
class LoadSummary:
    """What a read stored, and the worst problem it met."""

    entries: int = 0
    strings: int = 0
    preamble: bool = False
    issues: list[ParseIssue] = field(default_factory=list)

    @property
    def worst_severity(self) -> Severity:
        return max((issue.severity for issue in self.issues), default=Severity.NONE)

    def as_tuple(self) -> tuple[int, int, bool]:
        return self.entries, self.strings, self.preamble

    def merge(self, other: LoadSummary) -> None:
        self.entries += other.entries
        self.strings += other.strings
        self.preamble = self.preamble or other.preamble
        self.issues.extend(other.issues)


class BibtexReader:
    """Populate a database from BibTeX text.

    Args:
        database: Target database
        policy: Duplicate-key policy for entries
        timestamp: Stamp stored entries with the configured timestamp field
    """

    def __init__(
        self,
        database: Database,
        policy: DuplicatePolicy = DuplicatePolicy.REJECT,
        *,
        timestamp: bool = False,
    ) -> None:
        self.database = database
        self.policy = policy
        self.timestamp = timestamp
        self.summary = LoadSummary()

    def _issue(self, line: int, severity: Severity, message: str) -> None:
        self.summary.issues.append(ParseIssue(line, severity, message))
        logger.log(_LOG_LEVELS[severity], f"{self.database.name}, line {line}: {message}")

    def read(self, text: str) -> LoadSummary:
        """Read every record of ``text`` into the database."""
        cursor = TextCursor(text)
        while True:
            start = _find_record_start(text, cursor.pos)
            if start == -1:
                break
            cursor.pos = start
            self._read_record(cursor)
        return self.summary

    def _read_record(self, cursor: TextCursor) -> None:
        text = cursor.text
        line = cursor.line
        cursor.pos += 1  # past "@"
        cursor.skip_whitespace()

        match = IDENTIFIER_RE.match(text, cursor.pos)
        if match is None:
            self._issue(line, Severity.ERROR, "expected an entry type after '@'")
            return
        record_type = match.group(0).lower()
        cursor.pos = match.end()
        cursor.skip_whitespace()

        if cursor.char not in "{(" or cursor.at_end():
            if record_type == "comment":
                self._issue(line, Severity.INFO, "skipped @comment")
                return
            self._issue(line, Severity.ERROR, f"expected '{{' or '(' after @{match.group(0)}")
            return

        open_pos = cursor.pos
        limit = next_record_start(text, open_pos)
        if cursor.char == "(":
            close_pos = find_closing_paren(text, open_pos, limit)
        else:
            close_pos = find_closing_brace(text, open_pos, limit)
        if close_pos == -1:
            cursor.pos = open_pos + 1
            self._issue(line, Severity.WARNING, f"unterminated @{record_type} record skipped")
            return
        cursor.pos = close_pos + 1
        body = text[open_pos + 1 : close_pos]
        body_line = line + text.count("\n", match.start(), open_pos + 1)

        if record_type == "comment":
            self._issue(line, Severity.INFO, "skipped @comment")
        elif record_type == "string":
            self._read_string(body, body_line)
        elif record_type == "preamble":
            self.database.set_preamble(body.strip(), append=True)
            self.summary.preamble = True
        elif self.database.config.is_known_type(record_type):
            self._read_entry(record_type, body, body_line)
        else:
            self._issue(line, Severity.WARNING, f"unknown entry type @{record_type}, skipped")

    def _read_string(self, body: str, line: int) -> None:
        pair = _parse_pair(body)
        if pair is None:
            self._issue(line, Severity.WARNING, "malformed @string definition skipped")
            return
        abbr, value = pair
        if not self.database.set_string(abbr, value.raw_text, overwrite=False):
            self._issue(
                line, Severity.WARNING, f"duplicate @string {abbr}, keeping first definition"
            )
            return
        self.summary.strings += 1

    def _read_entry(self, entry_type: str, body: str, line: int) -> None:
        key_match = KEY_RE.match(body, len(body) - len(body.lstrip()))
        if key_match is None:
            self._issue(line, Severity.ERROR, f"@{entry_type} without a key skipped")
            return
        key = key_match.group(0)

        rest = body[key_match.end() :]
        stripped = rest.lstrip()
        if stripped and not stripped.startswith(","):
            self._issue(line, Severity.ERROR, f"expected ',' after key {key}, entry skipped")
            return

        fields: dict[str, FieldValue | str] = {TYPE_FIELD: entry_type}
        comma_at = key_match.end() + len(rest) - len(stripped)
        for offset, chunk in split_top_level(body[comma_at + 1 :], ","):
            if not chunk.strip():
                continue
            chunk_line = line + body.count("\n", 0, comma_at + 1 + offset)
            chunk_line += chunk.count("\n", 0, len(chunk) - len(chunk.lstrip()))
            pair = _parse_pair(chunk)
            if pair is None:
                message = f"malformed field in {key} skipped: {chunk.strip()!r}"
                self._issue(chunk_line, Severity.WARNING, message)
                continue
            name, value = pair
            if name in fields:
                message = f"duplicate field {name} in {key}, keeping first value"
                self._issue(chunk_line, Severity.WARNING, message)
                continue
            fields[name] = value

        stored = self.database.set_entry(key, fields, self.policy, timestamp=self.timestamp)
        if stored is None:
            self._issue(line, Severity.WARNING, f"duplicate key {key}, entry skipped")
            return
        if stored != key:
            self._issue(line, Severity.WARNING, f"duplicate key {key} stored as {stored}")
        self.summary.entries += 1


def _find_record_start(text: str, pos: int) -> int:
    if pos == 0 and text.startswith("@"):
        return 0
    return text.find("\n@", max(pos - 1, 0)) + 1 or -1


def _parse_pair(chunk: str) -> tuple[str, FieldValue] | None:
    """Parse ``name = value``; the name is lowercased, the value kept raw."""
    name, sep, value = chunk.partition("=")
    name = name.strip()
    value = value.strip()
    if not sep or not value or not IDENTIFIER_RE.fullmatch(name):
        return None
    if not is_valid_value(value):
        return None
    return name.lower(), FieldValue.from_raw(value)


def parse_text(
    text: str,
    database: Database,
    policy: DuplicatePolicy = DuplicatePolicy.REJECT,
    *,
    timestamp: bool = False,
) -> LoadSummary:
    """Read BibTeX ``text`` into ``database`` and summarize what was stored."""
    return BibtexReader(database, policy, timestamp=timestamp).read(text)
