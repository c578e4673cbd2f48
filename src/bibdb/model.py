"""Records held by a database: entries and their field values."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

from .delimiters import find_closing_delimiter, split_top_level

TYPE_FIELD = "=type="

BARE_TOKEN_RE = re.compile(r"[^\s\"#%'(),={}]+")


def is_delimited(raw: str) -> bool:
    """Return ``True`` if ``raw`` is one ``{...}`` or ``"..."`` literal spanning the whole text."""
    if len(raw) < 2 or raw[0] not in '{"':
        return False
    return find_closing_delimiter(raw, 0) == len(raw) - 1


def unbrace(raw: str) -> str:
    """Strip the outer delimiters of a braced value; other values are returned unchanged."""
    if is_delimited(raw):
        return raw[1:-1]
    return raw


def brace(text: str) -> str:
    """Wrap ``text`` in braces unless it is already a single delimited literal."""
    if is_delimited(text):
        return text
    return "{" + text + "}"


def concatenation_pieces(raw: str) -> list[str]:
    """Split a ``#``-joined value into its stripped pieces."""
    return [piece.strip() for _offset, piece in split_top_level(raw, "#")]


def is_valid_value(raw: str) -> bool:
    """Check that ``raw`` is a literal, a bare token, or a concatenation of those."""
    pieces = concatenation_pieces(raw)
    for piece in pieces:
        if not piece:
            return False
        if piece[0] in '{"':
            if not is_delimited(piece):
                return False
        elif not BARE_TOKEN_RE.fullmatch(piece):
            return False
    return True


def expand_value(raw: str, strings: Mapping[str, str], _seen: frozenset[str] = frozenset()) -> str:
    """Resolve a raw value against a macro table, removing delimiters.

    Macro names are looked up exactly, then case-insensitively. Unknown
    macros and self-referencing macros are left as their name.
    """
    parts: list[str] = []
    for piece in concatenation_pieces(raw):
        if is_delimited(piece):
            parts.append(piece[1:-1])
        elif piece.isdigit():
            parts.append(piece)
        else:
            name = _lookup_macro(piece, strings)
            if name is None or name in _seen:
                parts.append(piece)
            else:
                parts.append(expand_value(strings[name], strings, _seen | {name}))
    return "".join(parts)


def _lookup_macro(name: str, strings: Mapping[str, str]) -> str | None:
    if name in strings:
        return name
    folded = name.lower()
    for candidate in strings:
        if candidate.lower() == folded:
            return candidate
    return None


@dataclass(frozen=True, slots=True)
class FieldValue:
    """A field value as written in the file.

    ``raw_text`` keeps the original delimiters; ``braced`` tells whether the
    value is one ``{}``/``""`` literal, as opposed to a bare number, a macro
    reference or a concatenation.
    """

    raw_text: str
    braced: bool

    @classmethod
    def from_raw(cls, raw: str) -> FieldValue:
        raw = raw.strip()
        return cls(raw, is_delimited(raw))

    @classmethod
    def literal(cls, text: str) -> FieldValue:
        """Build a braced value holding ``text``."""
        return cls("{" + text + "}", True)

    @property
    def text(self) -> str:
        """The value without its outer delimiters."""
        return self.raw_text[1:-1] if self.braced else self.raw_text

    @property
    def is_multiline(self) -> bool:
        return "\n" in self.text

    def expand(self, strings: Mapping[str, str]) -> str:
        return expand_value(self.raw_text, strings)

    def __str__(self) -> str:
        return self.raw_text


@dataclass
class Entry:
    """One bibliographic record."""

    key: str
    entry_type: str
    fields: dict[str, FieldValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.entry_type = self.entry_type.lower()

    def get(self, name: str) -> FieldValue | None:
        if name == TYPE_FIELD:
            return FieldValue(self.entry_type, False)
        return self.fields.get(name.lower())

    def has_field(self, name: str) -> bool:
        value = self.fields.get(name.lower())
        return value is not None and bool(value.text.strip())

    def copy(self, key: str | None = None) -> Entry:
        return Entry(key if key is not None else self.key, self.entry_type, dict(self.fields))
