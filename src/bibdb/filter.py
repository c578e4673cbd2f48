"""Boolean filters over entries and their textual query syntax.

A filter is a tree of :class:`And`, :class:`Or`, :class:`Not` and
:class:`Contains` nodes. It is evaluated against a mapping of field name to
field text; :meth:`bibdb.database.Database.field_texts` builds that mapping
for an entry.

Query syntax accepted by :func:`parse_filter`::

    title:deep and not (author:smith or year:"19[0-9]{2}")
    =type=:article learning

Bare patterns search every field; juxtaposed terms are joined with ``and``,
which binds tighter than ``or``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache

from .exceptions import FilterSyntaxError
from .model import TYPE_FIELD

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class And:
    left: FilterExpr
    right: FilterExpr

    def __str__(self) -> str:
        return f"{_render(self.left, And)} and {_render(self.right, And)}"


@dataclass(frozen=True, slots=True)
class Or:
    left: FilterExpr
    right: FilterExpr

    def __str__(self) -> str:
        return f"{_render(self.left, Or)} or {_render(self.right, Or)}"


@dataclass(frozen=True, slots=True)
class Not:
    expr: FilterExpr

    def __str__(self) -> str:
        return f"not {_render(self.expr, Not)}"


@dataclass(frozen=True, slots=True)
class Contains:
    """Match ``pattern`` in ``field``; ``field=None`` means any field but ``=type=``."""

    field: str | None
    pattern: str

    def __str__(self) -> str:
        pattern = self.pattern
        if not _WORD_RE.fullmatch(pattern) or ":" in pattern or pattern.lower() in _KEYWORDS:
            pattern = '"' + pattern.replace("\\", "\\\\").replace('"', '\\"') + '"'
        return pattern if self.field is None else f"{self.field}:{pattern}"


FilterExpr = And | Or | Not | Contains


def _render(expr: FilterExpr, parent: type) -> str:
    # "and" nested under "not", or "or" nested under "and"/"not", needs parentheses
    if isinstance(expr, Or) and parent is not Or:
        return f"({expr})"
    if isinstance(expr, And) and parent is Not:
        return f"({expr})"
    return str(expr)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        logger.debug(f"Filter pattern {pattern!r} is not a regular expression, matching literally")
        return re.compile(re.escape(pattern), re.IGNORECASE)


def evaluate(expr: FilterExpr, fields: Mapping[str, str]) -> bool:
    """Evaluate ``expr`` against a mapping of field name to text.

    ``fields`` should contain ``=type=`` for type filters; it is never
    searched by an any-field :class:`Contains`.
    """
    if isinstance(expr, And):
        return evaluate(expr.left, fields) and evaluate(expr.right, fields)
    if isinstance(expr, Or):
        return evaluate(expr.left, fields) or evaluate(expr.right, fields)
    if isinstance(expr, Not):
        return not evaluate(expr.expr, fields)
    if isinstance(expr, Contains):
        regex = _compile(expr.pattern)
        if expr.field is None:
            return any(
                regex.search(text) for name, text in fields.items() if name != TYPE_FIELD
            )
        text = fields.get(expr.field.lower())
        return text is not None and regex.search(text) is not None
    raise TypeError(f"Not a filter expression: {expr!r}")


def conjoin(left: FilterExpr | None, right: FilterExpr) -> FilterExpr:
    """Narrow an existing filter; ``None`` means no filter yet."""
    return right if left is None else And(left, right)


def disjoin(left: FilterExpr | None, right: FilterExpr) -> FilterExpr:
    """Widen an existing filter; ``None`` means no filter yet."""
    return right if left is None else Or(left, right)


# Query language

_KEYWORDS = {"and", "or", "not"}
_WORD_RE = re.compile(r"[^\s()\"]+")
_TOKEN_RE = re.compile(
    r"""
    (?P<space>\s+)
  | (?P<paren>[()])
  | (?P<quoted>"(?:[^"\\]|\\.)*")
  | (?P<word>[^\s()"]+)
    """,
    re.VERBOSE,
)
_FIELD_TERM_RE = re.compile(r"(?P<field>=type=|[^\s():\"=]+):(?P<rest>.*)", re.DOTALL)


def _unquote(quoted: str) -> str:
    return re.sub(r'\\([\\"])', r"\1", quoted[1:-1])


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise FilterSyntaxError(f"Unterminated quote at position {pos} in {text!r}")
        kind = match.lastgroup or ""
        value = match.group(0)
        pos = match.end()
        if kind == "space":
            continue
        if kind == "word" and value.lower() in _KEYWORDS:
            kind = value.lower()
        elif kind == "word" and value.endswith(":") and text[pos : pos + 1] == '"':
            # field:"quoted pattern"
            quoted = _TOKEN_RE.match(text, pos)
            if quoted is None or quoted.lastgroup != "quoted":
                raise FilterSyntaxError(f"Unterminated quote at position {pos} in {text!r}")
            tokens.append(("term", value + quoted.group(0)))
            pos = quoted.end()
            continue
        elif kind in ("word", "quoted"):
            kind = "term"
        tokens.append((kind, value))
    return tokens


class _QueryParser:
    """Recursive-descent parser over the token list."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = _tokenize(text)
        self.index = 0

    def peek(self) -> str | None:
        if self.index < len(self.tokens):
            return self.tokens[self.index][0]
        return None

    def take(self) -> tuple[str, str]:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def parse(self) -> FilterExpr:
        if not self.tokens:
            raise FilterSyntaxError("Empty filter query")
        expr = self.parse_or()
        if self.peek() is not None:
            raise FilterSyntaxError(f"Unexpected {self.tokens[self.index][1]!r} in {self.text!r}")
        return expr

    def parse_or(self) -> FilterExpr:
        expr = self.parse_and()
        while self.peek() == "or":
            self.take()
            expr = Or(expr, self.parse_and())
        return expr

    def parse_and(self) -> FilterExpr:
        expr = self.parse_not()
        while self.peek() in ("and", "not", "term", "paren") and not self._at_close():
            if self.peek() == "and":
                self.take()
            expr = And(expr, self.parse_not())
        return expr

    def _at_close(self) -> bool:
        return self.peek() == "paren" and self.tokens[self.index][1] == ")"

    def parse_not(self) -> FilterExpr:
        if self.peek() == "not":
            self.take()
            return Not(self.parse_not())
        return self.parse_atom()

    def parse_atom(self) -> FilterExpr:
        kind = self.peek()
        if kind is None:
            raise FilterSyntaxError(f"Unexpected end of filter query {self.text!r}")
        _, value = self.take()
        if kind == "paren" and value == "(":
            expr = self.parse_or()
            if not self._at_close():
                raise FilterSyntaxError(f"Missing ')' in {self.text!r}")
            self.take()
            return expr
        if kind != "term":
            raise FilterSyntaxError(f"Unexpected {value!r} in {self.text!r}")
        return _term(value)


def _term(value: str) -> Contains:
    if value.startswith('"'):
        return Contains(None, _unquote(value))
    match = _FIELD_TERM_RE.fullmatch(value)
    if match is None:
        return Contains(None, value)
    pattern = match.group("rest")
    if pattern.startswith('"'):
        pattern = _unquote(pattern)
    if not pattern:
        raise FilterSyntaxError(f"Missing pattern after {match.group('field')!r}")
    return Contains(match.group("field").lower(), pattern)


def parse_filter(text: str) -> FilterExpr:
    """Parse query text into a filter expression.

    Raises:
        FilterSyntaxError: If the text is empty or malformed
    """
    return _QueryParser(text).parse()
