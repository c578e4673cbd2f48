"""Canonical BibTeX text for a database."""

from __future__ import annotations

from collections.abc import Iterable

from .config import DatabaseConfig
from .database import Database
from .model import Entry
from .sort import ordered_keys


def format_preamble(preamble: str) -> str:
    return f"@PREAMBLE{{{preamble}}}\n"


def format_string(abbr: str, raw: str) -> str:
    return f"@STRING{{{abbr} = {raw}}}\n"


def format_entry(entry: Entry) -> str:
    """Render one entry with tab-indented fields and no trailing comma."""
    lines = [f"@{entry.entry_type}{{{entry.key},"]
    fields = [f"\t{name} = {value.raw_text}" for name, value in entry.fields.items()]
    if fields:
        lines.append(",\n".join(fields))
    lines.append("}")
    return "\n".join(lines) + "\n"


def iter_records(
    database: Database,
    config: DatabaseConfig | None = None,
    *,
    keys: Iterable[str] | None = None,
    strings: Iterable[str] | None = None,
    include_preamble: bool = True,
) -> Iterable[str]:
    """Yield the text of each record: preamble, strings, then ordered entries.

    Args:
        database: Database to render
        config: Ordering settings (defaults to the database's own)
        keys: Entries to include (defaults to all)
        strings: String macros to include (defaults to all, in stored order)
        include_preamble: Whether to emit the preamble
    """
    if include_preamble and database.preamble:
        yield format_preamble(database.preamble)

    wanted = None if strings is None else set(strings)
    for abbr, raw in database.strings.items():
        if wanted is None or abbr in wanted:
            yield format_string(abbr, raw)

    selected = None if keys is None else [key for key in keys if key in database.entries]
    for key in ordered_keys(database, config, selected):
        yield format_entry(database.entries[key])


def serialize(database: Database, config: DatabaseConfig | None = None) -> str:
    """Render the whole database as BibTeX text, one blank line between records."""
    return "\n".join(iter_records(database, config))
