"""Exchange of databases with ``bibtexparser`` libraries.

Values cross the boundary raw, with their delimiters, so libraries are
parsed and written with an empty middleware stack.
"""

from __future__ import annotations

import logging

import bibtexparser
from bibtexparser.library import Library
from bibtexparser.model import Entry as BtpEntry
from bibtexparser.model import Field, Preamble, String

from .database import Database
from .model import TYPE_FIELD, FieldValue, is_valid_value
from .parser import LoadSummary
from .serialize import serialize
from .types import DuplicatePolicy

logger = logging.getLogger(__name__)


def to_library(database: Database) -> Library:
    """Build a ``bibtexparser`` library holding the database's records."""
    blocks: list = []
    if database.preamble:
        blocks.append(Preamble(database.preamble))
    for abbr, raw in database.strings.items():
        blocks.append(String(abbr, raw))
    for entry in database.entries.values():
        fields = [Field(name, value.raw_text) for name, value in entry.fields.items()]
        blocks.append(BtpEntry(entry.entry_type, entry.key, fields))
    return Library(blocks)


def import_library(
    database: Database,
    library: Library,
    policy: DuplicatePolicy = DuplicatePolicy.REJECT,
) -> LoadSummary:
    """Store the records of a library parsed without middlewares.

    Entries of types missing from the configured type table are skipped,
    as are fields whose raw value is not valid BibTeX.
    """
    summary = LoadSummary()

    for preamble in library.preambles:
        database.set_preamble(str(preamble.value).strip(), append=True)
        summary.preamble = True

    for string in library.strings:
        if database.set_string(string.key, str(string.value), overwrite=False):
            summary.strings += 1
        else:
            logger.warning(f"Duplicate @string {string.key}, keeping first definition")

    for entry in library.entries:
        entry_type = entry.entry_type.lower()
        if not database.config.is_known_type(entry_type):
            logger.warning(f"Unknown entry type @{entry_type} for {entry.key}, skipped")
            continue

        fields: dict[str, FieldValue | str] = {TYPE_FIELD: entry_type}
        for field in entry.fields:
            raw = str(field.value).strip()
            if not is_valid_value(raw):
                logger.warning(f"Invalid value for {field.key} in {entry.key}, skipped")
                continue
            fields.setdefault(field.key.lower(), FieldValue.from_raw(raw))

        stored = database.set_entry(entry.key, fields, policy, timestamp=True)
        if stored is None:
            logger.warning(f"Duplicate key {entry.key}, entry skipped")
            continue
        summary.entries += 1

    if library.failed_blocks:
        logger.warning(f"{len(library.failed_blocks)} blocks could not be parsed by bibtexparser")
    return summary


def parse_library(text: str) -> Library:
    """Parse BibTeX text with ``bibtexparser``, keeping values raw."""
    return bibtexparser.parse_string(text, parse_stack=[])


def verify_serialization(database: Database) -> list[str]:
    """Check that ``bibtexparser`` reads the serialized database back unchanged.

    Returns:
        Human-readable descriptions of every difference; empty if none
    """
    library = parse_library(serialize(database))
    problems: list[str] = []

    for block in library.failed_blocks:
        problems.append(f"bibtexparser failed to parse block at line {block.start_line}")

    parsed = {entry.key: entry for entry in library.entries}
    for key, entry in database.entries.items():
        other = parsed.get(key)
        if other is None:
            problems.append(f"{key}: missing after serialization")
            continue
        if other.entry_type.lower() != entry.entry_type:
            problems.append(f"{key}: type {entry.entry_type} read back as {other.entry_type}")
        other_fields = {field.key.lower(): str(field.value).strip() for field in other.fields}
        for name, value in entry.fields.items():
            if other_fields.get(name) != value.raw_text:
                problems.append(f"{key}: field {name} does not survive serialization")

    for key in parsed.keys() - database.entries.keys():
        problems.append(f"{key}: unexpected entry after serialization")

    parsed_strings = {string.key for string in library.strings}
    for abbr in database.strings.keys() - parsed_strings:
        problems.append(f"@string {abbr}: missing after serialization")

    for problem in problems:
        logger.warning(problem)
    return problems
