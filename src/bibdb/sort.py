"""Ordering of database entries for output."""

import logging

from .config import DatabaseConfig
from .database import Database
from .types import SortLevels

logger = logging.getLogger(__name__)


def sort_by_key(keys: list[str]) -> list[str]:
    """Sort citekeys lexicographically."""
    return sorted(keys)


def sort_crossrefs_first(database: Database, keys: list[str]) -> list[str]:
    """Put entries with a non-empty ``crossref`` field before the others.

    BibTeX requires cross-referencing entries to precede the entries they
    refer to. Within each group, keys stay in lexicographic order.
    """
    ordered = sort_by_key(keys)
    return sorted(ordered, key=lambda key: not _has_crossref(database, key))


def _has_crossref(database: Database, key: str) -> bool:
    entry = database.get_entry(key)
    return entry is not None and entry.has_field("crossref")


def sort_key_for_level(database: Database, key: str, level: list[str]) -> str:
    """Return the first non-empty value among the ``level`` fields, macros expanded."""
    for field_name in level:
        resolved = database.get_field(key, field_name, expand_strings=True)
        if resolved is not None and resolved.text.strip():
            return resolved.text
    return ""


def sort_by_fields(database: Database, keys: list[str], levels: SortLevels) -> list[str]:
    """Sort keys by successive field levels, falling back to the key itself.

    Args:
        database: Database holding the entries
        keys: Keys to order
        levels: Each level lists candidate field names; the first non-empty
            one supplies the comparison string for that level

    Returns:
        The ordered keys
    """
    values = {key: [sort_key_for_level(database, key, level) for level in levels] for key in keys}
    return sorted(keys, key=lambda key: (values[key], key))


def ordered_keys(
    database: Database, config: DatabaseConfig | None = None, keys: list[str] | None = None
) -> list[str]:
    """Order keys for writing.

    Crossref-first ordering wins over field sort levels, which win over
    plain key order.

    Args:
        database: Database holding the entries
        config: Ordering settings (defaults to the database's own)
        keys: Subset of keys to order (defaults to every entry)
    """
    config = config or database.config
    keys = list(database.entries) if keys is None else list(keys)

    if config.crossref_first:
        logger.debug(f"Ordering {len(keys)} entries crossref-first")
        return sort_crossrefs_first(database, keys)
    if config.sort_keys:
        logger.debug(f"Ordering {len(keys)} entries by fields {config.sort_keys}")
        return sort_by_fields(database, keys, config.sort_keys)
    return sort_by_key(keys)
