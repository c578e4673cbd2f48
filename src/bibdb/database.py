"""In-memory store for one BibTeX file."""

from __future__ import annotations

import bisect
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import NamedTuple

from .config import DatabaseConfig
from .exceptions import InvalidDataError
from .filter import FilterExpr, evaluate
from .model import TYPE_FIELD, Entry, FieldValue, concatenation_pieces, unbrace
from .types import DuplicatePolicy
from .uniquify import uniquify_key

logger = logging.getLogger(__name__)

FieldInput = FieldValue | str


class ResolvedField(NamedTuple):
    """A field value as seen by a reader of the database.

    ``inherited_from`` names the cross-referenced entry the value came from,
    or is ``None`` when the entry holds the field itself.
    """

    text: str
    value: FieldValue
    inherited_from: str | None = None


def _as_field_value(value: FieldInput) -> FieldValue:
    if isinstance(value, FieldValue):
        return value
    return FieldValue.from_raw(value)


class Database:
    """Entries, string macros, preamble and view state of one ``.bib`` file.

    Mutations of content (entries, fields, strings, preamble) set
    ``modified``. Marks, filter and current key are view state and do not.
    """

    def __init__(self, file_path: Path | None = None, config: DatabaseConfig | None = None):
        self.file_path = file_path
        self.config = config if config is not None else DatabaseConfig()
        self.entries: dict[str, Entry] = {}
        self.strings: dict[str, str] = {}
        self.preamble: str | None = None
        self.filter: FilterExpr | None = None
        self.marked: set[str] = set()
        self.current_key: str | None = None
        self.modified = False
        self.needs_backup = True
        self._filtered_keys: list[str] = []

    def __repr__(self) -> str:
        return f"Database({self.file_path!s}, entries={len(self.entries)})"

    @property
    def name(self) -> str:
        return self.file_path.name if self.file_path else "<unsaved>"

    # Entries

    def has_key(self, key: str) -> bool:
        return key in self.entries

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def get_entry(self, key: str) -> Entry | None:
        return self.entries.get(key)

    def set_entry(
        self,
        key: str,
        fields: Mapping[str, FieldInput] | Entry,
        policy: DuplicatePolicy = DuplicatePolicy.REJECT,
        *,
        timestamp: bool = False,
    ) -> str | None:
        """Store an entry under ``key``.

        Args:
            key: Entry key
            fields: Field mapping containing ``=type=``, or an :class:`Entry`
                whose key is ignored
            policy: What to do if ``key`` is taken
            timestamp: Add the configured timestamp field if timestamps are enabled

        Returns:
            The key the entry was stored under, or ``None`` if it was rejected

        Raises:
            InvalidDataError: If no entry type is given
        """
        entry = self._build_entry(key, fields)

        if key in self.entries:
            if policy is DuplicatePolicy.REJECT:
                return None
            if policy is DuplicatePolicy.UNIQUIFY:
                entry.key = uniquify_key(key, self.entries)
                logger.debug(f"Key {key} exists, storing entry as {entry.key}")

        if timestamp:
            self._add_timestamp(entry)

        self.entries[entry.key] = entry
        self.modified = True
        if self.filter is not None:
            self._refresh_key(entry.key)
        return entry.key

    def _build_entry(self, key: str, fields: Mapping[str, FieldInput] | Entry) -> Entry:
        if not key:
            raise InvalidDataError("Entry key must not be empty")
        if isinstance(fields, Entry):
            return fields.copy(key)

        entry_type = fields.get(TYPE_FIELD)
        if entry_type is None:
            raise InvalidDataError(f"Entry {key} has no {TYPE_FIELD} field")
        type_name = entry_type.raw_text if isinstance(entry_type, FieldValue) else entry_type
        entry = Entry(key, unbrace(type_name.strip()))
        for name, value in fields.items():
            if name == TYPE_FIELD:
                continue
            entry.fields[name.lower()] = _as_field_value(value)
        return entry

    def _add_timestamp(self, entry: Entry) -> None:
        config = self.config
        if config.use_timestamp and config.timestamp_field not in entry.fields:
            entry.fields[config.timestamp_field] = FieldValue.literal(config.format_timestamp())

    def remove_entry(self, key: str) -> bool:
        """Delete an entry; the current key moves to the next visible entry."""
        if key not in self.entries:
            logger.warning(f"Cannot remove {key}: no such entry in {self.name}")
            return False

        visible = self.list_keys()
        del self.entries[key]
        self.marked.discard(key)
        if self.filter is not None:
            self._refresh_key(key)

        if self.current_key == key:
            index = visible.index(key) if key in visible else -1
            remaining = [k for k in visible if k != key]
            if not remaining:
                self.current_key = None
            else:
                self.current_key = remaining[min(max(index, 0), len(remaining) - 1)]

        self.modified = True
        return True

    def change_key(self, old: str, new: str) -> bool:
        """Rename an entry, keeping its mark and the current-key pointer."""
        if old not in self.entries:
            logger.warning(f"Cannot rename {old}: no such entry in {self.name}")
            return False
        if new in self.entries:
            logger.warning(f"Cannot rename {old} to {new}: key already exists")
            return False
        if not new:
            raise InvalidDataError("Entry key must not be empty")

        entry = self.entries.pop(old)
        entry.key = new
        self.entries[new] = entry

        if old in self.marked:
            self.marked.discard(old)
            self.marked.add(new)
        if self.filter is not None:
            self._refresh_key(old)
            self._refresh_key(new)
        if self.current_key == old:
            self.current_key = new

        self.modified = True
        return True

    # Fields

    def set_field(self, key: str, field: str, value: FieldInput) -> bool:
        entry = self.entries.get(key)
        if entry is None:
            logger.warning(f"Cannot set {field}: no entry {key} in {self.name}")
            return False
        if field == TYPE_FIELD:
            entry.entry_type = unbrace(str(value)).strip().lower()
        else:
            entry.fields[field.lower()] = _as_field_value(value)
        self.modified = True
        if self.filter is not None:
            self._refresh_key(key)
        return True

    def remove_field(self, key: str, field: str) -> bool:
        entry = self.entries.get(key)
        if entry is None or field.lower() not in entry.fields:
            return False
        del entry.fields[field.lower()]
        self.modified = True
        if self.filter is not None:
            self._refresh_key(key)
        return True

    def list_fields(self, key: str) -> list[str]:
        """Fields present on an entry, in file order."""
        entry = self.entries.get(key)
        return list(entry.fields) if entry else []

    def all_fields(self, key: str) -> list[str]:
        """Required and optional fields of the entry's type, then any extra fields present."""
        entry = self.entries.get(key)
        if entry is None:
            return []
        spec = self.config.entry_types.get(entry.entry_type)
        names: list[str] = []
        if spec is not None:
            names.extend(spec.required)
            names.extend(name for name in spec.optional if name not in names)
        names.extend(name for name in entry.fields if name not in names)
        return names

    def get_field(
        self, key: str, field: str, *, expand_strings: bool = False, inherit: bool = True
    ) -> ResolvedField | None:
        """Read a field for display or sorting.

        Missing fields are inherited from the entry named in ``crossref``.
        String macros are resolved now, against the current macro table.

        Returns:
            The resolved value, or ``None`` if the entry or field does not exist
        """
        entry = self.entries.get(key)
        if entry is None:
            return None

        field = field.lower()
        if field == TYPE_FIELD:
            return ResolvedField(entry.entry_type, FieldValue(entry.entry_type, False))

        value = entry.fields.get(field)
        source: str | None = None
        if value is None and inherit and field != "crossref":
            parent_key = self.crossref_target(key)
            if parent_key is not None:
                value = self.entries[parent_key].fields.get(field)
                source = parent_key
        if value is None:
            return None

        text = value.expand(self.strings) if expand_strings else value.text
        return ResolvedField(text, value, source)

    def crossref_target(self, key: str) -> str | None:
        """Return the key named by an entry's ``crossref`` field if that entry exists."""
        entry = self.entries.get(key)
        if entry is None:
            return None
        crossref = entry.fields.get("crossref")
        if crossref is None:
            return None
        target = crossref.text.strip()
        if not target:
            return None
        if target not in self.entries:
            logger.debug(f"Entry {key} cross-references missing entry {target}")
            return None
        return target

    def field_texts(self, key: str) -> dict[str, str]:
        """All field texts of an entry, inherited ones included, plus ``=type=``."""
        entry = self.entries[key]
        texts = {TYPE_FIELD: entry.entry_type}
        parent_key = self.crossref_target(key)
        if parent_key is not None:
            for name, value in self.entries[parent_key].fields.items():
                if name != "crossref":
                    texts[name] = value.text
        for name, value in entry.fields.items():
            texts[name] = value.text
        return texts

    # Strings and preamble

    def set_string(self, abbr: str, text: str, overwrite: bool = False) -> bool:
        """Define a string macro; ``text`` is the raw, delimited value."""
        if abbr in self.strings and not overwrite:
            return False
        self.strings[abbr] = text.strip()
        self.modified = True
        return True

    def get_string(self, abbr: str, resolve_braces: bool = False) -> str | None:
        raw = self.strings.get(abbr)
        if raw is None:
            return None
        return unbrace(raw) if resolve_braces else raw

    def remove_string(self, abbr: str) -> bool:
        if abbr not in self.strings:
            return False
        del self.strings[abbr]
        self.modified = True
        return True

    def list_strings(self) -> list[str]:
        return list(self.strings)

    def set_preamble(self, text: str | None, append: bool = False) -> None:
        """Replace or extend the preamble; ``None`` removes it."""
        if text is None:
            self.preamble = None
        elif append and self.preamble:
            self.preamble = f"{self.preamble}\n# {text}"
        else:
            self.preamble = text
        self.modified = True

    # Marks

    def mark(self, key: str) -> bool:
        if key not in self.entries:
            logger.warning(f"Cannot mark {key}: no such entry in {self.name}")
            return False
        self.marked.add(key)
        return True

    def unmark(self, key: str) -> bool:
        if key not in self.marked:
            return False
        self.marked.discard(key)
        return True

    def toggle_mark(self, key: str) -> bool:
        """Flip the mark of an entry and return whether it is now marked."""
        if key in self.marked:
            self.marked.discard(key)
            return False
        return self.mark(key)

    def is_marked(self, key: str) -> bool:
        return key in self.marked

    def mark_all(self) -> None:
        """Mark every visible entry."""
        self.marked.update(self.list_keys())

    def unmark_all(self) -> None:
        self.marked.clear()

    def marked_keys(self) -> list[str]:
        return sorted(self.marked)

    # Filter and view

    @property
    def filtered(self) -> bool:
        return self.filter is not None

    def set_filter(self, expr: FilterExpr | None) -> None:
        """Install (or with ``None`` remove) a filter and recompute the visible keys."""
        self.filter = expr
        self.apply_filter()

    def apply_filter(self) -> list[str]:
        if self.filter is None:
            self._filtered_keys = []
            return self.list_keys()
        self._filtered_keys = sorted(key for key in self.entries if self._matches(key))
        logger.debug(f"Filter {self.filter} selects {len(self._filtered_keys)} entries")
        return list(self._filtered_keys)

    def _matches(self, key: str) -> bool:
        assert self.filter is not None
        return evaluate(self.filter, self.field_texts(key))

    def _dependents(self, key: str) -> list[str]:
        """Keys whose ``crossref`` field names ``key``."""
        return [
            other
            for other, entry in self.entries.items()
            if "crossref" in entry.fields and entry.fields["crossref"].text.strip() == key
        ]

    def _refresh_key(self, key: str) -> None:
        # entries inheriting from key change with it
        for changed in [key, *self._dependents(key)]:
            present = changed in self._filtered_keys
            matches = changed in self.entries and self._matches(changed)
            if matches and not present:
                bisect.insort(self._filtered_keys, changed)
            elif present and not matches:
                self._filtered_keys.remove(changed)

    def list_keys(self) -> list[str]:
        """Visible keys in ascending order: all keys, or those passing the filter."""
        if self.filter is not None:
            return list(self._filtered_keys)
        return sorted(self.entries)

    def set_current_key(self, key: str) -> bool:
        if key not in self.entries:
            logger.warning(f"Cannot make {key} current: no such entry in {self.name}")
            return False
        self.current_key = key
        return True

    def strings_used_by(self, keys: Iterable[str]) -> set[str]:
        """String macros referenced, directly or through other macros, by the given entries."""
        used: set[str] = set()
        pending: list[str] = []
        for key in keys:
            entry = self.entries.get(key)
            if entry is None:
                continue
            pending.extend(value.raw_text for value in entry.fields.values() if not value.braced)

        while pending:
            for piece in concatenation_pieces(pending.pop()):
                if piece in self.strings and piece not in used:
                    used.add(piece)
                    pending.append(self.strings[piece])
        return used
