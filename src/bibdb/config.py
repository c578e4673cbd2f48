"""Configuration for bibdb databases."""

from __future__ import annotations

import datetime
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

import msgspec

from .exceptions import ConfigError
from .types import SortLevels

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EntryTypeSpec:
    """Required and optional fields of an entry type."""

    required: tuple[str, ...] = ()
    optional: tuple[str, ...] = ()


DEFAULT_ENTRY_TYPES: dict[str, EntryTypeSpec] = {
    "article": EntryTypeSpec(
        required=("author", "title", "journal", "year"),
        optional=("volume", "number", "pages", "month", "note"),
    ),
    "book": EntryTypeSpec(
        required=("author", "title", "publisher", "year"),
        optional=("editor", "volume", "number", "series", "address", "edition", "month", "note"),
    ),
    "booklet": EntryTypeSpec(
        required=("title",),
        optional=("author", "howpublished", "address", "month", "year", "note"),
    ),
    "conference": EntryTypeSpec(
        required=("author", "title", "booktitle", "year"),
        optional=(
            "editor", "volume", "number", "series", "pages",
            "address", "month", "organization", "publisher", "note",
        ),
    ),
    "inbook": EntryTypeSpec(
        required=("author", "title", "chapter", "pages", "publisher", "year"),
        optional=(
            "editor", "volume", "number", "series", "type",
            "address", "edition", "month", "note",
        ),
    ),
    "incollection": EntryTypeSpec(
        required=("author", "title", "booktitle", "publisher", "year"),
        optional=(
            "editor", "volume", "number", "series", "type", "chapter",
            "pages", "address", "edition", "month", "note",
        ),
    ),
    "inproceedings": EntryTypeSpec(
        required=("author", "title", "booktitle", "year"),
        optional=(
            "editor", "volume", "number", "series", "pages",
            "address", "month", "organization", "publisher", "note",
        ),
    ),
    "manual": EntryTypeSpec(
        required=("title",),
        optional=("author", "organization", "address", "edition", "month", "year", "note"),
    ),
    "mastersthesis": EntryTypeSpec(
        required=("author", "title", "school", "year"),
        optional=("type", "address", "month", "note"),
    ),
    "misc": EntryTypeSpec(
        optional=("author", "title", "howpublished", "month", "year", "note"),
    ),
    "phdthesis": EntryTypeSpec(
        required=("author", "title", "school", "year"),
        optional=("type", "address", "month", "note"),
    ),
    "proceedings": EntryTypeSpec(
        required=("title", "year"),
        optional=(
            "editor", "volume", "number", "series", "address",
            "month", "organization", "publisher", "note",
        ),
    ),
    "techreport": EntryTypeSpec(
        required=("author", "title", "institution", "year"),
        optional=("type", "number", "address", "month", "note"),
    ),
    "unpublished": EntryTypeSpec(
        required=("author", "title", "note"),
        optional=("month", "year"),
    ),
}


@dataclass
class DatabaseConfig:
    """Settings shared by the databases of a session."""

    entry_types: dict[str, EntryTypeSpec] = field(
        default_factory=lambda: dict(DEFAULT_ENTRY_TYPES)
    )
    sort_keys: SortLevels | None = None
    crossref_first: bool = False
    use_timestamp: bool = False
    timestamp_field: str = "timestamp"
    timestamp_format: str = "%a %b %d %H:%M:%S %Y"
    create_backups: bool = True
    backup_suffix: str = "~"

    def format_timestamp(self, now: datetime.datetime | None = None) -> str:
        """Render the timestamp value for a newly inserted entry."""
        moment = now if now is not None else datetime.datetime.now()
        return moment.strftime(self.timestamp_format)

    def is_known_type(self, entry_type: str) -> bool:
        return entry_type.lower() in self.entry_types


class _EntryTypeFile(msgspec.Struct, forbid_unknown_fields=True):
    required: list[str] = []
    optional: list[str] = []


class _ConfigFile(msgspec.Struct, forbid_unknown_fields=True):
    entry_types: dict[str, _EntryTypeFile] | None = None
    extra_entry_types: dict[str, _EntryTypeFile] = {}
    sort_keys: list[list[str]] | None = None
    crossref_first: bool = False
    use_timestamp: bool = False
    timestamp_field: str = "timestamp"
    timestamp_format: str = "%a %b %d %H:%M:%S %Y"
    create_backups: bool = True
    backup_suffix: str = "~"


def _convert_types(raw: dict[str, _EntryTypeFile]) -> dict[str, EntryTypeSpec]:
    return {
        name.lower(): EntryTypeSpec(
            required=tuple(f.lower() for f in spec.required),
            optional=tuple(f.lower() for f in spec.optional),
        )
        for name, spec in raw.items()
    }


def load_config(config_path: Path) -> DatabaseConfig:
    """Load a :class:`DatabaseConfig` from a JSON file.

    ``entry_types`` replaces the default type table, ``extra_entry_types``
    extends it.

    Args:
        config_path: Path to the JSON configuration file

    Returns:
        The validated configuration

    Raises:
        ConfigError: If the file is missing, is not JSON or has the wrong shape
    """
    logger.debug(f"Loading configuration: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            raw_data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Failed to read configuration {config_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in configuration {config_path}: {e}") from e

    try:
        data = msgspec.convert(raw_data, type=_ConfigFile)
    except msgspec.ValidationError as e:
        raise ConfigError(f"Invalid configuration {config_path}: {e}") from e

    if data.entry_types is not None:
        entry_types = _convert_types(data.entry_types)
    else:
        entry_types = dict(DEFAULT_ENTRY_TYPES)
    entry_types.update(_convert_types(data.extra_entry_types))

    sort_keys = None
    if data.sort_keys is not None:
        sort_keys = [[name.lower() for name in level] for level in data.sort_keys if level]

    return DatabaseConfig(
        entry_types=entry_types,
        sort_keys=sort_keys or None,
        crossref_first=data.crossref_first,
        use_timestamp=data.use_timestamp,
        timestamp_field=data.timestamp_field.lower(),
        timestamp_format=data.timestamp_format,
        create_backups=data.create_backups,
        backup_suffix=data.backup_suffix,
    )
