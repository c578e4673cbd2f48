"""Tests for configuration loading."""

import datetime
import json
from pathlib import Path

import pytest

from bibdb.config import DEFAULT_ENTRY_TYPES, DatabaseConfig, load_config
from bibdb.exceptions import ConfigError


def _write(tmp_path: Path, data: object) -> Path:
    config_path = tmp_path / "bibdb.json"
    config_path.write_text(json.dumps(data), encoding="utf-8")
    return config_path


def test_defaults() -> None:
    config = DatabaseConfig()

    assert config.is_known_type("Article")
    assert not config.is_known_type("online")
    assert config.sort_keys is None
    assert not config.crossref_first
    assert config.create_backups


def test_format_timestamp() -> None:
    config = DatabaseConfig(timestamp_format="%Y-%m-%d")
    assert config.format_timestamp(datetime.datetime(2024, 3, 5)) == "2024-03-05"


def test_load_config(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path,
        {
            "extra_entry_types": {"Online": {"required": ["Title", "url"]}},
            "sort_keys": [["Author", "editor"], [], ["year"]],
            "crossref_first": True,
            "use_timestamp": True,
            "timestamp_field": "Added",
        },
    )

    config = load_config(config_path)

    assert config.is_known_type("online")
    assert config.entry_types["online"].required == ("title", "url")
    assert config.is_known_type("article")
    assert config.sort_keys == [["author", "editor"], ["year"]]
    assert config.crossref_first
    assert config.timestamp_field == "added"


def test_entry_types_replace_defaults(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path, {"entry_types": {"misc": {}}}))

    assert list(config.entry_types) == ["misc"]
    assert len(DEFAULT_ENTRY_TYPES) == 14


def test_empty_config_file(tmp_path: Path) -> None:
    config = load_config(_write(tmp_path, {}))
    assert config.entry_types == DEFAULT_ENTRY_TYPES


@pytest.mark.parametrize(
    "data",
    [
        {"unknown_option": 1},
        {"sort_keys": "year"},
        {"entry_types": {"misc": {"required": "title"}}},
        {"crossref_first": "yes"},
    ],
)
def test_invalid_config(tmp_path: Path, data: dict) -> None:
    with pytest.raises(ConfigError, match="Invalid configuration"):
        load_config(_write(tmp_path, data))


def test_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "bibdb.json"
    config_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ConfigError, match="Invalid JSON"):
        load_config(config_path)


def test_missing_config(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Failed to read"):
        load_config(tmp_path / "missing.json")
