"""Tests for exchanging databases with bibtexparser."""

from bibdb.database import Database
from bibdb.interop import import_library, parse_library, to_library, verify_serialization
from bibdb.parser import parse_text
from bibdb.types import DuplicatePolicy

SOURCE = """@preamble{"\\newcommand{\\x}{X}"}
@string{acm = {ACM}}

@article{doe2020,
  author = {Doe, J.},
  title = "A Study",
  publisher = acm,
  year = 2020
}
"""


def _load(text: str) -> Database:
    database = Database()
    parse_text(text, database)
    return database


def test_to_library() -> None:
    library = to_library(_load(SOURCE))

    assert len(library.entries) == 1
    entry = library.entries[0]
    assert entry.key == "doe2020"
    assert entry.entry_type == "article"
    assert {field.key: field.value for field in entry.fields} == {
        "author": "{Doe, J.}",
        "title": '"A Study"',
        "publisher": "acm",
        "year": "2020",
    }
    assert [string.key for string in library.strings] == ["acm"]
    assert len(library.preambles) == 1


def test_import_library() -> None:
    library = parse_library(SOURCE)
    database = Database()

    summary = import_library(database, library)

    assert summary.as_tuple() == (1, 1, True)
    fields = database.entries["doe2020"].fields
    assert fields["author"].raw_text == "{Doe, J.}"
    assert fields["publisher"].raw_text == "acm"
    assert not fields["year"].braced


def test_import_library_duplicate_policy() -> None:
    database = _load(SOURCE)

    summary = import_library(database, parse_library(SOURCE), DuplicatePolicy.UNIQUIFY)

    assert summary.entries == 1
    assert sorted(database.entries) == ["doe2020", "doe2020b"]


def test_import_skips_unknown_types() -> None:
    database = Database()

    summary = import_library(database, parse_library("@foobar{x,\n  title = {X}\n}\n"))

    assert summary.entries == 0
    assert len(database) == 0


def test_verify_serialization_clean() -> None:
    assert verify_serialization(_load(SOURCE)) == []


def test_verify_empty_database() -> None:
    assert verify_serialization(Database()) == []
