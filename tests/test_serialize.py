"""Tests for canonical BibTeX output."""

from bibdb.config import DatabaseConfig
from bibdb.database import Database
from bibdb.model import Entry, FieldValue
from bibdb.parser import parse_text
from bibdb.serialize import format_entry, format_string, iter_records, serialize

SOURCE = """@preamble{"\\newcommand{\\noop}[1]{}"}
@string{acm = {Association for Computing Machinery}}

@ARTICLE(zed2020,
    Title = "Quoted, Title",
    Publisher = acm # { Press},
    YEAR = 2020,
)

@inproceedings{alpha2019, title = {Multi
  line}, crossref = {zed2020}}
"""


def _load(text: str) -> Database:
    database = Database()
    parse_text(text, database)
    return database


def test_format_entry() -> None:
    entry = Entry(
        "k",
        "book",
        {"title": FieldValue("{T}", True), "year": FieldValue("1999", False)},
    )

    assert format_entry(entry) == "@book{k,\n\ttitle = {T},\n\tyear = 1999\n}\n"


def test_format_entry_without_fields() -> None:
    assert format_entry(Entry("k", "misc")) == "@misc{k,\n}\n"


def test_format_string() -> None:
    assert format_string("acm", "{ACM}") == "@STRING{acm = {ACM}}\n"


def test_serialize_layout() -> None:
    text = serialize(_load(SOURCE))

    assert text == (
        '@PREAMBLE{"\\newcommand{\\noop}[1]{}"}\n'
        "\n"
        "@STRING{acm = {Association for Computing Machinery}}\n"
        "\n"
        "@inproceedings{alpha2019,\n"
        "\ttitle = {Multi\n  line},\n"
        "\tcrossref = {zed2020}\n"
        "}\n"
        "\n"
        "@article{zed2020,\n"
        '\ttitle = "Quoted, Title",\n'
        "\tpublisher = acm # { Press},\n"
        "\tyear = 2020\n"
        "}\n"
    )


def test_serialized_text_reads_back_identically() -> None:
    original = _load(SOURCE)

    reread = _load(serialize(original))

    assert reread.preamble == original.preamble
    assert reread.strings == original.strings
    assert reread.entries == original.entries


def test_serialize_is_stable() -> None:
    once = serialize(_load(SOURCE))
    assert serialize(_load(once)) == once


def test_records_follow_configured_order() -> None:
    database = _load(SOURCE)
    config = DatabaseConfig(sort_keys=[["year"]])

    records = list(iter_records(database, config, include_preamble=False, strings=[]))

    heads = [record.split(",")[0] for record in records]
    assert heads == ["@inproceedings{alpha2019", "@article{zed2020"]


def test_records_subset() -> None:
    records = list(iter_records(_load(SOURCE), keys=["zed2020", "missing"], strings=["acm"]))

    assert len(records) == 3
    assert records[-1].startswith("@article{zed2020,")


def test_empty_database() -> None:
    assert serialize(Database()) == ""
