"""Tests for filter expressions and the query syntax."""

import pytest

from bibdb.exceptions import FilterSyntaxError
from bibdb.filter import And, Contains, Not, Or, conjoin, disjoin, evaluate, parse_filter

DEEP = {"=type=": "article", "title": "Deep Learning", "year": "2019"}
SHALLOW = {"=type=": "misc", "title": "Shallow Learning", "year": "2020"}


@pytest.mark.parametrize(
    ("expr", "deep", "shallow"),
    [
        (Contains("title", "deep"), True, False),
        (Not(Contains("title", "deep")), False, True),
        (Contains("title", "learning"), True, True),
        (And(Contains("title", "learning"), Contains("year", "2020")), False, True),
        (Or(Contains("title", "deep"), Contains("year", "2020")), True, True),
        (Contains(None, "shallow"), False, True),
        (Contains("=type=", "^article$"), True, False),
        (Contains("author", "."), False, False),
    ],
)
def test_truth_table(expr, deep: bool, shallow: bool) -> None:
    assert evaluate(expr, DEEP) is deep
    assert evaluate(expr, SHALLOW) is shallow


def test_any_field_skips_type() -> None:
    assert not evaluate(Contains(None, "article"), DEEP)


def test_invalid_regex_matches_literally() -> None:
    fields = {"title": "Costs (in [brackets"}
    assert evaluate(Contains("title", "(in [b"), fields)


def test_field_names_are_case_insensitive() -> None:
    assert evaluate(Contains("TITLE", "deep"), DEEP)


def test_conjoin_and_disjoin() -> None:
    first = Contains("title", "a")
    second = Contains("year", "b")

    assert conjoin(None, first) is first
    assert conjoin(first, second) == And(first, second)
    assert disjoin(first, second) == Or(first, second)


class TestParseFilter:
    """Tests for the textual query syntax."""

    def test_field_term(self) -> None:
        assert parse_filter("title:deep") == Contains("title", "deep")

    def test_bare_term(self) -> None:
        assert parse_filter("learning") == Contains(None, "learning")

    def test_type_term(self) -> None:
        assert parse_filter("=type=:article") == Contains("=type=", "article")

    def test_and_binds_tighter_than_or(self) -> None:
        expected = Or(Contains("title", "a"), And(Contains("title", "b"), Contains("year", "c")))
        assert parse_filter("title:a or title:b and year:c") == expected

    def test_juxtaposition_means_and(self) -> None:
        assert parse_filter("deep learning") == And(
            Contains(None, "deep"), Contains(None, "learning")
        )

    def test_not_and_parentheses(self) -> None:
        expected = And(
            Contains("title", "deep"),
            Not(Or(Contains("author", "smith"), Contains("year", "2020"))),
        )
        assert parse_filter("title:deep and not (author:smith or year:2020)") == expected

    def test_quoted_patterns(self) -> None:
        assert parse_filter('title:"deep learning"') == Contains("title", "deep learning")
        assert parse_filter('"and"') == Contains(None, "and")
        assert parse_filter(r'year:"19[0-9]{2}\\d"') == Contains("year", r"19[0-9]{2}\d")

    def test_keywords_are_case_insensitive(self) -> None:
        assert parse_filter("a AND NOT b") == And(Contains(None, "a"), Not(Contains(None, "b")))

    @pytest.mark.parametrize(
        "text",
        ["", "   ", "title:deep and", "(title:deep", "title:deep)", '"open', "or x", "title:"],
    )
    def test_syntax_errors(self, text: str) -> None:
        with pytest.raises(FilterSyntaxError):
            parse_filter(text)

    @pytest.mark.parametrize(
        "text",
        [
            "title:deep",
            "title:a or title:b and year:c",
            "not (a or b) and c",
            'title:"deep learning" or =type=:misc',
            '"with:colon"',
        ],
    )
    def test_str_parses_back(self, text: str) -> None:
        expr = parse_filter(text)
        assert parse_filter(str(expr)) == expr
