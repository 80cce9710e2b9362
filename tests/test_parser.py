"""Tests for tag_filters.parser — filter text to expression trees."""

import re

import pytest

from tag_filters import (
    AndNode,
    NotNode,
    OrNode,
    ParseError,
    ResolutionError,
    TagNode,
    build_tag_filter_query,
    parse_filter,
    resolve_tag_names,
    stringify_expression,
    tokenize,
)

CATALOG = {
    1: {"id": 1, "name": "feature"},
    2: {"id": 2, "name": "bugfix"},
    3: {"id": 3, "name": "wip"},
}


def lookup(key):
    """Find a CATALOG tag by name or by id given as a string."""
    if key.isdigit():
        return CATALOG.get(int(key))
    return next((t for t in CATALOG.values() if t["name"] == key), None)


def name(text):
    return TagNode(None, name=text)


class TestTokenize:
    """Tests for tokenize."""

    def test_tokens_and_positions(self):
        tokens = tokenize("#feature AND #bugfix")
        assert [t.type for t in tokens] == ["TAG", "AND", "TAG", "EOF"]
        assert [t.value for t in tokens] == ["feature", "AND", "bugfix", ""]
        assert [t.position for t in tokens] == [0, 9, 13, 20]

    def test_keywords_case_insensitive(self):
        tokens = tokenize("not #a and #b or #c")
        assert [t.type for t in tokens] == ["NOT", "TAG", "AND", "TAG", "OR", "TAG", "EOF"]

    def test_parentheses(self):
        tokens = tokenize("(#a)")
        assert [t.type for t in tokens] == ["LPAREN", "TAG", "RPAREN", "EOF"]

    def test_tag_characters(self):
        assert tokenize("#needs-review_2")[0].value == "needs-review_2"

    def test_empty_tag(self):
        with pytest.raises(ParseError) as exc_info:
            tokenize("#a AND #")
        assert exc_info.value.position == 7
        assert "Empty tag name" in str(exc_info.value)

    def test_unknown_keyword(self):
        with pytest.raises(ParseError, match="Unknown keyword 'XOR'"):
            tokenize("#a XOR #b")

    def test_unexpected_character(self):
        with pytest.raises(ParseError) as exc_info:
            tokenize("#a & #b")
        assert exc_info.value.position == 3


class TestParseFilter:
    """Tests for parse_filter precedence and structure."""

    def test_single_tag(self):
        assert parse_filter("#feature") == name("feature")

    def test_numeric_tag(self):
        assert parse_filter("#12") == TagNode(12)

    def test_leading_zero_is_a_name(self):
        assert parse_filter("#007") == name("007")

    def test_and_binds_tighter_than_or(self):
        assert parse_filter("#a OR #b AND #c") == OrNode((
            name("a"), AndNode((name("b"), name("c"))),
        ))

    def test_not_binds_tightest(self):
        assert parse_filter("NOT #a AND #b") == AndNode((NotNode(name("a")), name("b")))

    def test_double_not(self):
        assert parse_filter("NOT NOT #a") == NotNode(NotNode(name("a")))

    def test_parentheses_override_precedence(self):
        assert parse_filter("(#a OR #b) AND NOT #c") == AndNode((
            OrNode((name("a"), name("b"))), NotNode(name("c")),
        ))

    def test_flattens_same_operator(self):
        expected = OrNode((name("a"), name("b"), name("c")))
        assert parse_filter("#a OR #b OR #c") == expected
        assert parse_filter("(#a OR #b) OR #c") == expected

    @pytest.mark.parametrize("text, message", [
        ("", "Empty filter expression"),
        ("   ", "Empty filter expression"),
        ("(#a", "Expected closing parenthesis"),
        ("#a #b", "Unexpected token 'b' after expression"),
        ("AND #a", "Expected tag or opening parenthesis, got 'AND'"),
        ("#a AND", "Expected tag or opening parenthesis"),
        ("()", "Expected tag or opening parenthesis, got ')'"),
    ])
    def test_syntax_errors(self, text, message):
        with pytest.raises(ParseError, match=re.escape(message)):
            parse_filter(text)


class TestResolveTagNames:
    """Tests for resolve_tag_names."""

    def test_resolves_names_and_ids(self):
        expr = resolve_tag_names(parse_filter("#feature AND NOT #3"), lookup)
        assert expr == AndNode((TagNode(1), NotNode(TagNode(3))))

    def test_does_not_mutate_input(self):
        parsed = parse_filter("#feature OR #bugfix")
        resolve_tag_names(parsed, lookup)
        assert parsed == OrNode((name("feature"), name("bugfix")))

    def test_unknown_name(self):
        with pytest.raises(ResolutionError, match="Tag 'release' not found"):
            resolve_tag_names(parse_filter("#feature OR #release"), lookup)

    def test_unknown_id(self):
        with pytest.raises(ResolutionError, match="Tag with ID 42 not found"):
            resolve_tag_names(parse_filter("#42"), lookup)

    def test_resolved_tree_compiles(self):
        expr = resolve_tag_names(parse_filter("(#feature OR #bugfix) AND NOT #wip"), lookup)
        assert build_tag_filter_query(expr).params == [1, 2, 3]


class TestStringifyExpression:
    """Tests for stringify_expression."""

    @pytest.mark.parametrize("text", [
        "#feature",
        "(#feature OR #bugfix) AND NOT #wip",
        "NOT (#feature AND #bugfix)",
        "#feature OR #bugfix AND #wip",
    ])
    def test_reproduces_normalised_text(self, text):
        assert stringify_expression(parse_filter(text)) == text

    def test_ids_without_lookup(self):
        assert stringify_expression(AndNode((TagNode(1), NotNode(TagNode(2))))) == "#1 AND NOT #2"

    def test_ids_with_lookup(self):
        expr = OrNode((TagNode(1), TagNode(99)))
        assert stringify_expression(expr, CATALOG.get) == "#feature OR #99"

    def test_malformed_nodes(self):
        assert stringify_expression(TagNode(None)) == "#unknown"
        assert stringify_expression(NotNode(None)) == "NOT"
        assert stringify_expression(AndNode(())) == "AND"
