"""Tests for the JSML lexical scanner (jsml.parser.lexer)."""

from __future__ import annotations

import pytest

from jsml.errors import JSMLSyntaxError
from jsml.parser.lexer import TokenType, tokenize

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _kinds(source: str) -> list[TokenType]:
    return [t.type for t in tokenize(source)]


def _values(source: str) -> list[str]:
    return [t.value for t in tokenize(source) if t.type not in (TokenType.NEWLINE, TokenType.EOF)]


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TestTokens:
    def test_keywords_and_identifiers(self) -> None:
        tokens = tokenize("component Resistor")
        assert tokens[0].type == TokenType.KEYWORD
        assert tokens[0].value == "component"
        assert tokens[1].type == TokenType.IDENT
        assert tokens[1].value == "Resistor"

    def test_stream_ends_with_newline_and_eof(self) -> None:
        assert _kinds("x") == [TokenType.IDENT, TokenType.NEWLINE, TokenType.EOF]

    def test_empty_source(self) -> None:
        assert _kinds("") == [TokenType.EOF]

    def test_longest_operator_wins(self) -> None:
        assert _values("R::Resistance") == ["R", "::", "Resistance"]
        assert _values("a .* b") == ["a", ".*", "b"]
        assert _values("a <= b") == ["a", "<=", "b"]

    def test_numbers(self) -> None:
        tokens = [t for t in tokenize("1 2.5 1e-3 3.0E+2 .5") if t.type == TokenType.NUMBER]
        assert [t.value for t in tokens] == ["1", "2.5", "1e-3", "3.0E+2", ".5"]

    def test_dotted_reference_is_not_a_number(self) -> None:
        assert _values("p.v") == ["p", ".", "v"]

    def test_comments_are_skipped(self) -> None:
        assert _values("x = 1  # trailing comment\n# full line") == ["x", "=", "1"]

    def test_consecutive_newlines_collapse(self) -> None:
        assert _kinds("a\n\n\nb").count(TokenType.NEWLINE) == 2


class TestStrings:
    def test_string_value_is_unescaped(self) -> None:
        token = tokenize(r'"say \"hi\"\n"')[0]
        assert token.type == TokenType.STRING
        assert token.value == 'say "hi"\n'

    def test_unicode_escape(self) -> None:
        assert tokenize(r'"\u03a9"')[0].value == "Ω"

    def test_unterminated_string(self) -> None:
        with pytest.raises(JSMLSyntaxError, match="unterminated string"):
            tokenize('"open')

    def test_invalid_escape(self) -> None:
        with pytest.raises(JSMLSyntaxError, match="invalid escape"):
            tokenize(r'"\q"')


class TestBrackets:
    def test_newlines_inside_brackets_are_dropped(self) -> None:
        source = "connect(a,\n  b)\n"
        kinds = _kinds(source)
        assert kinds.count(TokenType.NEWLINE) == 1
        assert kinds[-2] == TokenType.NEWLINE

    def test_unbalanced_closer(self) -> None:
        with pytest.raises(JSMLSyntaxError, match="unbalanced"):
            tokenize("a)")

    def test_mismatched_closer(self) -> None:
        with pytest.raises(JSMLSyntaxError):
            tokenize("(a]")


def test_locations_are_one_based() -> None:
    """Line and column of every token start at 1."""
    tokens = tokenize("component A\n  variable x::Real\n")
    variable = next(t for t in tokens if t.value == "variable")
    assert (variable.line, variable.column) == (2, 3)
    assert tokens[0].loc.file == "<string>"


def test_unexpected_character_location() -> None:
    """Stray characters are reported where they occur."""
    with pytest.raises(JSMLSyntaxError) as excinfo:
        tokenize("x = 1\ny = $", filename="bad.jsml")
    loc = excinfo.value.location
    assert (loc.file, loc.line, loc.column) == ("bad.jsml", 2, 5)
