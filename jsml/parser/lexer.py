"""
Lexical scanner for JSML source text.

Produces a flat token list ending in an EOF token. Newlines are significant
(they terminate declarations and relations) except inside parentheses,
brackets and braces, where they are dropped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from jsml.errors import JSMLSyntaxError, SourceLocation


class TokenType(Enum):
    IDENT = "identifier"
    NUMBER = "number"
    STRING = "string"
    KEYWORD = "keyword"
    OP = "operator"
    NEWLINE = "newline"
    EOF = "end of input"


KEYWORDS = frozenset(
    {
        "type",
        "connector",
        "component",
        "partial",
        "end",
        "relations",
        "metadata",
        "parameter",
        "variable",
        "potential",
        "flow",
        "stream",
        "singleton",
        "extends",
        "initial",
        "connect",
        "import",
        "and",
        "or",
        "not",
        "true",
        "false",
    }
)

# Longest operators first so that "::" wins over ":" and ".*" over ".".
OPERATORS = (
    "::",
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    ".+",
    ".-",
    ".*",
    "./",
    ".^",
    ".%",
    "=",
    "<",
    ">",
    "+",
    "-",
    "*",
    "/",
    "^",
    "%",
    "!",
    "?",
    ":",
    "(",
    ")",
    "[",
    "]",
    "{",
    "}",
    ",",
    ".",
    ";",
)

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = frozenset(_OPENERS.values())

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?")
_IDENT_RE = re.compile(r"[^\W\d]\w*")
_ESCAPES = {'"': '"', "\\": "\\", "/": "/", "b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t"}


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str
    loc: SourceLocation

    @property
    def line(self) -> int:
        return self.loc.line

    @property
    def column(self) -> int:
        return self.loc.column

    def describe(self) -> str:
        """Human readable form used in diagnostics."""
        if self.type in (TokenType.NEWLINE, TokenType.EOF):
            return self.type.value
        if self.type == TokenType.STRING:
            return "string"
        return f"'{self.value}'"


def tokenize(source: str, filename: str = "<string>") -> list[Token]:
    """
    Split ``source`` into tokens.

    Raises:
        JSMLSyntaxError: On characters that start no token or on an
            unterminated string.
    """
    tokens: list[Token] = []
    depth: list[str] = []
    pos = 0
    line = 1
    line_start = 0
    n = len(source)

    def here() -> SourceLocation:
        return SourceLocation(filename, line, pos - line_start + 1)

    while pos < n:
        ch = source[pos]

        if ch == "\n":
            if not depth and tokens and tokens[-1].type != TokenType.NEWLINE:
                tokens.append(Token(TokenType.NEWLINE, "\n", here()))
            pos += 1
            line += 1
            line_start = pos
            continue

        if ch in " \t\r":
            pos += 1
            continue

        if ch == "#":
            while pos < n and source[pos] != "\n":
                pos += 1
            continue

        if ch == '"':
            start = here()
            value, pos = _scan_string(source, pos, start)
            tokens.append(Token(TokenType.STRING, value, start))
            continue

        match = _NUMBER_RE.match(source, pos)
        if match and (ch.isdigit() or (ch == "." and match.end() > pos + 1)):
            tokens.append(Token(TokenType.NUMBER, match.group(), here()))
            pos = match.end()
            continue

        match = _IDENT_RE.match(source, pos)
        if match:
            word = match.group()
            kind = TokenType.KEYWORD if word in KEYWORDS else TokenType.IDENT
            tokens.append(Token(kind, word, here()))
            pos = match.end()
            continue

        for op in OPERATORS:
            if source.startswith(op, pos):
                loc = here()
                if op in _OPENERS:
                    depth.append(_OPENERS[op])
                elif op in _CLOSERS:
                    if not depth or depth[-1] != op:
                        raise JSMLSyntaxError(f"unbalanced '{op}'", loc)
                    depth.pop()
                tokens.append(Token(TokenType.OP, op, loc))
                pos += len(op)
                break
        else:
            raise JSMLSyntaxError(f"unexpected character {ch!r}", here())

    if tokens and tokens[-1].type != TokenType.NEWLINE:
        tokens.append(Token(TokenType.NEWLINE, "\n", here()))
    tokens.append(Token(TokenType.EOF, "", here()))
    return tokens


def _scan_string(source: str, pos: int, start: SourceLocation) -> tuple[str, int]:
    """Scan a double-quoted string starting at ``pos``; return (value, end)."""
    chars: list[str] = []
    pos += 1
    while pos < len(source):
        ch = source[pos]
        if ch == '"':
            return "".join(chars), pos + 1
        if ch == "\n":
            break
        if ch == "\\":
            esc = source[pos + 1 : pos + 2]
            if esc == "u":
                digits = source[pos + 2 : pos + 6]
                if len(digits) != 4 or not all(c in "0123456789abcdefABCDEF" for c in digits):
                    raise JSMLSyntaxError("invalid \\u escape", start)
                chars.append(chr(int(digits, 16)))
                pos += 6
                continue
            if esc not in _ESCAPES:
                raise JSMLSyntaxError(f"invalid escape '\\{esc}'", start)
            chars.append(_ESCAPES[esc])
            pos += 2
            continue
        chars.append(ch)
        pos += 1
    raise JSMLSyntaxError("unterminated string", start)
