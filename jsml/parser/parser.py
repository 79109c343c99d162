"""
Recursive-descent parser for JSML.

The parser turns the token stream of one file into a ``SourceFile`` AST. It
is a pure function of the input text: ``parse(source)`` either returns the
tree or raises ``JSMLSyntaxError`` with the location of the offending token
and the set of tokens that would have been accepted there.

Descriptive strings are threaded explicitly: a string on its own line is
read into a pending description that is handed to, and consumed by, the
next declaration or relation.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

from jsml import ast
from jsml.errors import JSMLSyntaxError
from jsml.ir.expr import (
    ArrayLiteral,
    BinaryOp,
    ComponentRef,
    ComponentRefPart,
    Expr,
    FunctionCall,
    IfExpr,
    Literal,
    UnaryOp,
)
from jsml.ir.types import FieldRole
from jsml.parser.lexer import Token, TokenType, tokenize

logger = logging.getLogger(__name__)

_ROLES = {role.value: role for role in FieldRole}
_RELATIONAL = ("<", "<=", ">", ">=", "==", "!=")
_ADDITIVE = ("+", "-", ".+", ".-")
_MULTIPLICATIVE = ("*", "/", "%", ".*", "./", ".%")
_POWER = ("^", ".^")


class Parser:
    """Parser over the token list of a single source file."""

    def __init__(self, tokens: list[Token], filename: str = "<string>") -> None:
        self.tokens = tokens
        self.filename = filename
        self.pos = 0
        self._expected: set[str] = set()
        self._expected_pos = -1

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    @property
    def tok(self) -> Token:
        return self.tokens[self.pos]

    def _peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def _advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.type != TokenType.EOF:
            self.pos += 1
        return tok

    def _note(self, expected: str) -> None:
        if self._expected_pos != self.pos:
            self._expected = set()
            self._expected_pos = self.pos
        self._expected.add(expected)

    def _check(self, type_: TokenType, value: Optional[str] = None) -> bool:
        tok = self.tok
        if tok.type == type_ and (value is None or tok.value == value):
            return True
        if value is None:
            self._note(type_.value)
        else:
            self._note(f"'{value}'")
        return False

    def _check_op(self, *ops: str) -> bool:
        for op in ops:
            if self._check(TokenType.OP, op):
                return True
        return False

    def _check_kw(self, *words: str) -> bool:
        for word in words:
            if self._check(TokenType.KEYWORD, word):
                return True
        return False

    def _accept_op(self, op: str) -> Optional[Token]:
        return self._advance() if self._check_op(op) else None

    def _expect(self, type_: TokenType, value: Optional[str] = None) -> Token:
        if not self._check(type_, value):
            self._fail()
        return self._advance()

    def _expect_op(self, op: str) -> Token:
        return self._expect(TokenType.OP, op)

    def _expect_kw(self, word: str) -> Token:
        return self._expect(TokenType.KEYWORD, word)

    def _fail(self, message: Optional[str] = None) -> None:
        tok = self.tok
        expected = sorted(self._expected) if self._expected_pos == self.pos else []
        raise JSMLSyntaxError(message or f"unexpected {tok.describe()}", tok.loc, expected)

    def _skip_newlines(self) -> None:
        while self.tok.type == TokenType.NEWLINE or (
            self.tok.type == TokenType.OP and self.tok.value == ";"
        ):
            self._advance()

    def _end_statement(self) -> None:
        """A declaration or relation ends at a newline, ';' or end of input."""
        if self._check(TokenType.NEWLINE) or self._check_op(";"):
            self._skip_newlines()
        elif not self._check(TokenType.EOF):
            self._fail()

    # ------------------------------------------------------------------
    # Descriptions
    # ------------------------------------------------------------------

    def _take_description(self) -> str:
        """Read the pending description for the next declaration, if any."""
        if self.tok.type != TokenType.STRING:
            return ""
        first = self._advance()
        if self.tok.type != TokenType.NEWLINE:
            raise JSMLSyntaxError(
                "a description must stand on its own line", first.loc, ["newline"]
            )
        self._skip_newlines()
        if self.tok.type == TokenType.STRING:
            raise JSMLSyntaxError(
                "only one description may precede a declaration", self.tok.loc
            )
        return first.value

    def _dangling(self, description: str) -> None:
        if description:
            raise JSMLSyntaxError(
                "description is not followed by a declaration", self.tok.loc
            )

    # ------------------------------------------------------------------
    # File and declarations
    # ------------------------------------------------------------------

    def parse_file(self) -> ast.SourceFile:
        imports: list[ast.ImportDecl] = []
        declarations: list[ast.Declaration] = []
        self._skip_newlines()
        while not self._check(TokenType.EOF):
            description = self._take_description()
            if self._check_kw("import"):
                self._dangling(description)
                loc = self._advance().loc
                path = self._expect(TokenType.STRING).value
                imports.append(ast.ImportDecl(path, loc))
                self._end_statement()
            elif self._check_kw("type"):
                declarations.append(self._parse_type_decl(description))
            elif self._check_kw("connector"):
                declarations.append(self._parse_connector(description))
            elif self._check_kw("component", "partial"):
                declarations.append(self._parse_component(description))
            else:
                self._fail()
        logger.debug(
            "parsed %s: %d declarations, %d imports",
            self.filename,
            len(declarations),
            len(imports),
        )
        return ast.SourceFile(self.filename, tuple(imports), tuple(declarations))

    def _parse_type_decl(self, description: str) -> ast.TypeDecl:
        loc = self._expect_kw("type").loc
        name = self._expect(TokenType.IDENT).value
        self._expect_op("=")
        base = self._parse_typeref()
        metadata = self._parse_optional_json()
        self._end_statement()
        return ast.TypeDecl(name, base, description, metadata, loc)

    def _parse_typeref(self) -> ast.TypeRef:
        tok = self._expect(TokenType.IDENT)
        attributes: list[ast.Attribute] = []
        if self._accept_op("("):
            if not self._check_op(")"):
                while True:
                    name_tok = self._expect(TokenType.IDENT)
                    self._expect_op("=")
                    value = self.parse_expr()
                    attributes.append(ast.Attribute(name_tok.value, value, name_tok.loc))
                    if not self._accept_op(","):
                        break
            self._expect_op(")")
        dims: tuple[Expr, ...] = ()
        if self._accept_op("["):
            dims = self._parse_expr_list("]")
        return ast.TypeRef(tok.value, tuple(attributes), dims, tok.loc)

    def _parse_connector(self, description: str) -> ast.ConnectorDecl:
        loc = self._expect_kw("connector").loc
        name = self._expect(TokenType.IDENT).value
        self._end_statement()
        fields: list[ast.FieldDecl] = []
        metadata = None
        while True:
            field_description = self._take_description()
            if self._check_kw(*_ROLES):
                role_tok = self._advance()
                field_name = self._expect(TokenType.IDENT).value
                self._expect_op("::")
                typeref = self._parse_typeref()
                field_metadata = self._parse_optional_json()
                self._end_statement()
                fields.append(
                    ast.FieldDecl(
                        _ROLES[role_tok.value],
                        field_name,
                        typeref,
                        field_description,
                        field_metadata,
                        role_tok.loc,
                    )
                )
                continue
            self._dangling(field_description)
            if self._check_kw("metadata"):
                self._advance()
                metadata = self._parse_json_object()
                self._end_statement()
            self._expect_kw("end")
            self._end_statement()
            return ast.ConnectorDecl(name, tuple(fields), description, metadata, loc)

    def _parse_component(self, description: str) -> ast.ComponentDecl:
        partial = False
        loc = self.tok.loc
        if self._check_kw("partial"):
            self._advance()
            partial = True
        self._expect_kw("component")
        name = self._expect(TokenType.IDENT).value
        self._end_statement()

        members: list[ast.Member] = []
        while True:
            member_description = self._take_description()
            member = self._parse_member(member_description)
            if member is None:
                self._dangling(member_description)
                break
            members.append(member)

        relations: list[ast.Relation] = []
        if self._check_kw("relations"):
            self._advance()
            self._end_statement()
            while True:
                relation_description = self._take_description()
                if self._check_kw("metadata", "end"):
                    self._dangling(relation_description)
                    break
                relations.append(self._parse_relation(relation_description))

        metadata = None
        if self._check_kw("metadata"):
            self._advance()
            metadata = self._parse_json_object()
            self._end_statement()
        self._expect_kw("end")
        self._end_statement()
        return ast.ComponentDecl(
            name, tuple(members), tuple(relations), partial, description, metadata, loc
        )

    def _parse_member(self, description: str) -> Optional[ast.Member]:
        tok = self.tok
        if self._check_kw("extends"):
            self._dangling(description)
            self._advance()
            base = self._expect(TokenType.IDENT).value
            self._end_statement()
            return ast.ExtendsDecl(base, tok.loc)

        if self._check_kw("parameter"):
            self._advance()
            name = self._expect(TokenType.IDENT).value
            self._expect_op("::")
            typeref = self._parse_typeref()
            default = self.parse_expr() if self._accept_op("=") else None
            metadata = self._parse_optional_json()
            self._end_statement()
            return ast.ParameterDecl(name, typeref, default, description, metadata, tok.loc)

        if self._check_kw("variable"):
            self._advance()
            name = self._expect(TokenType.IDENT).value
            self._expect_op("::")
            typeref = self._parse_typeref()
            metadata = self._parse_optional_json()
            self._end_statement()
            return ast.VariableDecl(name, typeref, description, metadata, tok.loc)

        if self._check(TokenType.IDENT):
            name = self._advance().value
            interface = None
            instantiation = None
            if self._accept_op("::"):
                interface = self._expect(TokenType.IDENT).value
                if self._accept_op("="):
                    instantiation = self._parse_instantiation()
            else:
                self._expect_op("=")
                instantiation = self._parse_instantiation()
            metadata = self._parse_optional_json()
            self._end_statement()
            return ast.InstanceDecl(name, instantiation, interface, description, metadata, tok.loc)

        # Anything else closes the member list; the caller decides if it is valid.
        if self._check_kw("relations", "metadata", "end"):
            return None
        self._fail()
        return None

    def _parse_instantiation(self) -> ast.Instantiation:
        tok = self._expect(TokenType.IDENT)
        self._expect_op("(")
        args: list[ast.Argument] = []
        if not self._check_op(")"):
            while True:
                args.append(self._parse_argument())
                if not self._accept_op(","):
                    break
        self._expect_op(")")
        return ast.Instantiation(tok.value, tuple(args), tok.loc)

    def _parse_argument(self) -> ast.Argument:
        tok = self.tok
        name = None
        following = self._peek()
        if tok.type == TokenType.IDENT and (following.type, following.value) == (TokenType.OP, "="):
            name = self._advance().value
            self._advance()
        value: Union[Expr, ast.Instantiation]
        if self._at_instantiation():
            value = self._parse_instantiation()
        else:
            value = self.parse_expr()
        return ast.Argument(name, value, tok.loc)

    def _at_instantiation(self) -> bool:
        """``Name(...)`` with a capitalised name is a nested instantiation."""
        tok, nxt = self.tok, self._peek()
        return (
            tok.type == TokenType.IDENT
            and tok.value[:1].isupper()
            and nxt.type == TokenType.OP
            and nxt.value == "("
        )

    def _parse_relation(self, description: str) -> ast.Relation:
        tok = self.tok
        if self._check_kw("connect"):
            self._advance()
            self._expect_op("(")
            refs = [self._parse_ref()]
            while self._accept_op(","):
                refs.append(self._parse_ref())
            self._expect_op(")")
            if len(refs) < 2:
                raise JSMLSyntaxError("connect() needs at least two connectors", tok.loc)
            metadata = self._parse_optional_json()
            self._end_statement()
            return ast.ConnectStmt(tuple(refs), description, metadata, tok.loc)

        initial = False
        if self._check_kw("initial"):
            self._advance()
            initial = True
        lhs = self.parse_expr()
        self._expect_op("=")
        rhs = self.parse_expr()
        metadata = self._parse_optional_json()
        self._end_statement()
        return ast.EquationStmt(lhs, rhs, initial, description, metadata, tok.loc)

    # ------------------------------------------------------------------
    # Metadata (JSON object literals)
    # ------------------------------------------------------------------

    def _parse_optional_json(self) -> Optional[dict]:
        if self._check_op("{"):
            return self._parse_json_object()
        return None

    def _parse_json_object(self) -> dict:
        self._expect_op("{")
        obj: dict[str, Any] = {}
        if not self._check_op("}"):
            while True:
                key_tok = self._expect(TokenType.STRING)
                self._expect_op(":")
                if key_tok.value in obj:
                    raise JSMLSyntaxError(f"duplicate metadata key '{key_tok.value}'", key_tok.loc)
                obj[key_tok.value] = self._parse_json_value()
                if not self._accept_op(","):
                    break
        self._expect_op("}")
        return obj

    def _parse_json_value(self) -> Any:
        tok = self.tok
        if self._check_op("{"):
            return self._parse_json_object()
        if self._check_op("["):
            self._advance()
            items: list[Any] = []
            if not self._check_op("]"):
                while True:
                    items.append(self._parse_json_value())
                    if not self._accept_op(","):
                        break
            self._expect_op("]")
            return items
        if self._check(TokenType.STRING):
            return self._advance().value
        if self._check_op("-"):
            self._advance()
            return -_number(self._expect(TokenType.NUMBER).value)
        if self._check(TokenType.NUMBER):
            return _number(self._advance().value)
        if self._check_kw("true", "false"):
            return self._advance().value == "true"
        if tok.type == TokenType.IDENT and tok.value == "null":
            self._advance()
            return None
        self._note("null")
        self._fail()

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def parse_expr(self) -> Expr:
        """ternary := or ['?' ternary ':' ternary]"""
        condition = self._parse_or()
        tok = self.tok
        if self._accept_op("?"):
            true_expr = self.parse_expr()
            self._expect_op(":")
            false_expr = self.parse_expr()
            return IfExpr(condition, true_expr, false_expr, tok.loc)
        return condition

    def _parse_or(self) -> Expr:
        left = self._parse_and()
        while self._check_kw("or") or self._check_op("||"):
            loc = self._advance().loc
            left = BinaryOp("or", left, self._parse_and(), loc)
        return left

    def _parse_and(self) -> Expr:
        left = self._parse_not()
        while self._check_kw("and") or self._check_op("&&"):
            loc = self._advance().loc
            left = BinaryOp("and", left, self._parse_not(), loc)
        return left

    def _parse_not(self) -> Expr:
        if self._check_kw("not") or self._check_op("!"):
            loc = self._advance().loc
            return UnaryOp("not", self._parse_not(), loc)
        return self._parse_relational()

    def _parse_relational(self) -> Expr:
        left = self._parse_additive()
        if self._check_op(*_RELATIONAL):
            tok = self._advance()
            return BinaryOp(tok.value, left, self._parse_additive(), tok.loc)
        return left

    def _parse_additive(self) -> Expr:
        left = self._parse_multiplicative()
        while self._check_op(*_ADDITIVE):
            tok = self._advance()
            left = BinaryOp(tok.value, left, self._parse_multiplicative(), tok.loc)
        return left

    def _parse_multiplicative(self) -> Expr:
        left = self._parse_unary()
        while self._check_op(*_MULTIPLICATIVE):
            tok = self._advance()
            left = BinaryOp(tok.value, left, self._parse_unary(), tok.loc)
        return left

    def _parse_unary(self) -> Expr:
        if self._check_op("-", "+"):
            tok = self._advance()
            return UnaryOp(tok.value, self._parse_unary(), tok.loc)
        return self._parse_power()

    def _parse_power(self) -> Expr:
        base = self._parse_primary()
        if self._check_op(*_POWER):
            tok = self._advance()
            # Right associative; the exponent may carry a sign (x^-1).
            return BinaryOp(tok.value, base, self._parse_unary(), tok.loc)
        return base

    def _parse_primary(self) -> Expr:
        tok = self.tok
        if self._check(TokenType.NUMBER):
            self._advance()
            return Literal(_number(tok.value), tok.loc)
        if self._check(TokenType.STRING):
            self._advance()
            return Literal(tok.value, tok.loc)
        if self._check_kw("true", "false"):
            self._advance()
            return Literal(tok.value == "true", tok.loc)
        if self._check_op("("):
            self._advance()
            inner = self.parse_expr()
            self._expect_op(")")
            return inner
        if self._check_op("["):
            self._advance()
            return ArrayLiteral(self._parse_expr_list("]"), tok.loc)
        if self._check(TokenType.IDENT):
            nxt = self._peek()
            if nxt.type == TokenType.OP and nxt.value == "(":
                self._advance()
                self._advance()
                return FunctionCall(tok.value, self._parse_expr_list(")"), tok.loc)
            return self._parse_ref()
        self._fail()

    def _parse_expr_list(self, closer: str) -> tuple[Expr, ...]:
        """Comma separated expressions up to and including ``closer``."""
        items: list[Expr] = []
        if not self._check_op(closer):
            while True:
                items.append(self.parse_expr())
                if not self._accept_op(","):
                    break
        self._expect_op(closer)
        return tuple(items)

    def _parse_ref(self) -> ComponentRef:
        loc = self.tok.loc
        parts: list[ComponentRefPart] = []
        while True:
            name = self._expect(TokenType.IDENT).value
            subscripts: tuple[Expr, ...] = ()
            if self._accept_op("["):
                subscripts = self._parse_expr_list("]")
            parts.append(ComponentRefPart(name, subscripts))
            if not self._accept_op("."):
                break
        return ComponentRef(tuple(parts), loc)


def _number(text: str) -> Union[int, float]:
    if text.isdigit():
        return int(text)
    return float(text)


def parse(source: str, filename: str = "<string>") -> ast.SourceFile:
    """Parse JSML source text into a ``SourceFile``."""
    return Parser(tokenize(source, filename), filename).parse_file()


def parse_expression(source: str, filename: str = "<string>") -> Expr:
    """Parse a single expression (used by tools and tests)."""
    parser = Parser(tokenize(source, filename), filename)
    expr = parser.parse_expr()
    parser._skip_newlines()
    parser._expect(TokenType.EOF)
    return expr


def parse_file(path: Union[str, Path]) -> ast.SourceFile:
    """Read and parse a JSML file."""
    path = Path(path)
    return parse(path.read_text(encoding="utf-8"), str(path))
