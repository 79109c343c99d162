"""
Pretty printer: AST back to canonical JSML source.

``parse(format_file(tree))`` yields a tree equal to ``tree``; parentheses
are emitted only where operator precedence requires them.
"""

from __future__ import annotations

import json
from typing import Optional, Union

from jsml import ast
from jsml.ir.expr import (
    ArrayLiteral,
    BinaryOp,
    ComponentRef,
    Expr,
    FunctionCall,
    IfExpr,
    Literal,
    UnaryOp,
)

INDENT = "  "

# Binding strength of each operator; higher binds tighter.
_PREC_TERNARY = 0
_PREC_OR = 1
_PREC_AND = 2
_PREC_NOT = 3
_PREC_RELATIONAL = 4
_PREC_ADDITIVE = 5
_PREC_MULTIPLICATIVE = 6
_PREC_UNARY = 7
_PREC_POWER = 8
_PREC_PRIMARY = 9

_BINARY_PREC = {
    "or": _PREC_OR,
    "and": _PREC_AND,
    **{op: _PREC_RELATIONAL for op in ("<", "<=", ">", ">=", "==", "!=")},
    **{op: _PREC_ADDITIVE for op in ("+", "-", ".+", ".-")},
    **{op: _PREC_MULTIPLICATIVE for op in ("*", "/", "%", ".*", "./", ".%")},
    **{op: _PREC_POWER for op in ("^", ".^")},
}


def _precedence(expr: Expr) -> int:
    if isinstance(expr, IfExpr):
        return _PREC_TERNARY
    if isinstance(expr, BinaryOp):
        return _BINARY_PREC[expr.op]
    if isinstance(expr, UnaryOp):
        return _PREC_NOT if expr.op == "not" else _PREC_UNARY
    if isinstance(expr, Literal) and not isinstance(expr.value, (bool, str)) and expr.value < 0:
        return _PREC_UNARY
    return _PREC_PRIMARY


def _operand_levels(op: str) -> tuple[int, int]:
    """Minimum precedence required of the (left, right) operands."""
    prec = _BINARY_PREC[op]
    if prec == _PREC_POWER:
        return _PREC_PRIMARY, _PREC_UNARY
    if prec == _PREC_RELATIONAL:
        return _PREC_ADDITIVE, _PREC_ADDITIVE
    return prec, prec + 1


def format_literal(value: Union[bool, int, float, str]) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    return repr(value)


def format_expr(expr: Expr, min_prec: int = _PREC_TERNARY) -> str:
    """Render an expression, parenthesised if it binds looser than ``min_prec``."""
    text = _format_expr(expr)
    if _precedence(expr) < min_prec:
        return f"({text})"
    return text


def _format_expr(expr: Expr) -> str:
    if isinstance(expr, Literal):
        return format_literal(expr.value)
    if isinstance(expr, ComponentRef):
        return ".".join(
            part.name
            + (f"[{', '.join(format_expr(s) for s in part.subscripts)}]" if part.subscripts else "")
            for part in expr.parts
        )
    if isinstance(expr, BinaryOp):
        left_prec, right_prec = _operand_levels(expr.op)
        left = format_expr(expr.left, left_prec)
        right = format_expr(expr.right, right_prec)
        if expr.op in ("^", ".^"):
            return f"{left}{expr.op}{right}" if expr.op == "^" else f"{left} {expr.op} {right}"
        return f"{left} {expr.op} {right}"
    if isinstance(expr, UnaryOp):
        if expr.op == "not":
            return f"not {format_expr(expr.operand, _PREC_NOT)}"
        return f"{expr.op}{format_expr(expr.operand, _PREC_UNARY)}"
    if isinstance(expr, FunctionCall):
        return f"{expr.func}({', '.join(format_expr(a) for a in expr.args)})"
    if isinstance(expr, IfExpr):
        return (
            f"{format_expr(expr.condition, _PREC_OR)} ? "
            f"{format_expr(expr.true_expr)} : {format_expr(expr.false_expr)}"
        )
    if isinstance(expr, ArrayLiteral):
        return f"[{', '.join(format_expr(e) for e in expr.elements)}]"
    raise TypeError(f"Cannot format expression type: {type(expr)}")


def format_typeref(typeref: ast.TypeRef) -> str:
    text = typeref.name
    if typeref.attributes:
        attrs = ", ".join(f"{a.name}={format_expr(a.value)}" for a in typeref.attributes)
        text += f"({attrs})"
    if typeref.dims:
        text += f"[{', '.join(format_expr(d) for d in typeref.dims)}]"
    return text


def format_instantiation(inst: ast.Instantiation) -> str:
    args = []
    for arg in inst.args:
        if isinstance(arg.value, ast.Instantiation):
            value = format_instantiation(arg.value)
        else:
            value = format_expr(arg.value)
        args.append(f"{arg.name}={value}" if arg.name else value)
    return f"{inst.type_name}({', '.join(args)})"


def _json(metadata: Optional[dict]) -> str:
    if metadata is None:
        return ""
    return " " + json.dumps(metadata, ensure_ascii=False)


def _with_description(lines: list[str], description: str, indent: str) -> None:
    if description:
        lines.append(f"{indent}{format_literal(description)}")


def _format_member(member: ast.Member) -> str:
    if isinstance(member, ast.ExtendsDecl):
        return f"extends {member.base}"
    if isinstance(member, ast.ParameterDecl):
        default = f" = {format_expr(member.default)}" if member.default is not None else ""
        typeref = format_typeref(member.type)
        return f"parameter {member.name}::{typeref}{default}{_json(member.metadata)}"
    if isinstance(member, ast.VariableDecl):
        return f"variable {member.name}::{format_typeref(member.type)}{_json(member.metadata)}"
    text = member.name
    if member.interface:
        text += f"::{member.interface}"
    if member.instantiation is not None:
        text += f" = {format_instantiation(member.instantiation)}"
    return text + _json(member.metadata)


def _format_relation(relation: ast.Relation) -> str:
    if isinstance(relation, ast.ConnectStmt):
        refs = ", ".join(format_expr(r) for r in relation.refs)
        return f"connect({refs}){_json(relation.metadata)}"
    prefix = "initial " if relation.initial else ""
    return (
        f"{prefix}{format_expr(relation.lhs)} = {format_expr(relation.rhs)}"
        f"{_json(relation.metadata)}"
    )


def format_declaration(decl: ast.Declaration) -> str:
    lines: list[str] = []
    _with_description(lines, decl.description, "")
    if isinstance(decl, ast.TypeDecl):
        lines.append(f"type {decl.name} = {format_typeref(decl.base)}{_json(decl.metadata)}")
        return "\n".join(lines)

    if isinstance(decl, ast.ConnectorDecl):
        lines.append(f"connector {decl.name}")
        for f in decl.fields:
            _with_description(lines, f.description, INDENT)
            lines.append(
                f"{INDENT}{f.role.value} {f.name}::{format_typeref(f.type)}{_json(f.metadata)}"
            )
        if decl.metadata is not None:
            lines.append(f"metadata{_json(decl.metadata)}")
        lines.append("end")
        return "\n".join(lines)

    lines.append(f"{'partial ' if decl.partial else ''}component {decl.name}")
    for member in decl.members:
        _with_description(lines, getattr(member, "description", ""), INDENT)
        lines.append(INDENT + _format_member(member))
    if decl.relations:
        lines.append("relations")
        for relation in decl.relations:
            _with_description(lines, relation.description, INDENT)
            lines.append(INDENT + _format_relation(relation))
    if decl.metadata is not None:
        lines.append(f"metadata{_json(decl.metadata)}")
    lines.append("end")
    return "\n".join(lines)


def format_file(source: ast.SourceFile) -> str:
    """Render a whole file."""
    chunks = [f"import {format_literal(imp.path)}" for imp in source.imports]
    chunks.extend(format_declaration(d) for d in source.declarations)
    return "\n\n".join(chunks) + "\n"
