"""
Expression representation shared by the AST and the IR.

Expressions are immutable trees. The parser builds them with source
locations attached; locations never take part in equality, so two parses of
equivalent source compare equal and equations generated by the compiler can
be compared with hand-written ones.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Union

from jsml.errors import SourceLocation

LiteralValue = Union[bool, int, float, str]

# Scalar and element-wise operators are distinct operator strings.
ARITHMETIC_OPS = ("+", "-", "*", "/", "%", "^")
ELEMENTWISE_OPS = (".+", ".-", ".*", "./", ".%", ".^")
RELATIONAL_OPS = ("<", "<=", ">", ">=", "==", "!=")
LOGICAL_OPS = ("and", "or")


def scalar_op(op: str) -> str:
    """Return the scalar counterpart of an element-wise operator."""
    return op[1:] if op in ELEMENTWISE_OPS else op


@dataclass(frozen=True)
class Expr:
    """Base class for all expressions."""


@dataclass(frozen=True)
class Literal(Expr):
    """Literal constant value."""

    value: LiteralValue
    loc: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        if isinstance(self.value, str):
            return '"' + self.value.replace("\\", "\\\\").replace('"', '\\"') + '"'
        return repr(self.value)


@dataclass(frozen=True)
class ComponentRefPart:
    """
    One part of a hierarchical component reference.

    Examples:
        x         -> ComponentRefPart("x")
        arr[i]    -> ComponentRefPart("arr", (i,))
    """

    name: str
    subscripts: tuple[Expr, ...] = ()

    def __str__(self) -> str:
        if self.subscripts:
            subs = ", ".join(str(s) for s in self.subscripts)
            return f"{self.name}[{subs}]"
        return self.name


@dataclass(frozen=True)
class ComponentRef(Expr):
    """
    Dotted reference such as ``resistor.p.v`` or ``x[2]``.
    """

    parts: tuple[ComponentRefPart, ...]
    loc: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return ".".join(str(p) for p in self.parts)

    @property
    def is_simple(self) -> bool:
        """True if this is a single name without subscripts."""
        return len(self.parts) == 1 and not self.parts[0].subscripts

    @property
    def head(self) -> str:
        return self.parts[0].name

    def child(self, name: str) -> "ComponentRef":
        """Reference to a member of this reference."""
        return ComponentRef(self.parts + (ComponentRefPart(name),), self.loc)

    def prefixed(self, prefix: tuple[ComponentRefPart, ...]) -> "ComponentRef":
        return ComponentRef(prefix + self.parts, self.loc)


@dataclass(frozen=True)
class BinaryOp(Expr):
    """Binary operation: left op right."""

    op: str
    left: Expr
    right: Expr
    loc: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"({self.left} {self.op} {self.right})"


@dataclass(frozen=True)
class UnaryOp(Expr):
    """Unary operation: op operand (``-``, ``+`` or ``not``)."""

    op: str
    operand: Expr
    loc: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        if self.op == "not":
            return f"(not {self.operand})"
        return f"({self.op}{self.operand})"


@dataclass(frozen=True)
class FunctionCall(Expr):
    """Function call: func(args...)."""

    func: str
    args: tuple[Expr, ...]
    loc: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        args_str = ", ".join(str(a) for a in self.args)
        return f"{self.func}({args_str})"


@dataclass(frozen=True)
class IfExpr(Expr):
    """Conditional expression: condition ? true_expr : false_expr."""

    condition: Expr
    true_expr: Expr
    false_expr: Expr
    loc: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"({self.condition} ? {self.true_expr} : {self.false_expr})"


@dataclass(frozen=True)
class ArrayLiteral(Expr):
    """Array literal: [elem1, elem2, ...]."""

    elements: tuple[Expr, ...]
    loc: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        elems_str = ", ".join(str(e) for e in self.elements)
        return f"[{elems_str}]"


def ref(path: str) -> ComponentRef:
    """
    Build a reference from dotted text without subscripts.

    Examples:
        ref("x")          # x
        ref("r1.p.v")     # r1.p.v
    """
    return ComponentRef(tuple(ComponentRefPart(name) for name in path.split(".")))


def map_refs(expr: Expr, fn: Callable[[ComponentRef], Expr]) -> Expr:
    """Rebuild ``expr`` with every component reference replaced by ``fn(ref)``."""
    if isinstance(expr, ComponentRef):
        parts = tuple(
            replace(p, subscripts=tuple(map_refs(s, fn) for s in p.subscripts))
            for p in expr.parts
        )
        return fn(replace(expr, parts=parts))
    if isinstance(expr, BinaryOp):
        return replace(expr, left=map_refs(expr.left, fn), right=map_refs(expr.right, fn))
    if isinstance(expr, UnaryOp):
        return replace(expr, operand=map_refs(expr.operand, fn))
    if isinstance(expr, FunctionCall):
        return replace(expr, args=tuple(map_refs(a, fn) for a in expr.args))
    if isinstance(expr, IfExpr):
        return replace(
            expr,
            condition=map_refs(expr.condition, fn),
            true_expr=map_refs(expr.true_expr, fn),
            false_expr=map_refs(expr.false_expr, fn),
        )
    if isinstance(expr, ArrayLiteral):
        return replace(expr, elements=tuple(map_refs(e, fn) for e in expr.elements))
    return expr


def sum_of(terms: list[Expr]) -> Expr:
    """Left-associated sum of ``terms``."""
    total = terms[0]
    for term in terms[1:]:
        total = BinaryOp("+", total, term)
    return total
