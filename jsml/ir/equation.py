"""
Equation representation in the IR.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from jsml.errors import SourceLocation
from jsml.ir.expr import Expr, map_refs, ComponentRef, ComponentRefPart
from jsml.ir.types import EquationKind


@dataclass(frozen=True)
class Equation:
    """
    An equality between two expressions.

    Examples:
        v = i * R                  -> RELATION
        p1.v = p2.v                -> POTENTIAL (from connect)
        p1.i + p2.i + p3.i = 0     -> FLOW (from connect)
        initial x = 2              -> INITIAL
    """

    lhs: Expr
    rhs: Expr
    kind: EquationKind = EquationKind.RELATION
    description: str = field(default="", compare=False)
    loc: Optional[SourceLocation] = field(default=None, compare=False, repr=False)

    def __str__(self) -> str:
        return f"{self.lhs} = {self.rhs}"

    @property
    def is_connection(self) -> bool:
        """True for equations generated by connect()."""
        return self.kind in (EquationKind.POTENTIAL, EquationKind.FLOW, EquationKind.STREAM)

    def qualified(self, prefix: tuple[ComponentRefPart, ...], keep: frozenset) -> "Equation":
        """
        Move the equation into an enclosing namespace.

        Every reference whose head is not in ``keep`` (builtins such as
        ``time``) gets ``prefix`` prepended.
        """
        if not prefix:
            return self

        def qualify(r: ComponentRef) -> ComponentRef:
            if r.head in keep:
                return r
            return r.prefixed(prefix)

        return Equation(
            map_refs(self.lhs, qualify),
            map_refs(self.rhs, qualify),
            self.kind,
            self.description,
            self.loc,
        )
