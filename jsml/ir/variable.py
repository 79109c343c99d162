"""
Variable and parameter declarations in the flattened IR.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from jsml.ir.expr import Expr
from jsml.ir.types import PrimitiveType, VariableKind

Number = Union[int, float]


@dataclass
class Variable:
    """
    A flattened variable or parameter, named by its dotted instance path.

    Connector fields become variables whose kind records their role
    (``resistor.p.v`` is a ``POTENTIAL``). Parameters carry their effective
    value expression in ``value``; ``overridden`` tells whether it came from
    an instantiation argument rather than the declaration default.
    """

    name: str
    kind: VariableKind
    primitive_type: PrimitiveType = PrimitiveType.REAL
    type_name: str = "Real"

    unit: str = ""
    shape: tuple[int, ...] = ()

    # Initial guess (variables) / effective value (parameters)
    guess: Optional[Expr] = None
    value: Optional[Expr] = None
    overridden: bool = False

    min_value: Optional[Number] = None
    max_value: Optional[Number] = None
    description: str = ""

    @property
    def is_parameter(self) -> bool:
        """True if this is a parameter."""
        return self.kind == VariableKind.PARAMETER

    @property
    def is_connector_field(self) -> bool:
        """True if this variable belongs to a connector instance."""
        return self.kind not in (VariableKind.VARIABLE, VariableKind.PARAMETER)

    @property
    def is_scalar(self) -> bool:
        """True if this is a scalar variable."""
        return not self.shape

    def __str__(self) -> str:
        parts = [self.name]
        if self.shape:
            parts.append(f"[{','.join(map(str, self.shape))}]")
        parts.append(f"::{self.type_name}")
        if self.unit:
            parts.append(f" [{self.unit}]")
        if self.value is not None:
            parts.append(f" = {self.value}")
        elif self.guess is not None:
            parts.append(f" (guess={self.guess})")
        return "".join(parts)
