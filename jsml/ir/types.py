"""
Type definitions for the IR.
"""

from enum import Enum


class PrimitiveType(Enum):
    """Primitive data types a JSML type alias can be based on."""

    REAL = "Real"
    INTEGER = "Integer"
    BOOLEAN = "Boolean"
    STRING = "String"

    @classmethod
    def from_name(cls, name: str) -> "PrimitiveType | None":
        for member in cls:
            if member.value == name:
                return member
        return None


class FieldRole(Enum):
    """Role of a connector field in connection expansion."""

    POTENTIAL = "potential"  # Equalized across a connection set
    FLOW = "flow"  # Sums to zero across a connection set
    STREAM = "stream"  # Flow-weighted mixing balance
    SINGLETON = "singleton"  # Shared value, equalized like a potential


class VariableKind(Enum):
    """Origin of a flattened variable."""

    VARIABLE = "variable"
    PARAMETER = "parameter"
    POTENTIAL = "potential"
    FLOW = "flow"
    STREAM = "stream"
    SINGLETON = "singleton"

    @classmethod
    def from_role(cls, role: FieldRole) -> "VariableKind":
        return cls(role.value)


class EquationKind(Enum):
    """Where an equation in the flattened system came from."""

    RELATION = "relation"  # Written in a relations block
    POTENTIAL = "potential"  # Potential equality from connect()
    FLOW = "flow"  # Flow conservation from connect()
    STREAM = "stream"  # Stream mixing balance from connect()
    INITIAL = "initial"  # initial lhs = rhs
