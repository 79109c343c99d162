"""
Intermediate Representation (IR) for flattened JSML components.

This module provides the data structures the compiler emits. They are
designed to be serialized (see ``jsml.io``) and handed to a symbolic
modeling or code generation backend.
"""

from jsml.ir.types import PrimitiveType, FieldRole, VariableKind, EquationKind
from jsml.ir.expr import (
    Expr,
    Literal,
    BinaryOp,
    UnaryOp,
    FunctionCall,
    ComponentRef,
    ComponentRefPart,
    IfExpr,
    ArrayLiteral,
    ref,
)
from jsml.ir.variable import Variable
from jsml.ir.equation import Equation
from jsml.ir.system import EquationSystem, InstanceNode

__all__ = [
    # Types
    "PrimitiveType",
    "FieldRole",
    "VariableKind",
    "EquationKind",
    # Expressions
    "Expr",
    "Literal",
    "BinaryOp",
    "UnaryOp",
    "FunctionCall",
    "ComponentRef",
    "ComponentRefPart",
    "IfExpr",
    "ArrayLiteral",
    "ref",
    # System
    "Variable",
    "Equation",
    "EquationSystem",
    "InstanceNode",
]
