"""
SymPy backend for symbolic inspection of a compiled equation system.

This backend converts the flattened IR to SymPy expressions, enabling:
- Equations as ``sympy.Eq`` objects
- Parameter substitution
- LaTeX export for documentation

Unknowns become functions of time, ``x(t)``, so ``der(x)`` maps to
``Derivative(x(t), t)``. Parameters become plain real symbols. Nothing is
solved or simplified here.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

import sympy as sp
from sympy import latex

from jsml.ir.expr import (
    ArrayLiteral,
    BinaryOp,
    ComponentRef,
    Expr,
    FunctionCall,
    IfExpr,
    Literal,
    UnaryOp,
    scalar_op,
)
from jsml.ir.equation import Equation
from jsml.ir.system import EquationSystem
from jsml.ir.types import PrimitiveType
from jsml.ir.variable import Variable

Key = Union[str, tuple]

_FUNCTIONS: dict[str, Callable] = {
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "asin": sp.asin,
    "acos": sp.acos,
    "atan": sp.atan,
    "atan2": sp.atan2,
    "sinh": sp.sinh,
    "cosh": sp.cosh,
    "tanh": sp.tanh,
    "exp": sp.exp,
    "log": sp.log,
    "log10": lambda x: sp.log(x, 10),
    "sqrt": sp.sqrt,
    "abs": sp.Abs,
    "sign": sp.sign,
    "min": sp.Min,
    "max": sp.Max,
    "floor": sp.floor,
    "ceil": sp.ceiling,
}

_BINARY: dict[str, Callable] = {
    "+": lambda l, r: l + r,
    "-": lambda l, r: l - r,
    "*": lambda l, r: l * r,
    "/": lambda l, r: l / r,
    "^": lambda l, r: l**r,
    "%": sp.Mod,
    "==": sp.Eq,
    "!=": sp.Ne,
    "<": lambda l, r: l < r,
    "<=": lambda l, r: l <= r,
    ">": lambda l, r: l > r,
    ">=": lambda l, r: l >= r,
    "and": sp.And,
    "or": sp.Or,
}


class SympyBackend:
    """
    SymPy view of an ``EquationSystem``.

    Example:
        >>> backend = SympyBackend(result.system).compile()
        >>> backend.equations[0]
        Eq(Derivative(x(t), t), -x(t))
    """

    def __init__(self, system: EquationSystem) -> None:
        self.system = system
        self.t = sp.Symbol("t", real=True)

        # For scalars: symbols["x"] = x(t) or Symbol("k")
        # For arrays: symbols[("x", i)] (0-based) plus symbols["x"] as a Matrix
        self.symbols: dict[Key, Any] = {}
        self.var_shapes: dict[str, tuple[int, ...]] = {}

        self.equations: list[sp.Basic] = []
        self.initial_equations: list[sp.Basic] = []
        self._compiled = False

    def compile(self) -> "SympyBackend":
        """Convert the equation system to SymPy equations."""
        for var in self.system.parameters:
            self._declare(var, lambda name: sp.Symbol(name, real=True))
        for var in self.system.variables:
            if var.primitive_type == PrimitiveType.REAL:
                self._declare(var, lambda name: sp.Function(name, real=True)(self.t))
            else:
                self._declare(var, lambda name: sp.Symbol(name))

        self.equations = [e for eq in self.system.equations for e in self._convert_equation(eq)]
        self.initial_equations = [
            e for eq in self.system.initial_equations for e in self._convert_equation(eq)
        ]
        self._compiled = True
        return self

    def _ensure_compiled(self) -> None:
        if not self._compiled:
            raise RuntimeError("Backend not compiled; call compile() first")

    def _declare(self, var: Variable, make: Callable[[str], sp.Basic]) -> None:
        self.var_shapes[var.name] = var.shape
        shape = var.shape
        if not shape:
            self.symbols[var.name] = make(var.name)
        elif len(shape) == 1:
            elements = []
            for i in range(shape[0]):
                sym = make(f"{var.name}_{i}")
                self.symbols[(var.name, i)] = sym
                elements.append(sym)
            self.symbols[var.name] = sp.Matrix(elements)
        elif len(shape) == 2:
            n, m = shape
            for i in range(n):
                for j in range(m):
                    self.symbols[(var.name, i, j)] = make(f"{var.name}_{i}_{j}")
            self.symbols[var.name] = sp.Matrix(
                n, m, lambda i, j: self.symbols[(var.name, i, j)]
            )
        else:
            raise NotImplementedError(
                f"Arrays with more than 2 dimensions not supported: {var.name} has shape {shape}"
            )

    def _convert_equation(self, eq: Equation) -> list[sp.Basic]:
        lhs = self._convert_expr(eq.lhs)
        rhs = self._convert_expr(eq.rhs)
        if isinstance(lhs, sp.MatrixBase) or isinstance(rhs, sp.MatrixBase):
            lhs_elems = list(lhs) if isinstance(lhs, sp.MatrixBase) else None
            rhs_elems = list(rhs) if isinstance(rhs, sp.MatrixBase) else None
            n = len(lhs_elems if lhs_elems is not None else rhs_elems)
            return [
                sp.Eq(
                    lhs_elems[k] if lhs_elems is not None else lhs,
                    rhs_elems[k] if rhs_elems is not None else rhs,
                    evaluate=False,
                )
                for k in range(n)
            ]
        return [sp.Eq(lhs, rhs, evaluate=False)]

    def _flatten_component_ref(self, ref: ComponentRef) -> str:
        """Dotted variable name of ``ref`` without the subscripts of its last part."""
        parts = [str(p) for p in ref.parts[:-1]]
        parts.append(ref.parts[-1].name)
        return ".".join(parts)

    def _apply_subscripts(self, var_name: str, subscripts: tuple[Expr, ...]) -> sp.Basic:
        """Element of an array variable; JSML indices are 1-based."""
        shape = self.var_shapes.get(var_name)
        if not shape:
            raise ValueError(f"Cannot index scalar variable: {var_name}")
        if len(subscripts) != len(shape):
            raise NotImplementedError(
                f"Partial indexing not supported in SymPy backend: {var_name}"
            )
        indices = []
        for sub in subscripts:
            if not isinstance(sub, Literal) or isinstance(sub.value, bool):
                raise NotImplementedError(
                    f"Symbolic array indexing not supported in SymPy backend. "
                    f"Variable '{var_name}' indexed with non-literal: {sub}"
                )
            indices.append(int(sub.value) - 1)
        key = (var_name, *indices)
        if key not in self.symbols:
            raise ValueError(f"Index out of bounds: {var_name}{[i + 1 for i in indices]}")
        return self.symbols[key]

    def _convert_expr(self, expr: Expr) -> Any:
        """Convert an IR expression to a SymPy expression."""
        if isinstance(expr, Literal):
            if isinstance(expr.value, bool):
                return sp.true if expr.value else sp.false
            elif isinstance(expr.value, int):
                return sp.Integer(expr.value)
            elif isinstance(expr.value, float):
                return sp.Float(expr.value)
            else:
                raise ValueError(f"String literal has no symbolic form: {expr}")

        elif isinstance(expr, ComponentRef):
            if expr.is_simple and expr.head == "time":
                return self.t
            if expr.is_simple and expr.head == "pi":
                return sp.pi
            if expr.is_simple and expr.head == "e":
                return sp.E
            var_name = self._flatten_component_ref(expr)
            last_part = expr.parts[-1]
            if last_part.subscripts:
                return self._apply_subscripts(var_name, last_part.subscripts)
            if var_name not in self.symbols:
                raise ValueError(f"Unknown variable: {var_name}")
            return self.symbols[var_name]

        elif isinstance(expr, BinaryOp):
            left = self._convert_expr(expr.left)
            right = self._convert_expr(expr.right)
            op = scalar_op(expr.op)
            if op not in _BINARY:
                raise ValueError(f"Unsupported binary operator: {expr.op}")
            if op != expr.op or (op in ("^", "%") and _has_matrix(left, right)):
                return _elementwise(_BINARY[op], left, right)
            return _BINARY[op](left, right)

        elif isinstance(expr, UnaryOp):
            operand = self._convert_expr(expr.operand)
            if expr.op == "-":
                return -operand
            elif expr.op == "+":
                return operand
            elif expr.op == "not":
                return sp.Not(operand)
            else:
                raise ValueError(f"Unsupported unary operator: {expr.op}")

        elif isinstance(expr, FunctionCall):
            args = [self._convert_expr(arg) for arg in expr.args]
            if expr.func == "der":
                return sp.diff(args[0], self.t)
            if expr.func == "sum":
                return sp.Add(*args[0]) if isinstance(args[0], sp.MatrixBase) else args[0]
            if expr.func not in _FUNCTIONS:
                raise ValueError(f"Unsupported function: {expr.func}")
            func = _FUNCTIONS[expr.func]
            if len(args) == 1 and isinstance(args[0], sp.MatrixBase):
                return args[0].applyfunc(func)
            return func(*args)

        elif isinstance(expr, IfExpr):
            cond = self._convert_expr(expr.condition)
            true_val = self._convert_expr(expr.true_expr)
            false_val = self._convert_expr(expr.false_expr)
            return sp.Piecewise((true_val, cond), (false_val, True))

        elif isinstance(expr, ArrayLiteral):
            elements = [self._convert_expr(e) for e in expr.elements]
            if elements and all(isinstance(e, sp.MatrixBase) for e in elements):
                return sp.Matrix([list(e) for e in elements])
            return sp.Matrix(elements)

        else:
            raise ValueError(f"Unsupported expression type: {type(expr)}")

    def parameter_values(self) -> dict[sp.Basic, sp.Basic]:
        """
        Effective parameter values keyed by parameter symbol.

        Values that refer to other parameters are substituted until only
        literals remain. Parameters without a value are left out.
        """
        self._ensure_compiled()
        values: dict[sp.Basic, sp.Basic] = {}
        for var in self.system.parameters:
            if var.value is None or not var.is_scalar or var.primitive_type == PrimitiveType.STRING:
                continue
            values[self.symbols[var.name]] = self._convert_expr(var.value)
        for _ in range(len(values)):
            resolved = {k: v.xreplace(values) for k, v in values.items()}
            if resolved == values:
                break
            values = resolved
        return values

    def substitute(
        self, expr: sp.Basic, values: Optional[dict[str, Union[int, float]]] = None
    ) -> sp.Basic:
        """
        Substitute parameter values into ``expr``.

        Args:
            expr: A SymPy expression or equation from this backend
            values: Extra values by variable name; they take precedence over
                the parameter values of the system
        """
        subs = dict(self.parameter_values())
        for name, value in (values or {}).items():
            subs[self.symbols[name]] = value
        return expr.subs(subs)

    def residuals(self) -> sp.Matrix:
        """``lhs - rhs`` of every equation, as a column matrix."""
        self._ensure_compiled()
        return sp.Matrix([eq.lhs - eq.rhs for eq in self.equations])

    def to_latex(self, substitute: bool = False) -> list[str]:
        """
        LaTeX of every equation, in system order.

        Args:
            substitute: Replace parameters by their values first
        """
        self._ensure_compiled()
        equations = self.equations
        if substitute:
            equations = [self.substitute(eq) for eq in equations]
        return [latex(eq) for eq in equations]


def _has_matrix(*values: Any) -> bool:
    return any(isinstance(v, sp.MatrixBase) for v in values)


def _elementwise(fn: Callable, left: Any, right: Any) -> Any:
    if isinstance(left, sp.MatrixBase) and isinstance(right, sp.MatrixBase):
        if left.shape != right.shape:
            raise ValueError(
                f"Shape mismatch in element-wise operation: {left.shape} vs {right.shape}"
            )
        return sp.Matrix(left.rows, left.cols, [fn(a, b) for a, b in zip(left, right)])
    if isinstance(left, sp.MatrixBase):
        return left.applyfunc(lambda a: fn(a, right))
    if isinstance(right, sp.MatrixBase):
        return right.applyfunc(lambda b: fn(left, b))
    return fn(left, right)
