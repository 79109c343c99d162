"""
Tests for the SymPy backend.
"""

import pytest

pytest.importorskip("sympy")  # Skip if sympy not installed

import sympy as sp

from jsml import compile_file
from jsml.backends.sympy import SympyBackend
from jsml.config import CompilerOptions
from jsml.ir import (
    BinaryOp,
    ComponentRef,
    ComponentRefPart,
    Equation,
    EquationSystem,
    FunctionCall,
    IfExpr,
    Literal,
    Variable,
    VariableKind,
    ref,
)


@pytest.fixture
def oscillator(examples_dir):
    result = compile_file(
        examples_dir / "springdamper.jsml", options=CompilerOptions(emit_warnings=False)
    )
    return SympyBackend(result.system).compile()


def test_unknowns_are_functions_of_time(oscillator):
    """Unknowns become x(t); parameters stay plain symbols."""
    t = oscillator.t
    x = oscillator.symbols["x"]
    assert x == sp.Function("x", real=True)(t)
    assert isinstance(oscillator.symbols["k"], sp.Symbol)


def test_equations(oscillator):
    """der(x) = v becomes a derivative equation."""
    t = oscillator.t
    x, v = oscillator.symbols["x"], oscillator.symbols["v"]
    assert len(oscillator.equations) == 2
    first = oscillator.equations[0]
    assert first.lhs == sp.Derivative(x, t)
    assert first.rhs == v
    assert len(oscillator.initial_equations) == 1
    assert oscillator.initial_equations[0].lhs == v


def test_parameter_substitution(oscillator):
    """Parameters are replaced by their declared values."""
    t = oscillator.t
    x, v = oscillator.symbols["x"], oscillator.symbols["v"]
    values = oscillator.parameter_values()
    assert values[oscillator.symbols["d"]] == sp.Float(0.5)

    eq = oscillator.substitute(oscillator.equations[1])
    residual = sp.simplify(eq.lhs - eq.rhs - (sp.Derivative(v, t) + x + 0.5 * v))
    assert residual == 0


def test_substitute_overrides(oscillator):
    """Explicit values take precedence over declared ones."""
    expr = oscillator.symbols["k"] * 2
    assert oscillator.substitute(expr, {"k": 3}) == 6


def test_residuals(oscillator):
    """Residual form is lhs - rhs."""
    t = oscillator.t
    residuals = oscillator.residuals()
    assert residuals.shape == (2, 1)
    x, v = oscillator.symbols["x"], oscillator.symbols["v"]
    assert sp.simplify(residuals[0] - (sp.Derivative(x, t) - v)) == 0


def test_latex(oscillator):
    """One LaTeX string per equation."""
    lines = oscillator.to_latex()
    assert len(lines) == 2
    assert "\\frac{d}{d t}" in lines[0]


def test_requires_compile():
    """Using the backend before compile() fails clearly."""
    backend = SympyBackend(EquationSystem(name="Empty"))
    with pytest.raises(RuntimeError, match="compile"):
        backend.residuals()


def test_chained_parameters():
    """Parameter values that refer to other parameters are resolved."""
    system = EquationSystem(name="Chain")
    system.add_variable(Variable("k", VariableKind.PARAMETER, value=Literal(2)))
    system.add_variable(
        Variable("j", VariableKind.PARAMETER, value=BinaryOp("*", ref("k"), Literal(3)))
    )
    backend = SympyBackend(system).compile()
    values = backend.parameter_values()
    assert values[backend.symbols["j"]] == 6


def test_arrays_are_one_based():
    """y[1] is the first element of y."""
    system = EquationSystem(name="Arrays")
    system.add_variable(Variable("y", VariableKind.VARIABLE, shape=(2,)))
    first = ComponentRef((ComponentRefPart("y", (Literal(1),)),))
    system.add_equation(Equation(first, Literal(1)))
    system.add_equation(Equation(ref("y"), ref("y")))
    backend = SympyBackend(system).compile()
    assert backend.equations[0].lhs == backend.symbols[("y", 0)]
    # whole-array equations are split per element
    assert len(backend.equations) == 3


def test_conditional():
    """Conditionals become Piecewise expressions."""
    system = EquationSystem(name="Switch")
    system.add_variable(Variable("x", VariableKind.VARIABLE))
    cond = BinaryOp(">", ref("time"), Literal(1))
    system.add_equation(
        Equation(ref("x"), IfExpr(cond, Literal(1), FunctionCall("sin", (ref("time"),))))
    )
    backend = SympyBackend(system).compile()
    assert isinstance(backend.equations[0].rhs, sp.Piecewise)


def test_unknown_variable():
    """References to undeclared names are rejected."""
    system = EquationSystem(name="Broken")
    system.add_variable(Variable("x", VariableKind.VARIABLE))
    system.add_equation(Equation(ref("x"), ref("nope")))
    with pytest.raises(ValueError, match="Unknown variable: nope"):
        SympyBackend(system).compile()
