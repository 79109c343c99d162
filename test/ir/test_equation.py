"""Tests for IR equations and variables (jsml.ir.equation, jsml.ir.variable)."""

from __future__ import annotations

from jsml.ir.equation import Equation
from jsml.ir.expr import BinaryOp, ComponentRefPart, FunctionCall, Literal, ref
from jsml.ir.types import EquationKind, FieldRole, PrimitiveType, VariableKind
from jsml.ir.variable import Variable

# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------

_KEEP = frozenset({"time", "pi", "e"})


def _prefix(*names: str) -> tuple[ComponentRefPart, ...]:
    return tuple(ComponentRefPart(n) for n in names)


# ---------------------------------------------------------------------------
# Equation
# ---------------------------------------------------------------------------


class TestEquation:
    def test_default_kind_is_relation(self) -> None:
        eq = Equation(ref("v"), BinaryOp("*", ref("i"), ref("R")))
        assert eq.kind == EquationKind.RELATION
        assert not eq.is_connection
        assert str(eq) == "v = (i * R)"

    def test_connection_kinds(self) -> None:
        for kind in (EquationKind.POTENTIAL, EquationKind.FLOW, EquationKind.STREAM):
            assert Equation(ref("a"), ref("b"), kind).is_connection
        assert not Equation(ref("a"), ref("b"), EquationKind.INITIAL).is_connection

    def test_description_does_not_take_part_in_equality(self) -> None:
        assert Equation(ref("a"), Literal(0), description="doc") == Equation(ref("a"), Literal(0))

    def test_qualified_prefixes_references(self) -> None:
        eq = Equation(ref("v"), BinaryOp("-", ref("p.v"), ref("n.v")), description="drop")
        moved = eq.qualified(_prefix("circuit", "r1"), _KEEP)
        assert moved == Equation(
            ref("circuit.r1.v"),
            BinaryOp("-", ref("circuit.r1.p.v"), ref("circuit.r1.n.v")),
        )
        assert moved.description == "drop"

    def test_qualified_keeps_builtins(self) -> None:
        eq = Equation(ref("x"), FunctionCall("sin", (BinaryOp("*", ref("pi"), ref("time")),)))
        moved = eq.qualified(_prefix("a"), _KEEP)
        assert moved.rhs == FunctionCall("sin", (BinaryOp("*", ref("pi"), ref("time")),))
        assert moved.lhs == ref("a.x")

    def test_qualified_with_empty_prefix_is_identity(self) -> None:
        eq = Equation(ref("x"), Literal(1))
        assert eq.qualified((), _KEEP) is eq


# ---------------------------------------------------------------------------
# Variable
# ---------------------------------------------------------------------------


class TestVariable:
    def test_parameter(self) -> None:
        p = Variable("resistor.R", VariableKind.PARAMETER, type_name="Resistance", unit="Ohm")
        p.value = Literal(100)
        assert p.is_parameter
        assert not p.is_connector_field
        assert str(p) == "resistor.R::Resistance [Ohm] = 100"

    def test_connector_field(self) -> None:
        v = Variable("p.v", VariableKind.from_role(FieldRole.POTENTIAL), unit="V")
        assert v.kind == VariableKind.POTENTIAL
        assert v.is_connector_field
        assert not v.is_parameter

    def test_array_variable(self) -> None:
        x = Variable("x", VariableKind.VARIABLE, shape=(3,), guess=Literal(0))
        assert not x.is_scalar
        assert str(x) == "x[3]::Real (guess=0)"

    def test_defaults(self) -> None:
        x = Variable("x", VariableKind.VARIABLE)
        assert x.primitive_type == PrimitiveType.REAL
        assert x.is_scalar
        assert x.value is None and x.min_value is None


def test_primitive_type_from_name() -> None:
    """Only the four primitive names resolve."""
    assert PrimitiveType.from_name("Integer") == PrimitiveType.INTEGER
    assert PrimitiveType.from_name("Voltage") is None


def test_every_field_role_has_a_variable_kind() -> None:
    """Connector fields flatten to variables tagged with their role."""
    for role in FieldRole:
        assert VariableKind.from_role(role).value == role.value
