"""
Tests for name resolution, type and unit checking (jsml.resolver).

Covers:
- Library-wide and member-level duplicate detection
- Type alias resolution (units, bounds, shapes, cycles)
- Connector balance rules
- Reference resolution through connectors and sub-components
- Unit inference of expressions
- Instantiation arguments and structural interface checks
"""

import math

import pytest

from jsml.compiler import load_library
from jsml.errors import (
    CompilationError,
    ConnectorTypeMismatchError,
    CyclicDefinitionError,
    DuplicateSymbolError,
    InterfaceMismatchError,
    JSMLError,
    TypeMismatchError,
    UnbalancedConnectorError,
    UnitMismatchError,
    UnknownParameterError,
    UnresolvedReferenceError,
)
from jsml.ir.expr import ref
from jsml.ir.types import FieldRole, PrimitiveType
from jsml.parser import parse, parse_expression
from jsml.resolver import (
    ComponentChecker,
    Library,
    RefKind,
    Resolver,
    SymbolKind,
    resolve,
)
from jsml import units

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

LIBRARY = """
type Voltage = Real(units="V")
type Current = Real(units="A")
type Resistance = Real(units="Ohm", min=0)
type Position = Real(units="m")
type Velocity = Real(units="m/s")

connector Pin
  potential v::Voltage
  flow i::Current
end

partial component TwoPin
  p = Pin()
  n = Pin()
  variable v::Voltage
  variable i::Current
relations
  v = p.v - n.v
  p.i + n.i = 0
  i = p.i
end

component Resistor
  extends TwoPin
  parameter R::Resistance = 1
relations
  v = i*R
end

component Ground
  p = Pin()
relations
  p.v = 0
end
"""


def _resolve(source: str) -> Resolver:
    return resolve(load_library(parse(LIBRARY + source)))


def _errors(source: str) -> list[JSMLError]:
    """Every error of the library, without raising."""
    return Resolver(Library([parse(LIBRARY + source)])).check_library()


def _single_error(source: str) -> JSMLError:
    errors = _errors(source)
    assert len(errors) == 1, [str(e) for e in errors]
    return errors[0]


def _line_of(source: str, text: str) -> int:
    return (LIBRARY + source).splitlines().index(text) + 1


# ---------------------------------------------------------------------------
# Library and member tables
# ---------------------------------------------------------------------------


class TestSymbols:
    def test_library_resolves(self) -> None:
        resolver = _resolve("")
        assert [c.name for c in resolver.library.components()] == ["TwoPin", "Resistor", "Ground"]
        assert resolver.library.connector("Pin") is not None
        assert resolver.library.connector("Voltage") is None

    def test_extends_expands_members_in_place(self) -> None:
        info = _resolve("").component("Resistor")
        assert list(info.symbols) == ["p", "n", "v", "i", "R"]
        assert info.symbols["p"].kind == SymbolKind.CONNECTOR
        assert info.symbols["p"].owner == "TwoPin"
        assert info.symbols["R"].owner == "Resistor"
        assert len(info.equations) == 4
        assert [s.name for s in info.connectors] == ["p", "n"]

    def test_duplicate_declaration(self) -> None:
        error = _single_error('type Voltage = Real(units="mV")')
        assert isinstance(error, DuplicateSymbolError)
        assert "already declared" in error.message

    def test_duplicate_member(self) -> None:
        error = _single_error("component D\n  variable x::Real\n  parameter x::Real = 1\nend")
        assert isinstance(error, DuplicateSymbolError)
        assert error.path == "D"

    def test_member_redeclared_by_extends(self) -> None:
        error = _single_error("component D\n  variable v::Real\n  extends TwoPin\nend")
        assert isinstance(error, DuplicateSymbolError)
        assert "'v' is already declared in 'D'" in error.message

    @pytest.mark.parametrize("name", ["time", "pi", "e"])
    def test_builtins_cannot_be_redeclared(self, name: str) -> None:
        error = _single_error(f"component D\n  variable {name}::Real\nend")
        assert isinstance(error, DuplicateSymbolError)
        assert "builtin" in error.message

    def test_extends_cycle(self) -> None:
        error = _single_error("component A\n  extends B\nend\ncomponent B\n  extends A\nend")
        assert isinstance(error, CyclicDefinitionError)
        assert "A -> B -> A" in error.message

    def test_component_lookup_of_a_type(self) -> None:
        with pytest.raises(TypeMismatchError, match="is a type, not a component"):
            _resolve("").component("Voltage")

    def test_unknown_component(self) -> None:
        error = _single_error("component D\n  r = Resistr()\nend")
        assert isinstance(error, UnresolvedReferenceError)
        assert error.path == "D.r"


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------


class TestTypes:
    def test_alias_chain(self) -> None:
        resolver = _resolve("type Drop = Voltage(max=10)")
        resolved = resolver.resolve_type(parse("type X = Drop").declarations[0].base)
        assert resolved.name == "Drop"
        assert resolved.primitive == PrimitiveType.REAL
        assert resolved.units == "V"
        assert resolved.max_value == 10

    def test_array_shape(self) -> None:
        resolver = _resolve("type Vec3 = Real[3]")
        resolved = resolver.resolve_type(parse("type X = Vec3[2]").declarations[0].base)
        assert resolved.shape == (3, 2)

    def test_unknown_type(self) -> None:
        error = _single_error("component D\n  variable x::Voltag\nend")
        assert isinstance(error, UnresolvedReferenceError)
        assert error.path == "D.x"

    def test_unknown_unit(self) -> None:
        error = _single_error('type Bad = Real(units="furlongz")')
        assert isinstance(error, UnitMismatchError)

    def test_units_on_boolean(self) -> None:
        error = _single_error('type Bad = Boolean(units="V")')
        assert isinstance(error, TypeMismatchError)

    def test_min_above_max(self) -> None:
        error = _single_error("type Bad = Real(min=2, max=1)")
        assert isinstance(error, TypeMismatchError)
        assert "greater than" in error.message

    def test_unknown_attribute(self) -> None:
        error = _single_error("type Bad = Real(unit=1)")
        assert isinstance(error, UnknownParameterError)

    def test_type_cycle(self) -> None:
        errors = _errors("type A = B\ntype B = A")
        assert errors
        assert all(isinstance(e, CyclicDefinitionError) for e in errors)

    def test_non_constant_dimension(self) -> None:
        error = _single_error("component D\n  parameter n::Integer = 3\n  variable x::Real[n]\nend")
        assert isinstance(error, TypeMismatchError)
        assert "dimensions" in error.message


# ---------------------------------------------------------------------------
# Connectors
# ---------------------------------------------------------------------------


class TestConnectors:
    def test_unbalanced_potential_and_flow(self) -> None:
        error = _single_error(
            "connector Bad\n  potential v::Voltage\n  flow i::Current\n  flow j::Current\nend"
        )
        assert isinstance(error, UnbalancedConnectorError)
        assert error.path == "Bad"

    def test_stream_needs_one_flow(self) -> None:
        error = _single_error("connector Bad\n  potential p::Real\n  stream h::Real\nend")
        assert isinstance(error, UnbalancedConnectorError)
        assert "exactly one flow" in error.message

    def test_stream_connector(self) -> None:
        _resolve("connector Fluid\n  potential p::Real\n  flow m::Real\n  stream h::Real\nend")

    def test_flow_must_be_numeric(self) -> None:
        error = _single_error("connector Bad\n  potential v::Real\n  flow i::Boolean\nend")
        assert isinstance(error, TypeMismatchError)

    def test_singleton_may_be_a_string(self) -> None:
        _resolve("connector Bus\n  singleton medium::String\nend")

    def test_duplicate_field(self) -> None:
        error = _single_error("connector Bad\n  potential v::Real\n  flow v::Real\nend")
        assert isinstance(error, DuplicateSymbolError)


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


class TestReferences:
    def test_connector_field(self) -> None:
        resolver = _resolve("")
        info = resolver.component("Resistor")
        target = resolver.lookup_ref(info, ref("p.i"))
        assert target.kind == RefKind.VALUE
        assert target.role == FieldRole.FLOW
        assert target.type.units == "A"
        assert resolver.lookup_ref(info, ref("p")).kind == RefKind.CONNECTOR

    def test_sub_component_member(self) -> None:
        resolver = _resolve("component C\n  r = Resistor()\nend")
        info = resolver.component("C")
        assert resolver.lookup_ref(info, ref("r.R")).parameter
        assert resolver.lookup_ref(info, ref("r.p.v")).type.units == "V"
        assert resolver.lookup_ref(info, ref("r")).kind == RefKind.COMPONENT

    def test_builtin_time(self) -> None:
        resolver = _resolve("")
        target = resolver.lookup_ref(resolver.component("Ground"), ref("time"))
        assert target.builtin == "time"
        assert not target.parameter

    def test_unknown_connector_field(self) -> None:
        source = "component D\n  p = Pin()\nrelations\n  p.x = 0\nend"
        error = _single_error(source)
        assert isinstance(error, UnresolvedReferenceError)
        assert "has no field 'x'" in error.message
        assert error.location.line == _line_of(source, "  p.x = 0")
        assert error.location.column == 3

    def test_unknown_name(self) -> None:
        error = _single_error("component D\nrelations\n  y = 1\nend")
        assert isinstance(error, UnresolvedReferenceError)
        assert "unresolved reference 'y'" in error.message

    def test_declaration_name_is_not_a_member(self) -> None:
        error = _single_error("component D\n  variable x::Real\nrelations\n  x = Voltage\nend")
        assert isinstance(error, UnresolvedReferenceError)
        assert "names a type" in error.message

    def test_member_of_a_variable(self) -> None:
        error = _single_error("component D\n  variable x::Real\nrelations\n  x.y = 1\nend")
        assert isinstance(error, UnresolvedReferenceError)

    def test_connect_requires_connectors(self) -> None:
        source = "component D\n  variable v::Voltage\n  p = Pin()\nrelations\n  connect(v, p)\nend"
        error = _single_error(source)
        assert isinstance(error, ConnectorTypeMismatchError)

    def test_connector_used_as_value(self) -> None:
        error = _single_error("component D\n  p = Pin()\nrelations\n  p = 0\nend")
        assert isinstance(error, TypeMismatchError)


# ---------------------------------------------------------------------------
# Units and kinds of relations
# ---------------------------------------------------------------------------

KINEMATICS = """
component Body
  variable x::Position
  variable v::Velocity
  variable y::Real
relations
  {}
end
"""


def _body(relation: str) -> list[JSMLError]:
    return _errors(KINEMATICS.replace("{}", relation))


class TestUnits:
    def test_ohms_law_checks(self) -> None:
        resolver = _resolve("")
        checker = ComponentChecker(resolver, resolver.component("Resistor"))
        result = checker.infer(parse_expression("i*R"))
        assert units.same_unit(result.unit, units.parse_unit("V"))

    def test_derivative_divides_by_seconds(self) -> None:
        assert _body("der(x) = v") == []

    def test_derivative_mismatch(self) -> None:
        (error,) = _body("der(x) = x")
        assert isinstance(error, UnitMismatchError)
        assert error.path == "Body"

    def test_relation_unit_mismatch_location(self) -> None:
        source = "component Bad\n  variable v::Voltage\n  variable i::Current\n"
        source += "relations\n  v = i\nend"
        error = _single_error(source)
        assert isinstance(error, UnitMismatchError)
        assert "'V'" in error.message and "'A'" in error.message
        assert error.location.line == _line_of(source, "  v = i")

    def test_incompatible_addition(self) -> None:
        (error,) = _body("x + v = 0")
        assert isinstance(error, UnitMismatchError)
        assert "incompatible units" in error.message

    def test_literals_are_unit_neutral(self) -> None:
        assert _body("x = 2*x + 1") == []

    def test_unknown_units_switch_checks_off(self) -> None:
        assert _body("y = x") == []
        assert _body("y + x = v") == []

    def test_time_is_in_seconds(self) -> None:
        (error,) = _body("x = time")
        assert isinstance(error, UnitMismatchError)
        assert _body("v*time = x") == []

    def test_transcendental_needs_dimensionless_argument(self) -> None:
        (error,) = _body("y = sin(x)")
        assert isinstance(error, UnitMismatchError)
        assert "'sin'" in error.message
        assert _body("y = exp(-2*pi)") == []

    def test_power_of_a_quantity(self) -> None:
        assert _body("y = x^2") == []
        (error,) = _body("y = x^y")
        assert isinstance(error, UnitMismatchError)

    def test_numeric_operands_required(self) -> None:
        errors = _errors(
            "component D\n  variable b::Boolean\n  variable x::Real\nrelations\n  x = b + 1\nend"
        )
        assert len(errors) == 1
        assert isinstance(errors[0], TypeMismatchError)

    def test_unknown_function(self) -> None:
        (error,) = _body("y = foo(x)")
        assert isinstance(error, UnresolvedReferenceError)

    def test_function_arity(self) -> None:
        (error,) = _body("y = atan2(y)")
        assert isinstance(error, TypeMismatchError)

    def test_constant_folding(self) -> None:
        resolver = _resolve("")
        checker = ComponentChecker(resolver, resolver.component("Ground"))
        result = checker.infer(parse_expression("2*pi"))
        assert result.constant
        assert result.value == pytest.approx(2 * math.pi)


class TestArrays:
    ARRAYS = "component A\n  variable x::Real[3]\n  variable m::Real[2, 3]\nrelations\n  {}\nend"

    def _check(self, relation: str) -> list[JSMLError]:
        return _errors(self.ARRAYS.replace("{}", relation))

    def test_indices_are_one_based(self) -> None:
        assert self._check("x[1] = x[3]") == []
        (error,) = self._check("x[0] = 1")
        assert isinstance(error, TypeMismatchError)
        assert "out of range 1..3" in error.message

    def test_shapes_must_agree(self) -> None:
        assert self._check("x = [1, 2, 3]") == []
        (error,) = self._check("x = 1")
        assert isinstance(error, TypeMismatchError)

    def test_matrix_vector_product(self) -> None:
        assert self._check("m[1] = m[2]") == []
        assert self._check("sum(m*x) = 0") == []

    def test_too_many_indices(self) -> None:
        (error,) = self._check("x[1, 1] = 0")
        assert isinstance(error, TypeMismatchError)


# ---------------------------------------------------------------------------
# Parameters and instantiation
# ---------------------------------------------------------------------------


class TestInstantiation:
    def test_keyword_and_positional_binding(self) -> None:
        resolver = _resolve("")
        info = resolver.component("Resistor")
        decl = parse("component C\n  r = Resistor(5)\nend").declarations[0]
        inst = decl.members[0].instantiation
        bound = resolver.bind_arguments(info, inst)
        assert list(bound) == ["R"]

    def test_unknown_parameter(self) -> None:
        error = _single_error("component C\n  r = Resistor(Rx=100)\nend")
        assert isinstance(error, UnknownParameterError)
        assert "'Resistor' has no parameter 'Rx'" in error.message
        assert error.path == "C.r"

    def test_too_many_positional_arguments(self) -> None:
        error = _single_error("component C\n  r = Resistor(1, 2)\nend")
        assert isinstance(error, UnknownParameterError)

    def test_argument_given_twice(self) -> None:
        error = _single_error("component C\n  r = Resistor(1, R=2)\nend")
        assert isinstance(error, DuplicateSymbolError)

    def test_override_below_min(self) -> None:
        error = _single_error("component C\n  r = Resistor(R=-5)\nend")
        assert isinstance(error, TypeMismatchError)
        assert "below min=0" in error.message

    def test_override_unit_mismatch(self) -> None:
        source = "component C\n  parameter V0::Voltage = 1\n  r = Resistor(R=V0)\nend"
        error = _single_error(source)
        assert isinstance(error, UnitMismatchError)

    def test_override_must_be_constant(self) -> None:
        source = "component C\n  variable x::Real\n  r = Resistor(R=x)\nend"
        error = _single_error(source)
        assert isinstance(error, TypeMismatchError)

    def test_parameter_default_must_be_constant(self) -> None:
        error = _single_error("component P\n  variable x::Real\n  parameter k::Real = x\nend")
        assert isinstance(error, TypeMismatchError)
        assert error.path == "P.k"

    def test_integer_parameter(self) -> None:
        error = _single_error("component P\n  parameter n::Integer = 1.5\nend")
        assert isinstance(error, TypeMismatchError)
        assert "expects Integer" in error.message

    def test_connector_takes_no_arguments(self) -> None:
        error = _single_error("component C\n  p = Pin(1)\nend")
        assert isinstance(error, UnknownParameterError)

    def test_partial_component_cannot_be_instantiated(self) -> None:
        error = _single_error("component C\n  t = TwoPin()\nend")
        assert isinstance(error, InterfaceMismatchError)


class TestInterfaces:
    def test_binding_satisfies_interface(self) -> None:
        resolver = _resolve("component Holder\n  load::TwoPin = Resistor(R=2)\nend")
        assert resolver.component("Holder").symbols["load"].kind == SymbolKind.INTERFACE
        assert resolver.check_binding("TwoPin", "Resistor", None).name == "Resistor"

    def test_structural_mismatch(self) -> None:
        error = _single_error("component Holder\n  load::TwoPin = Ground()\nend")
        assert isinstance(error, InterfaceMismatchError)
        assert "does not provide connector 'n::Pin'" in error.message

    def test_binding_through_argument(self) -> None:
        _resolve(
            "component Holder\n  load::TwoPin\nend\n"
            "component Top\n  h = Holder(load=Resistor(R=2))\nend"
        )

    def test_bad_binding_through_argument(self) -> None:
        error = _single_error(
            "component Holder\n  load::TwoPin\nend\n"
            "component Top\n  h = Holder(load=Ground())\nend"
        )
        assert isinstance(error, InterfaceMismatchError)

    def test_interface_argument_needs_instantiation(self) -> None:
        error = _single_error(
            "component Holder\n  load::TwoPin\nend\ncomponent Top\n  h = Holder(load=1)\nend"
        )
        assert isinstance(error, InterfaceMismatchError)


def test_resolve_raises_all_errors() -> None:
    """resolve() reports every broken declaration at once."""
    with pytest.raises(CompilationError) as excinfo:
        _resolve("component A\n  variable x::Nope\nend\ncomponent B\n  variable y::Nope\nend")
    assert [e.path for e in excinfo.value.errors] == ["A.x", "B.y"]
