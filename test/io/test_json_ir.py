"""
Tests for JSON export and import of equation systems (jsml.io).
"""

import json

import pytest

from jsml import compile_file
from jsml.config import CompilerOptions
from jsml.io import (
    IR_VERSION,
    dumps_equation_system,
    equation_system_from_dict,
    equation_system_to_dict,
    export_artifacts,
    export_equation_system,
    export_expr,
    import_equation_system,
    import_expr,
    load_equation_system_json,
    validate_equation_system,
)
from jsml.parser import parse_expression


@pytest.fixture
def rlc(examples_dir):
    return compile_file(examples_dir / "rlc.jsml", options=CompilerOptions(emit_warnings=False))


class TestExpressions:
    @pytest.mark.parametrize(
        "text",
        [
            "x",
            "r.p.v",
            "x[2, k]",
            "-a + b .* c",
            "not (a < b) and c",
            "der(x) - sin(2*pi*time)",
            "a > 0 ? 1 : 2",
            "[1, 2.5, true]",
        ],
    )
    def test_round_trip(self, text: str) -> None:
        expr = parse_expression(text)
        assert import_expr(export_expr(expr)) == expr

    def test_encoding(self) -> None:
        assert export_expr(parse_expression("der(x)")) == {
            "op": "der",
            "args": [{"op": "var", "name": "x"}],
        }
        assert export_expr(parse_expression("-p.v"))["op"] == "neg"
        assert export_expr(parse_expression("r.p"))["parts"][1] == {"name": "p", "subscripts": []}

    def test_unknown_op(self) -> None:
        with pytest.raises(ValueError, match="Cannot import expression"):
            import_expr({"op": "frobnicate"})


class TestEquationSystem:
    def test_document(self, rlc) -> None:
        data = equation_system_to_dict(rlc.system)
        assert data["ir_version"] == IR_VERSION
        assert data["name"] == "RLCModel"
        assert len(data["equations"]) == 26
        assert data["equations"][0]["kind"] == "potential"
        assert data["instance_tree"]["children"][0]["name"] == "resistor"
        # serializes without custom encoders
        json.dumps(data)

    def test_schema_valid(self, rlc) -> None:
        assert validate_equation_system(equation_system_to_dict(rlc.system)) == []

    def test_schema_rejects_bad_kind(self, rlc) -> None:
        data = equation_system_to_dict(rlc.system)
        data["variables"][0]["kind"] = "state"
        errors = validate_equation_system(data)
        assert len(errors) == 1
        assert errors[0].startswith("variables.0.kind: 'state' is not one of")

    def test_schema_reports_every_violation(self, rlc) -> None:
        data = equation_system_to_dict(rlc.system)
        data["variables"][0]["kind"] = "state"
        data["equations"][0]["kind"] = "bogus"
        errors = validate_equation_system(data)
        assert [e.split(":")[0] for e in errors] == ["equations.0.kind", "variables.0.kind"]

    def test_invalid_schema(self, rlc, tmp_path) -> None:
        schema = tmp_path / "broken.schema.json"
        schema.write_text('{"$schema": "http://json-schema.org/draft-07/schema#", "type": 5}')
        errors = validate_equation_system(equation_system_to_dict(rlc.system), schema)
        assert len(errors) == 1
        assert errors[0].startswith("invalid schema:")

    def test_round_trip(self, rlc) -> None:
        system = rlc.system
        restored = load_equation_system_json(dumps_equation_system(system))
        assert restored.name == system.name
        assert restored.description == system.description
        assert restored.variables == system.variables
        assert restored.parameters == system.parameters
        assert restored.equations == system.equations
        assert restored.initial_equations == system.initial_equations
        assert restored.root == system.root
        assert restored.get_variable("resistor.R").overridden

    def test_file_round_trip(self, rlc, tmp_path) -> None:
        path = tmp_path / "rlc.json"
        export_equation_system(rlc.system, path)
        assert validate_equation_system(path) == []
        restored = import_equation_system(path)
        assert restored.n_equations == rlc.system.n_equations
        assert restored.n_unknowns == rlc.system.n_unknowns

    def test_unsupported_version(self, rlc) -> None:
        data = equation_system_to_dict(rlc.system)
        data["ir_version"] = "jsml-9.9.9"
        with pytest.raises(ValueError, match="Unsupported IR version"):
            equation_system_from_dict(data)


def test_export_artifacts(rlc, tmp_path) -> None:
    """Artifacts are written next to the IR as plain JSON."""
    path = tmp_path / "rlc.artifacts.json"
    export_artifacts(rlc.artifacts, path)
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["component"] == "RLCModel"
    assert data["experiments"][0]["name"] == "transient"
    assert data["tests"][0]["checks"][-1]["atol"] == 0.01
