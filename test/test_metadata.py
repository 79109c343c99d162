"""
Tests for experiment, test-case and layout extraction (jsml.metadata).
"""

import json

import numpy as np
import pytest

from jsml.config import CompilerOptions
from jsml.errors import CompilationError, TypeMismatchError, UnresolvedReferenceError
from jsml.ir.system import EquationSystem
from jsml.ir.types import VariableKind
from jsml.ir.variable import Variable
from jsml.metadata import (
    DEFAULT_ATOL,
    DEFAULT_RTOL,
    Check,
    MetadataArtifacts,
    extract_metadata,
)
from jsml.parser import parse

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _component(metadata: dict, members: str = "  variable x::Real\n"):
    source = f"component Osc\n{members}metadata {json.dumps(metadata)}\nend"
    return parse(source).declarations[0]


def _system(*names: str) -> EquationSystem:
    system = EquationSystem(name="Osc")
    for name in names:
        system.add_variable(Variable(name, VariableKind.VARIABLE))
    return system


def _extract(metadata: dict, system=None, **options) -> MetadataArtifacts:
    return extract_metadata(_component(metadata), system, CompilerOptions(**options))


# ---------------------------------------------------------------------------
# Experiments
# ---------------------------------------------------------------------------


class TestExperiments:
    def test_experiment(self) -> None:
        artifacts = _extract(
            {"JSML": {"experiments": {"run": {"start": 1, "stop": 10, "initial": {"x": 2.0}}}}}
        )
        run = artifacts.experiment("run")
        assert run.component == "Osc"
        assert (run.start, run.stop) == (1, 10)
        assert run.initial == {"x": 2.0}

    def test_start_defaults_to_zero(self) -> None:
        artifacts = _extract({"JSML": {"experiments": {"run": {"stop": 3}}}})
        assert artifacts.experiment("run").start == 0

    def test_stop_must_follow_start(self) -> None:
        with pytest.raises(TypeMismatchError, match="stop=1 must be after start=2") as excinfo:
            _extract({"JSML": {"experiments": {"run": {"start": 2, "stop": 1}}}})
        assert excinfo.value.path == "Osc"
        assert "experiments.run" in excinfo.value.message

    def test_missing_stop(self) -> None:
        with pytest.raises(TypeMismatchError, match="missing 'stop'"):
            _extract({"JSML": {"experiments": {"run": {"start": 0}}}})

    def test_non_numeric_bound(self) -> None:
        with pytest.raises(TypeMismatchError, match="'stop' must be a number"):
            _extract({"JSML": {"experiments": {"run": {"stop": "later"}}}})

    def test_unknown_initial_variable(self) -> None:
        metadata = {"JSML": {"experiments": {"run": {"stop": 1, "initial": {"y": 0}}}}}
        with pytest.raises(UnresolvedReferenceError, match="unknown variable 'y'"):
            _extract(metadata, _system("x"))

    def test_paths_are_not_checked_without_a_system(self) -> None:
        metadata = {"JSML": {"experiments": {"run": {"stop": 1, "initial": {"y": 0}}}}}
        assert _extract(metadata).experiment("run").initial == {"y": 0}

    def test_other_namespace_is_ignored(self) -> None:
        metadata = {"Other": {"experiments": {"run": {"stop": 1}}}}
        assert _extract(metadata).experiments == []
        assert _extract(metadata, metadata_namespace="Other").experiment("run") is not None


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestTestCases:
    RECORD = {
        "stop": 12,
        "initial": {"x": 2.0},
        "atol": 0.05,
        "expect": {
            "initial": {"t": 0, "x": 2.0},
            "final": {"x": {"value": 0, "rtol": 0.1}},
        },
    }

    def test_checks(self) -> None:
        case = _extract({"JSML": {"tests": {"settles": self.RECORD}}}, _system("x")).test(
            "settles"
        )
        assert case.scenario.stop == 12
        assert case.scenario.initial == {"x": 2.0}
        assert [c.path for c in case.checks_at("initial")] == ["t", "x"]
        final = case.checks_at("final")[0]
        assert final.time == 12
        assert final.expected == 0
        assert final.atol == 0.05
        assert final.rtol == 0.1

    def test_default_tolerances(self) -> None:
        record = {"stop": 1, "expect": {"final": {"x": 1}}}
        case = _extract({"JSML": {"tests": {"t1": record}}}).test("t1")
        assert case.atol == DEFAULT_ATOL
        assert case.rtol == DEFAULT_RTOL
        assert case.checks[0].atol == DEFAULT_ATOL

    def test_unknown_sample_point(self) -> None:
        record = {"stop": 1, "expect": {"middle": {"x": 1}}}
        with pytest.raises(TypeMismatchError, match="unknown sample point 'middle'"):
            _extract({"JSML": {"tests": {"t1": record}}})

    def test_non_numeric_expectation(self) -> None:
        record = {"stop": 1, "expect": {"final": {"x": "high"}}}
        with pytest.raises(TypeMismatchError, match="expected value of 'x' is not numeric"):
            _extract({"JSML": {"tests": {"t1": record}}})

    def test_errors_are_collected(self) -> None:
        metadata = {
            "JSML": {
                "experiments": {"a": {"start": 5, "stop": 1}},
                "tests": {"b": {"stop": 1, "expect": {"final": {"y": 1}}}},
            }
        }
        with pytest.raises(CompilationError) as excinfo:
            _extract(metadata, _system("x"))
        kinds = [type(e) for e in excinfo.value.errors]
        assert kinds == [TypeMismatchError, UnresolvedReferenceError]

    def test_time_is_always_known(self) -> None:
        record = {"stop": 2, "expect": {"final": {"t": 2}}}
        case = _extract({"JSML": {"tests": {"t1": record}}}, _system("x")).test("t1")
        assert case.checks[0].path == "t"


class TestCheck:
    def test_scalar(self) -> None:
        check = Check("x", 10, "final", 5, atol=0.01)
        assert check.passes(10.005)
        assert not check.passes(10.1)

    def test_relative_tolerance(self) -> None:
        check = Check("x", 1000.0, "final", 5, atol=0.0, rtol=1e-3)
        assert check.passes(1000.5)
        assert not check.passes(1002.0)

    def test_array(self) -> None:
        check = Check("x", [1.0, 2.0], "final", 1)
        assert check.passes(np.array([1.0, 2.0]))
        assert not check.passes([1.0, 2.1])


# ---------------------------------------------------------------------------
# Layout pass-through
# ---------------------------------------------------------------------------


def test_layout_pass_through() -> None:
    """Member and connect metadata reach the layout untouched."""
    source = """
connector Pin
  potential v::Real
  flow i::Real
end
component Node
  a = Pin() {"JSML": {"placement": {"x": 1, "y": 2}}}
  b = Pin()
relations
  connect(a, b) {"JSML": {"points": [[0, 0], [1, 1]]}}
metadata {"JSML": {"icon": "node.svg", "experiments": {"run": {"stop": 1}}}, "Other": 1}
end
"""
    component = parse(source).declarations[-1]
    layout = extract_metadata(component).layout
    assert layout.nodes == {"a": {"JSML": {"placement": {"x": 1, "y": 2}}}}
    assert layout.edges[0].refs == ("a", "b")
    assert layout.edges[0].metadata == {"JSML": {"points": [[0, 0], [1, 1]]}}
    assert layout.extras == {"JSML": {"icon": "node.svg"}, "Other": 1}
    # the declaration itself is left as parsed
    assert "experiments" in component.metadata["JSML"]


def test_artifacts_to_dict_is_json() -> None:
    """Artifacts serialize to plain JSON."""
    metadata = {"JSML": {"tests": {"t1": {"stop": 1, "expect": {"final": {"x": 1}}}}}}
    data = _extract(metadata).to_dict()
    assert json.loads(json.dumps(data)) == data
    assert data["tests"][0]["scenario"]["stop"] == 1
    assert data["layout"]["component"] == "Osc"
