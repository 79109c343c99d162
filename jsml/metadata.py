"""
Metadata and test extraction.

Metadata blocks are free-form JSON trees. Under the tool namespace
(``CompilerOptions.metadata_namespace``, ``"JSML"`` by default) of a
component's metadata two keys are interpreted:

``experiments``
    ``{name: {"start": 0, "stop": 10, "initial": {"x": 2.0}}}``
``tests``
    ``{name: {"stop": 12, "initial": {...}, "atol": 1e-3,
    "expect": {"initial": {"x": 2.0}, "final": {"t": 12, "x": 0}}}}``

Everything else, including all member and connect metadata, is handed to
the diagram collaborator untouched in a ``DiagramLayout``.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import numpy as np

from jsml import ast
from jsml.config import DEFAULT_OPTIONS, CompilerOptions
from jsml.errors import JSMLError, TypeMismatchError, UnresolvedReferenceError, raise_collected
from jsml.ir.system import EquationSystem

logger = logging.getLogger(__name__)

RESERVED_KEYS = ("experiments", "tests")
SAMPLE_POINTS = ("initial", "final")
TIME = "t"

DEFAULT_RTOL = 1e-5
DEFAULT_ATOL = 1e-8

Number = Union[int, float]


@dataclass(frozen=True)
class Experiment:
    """A runnable scenario: a component simulated over a time span."""

    name: str
    component: str
    start: Number
    stop: Number
    initial: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "component": self.component,
            "start": self.start,
            "stop": self.stop,
            "initial": dict(self.initial),
        }


@dataclass(frozen=True)
class Check:
    """
    One approximate-equality assertion of a test.

    ``path`` is a variable path of the compiled system, or ``"t"`` for the
    sample time itself. ``time`` is the simulation time of the sample point.
    """

    path: str
    expected: Any
    sample: str
    time: Number
    atol: float = DEFAULT_ATOL
    rtol: float = DEFAULT_RTOL

    def passes(self, actual: Any) -> bool:
        """``numpy.isclose`` semantics; arrays must match element-wise."""
        return bool(
            np.all(
                np.isclose(
                    np.asarray(actual, dtype=float),
                    np.asarray(self.expected, dtype=float),
                    rtol=self.rtol,
                    atol=self.atol,
                )
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "expected": self.expected,
            "sample": self.sample,
            "time": self.time,
            "atol": self.atol,
            "rtol": self.rtol,
        }


@dataclass
class TestCase:
    """An experiment plus the checks to run against its solution."""

    __test__ = False

    name: str
    scenario: Experiment
    checks: list[Check] = field(default_factory=list)
    atol: float = DEFAULT_ATOL
    rtol: float = DEFAULT_RTOL

    def checks_at(self, sample: str) -> list[Check]:
        return [c for c in self.checks if c.sample == sample]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "scenario": self.scenario.to_dict(),
            "atol": self.atol,
            "rtol": self.rtol,
            "checks": [c.to_dict() for c in self.checks],
        }


@dataclass
class LayoutEdge:
    """One connect statement for the diagram renderer."""

    refs: tuple[str, ...]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class DiagramLayout:
    """Placement and routing data, passed through verbatim."""

    component: str
    extras: dict[str, Any] = field(default_factory=dict)
    nodes: dict[str, dict[str, Any]] = field(default_factory=dict)
    edges: list[LayoutEdge] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "component": self.component,
            "extras": self.extras,
            "nodes": self.nodes,
            "edges": [{"refs": list(e.refs), "metadata": e.metadata} for e in self.edges],
        }


@dataclass
class MetadataArtifacts:
    """Everything the extractor produces for one component."""

    component: str
    experiments: list[Experiment] = field(default_factory=list)
    tests: list[TestCase] = field(default_factory=list)
    layout: Optional[DiagramLayout] = None

    def experiment(self, name: str) -> Optional[Experiment]:
        return next((e for e in self.experiments if e.name == name), None)

    def test(self, name: str) -> Optional[TestCase]:
        return next((t for t in self.tests if t.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "component": self.component,
            "experiments": [e.to_dict() for e in self.experiments],
            "tests": [t.to_dict() for t in self.tests],
            "layout": self.layout.to_dict() if self.layout is not None else None,
        }


def _numeric(value: Any) -> bool:
    """A number or a (nested) list of numbers."""
    if isinstance(value, list):
        return bool(value) and all(_numeric(v) for v in value)
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class _Extractor:
    def __init__(
        self,
        component: ast.ComponentDecl,
        system: Optional[EquationSystem],
    ) -> None:
        self.component = component
        self.system = system
        self.errors: list[JSMLError] = []

    def _error(self, cls: type, message: str, where: str) -> None:
        self.errors.append(cls(f"{where}: {message}", self.component.loc, self.component.name))

    def _number(self, record: dict, key: str, where: str, default: Any = None) -> Any:
        value = record.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            self._error(TypeMismatchError, f"'{key}' must be a number", where)
            return None
        return value

    def _check_path(self, path: str, where: str) -> None:
        if self.system is not None and path != TIME and not self.system.has_variable(path):
            self._error(UnresolvedReferenceError, f"unknown variable '{path}'", where)

    def _span(self, record: dict, where: str) -> Optional[tuple[Number, Number]]:
        start = self._number(record, "start", where, 0)
        if "stop" not in record:
            self._error(TypeMismatchError, "missing 'stop'", where)
            return None
        stop = self._number(record, "stop", where)
        if start is None or stop is None:
            return None
        if stop <= start:
            self._error(TypeMismatchError, f"stop={stop} must be after start={start}", where)
            return None
        return start, stop

    def _initial(self, record: dict, where: str) -> dict[str, Any]:
        initial = record.get("initial", {})
        if not isinstance(initial, dict):
            self._error(TypeMismatchError, "'initial' must be an object", where)
            return {}
        for path in initial:
            self._check_path(path, where)
        return dict(initial)

    def records(self, tool: dict, key: str) -> dict[str, dict]:
        records = tool.get(key, {})
        if not isinstance(records, dict):
            self._error(TypeMismatchError, f"'{key}' must be an object", key)
            return {}
        valid = {}
        for name, record in records.items():
            if isinstance(record, dict):
                valid[name] = record
            else:
                self._error(TypeMismatchError, "record must be an object", f"{key}.{name}")
        return valid

    def experiment(self, name: str, record: dict, where: str) -> Optional[Experiment]:
        span = self._span(record, where)
        initial = self._initial(record, where)
        if span is None:
            return None
        return Experiment(name, self.component.name, span[0], span[1], initial)

    def test(self, name: str, record: dict) -> Optional[TestCase]:
        where = f"tests.{name}"
        scenario = self.experiment(name, record, where)
        atol = self._number(record, "atol", where, DEFAULT_ATOL)
        rtol = self._number(record, "rtol", where, DEFAULT_RTOL)
        expect = record.get("expect", {})
        if not isinstance(expect, dict):
            self._error(TypeMismatchError, "'expect' must be an object", where)
            return None
        if scenario is None or atol is None or rtol is None:
            return None

        case = TestCase(name, scenario, atol=float(atol), rtol=float(rtol))
        for sample, checks in expect.items():
            if sample not in SAMPLE_POINTS:
                self._error(
                    TypeMismatchError,
                    f"unknown sample point '{sample}' (expected 'initial' or 'final')",
                    where,
                )
                continue
            if not isinstance(checks, dict):
                self._error(TypeMismatchError, f"'expect.{sample}' must be an object", where)
                continue
            time = scenario.start if sample == "initial" else scenario.stop
            for path, expected in checks.items():
                self._check_path(path, where)
                check_atol, check_rtol = case.atol, case.rtol
                if isinstance(expected, dict):
                    check_atol = self._number(expected, "atol", where, check_atol)
                    check_rtol = self._number(expected, "rtol", where, check_rtol)
                    expected = expected.get("value")
                    if check_atol is None or check_rtol is None:
                        continue
                if not _numeric(expected):
                    self._error(
                        TypeMismatchError, f"expected value of '{path}' is not numeric", where
                    )
                    continue
                case.checks.append(
                    Check(path, expected, sample, time, float(check_atol), float(check_rtol))
                )
        return case

    def layout(self, extras: dict[str, Any]) -> DiagramLayout:
        layout = DiagramLayout(self.component.name, extras)
        for member in self.component.members:
            metadata = getattr(member, "metadata", None)
            if metadata is not None:
                layout.nodes[member.name] = metadata
        for stmt in self.component.connects:
            layout.edges.append(
                LayoutEdge(tuple(str(r) for r in stmt.refs), dict(stmt.metadata or {}))
            )
        return layout


def extract_metadata(
    component: ast.ComponentDecl,
    system: Optional[EquationSystem] = None,
    options: Optional[CompilerOptions] = None,
) -> MetadataArtifacts:
    """
    Extract experiments, tests and layout data of ``component``.

    When ``system`` is given, every variable path named in ``initial`` and
    ``expect`` records must exist in it.

    Raises:
        JSMLError: The single malformed record, or ``CompilationError`` for
            several.
    """
    options = options or DEFAULT_OPTIONS
    metadata = copy.deepcopy(component.metadata or {})
    tool = metadata.get(options.metadata_namespace, {})
    extractor = _Extractor(component, system)
    artifacts = MetadataArtifacts(component.name)

    if isinstance(tool, dict):
        for name, record in extractor.records(tool, "experiments").items():
            experiment = extractor.experiment(name, record, f"experiments.{name}")
            if experiment is not None:
                artifacts.experiments.append(experiment)
        for name, record in extractor.records(tool, "tests").items():
            case = extractor.test(name, record)
            if case is not None:
                artifacts.tests.append(case)
        for key in RESERVED_KEYS:
            tool.pop(key, None)

    artifacts.layout = extractor.layout(metadata)
    raise_collected(extractor.errors)
    logger.debug(
        "%s: %d experiments, %d tests",
        component.name,
        len(artifacts.experiments),
        len(artifacts.tests),
    )
    return artifacts
