"""
Equation-system representation in the IR.

An EquationSystem is the flattened output of compiling one component: every
variable and parameter of the instance tree under its dotted path, all
equations (own relations, connection equations and those of every
sub-instance), the initial equations, and documentation by path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from jsml.ir.equation import Equation
from jsml.ir.types import EquationKind, VariableKind
from jsml.ir.variable import Variable


@dataclass
class InstanceNode:
    """One node of the instantiation tree."""

    name: str
    type_name: str
    is_connector: bool = False
    children: list["InstanceNode"] = field(default_factory=list)

    def find(self, path: str) -> Optional["InstanceNode"]:
        """Find a descendant by dotted path relative to this node."""
        node: Optional[InstanceNode] = self
        for segment in path.split("."):
            if node is None:
                return None
            node = next((c for c in node.children if c.name == segment), None)
        return node

    def walk(self, prefix: str = "") -> Iterator[tuple[str, "InstanceNode"]]:
        """Yield (path, node) for every descendant, depth first."""
        for child in self.children:
            path = f"{prefix}.{child.name}" if prefix else child.name
            yield path, child
            yield from child.walk(path)


@dataclass
class EquationSystem:
    """
    Flattened equation system of one component.

    This is what the compiler hands to the symbolic-modeling collaborator. It
    contains:
    - Variables and parameters, in instantiation order
    - Equations (relations and expanded connections)
    - Initial equations (only hold at the start time)
    - The instance tree
    - Descriptions and metadata keyed by dotted path
    """

    name: str
    variables: list[Variable] = field(default_factory=list)
    parameters: list[Variable] = field(default_factory=list)
    equations: list[Equation] = field(default_factory=list)
    initial_equations: list[Equation] = field(default_factory=list)
    root: Optional[InstanceNode] = None

    description: str = ""
    descriptions: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    _var_dict: dict[str, Variable] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        for var in [*self.variables, *self.parameters]:
            self._var_dict[var.name] = var

    def add_variable(self, var: Variable) -> None:
        """Add a variable or parameter to the system."""
        if var.name in self._var_dict:
            raise ValueError(f"Variable '{var.name}' already exists in system")
        if var.is_parameter:
            self.parameters.append(var)
        else:
            self.variables.append(var)
        self._var_dict[var.name] = var

    def add_equation(self, eq: Equation) -> None:
        """Add an equation, routing initial equations to their own list."""
        if eq.kind == EquationKind.INITIAL:
            self.initial_equations.append(eq)
        else:
            self.equations.append(eq)

    def get_variable(self, name: str) -> Optional[Variable]:
        """Get a variable or parameter by dotted path."""
        return self._var_dict.get(name)

    def has_variable(self, name: str) -> bool:
        """Check if a variable or parameter exists."""
        return name in self._var_dict

    def variables_of_kind(self, kind: VariableKind) -> list[Variable]:
        """Get all variables of a specific kind."""
        return [v for v in self._var_dict.values() if v.kind == kind]

    def equations_of_kind(self, kind: EquationKind) -> list[Equation]:
        return [eq for eq in self.equations if eq.kind == kind]

    @property
    def units(self) -> dict[str, str]:
        """Declared unit of every variable and parameter, by path."""
        return {name: var.unit for name, var in self._var_dict.items()}

    @property
    def parameter_values(self) -> dict[str, Any]:
        """Effective value expression of every parameter, by path."""
        return {p.name: p.value for p in self.parameters}

    @property
    def n_equations(self) -> int:
        """Number of (non-initial) equations."""
        return len(self.equations)

    @property
    def n_unknowns(self) -> int:
        """Number of scalar unknowns (array variables count element-wise)."""
        total = 0
        for var in self.variables:
            size = 1
            for dim in var.shape:
                size *= dim
            total += size
        return total

    def __str__(self) -> str:
        """String representation of the system."""
        lines = [f"EquationSystem: {self.name}"]
        if self.description:
            lines.append(f"  Description: {self.description}")

        if self.parameters:
            lines.append(f"\n  Parameters ({len(self.parameters)}):")
            for p in self.parameters:
                lines.append(f"    {p}")

        if self.variables:
            lines.append(f"\n  Variables ({len(self.variables)}):")
            for v in self.variables:
                lines.append(f"    {v}")

        if self.equations:
            lines.append(f"\n  Equations ({len(self.equations)}):")
            for eq in self.equations:
                lines.append(f"    {eq}")

        if self.initial_equations:
            lines.append(f"\n  Initial Equations ({len(self.initial_equations)}):")
            for eq in self.initial_equations:
                lines.append(f"    {eq}")

        return "\n".join(lines)
