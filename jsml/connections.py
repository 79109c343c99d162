"""
Connection expansion.

Every ``connect(a, b, ...)`` in a component unifies connector references
into connection sets with a union-find over their dotted text; connectivity
is transitive, so ``connect(a, b)`` plus ``connect(b, c)`` gives one set
``{a, b, c}``. Each set then becomes balance equations, per field role of
its connector type:

- potential and singleton fields: ``m1.f = mk.f`` for k = 2..n
- flow fields: ``m1.f + ... + mn.f = 0``
- stream fields: ``m1.w*m1.h + ... + mn.w*mn.h = 0`` with ``w`` the flow field

Sets and their members are ordered by first appearance in the source, which
makes the output independent of how the connections were grouped into
statements.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from jsml import ast
from jsml.config import DEFAULT_OPTIONS, CompilerOptions
from jsml.errors import ConnectorTypeMismatchError, UnconnectedPinWarning
from jsml.ir.equation import Equation
from jsml.ir.expr import BinaryOp, ComponentRef, Expr, Literal, UnaryOp, sum_of
from jsml.ir.types import EquationKind, FieldRole
from jsml.resolver import ComponentInfo, Resolver

logger = logging.getLogger(__name__)


class UnionFind:
    """Disjoint sets over hashable keys; the earliest-added key is the root."""

    def __init__(self) -> None:
        self._parent: dict[str, str] = {}
        self._order: dict[str, int] = {}

    def add(self, key: str) -> None:
        if key not in self._parent:
            self._order[key] = len(self._parent)
            self._parent[key] = key

    def find(self, key: str) -> str:
        root = key
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[key] != root:
            self._parent[key], key = root, self._parent[key]
        return root

    def union(self, a: str, b: str) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        if self._order[rb] < self._order[ra]:
            ra, rb = rb, ra
        self._parent[rb] = ra

    def groups(self) -> list[list[str]]:
        """All sets, each in insertion order, ordered by their first key."""
        by_root: dict[str, list[str]] = {}
        for key in self._parent:
            by_root.setdefault(self.find(key), []).append(key)
        return list(by_root.values())


@dataclass
class ConnectionSet:
    """One equivalence class of connected connector instances."""

    connector: str
    members: list[ComponentRef]

    @property
    def names(self) -> list[str]:
        return [str(m) for m in self.members]


@dataclass
class ExpansionResult:
    equations: list[Equation] = field(default_factory=list)
    sets: list[ConnectionSet] = field(default_factory=list)
    warnings: list[UnconnectedPinWarning] = field(default_factory=list)


def build_connection_sets(
    info: ComponentInfo, resolver: Resolver
) -> list[ConnectionSet]:
    """
    Partition the connect arguments of ``info`` into connection sets.

    Raises:
        ConnectorTypeMismatchError: If a set mixes connector types, an
            argument is not a connector instance or one ``connect`` names
            the same connector twice.
    """
    uf = UnionFind()
    refs: dict[str, ComponentRef] = {}
    types: dict[str, str] = {}

    for stmt in info.connects:
        keys = []
        for ref in stmt.refs:
            key = str(ref)
            if key in keys:
                raise ConnectorTypeMismatchError(
                    f"'{key}' appears more than once in connect()", ref.loc
                )
            if key not in refs:
                refs[key] = ref
                types[key] = resolver.connector_type(info, ref)
            uf.add(key)
            keys.append(key)
        for key in keys[1:]:
            uf.union(keys[0], key)

    sets = []
    for group in uf.groups():
        first = group[0]
        for key in group[1:]:
            if types[key] != types[first]:
                raise ConnectorTypeMismatchError(
                    f"cannot connect '{first}' ({types[first]}) with '{key}' ({types[key]})",
                    refs[key].loc,
                )
        sets.append(ConnectionSet(types[first], [refs[k] for k in group]))
    return sets


def _signed(term: Expr, ref: ComponentRef, oriented: bool) -> Expr:
    # Inside/outside convention: connectors of the component itself count
    # negatively, connectors of its sub-components positively.
    if oriented and len(ref.parts) == 1:
        return UnaryOp("-", term, ref.loc)
    return term


def expand_set(
    cset: ConnectionSet, connector: ast.ConnectorDecl, oriented: bool = False
) -> list[Equation]:
    """Balance equations of one connection set."""
    members = cset.members
    first = members[0]
    equations: list[Equation] = []

    for f in connector.fields:
        if f.role in (FieldRole.POTENTIAL, FieldRole.SINGLETON):
            for member in members[1:]:
                equations.append(
                    Equation(
                        first.child(f.name),
                        member.child(f.name),
                        EquationKind.POTENTIAL,
                        loc=member.loc,
                    )
                )

    for f in connector.fields_with_role(FieldRole.FLOW):
        terms = [_signed(m.child(f.name), m, oriented) for m in members]
        equations.append(Equation(sum_of(terms), Literal(0), EquationKind.FLOW, loc=first.loc))

    streams = connector.fields_with_role(FieldRole.STREAM)
    if streams:
        weight = connector.fields_with_role(FieldRole.FLOW)[0].name
        for f in streams:
            terms = [
                _signed(BinaryOp("*", m.child(weight), m.child(f.name)), m, oriented)
                for m in members
            ]
            equations.append(
                Equation(sum_of(terms), Literal(0), EquationKind.STREAM, loc=first.loc)
            )
    return equations


def unconnected_pins(
    info: ComponentInfo, resolver: Resolver, connected: set[str]
) -> list[UnconnectedPinWarning]:
    """Connectors of sub-components that no connect statement names."""
    warnings = []
    for instance in info.instances:
        if instance.target is None:
            continue
        inner = resolver.component(instance.target, instance.loc)
        for pin in inner.connectors:
            path = f"{instance.name}.{pin.name}"
            if path not in connected:
                warnings.append(
                    UnconnectedPinWarning(f"connector '{path}' is never connected", instance.loc)
                )
    return warnings


def expand_connections(
    info: ComponentInfo,
    resolver: Resolver,
    options: Optional[CompilerOptions] = None,
) -> ExpansionResult:
    """
    Expand all connect statements of one component.

    Equations are returned in connection-set order (potentials first, then
    flows, then streams within a set) and are written in the component's
    own namespace.
    """
    options = options or DEFAULT_OPTIONS
    sets = build_connection_sets(info, resolver)
    result = ExpansionResult(sets=sets)
    for cset in sets:
        connector = resolver.library.connector(cset.connector)
        result.equations.extend(expand_set(cset, connector, options.oriented_flows))
    connected = {name for cset in sets for name in cset.names}
    result.warnings = unconnected_pins(info, resolver, connected)
    logger.debug(
        "%s: %d connection sets, %d equations", info.name, len(sets), len(result.equations)
    )
    return result
