"""
Equation-system emitter.

Flattens a component into an ``EquationSystem`` by recursive instantiation.
Each instance contributes its parameters, variables and connector fields
under its dotted path (``resistor.p.v``), then its own equations, connection
equations and finally the equations of its sub-instances, all rewritten into
the root namespace.

Instantiation arguments are written in the namespace of the component that
contains the instantiation, so they are qualified with that component's
path before they reach the child.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from jsml import ast
from jsml.config import DEFAULT_OPTIONS, CompilerOptions
from jsml.connections import expand_connections
from jsml.errors import (
    CyclicDefinitionError,
    InterfaceMismatchError,
    JSMLError,
    JSMLWarning,
    raise_collected,
)
from jsml.ir.equation import Equation
from jsml.ir.expr import ComponentRef, ComponentRefPart, Expr, map_refs
from jsml.ir.system import EquationSystem, InstanceNode
from jsml.ir.types import EquationKind, VariableKind
from jsml.ir.variable import Variable
from jsml.resolver import BUILTINS, ComponentInfo, Resolver, Symbol, SymbolKind

logger = logging.getLogger(__name__)

_KEEP = frozenset(BUILTINS)

Prefix = tuple[ComponentRefPart, ...]


def qualify(expr: Expr, prefix: Prefix) -> Expr:
    """Prefix every non-builtin reference in ``expr`` with ``prefix``."""
    if not prefix:
        return expr

    def rename(r: ComponentRef) -> ComponentRef:
        return r if r.head in _KEEP else r.prefixed(prefix)

    return map_refs(expr, rename)


def _path(prefix: Prefix) -> str:
    return ".".join(p.name for p in prefix)


@dataclass
class Binding:
    """An instantiation together with the namespace its arguments live in."""

    instantiation: ast.Instantiation
    namespace: Prefix


@dataclass
class _Instance:
    info: ComponentInfo
    prefix: Prefix
    children: list["_Instance"] = field(default_factory=list)

    @property
    def path(self) -> str:
        return _path(self.prefix)


class Emitter:
    """Builds the flattened system of one root component."""

    def __init__(self, resolver: Resolver, options: Optional[CompilerOptions] = None) -> None:
        self.resolver = resolver
        self.options = options or DEFAULT_OPTIONS
        self.warnings: list[JSMLWarning] = []

    # -- cycle detection ----------------------------------------------------------

    def check_cycles(self, root: str) -> None:
        """
        Walk the instantiation graph from ``root``.

        Raises:
            CyclicDefinitionError: If a component (directly or through
                sub-components and interface bindings) instantiates itself.
        """
        done: set[str] = set()

        def visit(name: str, stack: list[str]) -> None:
            if name in done:
                return
            stack.append(name)
            info = self.resolver.component(name)
            for symbol in info.instances:
                for inst in _instantiations(symbol.instantiation):
                    target = inst.type_name
                    if target in stack:
                        cycle = " -> ".join([*stack[stack.index(target) :], target])
                        raise CyclicDefinitionError(
                            f"cyclic instantiation: {cycle}", inst.loc or symbol.loc
                        )
                    if isinstance(self.resolver.library.lookup(target), ast.ComponentDecl):
                        visit(target, stack)
            stack.pop()
            done.add(name)

        visit(root, [])

    # -- flattening ------------------------------------------------------------------

    def emit(self, name: str) -> EquationSystem:
        """
        Flatten component ``name``.

        Raises:
            JSMLError: The single error found, or ``CompilationError`` with
                every error, each tagged with its instantiation path.
        """
        self.check_cycles(name)
        info = self.resolver.component(name)
        system = EquationSystem(name=name, description=info.decl.description)
        system.root = InstanceNode(name, name)
        if info.decl.metadata is not None:
            system.metadata[""] = info.decl.metadata

        errors: list[JSMLError] = []
        top = _Instance(info, ())
        self._declare(top, {}, {}, system.root, system, errors)
        self._emit_equations(top, system, errors)

        for e in errors:
            e.with_path(name)
        for w in self.warnings:
            w.path = f"{name}.{w.path}" if w.path else name
        raise_collected(errors)
        logger.debug(
            "emitted %s: %d variables, %d parameters, %d equations",
            name,
            len(system.variables),
            len(system.parameters),
            len(system.equations),
        )
        return system

    def _declare(
        self,
        instance: _Instance,
        overrides: dict[str, Expr],
        bindings: dict[str, Binding],
        node: InstanceNode,
        system: EquationSystem,
        errors: list[JSMLError],
    ) -> None:
        """Add the variables of ``instance`` and build its child instances."""
        for symbol in instance.info.symbols.values():
            path = _join(instance.path, symbol.name)
            prefix = instance.prefix + (ComponentRefPart(symbol.name),)
            if symbol.description:
                system.descriptions[path] = symbol.description
            if symbol.metadata is not None:
                system.metadata[path] = symbol.metadata

            if symbol.is_value:
                system.add_variable(self._variable(symbol, path, instance.prefix, overrides))
                continue

            if symbol.kind == SymbolKind.CONNECTOR:
                node.children.append(InstanceNode(symbol.name, symbol.target, is_connector=True))
                connector = self.resolver.library.connector(symbol.target)
                for f in connector.fields:
                    resolved = self.resolver.resolve_type(f.type)
                    system.add_variable(
                        Variable(
                            name=f"{path}.{f.name}",
                            kind=VariableKind.from_role(f.role),
                            primitive_type=resolved.primitive,
                            type_name=resolved.name,
                            unit=resolved.units,
                            shape=resolved.shape,
                            min_value=resolved.min_value,
                            max_value=resolved.max_value,
                            description=f.description,
                        )
                    )
                    if f.description:
                        system.descriptions[f"{path}.{f.name}"] = f.description
                continue

            try:
                binding = self._binding(symbol, instance.prefix, bindings)
                child_info = self.resolver.component(binding.instantiation.type_name, symbol.loc)
                if symbol.kind == SymbolKind.INTERFACE:
                    self.resolver.check_binding(
                        symbol.target, child_info.name, binding.instantiation.loc or symbol.loc
                    )
                child_overrides, child_bindings = self._arguments(child_info, binding)
            except JSMLError as e:
                errors.append(e.with_path(path))
                continue

            child_node = InstanceNode(symbol.name, child_info.name)
            node.children.append(child_node)
            child = _Instance(child_info, prefix)
            instance.children.append(child)
            self._declare(child, child_overrides, child_bindings, child_node, system, errors)

    def _binding(self, symbol: Symbol, prefix: Prefix, bindings: dict[str, Binding]) -> Binding:
        if symbol.name in bindings:
            return bindings[symbol.name]
        if symbol.instantiation is None:
            raise InterfaceMismatchError(
                f"interface member '{symbol.name}::{symbol.target}' is not bound to a component",
                symbol.loc,
            )
        return Binding(symbol.instantiation, prefix)

    def _arguments(
        self, child: ComponentInfo, binding: Binding
    ) -> tuple[dict[str, Expr], dict[str, Binding]]:
        overrides: dict[str, Expr] = {}
        bindings: dict[str, Binding] = {}
        bound = self.resolver.bind_arguments(child, binding.instantiation)
        for name, arg in bound.items():
            if isinstance(arg.value, ast.Instantiation):
                bindings[name] = Binding(arg.value, binding.namespace)
            else:
                overrides[name] = qualify(arg.value, binding.namespace)
        return overrides, bindings

    def _variable(
        self, symbol: Symbol, path: str, prefix: Prefix, overrides: dict[str, Expr]
    ) -> Variable:
        resolved = symbol.type
        if symbol.kind == SymbolKind.PARAMETER:
            overridden = symbol.name in overrides
            if overridden:
                value = overrides[symbol.name]
            else:
                default = symbol.decl.default or resolved.default
                value = qualify(default, prefix) if default is not None else None
            return Variable(
                name=path,
                kind=VariableKind.PARAMETER,
                primitive_type=resolved.primitive,
                type_name=resolved.name,
                unit=resolved.units,
                shape=resolved.shape,
                value=value,
                overridden=overridden,
                min_value=resolved.min_value,
                max_value=resolved.max_value,
                description=symbol.description,
            )
        guess = resolved.guess or resolved.default
        return Variable(
            name=path,
            kind=VariableKind.VARIABLE,
            primitive_type=resolved.primitive,
            type_name=resolved.name,
            unit=resolved.units,
            shape=resolved.shape,
            guess=qualify(guess, prefix) if guess is not None else None,
            min_value=resolved.min_value,
            max_value=resolved.max_value,
            description=symbol.description,
        )

    def _emit_equations(
        self, instance: _Instance, system: EquationSystem, errors: list[JSMLError]
    ) -> None:
        """Own equations, then connection equations, then sub-instances."""
        prefix = instance.prefix
        try:
            expansion = expand_connections(instance.info, self.resolver, self.options)
        except JSMLError as e:
            errors.append(e.with_path(instance.path))
        else:
            for stmt in instance.info.equations:
                kind = EquationKind.INITIAL if stmt.initial else EquationKind.RELATION
                eq = Equation(stmt.lhs, stmt.rhs, kind, stmt.description, stmt.loc)
                system.add_equation(eq.qualified(prefix, _KEEP))
            for eq in expansion.equations:
                system.add_equation(eq.qualified(prefix, _KEEP))
            for w in expansion.warnings:
                w.path = instance.path
                self.warnings.append(w)
        for child in instance.children:
            self._emit_equations(child, system, errors)


def _join(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name


def _instantiations(inst: Optional[ast.Instantiation]) -> Iterator[ast.Instantiation]:
    """``inst`` and every instantiation nested in its arguments."""
    if inst is None:
        return
    yield inst
    for arg in inst.args:
        if isinstance(arg.value, ast.Instantiation):
            yield from _instantiations(arg.value)


def emit(
    resolver: Resolver, name: str, options: Optional[CompilerOptions] = None
) -> tuple[EquationSystem, list[JSMLWarning]]:
    """Flatten ``name``; return the system and the collected warnings."""
    emitter = Emitter(resolver, options)
    system = emitter.emit(name)
    return system, emitter.warnings

