"""
Symbol tables, reference resolution and type/unit checking.

The resolver works over a ``Library``: every top-level declaration of the
entry file and the files it imports. Names are recorded in a first pass
(duplicates across the whole library are reported there), then each
declaration is checked on its own:

- type aliases resolve to a primitive base with units, bounds and shape
- connectors must pair potential and flow fields
- components get a member table in declaration order, with ``extends``
  expanded in place, and every member, instantiation argument and relation
  is checked for kinds and units

Units are pint units (see ``jsml.units``). A numeric literal carries no unit
of its own; a variable declared without units is "unknown" and switches unit
checks off for every expression it takes part in.
"""

from __future__ import annotations

import logging
import math
import operator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional, Sequence, Union

from jsml import ast, units
from jsml.errors import (
    ConnectorTypeMismatchError,
    CyclicDefinitionError,
    DuplicateSymbolError,
    InterfaceMismatchError,
    JSMLError,
    SourceLocation,
    TypeMismatchError,
    UnbalancedConnectorError,
    UnitMismatchError,
    UnknownParameterError,
    UnresolvedReferenceError,
    raise_collected,
)
from jsml.ir.expr import (
    ArrayLiteral,
    BinaryOp,
    ComponentRef,
    Expr,
    FunctionCall,
    IfExpr,
    Literal,
    LiteralValue,
    UnaryOp,
    scalar_op,
)
from jsml.ir.types import FieldRole, PrimitiveType

logger = logging.getLogger(__name__)

Number = Union[int, float]

_NUMERIC = (PrimitiveType.REAL, PrimitiveType.INTEGER)

BUILTINS = ("time", "pi", "e")
_CONSTANTS = {"pi": math.pi, "e": math.e}

_FOLD: dict[str, Callable[[Any, Any], Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "^": operator.pow,
    "%": operator.mod,
}

_TRANSCENDENTAL = frozenset(
    {"sin", "cos", "tan", "asin", "acos", "atan", "sinh", "cosh", "tanh", "exp", "log", "log10"}
)
_ARITY = {
    **{name: 1 for name in _TRANSCENDENTAL},
    "der": 1,
    "sqrt": 1,
    "abs": 1,
    "sign": 1,
    "floor": 1,
    "ceil": 1,
    "sum": 1,
    "min": 2,
    "max": 2,
    "atan2": 2,
}
FUNCTIONS = frozenset(_ARITY)


def _loc(node: Any) -> Optional[SourceLocation]:
    return getattr(node, "loc", None)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _describe(decl: ast.Declaration) -> str:
    if isinstance(decl, ast.TypeDecl):
        return "type"
    if isinstance(decl, ast.ConnectorDecl):
        return "connector"
    return "component"


def constant_value(expr: Expr) -> Optional[LiteralValue]:
    """Fold an expression built from literals and ``pi``/``e``; None otherwise."""
    if isinstance(expr, Literal):
        return expr.value
    if isinstance(expr, ComponentRef):
        if expr.is_simple and expr.head in _CONSTANTS:
            return _CONSTANTS[expr.head]
        return None
    if isinstance(expr, UnaryOp):
        value = constant_value(expr.operand)
        if expr.op == "not":
            return (not value) if isinstance(value, bool) else None
        if _is_number(value):
            return -value if expr.op == "-" else value
        return None
    if isinstance(expr, BinaryOp):
        return _fold(expr.op, constant_value(expr.left), constant_value(expr.right))
    return None


def _fold(op: str, left: Any, right: Any) -> Optional[Number]:
    fn = _FOLD.get(scalar_op(op))
    if fn is None or not (_is_number(left) and _is_number(right)):
        return None
    try:
        value = fn(left, right)
    except (ZeroDivisionError, OverflowError):
        return None
    return value if _is_number(value) else None


# ---------------------------------------------------------------------------
# Resolved types and symbols
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolvedType:
    """A type reference resolved down to its primitive base."""

    name: str
    primitive: PrimitiveType
    units: str = ""
    unit: Any = None  # pint unit; None when no units are declared
    min_value: Optional[Number] = None
    max_value: Optional[Number] = None
    default: Optional[Expr] = None
    guess: Optional[Expr] = None
    shape: tuple[int, ...] = ()


UNKNOWN_TYPE = ResolvedType("Real", PrimitiveType.REAL)

_BUILTIN_TYPES = {
    "time": ResolvedType("Real", PrimitiveType.REAL, "s", units.SECOND),
    "pi": ResolvedType("Real", PrimitiveType.REAL),
    "e": ResolvedType("Real", PrimitiveType.REAL),
}


class SymbolKind(Enum):
    PARAMETER = "parameter"
    VARIABLE = "variable"
    CONNECTOR = "connector"
    COMPONENT = "component"
    INTERFACE = "interface"


@dataclass
class Symbol:
    """
    One entry of a component's member table.

    ``target`` names the connector or component an instance member refers
    to (for interface-typed members, the interface); it is None when that
    name could not be resolved, in which case the error has already been
    reported.
    """

    name: str
    kind: SymbolKind
    decl: Any
    owner: str
    type: Optional[ResolvedType] = None
    target: Optional[str] = None

    @property
    def is_value(self) -> bool:
        return self.kind in (SymbolKind.PARAMETER, SymbolKind.VARIABLE)

    @property
    def instantiation(self) -> Optional[ast.Instantiation]:
        return getattr(self.decl, "instantiation", None)

    @property
    def description(self) -> str:
        return getattr(self.decl, "description", "")

    @property
    def metadata(self) -> Optional[dict]:
        return getattr(self.decl, "metadata", None)

    @property
    def loc(self) -> Optional[SourceLocation]:
        return self.decl.loc


@dataclass
class ComponentInfo:
    """Member table and relations of a component, ``extends`` expanded."""

    decl: ast.ComponentDecl
    symbols: dict[str, Symbol]
    relations: tuple[ast.Relation, ...]
    errors: list[JSMLError] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.decl.name

    @property
    def partial(self) -> bool:
        return self.decl.partial

    def symbols_of_kind(self, *kinds: SymbolKind) -> list[Symbol]:
        return [s for s in self.symbols.values() if s.kind in kinds]

    @property
    def parameters(self) -> list[Symbol]:
        return self.symbols_of_kind(SymbolKind.PARAMETER)

    @property
    def connectors(self) -> list[Symbol]:
        return self.symbols_of_kind(SymbolKind.CONNECTOR)

    @property
    def instances(self) -> list[Symbol]:
        return self.symbols_of_kind(SymbolKind.COMPONENT, SymbolKind.INTERFACE)

    @property
    def equations(self) -> list[ast.EquationStmt]:
        return [r for r in self.relations if isinstance(r, ast.EquationStmt)]

    @property
    def connects(self) -> list[ast.ConnectStmt]:
        return [r for r in self.relations if isinstance(r, ast.ConnectStmt)]


class RefKind(Enum):
    VALUE = "value"
    CONNECTOR = "connector"
    COMPONENT = "component"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RefTarget:
    """What a component reference denotes inside a component."""

    kind: RefKind
    type: Optional[ResolvedType] = None
    target: Optional[str] = None
    parameter: bool = False
    builtin: str = ""
    role: Optional[FieldRole] = None


@dataclass(frozen=True)
class ExprInfo:
    """
    Statically inferred facts about an expression.

    ``unit`` is None either for a unit-neutral numeric literal
    (``neutral=True``) or for an expression whose unit is unknown.
    ``value`` is the folded value when the expression is built from literals.
    """

    kind: PrimitiveType
    unit: Any = None
    neutral: bool = False
    constant: bool = False
    value: Optional[LiteralValue] = None
    shape: tuple[int, ...] = ()

    @property
    def unit_text(self) -> str:
        if self.neutral:
            return "1"
        return units.format_unit(self.unit)


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------


class Library:
    """All top-level declarations visible to one compilation."""

    def __init__(self, files: Sequence[ast.SourceFile]) -> None:
        self.files = list(files)
        self.declarations: dict[str, ast.Declaration] = {}
        self.errors: list[JSMLError] = []
        for source in self.files:
            for decl in source.declarations:
                previous = self.declarations.get(decl.name)
                if previous is not None:
                    where = f" (first declared at {previous.loc})" if previous.loc else ""
                    self.errors.append(
                        DuplicateSymbolError(f"'{decl.name}' is already declared{where}", decl.loc)
                    )
                    continue
                self.declarations[decl.name] = decl

    def lookup(self, name: str) -> Optional[ast.Declaration]:
        return self.declarations.get(name)

    def connector(self, name: str) -> Optional[ast.ConnectorDecl]:
        decl = self.declarations.get(name)
        return decl if isinstance(decl, ast.ConnectorDecl) else None

    def components(self) -> list[ast.ComponentDecl]:
        return [d for d in self.declarations.values() if isinstance(d, ast.ComponentDecl)]


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class Resolver:
    """Resolves names and checks declarations of a ``Library``."""

    def __init__(self, library: Library) -> None:
        self.library = library
        self._types: dict[ast.TypeRef, ResolvedType] = {}
        self._components: dict[str, ComponentInfo] = {}
        self._building: list[str] = []

    # -- types ---------------------------------------------------------------

    def resolve_type(self, typeref: ast.TypeRef) -> ResolvedType:
        """Resolve a type reference through its alias chain."""
        resolved = self._types.get(typeref)
        if resolved is None:
            resolved = self._resolve_type(typeref, ())
            self._types[typeref] = resolved
        return resolved

    def _resolve_type(self, typeref: ast.TypeRef, chain: tuple[str, ...]) -> ResolvedType:
        primitive = PrimitiveType.from_name(typeref.name)
        if primitive is not None:
            base = ResolvedType(typeref.name, primitive)
        else:
            decl = self.library.lookup(typeref.name)
            if decl is None:
                raise UnresolvedReferenceError(f"unknown type '{typeref.name}'", typeref.loc)
            if not isinstance(decl, ast.TypeDecl):
                raise TypeMismatchError(
                    f"'{typeref.name}' is a {_describe(decl)}, not a value type", typeref.loc
                )
            if decl.name in chain:
                cycle = " -> ".join((*chain, decl.name))
                raise CyclicDefinitionError(f"cyclic type definition: {cycle}", decl.loc)
            base = replace(self._resolve_type(decl.base, chain + (decl.name,)), name=decl.name)
        return self._apply_attributes(base, typeref)

    def _apply_attributes(self, base: ResolvedType, typeref: ast.TypeRef) -> ResolvedType:
        result = base
        for attr in typeref.attributes:
            if attr.name == "units":
                if not (isinstance(attr.value, Literal) and isinstance(attr.value.value, str)):
                    raise TypeMismatchError("'units' must be a string literal", attr.loc)
                if base.primitive not in _NUMERIC:
                    raise TypeMismatchError(
                        f"{base.primitive.value} values cannot carry units", attr.loc
                    )
                try:
                    unit = units.parse_unit(attr.value.value)
                except units.UnitError as e:
                    raise UnitMismatchError(str(e), attr.loc) from e
                result = replace(result, units=attr.value.value, unit=unit)
            elif attr.name in ("min", "max"):
                value = constant_value(attr.value)
                if not _is_number(value):
                    raise TypeMismatchError(f"'{attr.name}' must be a constant number", attr.loc)
                result = replace(result, **{f"{attr.name}_value": value})
            elif attr.name in ("default", "guess"):
                result = replace(result, **{attr.name: attr.value})
            else:
                raise UnknownParameterError(f"unknown type attribute '{attr.name}'", attr.loc)

        if typeref.dims:
            shape = []
            for dim in typeref.dims:
                value = constant_value(dim)
                if not (_is_number(value) and isinstance(value, int) and value > 0):
                    raise TypeMismatchError(
                        "array dimensions must be positive constant Integers", _loc(dim)
                    )
                shape.append(value)
            result = replace(result, shape=base.shape + tuple(shape))

        if (
            result.min_value is not None
            and result.max_value is not None
            and result.min_value > result.max_value
        ):
            raise TypeMismatchError(
                f"min={result.min_value} is greater than max={result.max_value}", typeref.loc
            )
        return result

    # -- member tables ----------------------------------------------------------

    def component(self, name: str, loc: Optional[SourceLocation] = None) -> ComponentInfo:
        """
        Member table of component ``name``.

        Raises:
            UnresolvedReferenceError: If no such declaration exists.
            TypeMismatchError: If ``name`` is a type or connector.
            CyclicDefinitionError: If ``extends`` chains loop.
        """
        info = self._components.get(name)
        if info is not None:
            return info
        decl = self.library.lookup(name)
        if decl is None:
            raise UnresolvedReferenceError(f"unknown component '{name}'", loc)
        if not isinstance(decl, ast.ComponentDecl):
            raise TypeMismatchError(f"'{name}' is a {_describe(decl)}, not a component", loc)
        if name in self._building:
            cycle = " -> ".join([*self._building[self._building.index(name) :], name])
            raise CyclicDefinitionError(f"cyclic extends: {cycle}", loc or decl.loc)
        self._building.append(name)
        try:
            info = self._build_component(decl)
        finally:
            self._building.pop()
        self._components[name] = info
        return info

    def _build_component(self, decl: ast.ComponentDecl) -> ComponentInfo:
        symbols: dict[str, Symbol] = {}
        relations: list[ast.Relation] = []
        errors: list[JSMLError] = []

        def insert(symbol: Symbol, loc: Optional[SourceLocation]) -> None:
            if symbol.name in BUILTINS:
                errors.append(
                    DuplicateSymbolError(
                        f"'{symbol.name}' is a builtin and cannot be redeclared", loc
                    )
                )
            elif symbol.name in symbols:
                errors.append(
                    DuplicateSymbolError(
                        f"'{symbol.name}' is already declared in '{decl.name}'", loc
                    )
                )
            else:
                symbols[symbol.name] = symbol

        for member in decl.members:
            if isinstance(member, ast.ExtendsDecl):
                try:
                    base = self.component(member.base, member.loc)
                except JSMLError as e:
                    errors.append(e)
                    continue
                for symbol in base.symbols.values():
                    insert(symbol, member.loc)
                relations.extend(base.relations)
                continue
            insert(self._make_symbol(member, decl.name, errors), member.loc)

        relations.extend(decl.relations)
        logger.debug("member table of %s: %s", decl.name, ", ".join(symbols))
        return ComponentInfo(decl, symbols, tuple(relations), errors)

    def _make_symbol(self, member: ast.Member, owner: str, errors: list[JSMLError]) -> Symbol:
        if isinstance(member, (ast.ParameterDecl, ast.VariableDecl)):
            is_parameter = isinstance(member, ast.ParameterDecl)
            kind = SymbolKind.PARAMETER if is_parameter else SymbolKind.VARIABLE
            try:
                resolved = self.resolve_type(member.type)
            except JSMLError as e:
                errors.append(e.with_path(member.name))
                resolved = UNKNOWN_TYPE
            return Symbol(member.name, kind, member, owner, type=resolved)

        type_name = member.interface or member.instantiation.type_name
        decl = self.library.lookup(type_name)
        if isinstance(decl, ast.ConnectorDecl):
            return Symbol(member.name, SymbolKind.CONNECTOR, member, owner, target=type_name)
        if isinstance(decl, ast.ComponentDecl):
            kind = SymbolKind.INTERFACE if member.interface else SymbolKind.COMPONENT
            return Symbol(member.name, kind, member, owner, target=type_name)
        if decl is None:
            error: JSMLError = UnresolvedReferenceError(
                f"unknown component or connector '{type_name}'", member.loc
            )
        else:
            error = TypeMismatchError(
                f"'{type_name}' is a type, not a component or connector", member.loc
            )
        errors.append(error.with_path(member.name))
        return Symbol(member.name, SymbolKind.COMPONENT, member, owner)

    # -- references -------------------------------------------------------------

    def lookup_ref(self, info: ComponentInfo, ref: ComponentRef) -> RefTarget:
        """
        Resolve a dotted reference inside component ``info``.

        The first segment is looked up in the component's members, then among
        the builtins ``time``, ``pi`` and ``e``. Later segments walk into
        connector fields and sub-component members; members declared with an
        interface type are resolved against the interface.
        """
        parts = ref.parts
        head = parts[0]
        symbol = info.symbols.get(head.name)
        if symbol is None:
            if head.name in BUILTINS:
                if len(parts) > 1:
                    raise UnresolvedReferenceError(
                        f"'{head.name}' has no member '{parts[1].name}'", ref.loc
                    )
                return RefTarget(
                    RefKind.VALUE,
                    _BUILTIN_TYPES[head.name],
                    parameter=head.name != "time",
                    builtin=head.name,
                )
            decl = self.library.lookup(head.name)
            if decl is not None:
                raise UnresolvedReferenceError(
                    f"'{head.name}' names a {_describe(decl)}, not a member of '{info.name}'",
                    ref.loc,
                )
            raise UnresolvedReferenceError(
                f"unresolved reference '{ref}' in '{info.name}'", ref.loc
            )

        i = 0
        while True:
            part = parts[i]
            last = i == len(parts) - 1
            if symbol.is_value:
                if not last:
                    raise UnresolvedReferenceError(
                        f"{symbol.kind.value} '{part.name}' has no member '{parts[i + 1].name}'",
                        ref.loc,
                    )
                return RefTarget(
                    RefKind.VALUE, symbol.type, parameter=symbol.kind == SymbolKind.PARAMETER
                )
            if part.subscripts:
                raise TypeMismatchError(f"'{part.name}' is not an array", ref.loc)
            if symbol.target is None:
                return RefTarget(RefKind.UNKNOWN)

            if symbol.kind == SymbolKind.CONNECTOR:
                if last:
                    return RefTarget(RefKind.CONNECTOR, target=symbol.target)
                return self._connector_field(symbol.target, parts[i + 1 :], ref)

            if last:
                return RefTarget(RefKind.COMPONENT, target=symbol.target)
            inner = self.component(symbol.target, ref.loc)
            following = inner.symbols.get(parts[i + 1].name)
            if following is None:
                raise UnresolvedReferenceError(
                    f"'{symbol.target}' has no member '{parts[i + 1].name}'", ref.loc
                )
            symbol = following
            i += 1

    def _connector_field(self, connector_name: str, rest: tuple, ref: ComponentRef) -> RefTarget:
        connector = self.library.connector(connector_name)
        field_decl = connector.field_named(rest[0].name)
        if field_decl is None:
            raise UnresolvedReferenceError(
                f"connector '{connector_name}' has no field '{rest[0].name}'", ref.loc
            )
        if len(rest) > 1:
            raise UnresolvedReferenceError(
                f"field '{rest[0].name}' has no member '{rest[1].name}'", ref.loc
            )
        try:
            resolved = self.resolve_type(field_decl.type)
        except JSMLError:
            # Reported with the connector declaration.
            resolved = UNKNOWN_TYPE
        return RefTarget(RefKind.VALUE, resolved, role=field_decl.role)

    def connector_type(self, info: ComponentInfo, ref: ComponentRef) -> str:
        """Connector type name of a ``connect(...)`` argument."""
        target = self.lookup_ref(info, ref)
        if target.kind != RefKind.CONNECTOR:
            raise ConnectorTypeMismatchError(f"'{ref}' is not a connector instance", ref.loc)
        return target.target

    # -- instantiation ----------------------------------------------------------

    def bind_arguments(
        self, target: ComponentInfo, inst: ast.Instantiation
    ) -> dict[str, ast.Argument]:
        """
        Map instantiation arguments to member names of ``target``.

        Positional arguments bind to parameters in declaration order; keyword
        arguments may name parameters or interface-typed members.
        """
        parameters = [s.name for s in target.parameters]
        bound: dict[str, ast.Argument] = {}
        position = 0
        for arg in inst.args:
            if arg.name is None:
                if position >= len(parameters):
                    raise UnknownParameterError(
                        f"'{target.name}' takes at most {len(parameters)} positional arguments",
                        arg.loc,
                    )
                name = parameters[position]
                position += 1
            else:
                name = arg.name
                symbol = target.symbols.get(name)
                bindable = (SymbolKind.PARAMETER, SymbolKind.INTERFACE)
                if symbol is None or symbol.kind not in bindable:
                    raise UnknownParameterError(
                        f"'{target.name}' has no parameter '{name}'", arg.loc
                    )
            if name in bound:
                raise DuplicateSymbolError(f"argument '{name}' is given more than once", arg.loc)
            bound[name] = arg
        return bound

    def check_binding(
        self, interface_name: str, concrete_name: str, loc: Optional[SourceLocation]
    ) -> ComponentInfo:
        """
        Check that ``concrete_name`` structurally satisfies an interface.

        The concrete component must declare every connector of the interface
        with the same connector type, and every parameter or variable of the
        interface.
        """
        interface = self.component(interface_name, loc)
        concrete = self.component(concrete_name, loc)
        if concrete.partial:
            raise InterfaceMismatchError(
                f"partial component '{concrete_name}' cannot be instantiated", loc
            )
        for required in interface.symbols.values():
            provided = concrete.symbols.get(required.name)
            if required.kind == SymbolKind.CONNECTOR:
                ok = (
                    provided is not None
                    and provided.kind == SymbolKind.CONNECTOR
                    and provided.target == required.target
                )
                wanted = f"connector '{required.name}::{required.target}'"
            elif required.is_value:
                ok = provided is not None and provided.is_value
                wanted = f"{required.kind.value} '{required.name}'"
            else:
                continue
            if not ok:
                raise InterfaceMismatchError(
                    f"'{concrete_name}' does not provide {wanted} required by '{interface_name}'",
                    loc,
                )
        return concrete

    # -- checks -----------------------------------------------------------------

    def check_library(self) -> list[JSMLError]:
        """Check every declaration; return all errors found."""
        errors = list(self.library.errors)
        for decl in self.library.declarations.values():
            errors.extend(self.check_declaration(decl))
        logger.debug(
            "resolved %d declarations, %d errors", len(self.library.declarations), len(errors)
        )
        return errors

    def check_declaration(self, decl: ast.Declaration) -> list[JSMLError]:
        if isinstance(decl, ast.TypeDecl):
            try:
                self.resolve_type(ast.TypeRef(decl.name, loc=decl.loc))
            except JSMLError as e:
                return [e.with_path(decl.name)]
            return []
        if isinstance(decl, ast.ConnectorDecl):
            return [e.with_path(decl.name) for e in self._check_connector(decl)]
        return [e.with_path(decl.name) for e in self._check_component(decl)]

    def _check_connector(self, decl: ast.ConnectorDecl) -> list[JSMLError]:
        errors: list[JSMLError] = []
        seen: set[str] = set()
        for f in decl.fields:
            if f.name in seen:
                errors.append(
                    DuplicateSymbolError(f"field '{f.name}' is already declared", f.loc)
                )
            seen.add(f.name)
            try:
                resolved = self.resolve_type(f.type)
            except JSMLError as e:
                errors.append(e.with_path(f.name))
                continue
            if f.role != FieldRole.SINGLETON and resolved.primitive not in _NUMERIC:
                errors.append(
                    TypeMismatchError(
                        f"{f.role.value} field '{f.name}' must be numeric", f.loc
                    )
                )

        potentials = decl.fields_with_role(FieldRole.POTENTIAL)
        flows = decl.fields_with_role(FieldRole.FLOW)
        streams = decl.fields_with_role(FieldRole.STREAM)
        if flows and len(potentials) != len(flows):
            errors.append(
                UnbalancedConnectorError(
                    f"connector '{decl.name}' declares {len(potentials)} potential and "
                    f"{len(flows)} flow fields",
                    decl.loc,
                )
            )
        if streams and len(flows) != 1:
            errors.append(
                UnbalancedConnectorError(
                    f"connector '{decl.name}' has stream fields and needs exactly one flow field",
                    decl.loc,
                )
            )
        return errors

    def _check_component(self, decl: ast.ComponentDecl) -> list[JSMLError]:
        try:
            info = self.component(decl.name, decl.loc)
        except JSMLError as e:
            return [e]
        errors = list(info.errors)
        checker = ComponentChecker(self, info)
        for symbol in info.symbols.values():
            if symbol.owner != decl.name:
                continue
            try:
                checker.check_member(symbol)
            except JSMLError as e:
                errors.append(e.with_path(symbol.name))
        for relation in decl.relations:
            try:
                checker.check_relation(relation)
            except JSMLError as e:
                errors.append(e)
        return errors


# ---------------------------------------------------------------------------
# Expression checking
# ---------------------------------------------------------------------------


class ComponentChecker:
    """Kind, shape and unit inference inside one component scope."""

    def __init__(self, resolver: Resolver, info: ComponentInfo) -> None:
        self.resolver = resolver
        self.info = info

    # -- members and relations ---------------------------------------------------

    def check_member(self, symbol: Symbol) -> None:
        if symbol.kind == SymbolKind.PARAMETER:
            default = symbol.decl.default or symbol.type.default
            if default is not None:
                value = self.infer(default)
                if not value.constant:
                    raise TypeMismatchError(
                        f"default of parameter '{symbol.name}' depends on non-parameter values",
                        _loc(default),
                    )
                self.check_assignable(
                    symbol.type, value, _loc(default), f"parameter '{symbol.name}'"
                )
        elif symbol.kind == SymbolKind.VARIABLE:
            guess = symbol.type.guess or symbol.type.default
            if guess is not None:
                self.check_assignable(
                    symbol.type, self.infer(guess), _loc(guess), f"variable '{symbol.name}'"
                )
        elif symbol.kind == SymbolKind.CONNECTOR:
            inst = symbol.instantiation
            if inst is not None:
                if inst.type_name != symbol.target:
                    raise InterfaceMismatchError(
                        f"'{symbol.name}' is declared as '{symbol.target}' but bound to "
                        f"'{inst.type_name}'",
                        inst.loc,
                    )
                self.check_instantiation(inst)
        elif symbol.target is not None:
            inst = symbol.instantiation
            if inst is not None:
                self.check_instantiation(inst)
                if symbol.kind == SymbolKind.INTERFACE:
                    self.resolver.check_binding(symbol.target, inst.type_name, inst.loc)

    def check_relation(self, relation: ast.Relation) -> None:
        if isinstance(relation, ast.ConnectStmt):
            for ref in relation.refs:
                if self.resolver.lookup_ref(self.info, ref).kind != RefKind.UNKNOWN:
                    self.resolver.connector_type(self.info, ref)
            return
        lhs = self.infer(relation.lhs)
        rhs = self.infer(relation.rhs)
        self.check_sides(lhs, rhs, relation.loc)

    def check_sides(self, lhs: ExprInfo, rhs: ExprInfo, loc: Optional[SourceLocation]) -> None:
        """Both sides of an equation must agree in kind, shape and unit."""
        if not _compatible_kinds(lhs.kind, rhs.kind):
            raise TypeMismatchError(
                f"cannot equate {lhs.kind.value} with {rhs.kind.value}", loc
            )
        if lhs.shape != rhs.shape:
            raise TypeMismatchError(
                f"left side has shape {list(lhs.shape)} but right side has shape {list(rhs.shape)}",
                loc,
            )
        if _conflicting_units(lhs, rhs):
            raise UnitMismatchError(
                f"left side has unit '{lhs.unit_text}' but right side has unit '{rhs.unit_text}'",
                loc,
            )

    def check_assignable(
        self, target: ResolvedType, value: ExprInfo, loc: Optional[SourceLocation], what: str
    ) -> None:
        if target.primitive in _NUMERIC:
            ok = value.kind in _NUMERIC and not (
                target.primitive == PrimitiveType.INTEGER and value.kind == PrimitiveType.REAL
            )
        else:
            ok = value.kind == target.primitive
        if not ok:
            raise TypeMismatchError(
                f"{what} expects {target.primitive.value}, got {value.kind.value}", loc
            )
        if value.shape != target.shape:
            raise TypeMismatchError(
                f"{what} expects shape {list(target.shape)}, got {list(value.shape)}", loc
            )
        if (
            target.unit is not None
            and value.unit is not None
            and not units.same_unit(target.unit, value.unit)
        ):
            raise UnitMismatchError(
                f"{what} has unit '{units.format_unit(target.unit)}' but the value has unit "
                f"'{value.unit_text}'",
                loc,
            )
        if _is_number(value.value):
            if target.min_value is not None and value.value < target.min_value:
                raise TypeMismatchError(
                    f"{what} = {value.value} is below min={target.min_value}", loc
                )
            if target.max_value is not None and value.value > target.max_value:
                raise TypeMismatchError(
                    f"{what} = {value.value} is above max={target.max_value}", loc
                )

    def check_instantiation(self, inst: ast.Instantiation) -> Optional[ComponentInfo]:
        """Check a ``Name(args)`` written in this component."""
        decl = self.resolver.library.lookup(inst.type_name)
        if decl is None:
            raise UnresolvedReferenceError(
                f"unknown component or connector '{inst.type_name}'", inst.loc
            )
        if isinstance(decl, ast.ConnectorDecl):
            if inst.args:
                raise UnknownParameterError(
                    f"connector '{inst.type_name}' takes no arguments", inst.args[0].loc
                )
            return None
        if not isinstance(decl, ast.ComponentDecl):
            raise TypeMismatchError(f"'{inst.type_name}' is a type, not a component", inst.loc)
        if decl.partial:
            raise InterfaceMismatchError(
                f"partial component '{inst.type_name}' cannot be instantiated", inst.loc
            )

        target = self.resolver.component(inst.type_name, inst.loc)
        for name, arg in self.resolver.bind_arguments(target, inst).items():
            symbol = target.symbols[name]
            if symbol.kind == SymbolKind.PARAMETER:
                if isinstance(arg.value, ast.Instantiation):
                    raise TypeMismatchError(
                        f"parameter '{name}' expects a value, not a component", arg.loc
                    )
                value = self.infer(arg.value)
                if not value.constant:
                    raise TypeMismatchError(
                        f"override of parameter '{name}' depends on non-parameter values", arg.loc
                    )
                self.check_assignable(
                    symbol.type, value, arg.loc, f"parameter '{inst.type_name}.{name}'"
                )
            else:
                if not isinstance(arg.value, ast.Instantiation):
                    raise InterfaceMismatchError(
                        f"'{name}' must be bound to a component instantiation", arg.loc
                    )
                self.check_instantiation(arg.value)
                self.resolver.check_binding(symbol.target, arg.value.type_name, arg.loc)
        return target

    # -- inference ----------------------------------------------------------------

    def infer(self, expr: Expr) -> ExprInfo:
        """Infer kind, unit, shape and constness of ``expr``."""
        if isinstance(expr, Literal):
            return _literal_info(expr.value)
        if isinstance(expr, ComponentRef):
            return self._infer_ref(expr)
        if isinstance(expr, BinaryOp):
            return self._infer_binary(expr)
        if isinstance(expr, UnaryOp):
            return self._infer_unary(expr)
        if isinstance(expr, FunctionCall):
            return self._infer_call(expr)
        if isinstance(expr, IfExpr):
            return self._infer_if(expr)
        if isinstance(expr, ArrayLiteral):
            return self._infer_array(expr)
        raise TypeError(f"Unknown expression type: {type(expr)}")

    def _infer_ref(self, expr: ComponentRef) -> ExprInfo:
        target = self.resolver.lookup_ref(self.info, expr)
        if target.kind == RefKind.UNKNOWN:
            return ExprInfo(PrimitiveType.REAL)
        if target.kind != RefKind.VALUE:
            raise TypeMismatchError(
                f"{target.kind.value} '{expr}' cannot be used as a value", expr.loc
            )
        resolved = target.type
        shape = resolved.shape
        subscripts = expr.parts[-1].subscripts
        if subscripts:
            if not shape:
                raise TypeMismatchError(f"'{expr.parts[-1].name}' is not an array", expr.loc)
            if len(subscripts) > len(shape):
                raise TypeMismatchError(
                    f"'{expr.parts[-1].name}' has {len(shape)} dimensions but "
                    f"{len(subscripts)} indices are given",
                    expr.loc,
                )
            for sub, dim in zip(subscripts, shape):
                index = self.infer(sub)
                if index.kind != PrimitiveType.INTEGER or index.shape:
                    raise TypeMismatchError("array indices must be Integer", _loc(sub))
                if _is_number(index.value) and not 1 <= index.value <= dim:
                    raise TypeMismatchError(
                        f"index {index.value} is out of range 1..{dim}", _loc(sub)
                    )
            shape = shape[len(subscripts) :]

        if target.builtin in _CONSTANTS:
            return ExprInfo(
                PrimitiveType.REAL, neutral=True, constant=True, value=_CONSTANTS[target.builtin]
            )
        return ExprInfo(
            resolved.primitive, resolved.unit, constant=target.parameter, shape=shape
        )

    def _infer_unary(self, expr: UnaryOp) -> ExprInfo:
        operand = self.infer(expr.operand)
        if expr.op == "not":
            _require_boolean(operand, expr)
            value = (not operand.value) if isinstance(operand.value, bool) else None
            return replace(operand, value=value)
        _require_numeric(operand, expr)
        value = operand.value
        if _is_number(value) and expr.op == "-":
            value = -value
        return replace(operand, value=value)

    def _infer_binary(self, expr: BinaryOp) -> ExprInfo:
        left = self.infer(expr.left)
        right = self.infer(expr.right)
        op = scalar_op(expr.op)
        constant = left.constant and right.constant

        if op in ("and", "or"):
            _require_boolean(left, expr)
            _require_boolean(right, expr)
            value = None
            if isinstance(left.value, bool) and isinstance(right.value, bool):
                value = (left.value and right.value) if op == "and" else (left.value or right.value)
            return ExprInfo(PrimitiveType.BOOLEAN, constant=constant, value=value)

        if op in ("<", "<=", ">", ">=", "==", "!="):
            if left.kind in _NUMERIC and right.kind in _NUMERIC:
                self._additive_unit(left, right, expr)
            elif left.kind != right.kind or op not in ("==", "!="):
                raise TypeMismatchError(
                    f"cannot compare {left.kind.value} with {right.kind.value} using '{op}'",
                    expr.loc,
                )
            return ExprInfo(PrimitiveType.BOOLEAN, constant=constant)

        _require_numeric(left, expr)
        _require_numeric(right, expr)
        shape = _arith_shape(expr.op, left.shape, right.shape, expr.loc)
        value = _fold(op, left.value, right.value)
        kind = _numeric_kind(left, right)

        if op in ("+", "-", "%"):
            unit, neutral = self._additive_unit(left, right, expr)
        elif op in ("*", "/"):
            if op == "/":
                kind = PrimitiveType.REAL
            unit, neutral = _product_unit(op, left, right)
        else:
            unit, neutral = self._power_unit(left, right, expr)
        if isinstance(value, float) and kind == PrimitiveType.INTEGER:
            kind = PrimitiveType.REAL
        return ExprInfo(kind, unit, neutral, constant, value, shape)

    def _additive_unit(self, left: ExprInfo, right: ExprInfo, expr: Expr) -> tuple[Any, bool]:
        if left.neutral and right.neutral:
            return None, True
        if left.neutral:
            return right.unit, False
        if right.neutral:
            return left.unit, False
        if left.unit is None or right.unit is None:
            return None, False
        if not units.same_unit(left.unit, right.unit):
            raise UnitMismatchError(
                f"incompatible units '{left.unit_text}' and '{right.unit_text}'", _loc(expr)
            )
        return left.unit, False

    def _power_unit(self, base: ExprInfo, exponent: ExprInfo, expr: Expr) -> tuple[Any, bool]:
        if exponent.unit is not None and not units.is_dimensionless(exponent.unit):
            raise UnitMismatchError(
                f"exponent must be dimensionless, got unit '{exponent.unit_text}'", _loc(expr)
            )
        if base.neutral:
            return None, True
        if base.unit is None:
            return None, False
        if units.is_dimensionless(base.unit):
            return units.DIMENSIONLESS, False
        if not _is_number(exponent.value):
            raise UnitMismatchError(
                f"a quantity with unit '{base.unit_text}' can only be raised to a constant "
                "number",
                _loc(expr),
            )
        return units.power(base.unit, exponent.value), False

    def _infer_call(self, expr: FunctionCall) -> ExprInfo:
        name = expr.func
        if name not in _ARITY:
            raise UnresolvedReferenceError(f"unknown function '{name}'", expr.loc)
        if len(expr.args) != _ARITY[name]:
            raise TypeMismatchError(
                f"'{name}' expects {_ARITY[name]} argument(s), got {len(expr.args)}", expr.loc
            )
        args = [self.infer(a) for a in expr.args]
        for arg in args:
            _require_numeric(arg, expr)
        first = args[0]
        constant = all(a.constant for a in args)

        if name == "der":
            if first.neutral:
                return ExprInfo(PrimitiveType.REAL, neutral=True, shape=first.shape)
            unit = units.divide(first.unit, units.SECOND) if first.unit is not None else None
            return ExprInfo(PrimitiveType.REAL, unit, shape=first.shape)

        if name in _TRANSCENDENTAL:
            if first.unit is not None and not units.is_dimensionless(first.unit):
                raise UnitMismatchError(
                    f"argument of '{name}' must be dimensionless, got unit '{first.unit_text}'",
                    expr.loc,
                )
            return ExprInfo(
                PrimitiveType.REAL, units.DIMENSIONLESS, constant=constant, shape=first.shape
            )

        if name == "sqrt":
            if first.neutral or first.unit is None:
                return replace(first, kind=PrimitiveType.REAL, value=None)
            root = units.power(first.unit, 0.5)
            return ExprInfo(PrimitiveType.REAL, root, constant=constant, shape=first.shape)

        if name == "sign":
            return ExprInfo(first.kind, units.DIMENSIONLESS, constant=constant, shape=first.shape)

        if name in ("abs", "floor", "ceil"):
            return replace(first, value=None)

        if name == "sum":
            if not first.shape:
                raise TypeMismatchError("'sum' expects an array argument", expr.loc)
            return replace(first, shape=(), value=None)

        # min, max, atan2
        second = args[1]
        if first.shape or second.shape:
            raise TypeMismatchError(f"'{name}' expects scalar arguments", expr.loc)
        unit, neutral = self._additive_unit(first, second, expr)
        if name == "atan2":
            return ExprInfo(PrimitiveType.REAL, units.DIMENSIONLESS, constant=constant)
        return ExprInfo(_numeric_kind(first, second), unit, neutral, constant)

    def _infer_if(self, expr: IfExpr) -> ExprInfo:
        condition = self.infer(expr.condition)
        _require_boolean(condition, expr)
        then = self.infer(expr.true_expr)
        otherwise = self.infer(expr.false_expr)
        constant = condition.constant and then.constant and otherwise.constant
        if then.shape != otherwise.shape:
            raise TypeMismatchError("branches of a conditional differ in shape", expr.loc)
        if then.kind in _NUMERIC and otherwise.kind in _NUMERIC:
            unit, neutral = self._additive_unit(then, otherwise, expr)
            kind = _numeric_kind(then, otherwise)
            return ExprInfo(kind, unit, neutral, constant, shape=then.shape)
        if then.kind != otherwise.kind:
            raise TypeMismatchError(
                f"branches of a conditional differ: {then.kind.value} and {otherwise.kind.value}",
                expr.loc,
            )
        return replace(then, constant=constant, value=None)

    def _infer_array(self, expr: ArrayLiteral) -> ExprInfo:
        if not expr.elements:
            return ExprInfo(PrimitiveType.REAL, neutral=True, constant=True, shape=(0,))
        infos = [self.infer(e) for e in expr.elements]
        result = infos[0]
        for info in infos[1:]:
            if info.shape != result.shape:
                raise TypeMismatchError("array elements differ in shape", expr.loc)
            if result.kind in _NUMERIC and info.kind in _NUMERIC:
                unit, neutral = self._additive_unit(result, info, expr)
                result = ExprInfo(
                    _numeric_kind(result, info),
                    unit,
                    neutral,
                    result.constant and info.constant,
                    shape=result.shape,
                )
            elif info.kind != result.kind:
                raise TypeMismatchError(
                    f"array mixes {result.kind.value} and {info.kind.value} elements", expr.loc
                )
        return replace(result, value=None, shape=(len(infos),) + result.shape)


def _literal_info(value: LiteralValue) -> ExprInfo:
    if isinstance(value, bool):
        return ExprInfo(PrimitiveType.BOOLEAN, constant=True, value=value)
    if isinstance(value, str):
        return ExprInfo(PrimitiveType.STRING, constant=True, value=value)
    kind = PrimitiveType.INTEGER if isinstance(value, int) else PrimitiveType.REAL
    return ExprInfo(kind, neutral=True, constant=True, value=value)


def _compatible_kinds(a: PrimitiveType, b: PrimitiveType) -> bool:
    return a == b or (a in _NUMERIC and b in _NUMERIC)


def _numeric_kind(left: ExprInfo, right: ExprInfo) -> PrimitiveType:
    if left.kind == PrimitiveType.INTEGER and right.kind == PrimitiveType.INTEGER:
        return PrimitiveType.INTEGER
    return PrimitiveType.REAL


def _conflicting_units(left: ExprInfo, right: ExprInfo) -> bool:
    if left.unit is None or right.unit is None:
        return False
    return not units.same_unit(left.unit, right.unit)


def _product_unit(op: str, left: ExprInfo, right: ExprInfo) -> tuple[Any, bool]:
    if left.neutral and right.neutral:
        return None, True
    if (left.unit is None and not left.neutral) or (right.unit is None and not right.neutral):
        return None, False
    lhs = units.DIMENSIONLESS if left.neutral else left.unit
    rhs = units.DIMENSIONLESS if right.neutral else right.unit
    if op == "*":
        return units.multiply(lhs, rhs), False
    return units.divide(lhs, rhs), False


def _arith_shape(
    op: str, left: tuple[int, ...], right: tuple[int, ...], loc: Optional[SourceLocation]
) -> tuple[int, ...]:
    if not left and not right:
        return ()
    if op.startswith("."):
        if left and right and left != right:
            raise TypeMismatchError(
                f"element-wise '{op}' needs equal shapes, got {list(left)} and {list(right)}", loc
            )
        return left or right
    if op in ("+", "-"):
        if left != right:
            raise TypeMismatchError(
                f"'{op}' needs equal shapes, got {list(left)} and {list(right)}", loc
            )
        return left
    if op == "*":
        if not left or not right:
            return left or right
        if left[-1] != right[0] or len(left) > 2 or len(right) > 2:
            raise TypeMismatchError(
                f"cannot multiply shapes {list(left)} and {list(right)}", loc
            )
        return left[:-1] + right[1:]
    if op == "/" and not right:
        return left
    raise TypeMismatchError(f"'{op}' is not defined for array operands", loc)


def _require_numeric(info: ExprInfo, expr: Expr) -> None:
    if info.kind not in _NUMERIC:
        raise TypeMismatchError(f"expected a numeric operand, got {info.kind.value}", _loc(expr))


def _require_boolean(info: ExprInfo, expr: Expr) -> None:
    if info.kind != PrimitiveType.BOOLEAN:
        raise TypeMismatchError(f"expected a Boolean operand, got {info.kind.value}", _loc(expr))


def resolve(files: Sequence[ast.SourceFile]) -> Resolver:
    """
    Build the library of ``files`` and check every declaration.

    Raises:
        JSMLError: The single error found, or ``CompilationError`` with all
            of them.
    """
    resolver = Resolver(Library(files))
    raise_collected(resolver.check_library())
    return resolver
