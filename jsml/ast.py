"""
Abstract syntax tree of JSML declarations.

Expressions inside declarations are the IR expression nodes from
``jsml.ir.expr``. All nodes are immutable; ``loc`` and ``description`` do not
take part in structural equality checks of expressions but do for
declarations, where a description is part of what was written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from jsml.errors import SourceLocation
from jsml.ir.expr import ComponentRef, Expr
from jsml.ir.types import FieldRole


def _loc() -> Any:
    return field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Attribute:
    """``name=value`` inside a type reference, e.g. ``units="V"``."""

    name: str
    value: Expr
    loc: Optional[SourceLocation] = _loc()


@dataclass(frozen=True)
class TypeRef:
    """``Voltage``, ``Real(units="V", min=0)`` or ``Real[3]``."""

    name: str
    attributes: tuple[Attribute, ...] = ()
    dims: tuple[Expr, ...] = ()
    loc: Optional[SourceLocation] = _loc()

    def attribute(self, name: str) -> Optional[Expr]:
        for attr in self.attributes:
            if attr.name == name:
                return attr.value
        return None


@dataclass(frozen=True)
class TypeDecl:
    """``type Voltage = Real(units="V")``"""

    name: str
    base: TypeRef
    description: str = ""
    metadata: Optional[dict] = None
    loc: Optional[SourceLocation] = _loc()


@dataclass(frozen=True)
class FieldDecl:
    """One connector field, e.g. ``flow i::Current``."""

    role: FieldRole
    name: str
    type: TypeRef
    description: str = ""
    metadata: Optional[dict] = None
    loc: Optional[SourceLocation] = _loc()


@dataclass(frozen=True)
class ConnectorDecl:
    name: str
    fields: tuple[FieldDecl, ...]
    description: str = ""
    metadata: Optional[dict] = None
    loc: Optional[SourceLocation] = _loc()

    def field_named(self, name: str) -> Optional[FieldDecl]:
        return next((f for f in self.fields if f.name == name), None)

    def fields_with_role(self, role: FieldRole) -> list[FieldDecl]:
        return [f for f in self.fields if f.role == role]


@dataclass(frozen=True)
class Instantiation:
    """``Resistor(R=100)``"""

    type_name: str
    args: tuple["Argument", ...] = ()
    loc: Optional[SourceLocation] = _loc()


@dataclass(frozen=True)
class Argument:
    """A positional or keyword instantiation argument."""

    name: Optional[str]
    value: Union[Expr, Instantiation]
    loc: Optional[SourceLocation] = _loc()


@dataclass(frozen=True)
class ParameterDecl:
    name: str
    type: TypeRef
    default: Optional[Expr] = None
    description: str = ""
    metadata: Optional[dict] = None
    loc: Optional[SourceLocation] = _loc()


@dataclass(frozen=True)
class VariableDecl:
    name: str
    type: TypeRef
    description: str = ""
    metadata: Optional[dict] = None
    loc: Optional[SourceLocation] = _loc()


@dataclass(frozen=True)
class InstanceDecl:
    """
    A sub-component or connector instance.

    ``p = Pin()`` has no interface; ``load::TwoPin = Resistor(R=1)`` binds a
    concrete component to a member declared with an interface type, and
    ``load::TwoPin`` alone leaves the binding to the instantiating parent.
    """

    name: str
    instantiation: Optional[Instantiation] = None
    interface: Optional[str] = None
    description: str = ""
    metadata: Optional[dict] = None
    loc: Optional[SourceLocation] = _loc()


@dataclass(frozen=True)
class ExtendsDecl:
    base: str
    loc: Optional[SourceLocation] = _loc()


Member = Union[ParameterDecl, VariableDecl, InstanceDecl, ExtendsDecl]


@dataclass(frozen=True)
class EquationStmt:
    lhs: Expr
    rhs: Expr
    initial: bool = False
    description: str = ""
    metadata: Optional[dict] = None
    loc: Optional[SourceLocation] = _loc()


@dataclass(frozen=True)
class ConnectStmt:
    refs: tuple[ComponentRef, ...]
    description: str = ""
    metadata: Optional[dict] = None
    loc: Optional[SourceLocation] = _loc()


Relation = Union[EquationStmt, ConnectStmt]


@dataclass(frozen=True)
class ComponentDecl:
    name: str
    members: tuple[Member, ...] = ()
    relations: tuple[Relation, ...] = ()
    partial: bool = False
    description: str = ""
    metadata: Optional[dict] = None
    loc: Optional[SourceLocation] = _loc()

    @property
    def connects(self) -> list[ConnectStmt]:
        return [r for r in self.relations if isinstance(r, ConnectStmt)]


@dataclass(frozen=True)
class ImportDecl:
    """``import "other.jsml"``"""

    path: str
    loc: Optional[SourceLocation] = _loc()


Declaration = Union[TypeDecl, ConnectorDecl, ComponentDecl]


@dataclass(frozen=True)
class SourceFile:
    path: str
    imports: tuple[ImportDecl, ...] = ()
    declarations: tuple[Declaration, ...] = ()

    def find(self, name: str) -> Optional[Declaration]:
        return next((d for d in self.declarations if d.name == name), None)
