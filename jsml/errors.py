"""
Diagnostics for the JSML compiler.

Every diagnostic carries a kind tag, a source location and, once it has
travelled through the emitter, the instantiation path of the component that
produced it. Fatal diagnostics are exceptions; recoverable ones are
warnings collected during a compile and reported at the end.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class SourceLocation:
    """A position in a JSML source file (1-based line and column)."""

    file: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


class JSMLError(Exception):
    """Base class for fatal compiler diagnostics."""

    kind = "Error"

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        path: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.path = path

    def with_path(self, prefix: str) -> "JSMLError":
        """Qualify the instantiation path with an enclosing instance name."""
        if not prefix:
            return self
        self.path = f"{prefix}.{self.path}" if self.path else prefix
        return self

    def __str__(self) -> str:
        where = f"{self.location}: " if self.location is not None else ""
        path = f"{self.path}: " if self.path else ""
        return f"{where}{self.kind}: {path}{self.message}"


class JSMLSyntaxError(JSMLError):
    """Source text does not match the grammar."""

    kind = "SyntaxError"

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        expected: Sequence[str] = (),
        path: str = "",
    ) -> None:
        self.expected = tuple(sorted(set(expected)))
        if self.expected:
            message = f"{message} (expected one of: {', '.join(self.expected)})"
        super().__init__(message, location, path)


class DuplicateSymbolError(JSMLError):
    kind = "DuplicateSymbolError"


class UnresolvedReferenceError(JSMLError):
    kind = "UnresolvedReferenceError"


class UnitMismatchError(JSMLError):
    kind = "UnitMismatchError"


class UnknownParameterError(JSMLError):
    kind = "UnknownParameterError"


class InterfaceMismatchError(JSMLError):
    kind = "InterfaceMismatchError"


class ConnectorTypeMismatchError(JSMLError):
    kind = "ConnectorTypeMismatchError"


class CyclicDefinitionError(JSMLError):
    kind = "CyclicDefinitionError"


class TypeMismatchError(JSMLError):
    """Wrong primitive type, out-of-range value or bad array indexing."""

    kind = "TypeMismatchError"


class UnbalancedConnectorError(JSMLError):
    """Connector fields violate the potential/flow pairing rules."""

    kind = "UnbalancedConnectorError"


class CompilationError(JSMLError):
    """Several fatal diagnostics reported by one compilation stage."""

    kind = "CompilationError"

    def __init__(self, errors: Sequence[JSMLError]) -> None:
        self.errors = list(errors)
        first = self.errors[0] if self.errors else None
        super().__init__(
            f"{len(self.errors)} errors",
            first.location if first is not None else None,
        )

    def __str__(self) -> str:
        lines = [f"{len(self.errors)} errors:"]
        lines.extend(f"  {e}" for e in self.errors)
        return "\n".join(lines)


def raise_collected(errors: Sequence[JSMLError]) -> None:
    """Raise the collected errors of a stage, if any."""
    if len(errors) == 1:
        raise errors[0]
    if errors:
        raise CompilationError(errors)


# Warnings are regular Python warnings so they can be filtered and re-raised
# with the standard ``warnings`` machinery.


class JSMLWarning(UserWarning):
    """Base class for recoverable compiler diagnostics."""

    kind = "Warning"

    def __init__(
        self,
        message: str,
        location: Optional[SourceLocation] = None,
        path: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.path = path

    def __str__(self) -> str:
        where = f"{self.location}: " if self.location is not None else ""
        path = f"{self.path}: " if self.path else ""
        return f"{where}{self.kind}: {path}{self.message}"

    def as_error(self) -> JSMLError:
        """The fatal form of this diagnostic, used with ``warnings_as_errors``."""
        error = JSMLError(self.message, self.location, self.path)
        error.kind = self.kind
        return error


class UnconnectedPinWarning(JSMLWarning):
    """A sub-component connector is never named in a ``connect(...)``."""

    kind = "UnconnectedPinError"
