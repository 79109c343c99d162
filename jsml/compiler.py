"""
Compiler entry points.

Runs the stages in order, each only when the previous one succeeded:

1. parse the entry file and, recursively, every file it imports
2. resolve the resulting library (names, types, units)
3. flatten the chosen component into an ``EquationSystem``
4. extract experiments, tests and layout data from its metadata

Example:
    >>> from jsml import compile_file
    >>> result = compile_file("examples/rlc.jsml", "RLCModel")
    >>> print(result.system)
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from jsml import ast
from jsml.config import DEFAULT_OPTIONS, CompilerOptions
from jsml.emitter import Emitter
from jsml.errors import (
    CompilationError,
    CyclicDefinitionError,
    InterfaceMismatchError,
    JSMLError,
    JSMLWarning,
    UnresolvedReferenceError,
    raise_collected,
)
from jsml.ir.system import EquationSystem
from jsml.metadata import MetadataArtifacts, extract_metadata
from jsml.parser import parse, parse_file
from jsml.resolver import Resolver, resolve

logger = logging.getLogger(__name__)


@dataclass
class CompileResult:
    """Everything one compilation produces."""

    system: EquationSystem
    artifacts: MetadataArtifacts
    warnings: list[JSMLWarning] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.system.name


class _Loader:
    """Collects a file and its imports, dependencies first."""

    def __init__(self) -> None:
        self.files: list[ast.SourceFile] = []
        self._loaded: set[Path] = set()
        self._stack: list[Path] = []

    def load(self, source: ast.SourceFile, path: Path) -> None:
        self._stack.append(path)
        for imp in source.imports:
            target = (path.parent / imp.path).resolve()
            if target in self._stack:
                chain = [*self._stack[self._stack.index(target) :], target]
                raise CyclicDefinitionError(
                    "import cycle: " + " -> ".join(p.name for p in chain), imp.loc
                )
            if target in self._loaded:
                continue
            if not target.is_file():
                raise UnresolvedReferenceError(f"cannot find imported file '{imp.path}'", imp.loc)
            logger.debug("importing %s", target)
            self.load(parse_file(target), target)
        self._stack.pop()
        self._loaded.add(path)
        self.files.append(source)


def load_library(source: ast.SourceFile) -> list[ast.SourceFile]:
    """
    Return ``source`` preceded by every file it imports, transitively.

    Import paths are relative to the importing file; for source text that
    does not come from a file they are relative to the working directory.

    Raises:
        CyclicDefinitionError: If the imports form a cycle.
        UnresolvedReferenceError: If an imported file does not exist.
    """
    loader = _Loader()
    loader.load(source, Path(source.path).resolve())
    return loader.files


def default_component(source: ast.SourceFile) -> str:
    """The last non-partial component declared in ``source``."""
    for decl in reversed(source.declarations):
        if isinstance(decl, ast.ComponentDecl) and not decl.partial:
            return decl.name
    raise UnresolvedReferenceError(f"no component to compile in '{source.path}'")


def _select(resolver: Resolver, name: str) -> ast.ComponentDecl:
    decl = resolver.library.lookup(name)
    if not isinstance(decl, ast.ComponentDecl):
        raise UnresolvedReferenceError(f"unknown component '{name}'")
    if decl.partial:
        raise InterfaceMismatchError(
            f"partial component '{name}' cannot be compiled on its own", decl.loc
        )
    return decl


def _report(diagnostics: list[JSMLWarning], options: CompilerOptions) -> None:
    if options.warnings_as_errors:
        raise_collected([w.as_error() for w in diagnostics])
    if options.emit_warnings:
        for w in diagnostics:
            warnings.warn(w, stacklevel=3)


def compile_component(
    resolver: Resolver, name: str, options: Optional[CompilerOptions] = None
) -> CompileResult:
    """
    Flatten one component of an already resolved library.

    Raises:
        JSMLError: The single error found, or ``CompilationError``.
    """
    options = options or DEFAULT_OPTIONS
    decl = _select(resolver, name)
    emitter = Emitter(resolver, options)
    system = emitter.emit(name)
    artifacts = extract_metadata(decl, system, options)
    logger.info(
        "compiled %s: %d equations, %d unknowns, %d warnings",
        name,
        system.n_equations,
        system.n_unknowns,
        len(emitter.warnings),
    )
    return CompileResult(system, artifacts, list(emitter.warnings))


def _compile(
    source: ast.SourceFile, component: Optional[str], options: CompilerOptions
) -> CompileResult:
    resolver = resolve(load_library(source))
    name = component or default_component(source)
    result = compile_component(resolver, name, options)
    _report(result.warnings, options)
    return result


def compile_source(
    source: str,
    component: Optional[str] = None,
    filename: str = "<string>",
    options: Optional[CompilerOptions] = None,
) -> CompileResult:
    """
    Compile JSML source text.

    Args:
        source: JSML source code
        component: Component to flatten (default: the last non-partial
            component of ``source``)
        filename: Name used in source locations; imports are resolved
            relative to its directory
        options: Compiler options

    Returns:
        CompileResult with the equation system, metadata artifacts and
        warnings

    Raises:
        JSMLError: On the first failing stage. A stage that finds several
            errors raises ``CompilationError`` with all of them.

    Example:
        >>> result = compile_source('''
        ... component Decay
        ...   variable x::Real
        ... relations
        ...   der(x) = -x
        ... end
        ... ''')
        >>> [str(eq) for eq in result.system.equations]
        ['der(x) = (-x)']
    """
    options = options or DEFAULT_OPTIONS
    return _compile(parse(source, filename), component, options)


def compile_file(
    path: Union[str, Path],
    component: Optional[str] = None,
    options: Optional[CompilerOptions] = None,
) -> CompileResult:
    """Compile a JSML file; see ``compile_source``."""
    options = options or DEFAULT_OPTIONS
    logger.debug("compiling %s", path)
    return _compile(parse_file(path), component, options)


def compile_all(
    path: Union[str, Path], options: Optional[CompilerOptions] = None
) -> dict[str, CompileResult]:
    """
    Compile every non-partial component declared in a file.

    Errors of all components are collected before raising.

    Returns:
        Results by component name, in declaration order
    """
    options = options or DEFAULT_OPTIONS
    source = parse_file(path)
    resolver = resolve(load_library(source))

    results: dict[str, CompileResult] = {}
    errors: list[JSMLError] = []
    for decl in source.declarations:
        if not isinstance(decl, ast.ComponentDecl) or decl.partial:
            continue
        try:
            results[decl.name] = compile_component(resolver, decl.name, options)
        except CompilationError as e:
            errors.extend(e.errors)
        except JSMLError as e:
            errors.append(e)
    raise_collected(errors)
    for result in results.values():
        _report(result.warnings, options)
    return results
