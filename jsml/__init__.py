"""
JSML - a compiler for acausal component models

Parses JSML source, resolves types and units, expands connections and emits
a flattened equation system together with experiment, test and layout
metadata.
"""

from beartype.claw import beartype_package

beartype_package(__name__)

__version__ = "0.1.0"

from jsml.compiler import (
    CompileResult,
    compile_all,
    compile_component,
    compile_file,
    compile_source,
)
from jsml.config import CompilerOptions
from jsml.errors import (
    CompilationError,
    JSMLError,
    JSMLWarning,
    SourceLocation,
    UnconnectedPinWarning,
)
from jsml.ir import EquationSystem
from jsml.metadata import MetadataArtifacts
from jsml.parser import format_file, parse

__all__ = [
    "CompileResult",
    "CompilerOptions",
    "CompilationError",
    "EquationSystem",
    "JSMLError",
    "JSMLWarning",
    "MetadataArtifacts",
    "SourceLocation",
    "UnconnectedPinWarning",
    "compile_all",
    "compile_component",
    "compile_file",
    "compile_source",
    "format_file",
    "parse",
    "__version__",
    "load_ipython_extension",
]


def load_ipython_extension(ipython):
    """
    Load JSML magic commands for Jupyter notebooks.

    Usage in a notebook:
        %load_ext jsml

        %%jsml rc
        component Decay
          variable x::Real
        relations
          der(x) = -x
        end

        # rc is now a jsml.CompileResult
        print(rc.system)
    """
    from .magic import load_ipython_extension as _load

    _load(ipython)
