"""
Compiler configuration.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CompilerOptions:
    """
    Options controlling one compiler invocation.

    Attributes:
        metadata_namespace: Tool key under which ``experiments``, ``tests`` and
            layout records are looked up in metadata blocks.
        oriented_flows: Use the inside/outside flow sign convention: a
            connector owned by the component being expanded enters the flow
            balance with a negative sign. Off by default, in which case all
            flows of a connection set are summed with a positive sign.
        warnings_as_errors: Treat recoverable diagnostics as fatal.
        emit_warnings: Re-issue collected diagnostics through ``warnings.warn``
            at the end of a compile.
    """

    metadata_namespace: str = "JSML"
    oriented_flows: bool = False
    warnings_as_errors: bool = False
    emit_warnings: bool = True


DEFAULT_OPTIONS = CompilerOptions()
