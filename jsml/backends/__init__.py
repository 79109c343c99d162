"""
Backends hand a compiled equation system to a symbolic framework.

- SymPy: symbolic inspection, parameter substitution and LaTeX export
"""

from jsml.backends.sympy import SympyBackend

__all__ = ["SympyBackend"]
