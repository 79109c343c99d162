"""
Unit algebra for JSML declarations.

Declared ``units`` strings are parsed with a shared pint registry. The
compiler only ever compares and combines units; it never converts values,
so two units are "the same" only when they measure the same dimension with a
conversion factor of exactly one (``A*Ohm`` is ``V``, ``mV`` is not).
"""

from __future__ import annotations

import math
import re
from functools import lru_cache
from typing import Any, Union

import pint

ureg = pint.UnitRegistry()
# Modelica libraries spell the ohm with a capital letter.
ureg.define("@alias ohm = Ohm")

DIMENSIONLESS = ureg.dimensionless
SECOND = ureg.second

# "N.m" -> "N*m", "m2" -> "m**2", "s-1" -> "s**-1"
_PRODUCT_DOT = re.compile(r"(?<=[A-Za-z0-9)])\.(?=[A-Za-z(])")
_TRAILING_EXPONENT = re.compile(r"(?<=[A-Za-z])(-?\d+)")


class UnitError(ValueError):
    """A units string that cannot be parsed."""


def normalize(text: str) -> str:
    """Rewrite Modelica unit syntax into the form pint parses."""
    text = text.strip()
    text = _PRODUCT_DOT.sub("*", text)
    return _TRAILING_EXPONENT.sub(r"**\1", text)


@lru_cache(maxsize=None)
def parse_unit(text: str) -> Any:
    """
    Parse a declared units string.

    The empty string and ``"1"`` are dimensionless.

    Raises:
        UnitError: If pint does not know the unit.
    """
    normalized = normalize(text)
    if normalized in ("", "1"):
        return DIMENSIONLESS
    try:
        return ureg.parse_units(normalized)
    except (pint.PintError, AttributeError, TypeError, ValueError, SyntaxError) as e:
        raise UnitError(f"unknown unit '{text}'") from e


def same_unit(a: Any, b: Any) -> bool:
    """True if ``a`` and ``b`` are interchangeable without conversion."""
    if a == b:
        return True
    if a.dimensionality != b.dimensionality:
        return False
    return math.isclose(ureg.Quantity(1, a).to(b).magnitude, 1.0, rel_tol=1e-12)


def is_dimensionless(unit: Any) -> bool:
    return same_unit(unit, DIMENSIONLESS)


def multiply(a: Any, b: Any) -> Any:
    return a * b


def divide(a: Any, b: Any) -> Any:
    return a / b


def power(unit: Any, exponent: Union[int, float]) -> Any:
    if isinstance(exponent, float) and exponent.is_integer():
        exponent = int(exponent)
    return unit**exponent


def format_unit(unit: Any) -> str:
    """Short symbol form, e.g. ``V`` or ``m / s``; empty for dimensionless."""
    if unit is None:
        return "?"
    if unit == DIMENSIONLESS:
        return "1"
    return f"{unit:~}"
