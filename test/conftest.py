"""
Shared fixtures for the JSML test suite.
"""

from pathlib import Path

import pytest

EXAMPLES_DIR = Path(__file__).resolve().parent.parent / "examples"


@pytest.fixture
def examples_dir() -> Path:
    return EXAMPLES_DIR


@pytest.fixture
def electrical_source() -> str:
    return (EXAMPLES_DIR / "electrical.jsml").read_text(encoding="utf-8")
