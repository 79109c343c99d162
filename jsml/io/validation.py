"""
Schema validation of exported equation systems.

Every violation is reported, not just the first, each prefixed with the
dotted location of the offending value (``variables.0.kind: ...``).
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

import jsonschema
from jsonschema.validators import validator_for

SCHEMA_FILE = "equation_system-0.1.0.schema.json"


@lru_cache(maxsize=None)
def _load_schema(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _location(error: jsonschema.ValidationError) -> str:
    return ".".join(str(p) for p in error.absolute_path) or "<root>"


def validate_equation_system(
    data: Union[dict, str, Path],
    schema_path: Optional[Union[str, Path]] = None,
) -> list[str]:
    """
    Validate equation-system JSON data against the schema.

    Args:
        data: A decoded JSON document, or the path of a JSON file
        schema_path: Schema to validate against; the shipped one if None

    Returns:
        One ``"<location>: <message>"`` string per violation, ordered by
        location; empty if the data is valid

    Example:
        >>> for error in validate_equation_system("rlc.json"):
        ...     print(error)
        variables.0.kind: 'state' is not one of ['variable', 'parameter', ...]
    """
    if isinstance(data, (str, Path)):
        with open(data, "r", encoding="utf-8") as f:
            data = json.load(f)

    schema = _load_schema(Path(schema_path) if schema_path is not None else get_schema_path())
    cls = validator_for(schema)
    try:
        cls.check_schema(schema)
    except jsonschema.SchemaError as e:
        return [f"invalid schema: {e.message}"]

    errors = sorted(
        cls(schema).iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]
    )
    return [f"{_location(e)}: {e.message}" for e in errors]


def get_schema_path() -> Path:
    """Path to the equation-system schema shipped with the package."""
    return Path(__file__).parent / "schemas" / SCHEMA_FILE
