"""
IO module for importing and exporting equation systems as JSON.
"""

from jsml.io.json_ir import (
    IR_VERSION,
    dumps_equation_system,
    equation_system_from_dict,
    equation_system_to_dict,
    export_artifacts,
    export_equation_system,
    export_expr,
    import_equation_system,
    import_expr,
    load_equation_system_json,
)
from jsml.io.validation import get_schema_path, validate_equation_system

__all__ = [
    "IR_VERSION",
    "dumps_equation_system",
    "equation_system_from_dict",
    "equation_system_to_dict",
    "export_artifacts",
    "export_equation_system",
    "export_expr",
    "import_equation_system",
    "import_expr",
    "load_equation_system_json",
    "validate_equation_system",
    "get_schema_path",
]
