"""
Import and export the equation-system IR as JSON (``jsml-0.1.0``).

Expressions use an operator-tree encoding:

- ``{"op": "literal", "value": 1.5}``
- ``{"op": "var", "name": "x"}`` for a single undotted name
- ``{"op": "component_ref", "parts": [{"name": "r", "subscripts": []}, ...]}``
- ``{"op": "+", "args": [lhs, rhs]}`` for binary operators (``.*`` etc. kept)
- ``{"op": "neg" | "pos" | "not", "args": [operand]}``
- ``{"op": "der", "args": [x]}``, ``{"op": "call", "func": "sin", "args": [...]}``
- ``{"op": "if", "condition": c, "then": a, "else": b}``
- ``{"op": "array", "values": [...]}``

Source locations are not exported.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

from jsml.io.validation import validate_equation_system
from jsml.ir import (
    ArrayLiteral,
    BinaryOp,
    ComponentRef,
    ComponentRefPart,
    Equation,
    EquationKind,
    EquationSystem,
    Expr,
    FunctionCall,
    IfExpr,
    InstanceNode,
    Literal,
    PrimitiveType,
    UnaryOp,
    Variable,
    VariableKind,
)
from jsml.metadata import MetadataArtifacts

logger = logging.getLogger(__name__)

IR_VERSION = "jsml-0.1.0"

_UNARY_NAMES = {"-": "neg", "+": "pos", "not": "not"}
_UNARY_OPS = {name: op for op, name in _UNARY_NAMES.items()}


def import_equation_system(path: Union[str, Path]) -> EquationSystem:
    """
    Import an equation system from a JSON file.

    Example:
        >>> system = import_equation_system("rlc.json")
        >>> print(system.n_equations)
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return equation_system_from_dict(data)


def load_equation_system_json(json_str: str) -> EquationSystem:
    """Load an equation system from a JSON string."""
    return equation_system_from_dict(json.loads(json_str))


def dumps_equation_system(system: EquationSystem, pretty: bool = True) -> str:
    """Serialize an equation system to a JSON string."""
    return json.dumps(equation_system_to_dict(system), indent=2 if pretty else None)


def export_equation_system(
    system: EquationSystem,
    path: Union[str, Path],
    validate: bool = True,
    pretty: bool = True,
) -> None:
    """
    Export an equation system to a JSON file.

    Args:
        system: Compiled equation system
        path: Output file path
        validate: Check the document against the shipped schema first
        pretty: Pretty-print the JSON output

    Example:
        >>> export_equation_system(result.system, "rlc.json")
    """
    data = equation_system_to_dict(system)
    if validate:
        for error in validate_equation_system(data):
            logger.warning("schema validation of %s: %s", system.name, error)

    with open(path, "w", encoding="utf-8") as f:
        if pretty:
            json.dump(data, f, indent=2)
        else:
            json.dump(data, f)


def export_artifacts(artifacts: MetadataArtifacts, path: Union[str, Path]) -> None:
    """Write experiments, tests and layout data of one component as JSON."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(artifacts.to_dict(), f, indent=2)


# ==================== Export ====================


def equation_system_to_dict(system: EquationSystem) -> dict[str, Any]:
    """Convert an equation system to a JSON-compatible dict."""
    return {
        "ir_version": IR_VERSION,
        "name": system.name,
        "description": system.description,
        "parameters": [_export_variable(p) for p in system.parameters],
        "variables": [_export_variable(v) for v in system.variables],
        "equations": [_export_equation(eq) for eq in system.equations],
        "initial_equations": [_export_equation(eq) for eq in system.initial_equations],
        "instance_tree": _export_node(system.root) if system.root is not None else None,
        "descriptions": dict(system.descriptions),
        "metadata": dict(system.metadata),
    }


def _export_variable(var: Variable) -> dict[str, Any]:
    return {
        "name": var.name,
        "kind": var.kind.value,
        "type": var.primitive_type.value,
        "type_name": var.type_name,
        "unit": var.unit,
        "shape": list(var.shape),
        "value": _export_optional(var.value),
        "guess": _export_optional(var.guess),
        "overridden": var.overridden,
        "min": var.min_value,
        "max": var.max_value,
        "description": var.description,
    }


def _export_equation(eq: Equation) -> dict[str, Any]:
    return {
        "kind": eq.kind.value,
        "lhs": export_expr(eq.lhs),
        "rhs": export_expr(eq.rhs),
        "description": eq.description,
    }


def _export_node(node: InstanceNode) -> dict[str, Any]:
    return {
        "name": node.name,
        "type": node.type_name,
        "connector": node.is_connector,
        "children": [_export_node(c) for c in node.children],
    }


def _export_optional(expr: Optional[Expr]) -> Optional[dict]:
    return export_expr(expr) if expr is not None else None


def export_expr(expr: Expr) -> dict[str, Any]:
    """Export an expression."""
    if isinstance(expr, Literal):
        return {"op": "literal", "value": expr.value}

    elif isinstance(expr, ComponentRef):
        if expr.is_simple:
            return {"op": "var", "name": expr.head}
        parts = []
        for part in expr.parts:
            subscripts = [export_expr(sub) for sub in part.subscripts]
            parts.append({"name": part.name, "subscripts": subscripts})
        return {"op": "component_ref", "parts": parts}

    elif isinstance(expr, BinaryOp):
        return {"op": expr.op, "args": [export_expr(expr.left), export_expr(expr.right)]}

    elif isinstance(expr, UnaryOp):
        return {"op": _UNARY_NAMES[expr.op], "args": [export_expr(expr.operand)]}

    elif isinstance(expr, FunctionCall):
        if expr.func == "der":
            return {"op": "der", "args": [export_expr(a) for a in expr.args]}
        return {
            "op": "call",
            "func": expr.func,
            "args": [export_expr(arg) for arg in expr.args],
        }

    elif isinstance(expr, IfExpr):
        return {
            "op": "if",
            "condition": export_expr(expr.condition),
            "then": export_expr(expr.true_expr),
            "else": export_expr(expr.false_expr),
        }

    elif isinstance(expr, ArrayLiteral):
        return {"op": "array", "values": [export_expr(e) for e in expr.elements]}

    else:
        raise ValueError(f"Cannot export expression type: {type(expr)}")


# ==================== Import ====================


def equation_system_from_dict(data: dict[str, Any]) -> EquationSystem:
    """
    Rebuild an equation system from its dict form.

    Raises:
        ValueError: If the document has another IR version.
    """
    version = data.get("ir_version")
    if version != IR_VERSION:
        raise ValueError(f"Unsupported IR version: {version!r} (expected {IR_VERSION})")

    tree = data.get("instance_tree")
    return EquationSystem(
        name=data["name"],
        description=data.get("description", ""),
        parameters=[_import_variable(p) for p in data["parameters"]],
        variables=[_import_variable(v) for v in data["variables"]],
        equations=[_import_equation(eq) for eq in data["equations"]],
        initial_equations=[_import_equation(eq) for eq in data["initial_equations"]],
        root=_import_node(tree) if tree is not None else None,
        descriptions=dict(data.get("descriptions", {})),
        metadata=dict(data.get("metadata", {})),
    )


def _import_variable(data: dict[str, Any]) -> Variable:
    return Variable(
        name=data["name"],
        kind=VariableKind(data["kind"]),
        primitive_type=PrimitiveType(data["type"]),
        type_name=data.get("type_name", data["type"]),
        unit=data.get("unit", ""),
        shape=tuple(data.get("shape", ())),
        value=_import_optional(data.get("value")),
        guess=_import_optional(data.get("guess")),
        overridden=data.get("overridden", False),
        min_value=data.get("min"),
        max_value=data.get("max"),
        description=data.get("description", ""),
    )


def _import_equation(data: dict[str, Any]) -> Equation:
    return Equation(
        import_expr(data["lhs"]),
        import_expr(data["rhs"]),
        EquationKind(data["kind"]),
        data.get("description", ""),
    )


def _import_node(data: dict[str, Any]) -> InstanceNode:
    return InstanceNode(
        data["name"],
        data["type"],
        is_connector=data.get("connector", False),
        children=[_import_node(c) for c in data.get("children", [])],
    )


def _import_optional(data: Optional[dict]) -> Optional[Expr]:
    return import_expr(data) if data is not None else None


def import_expr(data: dict[str, Any]) -> Expr:
    """Import an expression."""
    op = data["op"]

    if op == "literal":
        return Literal(data["value"])

    elif op == "var":
        return ComponentRef((ComponentRefPart(data["name"]),))

    elif op == "component_ref":
        parts = []
        for part_data in data["parts"]:
            subscripts = tuple(import_expr(sub) for sub in part_data.get("subscripts", []))
            parts.append(ComponentRefPart(part_data["name"], subscripts))
        return ComponentRef(tuple(parts))

    elif op in _UNARY_OPS:
        return UnaryOp(_UNARY_OPS[op], import_expr(data["args"][0]))

    elif op == "der":
        return FunctionCall("der", tuple(import_expr(a) for a in data["args"]))

    elif op == "call":
        return FunctionCall(data["func"], tuple(import_expr(a) for a in data.get("args", [])))

    elif op == "if":
        return IfExpr(
            import_expr(data["condition"]),
            import_expr(data["then"]),
            import_expr(data["else"]),
        )

    elif op == "array":
        return ArrayLiteral(tuple(import_expr(v) for v in data.get("values", [])))

    elif "args" in data and len(data["args"]) == 2:
        left, right = data["args"]
        return BinaryOp(op, import_expr(left), import_expr(right))

    else:
        raise ValueError(f"Cannot import expression with op: {op!r}")
