"""Constraint conversion and strict validation over schema shapes.

``to_constraint`` produces the JSON-Schema-like description handed to the
generation backend. It is advisory, so unsupported shapes are logged and
skipped. ``validate`` is the enforcement point and is strict: every failure
is reported as a ``(path, message)`` issue.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from dnd_forge.core.logging import get_logger
from dnd_forge.schema.shapes import (
    AnyShape,
    ArrayShape,
    BooleanShape,
    DefaultShape,
    EnumShape,
    MapShape,
    NullableShape,
    NumberShape,
    ObjectShape,
    OptionalShape,
    Shape,
    StringShape,
)


logger = get_logger(__name__)

PathPart = str | int


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation failure.

    Attributes:
        path: Keys and indices leading to the offending value.
        message: What was wrong.
    """

    path: tuple[PathPart, ...]
    message: str

    @property
    def location(self) -> str:
        return ".".join(str(part) for part in self.path) if self.path else "<root>"

    def __str__(self) -> str:
        return f"{self.location}: {self.message}"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of ``validate``.

    Attributes:
        success: True when no issues were found.
        value: The validated value, with defaults filled and undeclared keys
            dropped from non-passthrough objects. Only meaningful on success.
        issues: All issues found, in traversal order.
    """

    success: bool
    value: Any
    issues: tuple[ValidationIssue, ...] = ()


def format_issues(issues: Iterable[ValidationIssue]) -> str:
    """Join issues as ``path: message; path: message``."""
    return "; ".join(str(issue) for issue in issues)


# =============================================================================
# Constraint Conversion
# =============================================================================


def to_constraint(shape: Shape | None) -> dict[str, Any]:
    """Convert a shape into an advisory output constraint for the model.

    Args:
        shape: The shape to convert.

    Returns:
        A JSON-Schema-like dictionary. Unsupported shapes yield ``{}``.
    """
    if shape is None:
        return {}

    match shape:
        case OptionalShape(inner=inner) | DefaultShape(inner=inner) | NullableShape(inner=inner):
            result = to_constraint(inner)
            if shape.description and "description" not in result:
                result["description"] = shape.description
            return result
        case StringShape():
            result = {"type": "string"}
        case NumberShape(integer=integer):
            result = {"type": "integer" if integer else "number"}
        case BooleanShape():
            result = {"type": "boolean"}
        case EnumShape(values=values):
            result = {"type": "string", "enum": list(values)}
        case ArrayShape(items=items):
            result = {"type": "array", "items": to_constraint(items)}
        case ObjectShape(fields=fields):
            properties: dict[str, Any] = {}
            required: list[str] = []
            for name, field_shape in fields.items():
                properties[name] = to_constraint(field_shape)
                if not isinstance(field_shape, OptionalShape):
                    required.append(name)
            result = {"type": "object", "properties": properties}
            if required:
                result["required"] = required
        case MapShape():
            result = {"type": "object"}
        case AnyShape():
            result = {}
        case _:
            logger.warning("Unsupported schema shape skipped", shape=type(shape).__name__)
            return {}

    if shape.description:
        result = {"description": shape.description, **result}
    return result


# =============================================================================
# Validation
# =============================================================================


_MISSING = object()


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


class _Validator:
    """Collects issues while walking a value against a shape."""

    def __init__(self) -> None:
        self.issues: list[ValidationIssue] = []

    def fail(self, path: tuple[PathPart, ...], message: str) -> Any:
        self.issues.append(ValidationIssue(path, message))
        return None

    def expected(self, path: tuple[PathPart, ...], expected: str, value: Any) -> Any:
        return self.fail(path, f"Expected {expected}, received {_type_name(value)}")

    def check(self, shape: Shape, value: Any, path: tuple[PathPart, ...]) -> Any:
        match shape:
            case NullableShape(inner=inner):
                return None if value is None else self.check(inner, value, path)
            case OptionalShape(inner=inner) | DefaultShape(inner=inner):
                return self.check(inner, value, path)
            case StringShape():
                return value if isinstance(value, str) else self.expected(path, "string", value)
            case NumberShape(integer=integer):
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    return self.expected(path, "integer" if integer else "number", value)
                if integer:
                    if isinstance(value, float):
                        if not value.is_integer():
                            return self.fail(path, "Expected integer, received float")
                        return int(value)
                return value
            case BooleanShape():
                return value if isinstance(value, bool) else self.expected(path, "boolean", value)
            case EnumShape(values=values):
                if value in values:
                    return value
                options = " | ".join(repr(v) for v in values)
                return self.fail(path, f"Invalid enum value. Expected {options}, received {value!r}")
            case AnyShape():
                return copy.deepcopy(value)
            case ArrayShape(items=items):
                if not isinstance(value, list):
                    return self.expected(path, "array", value)
                return [self.check(items, element, (*path, index)) for index, element in enumerate(value)]
            case ObjectShape():
                return self.check_object(shape, value, path)
            case MapShape(values=values):
                if not isinstance(value, dict):
                    return self.expected(path, "object", value)
                if values is None:
                    return copy.deepcopy(value)
                return {key: self.check(values, item, (*path, key)) for key, item in value.items()}
            case _:
                return self.fail(path, f"Unsupported schema shape {type(shape).__name__}")

    def check_object(self, shape: ObjectShape, value: Any, path: tuple[PathPart, ...]) -> Any:
        if not isinstance(value, dict):
            return self.expected(path, "object", value)

        result: dict[str, Any] = {}
        for name, field_shape in shape.fields.items():
            field_path = (*path, name)
            if name in value:
                result[name] = self.check(field_shape, value[name], field_path)
                continue
            filled = self.missing(field_shape, field_path)
            if filled is not _MISSING:
                result[name] = filled

        if shape.passthrough:
            for key, extra in value.items():
                if key not in shape.fields:
                    result[key] = copy.deepcopy(extra)
        return result

    def missing(self, shape: Shape, path: tuple[PathPart, ...]) -> Any:
        """Resolve an absent field: skip, fill the default, or report."""
        match shape:
            case OptionalShape():
                return _MISSING
            case DefaultShape(value=default):
                return copy.deepcopy(default)
            case NullableShape(inner=inner):
                return self.missing(inner, path)
            case _:
                self.fail(path, "Required")
                return _MISSING


def validate(shape: Shape, value: Any) -> ValidationResult:
    """Validate ``value`` against ``shape``.

    Args:
        shape: The expected shape.
        value: A JSON-compatible value (e.g. the output of ``json.loads``).

    Returns:
        ValidationResult with the cleaned value or the list of issues.
    """
    validator = _Validator()
    cleaned = validator.check(shape, value, ())
    if validator.issues:
        return ValidationResult(success=False, value=None, issues=tuple(validator.issues))
    return ValidationResult(success=True, value=cleaned)


__all__ = [
    "ValidationIssue",
    "ValidationResult",
    "format_issues",
    "to_constraint",
    "validate",
]
