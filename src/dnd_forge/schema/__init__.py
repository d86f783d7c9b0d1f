"""Schema shapes, constraint conversion and validation of model output."""

from __future__ import annotations

from dnd_forge.schema.definitions import (
    BLUEPRINT_SHAPE,
    ITEM_LIST_SHAPE,
    ITEM_SHAPE,
    SELECTION_SHAPE,
)
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
    is_array,
    unwrap,
)
from dnd_forge.schema.validator import (
    ValidationIssue,
    ValidationResult,
    format_issues,
    to_constraint,
    validate,
)


__all__ = [
    # Shapes
    "Shape",
    "StringShape",
    "NumberShape",
    "BooleanShape",
    "EnumShape",
    "AnyShape",
    "ArrayShape",
    "ObjectShape",
    "MapShape",
    "OptionalShape",
    "DefaultShape",
    "NullableShape",
    "unwrap",
    "is_array",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    "format_issues",
    "to_constraint",
    "validate",
    # Declared outputs
    "BLUEPRINT_SHAPE",
    "ITEM_SHAPE",
    "ITEM_LIST_SHAPE",
    "SELECTION_SHAPE",
]
