"""Declarative schema shapes.

Shapes are a closed family of frozen dataclasses. Conversion to a model
constraint and validation of candidate output both match exhaustively over
these variants; no runtime introspection of arbitrary objects is involved.

Wrappers (optional, default, nullable) are transparent: they unwrap to the
inner shape and only change how absence or ``None`` is treated.

Example:
    >>> feature = ObjectShape({
    ...     "name": StringShape(),
    ...     "type": EnumShape(("spell", "weapon", "equipment", "other")),
    ...     "notes": StringShape().optional(),
    ... })
    >>> features = ArrayShape(feature).describe("Creature features")
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Self


@dataclass(frozen=True, eq=True)
class Shape:
    """Base variant. Never instantiated directly."""

    description: str | None = field(default=None, kw_only=True)

    def describe(self, text: str) -> Self:
        """Return a copy carrying a human-readable description."""
        return replace(self, description=text)

    def optional(self) -> OptionalShape:
        return OptionalShape(self)

    def nullable(self) -> NullableShape:
        return NullableShape(self)

    def default(self, value: Any) -> DefaultShape:
        return DefaultShape(self, value)


# =============================================================================
# Primitives
# =============================================================================


@dataclass(frozen=True, eq=True)
class StringShape(Shape):
    """A JSON string."""


@dataclass(frozen=True, eq=True)
class NumberShape(Shape):
    """A JSON number. ``integer`` rejects fractional values."""

    integer: bool = False


@dataclass(frozen=True, eq=True)
class BooleanShape(Shape):
    """A JSON boolean."""


@dataclass(frozen=True, eq=True)
class EnumShape(Shape):
    """A string restricted to a fixed set of values."""

    values: tuple[str, ...]


@dataclass(frozen=True, eq=True)
class AnyShape(Shape):
    """Any JSON value."""


# =============================================================================
# Containers
# =============================================================================


@dataclass(frozen=True, eq=True)
class ArrayShape(Shape):
    """A JSON array whose elements all match ``items``."""

    items: Shape


@dataclass(frozen=True, eq=True)
class ObjectShape(Shape):
    """A JSON object with declared fields.

    Fields are required unless wrapped in OptionalShape (or DefaultShape,
    which fills the value). ``passthrough`` keeps undeclared keys.
    """

    fields: Mapping[str, Shape]
    passthrough: bool = True


@dataclass(frozen=True, eq=True)
class MapShape(Shape):
    """A free-form object with string keys; values optionally constrained."""

    values: Shape | None = None


# =============================================================================
# Wrappers
# =============================================================================


@dataclass(frozen=True, eq=True)
class OptionalShape(Shape):
    """The field may be absent."""

    inner: Shape


@dataclass(frozen=True, eq=True)
class DefaultShape(Shape):
    """The field may be absent; ``value`` is filled in when it is."""

    inner: Shape
    value: Any = None


@dataclass(frozen=True, eq=True)
class NullableShape(Shape):
    """The value may be ``None``."""

    inner: Shape


WRAPPER_SHAPES = (OptionalShape, DefaultShape, NullableShape)


def unwrap(shape: Shape) -> Shape:
    """Strip every wrapper layer and return the innermost shape."""
    while isinstance(shape, WRAPPER_SHAPES):
        shape = shape.inner
    return shape


def is_array(shape: Shape) -> bool:
    """Whether the (unwrapped) shape expects an array."""
    return isinstance(unwrap(shape), ArrayShape)


__all__ = [
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
    "WRAPPER_SHAPES",
    "unwrap",
    "is_array",
]
