"""Tests for schema shapes, constraint conversion and validation."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from dnd_forge.schema import (
    BLUEPRINT_SHAPE,
    ITEM_LIST_SHAPE,
    SELECTION_SHAPE,
    AnyShape,
    ArrayShape,
    BooleanShape,
    EnumShape,
    MapShape,
    NumberShape,
    ObjectShape,
    StringShape,
    format_issues,
    is_array,
    to_constraint,
    unwrap,
    validate,
)


# =============================================================================
# Constraint Conversion
# =============================================================================


class TestToConstraint:
    """Tests for to_constraint."""

    def test_primitives(self) -> None:
        """Test primitive shapes map to JSON Schema types."""
        assert to_constraint(StringShape()) == {"type": "string"}
        assert to_constraint(NumberShape()) == {"type": "number"}
        assert to_constraint(NumberShape(integer=True)) == {"type": "integer"}
        assert to_constraint(BooleanShape()) == {"type": "boolean"}
        assert to_constraint(AnyShape()) == {}

    def test_enum(self) -> None:
        """Test enums list their values."""
        assert to_constraint(EnumShape(("a", "b"))) == {"type": "string", "enum": ["a", "b"]}

    def test_object_required_fields(self) -> None:
        """Test only non-optional fields are required."""
        shape = ObjectShape({
            "name": StringShape(),
            "notes": StringShape().optional(),
            "level": NumberShape().default(1),
        })

        result = to_constraint(shape)

        assert result["type"] == "object"
        assert set(result["properties"]) == {"name", "notes", "level"}
        assert result["required"] == ["name", "level"]

    def test_description_carried(self) -> None:
        """Test descriptions survive wrappers."""
        shape = ArrayShape(StringShape()).describe("Languages").optional()

        result = to_constraint(shape)

        assert result == {"description": "Languages", "type": "array", "items": {"type": "string"}}

    def test_none(self) -> None:
        """Test a missing shape converts to an empty constraint."""
        assert to_constraint(None) == {}

    def test_map(self) -> None:
        """Test free-form maps are plain objects."""
        assert to_constraint(MapShape()) == {"type": "object"}


class TestShapeHelpers:
    """Tests for unwrap and is_array."""

    def test_unwrap(self) -> None:
        """Test every wrapper layer is stripped."""
        inner = StringShape()
        assert unwrap(inner.nullable().optional()) is inner

    def test_is_array(self) -> None:
        """Test array detection sees through wrappers."""
        assert is_array(ITEM_LIST_SHAPE)
        assert is_array(ArrayShape(StringShape()).default([]))
        assert not is_array(SELECTION_SHAPE)


# =============================================================================
# Validation
# =============================================================================


class TestValidate:
    """Tests for validate."""

    def test_valid_object(self) -> None:
        """Test a conforming value passes unchanged."""
        shape = ObjectShape({"name": StringShape(), "hp": NumberShape(integer=True)})

        result = validate(shape, {"name": "Goblin", "hp": 7})

        assert result.success
        assert result.value == {"name": "Goblin", "hp": 7}
        assert result.issues == ()

    def test_missing_required(self) -> None:
        """Test a missing field is reported at its path."""
        result = validate(ObjectShape({"name": StringShape()}), {})

        assert not result.success
        assert result.value is None
        assert [issue.path for issue in result.issues] == [("name",)]
        assert result.issues[0].message == "Required"

    def test_defaults_filled(self) -> None:
        """Test absent default fields are filled and optional ones skipped."""
        shape = ObjectShape({
            "tags": ArrayShape(StringShape()).default([]),
            "notes": StringShape().optional(),
        })

        result = validate(shape, {})

        assert result.value == {"tags": []}

    def test_default_is_copied(self) -> None:
        """Test filled defaults are not shared between results."""
        shape = ObjectShape({"tags": ArrayShape(StringShape()).default([])})

        first = validate(shape, {}).value
        first["tags"].append("x")

        assert validate(shape, {}).value == {"tags": []}

    def test_nullable(self) -> None:
        """Test None is accepted only where nullable."""
        shape = ObjectShape({"spell": StringShape().nullable()})

        assert validate(shape, {"spell": None}).success
        assert not validate(ObjectShape({"spell": StringShape()}), {"spell": None}).success

    def test_integer_rules(self) -> None:
        """Test integral floats are coerced and fractions rejected."""
        shape = NumberShape(integer=True)

        assert validate(shape, 3.0).value == 3
        assert not validate(shape, 2.5).success
        assert not validate(shape, True).success

    def test_enum_message(self) -> None:
        """Test enum failures list the allowed values."""
        result = validate(EnumShape(("spell", "other")), "weapon")

        assert "Invalid enum value" in result.issues[0].message
        assert "'weapon'" in result.issues[0].message

    def test_nested_paths(self) -> None:
        """Test issues in arrays carry indices."""
        shape = ObjectShape({"features": ArrayShape(ObjectShape({"name": StringShape()}))})

        result = validate(shape, {"features": [{"name": "Bite"}, {"name": 4}]})

        assert result.issues[0].path == ("features", 1, "name")
        assert result.issues[0].location == "features.1.name"

    def test_all_issues_collected(self) -> None:
        """Test validation does not stop at the first failure."""
        shape = ObjectShape({"a": StringShape(), "b": StringShape()})

        result = validate(shape, {"a": 1})

        assert len(result.issues) == 2
        assert format_issues(result.issues) == "a: Expected string, received number; b: Required"

    def test_passthrough(self) -> None:
        """Test undeclared keys are kept only on passthrough objects."""
        value = {"name": "x", "extra": {"deep": 1}}

        kept = validate(ObjectShape({"name": StringShape()}), value).value
        dropped = validate(ObjectShape({"name": StringShape()}, passthrough=False), value).value

        assert kept == value
        assert dropped == {"name": "x"}

    def test_root_type_mismatch(self) -> None:
        """Test a non-object root is reported at the root."""
        result = validate(ObjectShape({}), [])

        assert str(result.issues[0]) == "<root>: Expected object, received array"


# =============================================================================
# Conformance Matrix
# =============================================================================

# (label, shape, conforming values, non-conforming values)
BASE_CASES: list[tuple[str, Any, list[Any], list[Any]]] = [
    ("string", StringShape(), ["", "goblin"], [None, 3, True, [], {}]),
    ("number", NumberShape(), [0, -2, 1.5], [None, "1", True, [], {}]),
    ("integer", NumberShape(integer=True), [0, 7, 3.0], [None, 2.5, "3", False]),
    ("boolean", BooleanShape(), [True, False], [None, 0, "true"]),
    ("enum", EnumShape(("sm", "med")), ["sm", "med"], [None, "lg", 1]),
    ("array", ArrayShape(NumberShape(integer=True)), [[], [1, 2]], [None, [1, "x"], {}, "1"]),
    (
        "object",
        ObjectShape({"name": StringShape()}),
        [{"name": "x"}, {"name": "x", "extra": 1}],
        [None, {}, {"name": 1}, []],
    ),
    ("map", MapShape(BooleanShape()), [{}, {"a": True}], [None, {"a": 1}, []]),
    ("any", AnyShape(), [None, 1, "x", [], {}], []),
]

# (label, wrap shape and value, whether None is admitted)
WRAPPINGS: list[tuple[str, Callable[[Any, Any], tuple[Any, Any]], bool]] = [
    ("plain", lambda shape, value: (shape, value), False),
    ("nullable", lambda shape, value: (shape.nullable(), value), True),
    ("optional-field", lambda shape, value: (ObjectShape({"f": shape.optional()}), {"f": value}), False),
    (
        "nullable-optional-field",
        lambda shape, value: (ObjectShape({"f": shape.nullable().optional()}), {"f": value}),
        True,
    ),
]


def conformance_cases() -> list[Any]:
    """Every base case under every wrapping, with the expected outcome."""
    cases = []
    for label, shape, good, bad in BASE_CASES:
        for wrap_label, wrap, admits_none in WRAPPINGS:
            for value in good + bad:
                conforming = any(type(value) is type(other) and value == other for other in good)
                expected = conforming or (admits_none and value is None)
                wrapped_shape, wrapped_value = wrap(shape, value)
                cases.append(pytest.param(
                    wrapped_shape,
                    wrapped_value,
                    expected,
                    id=f"{label}-{wrap_label}-{value!r}",
                ))
    return cases


class TestConformance:
    """Tests that a value validates exactly when it conforms to its shape."""

    @pytest.mark.parametrize(("shape", "value", "expected"), conformance_cases())
    def test_success_iff_conforming(self, shape: Any, value: Any, expected: bool) -> None:
        """Test success and the issue list agree with conformance."""
        result = validate(shape, value)

        assert result.success is expected
        assert bool(result.issues) is not expected

    @pytest.mark.parametrize(("label", "shape"), [(label, shape) for label, shape, _, _ in BASE_CASES])
    def test_absent_field(self, label: str, shape: Any) -> None:
        """Test absence is accepted only when the field is optional or defaulted."""
        assert validate(ObjectShape({"f": shape.optional()}), {}).value == {}
        assert validate(ObjectShape({"f": shape.default(None)}), {}).value == {"f": None}
        assert not validate(ObjectShape({"f": shape}), {}).success
        assert not validate(ObjectShape({"f": shape.nullable()}), {}).success


class TestDeclaredShapes:
    """Tests for the agent output shapes."""

    def test_blueprint_fixture_is_valid(self, blueprint_data: dict[str, Any]) -> None:
        """Test the sample Blueprint passes the Architect shape."""
        result = validate(BLUEPRINT_SHAPE, blueprint_data)

        assert result.success, format_issues(result.issues)

    def test_blueprint_minimal_fills_defaults(self, blueprint_data: dict[str, Any]) -> None:
        """Test optional Blueprint sections get their defaults."""
        minimal = {
            key: blueprint_data[key] for key in ("name", "type", "cr", "size", "stats", "features")
        }

        result = validate(BLUEPRINT_SHAPE, minimal)

        assert result.success
        assert result.value["saves"] == []
        assert result.value["alignment"] == "unaligned"
        assert "spellcasting" not in result.value

    def test_blueprint_bad_size(self, blueprint_data: dict[str, Any]) -> None:
        """Test a size outside the host codes is rejected."""
        result = validate(BLUEPRINT_SHAPE, {**blueprint_data, "size": "medium"})

        assert [issue.path for issue in result.issues] == [("size",)]

    def test_item_list(self, cinder_burst_item: dict[str, Any]) -> None:
        """Test fabricated items validate and keep activity details."""
        result = validate(ITEM_LIST_SHAPE, [cinder_burst_item])

        assert result.success, format_issues(result.issues)
        activity = result.value[0]["system"]["activities"][0]
        assert activity["damage"]["parts"][0]["denomination"] == 6

    @pytest.mark.parametrize(
        ("path", "value"),
        [
            (("type",), "creature"),
            (("system", "activities", 0, "type"), "explode"),
        ],
    )
    def test_item_rejections(
        self,
        cinder_burst_item: dict[str, Any],
        path: tuple[Any, ...],
        value: str,
    ) -> None:
        """Test invalid item and activity types are reported."""
        target: Any = cinder_burst_item
        for part in path[:-1]:
            target = target[part]
        target[path[-1]] = value

        result = validate(ITEM_LIST_SHAPE, [cinder_burst_item])

        assert result.issues[0].path == (0, *path)

    def test_selection_defaults(self) -> None:
        """Test an empty selection is valid."""
        result = validate(SELECTION_SHAPE, {})

        assert result.value == {"selectedUuids": [], "customRequests": []}
