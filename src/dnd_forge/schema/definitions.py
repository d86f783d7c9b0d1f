"""Declared output shapes for every generative agent."""

from __future__ import annotations

from dnd_forge.core.constants import ABILITY_KEYS, ACTIVITY_TYPES, ITEM_TYPES
from dnd_forge.schema.shapes import (
    ArrayShape,
    BooleanShape,
    EnumShape,
    MapShape,
    NumberShape,
    ObjectShape,
    StringShape,
)


_STRING_LIST = ArrayShape(StringShape())

SIZE_VALUES = ("tiny", "sm", "med", "lg", "huge", "grg")
FEATURE_TYPES = ("spell", "weapon", "equipment", "other")


# =============================================================================
# Blueprint
# =============================================================================

ABILITIES_SHAPE = ObjectShape(
    {key: NumberShape(integer=True) for key in ABILITY_KEYS},
).describe("Ability scores keyed by str, dex, con, int, wis, cha")

MOVEMENT_SHAPE = ObjectShape({
    "walk": NumberShape(integer=True).default(30),
    "fly": NumberShape(integer=True).optional(),
    "swim": NumberShape(integer=True).optional(),
    "climb": NumberShape(integer=True).optional(),
    "burrow": NumberShape(integer=True).optional(),
    "hover": BooleanShape().optional(),
})

SENSES_SHAPE = ObjectShape({
    "darkvision": NumberShape(integer=True).optional(),
    "blindsight": NumberShape(integer=True).optional(),
    "tremorsense": NumberShape(integer=True).optional(),
    "truesight": NumberShape(integer=True).optional(),
})

FEATURE_SHAPE = ObjectShape({
    "name": StringShape(),
    "description": StringShape(),
    "type": EnumShape(FEATURE_TYPES),
})

EQUIPMENT_ENTRY_SHAPE = ObjectShape({
    "name": StringShape(),
    "type": StringShape().describe("weapon, armor or equipment"),
    "description": StringShape().default(""),
})

SPELLCASTING_SHAPE = ObjectShape({
    "ability": EnumShape(("int", "wis", "cha")),
    "spells": ObjectShape({
        "atWill": _STRING_LIST.default([]),
        "perDay": ArrayShape(ObjectShape({
            "spell": StringShape(),
            "uses": NumberShape(integer=True).default(1),
        })).default([]),
    }),
})

BLUEPRINT_SHAPE = ObjectShape({
    "name": StringShape(),
    "type": StringShape().describe("Creature type, e.g. humanoid, fiend, dragon"),
    "cr": NumberShape().describe("Challenge rating; fractions as decimals (0.25)"),
    "size": EnumShape(SIZE_VALUES),
    "alignment": StringShape().default("unaligned"),
    "stats": ObjectShape({
        "abilities": ABILITIES_SHAPE,
        "ac": NumberShape(integer=True),
        "hp": NumberShape(integer=True),
        "movement": MOVEMENT_SHAPE.optional(),
    }),
    "saves": ArrayShape(EnumShape(ABILITY_KEYS)).default([]),
    "skills": _STRING_LIST.default([]),
    "senses": SENSES_SHAPE.optional(),
    "languages": _STRING_LIST.default([]),
    "resistances": _STRING_LIST.default([]),
    "immunities": _STRING_LIST.default([]),
    "condition_immunities": _STRING_LIST.default([]),
    "biography": StringShape().default(""),
    "behavior": StringShape().default(""),
    "appearance": StringShape().default(""),
    "twist": StringShape().default(""),
    "habitat": StringShape().optional(),
    "treasure": StringShape().optional(),
    "features": ArrayShape(FEATURE_SHAPE),
    "equipment": ArrayShape(EQUIPMENT_ENTRY_SHAPE).default([]),
    "spellcasting": SPELLCASTING_SHAPE.nullable().optional(),
})


# =============================================================================
# Items
# =============================================================================

EFFECT_CHANGE_SHAPE = ObjectShape({
    "key": StringShape(),
    "mode": NumberShape(integer=True),
    "value": StringShape(),
})

EFFECT_SHAPE = ObjectShape({
    "name": StringShape(),
    "description": StringShape().optional(),
    "changes": ArrayShape(EFFECT_CHANGE_SHAPE).default([]),
})

ACTIVITY_SHAPE = ObjectShape({
    "type": EnumShape(tuple(sorted(ACTIVITY_TYPES))),
    "name": StringShape().optional(),
    "activation": MapShape().optional(),
    "description": MapShape().optional(),
})

ITEM_SHAPE = ObjectShape({
    "name": StringShape(),
    "type": EnumShape(tuple(sorted(ITEM_TYPES))),
    "img": StringShape().optional(),
    "system": ObjectShape({
        "description": ObjectShape({"value": StringShape()}),
        "activities": ArrayShape(ACTIVITY_SHAPE).optional(),
        "uses": MapShape().optional(),
    }),
    "effects": ArrayShape(EFFECT_SHAPE).default([]),
    "flags": MapShape().optional(),
})

ITEM_LIST_SHAPE = ArrayShape(ITEM_SHAPE).describe("Host item documents")


# =============================================================================
# Quartermaster
# =============================================================================

CUSTOM_REQUEST_SHAPE = ObjectShape({
    "name": StringShape(),
    "type": EnumShape(tuple(sorted(ITEM_TYPES))),
    "description": StringShape().default(""),
})

SELECTION_SHAPE = ObjectShape({
    "selectedUuids": _STRING_LIST.default([]).describe(
        "Reference handles of existing entities to reuse"
    ),
    "customRequests": ArrayShape(CUSTOM_REQUEST_SHAPE).default([]).describe(
        "Components that must be fabricated"
    ),
})


__all__ = [
    "SIZE_VALUES",
    "FEATURE_TYPES",
    "BLUEPRINT_SHAPE",
    "FEATURE_SHAPE",
    "SPELLCASTING_SHAPE",
    "EFFECT_SHAPE",
    "ACTIVITY_SHAPE",
    "ITEM_SHAPE",
    "ITEM_LIST_SHAPE",
    "CUSTOM_REQUEST_SHAPE",
    "SELECTION_SHAPE",
]
