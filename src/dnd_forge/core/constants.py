"""Application-wide constants for DnD Forge.

Host-format constants (Foundry VTT dnd5e) used by the agents, the
content index, the repair engine and record assembly.
"""

from __future__ import annotations

# =============================================================================
# Flags & Templating
# =============================================================================

FLAG_SCOPE = "dnd-forge"
"""Namespace for flags this package writes onto generated records."""

NAME_LOOKUP_TOKEN = "[[lookup @name lowercase]]"
"""Self-referential token replacing literal actor names in item text."""

ID_LENGTH = 16
"""Length of host document identifiers."""

# =============================================================================
# Content Index
# =============================================================================

COMPENDIUM_ALLOW_LIST: dict[str, tuple[str, ...]] = {
    "dnd5e.spells": ("spell",),
    "dnd5e.items": ("weapon", "equipment", "consumable", "tool", "loot", "backpack", "feat"),
    "dnd5e.monsterfeatures": ("feat",),
    "dnd5e.classfeatures": ("feat",),
}
"""Entity types retained from each source collection."""

INDEX_FIELDS = ("name", "type", "img")
"""Lightweight fields requested from each source collection index."""

DEFAULT_CANDIDATE_LIMIT = 3
"""Existing-entity candidates offered to the Quartermaster per request."""

# =============================================================================
# Items & Activities
# =============================================================================

ITEM_TYPES = frozenset({
    "weapon", "equipment", "consumable", "tool", "loot", "backpack", "feat", "spell",
})

EQUIPMENT_ITEM_TYPES = frozenset({"weapon", "equipment", "consumable", "tool", "loot", "backpack"})
"""Custom request types fabricated by the Artificer rather than the Blacksmith."""

ACTIVITY_TYPES = frozenset({
    "attack", "cast", "check", "damage", "enchant", "forward",
    "heal", "save", "summon", "transform", "utility",
})

ARMOR_TYPES = frozenset({"light", "medium", "heavy", "shield", "natural"})

ABILITY_KEYS = ("str", "dex", "con", "int", "wis", "cha")

ABILITY_NAMES = {
    "strength": "str",
    "dexterity": "dex",
    "constitution": "con",
    "intelligence": "int",
    "wisdom": "wis",
    "charisma": "cha",
}

TEMPLATE_TYPES = frozenset({
    "circle", "cone", "cube", "cylinder", "line", "radius", "sphere", "square", "wall",
})

CONSUMPTION_TARGET_TYPES = frozenset({
    "activityUses", "itemUses", "material", "hitDice", "spellSlots", "attribute",
})

RECOVERY_PERIODS = frozenset({
    "lr", "sr", "day", "dawn", "dusk", "initiative", "recharge", "turn", "turnStart", "turnEnd",
})

DEFAULT_ITEM_ICONS = {
    "weapon": "icons/svg/sword.svg",
    "equipment": "icons/svg/shield.svg",
    "consumable": "icons/svg/pill.svg",
    "tool": "icons/svg/anvil.svg",
    "loot": "icons/svg/chest.svg",
    "backpack": "icons/svg/item-bag.svg",
    "feat": "icons/svg/upgrade.svg",
    "spell": "icons/svg/daze.svg",
}

FALLBACK_ITEM_ICON = "icons/svg/item-bag.svg"
SPELLCASTING_ICON = "icons/magic/symbols/circled-gem-pink.webp"
DEFAULT_ACTOR_IMAGE = "icons/svg/mystery-man.svg"

# =============================================================================
# Actor Assembly
# =============================================================================

TOKEN_SIZING = {
    "tiny": {"width": 0.5, "height": 0.5, "scale": 0.5},
    "sm": {"width": 1, "height": 1, "scale": 0.8},
    "med": {"width": 1, "height": 1, "scale": 1},
    "lg": {"width": 2, "height": 2, "scale": 1},
    "huge": {"width": 3, "height": 3, "scale": 1},
    "grg": {"width": 4, "height": 4, "scale": 1},
}

SKILL_KEYS = {
    "acrobatics": "acr",
    "animal handling": "ani",
    "arcana": "arc",
    "athletics": "ath",
    "deception": "dec",
    "history": "his",
    "insight": "ins",
    "intimidation": "itm",
    "investigation": "inv",
    "medicine": "med",
    "nature": "nat",
    "perception": "prc",
    "performance": "prf",
    "persuasion": "per",
    "religion": "rel",
    "sleight of hand": "slt",
    "stealth": "ste",
    "survival": "sur",
}

SENSE_KEYS = ("darkvision", "blindsight", "tremorsense", "truesight")

MOVEMENT_KEYS = ("walk", "fly", "swim", "climb", "burrow")

DISPOSITION_HOSTILE = -1


__all__ = [
    "FLAG_SCOPE",
    "NAME_LOOKUP_TOKEN",
    "ID_LENGTH",
    "COMPENDIUM_ALLOW_LIST",
    "INDEX_FIELDS",
    "DEFAULT_CANDIDATE_LIMIT",
    "ITEM_TYPES",
    "EQUIPMENT_ITEM_TYPES",
    "ACTIVITY_TYPES",
    "ARMOR_TYPES",
    "ABILITY_KEYS",
    "ABILITY_NAMES",
    "TEMPLATE_TYPES",
    "CONSUMPTION_TARGET_TYPES",
    "RECOVERY_PERIODS",
    "DEFAULT_ITEM_ICONS",
    "FALLBACK_ITEM_ICON",
    "SPELLCASTING_ICON",
    "DEFAULT_ACTOR_IMAGE",
    "TOKEN_SIZING",
    "SKILL_KEYS",
    "SENSE_KEYS",
    "MOVEMENT_KEYS",
    "DISPOSITION_HOSTILE",
]
