"""Enumeration types for generated actors and their components."""

from __future__ import annotations

from enum import StrEnum


class CreatureSize(StrEnum):
    """Host size codes."""

    TINY = "tiny"
    SMALL = "sm"
    MEDIUM = "med"
    LARGE = "lg"
    HUGE = "huge"
    GARGANTUAN = "grg"


class FeatureType(StrEnum):
    """Category of a Blueprint feature, used to pick candidate entity types."""

    SPELL = "spell"
    WEAPON = "weapon"
    EQUIPMENT = "equipment"
    OTHER = "other"

    @property
    def item_types(self) -> tuple[str, ...]:
        """Entity types searched in the content index for this category.

        Returns:
            Allowed item types; anything unspecific searches feats and weapons.
        """
        match self:
            case FeatureType.SPELL:
                return ("spell",)
            case FeatureType.WEAPON:
                return ("weapon",)
            case FeatureType.EQUIPMENT:
                return ("equipment",)
            case _:
                return ("feat", "weapon")


class ComponentStatus(StrEnum):
    """Quartermaster decision for a component request."""

    SELECTED = "selected"
    CUSTOM = "custom"


class ItemProvenance(StrEnum):
    """Where an item in a composite record came from."""

    REUSED = "reused"
    CUSTOM = "custom"


__all__ = [
    "CreatureSize",
    "FeatureType",
    "ComponentStatus",
    "ItemProvenance",
]
