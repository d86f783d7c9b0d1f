"""Blueprint: the high-level design of an actor.

A Blueprint is produced by the Architect (or Adjustment) agent, or rebuilt
from an existing host actor, and stays immutable for the rest of the run.
Field names mirror the agent output so validated JSON loads directly.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dnd_forge.core.constants import ABILITY_KEYS
from dnd_forge.models.enums import CreatureSize, FeatureType


_FROZEN = ConfigDict(frozen=True, extra="allow", populate_by_name=True)


class Movement(BaseModel):
    """Movement speeds in feet."""

    model_config = _FROZEN

    walk: int = 30
    fly: int | None = None
    swim: int | None = None
    climb: int | None = None
    burrow: int | None = None
    hover: bool = False


class Senses(BaseModel):
    """Special senses ranges in feet."""

    model_config = _FROZEN

    darkvision: int | None = None
    blindsight: int | None = None
    tremorsense: int | None = None
    truesight: int | None = None


class Stats(BaseModel):
    """Core statistics.

    Attributes:
        abilities: Ability scores keyed by ``str``, ``dex``, ...
        ac: Armor class.
        hp: Hit point maximum.
        movement: Movement speeds.
    """

    model_config = _FROZEN

    abilities: dict[str, int] = Field(default_factory=lambda: dict.fromkeys(ABILITY_KEYS, 10))
    ac: int = Field(default=10, ge=0)
    hp: int = Field(default=1, ge=0)
    movement: Movement = Field(default_factory=Movement)

    @field_validator("abilities", mode="after")
    @classmethod
    def fill_abilities(cls, value: dict[str, int]) -> dict[str, int]:
        """Fill missing ability keys with 10."""
        return {key: value.get(key, 10) for key in ABILITY_KEYS}


class Feature(BaseModel):
    """A named creature feature to be reused or fabricated."""

    model_config = _FROZEN

    name: str
    description: str = ""
    type: FeatureType = FeatureType.OTHER


class EquipmentEntry(BaseModel):
    """A piece of equipment the actor carries."""

    model_config = _FROZEN

    name: str
    type: str = "equipment"
    description: str = ""


class PerDaySpell(BaseModel):
    """A spell castable a limited number of times per day."""

    model_config = _FROZEN

    spell: str
    uses: int = Field(default=1, ge=1)


class SpellList(BaseModel):
    model_config = _FROZEN

    at_will: tuple[str, ...] = Field(default=(), alias="atWill")
    per_day: tuple[PerDaySpell, ...] = Field(default=(), alias="perDay")


class Spellcasting(BaseModel):
    """Innate spellcasting: ability plus at-will and per-day lists."""

    model_config = _FROZEN

    ability: str = "int"
    spells: SpellList = Field(default_factory=SpellList)

    @property
    def is_empty(self) -> bool:
        return not self.spells.at_will and not self.spells.per_day


class ActorRequest(BaseModel):
    """User request that seeds the Architect.

    Attributes:
        prompt: Free-text concept.
        cr: Target challenge rating.
        type: Creature type.
        size: Host size code.
    """

    model_config = ConfigDict(frozen=True)

    prompt: str = Field(min_length=1)
    cr: float | str = 1
    type: str = "humanoid"
    size: CreatureSize = CreatureSize.MEDIUM

    def to_context(self) -> dict[str, Any]:
        return {"cr": self.cr, "type": self.type, "size": self.size.value, "prompt": self.prompt}


class Blueprint(BaseModel):
    """High-level actor design.

    Attributes:
        name: Actor name.
        type: Creature type (humanoid, fiend, ...).
        cr: Challenge rating, numeric or fractional string.
        size: Host size code.
        alignment: Free-text alignment.
        stats: Abilities, AC, HP and movement.
        saves: Proficient saving throws as ability keys.
        skills: Proficient skill names.
        senses: Special senses.
        languages: Known languages.
        resistances: Damage resistances.
        immunities: Damage immunities.
        condition_immunities: Condition immunities.
        biography: Narrative summary.
        behavior: Tactics and behavior notes.
        appearance: Physical description.
        twist: A surprising hook.
        habitat: Where the creature is found.
        treasure: What it carries or guards.
        features: Features to reuse or fabricate.
        equipment: Equipment to reuse or fabricate.
        spellcasting: Optional innate spellcasting.
    """

    model_config = _FROZEN

    name: str = Field(min_length=1)
    type: str = "humanoid"
    cr: float | str = 1
    size: CreatureSize = CreatureSize.MEDIUM
    alignment: str = "unaligned"
    stats: Stats = Field(default_factory=Stats)
    saves: tuple[str, ...] = ()
    skills: tuple[str, ...] = ()
    senses: Senses = Field(default_factory=Senses)
    languages: tuple[str, ...] = ()
    resistances: tuple[str, ...] = ()
    immunities: tuple[str, ...] = ()
    condition_immunities: tuple[str, ...] = ()
    biography: str = ""
    behavior: str = ""
    appearance: str = ""
    twist: str = ""
    habitat: str | None = None
    treasure: str | None = None
    features: tuple[Feature, ...] = ()
    equipment: tuple[EquipmentEntry, ...] = ()
    spellcasting: Spellcasting | None = None

    @field_validator("senses", "stats", mode="before")
    @classmethod
    def none_as_default(cls, value: Any) -> Any:
        return {} if value is None else value

    def to_context(self) -> dict[str, Any]:
        """Serialize for inclusion in an agent's task context."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "Movement",
    "Senses",
    "Stats",
    "Feature",
    "EquipmentEntry",
    "PerDaySpell",
    "SpellList",
    "Spellcasting",
    "ActorRequest",
    "Blueprint",
]
