"""Data models for blueprints, component requests and assembled actors."""

from __future__ import annotations

from dnd_forge.models.actor import CompositeActorRecord, RunDiagnostics
from dnd_forge.models.blueprint import (
    ActorRequest,
    Blueprint,
    EquipmentEntry,
    Feature,
    Movement,
    PerDaySpell,
    Senses,
    Spellcasting,
    SpellList,
    Stats,
)
from dnd_forge.models.components import (
    Candidate,
    ComponentRequest,
    ComponentSelection,
    FeatureCandidates,
)
from dnd_forge.models.enums import ComponentStatus, CreatureSize, FeatureType, ItemProvenance


__all__ = [
    # Enums
    "CreatureSize",
    "FeatureType",
    "ComponentStatus",
    "ItemProvenance",
    # Blueprint
    "ActorRequest",
    "Blueprint",
    "Stats",
    "Movement",
    "Senses",
    "Feature",
    "EquipmentEntry",
    "Spellcasting",
    "SpellList",
    "PerDaySpell",
    # Components
    "ComponentRequest",
    "ComponentSelection",
    "Candidate",
    "FeatureCandidates",
    # Actor
    "CompositeActorRecord",
    "RunDiagnostics",
]
