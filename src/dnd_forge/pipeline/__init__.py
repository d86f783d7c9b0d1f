"""Actor generation pipeline and record assembly."""

from __future__ import annotations

from dnd_forge.pipeline.assembly import (
    apply_dynamic_descriptions,
    build_prototype_token,
    build_system,
    compose_biography,
    map_skills_to_keys,
    parse_cr,
    token_sizing,
)
from dnd_forge.pipeline.blueprint_factory import BlueprintFactory
from dnd_forge.pipeline.orchestrator import ActorPipeline
from dnd_forge.pipeline.progress import ProgressCallback, ProgressReporter, ProgressUpdate
from dnd_forge.pipeline.spellcasting import SpellcastingBuilder, SpellcastingResult


__all__ = [
    # Orchestration
    "ActorPipeline",
    "ProgressReporter",
    "ProgressUpdate",
    "ProgressCallback",
    # Builders
    "BlueprintFactory",
    "SpellcastingBuilder",
    "SpellcastingResult",
    # Assembly
    "build_system",
    "build_prototype_token",
    "compose_biography",
    "map_skills_to_keys",
    "parse_cr",
    "token_sizing",
    "apply_dynamic_descriptions",
]
