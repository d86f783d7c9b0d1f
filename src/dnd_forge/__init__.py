"""DnD Forge - Multi-agent D&D 5e actor generation.

Generates NPC and monster actors for Foundry VTT's dnd5e system by chaining
schema-validated model calls and resolving features against existing
compendium content.

PIPELINE:
- Architect drafts a Blueprint; the Quartermaster reuses compendium entries
  where they fit
- Blacksmith and Artificer fabricate whatever is missing
- Python repairs automation data, builds spellcasting and assembles the
  final record; models never write host data directly

Example:
    >>> from dnd_forge import ActorPipeline, ActorRequest
    >>>
    >>> pipeline = ActorPipeline.from_settings()
    >>> request = ActorRequest(prompt="A cinder-wreathed goblin shaman", cr=2)
    >>> record = await pipeline.generate_actor(request)
    >>> record.to_host()["prototypeToken"]["disposition"]
    -1

Modules:
    core: Configuration, logging, exceptions, cancellation and ids.
    schema: Declarative shapes and the validator for model output.
    models: Blueprint, component selection and composite actor records.
    agents: The generative agents and their prompts.
    backends: Text and image providers plus collaborator protocols.
    compendium: Content index and item resolution.
    items: Item utilities and the automation repair engine.
    media: Item icon and portrait fabrication.
    storage: SQLite host store and packs, filesystem content store.
    pipeline: Orchestration and record assembly.
"""

from __future__ import annotations

# Core
from dnd_forge.core.cancellation import CancellationToken
from dnd_forge.core.config import Settings, get_settings
from dnd_forge.core.exceptions import (
    CancellationError,
    ExhaustedRetriesError,
    ForgeError,
)
from dnd_forge.core.logging import configure_logging, get_logger

# Models
from dnd_forge.models import ActorRequest, Blueprint, CompositeActorRecord

# Content
from dnd_forge.compendium import ContentIndex
from dnd_forge.items import AutomationRepairEngine

# Pipeline
from dnd_forge.pipeline import ActorPipeline, BlueprintFactory, SpellcastingBuilder


__version__ = "0.1.0"
__all__ = [
    # Version info
    "__version__",
    # Core
    "ForgeError",
    "CancellationError",
    "ExhaustedRetriesError",
    "CancellationToken",
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    # Models
    "ActorRequest",
    "Blueprint",
    "CompositeActorRecord",
    # Content
    "ContentIndex",
    "AutomationRepairEngine",
    # Pipeline
    "ActorPipeline",
    "BlueprintFactory",
    "SpellcastingBuilder",
]
