"""Generative agents.

Exports:
    GenerativeAgent: Schema-validated generation with retry feedback.
    ArchitectAgent, AdjustmentAgent: Produce Blueprints.
    QuartermasterAgent: Reuse-or-fabricate decisions.
    BlacksmithAgent, ArtificerAgent: Fabricate host items.
"""

from __future__ import annotations

from dnd_forge.agents.architect import AdjustmentAgent, ArchitectAgent
from dnd_forge.agents.base import DEFAULT_RETRIES, AttemptHistory, GenerativeAgent, extract_json
from dnd_forge.agents.fabrication import ArtificerAgent, BlacksmithAgent, FabricationAgent
from dnd_forge.agents.quartermaster import QuartermasterAgent


__all__ = [
    "GenerativeAgent",
    "AttemptHistory",
    "extract_json",
    "DEFAULT_RETRIES",
    "ArchitectAgent",
    "AdjustmentAgent",
    "QuartermasterAgent",
    "FabricationAgent",
    "BlacksmithAgent",
    "ArtificerAgent",
]
