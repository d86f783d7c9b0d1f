"""Blueprint-producing agents: Architect (new actor) and Adjustment (revision)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from dnd_forge.agents.base import GenerativeAgent
from dnd_forge.agents.prompts import ADJUSTMENT_SYSTEM_PROMPT, ARCHITECT_SYSTEM_PROMPT
from dnd_forge.models.blueprint import ActorRequest, Blueprint
from dnd_forge.schema.definitions import BLUEPRINT_SHAPE


if TYPE_CHECKING:
    from dnd_forge.core.cancellation import CancellationToken


class ArchitectAgent(GenerativeAgent):
    """Designs a Blueprint from ``{cr, type, size, prompt}``."""

    name = "architect"
    system_prompt = ARCHITECT_SYSTEM_PROMPT
    output_shape = BLUEPRINT_SHAPE

    def post_process(self, value: Any) -> Blueprint:
        return Blueprint.model_validate(value)

    async def design(
        self,
        request: ActorRequest,
        *,
        cancel: CancellationToken | None = None,
    ) -> Blueprint:
        """Generate a Blueprint for ``request``."""
        return await self.generate(request.to_context(), cancel=cancel)


class AdjustmentAgent(GenerativeAgent):
    """Revises a Blueprint from ``{originalBlueprint, userPrompt}``."""

    name = "adjustment"
    system_prompt = ADJUSTMENT_SYSTEM_PROMPT
    output_shape = BLUEPRINT_SHAPE

    def post_process(self, value: Any) -> Blueprint:
        return Blueprint.model_validate(value)

    async def revise(
        self,
        original: Blueprint,
        prompt: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> Blueprint:
        """Generate a new Blueprint; ``original`` is left untouched."""
        context = {"originalBlueprint": original.to_context(), "userPrompt": prompt}
        return await self.generate(context, cancel=cancel)


__all__ = ["ArchitectAgent", "AdjustmentAgent"]
