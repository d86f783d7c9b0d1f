"""Quartermaster: decides which components are reused and which are fabricated."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from dnd_forge.agents.base import GenerativeAgent
from dnd_forge.agents.prompts import QUARTERMASTER_SYSTEM_PROMPT
from dnd_forge.models.components import ComponentSelection, FeatureCandidates
from dnd_forge.schema.definitions import SELECTION_SHAPE


if TYPE_CHECKING:
    from dnd_forge.core.cancellation import CancellationToken


class QuartermasterAgent(GenerativeAgent):
    """Maps ``{blueprintFeatures, candidates}`` to ``{selectedUuids, customRequests}``."""

    name = "quartermaster"
    system_prompt = QUARTERMASTER_SYSTEM_PROMPT
    output_shape = SELECTION_SHAPE

    @staticmethod
    def build_context(groups: list[FeatureCandidates]) -> dict[str, Any]:
        return {
            "blueprintFeatures": [
                {"name": group.name, "type": group.type, "description": group.description}
                for group in groups
            ],
            "candidates": [
                {
                    "feature": group.name,
                    "options": [candidate.model_dump() for candidate in group.candidates],
                }
                for group in groups
            ],
        }

    async def select(
        self,
        groups: list[FeatureCandidates],
        *,
        cancel: CancellationToken | None = None,
    ) -> ComponentSelection:
        """Partition the Blueprint's components into reused and custom.

        Args:
            groups: Each component with up to N index candidates.
            cancel: Cancellation token.

        Returns:
            The selection; uuids that were never offered are discarded.
        """
        decision = await self.generate(self.build_context(groups), cancel=cancel)
        return ComponentSelection.from_decision(decision, groups)


__all__ = ["QuartermasterAgent"]
