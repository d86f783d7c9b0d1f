"""Item-fabricating agents: Blacksmith (features) and Artificer (equipment).

Both emit host item documents. Post-processing gives every item, activity and
effect a fresh ``_id`` whatever the model supplied, turns the generated
activity list into the host mapping keyed by activity id and repoints
activity references to renamed effects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from dnd_forge.agents.base import GenerativeAgent
from dnd_forge.agents.prompts import ARTIFICER_SYSTEM_PROMPT, BLACKSMITH_SYSTEM_PROMPT
from dnd_forge.items.utils import reassign_ids
from dnd_forge.schema.definitions import ITEM_LIST_SHAPE


if TYPE_CHECKING:
    from dnd_forge.core.cancellation import CancellationToken
    from dnd_forge.models.blueprint import Blueprint
    from dnd_forge.models.components import ComponentRequest


class FabricationAgent(GenerativeAgent):
    """Shared behaviour of the item-producing agents."""

    output_shape = ITEM_LIST_SHAPE

    def post_process(self, value: Any) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for item in value:
            reassign_ids(item)
            system = item["system"]
            if "activities" in system and not system["activities"]:
                system["activities"] = {}
            items.append(item)
        return items

    async def fabricate(
        self,
        requests: list[ComponentRequest],
        *,
        blueprint: Blueprint | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[dict[str, Any]]:
        """Fabricate host items for ``requests``; empty input skips the call.

        Args:
            requests: Custom component requests.
            blueprint: The actor being equipped, for name, CR and stats.
            cancel: Cancellation token.
        """
        if not requests:
            return []
        context: dict[str, Any] = {}
        if blueprint is not None:
            context = {
                "creatureName": blueprint.name,
                "cr": blueprint.cr,
                "stats": blueprint.stats.model_dump(mode="json", exclude_none=True),
            }
        context["requests"] = [request.to_context() for request in requests]
        return await self.generate(context, cancel=cancel)


class BlacksmithAgent(FabricationAgent):
    """Fabricates creature features (feat-type items)."""

    name = "blacksmith"
    system_prompt = BLACKSMITH_SYSTEM_PROMPT


class ArtificerAgent(FabricationAgent):
    """Fabricates magical equipment, weapons and armor."""

    name = "artificer"
    system_prompt = ARTIFICER_SYSTEM_PROMPT


__all__ = ["FabricationAgent", "BlacksmithAgent", "ArtificerAgent"]
