"""Component requests and the Quartermaster's reuse/fabricate partition."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dnd_forge.core.constants import EQUIPMENT_ITEM_TYPES
from dnd_forge.models.enums import ComponentStatus


class ComponentRequest(BaseModel):
    """A feature or item the actor needs.

    Attributes:
        name: Component name.
        type: Host item type (feat, weapon, spell, ...).
        description: What the component does.
        status: Whether it is reused or fabricated.
        uuid: Reference handle of the reused entity, when selected.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    type: str = "feat"
    description: str = ""
    status: ComponentStatus = ComponentStatus.CUSTOM
    uuid: str | None = None

    @property
    def is_equipment(self) -> bool:
        """Whether the Artificer (rather than the Blacksmith) fabricates it."""
        return self.type in EQUIPMENT_ITEM_TYPES

    def to_context(self) -> dict[str, Any]:
        return {"name": self.name, "type": self.type, "description": self.description}


class Candidate(BaseModel):
    """An existing entity offered to the Quartermaster."""

    model_config = ConfigDict(frozen=True)

    name: str
    uuid: str
    type: str


class FeatureCandidates(BaseModel):
    """A Blueprint component with its matching candidates."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    description: str = ""
    candidates: tuple[Candidate, ...] = ()


class ComponentSelection(BaseModel):
    """The Quartermaster's partition of components.

    Attributes:
        selected: Components reused from the content index, each carrying
            the reference handle it resolves to.
        custom_features: Feature requests for the Blacksmith.
        custom_equipment: Equipment requests for the Artificer.
    """

    model_config = ConfigDict(frozen=True)

    selected: tuple[ComponentRequest, ...] = ()
    custom_features: tuple[ComponentRequest, ...] = ()
    custom_equipment: tuple[ComponentRequest, ...] = ()

    @property
    def selected_uuids(self) -> list[str]:
        return [component.uuid for component in self.selected if component.uuid]

    @property
    def custom_requests(self) -> tuple[ComponentRequest, ...]:
        return self.custom_features + self.custom_equipment

    @classmethod
    def from_decision(
        cls,
        decision: dict[str, Any],
        candidates: list[FeatureCandidates],
    ) -> ComponentSelection:
        """Build a selection from validated Quartermaster output.

        Selected handles that were never offered as candidates are dropped.

        Args:
            decision: Output with ``selectedUuids`` and ``customRequests``.
            candidates: The candidates the Quartermaster was given.

        Returns:
            The partitioned selection.
        """
        offered: dict[str, Candidate] = {}
        for group in candidates:
            for candidate in group.candidates:
                offered.setdefault(candidate.uuid, candidate)

        selected: list[ComponentRequest] = []
        seen: set[str] = set()
        for uuid in decision.get("selectedUuids", []):
            candidate = offered.get(uuid)
            if candidate is None or uuid in seen:
                continue
            seen.add(uuid)
            selected.append(ComponentRequest(
                name=candidate.name,
                type=candidate.type,
                status=ComponentStatus.SELECTED,
                uuid=uuid,
            ))

        features: list[ComponentRequest] = []
        equipment: list[ComponentRequest] = []
        for raw in decision.get("customRequests", []):
            request = ComponentRequest.model_validate(
                {**raw, "status": ComponentStatus.CUSTOM, "uuid": None}
            )
            (equipment if request.is_equipment else features).append(request)

        return cls(
            selected=tuple(selected),
            custom_features=tuple(features),
            custom_equipment=tuple(equipment),
        )


__all__ = [
    "ComponentRequest",
    "Candidate",
    "FeatureCandidates",
    "ComponentSelection",
]
