"""Composite Actor Record: the assembled output of a pipeline run."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from dnd_forge.core.constants import DEFAULT_ACTOR_IMAGE


class RunDiagnostics(BaseModel):
    """Non-persisted bookkeeping about how a record was built.

    Attributes:
        reused_count: Items taken from the content index.
        custom_count: Items fabricated or sanitized from model output.
        warnings: Repair warning messages keyed by item name.
        critical_items: Names of items carrying critical automation warnings.
        portrait_error: Why portrait fabrication failed, if it did.
    """

    model_config = ConfigDict(extra="forbid")

    reused_count: int = 0
    custom_count: int = 0
    warnings: dict[str, list[str]] = Field(default_factory=dict)
    critical_items: list[str] = Field(default_factory=list)
    portrait_error: str | None = None


class CompositeActorRecord(BaseModel):
    """A complete host actor with embedded items.

    Attributes:
        name: Actor name.
        type: Host actor type.
        img: Portrait path.
        system: Host system data (abilities, attributes, details, traits, skills).
        items: Ordered embedded items.
        prototype_token: Token defaults (serialised as ``prototypeToken``).
        flags: Host flags.
        diagnostics: Run bookkeeping, never serialised to the host.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str
    type: str = "npc"
    img: str = DEFAULT_ACTOR_IMAGE
    system: dict[str, Any] = Field(default_factory=dict)
    items: list[dict[str, Any]] = Field(default_factory=list)
    prototype_token: dict[str, Any] = Field(default_factory=dict, alias="prototypeToken")
    flags: dict[str, Any] = Field(default_factory=dict)
    diagnostics: RunDiagnostics = Field(default_factory=RunDiagnostics, exclude=True)

    def to_host(self) -> dict[str, Any]:
        """Serialize with host field names, without diagnostics."""
        return self.model_dump(mode="json", by_alias=True)

    def item_ids(self) -> list[str]:
        return [item["_id"] for item in self.items if "_id" in item]

    def core_patch(self) -> dict[str, Any]:
        """Fields replaced on an existing actor during adjustment.

        The token texture is left out so the actor keeps its current art.
        """
        token = {key: value for key, value in self.prototype_token.items() if key != "texture"}
        return {
            "name": self.name,
            "system": self.system,
            "prototypeToken": token,
        }


__all__ = ["RunDiagnostics", "CompositeActorRecord"]
