"""Collaborator interfaces consumed by the agents and the pipeline.

Concrete providers live beside this module (OpenRouter text generation,
DALL-E / Imagen images) and in ``dnd_forge.storage`` (SQLite host store and
source collections, filesystem content store). Tests substitute scripted
fakes through the same protocols.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable


if TYPE_CHECKING:
    from dnd_forge.core.cancellation import CancellationToken


@runtime_checkable
class GenerationBackend(Protocol):
    """Text generation with an advisory JSON output constraint."""

    async def call(
        self,
        prompt: str,
        constraint: dict[str, Any],
        cancel: CancellationToken | None = None,
    ) -> str:
        """Submit ``prompt`` and return the raw response text.

        Raises:
            BackendError: On non-success responses or network failure.
            CancellationError: If ``cancel`` fires mid-call.
        """
        ...


@dataclass(frozen=True)
class GeneratedImage:
    """Raw image bytes with their MIME type."""

    data: bytes
    mime: str

    @property
    def extension(self) -> str:
        return "jpg" if self.mime in ("image/jpeg", "image/jpg") else "png"


@runtime_checkable
class ImageBackend(Protocol):
    """Image generation from a text prompt."""

    async def generate(
        self,
        prompt: str,
        size: str,
        cancel: CancellationToken | None = None,
    ) -> GeneratedImage:
        """Generate one image.

        Raises:
            ImageGenerationError: If the provider returned no image.
        """
        ...


@runtime_checkable
class ContentStore(Protocol):
    """Where fabricated images are persisted."""

    async def upload(self, data: bytes, directory: str, filename: str) -> str:
        """Store ``data`` and return its path or URL."""
        ...

    async def ensure_directory(self, directory: str) -> None:
        """Create ``directory`` (and parents). Idempotent."""
        ...


@runtime_checkable
class SourceCollection(Protocol):
    """A read-only collection of existing entities (a compendium pack)."""

    collection_id: str

    async def get_index(self, fields: Sequence[str]) -> list[dict[str, Any]]:
        """Return lightweight entries with ``_id`` plus the requested fields."""
        ...

    async def get_full_record(self, local_id: str) -> dict[str, Any] | None:
        """Return the full record for ``local_id``, or None if absent."""
        ...


@runtime_checkable
class HostEntityStore(Protocol):
    """The host application's actor storage."""

    async def create_actor(self, record: dict[str, Any]) -> str:
        """Persist a new actor with its items and return its id."""
        ...

    async def get_actor(self, actor_id: str) -> dict[str, Any] | None:
        """Return the actor with embedded items, or None."""
        ...

    async def create_entities(
        self,
        actor_id: str,
        kind: str,
        records: Sequence[dict[str, Any]],
    ) -> list[str]:
        """Embed ``records`` of ``kind`` (e.g. ``"Item"``) in the actor."""
        ...

    async def delete_entities(self, actor_id: str, kind: str, ids: Sequence[str]) -> int:
        """Remove embedded entities and return how many were deleted."""
        ...

    async def update_entity(self, actor_id: str, patch: dict[str, Any]) -> None:
        """Apply a top-level field patch to the actor."""
        ...


__all__ = [
    "GenerationBackend",
    "GeneratedImage",
    "ImageBackend",
    "ContentStore",
    "SourceCollection",
    "HostEntityStore",
]
