"""Collaborator interfaces and concrete generation providers."""

from __future__ import annotations

from dnd_forge.backends.base import (
    ContentStore,
    GeneratedImage,
    GenerationBackend,
    HostEntityStore,
    ImageBackend,
    SourceCollection,
)
from dnd_forge.backends.images import ImagenImageBackend, OpenAIImageBackend, create_image_backend
from dnd_forge.backends.openrouter import OpenRouterBackend


__all__ = [
    "GenerationBackend",
    "ImageBackend",
    "GeneratedImage",
    "ContentStore",
    "SourceCollection",
    "HostEntityStore",
    "OpenRouterBackend",
    "OpenAIImageBackend",
    "ImagenImageBackend",
    "create_image_backend",
]
