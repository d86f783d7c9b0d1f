"""Image fabrication for item icons and actor portraits."""

from __future__ import annotations

from dnd_forge.media.images import ImageService, image_filename, slugify


__all__ = ["ImageService", "image_filename", "slugify"]
