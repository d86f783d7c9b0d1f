"""Item icon and actor portrait fabrication.

Images are generated through an ImageBackend and persisted through a
ContentStore under ``ImageSettings.save_dir``. Filenames are a slug of the
subject, a millisecond timestamp and a tag:

    longsword-of-embers-1718035200000-icon.png
    ash-wyrmling-1718035200000-final.jpg
"""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING, Any

from dnd_forge.agents.prompts import ITEM_ICON_PROMPT, PORTRAIT_PROMPT
from dnd_forge.core.config import ImageSettings, get_settings
from dnd_forge.core.logging import get_logger
from dnd_forge.storage.files import normalize_directory


if TYPE_CHECKING:
    from dnd_forge.backends.base import ContentStore, GeneratedImage, HostEntityStore, ImageBackend
    from dnd_forge.core.cancellation import CancellationToken


logger = get_logger(__name__)

_NON_SLUG = re.compile(r"[^a-z0-9]+")
_TAGS = re.compile(r"<[^>]+>")
_MAX_DESCRIPTION = 300


def slugify(value: str | None, fallback: str = "item") -> str:
    """Lowercase ``value`` and collapse non-alphanumerics into single dashes.

    Example:
        >>> slugify("Longsword of Embers +1")
        'longsword-of-embers-1'
    """
    slug = _NON_SLUG.sub("-", (value or "").lower()).strip("-")
    return slug or fallback


def image_filename(subject: str | None, tag: str, image: GeneratedImage, *, fallback: str) -> str:
    """Build ``{slug}-{ms timestamp}-{tag}.{ext}``."""
    timestamp = int(time.time() * 1000)
    return f"{slugify(subject, fallback)}-{timestamp}-{tag}.{image.extension}"


class ImageService:
    """Fabricates and uploads images for items and actors.

    Attributes:
        backend: Image generation provider.
        store: Where images are uploaded.
        settings: Size and upload directory.
    """

    def __init__(
        self,
        backend: ImageBackend,
        store: ContentStore,
        settings: ImageSettings | None = None,
    ) -> None:
        self.backend = backend
        self.store = store
        self.settings = settings or get_settings().images

    @property
    def directory(self) -> str:
        return normalize_directory(self.settings.save_dir)

    async def _upload(self, image: GeneratedImage, filename: str) -> str:
        await self.store.ensure_directory(self.directory)
        return await self.store.upload(image.data, self.directory, filename)

    async def fabricate_item_icon(
        self,
        item: dict[str, Any],
        cancel: CancellationToken | None = None,
    ) -> str:
        """Generate an icon for ``item`` and return its uploaded path.

        The item itself is not modified.
        """
        description = (item.get("system") or {}).get("description") or {}
        text = description.get("value", "") if isinstance(description, dict) else str(description)
        text = _TAGS.sub(" ", text).strip()[:_MAX_DESCRIPTION]
        prompt = ITEM_ICON_PROMPT.format(name=item.get("name", "item"), description=text)

        image = await self.backend.generate(prompt, self.settings.size, cancel)
        path = await self._upload(image, image_filename(item.get("name"), "icon", image, fallback="item"))
        logger.info("Item icon fabricated", item=item.get("name"), path=path)
        return path

    async def fabricate_portrait(
        self,
        concept: str,
        name: str | None = None,
        cancel: CancellationToken | None = None,
    ) -> str:
        """Generate an actor portrait from a free-text concept.

        Args:
            concept: What to depict (the user's prompt during generation).
            name: Used for the filename; falls back to the concept.
            cancel: Cancellation token.

        Returns:
            Uploaded path of the portrait.
        """
        image = await self.backend.generate(PORTRAIT_PROMPT.format(concept=concept), self.settings.size, cancel)
        path = await self._upload(image, image_filename(name or concept, "final", image, fallback="token"))
        logger.info("Portrait fabricated", name=name, path=path)
        return path

    async def set_actor_image(self, host_store: HostEntityStore, actor_id: str, path: str) -> None:
        """Point an actor's portrait and token texture at ``path``."""
        actor = await host_store.get_actor(actor_id) or {}
        texture = {**((actor.get("prototypeToken") or {}).get("texture") or {}), "src": path}
        await host_store.update_entity(actor_id, {"img": path, "prototypeToken": {"texture": texture}})


__all__ = ["ImageService", "slugify", "image_filename"]
