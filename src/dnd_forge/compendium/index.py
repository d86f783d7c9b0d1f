"""Content index over existing entities (compendium packs).

The index is an explicit service object: construct it once per session from
the available source collections and pass it to every pipeline run. The
first lookup builds the index; concurrent first lookups share that single
build. The index is read-only afterwards and never invalidated.

Search is tiered and case-insensitive. The first tier that matches wins:

    1. exact name
    2. name starts with the query
    3. name contains the query
    4. query contains the name (longest name first)
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from dnd_forge.core.constants import COMPENDIUM_ALLOW_LIST, INDEX_FIELDS
from dnd_forge.core.exceptions import CompendiumError
from dnd_forge.core.logging import get_logger


if TYPE_CHECKING:
    from dnd_forge.backends.base import SourceCollection


logger = get_logger(__name__)

UUID_PREFIX = "Compendium"


@dataclass(frozen=True)
class IndexEntry:
    """Lightweight reference to an entity in a source collection.

    Attributes:
        uuid: Process-wide reference handle.
        name: Display name.
        type: Entity type (spell, weapon, feat, ...).
        img: Icon path.
        pack: Owning collection id.
        local_id: Id inside the collection.
    """

    uuid: str
    name: str
    type: str
    img: str | None
    pack: str
    local_id: str


def make_uuid(pack: str, local_id: str, document: str = "Item") -> str:
    """Build the reference handle of an entity in ``pack``."""
    return f"{UUID_PREFIX}.{pack}.{document}.{local_id}"


def parse_uuid(uuid: str) -> tuple[str, str] | None:
    """Split a reference handle into ``(pack, local_id)``.

    Returns:
        None if ``uuid`` is not a collection handle.
    """
    parts = uuid.split(".")
    if len(parts) < 4 or parts[0] != UUID_PREFIX:
        return None
    return ".".join(parts[1:-2]), parts[-1]


class ContentIndex:
    """Searchable index over several source collections.

    Attributes:
        allow_list: Allowed entity types per collection id.
    """

    def __init__(
        self,
        collections: Mapping[str, SourceCollection] | Iterable[SourceCollection],
        allow_list: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        """Initialize the index without building it.

        Args:
            collections: Source collections, keyed by id or as an iterable of
                collections exposing ``collection_id``.
            allow_list: Types retained per collection; defaults to the
                standard spell, item and feature packs.
        """
        if isinstance(collections, Mapping):
            self._collections = dict(collections)
        else:
            self._collections = {collection.collection_id: collection for collection in collections}
        source = COMPENDIUM_ALLOW_LIST if allow_list is None else allow_list
        self.allow_list = {pack: tuple(types) for pack, types in source.items()}
        self._entries: tuple[IndexEntry, ...] | None = None
        self._lock = asyncio.Lock()
        self.build_count = 0

    @property
    def is_built(self) -> bool:
        return self._entries is not None

    async def ensure_built(self) -> tuple[IndexEntry, ...]:
        """Build the index on first use.

        Returns:
            All indexed entries in collection order.

        Raises:
            CompendiumError: If a present collection fails to return its index.
        """
        if self._entries is not None:
            return self._entries
        async with self._lock:
            if self._entries is None:
                self._entries = await self._build()
        return self._entries

    async def _build(self) -> tuple[IndexEntry, ...]:
        self.build_count += 1
        logger.info("Building content index", collections=len(self.allow_list))
        entries: list[IndexEntry] = []

        for pack, allowed in self.allow_list.items():
            collection = self._collections.get(pack)
            if collection is None:
                logger.warning("Source collection not found", collection_id=pack)
                continue
            try:
                raw_entries = await collection.get_index(INDEX_FIELDS)
            except CompendiumError:
                raise
            except Exception as exc:
                raise CompendiumError(
                    f"Failed to read index: {exc}",
                    collection_id=pack,
                ) from exc

            for raw in raw_entries:
                entry_type = raw.get("type")
                local_id = raw.get("_id")
                if entry_type not in allowed or not local_id or not raw.get("name"):
                    continue
                entries.append(IndexEntry(
                    uuid=raw.get("uuid") or make_uuid(pack, local_id),
                    name=raw["name"],
                    type=entry_type,
                    img=raw.get("img"),
                    pack=pack,
                    local_id=local_id,
                ))

        logger.info("Content index built", entries=len(entries))
        return tuple(entries)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def search(self, query: str | None, types: Sequence[str] = ()) -> list[IndexEntry]:
        """Tiered case-insensitive name search.

        Args:
            query: Name to look for.
            types: Restrict to these entity types; empty means any type.

        Returns:
            Matches of the first non-empty tier, in a deterministic order.
        """
        entries = await self.ensure_built()
        if not query or not query.strip():
            return []

        needle = query.strip().lower()
        pool = [entry for entry in entries if not types or entry.type in types]

        exact = [entry for entry in pool if entry.name.lower() == needle]
        if exact:
            return exact

        starts = [entry for entry in pool if entry.name.lower().startswith(needle)]
        if starts:
            return starts

        contains = [entry for entry in pool if needle in entry.name.lower()]
        if contains:
            return contains

        reverse = [entry for entry in pool if entry.name.lower() in needle]
        return sorted(reverse, key=lambda entry: len(entry.name), reverse=True)

    async def get_all(self, entity_type: str) -> list[IndexEntry]:
        entries = await self.ensure_built()
        return [entry for entry in entries if entry.type == entity_type]

    async def get_spell_uuid(self, name: str | None) -> str | None:
        """Reference handle of the best spell match for ``name``."""
        if not name:
            return None
        matches = await self.search(name, ("spell",))
        return matches[0].uuid if matches else None

    async def get_entity(self, entry: IndexEntry | None) -> dict[str, Any] | None:
        """Fetch the full record behind ``entry`` as a detached copy."""
        if entry is None:
            return None
        collection = self._collections.get(entry.pack)
        if collection is None:
            return None
        record = await collection.get_full_record(entry.local_id)
        return copy.deepcopy(record) if record is not None else None

    async def from_uuid(self, uuid: str) -> dict[str, Any] | None:
        """Resolve a reference handle to a detached full record."""
        parsed = parse_uuid(uuid)
        if parsed is None:
            return None
        pack, local_id = parsed
        collection = self._collections.get(pack)
        if collection is None:
            return None
        record = await collection.get_full_record(local_id)
        return copy.deepcopy(record) if record is not None else None

    async def entry_for_uuid(self, uuid: str) -> IndexEntry | None:
        entries = await self.ensure_built()
        return next((entry for entry in entries if entry.uuid == uuid), None)

    async def find_entry(self, item: Mapping[str, Any]) -> dict[str, Any] | None:
        """Full record of the best match for an item's name and type."""
        item_type = item.get("type")
        matches = await self.search(item.get("name"), (item_type,) if item_type else ())
        if not matches:
            return None
        return await self.get_entity(matches[0])


__all__ = ["ContentIndex", "IndexEntry", "make_uuid", "parse_uuid", "UUID_PREFIX"]
