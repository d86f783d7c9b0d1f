"""Content index over existing entities and item resolution."""

from __future__ import annotations

from dnd_forge.compendium.index import ContentIndex, IndexEntry, make_uuid, parse_uuid
from dnd_forge.compendium.resolver import ItemResolver, ReferencedItems, ResolvedItem


__all__ = [
    "ContentIndex",
    "IndexEntry",
    "make_uuid",
    "parse_uuid",
    "ItemResolver",
    "ReferencedItems",
    "ResolvedItem",
]
