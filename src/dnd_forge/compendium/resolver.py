"""Resolution of generated or selected items against the content index."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from dnd_forge.compendium.index import ContentIndex
from dnd_forge.core.logging import get_logger
from dnd_forge.items.utils import (
    auto_equip_if_armor,
    ensure_activity_ids,
    ensure_item_has_image,
    reassign_ids,
    sanitize_custom_item,
)
from dnd_forge.models.enums import ItemProvenance


logger = get_logger(__name__)

MULTIATTACK = "multiattack"
SPELLCASTING = "spellcasting"


@dataclass
class ResolvedItem:
    """An item with its provenance.

    Attributes:
        item: Host-shaped item.
        provenance: Whether it was reused or fabricated.
        source_uuid: Reference handle of the reused entity.
    """

    item: dict[str, Any]
    provenance: ItemProvenance
    source_uuid: str | None = None


@dataclass
class ReferencedItems:
    """Outcome of resolving a batch of items.

    Attributes:
        entries: Resolved items in input order.
        multiattack_text: Description of the first multiattack entry.
        spellcasting_text: Description of the first spellcasting entry.
    """

    entries: list[ResolvedItem] = field(default_factory=list)
    multiattack_text: str = ""
    spellcasting_text: str = ""

    @property
    def items(self) -> list[dict[str, Any]]:
        return [entry.item for entry in self.entries]

    @property
    def reused_count(self) -> int:
        return sum(1 for entry in self.entries if entry.provenance is ItemProvenance.REUSED)

    @property
    def custom_count(self) -> int:
        return sum(1 for entry in self.entries if entry.provenance is ItemProvenance.CUSTOM)


def prepare_reused(record: dict[str, Any], uuid: str) -> dict[str, Any]:
    """Make a detached index record safe to embed in a new actor."""
    reassign_ids(record)
    record.setdefault("_stats", {})["compendiumSource"] = uuid
    auto_equip_if_armor(record)
    ensure_item_has_image(record)
    return record


def prepare_custom(raw: dict[str, Any]) -> dict[str, Any]:
    custom = sanitize_custom_item(raw)
    auto_equip_if_armor(custom)
    ensure_activity_ids(custom)
    return custom


def _named(candidates: Iterable[Any]) -> Iterator[tuple[dict[str, Any], str]]:
    for raw in candidates:
        if isinstance(raw, dict):
            name = str(raw.get("name") or "").strip()
            if name:
                yield raw, name


def _divert(raw: dict[str, Any], name: str, result: ReferencedItems) -> bool:
    """Move multiattack and spellcasting entries into narrative text; the first of each wins."""
    lower = name.lower()
    if MULTIATTACK not in lower and SPELLCASTING not in lower:
        return False
    description = (raw.get("system") or {}).get("description", {})
    text = description.get("value", "") if isinstance(description, dict) else str(description or "")
    if MULTIATTACK in lower:
        result.multiattack_text = result.multiattack_text or text or name
    else:
        result.spellcasting_text = result.spellcasting_text or text or name
    return True


class ItemResolver:
    """Swaps items for existing index entities where a match exists."""

    def __init__(self, index: ContentIndex) -> None:
        self.index = index

    async def build_referenced_items(self, candidates: Iterable[dict[str, Any]]) -> ReferencedItems:
        """Resolve generated items against the index.

        Entries named like multiattack or spellcasting are diverted into
        narrative text (the first of each wins). Every other entry is
        replaced by its best index match when one exists, and otherwise
        sanitized into a custom item.

        Args:
            candidates: Generated host items.

        Returns:
            ReferencedItems with provenance and narrative text.
        """
        await self.index.ensure_built()
        result = ReferencedItems()

        for raw, name in _named(candidates):
            if _divert(raw, name, result):
                continue

            item_type = raw.get("type")
            matches = await self.index.search(name, (item_type,) if item_type else ())
            if matches:
                record = await self.index.get_entity(matches[0])
                if record is not None:
                    result.entries.append(ResolvedItem(
                        item=prepare_reused(record, matches[0].uuid),
                        provenance=ItemProvenance.REUSED,
                        source_uuid=matches[0].uuid,
                    ))
                    continue

            result.entries.append(ResolvedItem(item=prepare_custom(raw), provenance=ItemProvenance.CUSTOM))

        logger.info(
            "Referenced items resolved",
            reused=result.reused_count,
            custom=result.custom_count,
        )
        return result

    def collect_fabricated(self, items: Iterable[dict[str, Any]]) -> ReferencedItems:
        """Sanitize freshly fabricated items without consulting the index.

        The components were already judged custom, so no entry is swapped for
        an index match. Multiattack and spellcasting entries are diverted into
        narrative text as in :meth:`build_referenced_items`.
        """
        result = ReferencedItems()
        for raw, name in _named(items):
            if not _divert(raw, name, result):
                result.entries.append(ResolvedItem(item=prepare_custom(raw), provenance=ItemProvenance.CUSTOM))
        logger.info("Fabricated items collected", custom=result.custom_count)
        return result

    async def resolve_selected(self, uuids: Iterable[str]) -> list[ResolvedItem]:
        """Fetch selected entities by reference handle; unknown handles are skipped."""
        resolved: list[ResolvedItem] = []
        for uuid in uuids:
            record = await self.index.from_uuid(uuid)
            if record is None:
                logger.warning("Selected entity not found", uuid=uuid)
                continue
            resolved.append(ResolvedItem(
                item=prepare_reused(record, uuid),
                provenance=ItemProvenance.REUSED,
                source_uuid=uuid,
            ))
        return resolved


__all__ = ["ItemResolver", "ReferencedItems", "ResolvedItem", "prepare_custom", "prepare_reused"]
