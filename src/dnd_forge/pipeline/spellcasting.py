"""Spellcasting feat construction for innate spellcasters.

The Blueprint's spell lists become one "Spellcasting" feat with a cast
activity per spell. At-will activities have no usage limit; per-day
activities consume their own uses and recover daily. Every spell found in
the content index is embedded as a spell item cached for its activity.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dnd_forge.core.constants import NAME_LOOKUP_TOKEN, SPELLCASTING_ICON
from dnd_forge.core.ids import random_id
from dnd_forge.core.logging import get_logger
from dnd_forge.items.utils import reassign_ids


if TYPE_CHECKING:
    from dnd_forge.compendium.index import ContentIndex
    from dnd_forge.models.blueprint import Blueprint, PerDaySpell


logger = get_logger(__name__)


@dataclass
class SpellcastingResult:
    """The Spellcasting feat and the spell items it casts."""

    feat: dict[str, Any]
    embedded_spells: list[dict[str, Any]] = field(default_factory=list)

    @property
    def items(self) -> list[dict[str, Any]]:
        return [self.feat, *self.embedded_spells]


def _cast_activity(activity_id: str, sort: int, uuid: str | None, uses: int | None) -> dict[str, Any]:
    """A cast activity; ``uses`` of None means at will."""
    if uses is None:
        targets: list[dict[str, Any]] = []
        activity_uses: dict[str, Any] = {"spent": 0, "recovery": [], "max": ""}
    else:
        targets = [{"type": "activityUses", "value": "1", "scaling": {}}]
        activity_uses = {
            "spent": 0,
            "recovery": [{"period": "day", "type": "recoverAll"}],
            "max": str(uses),
        }

    return {
        "type": "cast",
        "_id": activity_id,
        "sort": sort,
        "activation": {"type": "action", "value": None, "override": False},
        "consumption": {"scaling": {"allowed": False}, "spellSlot": True, "targets": targets},
        "description": {"chatFlavor": ""},
        "duration": {"units": "inst", "concentration": False, "override": False},
        "range": {"override": False, "units": "self"},
        "target": {
            "template": {"contiguous": False, "units": "ft"},
            "affects": {"choice": False},
            "override": False,
            "prompt": True,
        },
        "uses": activity_uses,
        "spell": {"uuid": uuid, "level": None, "properties": [], "spellbook": True, "ability": ""},
        "name": "",
    }


def build_description(ability: str, at_will: tuple[str, ...], per_day: tuple[PerDaySpell, ...]) -> str:
    """Render the feat text, grouping per-day spells by uses (most first)."""
    parts = [
        f'<p class="feature">The {NAME_LOOKUP_TOKEN} casts one of the following spells, '
        f"using {ability.upper()} as the spellcasting ability:</p>"
    ]
    if at_will:
        parts.append(f'<p class="feature-trait"><strong>At Will:</strong> <em>{", ".join(at_will)}</em></p>')

    by_uses: dict[int, list[str]] = defaultdict(list)
    for entry in per_day:
        by_uses[entry.uses].append(entry.spell)
    for uses in sorted(by_uses, reverse=True):
        names = ", ".join(by_uses[uses])
        parts.append(f'<p class="feature-trait"><strong>{uses}/Day Each:</strong> <em>{names}</em></p>')

    return "\n".join(parts)


class SpellcastingBuilder:
    """Builds the Spellcasting feat from a Blueprint."""

    def __init__(self, index: ContentIndex) -> None:
        self.index = index

    async def build(self, blueprint: Blueprint) -> SpellcastingResult | None:
        """Build the feat and its embedded spells.

        Spells missing from the index still get an activity (with no spell
        reference) and are logged; nothing is embedded for them.

        Returns:
            None if the Blueprint has no spells.
        """
        spellcasting = blueprint.spellcasting
        if spellcasting is None or spellcasting.is_empty:
            return None

        at_will = spellcasting.spells.at_will
        per_day = spellcasting.spells.per_day
        feat_id = random_id()
        activities: dict[str, dict[str, Any]] = {}
        references: list[tuple[str, str]] = []

        planned: list[tuple[str, int | None]] = [(name, None) for name in at_will]
        planned += [(entry.spell, entry.uses) for entry in per_day]

        for sort, (spell_name, uses) in enumerate(planned):
            uuid = await self.index.get_spell_uuid(spell_name)
            if uuid is None:
                logger.warning(
                    "Spell not found in content index",
                    spell=spell_name,
                    frequency="at will" if uses is None else f"{uses}/day",
                )
            activity_id = random_id()
            activities[activity_id] = _cast_activity(activity_id, sort, uuid, uses)
            if uuid is not None:
                references.append((uuid, activity_id))

        feat = {
            "_id": feat_id,
            "name": "Spellcasting",
            "type": "feat",
            "img": SPELLCASTING_ICON,
            "system": {
                "type": {"value": "monster", "subtype": ""},
                "activities": activities,
                "uses": {"spent": 0, "recovery": [], "max": ""},
                "description": {
                    "value": build_description(spellcasting.ability, at_will, per_day),
                    "chat": "",
                },
                "identifier": "spellcasting",
                "source": {"revision": 1, "rules": "2024"},
                "properties": [],
                "requirements": "",
                "advancement": [],
            },
            "effects": [],
            "flags": {},
        }

        embedded = await self._embed_spells(references, feat_id)
        logger.info(
            "Spellcasting feat built",
            activities=len(activities),
            embedded=len(embedded),
        )
        return SpellcastingResult(feat=feat, embedded_spells=embedded)

    async def _embed_spells(self, references: list[tuple[str, str]], feat_id: str) -> list[dict[str, Any]]:
        embedded: list[dict[str, Any]] = []
        for uuid, activity_id in references:
            spell = await self.index.from_uuid(uuid)
            if spell is None:
                logger.warning("Spell record could not be fetched", uuid=uuid)
                continue

            reassign_ids(spell)
            flags = spell.setdefault("flags", {}).setdefault("dnd5e", {})
            flags["cachedFor"] = f".Item.{feat_id}.Activity.{activity_id}"
            spell.setdefault("system", {})["method"] = "spell"
            spell.setdefault("_stats", {})["compendiumSource"] = uuid
            embedded.append(spell)
        return embedded


__all__ = ["SpellcastingBuilder", "SpellcastingResult", "build_description"]
