"""Reconstruct a Blueprint from an existing host actor.

Adjustment starts from the actor as it exists now, not from the Blueprint
that originally produced it (which may have been edited by hand since).
"""

from __future__ import annotations

import html
import re
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from dnd_forge.core.constants import (
    ABILITY_KEYS,
    EQUIPMENT_ITEM_TYPES,
    MOVEMENT_KEYS,
    NAME_LOOKUP_TOKEN,
    SENSE_KEYS,
    SKILL_KEYS,
)
from dnd_forge.core.exceptions import ValidationError
from dnd_forge.core.logging import get_logger
from dnd_forge.models.blueprint import Blueprint
from dnd_forge.models.enums import CreatureSize, FeatureType


if TYPE_CHECKING:
    from dnd_forge.compendium.index import ContentIndex


logger = get_logger(__name__)

_SKILL_NAMES = {key: name for name, key in SKILL_KEYS.items()}
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_SECTION = re.compile(r"<p><strong>(\w+):</strong>\s*(.*?)</p>", re.DOTALL)
_CACHED_FOR = re.compile(r"\.Activity\.([A-Za-z0-9]+)$")
_NARRATIVE = ("behavior", "appearance", "twist", "habitat", "treasure")
_SIZES = frozenset(size.value for size in CreatureSize)


def strip_html(text: str | None) -> str:
    """Plain text of an HTML fragment with whitespace collapsed."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", html.unescape(_TAG.sub(" ", text))).strip()


def _description(item: dict[str, Any], actor_name: str) -> str:
    raw = ((item.get("system") or {}).get("description") or {}).get("value", "")
    return strip_html(raw).replace(NAME_LOOKUP_TOKEN, actor_name)


def _is_spellcasting_feat(item: dict[str, Any]) -> bool:
    system = item.get("system") or {}
    return item.get("type") == "feat" and (
        system.get("identifier") == "spellcasting" or str(item.get("name", "")).lower() == "spellcasting"
    )


def _values(trait: Any) -> list[str]:
    if isinstance(trait, dict):
        return [str(value) for value in trait.get("value") or []]
    return []


def _score(value: Any) -> int:
    if isinstance(value, dict):
        value = value.get("value")
    return int(value) if isinstance(value, (int, float)) else 10


class BlueprintFactory:
    """Builds Blueprints from host actor records.

    Args:
        index: Used to name spells that are referenced but not embedded.
    """

    def __init__(self, index: ContentIndex | None = None) -> None:
        self.index = index

    async def create_from_actor(self, actor: dict[str, Any]) -> Blueprint:
        """Reconstruct the design of ``actor``.

        Args:
            actor: Host actor with embedded ``items``.

        Returns:
            A Blueprint describing the actor as it is now.

        Raises:
            ValidationError: If the actor cannot be expressed as a Blueprint.
        """
        name = str(actor.get("name") or "Unnamed Actor")
        system = actor.get("system") or {}
        attributes = system.get("attributes") or {}
        details = system.get("details") or {}
        traits = system.get("traits") or {}
        items = [item for item in actor.get("items") or [] if isinstance(item, dict)]

        abilities = system.get("abilities") or {}
        movement = {
            key: value
            for key, value in (attributes.get("movement") or {}).items()
            if (key in MOVEMENT_KEYS and isinstance(value, (int, float))) or key == "hover"
        }
        senses = {key: (attributes.get("senses") or {}).get(key) or None for key in SENSE_KEYS}
        ac = attributes.get("ac") or {}
        hp = attributes.get("hp") or {}

        spellcasting_feat = next((item for item in items if _is_spellcasting_feat(item)), None)
        embedded_spells = [item for item in items if _cached_activity(item)]
        embedded_ids = {id(item) for item in embedded_spells}

        features: list[dict[str, Any]] = []
        equipment: list[dict[str, Any]] = []
        for item in items:
            if item is spellcasting_feat or id(item) in embedded_ids:
                continue
            entry = {"name": item.get("name", ""), "description": _description(item, name)}
            item_type = item.get("type")
            if item_type in EQUIPMENT_ITEM_TYPES:
                equipment.append({**entry, "type": item_type})
            elif item_type == "spell":
                features.append({**entry, "type": FeatureType.SPELL})
            else:
                features.append({**entry, "type": FeatureType.OTHER})

        biography_html = ((details.get("biography") or {}).get("value")) or ""
        biography, narrative = self._split_biography(biography_html)

        data: dict[str, Any] = {
            "name": name,
            "type": (details.get("type") or {}).get("value") or "humanoid",
            "cr": details["cr"] if details.get("cr") is not None else 1,
            "size": traits.get("size") if traits.get("size") in _SIZES else CreatureSize.MEDIUM,
            "alignment": details.get("alignment") or "unaligned",
            "stats": {
                "abilities": {key: _score(abilities.get(key)) for key in ABILITY_KEYS},
                "ac": ac.get("value") if isinstance(ac.get("value"), int) else 10,
                "hp": hp.get("max") or hp.get("value") or 1,
                "movement": movement or {"walk": 30},
            },
            "saves": [
                key for key in ABILITY_KEYS
                if isinstance(abilities.get(key), dict) and abilities[key].get("proficient")
            ],
            "skills": [
                _SKILL_NAMES[key] for key, value in (system.get("skills") or {}).items()
                if key in _SKILL_NAMES and isinstance(value, dict) and value.get("value")
            ],
            "senses": senses,
            "languages": _values(traits.get("languages")),
            "resistances": _values(traits.get("dr")),
            "immunities": _values(traits.get("di")),
            "condition_immunities": _values(traits.get("ci")),
            "biography": biography,
            **narrative,
            "features": features,
            "equipment": equipment,
            "spellcasting": await self._spellcasting(
                spellcasting_feat, embedded_spells, attributes.get("spellcasting")
            ),
        }

        try:
            blueprint = Blueprint.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(f"Actor {name!r} cannot be expressed as a Blueprint: {exc}") from exc

        logger.info(
            "Blueprint reconstructed from actor",
            name=name,
            features=len(blueprint.features),
            equipment=len(blueprint.equipment),
        )
        return blueprint

    @staticmethod
    def _split_biography(value: str) -> tuple[str, dict[str, str]]:
        head, _, tail = value.partition("<hr>")
        narrative: dict[str, str] = {}
        for label, text in _SECTION.findall(tail):
            key = label.lower()
            if key in _NARRATIVE:
                narrative[key] = strip_html(text)
        if narrative.get("habitat") == "Unknown":
            narrative.pop("habitat")
        if narrative.get("treasure") == "None":
            narrative.pop("treasure")
        return head.strip(), narrative

    async def _spellcasting(
        self,
        feat: dict[str, Any] | None,
        embedded: list[dict[str, Any]],
        ability: str | None,
    ) -> dict[str, Any] | None:
        if feat is None:
            return None

        by_activity = {_cached_activity(spell): spell.get("name") for spell in embedded}
        by_source = {
            (spell.get("_stats") or {}).get("compendiumSource"): spell.get("name") for spell in embedded
        }

        at_will: list[str] = []
        per_day: list[dict[str, Any]] = []
        activities = (feat.get("system") or {}).get("activities") or {}
        ordered = sorted(activities.items(), key=lambda pair: (pair[1] or {}).get("sort", 0))
        for activity_id, activity in ordered:
            if not isinstance(activity, dict) or activity.get("type") != "cast":
                continue
            uuid = (activity.get("spell") or {}).get("uuid")
            spell_name = by_activity.get(activity_id) or by_source.get(uuid) or await self._name_for(uuid)
            if not spell_name:
                logger.warning("Spellcasting activity without a resolvable spell", activity_id=activity_id)
                continue

            uses = str((activity.get("uses") or {}).get("max") or "").strip()
            if uses.isdigit() and int(uses) > 0:
                per_day.append({"spell": spell_name, "uses": int(uses)})
            else:
                at_will.append(spell_name)

        if not at_will and not per_day:
            return None
        return {"ability": ability or "int", "spells": {"atWill": at_will, "perDay": per_day}}

    async def _name_for(self, uuid: str | None) -> str | None:
        if not uuid or self.index is None:
            return None
        entry = await self.index.entry_for_uuid(uuid)
        return entry.name if entry else None


def _cached_activity(item: dict[str, Any]) -> str | None:
    """Activity id an embedded spell is cached for, if any."""
    cached_for = ((item.get("flags") or {}).get("dnd5e") or {}).get("cachedFor")
    if item.get("type") != "spell" or not isinstance(cached_for, str):
        return None
    match = _CACHED_FOR.search(cached_for)
    return match.group(1) if match else None


__all__ = ["BlueprintFactory", "strip_html"]
