"""Helpers that turn a Blueprint and its items into host actor data."""

from __future__ import annotations

import copy
import re
from collections.abc import Iterable
from fractions import Fraction
from typing import TYPE_CHECKING, Any

from dnd_forge.core.constants import (
    DEFAULT_ACTOR_IMAGE,
    DISPOSITION_HOSTILE,
    NAME_LOOKUP_TOKEN,
    SENSE_KEYS,
    SKILL_KEYS,
    TOKEN_SIZING,
)
from dnd_forge.core.logging import get_logger


if TYPE_CHECKING:
    from dnd_forge.models.blueprint import Blueprint


logger = get_logger(__name__)

_SKILL_CODES = frozenset(SKILL_KEYS.values())


def parse_cr(value: float | str) -> float | int:
    """Numeric challenge rating from ``2``, ``"2"`` or ``"1/4"``."""
    if isinstance(value, (int, float)):
        return value
    try:
        number = Fraction(str(value).strip())
    except (ValueError, ZeroDivisionError):
        logger.warning("Unparseable challenge rating", cr=value)
        return 0
    return int(number) if number.denominator == 1 else float(number)


def map_skills_to_keys(skills: Iterable[str]) -> dict[str, dict[str, int]]:
    """Map skill names (or host keys) to proficient skill entries.

    Example:
        >>> map_skills_to_keys(["Perception", "sleight of hand"])
        {'prc': {'value': 1}, 'slt': {'value': 1}}
    """
    mapped: dict[str, dict[str, int]] = {}
    for skill in skills:
        name = str(skill).strip().lower()
        key = SKILL_KEYS.get(name) or (name if name in _SKILL_CODES else None)
        if key is None:
            logger.debug("Unknown skill ignored", skill=skill)
            continue
        mapped[key] = {"value": 1}
    return mapped


def build_abilities(blueprint: Blueprint) -> dict[str, dict[str, int]]:
    """Ability scores with proficient saving throws marked."""
    saves = {save.lower() for save in blueprint.saves}
    return {
        key: {"value": score, "proficient": 1 if key in saves else 0}
        for key, score in blueprint.stats.abilities.items()
    }


def compose_biography(blueprint: Blueprint, multiattack_text: str = "") -> str:
    """Biography followed by the narrative sections."""
    parts = [
        blueprint.biography or "",
        "<hr>",
        f"<p><strong>Behavior:</strong> {blueprint.behavior}</p>",
        f"<p><strong>Appearance:</strong> {blueprint.appearance}</p>",
        f"<p><strong>Twist:</strong> {blueprint.twist}</p>",
        f"<p><strong>Habitat:</strong> {blueprint.habitat or 'Unknown'}</p>",
        f"<p><strong>Treasure:</strong> {blueprint.treasure or 'None'}</p>",
    ]
    if multiattack_text:
        parts.append(f"<p><strong>Multiattack:</strong> {multiattack_text}</p>")
    return "\n".join(parts)


def build_system(blueprint: Blueprint, multiattack_text: str = "") -> dict[str, Any]:
    """Host system data for the actor.

    Args:
        blueprint: The actor design.
        multiattack_text: Narrative diverted from a multiattack item.

    Returns:
        ``abilities``, ``attributes``, ``details``, ``traits`` and ``skills``.
    """
    stats = blueprint.stats
    movement = stats.movement.model_dump(exclude_none=True) if stats.movement else {"walk": 30}
    senses: dict[str, Any] = {key: getattr(blueprint.senses, key) or 0 for key in SENSE_KEYS}
    senses.update(units="ft", special="")

    return {
        "abilities": build_abilities(blueprint),
        "attributes": {
            "ac": {"value": stats.ac, "calc": "natural"},
            "hp": {"value": stats.hp, "max": stats.hp, "formula": ""},
            "movement": {**movement, "units": "ft"},
            "senses": senses,
            "spellcasting": blueprint.spellcasting.ability if blueprint.spellcasting else "",
        },
        "details": {
            "cr": parse_cr(blueprint.cr),
            "type": {"value": (blueprint.type or "humanoid").lower()},
            "alignment": blueprint.alignment or "Unaligned",
            "biography": {"value": compose_biography(blueprint, multiattack_text)},
            "race": blueprint.name,
        },
        "traits": {
            "size": blueprint.size.value,
            "languages": {"value": list(blueprint.languages) or ["common"]},
            "di": {"value": list(blueprint.immunities)},
            "dr": {"value": list(blueprint.resistances)},
            "ci": {"value": list(blueprint.condition_immunities)},
        },
        "skills": map_skills_to_keys(blueprint.skills),
    }


def token_sizing(size: str | None) -> dict[str, Any]:
    """Token footprint and texture scale for a size code (``med`` if unknown)."""
    sizing = TOKEN_SIZING.get((size or "").lower(), TOKEN_SIZING["med"])
    return {
        "width": sizing["width"],
        "height": sizing["height"],
        "texture": {
            "src": DEFAULT_ACTOR_IMAGE,
            "scaleX": sizing["scale"],
            "scaleY": sizing["scale"],
        },
    }


def build_prototype_token(blueprint: Blueprint) -> dict[str, Any]:
    return {
        "name": blueprint.name,
        "displayName": 20,
        "actorLink": False,
        "disposition": DISPOSITION_HOSTILE,
        **token_sizing(blueprint.size.value),
    }


def apply_dynamic_descriptions(items: Iterable[dict[str, Any]], actor_name: str | None) -> list[dict[str, Any]]:
    """Replace literal mentions of the actor's name with a lookup token.

    Matches whole words, case-insensitively, in item descriptions and in
    each activity's description. Returns copies.
    """
    copied = [copy.deepcopy(item) for item in items]
    if not actor_name:
        return copied

    pattern = re.compile(rf"\b{re.escape(actor_name)}\b", re.IGNORECASE)

    def replace(holder: Any) -> None:
        if isinstance(holder, dict) and isinstance(holder.get("value"), str):
            holder["value"] = pattern.sub(NAME_LOOKUP_TOKEN, holder["value"])

    for item in copied:
        system = item.get("system")
        if not isinstance(system, dict):
            continue
        replace(system.get("description"))
        activities = system.get("activities")
        if isinstance(activities, dict):
            for activity in activities.values():
                if isinstance(activity, dict):
                    replace(activity.get("description"))
    return copied


__all__ = [
    "parse_cr",
    "map_skills_to_keys",
    "build_abilities",
    "compose_biography",
    "build_system",
    "token_sizing",
    "build_prototype_token",
    "apply_dynamic_descriptions",
]
