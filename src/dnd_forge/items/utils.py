"""Item helpers shared by the resolver, the repair engine and assembly.

All functions work on host-shaped item dictionaries. Functions named
``ensure_*`` and ``auto_equip_if_armor`` mutate the item in place and
return it for chaining; ``sanitize_custom_item`` and the option-group
normalizer return new objects.
"""

from __future__ import annotations

import copy
import re
from typing import Any

from dnd_forge.core.constants import (
    ARMOR_TYPES,
    DEFAULT_ITEM_ICONS,
    FALLBACK_ITEM_ICON,
    FLAG_SCOPE,
    ITEM_TYPES,
)
from dnd_forge.core.ids import is_valid_id, random_id
from dnd_forge.core.logging import get_logger


logger = get_logger(__name__)

_HOST_ITEM_KEYS = ("_id", "name", "type", "img", "system", "effects", "flags", "folder", "sort")
_OPTION_NAME = re.compile(r"^\s*(?P<base>[^()]+?)\s*\((?P<option>[^()]+)\)\s*$")


# =============================================================================
# Identifiers
# =============================================================================


def ensure_item_has_id(item: dict[str, Any]) -> dict[str, Any]:
    """Give the item a valid ``_id`` if it lacks one."""
    if not is_valid_id(item.get("_id")):
        item["_id"] = random_id()
    return item


def ensure_activity_ids(item: dict[str, Any]) -> dict[str, Any]:
    """Normalize ``system.activities`` into a mapping keyed by valid ids.

    Lists are converted to mappings. Each activity's ``_id`` always equals
    its key; invalid or missing ids are replaced.
    """
    system = item.setdefault("system", {})
    activities = system.get("activities")
    if not activities:
        if "activities" in system:
            system["activities"] = {}
        return item

    values = activities.values() if isinstance(activities, dict) else activities
    keyed: dict[str, dict[str, Any]] = {}
    for activity in values:
        if not isinstance(activity, dict):
            continue
        activity_id = activity.get("_id")
        if not is_valid_id(activity_id) or activity_id in keyed:
            activity_id = random_id()
        activity["_id"] = activity_id
        keyed[activity_id] = activity
    system["activities"] = keyed
    return item


def ensure_effect_ids(item: dict[str, Any]) -> dict[str, Any]:
    """Give every effect a valid ``_id`` and repoint activity references."""
    effects = item.get("effects")
    if not isinstance(effects, list):
        item["effects"] = []
        return item

    renamed: dict[str, str] = {}
    seen: set[str] = set()
    for effect in effects:
        if not isinstance(effect, dict):
            continue
        old_id = effect.get("_id")
        if not is_valid_id(old_id) or old_id in seen:
            new_id = random_id()
            if isinstance(old_id, str) and old_id:
                renamed[old_id] = new_id
            effect["_id"] = new_id
        seen.add(effect["_id"])

    if renamed:
        _repoint_effect_refs(item, renamed)
    return item


def reassign_ids(item: dict[str, Any]) -> dict[str, Any]:
    """Give the item, its activities and its effects fresh ids.

    Used for records copied out of a source collection so repeated reuse of
    the same entity never produces duplicate ids. Activity to effect
    references are kept consistent.
    """
    item["_id"] = random_id()

    renamed: dict[str, str] = {}
    for effect in item.get("effects") or []:
        if isinstance(effect, dict):
            new_id = random_id()
            if effect.get("_id"):
                renamed[effect["_id"]] = new_id
            effect["_id"] = new_id

    system = item.setdefault("system", {})
    activities = system.get("activities")
    if activities:
        values = activities.values() if isinstance(activities, dict) else activities
        keyed: dict[str, dict[str, Any]] = {}
        for activity in values:
            if isinstance(activity, dict):
                activity_id = random_id()
                activity["_id"] = activity_id
                keyed[activity_id] = activity
        system["activities"] = keyed

    if renamed:
        _repoint_effect_refs(item, renamed)
    return item


def _repoint_effect_refs(item: dict[str, Any], renamed: dict[str, str]) -> None:
    activities = item.get("system", {}).get("activities") or {}
    for activity in activities.values() if isinstance(activities, dict) else activities:
        for ref in activity.get("effects") or []:
            if isinstance(ref, dict) and ref.get("_id") in renamed:
                ref["_id"] = renamed[ref["_id"]]


# =============================================================================
# Appearance & Equipment
# =============================================================================


def ensure_item_has_image(item: dict[str, Any]) -> dict[str, Any]:
    """Set a type-appropriate default icon when the item has none."""
    if not item.get("img"):
        item["img"] = DEFAULT_ITEM_ICONS.get(item.get("type", ""), FALLBACK_ITEM_ICON)
    return item


def is_armor(item: dict[str, Any]) -> bool:
    if item.get("type") != "equipment":
        return False
    system = item.get("system") or {}
    type_value = (system.get("type") or {}).get("value") if isinstance(system.get("type"), dict) else None
    return type_value in ARMOR_TYPES


def auto_equip_if_armor(item: dict[str, Any]) -> dict[str, Any]:
    """Mark armor and shields as equipped so they count toward AC."""
    if is_armor(item):
        item.setdefault("system", {})["equipped"] = True
    return item


# =============================================================================
# Sanitizing
# =============================================================================


def sanitize_custom_item(raw: dict[str, Any]) -> dict[str, Any]:
    """Reduce model output to a well-formed host item.

    Unknown top-level keys are dropped, the type is coerced to a known item
    type (``feat`` otherwise), the description is guaranteed and every item,
    activity and effect gets a valid id.

    Args:
        raw: A generated item.

    Returns:
        A new item dictionary; ``raw`` is not modified.
    """
    item = {key: copy.deepcopy(raw[key]) for key in _HOST_ITEM_KEYS if key in raw}

    name = str(item.get("name") or "").strip()
    item["name"] = name or "Unnamed Feature"
    if item.get("type") not in ITEM_TYPES:
        logger.debug("Coerced unknown item type", item=item["name"], item_type=item.get("type"))
        item["type"] = "feat"

    system = item.get("system")
    if not isinstance(system, dict):
        system = item["system"] = {}
    description = system.get("description")
    if isinstance(description, str):
        system["description"] = {"value": description}
    elif not isinstance(description, dict):
        system["description"] = {"value": ""}
    system["description"].setdefault("value", "")
    system.pop("activation", None)

    if not isinstance(item.get("flags"), dict):
        item["flags"] = {}

    ensure_item_has_id(item)
    ensure_activity_ids(item)
    ensure_effect_ids(item)
    return item


# =============================================================================
# Mutually Exclusive Options
# =============================================================================


def _option_key(item: dict[str, Any]) -> tuple[str, str] | None:
    """Return ``(group, option)`` if the item is one option of a group."""
    flags = (item.get("flags") or {}).get(FLAG_SCOPE) or {}
    group = flags.get("optionGroup")
    if group:
        return str(group), item.get("name", "")
    match = _OPTION_NAME.match(item.get("name") or "")
    if match:
        return match.group("base"), match.group("option")
    return None


def _merge_options(members: list[tuple[str, dict[str, Any]]], group: str) -> dict[str, Any]:
    first = copy.deepcopy(members[0][1])
    merged_activities: dict[str, dict[str, Any]] = {}
    merged_effects: list[dict[str, Any]] = []
    descriptions: list[str] = []

    for option, member in members:
        member = copy.deepcopy(member)
        ensure_activity_ids(member)
        ensure_effect_ids(member)
        for activity_id, activity in member["system"].get("activities", {}).items():
            if not activity.get("name"):
                activity["name"] = option
            merged_activities[activity_id] = activity
        merged_effects.extend(member.get("effects") or [])
        text = member["system"].get("description", {}).get("value", "")
        if text:
            descriptions.append(f"<p><strong>{option}.</strong> {text}</p>")

    first["name"] = group
    system = first.setdefault("system", {})
    system["activities"] = merged_activities
    system["description"] = {
        **(system.get("description") or {}),
        "value": "<p>Choose one of the following options:</p>\n" + "\n".join(descriptions),
    }
    first["effects"] = merged_effects
    scope = first.setdefault("flags", {}).setdefault(FLAG_SCOPE, {})
    scope["optionGroup"] = group
    scope["mergedOptions"] = [option for option, _ in members]
    return first


def normalize_mutually_exclusive_option_items(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Merge items that are alternative options of one feature.

    Two or more items sharing an ``optionGroup`` flag, or named
    ``"Base (Option)"`` with the same base, collapse into a single item named
    after the group whose activities are the union of the options. The
    merged item takes the position of the group's first member.

    Args:
        items: Custom items.

    Returns:
        A new list; untouched items are passed through as-is.
    """
    groups: dict[str, list[tuple[str, dict[str, Any]]]] = {}
    for item in items:
        key = _option_key(item)
        if key is None:
            continue
        group, option = key
        groups.setdefault(group, []).append((option, item))

    mergeable = {group for group, members in groups.items() if len(members) >= 2}

    result: list[dict[str, Any]] = []
    emitted: set[str] = set()
    for item in items:
        key = _option_key(item)
        if key is None or key[0] not in mergeable:
            result.append(item)
            continue
        group = key[0]
        if group in emitted:
            continue
        emitted.add(group)
        logger.info("Merged option items", group=group, options=len(groups[group]))
        result.append(_merge_options(groups[group], group))
    return result


__all__ = [
    "ensure_item_has_id",
    "ensure_activity_ids",
    "ensure_effect_ids",
    "reassign_ids",
    "ensure_item_has_image",
    "is_armor",
    "auto_equip_if_armor",
    "sanitize_custom_item",
    "normalize_mutually_exclusive_option_items",
]
