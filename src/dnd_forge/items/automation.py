"""Automation repair engine for generated items.

Generated items often get the host's automation data subtly wrong: a save
without an ability, an area without a size, an attack whose poison rider is
only described in prose. The engine inspects each item against a fixed set of
rules, repairs what can be inferred deterministically, and reports every
finding as a categorized warning.

The engine never mutates its input and is deterministic: the same item always
produces the same repaired item and the same warnings. Records it adds
(companion save activities) get ids derived from their parents.

Example:
    >>> engine = AutomationRepairEngine()
    >>> result = engine.repair(item)
    >>> [w.category for w in result.critical]
    [<WarningCategory.SAVE_ABILITY: 'save-ability'>]
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from dnd_forge.core.constants import (
    ABILITY_KEYS,
    ABILITY_NAMES,
    ACTIVITY_TYPES,
    CONSUMPTION_TARGET_TYPES,
    FLAG_SCOPE,
    RECOVERY_PERIODS,
    TEMPLATE_TYPES,
)
from dnd_forge.core.ids import derive_id
from dnd_forge.core.logging import get_logger


logger = get_logger(__name__)


# =============================================================================
# Warnings
# =============================================================================


class WarningCategory(StrEnum):
    """Kind of automation inconsistency found on an item."""

    ACTIVITY_TYPE = "activity-type"
    SAVE_ABILITY = "save-ability"
    DAMAGE_ON_SAVE = "damage-on-save"
    TEMPLATE_SIZE = "template-size"
    ONE_OF_CHOICE = "one-of-choice"
    MULTIPLE_EFFECTS = "multiple-effects"
    COMPANION_SAVE_RIDER = "companion-save-rider"
    ATTACK_FLAT = "attack-flat"
    CONSUMPTION = "consumption"
    EFFECT_REFERENCE = "effect-reference"
    EFFECT_CHANGE = "effect-change"
    USES = "uses"

    @property
    def critical(self) -> bool:
        """Whether the finding can break the item's automation at the table."""
        return self in CRITICAL_CATEGORIES


CRITICAL_CATEGORIES = frozenset({
    WarningCategory.ACTIVITY_TYPE,
    WarningCategory.SAVE_ABILITY,
    WarningCategory.DAMAGE_ON_SAVE,
    WarningCategory.TEMPLATE_SIZE,
    WarningCategory.ONE_OF_CHOICE,
    WarningCategory.MULTIPLE_EFFECTS,
    WarningCategory.COMPANION_SAVE_RIDER,
})


@dataclass(frozen=True)
class AutomationWarning:
    """A single finding.

    Attributes:
        category: What kind of inconsistency it is.
        message: Human-readable description.
        activity_id: The activity involved, if any.
    """

    category: WarningCategory
    message: str
    activity_id: str | None = None

    @property
    def critical(self) -> bool:
        return self.category.critical

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class RepairResult:
    """Repaired item plus the findings that led to each repair."""

    item: dict[str, Any]
    warnings: tuple[AutomationWarning, ...] = field(default_factory=tuple)

    @property
    def critical(self) -> tuple[AutomationWarning, ...]:
        return tuple(warning for warning in self.warnings if warning.critical)


# =============================================================================
# Text Inference
# =============================================================================

_ABILITY_WORDS = "|".join(ABILITY_NAMES)
_SAVE_TEXT = re.compile(rf"\b({_ABILITY_WORDS})\s+saving\s+throw", re.IGNORECASE)
_DC_TEXT = re.compile(r"\bDC\s*(\d+)", re.IGNORECASE)
_TEMPLATE_TEXT = re.compile(
    r"(\d+)[- ](?:foot|feet|ft\.?)[- ](?:radius\s+)?(cone|sphere|cube|cylinder|line|radius|circle|square|wall)",
    re.IGNORECASE,
)
_RECHARGE_NAME = re.compile(r"\(\s*recharge\s+(\d)(?:\s*[-\u2013\u2014]\s*6)?\s*\)", re.IGNORECASE)
_CHOICE_TEXT = re.compile(r"\b(?:choose|chooses|choice of)\s+one\b|\bone of the following\b", re.IGNORECASE)
_TAG_PATTERN = re.compile(r"<[^>]+>")


def _plain(text: Any) -> str:
    return _TAG_PATTERN.sub(" ", text) if isinstance(text, str) else ""


def infer_save_abilities(text: str) -> list[str]:
    """Ability keys named in ``<Ability> saving throw`` phrases, in order."""
    found: list[str] = []
    for match in _SAVE_TEXT.finditer(text):
        key = ABILITY_NAMES[match.group(1).lower()]
        if key not in found:
            found.append(key)
    return found


def infer_dc(text: str) -> str | None:
    match = _DC_TEXT.search(text)
    return match.group(1) if match else None


def infer_template(text: str) -> tuple[int, str] | None:
    """Size in feet and template type from phrases like ``15-foot cone``."""
    match = _TEMPLATE_TEXT.search(text)
    if not match:
        return None
    template_type = match.group(2).lower()
    if template_type == "circle":
        template_type = "radius"
    return int(match.group(1)), template_type


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


# =============================================================================
# Engine
# =============================================================================


class _Findings:
    """Accumulates warnings for one repair pass."""

    def __init__(self, item_name: str) -> None:
        self.item_name = item_name
        self.warnings: list[AutomationWarning] = []

    def add(self, category: WarningCategory, message: str, activity_id: str | None = None) -> None:
        self.warnings.append(AutomationWarning(category, f"{self.item_name}: {message}", activity_id))


class AutomationRepairEngine:
    """Checks and repairs activity and effect data on host items."""

    def repair(self, item: dict[str, Any]) -> RepairResult:
        """Repair a single item.

        Args:
            item: Host-shaped item. Not modified.

        Returns:
            RepairResult with a repaired deep copy and the findings. Critical
            findings are also recorded on the item's flags.
        """
        repaired = copy.deepcopy(item)
        findings = _Findings(repaired.get("name") or "Unnamed")
        system = repaired.setdefault("system", {})

        activities = system.get("activities")
        if isinstance(activities, list):
            system["activities"] = {
                activity.get("_id") or derive_id(repaired.get("_id", ""), "activity", str(index)): activity
                for index, activity in enumerate(activities)
                if isinstance(activity, dict)
            }
        elif not isinstance(activities, dict):
            system["activities"] = {}
        activities = system["activities"]

        item_text = _plain(system.get("description", {}).get("value"))
        effects = repaired.get("effects")
        if not isinstance(effects, list):
            effects = repaired["effects"] = []

        self._check_uses(repaired, findings)
        self._check_effect_changes(effects, findings)
        self._check_conflicting_effects(effects, findings)

        effect_ids = {effect.get("_id") for effect in effects if isinstance(effect, dict)}
        additions: dict[str, dict[str, Any]] = {}
        for activity_id in list(activities):
            activity = activities[activity_id]
            text = " ".join(filter(None, [
                _plain((activity.get("description") or {}).get("value")),
                _plain((activity.get("description") or {}).get("chatFlavor")),
                item_text,
            ]))
            self._check_activity_type(activity_id, activity, findings)
            if activity.get("type") == "save":
                self._check_save(activity_id, activity, text, findings)
            if activity.get("type") == "attack":
                self._check_attack(activity_id, activity, findings)
                rider = self._companion_rider(repaired, activity_id, activity, text, activities, findings)
                if rider is not None:
                    additions[rider["_id"]] = rider
            self._check_template(activity_id, activity, text, findings)
            self._check_consumption(activity_id, activity, repaired, findings)
            self._check_effect_refs(activity_id, activity, effects, effect_ids, findings)
            self._check_choice(activity_id, activity, text, findings)

        activities.update(additions)
        self._flag_critical(repaired, findings.warnings)

        if findings.warnings:
            logger.info(
                "Automation repairs applied",
                item=repaired.get("name"),
                warnings=len(findings.warnings),
                critical=sum(1 for warning in findings.warnings if warning.critical),
            )
        return RepairResult(item=repaired, warnings=tuple(findings.warnings))

    # -------------------------------------------------------------------------
    # Activity rules
    # -------------------------------------------------------------------------

    @staticmethod
    def _infer_activity_type(activity: dict[str, Any]) -> str:
        spell = activity.get("spell")
        if isinstance(spell, dict) and spell.get("uuid"):
            return "cast"
        if isinstance(activity.get("save"), dict) and activity["save"].get("ability"):
            return "save"
        if isinstance(activity.get("attack"), dict):
            return "attack"
        if isinstance(activity.get("healing"), dict) and activity["healing"].get("number"):
            return "heal"
        damage = activity.get("damage")
        if isinstance(damage, dict) and damage.get("parts"):
            return "damage"
        return "utility"

    def _check_activity_type(self, activity_id: str, activity: dict[str, Any], findings: _Findings) -> None:
        declared = activity.get("type")
        inferred = self._infer_activity_type(activity)
        if declared not in ACTIVITY_TYPES:
            activity["type"] = inferred
            findings.add(
                WarningCategory.ACTIVITY_TYPE,
                f"activity.type {declared!r} is not a known type; inferred {inferred!r}",
                activity_id,
            )
        elif declared in ("utility", "damage") and inferred in ("save", "attack"):
            activity["type"] = inferred
            findings.add(
                WarningCategory.ACTIVITY_TYPE,
                f"activity.type {declared!r} does not match its {inferred} data; changed to {inferred!r}",
                activity_id,
            )

    def _check_save(self, activity_id: str, activity: dict[str, Any], text: str, findings: _Findings) -> None:
        save = activity.get("save")
        if not isinstance(save, dict):
            save = activity["save"] = {}

        ability = save.get("ability")
        if isinstance(ability, str):
            ability = [ability]
        ability = [key for key in (ability or []) if key in ABILITY_KEYS]
        if not ability:
            inferred = infer_save_abilities(text)
            ability = inferred or ["dex"]
            findings.add(
                WarningCategory.SAVE_ABILITY,
                f"activity.save.ability missing; set to {ability}"
                + ("" if inferred else " (default, not found in text)"),
                activity_id,
            )
        save["ability"] = ability

        dc = save.get("dc")
        if not isinstance(dc, dict):
            dc = save["dc"] = {} if dc is None else {"formula": str(dc)}
        if not dc.get("calculation") and not str(dc.get("formula") or "").strip():
            inferred_dc = infer_dc(text)
            if inferred_dc:
                dc.update({"calculation": "", "formula": inferred_dc})
                message = f"activity.save.dc missing; set to {inferred_dc} from text"
            else:
                dc.update({"calculation": "spellcasting", "formula": ""})
                message = "activity.save.dc missing; using spellcasting DC"
            findings.add(WarningCategory.SAVE_ABILITY, message, activity_id)

        damage = activity.get("damage")
        if not isinstance(damage, dict):
            damage = activity["damage"] = {"parts": []}
        if damage.get("onSave") not in ("half", "none", "full"):
            on_save = "half" if damage.get("parts") else "none"
            damage["onSave"] = on_save
            findings.add(
                WarningCategory.DAMAGE_ON_SAVE,
                f"damage.onSave missing; set to {on_save!r}",
                activity_id,
            )

    def _check_attack(self, activity_id: str, activity: dict[str, Any], findings: _Findings) -> None:
        attack = activity.get("attack")
        if not isinstance(attack, dict):
            attack = activity["attack"] = {}
        if not isinstance(attack.get("flat"), bool):
            attack["flat"] = False
            findings.add(
                WarningCategory.ATTACK_FLAT,
                "attack.flat missing or not boolean; set to false",
                activity_id,
            )

    def _companion_rider(
        self,
        item: dict[str, Any],
        activity_id: str,
        activity: dict[str, Any],
        text: str,
        activities: dict[str, dict[str, Any]],
        findings: _Findings,
    ) -> dict[str, Any] | None:
        """Build a save activity for an on-hit saving throw described in text."""
        abilities = infer_save_abilities(text)
        if not abilities:
            return None
        if any(other.get("type") == "save" for other in activities.values()):
            return None

        rider_id = derive_id(item.get("_id", ""), activity_id, "save-rider")
        dc = infer_dc(text)
        findings.add(
            WarningCategory.COMPANION_SAVE_RIDER,
            f"attack describes a {'/'.join(abilities)} save rider; added companion save activity",
            activity_id,
        )
        return {
            "_id": rider_id,
            "type": "save",
            "name": f"{activity.get('name') or item.get('name', 'Attack')} (Save)",
            "activation": copy.deepcopy(activity.get("activation") or {"type": "special"}),
            "save": {
                "ability": abilities,
                "dc": {"calculation": "", "formula": dc} if dc else {"calculation": "spellcasting", "formula": ""},
            },
            "damage": {"onSave": "none", "parts": []},
            "effects": copy.deepcopy(activity.get("effects") or []),
            "description": {"value": ""},
        }

    def _check_template(self, activity_id: str, activity: dict[str, Any], text: str, findings: _Findings) -> None:
        target = activity.get("target")
        template = target.get("template") if isinstance(target, dict) else None
        if not isinstance(template, dict) or not template.get("type"):
            return

        size = _as_number(template.get("size"))
        if template.get("type") in TEMPLATE_TYPES and size is not None and size > 0:
            return

        inferred = infer_template(text)
        if inferred is not None:
            template["size"] = str(inferred[0])
            template.setdefault("units", "ft")
            if template.get("type") not in TEMPLATE_TYPES:
                template["type"] = inferred[1]
            findings.add(
                WarningCategory.TEMPLATE_SIZE,
                f"template size missing; set to {inferred[0]} ft from text",
                activity_id,
            )
        else:
            target["template"] = {"contiguous": False, "units": "ft"}
            findings.add(
                WarningCategory.TEMPLATE_SIZE,
                "template size missing and not found in text; template cleared",
                activity_id,
            )

    def _check_consumption(
        self,
        activity_id: str,
        activity: dict[str, Any],
        item: dict[str, Any],
        findings: _Findings,
    ) -> None:
        consumption = activity.get("consumption")
        if not isinstance(consumption, dict):
            return
        targets = consumption.get("targets")
        if not isinstance(targets, list):
            consumption["targets"] = []
            return

        kept: list[dict[str, Any]] = []
        for target in targets:
            if not isinstance(target, dict) or target.get("type") not in CONSUMPTION_TARGET_TYPES:
                findings.add(
                    WarningCategory.CONSUMPTION,
                    f"dropped consumption target with unknown type {target.get('type') if isinstance(target, dict) else target!r}",
                    activity_id,
                )
                continue
            target["value"] = str(target.get("value") or "1")
            if target["type"] == "itemUses" and not _max_of(item.get("system", {}).get("uses")):
                item["system"]["uses"] = {**_dict_of(item["system"].get("uses")), "max": "1", "spent": 0}
                item["system"]["uses"].setdefault("recovery", [{"period": "day", "type": "recoverAll"}])
                findings.add(
                    WarningCategory.CONSUMPTION,
                    "consumes item uses but the item has none; set uses.max to 1",
                    activity_id,
                )
            if target["type"] == "activityUses" and not _max_of(activity.get("uses")):
                activity["uses"] = {**_dict_of(activity.get("uses")), "max": "1", "spent": 0}
                activity["uses"].setdefault("recovery", [{"period": "day", "type": "recoverAll"}])
                findings.add(
                    WarningCategory.CONSUMPTION,
                    "consumes activity uses but the activity has none; set uses.max to 1",
                    activity_id,
                )
            kept.append(target)
        consumption["targets"] = kept

    def _check_effect_refs(
        self,
        activity_id: str,
        activity: dict[str, Any],
        effects: list[dict[str, Any]],
        effect_ids: set[Any],
        findings: _Findings,
    ) -> None:
        refs = activity.get("effects")
        if not refs:
            return
        if not isinstance(refs, list):
            activity["effects"] = []
            return

        by_name = {str(effect.get("name", "")).lower(): effect.get("_id") for effect in effects}
        resolved: list[dict[str, Any]] = []
        for ref in refs:
            ref_id = ref.get("_id") if isinstance(ref, dict) else ref
            if ref_id in effect_ids:
                resolved.append(ref if isinstance(ref, dict) else {"_id": ref_id})
                continue
            match = by_name.get(str(ref_id).lower()) if ref_id else None
            if match:
                resolved.append({**(ref if isinstance(ref, dict) else {}), "_id": match})
                findings.add(
                    WarningCategory.EFFECT_REFERENCE,
                    f"effect reference {ref_id!r} matched by name",
                    activity_id,
                )
            else:
                findings.add(
                    WarningCategory.EFFECT_REFERENCE,
                    f"dropped effect reference {ref_id!r} that matches no effect",
                    activity_id,
                )
        activity["effects"] = resolved

    def _check_choice(self, activity_id: str, activity: dict[str, Any], text: str, findings: _Findings) -> None:
        refs = activity.get("effects") or []
        if len(refs) > 1 and _CHOICE_TEXT.search(text):
            findings.add(
                WarningCategory.ONE_OF_CHOICE,
                f"one-of choice applies {len(refs)} effects at once; split into separate activities",
                activity_id,
            )

    # -------------------------------------------------------------------------
    # Item rules
    # -------------------------------------------------------------------------

    def _check_uses(self, item: dict[str, Any], findings: _Findings) -> None:
        system = item["system"]
        recharge = _RECHARGE_NAME.search(item.get("name") or "")
        uses = system.get("uses")

        if recharge:
            uses = system["uses"] = uses if isinstance(uses, dict) else {}
            recovery = uses.get("recovery") or []
            if not any(isinstance(r, dict) and r.get("period") == "recharge" for r in recovery):
                uses["recovery"] = [{"period": "recharge", "formula": recharge.group(1), "type": "recoverAll"}]
                uses["max"] = "1"
                uses.setdefault("spent", 0)
                findings.add(
                    WarningCategory.USES,
                    f"name declares Recharge {recharge.group(1)}-6; added recharge recovery",
                )

        if not isinstance(uses, dict):
            return

        max_value = uses.get("max")
        if isinstance(max_value, (int, float)) and not isinstance(max_value, bool):
            uses["max"] = str(int(max_value))
            findings.add(WarningCategory.USES, "uses.max converted to a string formula")
        elif max_value is None:
            uses["max"] = ""

        recovery = uses.get("recovery")
        if recovery is None:
            uses["recovery"] = []
        elif isinstance(recovery, list):
            valid = [r for r in recovery if isinstance(r, dict) and r.get("period") in RECOVERY_PERIODS]
            if len(valid) != len(recovery):
                findings.add(WarningCategory.USES, "dropped uses.recovery entries with unknown periods")
            uses["recovery"] = valid
        else:
            uses["recovery"] = []
            findings.add(WarningCategory.USES, "uses.recovery was not a list; cleared")

    def _check_effect_changes(self, effects: list[dict[str, Any]], findings: _Findings) -> None:
        for effect in effects:
            if not isinstance(effect, dict):
                continue
            changes = effect.get("changes")
            if not isinstance(changes, list):
                effect["changes"] = []
                continue
            kept: list[dict[str, Any]] = []
            for change in changes:
                if not isinstance(change, dict) or not change.get("key"):
                    findings.add(
                        WarningCategory.EFFECT_CHANGE,
                        f"effect {effect.get('name')!r} dropped a change without key",
                    )
                    continue
                mode = change.get("mode")
                if isinstance(mode, bool) or not isinstance(mode, int) or not 0 <= mode <= 5:
                    change["mode"] = 2
                    findings.add(
                        WarningCategory.EFFECT_CHANGE,
                        f"effect {effect.get('name')!r} change {change['key']!r} had invalid mode; set to 2",
                    )
                if not isinstance(change.get("value"), str):
                    change["value"] = "" if change.get("value") is None else str(change["value"])
                    findings.add(
                        WarningCategory.EFFECT_CHANGE,
                        f"effect {effect.get('name')!r} change {change['key']!r} value converted to string",
                    )
                kept.append(change)
            effect["changes"] = kept

    def _check_conflicting_effects(self, effects: list[dict[str, Any]], findings: _Findings) -> None:
        """Disable later effects that override a key with a different value."""
        overrides: dict[str, str] = {}
        for effect in effects:
            if not isinstance(effect, dict) or effect.get("disabled"):
                continue
            conflict = None
            for change in effect.get("changes") or []:
                if change.get("mode") != 5:
                    continue
                previous = overrides.get(change["key"])
                if previous is not None and previous != change.get("value"):
                    conflict = change["key"]
                    break
            if conflict:
                effect["disabled"] = True
                findings.add(
                    WarningCategory.MULTIPLE_EFFECTS,
                    f"multiple effects override {conflict!r}; disabled {effect.get('name')!r}",
                )
                continue
            for change in effect.get("changes") or []:
                if change.get("mode") == 5:
                    overrides.setdefault(change["key"], change.get("value"))

    @staticmethod
    def _flag_critical(item: dict[str, Any], warnings: list[AutomationWarning]) -> None:
        critical = [warning for warning in warnings if warning.critical]
        if not critical:
            return
        flags = item.get("flags")
        if not isinstance(flags, dict):
            flags = item["flags"] = {}
        scope = flags.setdefault(FLAG_SCOPE, {})
        scope["criticalAutomationWarnings"] = [warning.message for warning in critical]
        scope["criticalAutomationCategories"] = sorted({warning.category.value for warning in critical})


def _max_of(uses: Any) -> bool:
    return isinstance(uses, dict) and bool(str(uses.get("max") or "").strip())


def _dict_of(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


__all__ = [
    "WarningCategory",
    "CRITICAL_CATEGORIES",
    "AutomationWarning",
    "RepairResult",
    "AutomationRepairEngine",
    "infer_save_abilities",
    "infer_dc",
    "infer_template",
]
