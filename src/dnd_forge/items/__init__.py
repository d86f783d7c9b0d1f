"""Item utilities and the automation repair engine."""

from __future__ import annotations

from dnd_forge.items.automation import (
    CRITICAL_CATEGORIES,
    AutomationRepairEngine,
    AutomationWarning,
    RepairResult,
    WarningCategory,
)
from dnd_forge.items.utils import (
    auto_equip_if_armor,
    ensure_activity_ids,
    ensure_effect_ids,
    ensure_item_has_id,
    ensure_item_has_image,
    normalize_mutually_exclusive_option_items,
    reassign_ids,
    sanitize_custom_item,
)


__all__ = [
    # Repair
    "AutomationRepairEngine",
    "AutomationWarning",
    "RepairResult",
    "WarningCategory",
    "CRITICAL_CATEGORIES",
    # Utilities
    "sanitize_custom_item",
    "ensure_item_has_id",
    "ensure_activity_ids",
    "ensure_effect_ids",
    "reassign_ids",
    "ensure_item_has_image",
    "auto_equip_if_armor",
    "normalize_mutually_exclusive_option_items",
]
