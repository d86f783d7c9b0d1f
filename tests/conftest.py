"""Pytest configuration and shared fixtures.

This module provides common fixtures for the DnD Forge test suite: a
scripted generation backend, in-memory source collections and host store,
and sample Blueprint data.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pytest

from dnd_forge.agents.prompts import (
    ADJUSTMENT_SYSTEM_PROMPT,
    ARCHITECT_SYSTEM_PROMPT,
    ARTIFICER_SYSTEM_PROMPT,
    BLACKSMITH_SYSTEM_PROMPT,
    QUARTERMASTER_SYSTEM_PROMPT,
)
from dnd_forge.backends.base import GeneratedImage
from dnd_forge.compendium.index import ContentIndex
from dnd_forge.storage.memory import InMemoryCollection, InMemoryEntityStore


if TYPE_CHECKING:
    from collections.abc import Generator

    from dnd_forge.core.cancellation import CancellationToken


AGENT_PROMPTS = {
    "architect": ARCHITECT_SYSTEM_PROMPT,
    "adjustment": ADJUSTMENT_SYSTEM_PROMPT,
    "quartermaster": QUARTERMASTER_SYSTEM_PROMPT,
    "blacksmith": BLACKSMITH_SYSTEM_PROMPT,
    "artificer": ARTIFICER_SYSTEM_PROMPT,
}


# =============================================================================
# Fakes
# =============================================================================


class ScriptedBackend:
    """GenerationBackend replaying canned responses.

    Responses are strings (returned as-is), exceptions (raised), callables
    (called with the prompt) or JSON-serializable values (dumped). Queues
    keyed by agent name are used when the prompt starts with that agent's
    system prompt; everything else comes from the shared queue.

    Attributes:
        calls: ``(agent, prompt, constraint)`` for every call, in order.
    """

    def __init__(
        self,
        responses: list[Any] | None = None,
        *,
        by_agent: dict[str, list[Any]] | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.by_agent = {name: list(queue) for name, queue in (by_agent or {}).items()}
        self.calls: list[tuple[str | None, str, dict[str, Any]]] = []

    @staticmethod
    def agent_for(prompt: str) -> str | None:
        return next((name for name, system in AGENT_PROMPTS.items() if prompt.startswith(system)), None)

    def prompts_for(self, agent: str) -> list[str]:
        return [prompt for name, prompt, _ in self.calls if name == agent]

    async def call(
        self,
        prompt: str,
        constraint: dict[str, Any],
        cancel: CancellationToken | None = None,
    ) -> str:
        if cancel is not None:
            cancel.raise_if_cancelled("generation")
        agent = self.agent_for(prompt)
        self.calls.append((agent, prompt, constraint))

        queue = self.by_agent[agent] if agent in self.by_agent else self.responses
        if not queue:
            raise AssertionError(f"No scripted response left for {agent or 'shared queue'}")
        response = queue.pop(0)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(prompt)
        return response if isinstance(response, str) else json.dumps(response)


class FakeImageBackend:
    """ImageBackend returning fixed bytes, optionally failing."""

    def __init__(self, mime: str = "image/png", error: Exception | None = None) -> None:
        self.mime = mime
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt: str, size: str, cancel: CancellationToken | None = None) -> GeneratedImage:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return GeneratedImage(data=b"\x89PNG-fake", mime=self.mime)


class FakeContentStore:
    """ContentStore recording uploads in memory."""

    def __init__(self) -> None:
        self.directories: list[str] = []
        self.uploads: dict[str, bytes] = {}

    async def ensure_directory(self, directory: str) -> None:
        self.directories.append(directory)

    async def upload(self, data: bytes, directory: str, filename: str) -> str:
        path = f"{directory}/{filename}"
        self.uploads[path] = data
        return path


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> Generator[None, None, None]:
    """Run each test from an empty directory with a fresh settings cache."""
    from dnd_forge.core.config import clear_settings_cache
    from dnd_forge.storage.database import reset_database

    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    reset_database()
    yield
    clear_settings_cache()
    reset_database()


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set up mock environment variables for testing.

    Returns:
        Dictionary of environment variables that were set.
    """
    env_vars = {
        "DND_FORGE_OPENROUTER_API_KEY": "test-openrouter-key",
        "DND_FORGE_OPENAI_API_KEY": "test-openai-key",
        "DND_FORGE_DEBUG": "true",
        "DND_FORGE_LOG_LEVEL": "DEBUG",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


# =============================================================================
# Backend Fixtures
# =============================================================================


@pytest.fixture
def make_backend() -> Callable[..., ScriptedBackend]:
    """Factory for scripted generation backends."""
    return ScriptedBackend


@pytest.fixture
def image_backend() -> FakeImageBackend:
    return FakeImageBackend()


@pytest.fixture
def content_store() -> FakeContentStore:
    return FakeContentStore()


@pytest.fixture
def host_store() -> InMemoryEntityStore:
    return InMemoryEntityStore()


# =============================================================================
# Content Fixtures
# =============================================================================


def make_item(name: str, item_type: str = "feat", **system: Any) -> dict[str, Any]:
    """A minimal host item record."""
    return {
        "name": name,
        "type": item_type,
        "img": f"icons/{item_type}.webp",
        "system": {"description": {"value": f"<p>{name}.</p>"}, **system},
        "effects": [],
        "flags": {},
    }


@pytest.fixture
def spell_records() -> list[dict[str, Any]]:
    return [
        {**make_item("Fire Bolt", "spell", level=0), "_id": "spFireBolt000001"},
        {**make_item("Fireball", "spell", level=3), "_id": "spFireball000001"},
        {**make_item("Fire Shield", "spell", level=4), "_id": "spFireShield0001"},
        {**make_item("Mage Hand", "spell", level=0), "_id": "spMageHand000001"},
        {**make_item("Misty Step", "spell", level=2), "_id": "spMistyStep00001"},
    ]


@pytest.fixture
def item_records() -> list[dict[str, Any]]:
    return [
        {**make_item("Scimitar", "weapon"), "_id": "itScimitar000001"},
        {**make_item("Longsword", "weapon"), "_id": "itLongsword00001"},
        {
            **make_item("Shield", "equipment", type={"value": "shield"}, armor={"value": 2}),
            "_id": "itShield00000001",
        },
        {**make_item("Rope, Hempen", "loot"), "_id": "itRope0000000001"},
    ]


@pytest.fixture
def feature_records() -> list[dict[str, Any]]:
    return [
        {**make_item("Pack Tactics"), "_id": "mfPackTactics001"},
        {**make_item("Nimble Escape"), "_id": "mfNimbleEscape01"},
        {**make_item("Keen Smell"), "_id": "mfKeenSmell00001"},
    ]


@pytest.fixture
def collections(
    spell_records: list[dict[str, Any]],
    item_records: list[dict[str, Any]],
    feature_records: list[dict[str, Any]],
) -> dict[str, InMemoryCollection]:
    return {
        "dnd5e.spells": InMemoryCollection("dnd5e.spells", spell_records),
        "dnd5e.items": InMemoryCollection("dnd5e.items", item_records),
        "dnd5e.monsterfeatures": InMemoryCollection("dnd5e.monsterfeatures", feature_records),
    }


@pytest.fixture
def content_index(collections: dict[str, InMemoryCollection]) -> ContentIndex:
    return ContentIndex(collections)


# =============================================================================
# Blueprint Fixtures
# =============================================================================


@pytest.fixture
def blueprint_data() -> dict[str, Any]:
    """Architect output for a small spellcasting goblin."""
    return {
        "name": "Snikkit Emberfang",
        "type": "Humanoid",
        "cr": 2,
        "size": "sm",
        "alignment": "chaotic evil",
        "stats": {
            "abilities": {"str": 8, "dex": 16, "con": 12, "int": 14, "wis": 10, "cha": 13},
            "ac": 15,
            "hp": 27,
            "movement": {"walk": 30},
        },
        "saves": ["dex", "int"],
        "skills": ["Stealth", "Arcana"],
        "senses": {"darkvision": 60},
        "languages": ["Common", "Goblin"],
        "resistances": ["fire"],
        "immunities": [],
        "condition_immunities": [],
        "biography": "<p>A goblin who stole fire from a salamander.</p>",
        "behavior": "Strikes from hiding, then flees.",
        "appearance": "Scorched leathers and smouldering eyes.",
        "twist": "Secretly fears the dark.",
        "habitat": "Volcanic caves",
        "features": [
            {"name": "Nimble Escape", "description": "Disengage or Hide as a bonus action.", "type": "other"},
            {
                "name": "Cinder Burst",
                "description": "Snikkit Emberfang releases a 10-foot radius of embers. "
                "Dexterity saving throw DC 13.",
                "type": "other",
            },
        ],
        "equipment": [
            {"name": "Scimitar", "type": "weapon", "description": "A curved blade."},
        ],
        "spellcasting": {
            "ability": "int",
            "spells": {
                "atWill": ["Fire Bolt", "Mage Hand"],
                "perDay": [{"spell": "Fireball", "uses": 1}, {"spell": "Misty Step", "uses": 2}],
            },
        },
    }


@pytest.fixture
def blueprint(blueprint_data: dict[str, Any]) -> Any:
    from dnd_forge.models.blueprint import Blueprint

    return Blueprint.model_validate(blueprint_data)


@pytest.fixture
def cinder_burst_item() -> dict[str, Any]:
    """Blacksmith output for the custom Cinder Burst feature."""
    return {
        "name": "Cinder Burst",
        "type": "feat",
        "system": {
            "description": {
                "value": "<p>Snikkit Emberfang releases a 10-foot radius of embers. "
                "Each creature must make a Dexterity saving throw (DC 13), taking "
                "2d6 fire damage on a failure.</p>",
            },
            "activities": [
                {
                    "type": "save",
                    "name": "Burst",
                    "damage": {"parts": [{"number": 2, "denomination": 6, "types": ["fire"]}]},
                },
            ],
        },
        "effects": [],
    }
