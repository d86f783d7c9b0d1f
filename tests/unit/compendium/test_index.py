"""Tests for the content index."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import pytest

from dnd_forge.compendium.index import ContentIndex, make_uuid, parse_uuid
from dnd_forge.core.exceptions import CompendiumError
from dnd_forge.storage.memory import InMemoryCollection


class BrokenCollection:
    collection_id = "dnd5e.spells"

    async def get_index(self, fields: Sequence[str]) -> list[dict[str, Any]]:
        raise RuntimeError("pack locked")

    async def get_full_record(self, local_id: str) -> dict[str, Any] | None:
        return None


class TestUuids:
    """Tests for reference handle helpers."""

    def test_round_trip(self) -> None:
        """Test a built handle parses back into pack and id."""
        uuid = make_uuid("dnd5e.spells", "abc")

        assert uuid == "Compendium.dnd5e.spells.Item.abc"
        assert parse_uuid(uuid) == ("dnd5e.spells", "abc")

    @pytest.mark.parametrize("value", ["Actor.abc", "Compendium.x", "Item.a.b.c"])
    def test_not_a_handle(self, value: str) -> None:
        """Test non-collection handles are rejected."""
        assert parse_uuid(value) is None


class TestBuild:
    """Tests for lazy, single-flight index construction."""

    async def test_built_once(
        self,
        content_index: ContentIndex,
        collections: dict[str, InMemoryCollection],
    ) -> None:
        """Test concurrent first lookups share a single build."""
        await asyncio.gather(*(content_index.search("Fire") for _ in range(5)))
        await content_index.search("Shield")

        assert content_index.build_count == 1
        assert collections["dnd5e.spells"].index_calls == 1

    async def test_not_built_until_used(self, content_index: ContentIndex) -> None:
        """Test construction does not read the collections."""
        assert content_index.is_built is False

        await content_index.ensure_built()

        assert content_index.is_built is True

    async def test_allow_list_filters_types(self, collections: dict[str, InMemoryCollection]) -> None:
        """Test entries outside a collection's allowed types are skipped."""
        collections["dnd5e.monsterfeatures"].add({"_id": "mfWeapon00000001", "name": "Claw", "type": "weapon"})
        index = ContentIndex(collections)

        assert await index.search("Claw") == []

    async def test_missing_collection_skipped(self, spell_records: list[dict[str, Any]]) -> None:
        """Test absent collections are logged and ignored."""
        index = ContentIndex([InMemoryCollection("dnd5e.spells", spell_records)])

        entries = await index.ensure_built()

        assert {entry.pack for entry in entries} == {"dnd5e.spells"}

    async def test_collection_failure(self) -> None:
        """Test a failing collection aborts the build."""
        index = ContentIndex({"dnd5e.spells": BrokenCollection()})

        with pytest.raises(CompendiumError) as exc_info:
            await index.ensure_built()

        assert exc_info.value.details["collection_id"] == "dnd5e.spells"


class TestSearch:
    """Tests for tiered search."""

    async def test_exact_tier_wins(self, content_index: ContentIndex) -> None:
        """Test an exact match hides the weaker tiers."""
        matches = await content_index.search("FIREBALL")

        assert [entry.name for entry in matches] == ["Fireball"]

    async def test_prefix_tier(self, content_index: ContentIndex) -> None:
        """Test prefix matches keep collection order."""
        matches = await content_index.search("fire", ("spell",))

        assert [entry.name for entry in matches] == ["Fire Bolt", "Fireball", "Fire Shield"]

    async def test_contains_tier(self, content_index: ContentIndex) -> None:
        """Test substring matches."""
        matches = await content_index.search("bolt")

        assert [entry.name for entry in matches] == ["Fire Bolt"]

    async def test_reverse_tier_longest_first(self, content_index: ContentIndex) -> None:
        """Test names contained in the query rank longest first."""
        matches = await content_index.search("Cast a Fire Shield with a Shield")

        assert [entry.name for entry in matches] == ["Fire Shield", "Shield"]

    async def test_type_filter(self, content_index: ContentIndex) -> None:
        """Test results are restricted to the requested types."""
        assert await content_index.search("Shield", ("spell",)) != []
        assert [entry.type for entry in await content_index.search("Shield", ("equipment",))] == ["equipment"]

    @pytest.mark.parametrize("query", [None, "", "   "])
    async def test_blank_query(self, content_index: ContentIndex, query: str | None) -> None:
        """Test blank queries find nothing."""
        assert await content_index.search(query) == []

    async def test_no_match(self, content_index: ContentIndex) -> None:
        """Test unrelated names find nothing."""
        assert await content_index.search("Tentacle Lash") == []


class TestLookups:
    """Tests for record retrieval."""

    async def test_get_spell_uuid(self, content_index: ContentIndex) -> None:
        """Test spell handles are resolved by name."""
        assert await content_index.get_spell_uuid("Misty Step") == "Compendium.dnd5e.spells.Item.spMistyStep00001"
        assert await content_index.get_spell_uuid("Wish") is None
        assert await content_index.get_spell_uuid(None) is None

    async def test_from_uuid_is_detached(self, content_index: ContentIndex) -> None:
        """Test fetched records can be mutated freely."""
        uuid = "Compendium.dnd5e.items.Item.itScimitar000001"

        record = await content_index.from_uuid(uuid)
        record["name"] = "Changed"

        again = await content_index.from_uuid(uuid)
        assert again["name"] == "Scimitar"

    async def test_from_uuid_unknown(self, content_index: ContentIndex) -> None:
        """Test unknown handles resolve to None."""
        assert await content_index.from_uuid("Compendium.dnd5e.items.Item.nope") is None
        assert await content_index.from_uuid("Compendium.other.pack.Item.x") is None
        assert await content_index.from_uuid("not-a-handle") is None

    async def test_entry_for_uuid(self, content_index: ContentIndex) -> None:
        """Test index entries are found by handle."""
        entry = await content_index.entry_for_uuid("Compendium.dnd5e.spells.Item.spFireball000001")

        assert entry is not None
        assert entry.name == "Fireball"
        assert entry.local_id == "spFireball000001"

    async def test_find_entry(self, content_index: ContentIndex) -> None:
        """Test the best match for an item's name and type is fetched."""
        record = await content_index.find_entry({"name": "scimitar", "type": "weapon"})

        assert record is not None
        assert record["_id"] == "itScimitar000001"

    async def test_get_all(self, content_index: ContentIndex) -> None:
        """Test listing every entry of a type."""
        spells = await content_index.get_all("spell")

        assert len(spells) == 5
