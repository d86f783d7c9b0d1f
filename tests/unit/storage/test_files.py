"""Tests for the filesystem content store and in-memory stores."""

from __future__ import annotations

from pathlib import Path

import pytest

from dnd_forge.core.exceptions import StorageError
from dnd_forge.storage import InMemoryEntityStore, LocalContentStore, normalize_directory


class TestNormalizeDirectory:
    """Tests for normalize_directory."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("ai-images", "ai-images"),
            ("/ai-images/", "ai-images"),
            ("ai-images//portraits", "ai-images/portraits"),
            ("ai-images\\portraits\\", "ai-images/portraits"),
            ("", ""),
        ],
    )
    def test_forms(self, raw: str, expected: str) -> None:
        """Test separators and slashes are normalized."""
        assert normalize_directory(raw) == expected


class TestLocalContentStore:
    """Tests for LocalContentStore."""

    async def test_ensure_directory_idempotent(self, tmp_path: Path) -> None:
        """Test nested directories are created once and can be re-ensured."""
        store = LocalContentStore(tmp_path / "content")

        await store.ensure_directory("ai-images/portraits")
        await store.ensure_directory("/ai-images//portraits/")

        assert (tmp_path / "content" / "ai-images" / "portraits").is_dir()

    async def test_upload(self, tmp_path: Path) -> None:
        """Test uploads are written and addressed relative to the root."""
        store = LocalContentStore(tmp_path)
        await store.ensure_directory("ai-images")

        path = await store.upload(b"png-bytes", "ai-images/", "goblin-1-final.png")

        assert path == "ai-images/goblin-1-final.png"
        assert (tmp_path / path).read_bytes() == b"png-bytes"

    async def test_upload_missing_directory(self, tmp_path: Path) -> None:
        """Test uploading into a directory that was never ensured fails."""
        store = LocalContentStore(tmp_path)

        with pytest.raises(StorageError):
            await store.upload(b"x", "missing", "a.png")

    @pytest.mark.parametrize("filename", ["../a.png", "sub/a.png", "sub\\a.png"])
    async def test_filename_separators_rejected(self, tmp_path: Path, filename: str) -> None:
        """Test filenames cannot address other directories."""
        with pytest.raises(StorageError):
            await LocalContentStore(tmp_path).upload(b"x", "", filename)

    async def test_escape_rejected(self, tmp_path: Path) -> None:
        """Test directories cannot climb out of the root."""
        with pytest.raises(StorageError):
            await LocalContentStore(tmp_path / "root").ensure_directory("ai-images/../../etc")


class TestInMemoryEntityStore:
    """Tests for the dict-backed host store."""

    async def test_round_trip(self) -> None:
        """Test actors and entities behave like the host store."""
        store = InMemoryEntityStore()

        actor_id = await store.create_actor({
            "name": "Snikkit",
            "prototypeToken": {"texture": {"src": "a.png"}},
            "items": [{"name": "Claw"}],
        })
        [claw_id] = [item["_id"] for item in (await store.get_actor(actor_id))["items"]]
        await store.delete_entities(actor_id, "Item", [claw_id])
        await store.create_entities(actor_id, "Item", [{"name": "Bite"}])
        await store.update_entity(actor_id, {"prototypeToken": {"name": "Snikkit"}})

        actor = await store.get_actor(actor_id)
        assert [item["name"] for item in actor["items"]] == ["Bite"]
        assert actor["prototypeToken"] == {"texture": {"src": "a.png"}, "name": "Snikkit"}
        assert store.calls == [
            "create_actor",
            "delete_entities:Item",
            "create_entities:Item",
            "update_entity",
        ]

    async def test_missing_actor(self) -> None:
        """Test operations on unknown actors fail."""
        with pytest.raises(StorageError):
            await InMemoryEntityStore().update_entity("nope", {})
