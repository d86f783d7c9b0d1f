"""Async adapters exposing the SQLite database through the backend protocols.

SQLite calls are blocking, so every operation runs in a worker thread with
``asyncio.to_thread``; each call opens its own connection.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Sequence
from typing import Any

from dnd_forge.core.logging import get_logger
from dnd_forge.storage.database import Database, get_database


logger = get_logger(__name__)


class SQLiteEntityStore:
    """Host entity store backed by the ``actors`` tables."""

    def __init__(self, database: Database | None = None) -> None:
        self.database = database or get_database()

    async def create_actor(self, record: dict[str, Any]) -> str:
        return await asyncio.to_thread(self.database.insert_actor, record)

    async def get_actor(self, actor_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self.database.get_actor, actor_id)

    async def create_entities(
        self,
        actor_id: str,
        kind: str,
        records: Sequence[dict[str, Any]],
    ) -> list[str]:
        return await asyncio.to_thread(self.database.insert_entities, actor_id, kind, list(records))

    async def delete_entities(self, actor_id: str, kind: str, ids: Sequence[str]) -> int:
        return await asyncio.to_thread(self.database.remove_entities, actor_id, kind, list(ids))

    async def update_entity(self, actor_id: str, patch: dict[str, Any]) -> None:
        await asyncio.to_thread(self.database.update_actor, actor_id, patch)


class SQLitePack:
    """A compendium pack stored in the ``compendium_entries`` table.

    Example:
        >>> pack = SQLitePack("dnd5e.spells", database)
        >>> await pack.import_records(spells)
    """

    def __init__(self, collection_id: str, database: Database | None = None) -> None:
        self.collection_id = collection_id
        self.database = database or get_database()

    async def get_index(self, fields: Sequence[str]) -> list[dict[str, Any]]:
        entries = await asyncio.to_thread(self.database.get_compendium_index, self.collection_id)
        wanted = {"_id", *fields}
        return [{key: value for key, value in entry.items() if key in wanted} for entry in entries]

    async def get_full_record(self, local_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(
            self.database.get_compendium_record, self.collection_id, local_id
        )

    async def import_records(self, records: Iterable[dict[str, Any]]) -> int:
        """Add or replace full records in this pack."""
        count = await asyncio.to_thread(
            self.database.upsert_compendium_entries, self.collection_id, list(records)
        )
        logger.debug("Imported pack records", collection_id=self.collection_id, count=count)
        return count


def open_packs(database: Database | None = None) -> list[SQLitePack]:
    """One SQLitePack per pack present in the database."""
    database = database or get_database()
    return [SQLitePack(pack, database) for pack in database.get_pack_ids()]


__all__ = ["SQLiteEntityStore", "SQLitePack", "open_packs"]
