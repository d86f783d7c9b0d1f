"""In-process implementations of the source collection and host store.

Used by tests and by callers that assemble actors without persistence.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Sequence
from typing import Any

from dnd_forge.core.exceptions import StorageError
from dnd_forge.core.ids import random_id


class InMemoryCollection:
    """A source collection over a list of full records."""

    def __init__(self, collection_id: str, records: Iterable[dict[str, Any]] = ()) -> None:
        self.collection_id = collection_id
        self._records: dict[str, dict[str, Any]] = {}
        self.index_calls = 0
        for record in records:
            self.add(record)

    def add(self, record: dict[str, Any]) -> str:
        record = copy.deepcopy(record)
        record.setdefault("_id", random_id())
        self._records[record["_id"]] = record
        return record["_id"]

    async def get_index(self, fields: Sequence[str]) -> list[dict[str, Any]]:
        self.index_calls += 1
        return [
            {"_id": local_id, **{key: record.get(key) for key in fields}}
            for local_id, record in self._records.items()
        ]

    async def get_full_record(self, local_id: str) -> dict[str, Any] | None:
        record = self._records.get(local_id)
        return copy.deepcopy(record) if record is not None else None


class InMemoryEntityStore:
    """A host entity store holding actors in a dict.

    Attributes:
        actors: Stored actors keyed by id, items embedded under ``items``.
        calls: Operation names in call order.
    """

    def __init__(self) -> None:
        self.actors: dict[str, dict[str, Any]] = {}
        self.calls: list[str] = []

    def _actor(self, actor_id: str) -> dict[str, Any]:
        actor = self.actors.get(actor_id)
        if actor is None:
            raise StorageError("Actor not found", details={"actor_id": actor_id})
        return actor

    async def create_actor(self, record: dict[str, Any]) -> str:
        self.calls.append("create_actor")
        record = copy.deepcopy(record)
        actor_id = record.get("_id") or random_id()
        record["_id"] = actor_id
        for item in record.setdefault("items", []):
            item.setdefault("_id", random_id())
        self.actors[actor_id] = record
        return actor_id

    async def get_actor(self, actor_id: str) -> dict[str, Any] | None:
        actor = self.actors.get(actor_id)
        return copy.deepcopy(actor) if actor is not None else None

    async def create_entities(
        self,
        actor_id: str,
        kind: str,
        records: Sequence[dict[str, Any]],
    ) -> list[str]:
        self.calls.append(f"create_entities:{kind}")
        bucket = self._actor(actor_id).setdefault(_bucket(kind), [])
        ids = []
        for record in records:
            record = copy.deepcopy(record)
            record.setdefault("_id", random_id())
            bucket.append(record)
            ids.append(record["_id"])
        return ids

    async def delete_entities(self, actor_id: str, kind: str, ids: Sequence[str]) -> int:
        self.calls.append(f"delete_entities:{kind}")
        actor = self._actor(actor_id)
        doomed = set(ids)
        before = actor.get(_bucket(kind), [])
        actor[_bucket(kind)] = [record for record in before if record.get("_id") not in doomed]
        return len(before) - len(actor[_bucket(kind)])

    async def update_entity(self, actor_id: str, patch: dict[str, Any]) -> None:
        self.calls.append("update_entity")
        actor = self._actor(actor_id)
        for key, value in copy.deepcopy(patch).items():
            if key == "prototypeToken" and isinstance(value, dict):
                actor[key] = {**(actor.get(key) or {}), **value}
            else:
                actor[key] = value


def _bucket(kind: str) -> str:
    return "items" if kind == "Item" else f"{kind.lower()}s"


__all__ = ["InMemoryCollection", "InMemoryEntityStore"]
