"""SQLite persistence layer for DnD Forge.

Provides persistent storage for:
- Actors and their embedded entities (items), standing in for the host
  application's world data
- Compendium packs (read-only source collections for the content index)

Storage location: ``StorageSettings.database_path`` (``data/dnd_forge.db``).
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from dnd_forge.core.exceptions import StorageError
from dnd_forge.core.ids import random_id
from dnd_forge.core.logging import get_logger


logger = get_logger(__name__)

_ACTOR_FIELDS = ("system", "prototypeToken", "flags")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ActorRow:
    """A stored actor without its embedded entities.

    Attributes:
        id: Actor id.
        name: Actor name.
        type: Host actor type.
        img: Portrait path.
        data: Remaining host fields (system, prototypeToken, flags).
        created_at: When the actor was created.
        updated_at: When the actor was last changed.
    """

    id: str
    name: str
    type: str
    img: str | None
    data: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: tuple[Any, ...]) -> ActorRow:
        """Create from database row."""
        return cls(
            id=row[0],
            name=row[1],
            type=row[2],
            img=row[3],
            data=json.loads(row[4]),
            created_at=datetime.fromisoformat(row[5]),
            updated_at=datetime.fromisoformat(row[6]),
        )

    def to_document(self, items: list[dict[str, Any]]) -> dict[str, Any]:
        return {
            "_id": self.id,
            "name": self.name,
            "type": self.type,
            "img": self.img,
            **self.data,
            "items": items,
        }


# =============================================================================
# Database Class
# =============================================================================


class Database:
    """SQLite database for actors and compendium packs."""

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str | Path) -> None:
        """Initialize database.

        Args:
            db_path: Path to database file. Parent directories are created.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()
        logger.info("Database initialized", path=str(self.db_path))

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with proper cleanup."""
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database: {exc}", details={"path": str(self.db_path)}) from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"Database operation failed: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS actors (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    img TEXT,
                    data_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS actor_entities (
                    id TEXT NOT NULL,
                    actor_id TEXT NOT NULL REFERENCES actors(id) ON DELETE CASCADE,
                    kind TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    data_json TEXT NOT NULL,
                    PRIMARY KEY (actor_id, kind, id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS compendium_entries (
                    pack TEXT NOT NULL,
                    id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    img TEXT,
                    data_json TEXT NOT NULL,
                    PRIMARY KEY (pack, id)
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_entities_actor
                ON actor_entities(actor_id, kind, position)
            """)

            cursor.execute("""
                INSERT OR REPLACE INTO schema_version (version) VALUES (?)
            """, (self.SCHEMA_VERSION,))

    # =========================================================================
    # Actor Operations
    # =========================================================================

    def insert_actor(self, document: dict[str, Any]) -> str:
        """Insert an actor and its embedded items.

        Args:
            document: Host actor document; ``items`` are stored as entities.

        Returns:
            The actor id (``_id`` when given, otherwise generated).
        """
        actor_id = document.get("_id") or random_id()
        now = datetime.now().isoformat()
        data = {key: document[key] for key in _ACTOR_FIELDS if key in document}

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT INTO actors (id, name, type, img, data_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (actor_id, document["name"], document.get("type", "npc"), document.get("img"),
                  json.dumps(data), now, now))
            self._insert_entities(cursor, actor_id, "Item", document.get("items") or [], start=0)

        logger.info("Stored actor", actor_id=actor_id, name=document["name"])
        return actor_id

    def get_actor(self, actor_id: str) -> dict[str, Any] | None:
        """Get an actor with embedded items, or None."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, name, type, img, data_json, created_at, updated_at
                FROM actors WHERE id = ?
            """, (actor_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            actor = ActorRow.from_row(tuple(row))

            cursor.execute("""
                SELECT data_json FROM actor_entities
                WHERE actor_id = ? AND kind = 'Item' ORDER BY position
            """, (actor_id,))
            items = [json.loads(item_row[0]) for item_row in cursor.fetchall()]

        return actor.to_document(items)

    def update_actor(self, actor_id: str, patch: dict[str, Any]) -> None:
        """Replace top-level actor fields.

        Nested mappings in ``patch`` are merged one level deep into the stored
        value, so a token patch without ``texture`` keeps the stored texture.

        Raises:
            StorageError: If the actor does not exist.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name, img, data_json FROM actors WHERE id = ?", (actor_id,))
            row = cursor.fetchone()
            if row is None:
                raise StorageError("Actor not found", details={"actor_id": actor_id})

            name, img, data = row[0], row[1], json.loads(row[2])
            for key, value in patch.items():
                if key == "name":
                    name = value
                elif key == "img":
                    img = value
                elif key == "prototypeToken" and isinstance(value, dict):
                    data[key] = {**(data.get(key) or {}), **value}
                else:
                    data[key] = value

            cursor.execute("""
                UPDATE actors SET name = ?, img = ?, data_json = ?, updated_at = ?
                WHERE id = ?
            """, (name, img, json.dumps(data), datetime.now().isoformat(), actor_id))

    def delete_actor(self, actor_id: str) -> bool:
        """Delete an actor and all of its entities."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM actor_entities WHERE actor_id = ?", (actor_id,))
            cursor.execute("DELETE FROM actors WHERE id = ?", (actor_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info("Deleted actor", actor_id=actor_id)
        return deleted

    # =========================================================================
    # Embedded Entity Operations
    # =========================================================================

    @staticmethod
    def _insert_entities(
        cursor: sqlite3.Cursor,
        actor_id: str,
        kind: str,
        records: Iterable[dict[str, Any]],
        *,
        start: int,
    ) -> list[str]:
        ids: list[str] = []
        for offset, record in enumerate(records):
            record = dict(record)
            record_id = record.get("_id") or random_id()
            record["_id"] = record_id
            cursor.execute("""
                INSERT INTO actor_entities (id, actor_id, kind, position, data_json)
                VALUES (?, ?, ?, ?, ?)
            """, (record_id, actor_id, kind, start + offset, json.dumps(record)))
            ids.append(record_id)
        return ids

    def insert_entities(self, actor_id: str, kind: str, records: Iterable[dict[str, Any]]) -> list[str]:
        """Append embedded entities after the existing ones.

        Raises:
            StorageError: If the actor does not exist or an id is duplicated.
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT 1 FROM actors WHERE id = ?", (actor_id,))
            if cursor.fetchone() is None:
                raise StorageError("Actor not found", details={"actor_id": actor_id})
            cursor.execute("""
                SELECT COALESCE(MAX(position) + 1, 0) FROM actor_entities
                WHERE actor_id = ? AND kind = ?
            """, (actor_id, kind))
            start = cursor.fetchone()[0]
            return self._insert_entities(cursor, actor_id, kind, records, start=start)

    def remove_entities(self, actor_id: str, kind: str, ids: Iterable[str]) -> int:
        """Delete embedded entities by id and return how many were removed."""
        removed = 0
        with self._get_connection() as conn:
            cursor = conn.cursor()
            for entity_id in ids:
                cursor.execute("""
                    DELETE FROM actor_entities WHERE actor_id = ? AND kind = ? AND id = ?
                """, (actor_id, kind, entity_id))
                removed += cursor.rowcount
        return removed

    # =========================================================================
    # Compendium Operations
    # =========================================================================

    def upsert_compendium_entries(self, pack: str, records: Iterable[dict[str, Any]]) -> int:
        """Store full records in a compendium pack.

        Returns:
            Number of records written.
        """
        count = 0
        with self._get_connection() as conn:
            cursor = conn.cursor()
            for record in records:
                record_id = record.get("_id") or random_id()
                record = {**record, "_id": record_id}
                cursor.execute("""
                    INSERT OR REPLACE INTO compendium_entries (pack, id, name, type, img, data_json)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (pack, record_id, record["name"], record["type"], record.get("img"), json.dumps(record)))
                count += 1

        logger.info("Stored compendium entries", pack=pack, count=count)
        return count

    def get_compendium_index(self, pack: str) -> list[dict[str, Any]]:
        """Lightweight entries of a pack in insertion-stable id order."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, name, type, img FROM compendium_entries
                WHERE pack = ? ORDER BY rowid
            """, (pack,))
            return [
                {"_id": row[0], "name": row[1], "type": row[2], "img": row[3]}
                for row in cursor.fetchall()
            ]

    def get_compendium_record(self, pack: str, record_id: str) -> dict[str, Any] | None:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT data_json FROM compendium_entries WHERE pack = ? AND id = ?
            """, (pack, record_id))
            row = cursor.fetchone()
            return json.loads(row[0]) if row else None

    def get_pack_ids(self) -> list[str]:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT DISTINCT pack FROM compendium_entries ORDER BY pack")
            return [row[0] for row in cursor.fetchall()]


# =============================================================================
# Singleton Instance
# =============================================================================

_database: Database | None = None


def get_database() -> Database:
    """Get the database singleton at the configured path."""
    global _database
    if _database is None:
        from dnd_forge.core.config import get_settings

        _database = Database(get_settings().storage.database_path)
    return _database


def reset_database() -> None:
    """Forget the singleton so the next call reopens the configured path."""
    global _database
    _database = None


__all__ = ["Database", "ActorRow", "get_database", "reset_database"]
