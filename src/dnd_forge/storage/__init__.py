"""Persistence: SQLite host store and packs, filesystem content store."""

from __future__ import annotations

from dnd_forge.storage.database import ActorRow, Database, get_database, reset_database
from dnd_forge.storage.files import LocalContentStore, normalize_directory
from dnd_forge.storage.memory import InMemoryCollection, InMemoryEntityStore
from dnd_forge.storage.stores import SQLiteEntityStore, SQLitePack, open_packs


__all__ = [
    # Database
    "Database",
    "ActorRow",
    "get_database",
    "reset_database",
    # Async adapters
    "SQLiteEntityStore",
    "SQLitePack",
    "open_packs",
    # Files
    "LocalContentStore",
    "normalize_directory",
    # In-process
    "InMemoryCollection",
    "InMemoryEntityStore",
]
