"""Persistence of conversation memory records.

The manager only sees the MemoryRepository interface; where records actually
live (a dict, JSON files, SQLite) is up to the adapter.
"""

import asyncio
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any
from urllib.parse import quote

from .errors import PersistenceError
from .models import ConversationMemoryStore

logger = logging.getLogger(__name__)


class MemoryRepository(ABC):
    """Load/save contract for per-conversation records."""

    @abstractmethod
    async def load(self, conversation_id: str) -> ConversationMemoryStore:
        """Load a conversation's store.

        Returns a fresh default store when nothing has been persisted yet.
        """
        ...

    @abstractmethod
    async def save(self, conversation_id: str, store: ConversationMemoryStore) -> None:
        """Persist a conversation's store, replacing any previous record."""
        ...

    @abstractmethod
    async def delete(self, conversation_id: str) -> bool:
        """Drop a conversation's record. Returns True if one existed."""
        ...


class InMemoryRepository(MemoryRepository):
    """Keeps serialized records in a dict. Useful for tests and embedding."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    async def load(self, conversation_id: str) -> ConversationMemoryStore:
        data = self._records.get(conversation_id)
        if data is None:
            return ConversationMemoryStore()
        return ConversationMemoryStore.from_dict(json.loads(json.dumps(data)))

    async def save(self, conversation_id: str, store: ConversationMemoryStore) -> None:
        self._records[conversation_id] = store.to_dict()

    async def delete(self, conversation_id: str) -> bool:
        return self._records.pop(conversation_id, None) is not None

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._records


class JSONFileRepository(MemoryRepository):
    """One JSON file per conversation under a directory."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    def _record_file(self, conversation_id: str) -> Path:
        """Get the file path for a conversation."""
        return self.base_dir / f"{quote(conversation_id, safe='')}.json"

    def _read(self, conversation_id: str) -> ConversationMemoryStore:
        path = self._record_file(conversation_id)
        if not path.exists():
            return ConversationMemoryStore()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("Corrupt memory record %s: %s. Starting fresh.", path, e)
            return ConversationMemoryStore()
        except OSError as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e

        if not isinstance(data, dict):
            logger.warning("Memory record %s is not an object. Starting fresh.", path)
            return ConversationMemoryStore()
        return ConversationMemoryStore.from_dict(data)

    def _write(self, conversation_id: str, data: dict[str, Any]) -> None:
        path = self._record_file(conversation_id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            tmp_path.replace(path)
        except OSError as e:
            raise PersistenceError(f"Cannot write {path}: {e}") from e

    async def load(self, conversation_id: str) -> ConversationMemoryStore:
        return await asyncio.to_thread(self._read, conversation_id)

    async def save(self, conversation_id: str, store: ConversationMemoryStore) -> None:
        await asyncio.to_thread(self._write, conversation_id, store.to_dict())

    async def delete(self, conversation_id: str) -> bool:
        path = self._record_file(conversation_id)
        if not path.exists():
            return False
        path.unlink()
        return True


class SQLiteRepository(MemoryRepository):
    """Records stored as JSON payloads in a local SQLite database."""

    def __init__(self, db_path: Path) -> None:
        """Initialize the repository with a database path.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the records table if it doesn't exist."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS conversation_memory (
                conversation_id  TEXT PRIMARY KEY,
                payload          TEXT NOT NULL,
                updated_at       INTEGER NOT NULL
            )
        """)
        conn.commit()

    async def load(self, conversation_id: str) -> ConversationMemoryStore:
        try:
            row = self._get_connection().execute(
                "SELECT payload FROM conversation_memory WHERE conversation_id = ?",
                (conversation_id,),
            ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot load {conversation_id}: {e}") from e

        if row is None:
            return ConversationMemoryStore()
        try:
            data = json.loads(row["payload"])
        except json.JSONDecodeError as e:
            logger.warning("Corrupt memory record for %s: %s. Starting fresh.", conversation_id, e)
            return ConversationMemoryStore()
        if not isinstance(data, dict):
            return ConversationMemoryStore()
        return ConversationMemoryStore.from_dict(data)

    async def save(self, conversation_id: str, store: ConversationMemoryStore) -> None:
        payload = json.dumps(store.to_dict(), ensure_ascii=False)
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO conversation_memory (conversation_id, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(conversation_id) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (conversation_id, payload, store.updated_at),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot save {conversation_id}: {e}") from e

    async def delete(self, conversation_id: str) -> bool:
        conn = self._get_connection()
        cursor = conn.execute(
            "DELETE FROM conversation_memory WHERE conversation_id = ?",
            (conversation_id,),
        )
        conn.commit()
        return cursor.rowcount > 0

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
