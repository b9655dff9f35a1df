"""Tests for memory repositories."""

import json
from pathlib import Path

import pytest

from char_knowledge.errors import PersistenceError
from char_knowledge.models import ConversationMemoryStore, make_fact
from char_knowledge.repository import InMemoryRepository, JSONFileRepository, SQLiteRepository


def _sample() -> ConversationMemoryStore:
    return ConversationMemoryStore(
        owner_char_id="alice",
        facts=[make_fact("preference_like", "使用者喜歡：貓", 0.75, ["preference"])],
    )


@pytest.fixture
def sqlite_repo(tmp_path: Path) -> SQLiteRepository:
    """Create a SQLiteRepository with a temporary database."""
    repo = SQLiteRepository(tmp_path / "memory.db")
    repo.init_db()
    yield repo
    repo.close()


@pytest.fixture(params=["memory", "json", "sqlite"])
def repo(request, tmp_path: Path):
    """Each repository adapter, freshly created."""
    if request.param == "memory":
        yield InMemoryRepository()
    elif request.param == "json":
        yield JSONFileRepository(tmp_path / "conversations")
    else:
        sqlite = SQLiteRepository(tmp_path / "memory.db")
        sqlite.init_db()
        yield sqlite
        sqlite.close()


class TestRepositoryContract:
    """Behaviour shared by all adapters."""

    @pytest.mark.asyncio
    async def test_missing_is_fresh(self, repo):
        """An unknown conversation loads as an empty unlocked store."""
        store = await repo.load("unknown")
        assert store.facts == []
        assert store.owner_char_id is None

    @pytest.mark.asyncio
    async def test_save_and_load(self, repo):
        """A saved store loads back with the same fields."""
        original = _sample()
        await repo.save("chat-1", original)

        loaded = await repo.load("chat-1")

        assert loaded.owner_char_id == "alice"
        assert loaded.updated_at == original.updated_at
        assert [f.to_dict() for f in loaded.facts] == [f.to_dict() for f in original.facts]

    @pytest.mark.asyncio
    async def test_save_replaces(self, repo):
        """Saving again replaces the previous record."""
        await repo.save("chat-1", _sample())
        await repo.save("chat-1", ConversationMemoryStore(owner_char_id="alice"))
        assert (await repo.load("chat-1")).facts == []

    @pytest.mark.asyncio
    async def test_conversations_isolated(self, repo):
        """Conversations do not share records."""
        await repo.save("chat-1", _sample())
        assert (await repo.load("chat-2")).facts == []

    @pytest.mark.asyncio
    async def test_loaded_copy_is_detached(self, repo):
        """Changing a loaded store does not change the saved one."""
        await repo.save("chat-1", _sample())
        loaded = await repo.load("chat-1")
        loaded.facts.clear()
        assert len((await repo.load("chat-1")).facts) == 1

    @pytest.mark.asyncio
    async def test_delete(self, repo):
        """Deleting reports whether a record existed."""
        await repo.save("chat-1", _sample())
        assert await repo.delete("chat-1")
        assert not await repo.delete("chat-1")
        assert (await repo.load("chat-1")).facts == []


class TestInMemoryRepository:
    """Tests specific to InMemoryRepository."""

    @pytest.mark.asyncio
    async def test_contains(self):
        """Membership reflects saved conversations."""
        repo = InMemoryRepository()
        await repo.save("chat-1", _sample())
        assert "chat-1" in repo
        assert "chat-2" not in repo


class TestJSONFileRepository:
    """Tests specific to JSONFileRepository."""

    @pytest.mark.asyncio
    async def test_file_layout(self, tmp_path: Path):
        """Each conversation is one JSON file written atomically."""
        repo = JSONFileRepository(tmp_path)
        await repo.save("group/42", _sample())

        path = tmp_path / "group%2F42.json"
        assert path.exists()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["version"] == 2
        assert "使用者喜歡：貓" in path.read_text(encoding="utf-8")
        assert not list(tmp_path.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_fresh(self, tmp_path: Path, caplog):
        """Invalid JSON loads as a fresh store with a warning."""
        (tmp_path / "chat-1.json").write_text("{broken", encoding="utf-8")
        store = await JSONFileRepository(tmp_path).load("chat-1")
        assert store.facts == []
        assert "Corrupt memory record" in caplog.text

    @pytest.mark.asyncio
    async def test_non_object_starts_fresh(self, tmp_path: Path):
        """A JSON value that is not an object loads as a fresh store."""
        (tmp_path / "chat-1.json").write_text("[]", encoding="utf-8")
        store = await JSONFileRepository(tmp_path).load("chat-1")
        assert store.facts == []

    @pytest.mark.asyncio
    async def test_write_failure_raises(self, tmp_path: Path):
        """An unwritable location raises PersistenceError."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        repo = JSONFileRepository(blocker / "conversations")
        with pytest.raises(PersistenceError, match="Cannot write"):
            await repo.save("chat-1", _sample())


class TestSQLiteRepository:
    """Tests specific to SQLiteRepository."""

    def test_creates_table(self, sqlite_repo: SQLiteRepository):
        """init_db creates the conversations table."""
        """init_db creates the conversation_memory table."""
        conn = sqlite_repo._get_connection()
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='conversation_memory'"
        )
        assert cursor.fetchone() is not None

    def test_init_db_idempotent(self, sqlite_repo: SQLiteRepository):
        """init_db can run twice."""
        sqlite_repo.init_db()
        sqlite_repo.init_db()

    @pytest.mark.asyncio
    async def test_upsert_keeps_one_row(self, sqlite_repo: SQLiteRepository):
        """Saving one conversation twice keeps a single row."""
        await sqlite_repo.save("chat-1", _sample())
        await sqlite_repo.save("chat-1", _sample())
        count = sqlite_repo._get_connection().execute(
            "SELECT COUNT(*) FROM conversation_memory"
        ).fetchone()[0]
        assert count == 1

    @pytest.mark.asyncio
    async def test_without_table_raises(self, tmp_path: Path):
        """Missing tables surface as PersistenceError."""
        repo = SQLiteRepository(tmp_path / "memory.db")
        with pytest.raises(PersistenceError, match="Cannot save"):
            await repo.save("chat-1", _sample())
        with pytest.raises(PersistenceError, match="Cannot load"):
            await repo.load("chat-1")
        repo.close()
