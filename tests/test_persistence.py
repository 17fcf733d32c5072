"""Tests for the SQLite key/value store."""

from pathlib import Path

from prwatch.store import SeenStateStore, SqliteKeyValueStore


class TestSqliteKeyValueStore:
    """Test SqliteKeyValueStore against a temporary database."""

    def test_get_missing_key(self, tmp_path: Path) -> None:
        """Test reading an absent key returns None."""
        store = SqliteKeyValueStore(tmp_path / "prwatch.db")
        assert store.get("missing") is None

    def test_set_and_get(self, tmp_path: Path) -> None:
        """Test a written value can be read back."""
        store = SqliteKeyValueStore(tmp_path / "prwatch.db")
        assert store.set("key", '{"a": 1}') is True
        assert store.get("key") == '{"a": 1}'

    def test_set_overwrites(self, tmp_path: Path) -> None:
        """Test writing an existing key replaces its value."""
        store = SqliteKeyValueStore(tmp_path / "prwatch.db")
        store.set("key", "first")
        store.set("key", "second")
        assert store.get("key") == "second"
        assert store.keys() == ["key"]

    def test_delete(self, tmp_path: Path) -> None:
        """Test deleting reports whether a key existed."""
        store = SqliteKeyValueStore(tmp_path / "prwatch.db")
        store.set("key", "value")
        assert store.delete("key") is True
        assert store.delete("key") is False
        assert store.get("key") is None

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        """Test the database directory is created on demand."""
        db_path = tmp_path / "nested" / "dir" / "prwatch.db"
        SqliteKeyValueStore(db_path)
        assert db_path.exists()

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        """Test data survives reopening the database."""
        SqliteKeyValueStore(tmp_path / "prwatch.db").set("key", "value")
        assert SqliteKeyValueStore(tmp_path / "prwatch.db").get("key") == "value"

    def test_backs_seen_store(self, tmp_path: Path) -> None:
        """Test seen state round-trips through SQLite."""
        db_path = tmp_path / "prwatch.db"
        SeenStateStore(SqliteKeyValueStore(db_path)).mark_seen("PR_1", view_id="inbox")

        reloaded = SeenStateStore(SqliteKeyValueStore(db_path))
        assert reloaded.is_seen("PR_1")
