"""Tests for tracker.core.errors."""

import sqlite3

import pytest

from tracker.core.errors import (
    ConflictError,
    ErrorKind,
    InvalidReferenceError,
    StorageBusyError,
    StorageError,
    translate_sqlite_error,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def memory_conn():
    """In-memory connection with a parent/child pair of tables."""
    connection = sqlite3.connect(":memory:", isolation_level=None)
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute(
        "CREATE TABLE things (id INTEGER PRIMARY KEY, name TEXT NOT NULL UNIQUE)"
    )
    connection.execute(
        "CREATE TABLE parts (id INTEGER PRIMARY KEY, "
        "thing_id INTEGER NOT NULL REFERENCES things(id))"
    )
    connection.execute("INSERT INTO things (id, name) VALUES (1, 'widget')")
    yield connection
    connection.close()


def engine_error(conn, sql, params=()):
    with pytest.raises(sqlite3.Error) as exc_info:
        conn.execute(sql, params)
    return exc_info.value


class TestTranslateSqliteError:
    """Real engine errors map onto the taxonomy."""

    def test_unique_is_conflict(self, memory_conn):
        """Duplicate unique values are conflicts."""
        error = engine_error(memory_conn, "INSERT INTO things (name) VALUES ('widget')")
        translated = translate_sqlite_error(error, "Thing", "widget")
        assert isinstance(translated, ConflictError)
        assert translated.kind == ErrorKind.CONFLICT
        assert translated.message == "Thing already exists: widget"
        assert "UNIQUE constraint failed" in translated.detail

    def test_primary_key_is_conflict(self, memory_conn):
        """Duplicate primary keys are conflicts too."""
        error = engine_error(memory_conn, "INSERT INTO things (id, name) VALUES (1, 'other')")
        assert isinstance(translate_sqlite_error(error, "Thing", 1), ConflictError)

    def test_foreign_key_is_invalid_reference(self, memory_conn):
        """Dangling references are invalid references."""
        error = engine_error(memory_conn, "INSERT INTO parts (thing_id) VALUES (99)")
        translated = translate_sqlite_error(error, "Part", 99)
        assert isinstance(translated, InvalidReferenceError)
        assert translated.kind == ErrorKind.INVALID_REFERENCE
        assert translated.message.startswith("Invalid reference from Part 99")

    def test_referenced_row_in_use(self, memory_conn):
        """Deleting a referenced row is also an invalid reference."""
        memory_conn.execute("INSERT INTO parts (thing_id) VALUES (1)")
        error = engine_error(memory_conn, "DELETE FROM things WHERE id = 1")
        assert isinstance(translate_sqlite_error(error, "Thing", 1), InvalidReferenceError)

    def test_other_constraint_is_storage_error(self, memory_conn):
        """NOT NULL and friends fall through to a plain storage error."""
        error = engine_error(memory_conn, "INSERT INTO things (name) VALUES (NULL)")
        translated = translate_sqlite_error(error, "Thing")
        assert type(translated) is StorageError
        assert translated.message.startswith("Constraint failed for Thing")

    def test_unclassified_is_storage_error(self, memory_conn):
        """Anything else is a storage failure, not a busy error."""
        error = engine_error(memory_conn, "SELECT * FROM missing")
        translated = translate_sqlite_error(error, "Thing")
        assert type(translated) is StorageError
        assert translated.kind == ErrorKind.STORAGE_FAILURE
        assert "no such table" in translated.message

    def test_locked_is_busy(self, tmp_path):
        """A write lock held by another connection is a busy error."""
        path = tmp_path / "locked.db"
        holder = sqlite3.connect(path, isolation_level=None)
        other = sqlite3.connect(path, isolation_level=None, timeout=0.05)
        try:
            holder.execute("CREATE TABLE things (id INTEGER PRIMARY KEY)")
            holder.execute("BEGIN IMMEDIATE")
            error = engine_error(other, "BEGIN IMMEDIATE")
        finally:
            holder.close()
            other.close()

        translated = translate_sqlite_error(error, "Thing", 1)
        assert isinstance(translated, StorageBusyError)
        assert translated.kind == ErrorKind.STORAGE_FAILURE
        assert translated.message.startswith("Database busy while accessing Thing")

    def test_returns_without_raising(self):
        """The caller decides whether to raise."""
        translated = translate_sqlite_error(sqlite3.OperationalError("disk I/O error"), "Thing")
        assert isinstance(translated, StorageError)
        assert translated.detail == "disk I/O error"
