"""Tests for open_database and the Database coordinator."""

import asyncio
import sqlite3
import threading
from types import SimpleNamespace

import pytest

from tracker.core.config import GlobalConfig
from tracker.core.errors import MigrationError, StorageBusyError
from tracker.core.models import Person, Project
from tracker.persistence import database as database_module
from tracker.persistence.database import Database, open_database
from tracker.persistence.repositories import PersonRepository, ProjectRepository
from tracker.persistence.schema_manager import SchemaManager

pytestmark = pytest.mark.unit


class TestOpenDatabase:
    """Opening files."""

    def test_creates_parent_directories(self, temp_dir):
        """Missing directories are created."""
        path = temp_dir / "nested" / "deeper" / "tracker.db"
        conn = open_database(path)
        try:
            assert path.exists()
            assert SchemaManager(conn).get_schema_version() == 4
        finally:
            conn.close()

    def test_autocommit_connection(self, conn):
        """Connections are opened in autocommit mode with Row results."""
        assert conn.isolation_level is None
        assert conn.row_factory is sqlite3.Row

    def test_busy_timeout_applied(self, temp_db_path):
        """The configured busy timeout is set on the connection."""
        conn = open_database(temp_db_path, busy_timeout_ms=1234)
        try:
            assert conn.execute("PRAGMA busy_timeout").fetchone()[0] == 1234
        finally:
            conn.close()

    def test_locked_file_is_busy(self, temp_db_path):
        """A write lock held past the timeout is a busy error, not a migration error."""
        open_database(temp_db_path).close()
        holder = sqlite3.connect(temp_db_path, isolation_level=None)
        try:
            holder.execute("BEGIN IMMEDIATE")
            with pytest.raises(StorageBusyError) as exc_info:
                open_database(temp_db_path, busy_timeout_ms=50)
            assert not isinstance(exc_info.value, MigrationError)
        finally:
            holder.close()


class TestDatabase:
    """The coordinator."""

    def test_initialize_is_idempotent(self, db):
        """A second initialize keeps the same connection."""
        conn = db.conn
        db.initialize()
        assert db.conn is conn

    def test_session_opens_lazily(self, temp_db_path):
        """session() initializes on first use."""
        database = Database(temp_db_path)
        try:
            with database.session() as conn:
                assert SchemaManager(conn).get_schema_version() == 4
        finally:
            database.close()

    def test_close_twice(self, db):
        """close is safe to repeat."""
        db.close()
        db.close()
        assert db.conn is None

    def test_context_manager(self, temp_db_path):
        """with Database(...) opens and closes."""
        with Database(temp_db_path) as database:
            assert database.conn is not None
        assert database.conn is None

    def test_from_config(self, temp_dir):
        """Path and busy settings come from config."""
        config = GlobalConfig(
            TRACKER_DATA_DIR=str(temp_dir),
            TRACKER_DATABASE_NAME="other.db",
            DB_BUSY_TIMEOUT_MS=250,
            DB_BUSY_RETRIES=1,
        )
        database = Database.from_config(config)
        assert database.db_path == temp_dir / "other.db"
        assert database.busy_timeout_ms == 250
        assert database.busy_retries == 1

    def test_call(self, db):
        """call runs a function against the connection."""
        created = db.call(
            lambda conn: PersonRepository(conn).create(Person(email="a@example.com", name="A"))
        )
        assert db.call(lambda conn: PersonRepository(conn).find_by_email("a@example.com")) == created

    def test_run(self, db):
        """run is the async form of call."""

        async def scenario():
            await db.run(
                lambda conn: PersonRepository(conn).create(Person(email="a@example.com", name="A"))
            )
            return await db.run(lambda conn: PersonRepository(conn).list_all())

        people = asyncio.run(scenario())
        assert [p.email for p in people] == ["a@example.com"]

    def test_call_retries_busy(self, db, monkeypatch):
        """Busy errors are retried up to busy_retries times."""
        monkeypatch.setattr(database_module, "RETRY_DELAY_SECONDS", 0)
        attempts = []

        def flaky(conn):
            attempts.append(1)
            if len(attempts) < 3:
                raise StorageBusyError("busy", "Test")
            return "ok"

        assert db.call(flaky) == "ok"
        assert len(attempts) == 3

    def test_call_gives_up(self, temp_db_path, monkeypatch):
        """After the last retry the busy error propagates."""
        monkeypatch.setattr(database_module, "RETRY_DELAY_SECONDS", 0)
        database = Database(temp_db_path, busy_retries=2)
        attempts = []

        def always_busy(conn):
            attempts.append(1)
            raise StorageBusyError("busy", "Test")

        try:
            with pytest.raises(StorageBusyError):
                database.call(always_busy)
        finally:
            database.close()
        assert len(attempts) == 3

    def test_busy_open_is_retried(self, temp_db_path, monkeypatch):
        """A first use that finds the file locked retries once the lock is gone."""
        open_database(temp_db_path).close()
        holder = sqlite3.connect(temp_db_path, isolation_level=None)
        delays = []

        def release(seconds):
            delays.append(seconds)
            if holder.in_transaction:
                holder.execute("COMMIT")

        monkeypatch.setattr(database_module, "time", SimpleNamespace(sleep=release))
        database = Database(temp_db_path, busy_timeout_ms=50, busy_retries=3)
        try:
            holder.execute("BEGIN IMMEDIATE")
            assert database.call(lambda conn: SchemaManager(conn).get_schema_version()) == 4
        finally:
            database.close()
            holder.close()
        assert len(delays) == 1

    def test_other_errors_not_retried(self, db):
        """Only busy errors are retried."""
        attempts = []

        def broken(conn):
            attempts.append(1)
            raise ValueError("nope")

        with pytest.raises(ValueError):
            db.call(broken)
        assert len(attempts) == 1


@pytest.mark.integration
class TestTwoWriters:
    """Two coordinators on one file, as the desktop app and MCP server run."""

    def test_concurrent_open(self, temp_db_path):
        """Two connections opening a fresh file both end at version 4."""
        results = []
        errors = []

        def opener():
            try:
                conn = open_database(temp_db_path)
                results.append(SchemaManager(conn).list_applied())
                conn.close()
            except Exception as e:  # collected for the assertion below
                errors.append(e)

        threads = [threading.Thread(target=opener) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(results) == 2
        assert [row["version"] for row in results[0]] == [1, 2, 3, 4]
        assert results[0] == results[1]

    def test_writes_visible_across_instances(self, temp_db_path):
        """What one coordinator writes the other reads."""
        desktop = Database(temp_db_path)
        server = Database(temp_db_path)
        try:
            desktop.call(
                lambda conn: PersonRepository(conn).create(Person(email="a@example.com", name="A"))
            )
            server.call(lambda conn: ProjectRepository(conn).create(Project(name="Launch")))

            assert server.call(lambda conn: PersonRepository(conn).exists("a@example.com"))
            projects = desktop.call(lambda conn: ProjectRepository(conn).list_all())
            assert [p.name for p in projects] == ["Launch"]
        finally:
            desktop.close()
            server.close()

    def test_interleaved_threads(self, temp_db_path):
        """Writers on separate threads and connections all land."""
        databases = [Database(temp_db_path) for _ in range(2)]
        for database in databases:
            database.initialize()
        errors = []

        def writer(database, prefix):
            try:
                for i in range(20):
                    database.call(
                        lambda conn, i=i: PersonRepository(conn).create(
                            Person(email=f"{prefix}{i}@example.com", name=f"{prefix} {i}")
                        )
                    )
            except Exception as e:  # collected for the assertion below
                errors.append(e)

        threads = [
            threading.Thread(target=writer, args=(database, f"w{n}"))
            for n, database in enumerate(databases)
        ]
        try:
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
            assert errors == []
            assert len(databases[0].call(lambda conn: PersonRepository(conn).list_all())) == 40
        finally:
            for database in databases:
                database.close()

    def test_write_lock_surfaces_as_busy(self, temp_db_path):
        """A writer that cannot get the lock gives up with a busy error."""
        database = Database(temp_db_path, busy_timeout_ms=50, busy_retries=0)
        database.initialize()
        holder = sqlite3.connect(temp_db_path, isolation_level=None)
        try:
            holder.execute("BEGIN IMMEDIATE")
            with pytest.raises(StorageBusyError):
                database.call(
                    lambda conn: PersonRepository(conn).create(
                        Person(email="a@example.com", name="A")
                    )
                )
        finally:
            holder.execute("ROLLBACK")
            holder.close()

        try:
            assert database.call(lambda conn: PersonRepository(conn).list_all()) == []
        finally:
            database.close()
