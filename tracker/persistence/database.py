"""Connection management for the tracker store.

``open_database`` produces a ready-to-use connection: file created, pragmas
set, schema current. ``Database`` owns one such connection and serializes
access to it; the desktop handler and the MCP server each hold their own
``Database`` on the same file.
"""

import asyncio
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from tracker.core.errors import (
    MigrationError,
    StorageBusyError,
    StorageError,
    translate_sqlite_error,
)
from tracker.persistence.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BUSY_TIMEOUT_MS = 5000
DEFAULT_BUSY_RETRIES = 3
RETRY_DELAY_SECONDS = 0.05


def _is_memory(db_path: Path | str) -> bool:
    return str(db_path) == ":memory:" or str(db_path).startswith("file::memory:")


def open_database(
    db_path: Path | str, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
) -> sqlite3.Connection:
    """Open (creating if needed) a tracker database and bring its schema current.

    Args:
        db_path: Database file path, or ":memory:"
        busy_timeout_ms: How long a statement waits on another writer's lock

    Returns:
        Autocommit connection with foreign keys enforced

    Raises:
        MigrationError: If the schema cannot be created or migrated
        StorageBusyError: If another connection holds the write lock past the timeout
        StorageError: If the file cannot be opened
    """
    memory = _is_memory(db_path)
    if not memory:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        conn = sqlite3.connect(
            str(db_path),
            timeout=busy_timeout_ms / 1000,
            isolation_level=None,
            check_same_thread=False,
        )
    except sqlite3.Error as e:
        logger.error(f"Cannot open database {db_path}: {e}")
        raise StorageError(f"Cannot open database {db_path}: {e}", "Database", str(db_path)) from e

    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
        if not memory:
            conn.execute("PRAGMA journal_mode = WAL")

        version = SchemaManager(conn).initialize()
    except sqlite3.Error as e:
        conn.close()
        translated = translate_sqlite_error(e, "Database", str(db_path))
        if isinstance(translated, StorageBusyError):
            logger.warning(f"Database {db_path} busy during schema setup: {e}")
            raise translated from e
        logger.error(f"Schema initialization failed for {db_path}: {e}")
        raise MigrationError(
            f"Cannot initialize schema for {db_path}: {e}", "Database", str(db_path), str(e)
        ) from e

    logger.info(f"Opened database {db_path} (schema version {version})")
    return conn


class Database:
    """One tracker connection plus the lock that serializes its use.

    Example:
        db = Database("~/.project-tracker/tracker.db")
        db.initialize()

        with db.session() as conn:
            people = PersonRepository(conn).list_all()

        projects = await db.run(lambda conn: ProjectRepository(conn).list_all())
        db.close()
    """

    def __init__(
        self,
        db_path: Path | str,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        busy_retries: int = DEFAULT_BUSY_RETRIES,
    ):
        self.db_path = db_path if _is_memory(db_path) else Path(db_path).expanduser()
        self.busy_timeout_ms = busy_timeout_ms
        self.busy_retries = busy_retries
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config) -> "Database":
        """Build a Database from a ``GlobalConfig``."""
        return cls(
            config.database_path,
            busy_timeout_ms=config.db_busy_timeout_ms,
            busy_retries=config.db_busy_retries,
        )

    def initialize(self) -> None:
        """Open the connection (idempotent)."""
        with self._lock:
            if self.conn is None:
                self.conn = open_database(self.db_path, self.busy_timeout_ms)

    def close(self) -> None:
        """Close the connection."""
        with self._lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
                logger.debug(f"Closed database {self.db_path}")

    @contextmanager
    def session(self) -> Iterator[sqlite3.Connection]:
        """Yield the connection while holding exclusive access to it."""
        with self._lock:
            if self.conn is None:
                self.initialize()
            yield self.conn

    def call(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``fn(conn)`` under the lock, retrying when the file is busy.

        Raises:
            StorageBusyError: If still busy after ``busy_retries`` retries
        """
        attempt = 0
        while True:
            try:
                with self.session() as conn:
                    return fn(conn)
            except StorageBusyError as e:
                attempt += 1
                if attempt > self.busy_retries:
                    logger.error(f"Database still busy after {self.busy_retries} retries: {e}")
                    raise
                logger.warning(f"Database busy, retrying ({attempt}/{self.busy_retries})")
                time.sleep(RETRY_DELAY_SECONDS * attempt)

    async def run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Async variant of ``call``: runs ``fn(conn)`` in a worker thread.

        Raises:
            StorageBusyError: If still busy after ``busy_retries`` retries
        """
        attempt = 0
        while True:
            try:
                return await asyncio.to_thread(self._call_once, fn)
            except StorageBusyError as e:
                attempt += 1
                if attempt > self.busy_retries:
                    logger.error(f"Database still busy after {self.busy_retries} retries: {e}")
                    raise
                logger.warning(f"Database busy, retrying ({attempt}/{self.busy_retries})")
                await asyncio.sleep(RETRY_DELAY_SECONDS * attempt)

    def _call_once(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        with self.session() as conn:
            return fn(conn)

    def __enter__(self) -> "Database":
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    async def __aenter__(self) -> "Database":
        """Async context manager entry."""
        await asyncio.to_thread(self.initialize)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        self.close()
