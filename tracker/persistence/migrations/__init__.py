"""Database migrations for the tracker.

Migrations are forward-only and numbered once, at authoring time. Each one
probes its target shape, applies only what is missing, and records its
version in the ``schema_version`` ledger whether or not it changed anything.
"""

import importlib
import logging
import pkgutil
import sqlite3
from typing import List

logger = logging.getLogger(__name__)


class Migration:
    """Base class for database migrations."""

    def __init__(self, version: int, description: str):
        self.version = version
        self.description = description

    def apply(self, conn: sqlite3.Connection) -> None:
        """Apply the migration.

        Runs inside the runner's transaction; must not commit.
        """
        raise NotImplementedError

    def can_apply(self, conn: sqlite3.Connection) -> bool:
        """Check if any part of the target shape is missing."""
        return True


def column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    """Check whether ``table`` has ``column`` (False if the table is missing)."""
    cursor = conn.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cursor.fetchall())


def add_column(conn: sqlite3.Connection, table: str, column: str, definition: str) -> bool:
    """Add a column unless it already exists.

    Returns:
        True if the column was added, False if it was already present
    """
    if column_exists(conn, table, column):
        logger.info(f"{table}.{column} already exists")
        return False
    try:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
    except sqlite3.OperationalError as e:
        if "duplicate column name" in str(e).lower():
            logger.info(f"{table}.{column} already exists")
            return False
        raise
    logger.info(f"Added {column} column to {table} table")
    return True


class MigrationRunner:
    """Applies registered migrations against one open connection.

    The connection is borrowed and must be in autocommit mode
    (``isolation_level=None``); each migration gets its own
    ``BEGIN IMMEDIATE`` transaction.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.migrations: List[Migration] = []

    def register(self, migration: Migration) -> None:
        """Register a migration."""
        if any(m.version == migration.version for m in self.migrations):
            raise ValueError(f"Migration {migration.version} registered twice")
        self.migrations.append(migration)
        self.migrations.sort(key=lambda m: m.version)

    def discover(self) -> "MigrationRunner":
        """Register every ``migration_*`` module in this package."""
        for module_info in sorted(pkgutil.iter_modules(__path__), key=lambda m: m.name):
            if not module_info.name.startswith("migration_"):
                continue
            module = importlib.import_module(f"{__name__}.{module_info.name}")
            self.register(module.migration)
        return self

    def current_version(self) -> int:
        """Highest version in the ledger (0 when empty)."""
        row = self.conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    def pending(self) -> List[Migration]:
        """Registered migrations above the current ledger version."""
        current = self.current_version()
        return [m for m in self.migrations if m.version > current]

    def apply_all(self) -> int:
        """Apply all pending migrations in increasing version order.

        Returns:
            Number of migrations recorded by this call

        Raises:
            sqlite3.Error: If a migration fails (its transaction is rolled back)
        """
        applied = 0
        for migration in self.pending():
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                # Another connection may have applied it while we waited for the lock
                if self._is_applied(migration.version):
                    logger.info(f"Migration {migration.version} already applied, skipping")
                    self.conn.execute("COMMIT")
                    continue

                if migration.can_apply(self.conn):
                    logger.info(f"Applying migration {migration.version}: {migration.description}")
                    migration.apply(self.conn)
                else:
                    logger.info(f"Migration {migration.version} target already present")

                self.conn.execute(
                    "INSERT OR IGNORE INTO schema_version (version, applied_at) "
                    "VALUES (?, strftime('%Y-%m-%dT%H:%M:%f000+00:00', 'now'))",
                    (migration.version,),
                )
                self.conn.execute("COMMIT")
                applied += 1
                logger.info(f"Migration {migration.version} applied successfully")

            except Exception as e:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                logger.error(f"Migration {migration.version} failed: {e}")
                raise

        return applied

    def _is_applied(self, version: int) -> bool:
        """Check if migration has been recorded."""
        cursor = self.conn.execute("SELECT 1 FROM schema_version WHERE version = ?", (version,))
        return cursor.fetchone() is not None

    def list_applied(self) -> List[dict]:
        """List all ledger rows."""
        cursor = self.conn.execute("SELECT version, applied_at FROM schema_version ORDER BY version")
        return [{"version": row[0], "applied_at": row[1]} for row in cursor.fetchall()]


__all__ = ["Migration", "MigrationRunner", "add_column", "column_exists"]
