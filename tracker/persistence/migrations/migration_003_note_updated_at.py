"""Migration 003: Track note edits.

Adds ``updated_at`` to the three note tables. SQLite cannot add a NOT NULL
column without a constant default, so the column is added nullable and
existing rows are back-filled from ``created_at``.

Migration: 003
"""

import logging
import sqlite3

from tracker.persistence.migrations import Migration, add_column, column_exists

logger = logging.getLogger(__name__)

NOTE_TABLES = ("project_notes", "milestone_notes", "stakeholder_notes")


class NoteUpdatedAt(Migration):
    """Add updated_at to note tables."""

    def __init__(self):
        super().__init__(version=3, description="Add updated_at to note tables")

    def can_apply(self, conn: sqlite3.Connection) -> bool:
        return any(not column_exists(conn, table, "updated_at") for table in NOTE_TABLES)

    def apply(self, conn: sqlite3.Connection) -> None:
        for table in NOTE_TABLES:
            if add_column(conn, table, "updated_at", "TEXT"):
                cursor = conn.execute(
                    f"UPDATE {table} SET updated_at = created_at WHERE updated_at IS NULL"
                )
                logger.info(f"Back-filled updated_at on {cursor.rowcount} {table} rows")


# Migration instance for auto-discovery
migration = NoteUpdatedAt()
