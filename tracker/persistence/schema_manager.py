"""Database schema management for the tracker.

Creates the current table shape on a fresh file and brings older files
forward through the migration engine. Every statement here is idempotent,
so opening the same file any number of times yields the same schema.
"""

import logging
import sqlite3
from typing import List

from tracker.persistence.migrations import MigrationRunner, column_exists

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 4


class SchemaManager:
    """Manages database schema creation and migrations.

    Works on a borrowed connection opened with ``isolation_level=None``.
    """

    def __init__(self, conn: sqlite3.Connection):
        """Initialize schema manager with database connection.

        Args:
            conn: Active sqlite3.Connection in autocommit mode
        """
        self.conn = conn

    def initialize(self) -> int:
        """Create missing tables then apply pending migrations.

        Returns:
            Schema version after initialization
        """
        self.create_schema()
        self.apply_migrations()
        version = self.get_schema_version()
        logger.info(f"Database schema at version {version}")
        return version

    def create_schema(self) -> None:
        """Create all database tables and indexes.

        Tables that already exist keep their shape; the migrations reconcile
        them. Seeds ledger version 1.
        """
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            cursor = self.conn.cursor()

            # People and teams
            self._create_people_tables(cursor)

            # Projects, milestones and their links
            self._create_project_tables(cursor)

            # Notes
            self._create_note_tables(cursor)

            self._create_version_table(cursor)

            self._create_indexes(cursor)

            cursor.execute(
                "INSERT OR IGNORE INTO schema_version (version, applied_at) "
                "VALUES (1, strftime('%Y-%m-%dT%H:%M:%f000+00:00', 'now'))"
            )
            self.conn.execute("COMMIT")
        except sqlite3.Error:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            raise

    def _create_people_tables(self, cursor: sqlite3.Cursor) -> None:
        """Create people, teams and team membership tables."""
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS people (
                email TEXT PRIMARY KEY NOT NULL,
                name TEXT NOT NULL,
                team TEXT,
                manager TEXT REFERENCES people(email),
                notes TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS teams (
                name TEXT PRIMARY KEY NOT NULL,
                description TEXT,
                manager TEXT REFERENCES people(email),
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS team_members (
                team_name TEXT NOT NULL REFERENCES teams(name) ON DELETE CASCADE,
                person_email TEXT NOT NULL REFERENCES people(email) ON DELETE CASCADE,
                created_at TEXT NOT NULL,
                PRIMARY KEY (team_name, person_email)
            )
            """
        )

    def _create_project_tables(self, cursor: sqlite3.Cursor) -> None:
        """Create projects, milestones, stakeholder and resource tables."""
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                type TEXT NOT NULL DEFAULT 'Personal',
                requirements_owner TEXT REFERENCES people(email),
                technical_lead TEXT REFERENCES people(email),
                manager TEXT REFERENCES people(email),
                team TEXT REFERENCES teams(name) ON DELETE SET NULL,
                due_date TEXT,
                jira_initiative TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS milestones (
                id TEXT PRIMARY KEY NOT NULL,
                project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                number INTEGER NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                technical_lead TEXT REFERENCES people(email),
                team TEXT REFERENCES teams(name) ON DELETE SET NULL,
                design_doc_url TEXT,
                due_date TEXT,
                jira_epic TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (project_id, number)
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS project_stakeholders (
                project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                stakeholder_email TEXT NOT NULL REFERENCES people(email),
                role TEXT,
                created_at TEXT NOT NULL,
                PRIMARY KEY (project_id, stakeholder_email)
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS project_resources (
                project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                person_email TEXT NOT NULL REFERENCES people(email) ON DELETE CASCADE,
                role TEXT,
                created_at TEXT NOT NULL,
                PRIMARY KEY (project_id, person_email)
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS milestone_resources (
                milestone_id TEXT NOT NULL REFERENCES milestones(id) ON DELETE CASCADE,
                person_email TEXT NOT NULL REFERENCES people(email) ON DELETE CASCADE,
                role TEXT,
                created_at TEXT NOT NULL,
                PRIMARY KEY (milestone_id, person_email)
            )
            """
        )

    def _create_note_tables(self, cursor: sqlite3.Cursor) -> None:
        """Create the three note tables."""
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS project_notes (
                id TEXT PRIMARY KEY NOT NULL,
                project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
                title TEXT NOT NULL,
                body TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS milestone_notes (
                id TEXT PRIMARY KEY NOT NULL,
                milestone_id TEXT NOT NULL REFERENCES milestones(id) ON DELETE CASCADE,
                title TEXT NOT NULL,
                body TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS stakeholder_notes (
                id TEXT PRIMARY KEY NOT NULL,
                project_id TEXT NOT NULL,
                stakeholder_email TEXT NOT NULL,
                title TEXT NOT NULL,
                body TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (project_id, stakeholder_email)
                    REFERENCES project_stakeholders(project_id, stakeholder_email)
                    ON DELETE CASCADE
            )
            """
        )

    def _create_version_table(self, cursor: sqlite3.Cursor) -> None:
        """Create the schema version ledger."""
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY NOT NULL,
                applied_at TEXT NOT NULL
            )
            """
        )

    def _create_indexes(self, cursor: sqlite3.Cursor) -> None:
        """Create lookup indexes on columns present since version 1.

        Indexes on columns added later are created by the migration that
        adds the column.
        """
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_people_name ON people(name)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_people_manager ON people(manager)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_projects_name ON projects(name)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_milestones_due_date ON milestones(due_date)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_team_members_person ON team_members(person_email)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_project_resources_person "
            "ON project_resources(person_email)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_milestone_resources_person "
            "ON milestone_resources(person_email)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_stakeholder_notes_link "
            "ON stakeholder_notes(project_id, stakeholder_email)"
        )

    def apply_migrations(self) -> int:
        """Apply pending migrations in increasing version order.

        Returns:
            Number of migrations applied
        """
        runner = MigrationRunner(self.conn).discover()
        return runner.apply_all()

    def get_schema_version(self) -> int:
        """Current schema version (``MAX(version)``, 0 when empty or missing)."""
        if not self.table_exists("schema_version"):
            return 0
        row = self.conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    def list_applied(self) -> List[dict]:
        """Ledger rows ordered by version."""
        return MigrationRunner(self.conn).list_applied()

    def table_exists(self, table: str) -> bool:
        """Check whether a table exists."""
        row = self.conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
        ).fetchone()
        return row is not None

    def column_exists(self, table: str, column: str) -> bool:
        """Check whether a table has a column."""
        return column_exists(self.conn, table, column)

    def get_columns(self, table: str) -> List[str]:
        """Column names of a table in declaration order."""
        cursor = self.conn.execute(f"PRAGMA table_info({table})")
        return [row[1] for row in cursor.fetchall()]
