"""Migration 004: Assign projects and milestones to teams.

Adds a nullable ``team`` reference to ``projects`` and ``milestones``.
Deleting a team clears the assignment rather than the row.

Migration: 004
"""

import logging
import sqlite3

from tracker.persistence.migrations import Migration, add_column, column_exists

logger = logging.getLogger(__name__)

TEAM_COLUMNS = {
    "projects": "idx_projects_team",
    "milestones": "idx_milestones_team",
}


class TeamAssignments(Migration):
    """Add team columns to projects and milestones."""

    def __init__(self):
        super().__init__(version=4, description="Add team to projects and milestones")

    def can_apply(self, conn: sqlite3.Connection) -> bool:
        for table, index in TEAM_COLUMNS.items():
            if not column_exists(conn, table, "team"):
                return True
            row = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'index' AND name = ?", (index,)
            ).fetchone()
            if row is None:
                return True
        return False

    def apply(self, conn: sqlite3.Connection) -> None:
        for table, index in TEAM_COLUMNS.items():
            add_column(conn, table, "team", "TEXT REFERENCES teams(name) ON DELETE SET NULL")
            conn.execute(f"CREATE INDEX IF NOT EXISTS {index} ON {table}(team)")


# Migration instance for auto-discovery
migration = TeamAssignments()
