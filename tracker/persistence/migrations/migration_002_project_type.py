"""Migration 002: Add project type.

Adds ``projects.type`` (Personal / Team / Company). Existing rows take the
default 'Personal'.

Migration: 002
"""

import logging
import sqlite3

from tracker.persistence.migrations import Migration, add_column, column_exists

logger = logging.getLogger(__name__)


class ProjectType(Migration):
    """Add type column to projects."""

    def __init__(self):
        super().__init__(version=2, description="Add type column to projects")

    def can_apply(self, conn: sqlite3.Connection) -> bool:
        return not column_exists(conn, "projects", "type")

    def apply(self, conn: sqlite3.Connection) -> None:
        add_column(conn, "projects", "type", "TEXT NOT NULL DEFAULT 'Personal'")


# Migration instance for auto-discovery
migration = ProjectType()
