"""
Tracker: projects, people, teams and milestones for engineering managers.

A local SQLite store with a desktop command surface, a command-line tool and
an MCP tool server for AI assistants.
"""

__version__ = "0.1.0"

from tracker.persistence.database import Database, open_database

__all__ = ["Database", "open_database"]
