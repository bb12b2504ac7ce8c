"""Tests for the migration engine and migrations 002-004."""

import sqlite3

import pytest

from tracker.core.errors import MigrationError
from tracker.persistence.database import open_database
from tracker.persistence.migrations import (
    Migration,
    MigrationRunner,
    add_column,
    column_exists,
)
from tracker.persistence.repositories import PersonRepository, ProjectRepository
from tracker.persistence.schema_manager import SchemaManager

pytestmark = pytest.mark.unit

CREATED = "2024-01-01T00:00:00.000000+00:00"
PROJECT_ID = "11111111-1111-1111-1111-111111111111"
MILESTONE_ID = "22222222-2222-2222-2222-222222222222"


def build_legacy_database(path):
    """Write a version-1 file: no project type, team columns or note updated_at."""
    raw = sqlite3.connect(str(path))
    raw.executescript(
        f"""
        CREATE TABLE people (
            email TEXT PRIMARY KEY NOT NULL,
            name TEXT NOT NULL,
            team TEXT,
            manager TEXT REFERENCES people(email),
            notes TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        CREATE TABLE projects (
            id TEXT PRIMARY KEY NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            requirements_owner TEXT REFERENCES people(email),
            technical_lead TEXT REFERENCES people(email),
            manager TEXT REFERENCES people(email),
            due_date TEXT,
            jira_initiative TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        CREATE TABLE milestones (
            id TEXT PRIMARY KEY NOT NULL,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            number INTEGER NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            technical_lead TEXT REFERENCES people(email),
            design_doc_url TEXT,
            due_date TEXT,
            jira_epic TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE (project_id, number)
        );
        CREATE TABLE project_stakeholders (
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            stakeholder_email TEXT NOT NULL REFERENCES people(email),
            role TEXT,
            created_at TEXT NOT NULL,
            PRIMARY KEY (project_id, stakeholder_email)
        );
        CREATE TABLE project_notes (
            id TEXT PRIMARY KEY NOT NULL,
            project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            body TEXT NOT NULL,
            created_at TEXT NOT NULL
        );
        CREATE TABLE milestone_notes (
            id TEXT PRIMARY KEY NOT NULL,
            milestone_id TEXT NOT NULL REFERENCES milestones(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            body TEXT NOT NULL,
            created_at TEXT NOT NULL
        );
        CREATE TABLE stakeholder_notes (
            id TEXT PRIMARY KEY NOT NULL,
            project_id TEXT NOT NULL,
            stakeholder_email TEXT NOT NULL,
            title TEXT NOT NULL,
            body TEXT NOT NULL,
            created_at TEXT NOT NULL,
            FOREIGN KEY (project_id, stakeholder_email)
                REFERENCES project_stakeholders(project_id, stakeholder_email)
                ON DELETE CASCADE
        );
        CREATE TABLE schema_version (
            version INTEGER PRIMARY KEY NOT NULL,
            applied_at TEXT NOT NULL
        );
        INSERT INTO schema_version VALUES (1, '{CREATED}');

        INSERT INTO people VALUES
            ('alice@example.com', 'Alice', NULL, NULL, NULL, '{CREATED}', '{CREATED}');
        INSERT INTO projects VALUES
            ('{PROJECT_ID}', 'Legacy', NULL, NULL, NULL, 'alice@example.com',
             NULL, NULL, '{CREATED}', '{CREATED}');
        INSERT INTO milestones VALUES
            ('{MILESTONE_ID}', '{PROJECT_ID}', 1, 'Alpha', NULL, NULL, NULL,
             NULL, NULL, '{CREATED}', '{CREATED}');
        INSERT INTO project_stakeholders VALUES
            ('{PROJECT_ID}', 'alice@example.com', 'Sponsor', '{CREATED}');
        INSERT INTO project_notes VALUES
            ('33333333-3333-3333-3333-333333333333', '{PROJECT_ID}', 'Kickoff', 'Went well', '{CREATED}');
        INSERT INTO milestone_notes VALUES
            ('44444444-4444-4444-4444-444444444444', '{MILESTONE_ID}', 'Plan', 'Drafted', '{CREATED}');
        INSERT INTO stakeholder_notes VALUES
            ('55555555-5555-5555-5555-555555555555', '{PROJECT_ID}', 'alice@example.com',
             '1:1', 'Happy', '{CREATED}');
        """
    )
    raw.commit()
    raw.close()


class TestLegacyUpgrade:
    """Version-1 files are brought forward without losing data."""

    @pytest.fixture
    def upgraded(self, temp_db_path):
        build_legacy_database(temp_db_path)
        conn = open_database(temp_db_path)
        yield conn
        conn.close()

    def test_reaches_current_version(self, upgraded):
        """Migrations 2-4 are recorded after the seeded row."""
        applied = SchemaManager(upgraded).list_applied()
        assert [row["version"] for row in applied] == [1, 2, 3, 4]
        assert applied[0]["applied_at"] == CREATED

    def test_existing_projects_default_to_personal(self, upgraded):
        """Migration 2 gives old projects the default type."""
        project = ProjectRepository(upgraded).find_by_id(PROJECT_ID)
        assert project.project_type == "Personal"
        assert project.team is None

    def test_note_updated_at_backfilled(self, upgraded):
        """Migration 3 copies created_at into updated_at."""
        repo = ProjectRepository(upgraded)
        notes = (
            repo.get_project_notes(PROJECT_ID)
            + repo.get_milestone_notes(MILESTONE_ID)
            + repo.get_stakeholder_notes(PROJECT_ID, "alice@example.com")
        )
        assert len(notes) == 3
        for note in notes:
            assert note.updated_at == note.created_at

    def test_new_tables_usable(self, upgraded):
        """Tables missing from the legacy file are created and work."""
        repo = ProjectRepository(upgraded)
        resource = repo.add_project_resource(PROJECT_ID, "alice@example.com", "Engineer")
        assert resource.role == "Engineer"
        assert PersonRepository(upgraded).find_by_email("alice@example.com").name == "Alice"

    def test_team_columns_and_indexes(self, upgraded):
        """Migration 4 adds team columns with their indexes."""
        assert column_exists(upgraded, "projects", "team")
        assert column_exists(upgraded, "milestones", "team")
        names = {
            row[0]
            for row in upgraded.execute("SELECT name FROM sqlite_master WHERE type = 'index'")
        }
        assert {"idx_projects_team", "idx_milestones_team"} <= names

    def test_reopen_applies_nothing(self, temp_db_path, upgraded):
        """A second open after the upgrade is a no-op."""
        ledger = SchemaManager(upgraded).list_applied()
        again = open_database(temp_db_path)
        try:
            assert SchemaManager(again).list_applied() == ledger
        finally:
            again.close()


class TestMigrationHelpers:
    """add_column and the runner on a scratch connection."""

    @pytest.fixture
    def raw(self):
        conn = sqlite3.connect(":memory:", isolation_level=None)
        conn.execute("CREATE TABLE things (id INTEGER PRIMARY KEY)")
        conn.execute(
            "CREATE TABLE schema_version (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
        )
        yield conn
        conn.close()

    def test_add_column_twice(self, raw):
        """The second add reports the column already present."""
        assert add_column(raw, "things", "label", "TEXT") is True
        assert add_column(raw, "things", "label", "TEXT") is False
        assert column_exists(raw, "things", "label")

    def test_add_column_other_errors_propagate(self, raw):
        """Errors other than a duplicate column are raised."""
        with pytest.raises(sqlite3.OperationalError):
            add_column(raw, "no_such_table", "label", "TEXT")

    def test_register_rejects_duplicate_versions(self, raw):
        """Two migrations cannot share a version."""
        runner = MigrationRunner(raw)
        runner.register(_AddLabel(version=7))
        with pytest.raises(ValueError):
            runner.register(_AddLabel(version=7))

    def test_failed_migration_rolls_back(self, raw):
        """A failing migration leaves neither its changes nor a ledger row."""
        runner = MigrationRunner(raw)
        runner.register(_Broken(version=2))
        with pytest.raises(sqlite3.OperationalError):
            runner.apply_all()
        assert not column_exists(raw, "things", "label")
        assert runner.list_applied() == []

    def test_already_present_is_recorded(self, raw):
        """A migration whose target exists is recorded without running."""
        raw.execute("ALTER TABLE things ADD COLUMN label TEXT")
        runner = MigrationRunner(raw)
        runner.register(_AddLabel(version=2))
        assert runner.apply_all() == 1
        assert [row["version"] for row in runner.list_applied()] == [2]
        assert runner.apply_all() == 0


class TestMigrationFailureOnOpen:
    """Migration failures surface as MigrationError."""

    def test_corrupt_file(self, temp_db_path):
        """A file that is not a database cannot be opened."""
        temp_db_path.write_bytes(b"this is not a sqlite database" * 100)
        with pytest.raises(MigrationError):
            open_database(temp_db_path)


class _AddLabel(Migration):
    def __init__(self, version):
        super().__init__(version=version, description="Add label to things")

    def can_apply(self, conn):
        return not column_exists(conn, "things", "label")

    def apply(self, conn):
        add_column(conn, "things", "label", "TEXT")


class _Broken(_AddLabel):
    def apply(self, conn):
        add_column(conn, "things", "label", "TEXT")
        conn.execute("SELECT * FROM missing_table")
