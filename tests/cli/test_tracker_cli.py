"""Tests for the tracker CLI.

Each test points TRACKER_DATA_DIR at a temporary directory, so every
invocation opens its own throwaway database file.
"""

import json

import pytest
from typer.testing import CliRunner

from tracker.cli.app import app

pytestmark = pytest.mark.unit

runner = CliRunner()


@pytest.fixture(autouse=True)
def tracker_home(tmp_path, monkeypatch):
    """Isolate the database and any .env lookup."""
    for name in ("TRACKER_DATABASE_NAME", "PROJECT_TYPES", "LOG_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TRACKER_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.chdir(tmp_path)
    return tmp_path


def invoke(*args):
    return runner.invoke(app, list(args))


def invoke_json(*args):
    result = invoke(*args, "--format", "json")
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def add_people():
    assert invoke("people", "add", "alice@example.com", "Alice Smith").exit_code == 0
    result = invoke("people", "add", "bob@example.com", "Bob Jones", "-m", "alice@example.com")
    assert result.exit_code == 0, result.output


def add_project(name="Launch", *options):
    result = invoke("projects", "add", name, *options)
    assert result.exit_code == 0, result.output
    projects = invoke_json("projects", "list")
    return next(p["id"] for p in projects if p["name"] == name)


class TestRoot:
    """Root commands."""

    def test_help(self):
        """--help lists the command groups."""
        result = invoke("--help")
        assert result.exit_code == 0
        for group in ("people", "teams", "projects", "milestones", "notes", "deadlines"):
            assert group in result.output

    def test_version(self):
        """version prints the package version."""
        from tracker import __version__

        result = invoke("version")
        assert result.exit_code == 0
        assert __version__ in result.output


class TestDatabaseCommands:
    """db init / db version."""

    def test_init(self, tracker_home):
        """init creates the file at the current schema version."""
        result = invoke("db", "init")
        assert result.exit_code == 0, result.output
        assert "Schema version: 4" in result.output
        assert (tracker_home / "data" / "tracker.db").exists()

    def test_version_json(self):
        """The migration ledger is reported."""
        data = invoke_json("db", "version")
        assert data["version"] == 4
        assert [row["version"] for row in data["applied"]] == [1, 2, 3, 4]

    def test_bad_format(self):
        """Unknown formats are usage errors."""
        result = invoke("db", "version", "--format", "xml")
        assert result.exit_code == 2


class TestPeopleCommands:
    """people ..."""

    def test_add_and_list(self):
        """Added people are listed by name."""
        add_people()
        people = invoke_json("people", "list")
        assert [p["email"] for p in people] == ["alice@example.com", "bob@example.com"]
        assert people[1]["manager"] == "alice@example.com"

    def test_empty_list(self):
        """An empty database says so."""
        result = invoke("people", "list")
        assert result.exit_code == 0
        assert "No people found." in result.output

    def test_show_missing(self):
        """Unknown people exit 1."""
        result = invoke("people", "show", "ghost@example.com")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_duplicate(self):
        """Conflicts are reported as errors."""
        add_people()
        result = invoke("people", "add", "alice@example.com", "Again")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_update_and_clear_manager(self):
        """Partial updates and --clear-manager."""
        add_people()
        result = invoke("people", "update", "bob@example.com", "--name", "Robert Jones")
        assert result.exit_code == 0, result.output
        bob = invoke_json("people", "show", "bob@example.com")
        assert bob["name"] == "Robert Jones"
        assert bob["manager"] == "alice@example.com"

        assert invoke("people", "update", "bob@example.com", "--clear-manager").exit_code == 0
        assert invoke_json("people", "show", "bob@example.com")["manager"] is None

    def test_update_nothing(self):
        """An update with no options is an error."""
        add_people()
        result = invoke("people", "update", "bob@example.com")
        assert result.exit_code == 1
        assert "Nothing to update" in result.output

    def test_cycle_rejected(self):
        """Manager cycles fail."""
        add_people()
        result = invoke("people", "update", "alice@example.com", "-m", "bob@example.com")
        assert result.exit_code == 1

    def test_chain_and_reports(self):
        """Reporting queries."""
        add_people()
        chain = invoke_json("people", "chain", "bob@example.com")
        reports = invoke_json("people", "reports", "alice@example.com")
        assert [p["email"] for p in chain] == ["alice@example.com"]
        assert [p["email"] for p in reports] == ["bob@example.com"]

    def test_delete(self):
        """delete --yes skips the prompt."""
        add_people()
        assert invoke("people", "delete", "bob@example.com", "--yes").exit_code == 0
        assert [p["email"] for p in invoke_json("people", "list")] == ["alice@example.com"]


class TestTeamCommands:
    """teams ..."""

    def test_membership(self):
        """Add a team and members."""
        add_people()
        result = invoke("teams", "add", "Platform", "-d", "Shared services")
        assert result.exit_code == 0, result.output
        assert invoke("teams", "add-member", "Platform", "bob@example.com").exit_code == 0

        members = invoke_json("teams", "members", "Platform")
        assert [p["email"] for p in members] == ["bob@example.com"]
        assert [t["name"] for t in invoke_json("teams", "of", "bob@example.com")] == ["Platform"]

        assert invoke("teams", "remove-member", "Platform", "bob@example.com").exit_code == 0
        assert invoke_json("teams", "members", "Platform") == []

    def test_unknown_team(self):
        """Adding to a missing team names it."""
        add_people()
        result = invoke("teams", "add-member", "Nope", "bob@example.com")
        assert result.exit_code == 1
        assert "Team not found: Nope" in result.output


class TestProjectCommands:
    """projects, milestones, stakeholders, notes and deadlines."""

    def test_add_and_show(self):
        """A project with milestones and stakeholders."""
        add_people()
        project_id = add_project(
            "Launch", "--type", "team", "-m", "alice@example.com", "--due", "2026-12-01"
        )

        result = invoke("milestones", "add", project_id, "1", "Beta", "--due", "2026-06-01")
        assert result.exit_code == 0, result.output
        result = invoke("stakeholders", "add", project_id, "bob@example.com", "--role", "Sponsor")
        assert result.exit_code == 0, result.output

        data = invoke_json("projects", "show", project_id)
        assert data["type"] == "Team"
        assert [m["name"] for m in data["milestones"]] == ["Beta"]
        assert [s["stakeholder_email"] for s in data["stakeholders"]] == ["bob@example.com"]

        milestones = invoke_json("milestones", "list", project_id)
        assert [m["number"] for m in milestones] == [1]

    def test_invalid_type(self):
        """Types outside the configured list are usage errors."""
        result = invoke("projects", "add", "Launch", "--type", "Hobby")
        assert result.exit_code == 2

    def test_invalid_due(self):
        """Unparseable dates are usage errors."""
        result = invoke("projects", "add", "Launch", "--due", "soon")
        assert result.exit_code == 2

    def test_malformed_id(self):
        """Malformed ids fail cleanly."""
        result = invoke("projects", "show", "not-a-uuid")
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_duplicate_milestone(self):
        """Milestone numbers are unique within a project."""
        project_id = add_project()
        assert invoke("milestones", "add", project_id, "1", "Beta").exit_code == 0
        result = invoke("milestones", "add", project_id, "1", "Again")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_resources(self):
        """assign / unassign people on a project."""
        add_people()
        project_id = add_project()
        assert invoke("projects", "assign", project_id, "bob@example.com", "-r", "Dev").exit_code == 0
        resources = invoke_json("projects", "resources", project_id)
        assert [(r["person_email"], r["role"]) for r in resources] == [("bob@example.com", "Dev")]
        assert invoke("projects", "unassign", project_id, "bob@example.com").exit_code == 0
        assert invoke_json("projects", "resources", project_id) == []

    def test_notes(self):
        """Project and stakeholder notes."""
        add_people()
        project_id = add_project()
        assert invoke("notes", "add", "project", project_id, "Kickoff", "Went well").exit_code == 0
        notes = invoke_json("notes", "list", "project", project_id)
        assert [n["title"] for n in notes] == ["Kickoff"]

        result = invoke("notes", "update", "project", notes[0]["id"], "--body", "Went great")
        assert result.exit_code == 0, result.output
        assert invoke_json("notes", "list", "project", project_id)[0]["body"] == "Went great"

        assert invoke("stakeholders", "add", project_id, "bob@example.com").exit_code == 0
        result = invoke(
            "notes", "add", "stakeholder", project_id, "1:1", "Fine", "--email", "bob@example.com"
        )
        assert result.exit_code == 0, result.output
        notes = invoke_json("notes", "list", "stakeholder", project_id, "-e", "bob@example.com")
        assert [n["title"] for n in notes] == ["1:1"]

    def test_stakeholder_note_needs_email(self):
        """Stakeholder notes require --email."""
        project_id = add_project()
        result = invoke("notes", "add", "stakeholder", project_id, "1:1", "Fine")
        assert result.exit_code == 2

    def test_deadlines(self):
        """Deadlines come back earliest first."""
        project_id = add_project("Launch", "--due", "2026-12-01")
        assert invoke("milestones", "add", project_id, "1", "Beta", "--due", "2026-06-01").exit_code == 0

        deadlines = invoke_json("deadlines")
        assert [(d["kind"], d["name"]) for d in deadlines] == [
            ("milestone", "Beta"),
            ("project", "Launch"),
        ]
        later = invoke_json("deadlines", "--since", "2026-07-01")
        assert [d["name"] for d in later] == ["Launch"]

    def test_no_deadlines(self):
        """Empty deadline list."""
        result = invoke("deadlines")
        assert result.exit_code == 0
        assert "No deadlines found." in result.output

    def test_delete_project(self):
        """delete --yes removes the project."""
        project_id = add_project()
        assert invoke("projects", "delete", project_id, "--yes").exit_code == 0
        assert invoke_json("projects", "list") == []


class TestBracketedText:
    """User text containing square brackets is printed as typed."""

    def test_error_with_closing_tag(self):
        """An id that looks like a closing tag still yields a clean error."""
        result = invoke("projects", "show", "[/bold]oops")
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "[/bold]oops" in result.output

    def test_error_with_style_tag(self):
        """Errors echo bracketed keys unaltered."""
        result = invoke("people", "delete", "[red]x@example.com", "--yes")
        assert result.exit_code == 1
        assert "Person not found: [red]x@example.com" in result.output

    def test_table_cells(self):
        """Bracketed names survive table rendering."""
        result = invoke("people", "add", "carol@example.com", "[Contractor] Carol")
        assert result.exit_code == 0, result.output
        assert "[Contractor] Carol" in result.output

        result = invoke("people", "list")
        assert result.exit_code == 0, result.output
        assert "[Contractor] Carol" in result.output

    def test_project_show(self):
        """Project names with brackets show up in the detail view."""
        project_id = add_project("[WIP] Launch")
        result = invoke("projects", "show", project_id)
        assert result.exit_code == 0, result.output
        assert "[WIP] Launch" in result.output
