"""Note CLI commands.

Notes belong to a project, a milestone or a (project, stakeholder) pair.

Commands:
    tracker notes list KIND PARENT_ID [--email EMAIL]
    tracker notes add KIND PARENT_ID TITLE BODY [--email EMAIL]
    tracker notes update KIND NOTE_ID [--title T] [--body B]
    tracker notes delete KIND NOTE_ID

KIND is one of: project, milestone, stakeholder. For stakeholder notes
PARENT_ID is the project id and --email names the stakeholder.
"""

import logging
from typing import Any, List, Optional

import typer
from rich.markup import escape
from rich.table import Table

from tracker.cli.helpers import check_format, console, fail, format_date, open_session, print_json
from tracker.core.errors import TrackerError
from tracker.core.models import MilestoneNote, ProjectNote, StakeholderNote, parse_uuid
from tracker.persistence.repositories import ProjectRepository
from tracker.persistence.repositories.project_repository import NOTE_SPECS

logger = logging.getLogger(__name__)

notes_app = typer.Typer(
    name="notes",
    help="Project, milestone and stakeholder notes",
    no_args_is_help=True,
)


def _check_kind(kind: str, email: Optional[str] = None, needs_email: bool = True) -> str:
    kind = kind.lower()
    if kind not in NOTE_SPECS:
        raise typer.BadParameter(f"Unknown note kind '{kind}'. Use one of: {', '.join(NOTE_SPECS)}")
    if kind == "stakeholder" and needs_email and not email:
        raise typer.BadParameter("Stakeholder notes need --email")
    return kind


def _print_notes(notes: List[Any], format: str) -> None:
    if format == "json":
        print_json([n.to_dict() for n in notes])
        return

    if not notes:
        console.print("[yellow]No notes found.[/yellow]")
        return

    table = Table(title="Notes")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Created")
    table.add_column("Title")
    table.add_column("Body")
    for note in notes:
        table.add_row(
            str(note.id),
            format_date(note.to_dict()["created_at"]),
            escape(note.title),
            escape(note.body),
        )
    console.print(table)


@notes_app.command("list")
def list_notes(
    kind: str = typer.Argument(..., help="project, milestone or stakeholder"),
    parent_id: str = typer.Argument(..., help="Project or milestone ID"),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Stakeholder's email"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List notes, newest first."""
    check_format(format)
    kind = _check_kind(kind, email)
    try:
        with open_session() as conn:
            repo = ProjectRepository(conn)
            if kind == "project":
                notes = repo.get_project_notes(parent_id)
            elif kind == "milestone":
                notes = repo.get_milestone_notes(parent_id)
            else:
                notes = repo.get_stakeholder_notes(parent_id, email)
    except TrackerError as e:
        fail(e)
    _print_notes(notes, format)


@notes_app.command("add")
def add_note(
    kind: str = typer.Argument(..., help="project, milestone or stakeholder"),
    parent_id: str = typer.Argument(..., help="Project or milestone ID"),
    title: str = typer.Argument(..., help="Note title"),
    body: str = typer.Argument(..., help="Note text"),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Stakeholder's email"),
):
    """Add a note and print its id.

    Examples:

        tracker notes add project <project-id> "Kickoff" "Agreed scope"

        tracker notes add stakeholder <project-id> "1:1" "Happy" --email bob@example.com
    """
    kind = _check_kind(kind, email)
    try:
        with open_session() as conn:
            repo = ProjectRepository(conn)
            if kind == "project":
                note = repo.add_project_note(
                    ProjectNote(project_id=parse_uuid(parent_id, "Project"), title=title, body=body)
                )
            elif kind == "milestone":
                note = repo.add_milestone_note(
                    MilestoneNote(
                        milestone_id=parse_uuid(parent_id, "Milestone"), title=title, body=body
                    )
                )
            else:
                note = repo.add_stakeholder_note(
                    StakeholderNote(
                        project_id=parse_uuid(parent_id, "Project"),
                        stakeholder_email=email,
                        title=title,
                        body=body,
                    )
                )
    except TrackerError as e:
        fail(e)
    logger.debug(f"Added {kind} note {note.id}")
    console.print(f"✓ Added note [bold]{escape(note.title)}[/bold]")
    console.print(f"  ID: {note.id}")


@notes_app.command("update")
def update_note(
    kind: str = typer.Argument(..., help="project, milestone or stakeholder"),
    note_id: str = typer.Argument(..., help="Note ID"),
    title: Optional[str] = typer.Option(None, "--title", help="New title"),
    body: Optional[str] = typer.Option(None, "--body", help="New text"),
):
    """Change a note's title and/or text."""
    kind = _check_kind(kind, needs_email=False)
    changes = {k: v for k, v in {"title": title, "body": body}.items() if v is not None}
    if not changes:
        fail("Nothing to update")
    try:
        with open_session() as conn:
            note = ProjectRepository(conn).update_note_fields(kind, note_id, changes)
    except (TrackerError, ValueError) as e:
        fail(e)
    console.print(f"✓ Updated note [bold]{escape(note.title)}[/bold]")


@notes_app.command("delete")
def delete_note(
    kind: str = typer.Argument(..., help="project, milestone or stakeholder"),
    note_id: str = typer.Argument(..., help="Note ID"),
):
    """Delete a note."""
    kind = _check_kind(kind, needs_email=False)
    try:
        with open_session() as conn:
            repo = ProjectRepository(conn)
            if kind == "project":
                repo.delete_project_note(note_id)
            elif kind == "milestone":
                repo.delete_milestone_note(note_id)
            else:
                repo.delete_stakeholder_note(note_id)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Deleted note {escape(note_id)}")
