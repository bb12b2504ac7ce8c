"""People CLI commands.

Commands:
    tracker people list                  List everyone
    tracker people search QUERY          Search by name
    tracker people show EMAIL            Show one person
    tracker people add EMAIL NAME        Create a person
    tracker people update EMAIL          Change fields
    tracker people delete EMAIL          Delete a person
    tracker people reports EMAIL         Direct reports
    tracker people chain EMAIL           Management chain, nearest first
"""

from typing import List, Optional

import typer
from rich.markup import escape
from rich.table import Table

from tracker.cli.helpers import check_format, console, fail, open_session, print_json
from tracker.core.errors import TrackerError
from tracker.core.models import Person
from tracker.persistence.repositories import PersonRepository

people_app = typer.Typer(
    name="people",
    help="People (list, search, add, update, delete)",
    no_args_is_help=True,
)


def print_people(people: List[Person], format: str, title: str) -> None:
    if format == "json":
        print_json([p.to_dict() for p in people])
        return

    if not people:
        console.print("[yellow]No people found.[/yellow]")
        return

    table = Table(title=escape(title))
    table.add_column("Email", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Team")
    table.add_column("Manager")
    for person in people:
        table.add_row(
            escape(person.email),
            escape(person.name),
            escape(person.team or ""),
            escape(person.manager or ""),
        )
    console.print(table)


@people_app.command("list")
def list_people(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List all people, ordered by name."""
    check_format(format)
    try:
        with open_session() as conn:
            people = PersonRepository(conn).list_all()
    except TrackerError as e:
        fail(e)
    print_people(people, format, "People")


@people_app.command("search")
def search_people(
    query: str = typer.Argument(..., help="Part of the name to match"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Search people by name (case-insensitive, at most 20 results)."""
    check_format(format)
    try:
        with open_session() as conn:
            people = PersonRepository(conn).search_by_name(query)
    except TrackerError as e:
        fail(e)
    print_people(people, format, f"People matching '{query}'")


@people_app.command("show")
def show_person(
    email: str = typer.Argument(..., help="Email address"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Show one person."""
    check_format(format)
    try:
        with open_session() as conn:
            person = PersonRepository(conn).find_by_email(email)
    except TrackerError as e:
        fail(e)
    if person is None:
        fail(f"Person not found: {email}")

    if format == "json":
        print_json(person.to_dict())
        return

    console.print(f"[bold]{escape(person.name)}[/bold] <{escape(person.email)}>")
    console.print(f"  Team:    {escape(person.team or '-')}")
    console.print(f"  Manager: {escape(person.manager or '-')}")
    if person.notes:
        console.print(f"  Notes:   {escape(person.notes)}")


@people_app.command("add")
def add_person(
    email: str = typer.Argument(..., help="Email address (unique)"),
    name: str = typer.Argument(..., help="Display name"),
    team: Optional[str] = typer.Option(None, "--team", help="Team name"),
    manager: Optional[str] = typer.Option(None, "--manager", "-m", help="Manager's email"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-text notes"),
):
    """Create a person.

    Example:

        tracker people add bob@example.com "Bob Jones" --manager alice@example.com
    """
    try:
        with open_session() as conn:
            person = PersonRepository(conn).create(
                Person(email=email, name=name, team=team, manager=manager, notes=notes)
            )
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Added [bold]{escape(person.name)}[/bold] <{escape(person.email)}>")


@people_app.command("update")
def update_person(
    email: str = typer.Argument(..., help="Email address"),
    name: Optional[str] = typer.Option(None, "--name", help="New display name"),
    team: Optional[str] = typer.Option(None, "--team", help="New team name"),
    manager: Optional[str] = typer.Option(None, "--manager", "-m", help="New manager's email"),
    notes: Optional[str] = typer.Option(None, "--notes", help="New notes"),
    clear_manager: bool = typer.Option(False, "--clear-manager", help="Remove the manager"),
):
    """Change a person's fields; options not given are left alone."""
    changes = {
        k: v
        for k, v in {"name": name, "team": team, "manager": manager, "notes": notes}.items()
        if v is not None
    }
    if clear_manager:
        changes["manager"] = None
    if not changes:
        fail("Nothing to update")

    try:
        with open_session() as conn:
            person = PersonRepository(conn).update_fields(email, changes)
    except (TrackerError, ValueError) as e:
        fail(e)
    console.print(f"✓ Updated [bold]{escape(person.email)}[/bold]")


@people_app.command("delete")
def delete_person(
    email: str = typer.Argument(..., help="Email address"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a person."""
    if not yes and not typer.confirm(f"Delete {email}?"):
        raise typer.Exit(0)
    try:
        with open_session() as conn:
            PersonRepository(conn).delete(email)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Deleted {escape(email)}")


@people_app.command("reports")
def direct_reports(
    email: str = typer.Argument(..., help="Manager's email"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List the people who report directly to EMAIL."""
    check_format(format)
    try:
        with open_session() as conn:
            people = PersonRepository(conn).get_direct_reports(email)
    except TrackerError as e:
        fail(e)
    print_people(people, format, f"Direct reports of {email}")


@people_app.command("chain")
def management_chain(
    email: str = typer.Argument(..., help="Email address"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Show the managers above EMAIL, nearest first."""
    check_format(format)
    try:
        with open_session() as conn:
            people = PersonRepository(conn).get_management_chain(email)
    except TrackerError as e:
        fail(e)
    print_people(people, format, f"Management chain of {email}")
