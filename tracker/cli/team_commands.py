"""Team CLI commands.

Commands:
    tracker teams list                       List teams
    tracker teams search QUERY               Search by name
    tracker teams show NAME                  Show a team with its members
    tracker teams add NAME                   Create a team
    tracker teams update NAME                Change description/manager
    tracker teams delete NAME                Delete a team
    tracker teams members NAME               List members
    tracker teams add-member NAME EMAIL      Add a person to a team
    tracker teams remove-member NAME EMAIL   Remove a person from a team
    tracker teams of EMAIL                   Teams a person belongs to
"""

from typing import List, Optional

import typer
from rich.markup import escape
from rich.table import Table

from tracker.cli.helpers import check_format, console, fail, open_session, print_json
from tracker.cli.people_commands import print_people
from tracker.core.errors import TrackerError
from tracker.core.models import Team
from tracker.persistence.repositories import TeamRepository

teams_app = typer.Typer(
    name="teams",
    help="Teams and membership",
    no_args_is_help=True,
)


def _print_teams(teams: List[Team], format: str, title: str) -> None:
    if format == "json":
        print_json([t.to_dict() for t in teams])
        return

    if not teams:
        console.print("[yellow]No teams found.[/yellow]")
        return

    table = Table(title=escape(title))
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Manager")
    table.add_column("Description")
    for team in teams:
        table.add_row(
            escape(team.name), escape(team.manager or ""), escape(team.description or "")
        )
    console.print(table)


@teams_app.command("list")
def list_teams(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List all teams."""
    check_format(format)
    try:
        with open_session() as conn:
            teams = TeamRepository(conn).list_all()
    except TrackerError as e:
        fail(e)
    _print_teams(teams, format, "Teams")


@teams_app.command("search")
def search_teams(
    query: str = typer.Argument(..., help="Part of the name to match"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Search teams by name."""
    check_format(format)
    try:
        with open_session() as conn:
            teams = TeamRepository(conn).search_by_name(query)
    except TrackerError as e:
        fail(e)
    _print_teams(teams, format, f"Teams matching '{query}'")


@teams_app.command("show")
def show_team(
    name: str = typer.Argument(..., help="Team name"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Show a team and its members."""
    check_format(format)
    try:
        with open_session() as conn:
            repo = TeamRepository(conn)
            team = repo.find_by_name(name)
            members = repo.get_members(name) if team else []
    except TrackerError as e:
        fail(e)
    if team is None:
        fail(f"Team not found: {name}")

    if format == "json":
        data = team.to_dict()
        data["members"] = [m.to_dict() for m in members]
        print_json(data)
        return

    console.print(f"[bold]{escape(team.name)}[/bold]")
    if team.description:
        console.print(f"  {escape(team.description)}")
    console.print(f"  Manager: {escape(team.manager or '-')}")
    print_people(members, format, "Members")


@teams_app.command("add")
def add_team(
    name: str = typer.Argument(..., help="Team name (unique)"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
    manager: Optional[str] = typer.Option(None, "--manager", "-m", help="Manager's email"),
):
    """Create a team."""
    try:
        with open_session() as conn:
            team = TeamRepository(conn).create(
                Team(name=name, description=description, manager=manager)
            )
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Added team [bold]{escape(team.name)}[/bold]")


@teams_app.command("update")
def update_team(
    name: str = typer.Argument(..., help="Team name"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New description"),
    manager: Optional[str] = typer.Option(None, "--manager", "-m", help="New manager's email"),
):
    """Change a team's description or manager."""
    changes = {
        k: v for k, v in {"description": description, "manager": manager}.items() if v is not None
    }
    if not changes:
        fail("Nothing to update")
    try:
        with open_session() as conn:
            TeamRepository(conn).update_fields(name, changes)
    except (TrackerError, ValueError) as e:
        fail(e)
    console.print(f"✓ Updated team [bold]{escape(name)}[/bold]")


@teams_app.command("delete")
def delete_team(
    name: str = typer.Argument(..., help="Team name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a team; memberships go with it."""
    if not yes and not typer.confirm(f"Delete team {name}?"):
        raise typer.Exit(0)
    try:
        with open_session() as conn:
            TeamRepository(conn).delete(name)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Deleted team {escape(name)}")


@teams_app.command("members")
def team_members(
    name: str = typer.Argument(..., help="Team name"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List the members of a team."""
    check_format(format)
    try:
        with open_session() as conn:
            members = TeamRepository(conn).get_members(name)
    except TrackerError as e:
        fail(e)
    print_people(members, format, f"Members of {name}")


@teams_app.command("add-member")
def add_member(
    name: str = typer.Argument(..., help="Team name"),
    email: str = typer.Argument(..., help="Person's email"),
):
    """Add a person to a team."""
    try:
        with open_session() as conn:
            TeamRepository(conn).add_member(name, email)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Added {escape(email)} to [bold]{escape(name)}[/bold]")


@teams_app.command("remove-member")
def remove_member(
    name: str = typer.Argument(..., help="Team name"),
    email: str = typer.Argument(..., help="Person's email"),
):
    """Remove a person from a team."""
    try:
        with open_session() as conn:
            TeamRepository(conn).remove_member(name, email)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Removed {escape(email)} from [bold]{escape(name)}[/bold]")


@teams_app.command("of")
def teams_of(
    email: str = typer.Argument(..., help="Person's email"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List the teams a person belongs to."""
    check_format(format)
    try:
        with open_session() as conn:
            teams = TeamRepository(conn).get_teams_for_person(email)
    except TrackerError as e:
        fail(e)
    _print_teams(teams, format, f"Teams of {email}")
