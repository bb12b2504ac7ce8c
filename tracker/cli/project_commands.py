"""Project, milestone and stakeholder CLI commands.

Commands:
    tracker projects list|search|show|add|update|delete
    tracker projects resources|assign|unassign PROJECT_ID ...
    tracker milestones list|add|update|delete
    tracker milestones resources|assign|unassign MILESTONE_ID ...
    tracker stakeholders list|add|update|remove PROJECT_ID ...

Project and milestone ids are the UUIDs shown by ``list``.
"""

from typing import Any, Dict, List, Optional

import typer
from rich.markup import escape
from rich.table import Table

from tracker.cli.helpers import (
    check_format,
    console,
    fail,
    format_date,
    load_config,
    open_session,
    parse_due,
    print_json,
)
from tracker.core.errors import TrackerError
from tracker.core.models import Milestone, Project, parse_uuid, validate_project_type
from tracker.persistence.repositories import ProjectRepository

projects_app = typer.Typer(
    name="projects",
    help="Projects (list, search, add, update, delete)",
    no_args_is_help=True,
)
milestones_app = typer.Typer(
    name="milestones",
    help="Project milestones",
    no_args_is_help=True,
)
stakeholders_app = typer.Typer(
    name="stakeholders",
    help="Project stakeholders",
    no_args_is_help=True,
)


def _check_type(value: str) -> str:
    try:
        return validate_project_type(value, load_config().get_project_types_list())
    except ValueError as e:
        raise typer.BadParameter(str(e))


def _set_fields(**fields: Any) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


def _print_projects(projects: List[Project], format: str, title: str) -> None:
    if format == "json":
        print_json([p.to_dict() for p in projects])
        return

    if not projects:
        console.print("[yellow]No projects found.[/yellow]")
        return

    table = Table(title=escape(title))
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Manager")
    table.add_column("Due")
    for project in projects:
        table.add_row(
            str(project.id),
            escape(project.name),
            escape(project.project_type),
            escape(project.manager or ""),
            format_date(project.to_dict()["due_date"]),
        )
    console.print(table)


def _print_links(links: List[Any], email_attr: str, format: str, title: str) -> None:
    if format == "json":
        print_json([link.to_dict() for link in links])
        return

    if not links:
        console.print(f"[yellow]No {escape(title.lower())} found.[/yellow]")
        return

    table = Table(title=escape(title))
    table.add_column("Email", style="cyan", no_wrap=True)
    table.add_column("Role")
    for link in links:
        table.add_row(escape(getattr(link, email_attr)), escape(link.role or ""))
    console.print(table)


# =============================================================================
# Projects
# =============================================================================


@projects_app.command("list")
def list_projects(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List all projects, ordered by name."""
    check_format(format)
    try:
        with open_session() as conn:
            projects = ProjectRepository(conn).list_all()
    except TrackerError as e:
        fail(e)
    _print_projects(projects, format, "Projects")


@projects_app.command("search")
def search_projects(
    query: str = typer.Argument(..., help="Part of the name to match"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Search projects by name."""
    check_format(format)
    try:
        with open_session() as conn:
            projects = ProjectRepository(conn).search_by_name(query)
    except TrackerError as e:
        fail(e)
    _print_projects(projects, format, f"Projects matching '{query}'")


@projects_app.command("show")
def show_project(
    project_id: str = typer.Argument(..., help="Project ID"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Show a project with its milestones and stakeholders."""
    check_format(format)
    try:
        with open_session() as conn:
            repo = ProjectRepository(conn)
            project = repo.find_by_id(project_id)
            milestones = repo.get_milestones(project_id) if project else []
            stakeholders = repo.get_stakeholders(project_id) if project else []
    except TrackerError as e:
        fail(e)
    if project is None:
        fail(f"Project not found: {project_id}")

    if format == "json":
        data = project.to_dict()
        data["milestones"] = [m.to_dict() for m in milestones]
        data["stakeholders"] = [s.to_dict() for s in stakeholders]
        print_json(data)
        return

    data = project.to_dict()
    console.print(f"[bold]{escape(project.name)}[/bold] ({escape(project.project_type)})")
    console.print(f"  ID:       {project.id}")
    if project.description:
        console.print(f"  {escape(project.description)}")
    console.print(f"  Manager:  {escape(project.manager or '-')}")
    console.print(f"  Tech lead: {escape(project.technical_lead or '-')}")
    console.print(f"  Due:      {format_date(data['due_date']) or '-'}")
    if project.jira_initiative:
        console.print(f"  Jira:     {escape(project.jira_initiative)}")
    _print_milestones(milestones, "table", "Milestones")
    _print_links(stakeholders, "stakeholder_email", "table", "Stakeholders")


@projects_app.command("add")
def add_project(
    name: str = typer.Argument(..., help="Project name"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
    project_type: str = typer.Option("Personal", "--type", "-t", help="Project type"),
    requirements_owner: Optional[str] = typer.Option(None, "--owner", help="Requirements owner's email"),
    technical_lead: Optional[str] = typer.Option(None, "--tech-lead", help="Technical lead's email"),
    manager: Optional[str] = typer.Option(None, "--manager", "-m", help="Manager's email"),
    team: Optional[str] = typer.Option(None, "--team", help="Owning team"),
    due: Optional[str] = typer.Option(None, "--due", help="Due date (YYYY-MM-DD)"),
    jira: Optional[str] = typer.Option(None, "--jira", help="Jira initiative key"),
):
    """Create a project and print its id.

    Example:

        tracker projects add "Launch" --type Team --manager alice@example.com --due 2026-12-01
    """
    project = Project(
        name=name,
        description=description,
        project_type=_check_type(project_type),
        requirements_owner=requirements_owner,
        technical_lead=technical_lead,
        manager=manager,
        team=team,
        due_date=parse_due(due),
        jira_initiative=jira,
    )
    try:
        with open_session() as conn:
            project = ProjectRepository(conn).create(project)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Added project [bold]{escape(project.name)}[/bold]")
    console.print(f"  ID: {project.id}")


@projects_app.command("update")
def update_project(
    project_id: str = typer.Argument(..., help="Project ID"),
    name: Optional[str] = typer.Option(None, "--name", help="New name"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New description"),
    project_type: Optional[str] = typer.Option(None, "--type", "-t", help="New project type"),
    requirements_owner: Optional[str] = typer.Option(None, "--owner", help="Requirements owner's email"),
    technical_lead: Optional[str] = typer.Option(None, "--tech-lead", help="Technical lead's email"),
    manager: Optional[str] = typer.Option(None, "--manager", "-m", help="Manager's email"),
    team: Optional[str] = typer.Option(None, "--team", help="Owning team"),
    due: Optional[str] = typer.Option(None, "--due", help="Due date (YYYY-MM-DD)"),
    jira: Optional[str] = typer.Option(None, "--jira", help="Jira initiative key"),
):
    """Change a project's fields; options not given are left alone."""
    changes = _set_fields(
        name=name,
        description=description,
        project_type=_check_type(project_type) if project_type else None,
        requirements_owner=requirements_owner,
        technical_lead=technical_lead,
        manager=manager,
        team=team,
        due_date=parse_due(due),
        jira_initiative=jira,
    )
    if not changes:
        fail("Nothing to update")
    try:
        with open_session() as conn:
            project = ProjectRepository(conn).update_fields(project_id, changes)
    except (TrackerError, ValueError) as e:
        fail(e)
    console.print(f"✓ Updated project [bold]{escape(project.name)}[/bold]")


@projects_app.command("delete")
def delete_project(
    project_id: str = typer.Argument(..., help="Project ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a project with its milestones, stakeholders, resources and notes."""
    if not yes and not typer.confirm(f"Delete project {project_id} and everything it owns?"):
        raise typer.Exit(0)
    try:
        with open_session() as conn:
            ProjectRepository(conn).delete(project_id)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Deleted project {escape(project_id)}")


@projects_app.command("resources")
def project_resources(
    project_id: str = typer.Argument(..., help="Project ID"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List the people assigned to a project."""
    check_format(format)
    try:
        with open_session() as conn:
            resources = ProjectRepository(conn).get_project_resources(project_id)
    except TrackerError as e:
        fail(e)
    _print_links(resources, "person_email", format, "Resources")


@projects_app.command("assign")
def assign_project(
    project_id: str = typer.Argument(..., help="Project ID"),
    email: str = typer.Argument(..., help="Person's email"),
    role: Optional[str] = typer.Option(None, "--role", "-r", help="Role on the project"),
):
    """Assign a person to a project."""
    try:
        with open_session() as conn:
            ProjectRepository(conn).add_project_resource(project_id, email, role)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Assigned {escape(email)} to project {escape(project_id)}")


@projects_app.command("unassign")
def unassign_project(
    project_id: str = typer.Argument(..., help="Project ID"),
    email: str = typer.Argument(..., help="Person's email"),
):
    """Remove a person's assignment to a project."""
    try:
        with open_session() as conn:
            ProjectRepository(conn).remove_project_resource(project_id, email)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Unassigned {escape(email)} from project {escape(project_id)}")


# =============================================================================
# Milestones
# =============================================================================


def _print_milestones(milestones: List[Milestone], format: str, title: str) -> None:
    if format == "json":
        print_json([m.to_dict() for m in milestones])
        return

    if not milestones:
        console.print("[yellow]No milestones found.[/yellow]")
        return

    table = Table(title=escape(title))
    table.add_column("#", style="cyan", justify="right")
    table.add_column("ID", no_wrap=True)
    table.add_column("Name")
    table.add_column("Tech lead")
    table.add_column("Due")
    for milestone in milestones:
        table.add_row(
            str(milestone.number),
            str(milestone.id),
            escape(milestone.name),
            escape(milestone.technical_lead or ""),
            format_date(milestone.to_dict()["due_date"]),
        )
    console.print(table)


@milestones_app.command("list")
def list_milestones(
    project_id: str = typer.Argument(..., help="Project ID"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List a project's milestones in number order."""
    check_format(format)
    try:
        with open_session() as conn:
            milestones = ProjectRepository(conn).get_milestones(project_id)
    except TrackerError as e:
        fail(e)
    _print_milestones(milestones, format, "Milestones")


@milestones_app.command("add")
def add_milestone(
    project_id: str = typer.Argument(..., help="Project ID"),
    number: int = typer.Argument(..., help="Milestone number (unique within the project)"),
    name: str = typer.Argument(..., help="Milestone name"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
    technical_lead: Optional[str] = typer.Option(None, "--tech-lead", help="Technical lead's email"),
    team: Optional[str] = typer.Option(None, "--team", help="Owning team"),
    design_doc: Optional[str] = typer.Option(None, "--design-doc", help="Design doc URL"),
    due: Optional[str] = typer.Option(None, "--due", help="Due date (YYYY-MM-DD)"),
    jira: Optional[str] = typer.Option(None, "--jira", help="Jira epic key"),
):
    """Add a milestone to a project and print its id."""
    try:
        with open_session() as conn:
            milestone = ProjectRepository(conn).add_milestone(
                Milestone(
                    project_id=parse_uuid(project_id, "Project"),
                    number=number,
                    name=name,
                    description=description,
                    technical_lead=technical_lead,
                    team=team,
                    design_doc_url=design_doc,
                    due_date=parse_due(due),
                    jira_epic=jira,
                )
            )
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Added milestone {milestone.number}: [bold]{escape(milestone.name)}[/bold]")
    console.print(f"  ID: {milestone.id}")


@milestones_app.command("update")
def update_milestone(
    milestone_id: str = typer.Argument(..., help="Milestone ID"),
    number: Optional[int] = typer.Option(None, "--number", help="New number"),
    name: Optional[str] = typer.Option(None, "--name", help="New name"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New description"),
    technical_lead: Optional[str] = typer.Option(None, "--tech-lead", help="Technical lead's email"),
    team: Optional[str] = typer.Option(None, "--team", help="Owning team"),
    design_doc: Optional[str] = typer.Option(None, "--design-doc", help="Design doc URL"),
    due: Optional[str] = typer.Option(None, "--due", help="Due date (YYYY-MM-DD)"),
    jira: Optional[str] = typer.Option(None, "--jira", help="Jira epic key"),
):
    """Change a milestone's fields; options not given are left alone."""
    changes = _set_fields(
        number=number,
        name=name,
        description=description,
        technical_lead=technical_lead,
        team=team,
        design_doc_url=design_doc,
        due_date=parse_due(due),
        jira_epic=jira,
    )
    if not changes:
        fail("Nothing to update")
    try:
        with open_session() as conn:
            milestone = ProjectRepository(conn).update_milestone_fields(milestone_id, changes)
    except (TrackerError, ValueError) as e:
        fail(e)
    console.print(f"✓ Updated milestone {milestone.number}: [bold]{escape(milestone.name)}[/bold]")


@milestones_app.command("delete")
def delete_milestone(
    milestone_id: str = typer.Argument(..., help="Milestone ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a milestone with its notes and resources."""
    if not yes and not typer.confirm(f"Delete milestone {milestone_id}?"):
        raise typer.Exit(0)
    try:
        with open_session() as conn:
            ProjectRepository(conn).delete_milestone(milestone_id)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Deleted milestone {escape(milestone_id)}")


@milestones_app.command("resources")
def milestone_resources(
    milestone_id: str = typer.Argument(..., help="Milestone ID"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List the people assigned to a milestone."""
    check_format(format)
    try:
        with open_session() as conn:
            resources = ProjectRepository(conn).get_milestone_resources(milestone_id)
    except TrackerError as e:
        fail(e)
    _print_links(resources, "person_email", format, "Resources")


@milestones_app.command("assign")
def assign_milestone(
    milestone_id: str = typer.Argument(..., help="Milestone ID"),
    email: str = typer.Argument(..., help="Person's email"),
    role: Optional[str] = typer.Option(None, "--role", "-r", help="Role on the milestone"),
):
    """Assign a person to a milestone."""
    try:
        with open_session() as conn:
            ProjectRepository(conn).add_milestone_resource(milestone_id, email, role)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Assigned {escape(email)} to milestone {escape(milestone_id)}")


@milestones_app.command("unassign")
def unassign_milestone(
    milestone_id: str = typer.Argument(..., help="Milestone ID"),
    email: str = typer.Argument(..., help="Person's email"),
):
    """Remove a person's assignment to a milestone."""
    try:
        with open_session() as conn:
            ProjectRepository(conn).remove_milestone_resource(milestone_id, email)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Unassigned {escape(email)} from milestone {escape(milestone_id)}")


# =============================================================================
# Stakeholders
# =============================================================================


@stakeholders_app.command("list")
def list_stakeholders(
    project_id: str = typer.Argument(..., help="Project ID"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List a project's stakeholders."""
    check_format(format)
    try:
        with open_session() as conn:
            stakeholders = ProjectRepository(conn).get_stakeholders(project_id)
    except TrackerError as e:
        fail(e)
    _print_links(stakeholders, "stakeholder_email", format, "Stakeholders")


@stakeholders_app.command("add")
def add_stakeholder(
    project_id: str = typer.Argument(..., help="Project ID"),
    email: str = typer.Argument(..., help="Stakeholder's email"),
    role: Optional[str] = typer.Option(None, "--role", "-r", help="Stakeholder role"),
):
    """Add a stakeholder to a project."""
    try:
        with open_session() as conn:
            ProjectRepository(conn).add_stakeholder(project_id, email, role)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Added stakeholder {escape(email)}")


@stakeholders_app.command("update")
def update_stakeholder(
    project_id: str = typer.Argument(..., help="Project ID"),
    email: str = typer.Argument(..., help="Stakeholder's email"),
    role: Optional[str] = typer.Option(None, "--role", "-r", help="New role (omit to clear)"),
):
    """Change a stakeholder's role."""
    try:
        with open_session() as conn:
            ProjectRepository(conn).update_stakeholder(project_id, email, role)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Updated stakeholder {escape(email)}")


@stakeholders_app.command("remove")
def remove_stakeholder(
    project_id: str = typer.Argument(..., help="Project ID"),
    email: str = typer.Argument(..., help="Stakeholder's email"),
):
    """Remove a stakeholder; their notes on the project are removed too."""
    try:
        with open_session() as conn:
            ProjectRepository(conn).remove_stakeholder(project_id, email)
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Removed stakeholder {escape(email)}")
