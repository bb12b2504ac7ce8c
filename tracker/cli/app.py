"""Tracker CLI.

Every command opens the tracker database, runs one repository operation and
closes it again; nothing needs to be running in the background.

Command structure: tracker <group> <verb> [args] [--options]

Examples:
    tracker db init
    tracker people add alice@example.com "Alice Smith"
    tracker projects add "Launch" --type Team --manager alice@example.com
    tracker milestones add <project-id> 1 "Beta"
    tracker deadlines --limit 10
    tracker serve --transport sse
"""

from typing import Optional

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
    state,
)
from tracker.core.errors import TrackerError
from tracker.persistence.repositories import ProjectRepository
from tracker.persistence.schema_manager import CURRENT_SCHEMA_VERSION, SchemaManager

app = typer.Typer(
    name="tracker",
    help="Project tracker: projects, people, teams and milestones",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Project tracker command-line interface."""
    state["verbose"] = verbose


@app.command()
def version():
    """Show tracker version."""
    from tracker import __version__

    console.print(f"tracker version: [bold green]{__version__}[/bold green]")


# Database commands
db_app = typer.Typer(
    name="db",
    help="Database management (init, version)",
    no_args_is_help=True,
)


@db_app.command("init")
def db_init():
    """Create the database (or bring an existing one up to date)."""
    config = load_config()
    try:
        with open_session() as conn:
            schema_version = SchemaManager(conn).get_schema_version()
    except TrackerError as e:
        fail(e)
    console.print(f"✓ Database ready: [bold]{escape(str(config.database_path))}[/bold]")
    console.print(f"  Schema version: {schema_version}")


@db_app.command("version")
def db_version(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """Show the schema version and applied migrations."""
    check_format(format)
    try:
        with open_session() as conn:
            manager = SchemaManager(conn)
            schema_version = manager.get_schema_version()
            applied = manager.list_applied()
    except TrackerError as e:
        fail(e)

    if format == "json":
        print_json({"version": schema_version, "applied": applied})
        return

    console.print(f"Schema version: [bold]{schema_version}[/bold] (current: {CURRENT_SCHEMA_VERSION})")
    table = Table(title="Applied migrations")
    table.add_column("Version", style="cyan")
    table.add_column("Applied")
    for row in applied:
        table.add_row(str(row["version"]), row["applied_at"] or "")
    console.print(table)


@app.command()
def deadlines(
    since: Optional[str] = typer.Option(None, "--since", help="Only deadlines on or after this date"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number to show"),
    format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
):
    """List upcoming project and milestone due dates, earliest first.

    Examples:

        tracker deadlines

        tracker deadlines --since 2026-01-01 --limit 5
    """
    check_format(format)
    since_at = parse_due(since)
    try:
        with open_session() as conn:
            items = ProjectRepository(conn).list_deadlines(since_at, limit)
    except TrackerError as e:
        fail(e)

    if format == "json":
        print_json([item.to_dict() for item in items])
        return

    if not items:
        console.print("[yellow]No deadlines found.[/yellow]")
        return

    table = Table(title="Deadlines")
    table.add_column("Due", style="cyan", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Project")
    table.add_column("Milestone")
    for item in items:
        data = item.to_dict()
        milestone = f"{item.milestone_number}. {item.name}" if item.milestone_id else ""
        table.add_row(
            format_date(data["due_date"]),
            data["kind"],
            escape(item.project_name),
            escape(milestone),
        )
    console.print(table)


@app.command()
def serve(
    transport: str = typer.Option("stdio", "--transport", "-t", help="Transport: stdio or sse"),
    host: Optional[str] = typer.Option(None, "--host", help="Host to bind to (sse)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on (sse)"),
):
    """Run the MCP tool server.

    Examples:

        tracker serve

        tracker serve --transport sse --port 8765
    """
    from tracker.mcp.server import TRANSPORTS, TrackerMCPServer

    if transport not in TRANSPORTS:
        fail(f"Unknown transport '{transport}'. Use one of: {', '.join(TRANSPORTS)}")

    config = load_config()
    updates = {}
    if host:
        updates["mcp_host"] = host
    if port:
        updates["mcp_port"] = port
    if updates:
        config = config.model_copy(update=updates)
    config.ensure_directories()

    if transport == "sse":
        # stdout belongs to the protocol under stdio
        console.print(f"Starting MCP server on http://{config.mcp_host}:{config.mcp_port}/sse")
    TrackerMCPServer(config=config).run(transport=transport)


# =============================================================================
# Register command groups
# NOTE: These imports must come after app definition (E402 intentional)
# =============================================================================

from tracker.cli.note_commands import notes_app  # noqa: E402
from tracker.cli.people_commands import people_app  # noqa: E402
from tracker.cli.project_commands import (  # noqa: E402
    milestones_app,
    projects_app,
    stakeholders_app,
)
from tracker.cli.team_commands import teams_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database management (init, version)")
app.add_typer(people_app, name="people", help="People (list, search, add, update, delete)")
app.add_typer(teams_app, name="teams", help="Teams and membership")
app.add_typer(projects_app, name="projects", help="Projects (list, search, add, update, delete)")
app.add_typer(milestones_app, name="milestones", help="Project milestones")
app.add_typer(stakeholders_app, name="stakeholders", help="Project stakeholders")
app.add_typer(notes_app, name="notes", help="Project, milestone and stakeholder notes")


if __name__ == "__main__":
    app()
