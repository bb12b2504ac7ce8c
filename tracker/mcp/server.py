"""
MCP (Model Context Protocol) server for the project tracker.

Exposes one tool per repository operation so AI assistants can read and
maintain people, teams, projects, milestones, stakeholders, resources and
notes. The server opens its own connection to the tracker database, next
to the desktop app's.

Example:
    python -m tracker.mcp.server

    Or programmatically:
    from tracker.mcp.server import TrackerMCPServer
    server = TrackerMCPServer()
    server.run(transport="sse")
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from pydantic import BaseModel

from tracker.core.config import GlobalConfig, configure_logging, get_config
from tracker.core.errors import TrackerError
from tracker.core.models import (
    Milestone,
    MilestoneNote,
    Person,
    Project,
    ProjectNote,
    StakeholderNote,
    Team,
    parse_timestamp,
    validate_project_type,
)
from tracker.persistence.database import Database
from tracker.persistence.repositories import PersonRepository, ProjectRepository, TeamRepository

logger = logging.getLogger(__name__)

TRANSPORTS = ("stdio", "sse")


class ToolFailure(BaseModel):
    """Structured tool error returned to the calling agent."""

    code: str
    message: str
    detail: Optional[Dict[str, Any]] = None

    @classmethod
    def from_error(cls, error: Exception) -> "ToolFailure":
        if isinstance(error, TrackerError):
            return cls(
                code=error.kind.value,
                message=error.message,
                detail={
                    "entity": error.entity,
                    "key": error.to_dict()["key"],
                    "detail": error.detail,
                },
            )
        return cls(code="invalid_argument", message=str(error))


def _changes(**fields: Any) -> Dict[str, Any]:
    """Fields the caller actually supplied."""
    return {name: value for name, value in fields.items() if value is not None}


def _dump(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, list):
        return [item.to_dict() for item in value]
    return value.to_dict()


class TrackerMCPServer:
    """
    MCP server wrapper around the tracker repositories.

    Provides tools for:
    - people, teams and team membership
    - projects and milestones
    - stakeholders and resources
    - project, milestone and stakeholder notes
    - upcoming deadlines
    """

    # Tool name -> description; each name is also a coroutine method
    TOOLS: Dict[str, str] = {
        "list_people": "List all people ordered by name",
        "search_people": "Search people by name (case-insensitive, at most 20 results)",
        "get_person": "Get a person by email",
        "create_person": "Create a person",
        "update_person": "Update the given fields of a person",
        "delete_person": "Delete a person",
        "get_direct_reports": "List the people a person manages",
        "get_management_chain": "List a person's managers, nearest first",
        "list_teams": "List all teams ordered by name",
        "search_teams": "Search teams by name (case-insensitive, at most 20 results)",
        "get_team": "Get a team by name",
        "create_team": "Create a team",
        "update_team": "Update the given fields of a team",
        "delete_team": "Delete a team (members are unlinked, not deleted)",
        "get_team_members": "List the members of a team",
        "add_team_member": "Add a person to a team",
        "remove_team_member": "Remove a person from a team",
        "get_person_teams": "List the teams a person belongs to",
        "list_projects": "List all projects ordered by name",
        "search_projects": "Search projects by name (case-insensitive, at most 20 results)",
        "get_project": "Get a project by id",
        "create_project": "Create a project",
        "update_project": "Update the given fields of a project",
        "delete_project": "Delete a project with its milestones, links and notes",
        "get_project_milestones": "List a project's milestones ordered by number",
        "get_milestone": "Get a milestone by id",
        "add_milestone": "Add a numbered milestone to a project",
        "update_milestone": "Update the given fields of a milestone",
        "delete_milestone": "Delete a milestone with its notes and resources",
        "get_project_stakeholders": "List a project's stakeholders",
        "add_project_stakeholder": "Add a stakeholder to a project",
        "update_stakeholder": "Change a stakeholder's role on a project",
        "remove_stakeholder": "Remove a stakeholder (and their notes) from a project",
        "get_project_resources": "List the people assigned to a project",
        "add_project_resource": "Assign a person to a project",
        "update_project_resource": "Change a project resource's role",
        "remove_project_resource": "Unassign a person from a project",
        "get_milestone_resources": "List the people assigned to a milestone",
        "add_milestone_resource": "Assign a person to a milestone",
        "update_milestone_resource": "Change a milestone resource's role",
        "remove_milestone_resource": "Unassign a person from a milestone",
        "get_project_notes": "List a project's notes, newest first",
        "add_project_note": "Add a note to a project",
        "update_project_note": "Update a project note's title and/or body",
        "delete_project_note": "Delete a project note",
        "get_milestone_notes": "List a milestone's notes, newest first",
        "add_milestone_note": "Add a note to a milestone",
        "update_milestone_note": "Update a milestone note's title and/or body",
        "delete_milestone_note": "Delete a milestone note",
        "get_stakeholder_notes": "List notes about a stakeholder on a project, newest first",
        "add_stakeholder_note": "Add a note about a stakeholder on a project",
        "update_stakeholder_note": "Update a stakeholder note's title and/or body",
        "delete_stakeholder_note": "Delete a stakeholder note",
        "list_deadlines": "List project and milestone due dates, earliest first",
    }

    def __init__(
        self,
        config: Optional[GlobalConfig] = None,
        db: Optional[Database] = None,
        name: str = "project-tracker",
    ):
        """
        Initialize the MCP server.

        Args:
            config: Tracker configuration. If None, loads from the environment.
            db: Database to use. If None, opens a new one from config.
            name: Server name for MCP protocol
        """
        self.config = config or get_config()
        self.db = db or Database.from_config(self.config)
        self.name = name

        self.mcp = FastMCP(
            name=self.name,
            instructions=(
                "Project tracker for engineering managers. Use these tools to look up "
                "and maintain people, teams, projects, milestones, stakeholders, "
                "resource assignments and notes. Project and milestone ids are UUIDs; "
                "people are identified by email and teams by name."
            ),
            host=self.config.mcp_host,
            port=self.config.mcp_port,
        )

        self._register_tools()

    def _register_tools(self) -> None:
        """Register all MCP tools."""
        for tool_name, description in self.TOOLS.items():
            self.mcp.add_tool(getattr(self, tool_name), name=tool_name, description=description)
        logger.debug(f"Registered {len(self.TOOLS)} tools")

    async def _call(self, fn: Callable[[Any], Any]) -> Any:
        """Run ``fn(conn)`` on the server's connection, structuring failures."""
        try:
            return await self.db.run(fn)
        except (TrackerError, ValueError) as e:
            failure = ToolFailure.from_error(e)
            logger.info(f"Tool call failed ({failure.code}): {failure.message}")
            raise ToolError(failure.model_dump_json()) from e

    def _project_type(self, value: str) -> str:
        try:
            return validate_project_type(value, self.config.get_project_types_list())
        except ValueError as e:
            raise ToolError(ToolFailure.from_error(e).model_dump_json()) from e

    # People

    async def list_people(self) -> List[Dict[str, Any]]:
        return _dump(await self._call(lambda conn: PersonRepository(conn).list_all()))

    async def search_people(self, query: str) -> List[Dict[str, Any]]:
        return _dump(await self._call(lambda conn: PersonRepository(conn).search_by_name(query)))

    async def get_person(self, email: str) -> Optional[Dict[str, Any]]:
        return _dump(await self._call(lambda conn: PersonRepository(conn).find_by_email(email)))

    async def create_person(
        self,
        email: str,
        name: str,
        team: Optional[str] = None,
        manager: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        person = Person(email=email, name=name, team=team, manager=manager, notes=notes)
        return _dump(await self._call(lambda conn: PersonRepository(conn).create(person)))

    async def update_person(
        self,
        email: str,
        name: Optional[str] = None,
        team: Optional[str] = None,
        manager: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        changes = _changes(name=name, team=team, manager=manager, notes=notes)
        return _dump(
            await self._call(lambda conn: PersonRepository(conn).update_fields(email, changes))
        )

    async def delete_person(self, email: str) -> Dict[str, Any]:
        await self._call(lambda conn: PersonRepository(conn).delete(email))
        return {"deleted": email}

    async def get_direct_reports(self, email: str) -> List[Dict[str, Any]]:
        return _dump(
            await self._call(lambda conn: PersonRepository(conn).get_direct_reports(email))
        )

    async def get_management_chain(self, email: str) -> List[Dict[str, Any]]:
        return _dump(
            await self._call(lambda conn: PersonRepository(conn).get_management_chain(email))
        )

    # Teams

    async def list_teams(self) -> List[Dict[str, Any]]:
        return _dump(await self._call(lambda conn: TeamRepository(conn).list_all()))

    async def search_teams(self, query: str) -> List[Dict[str, Any]]:
        return _dump(await self._call(lambda conn: TeamRepository(conn).search_by_name(query)))

    async def get_team(self, name: str) -> Optional[Dict[str, Any]]:
        return _dump(await self._call(lambda conn: TeamRepository(conn).find_by_name(name)))

    async def create_team(
        self, name: str, description: Optional[str] = None, manager: Optional[str] = None
    ) -> Dict[str, Any]:
        team = Team(name=name, description=description, manager=manager)
        return _dump(await self._call(lambda conn: TeamRepository(conn).create(team)))

    async def update_team(
        self, name: str, description: Optional[str] = None, manager: Optional[str] = None
    ) -> Dict[str, Any]:
        changes = _changes(description=description, manager=manager)
        return _dump(
            await self._call(lambda conn: TeamRepository(conn).update_fields(name, changes))
        )

    async def delete_team(self, name: str) -> Dict[str, Any]:
        await self._call(lambda conn: TeamRepository(conn).delete(name))
        return {"deleted": name}

    async def get_team_members(self, team_name: str) -> List[Dict[str, Any]]:
        return _dump(await self._call(lambda conn: TeamRepository(conn).get_members(team_name)))

    async def add_team_member(self, team_name: str, email: str) -> Dict[str, Any]:
        return _dump(
            await self._call(lambda conn: TeamRepository(conn).add_member(team_name, email))
        )

    async def remove_team_member(self, team_name: str, email: str) -> Dict[str, Any]:
        await self._call(lambda conn: TeamRepository(conn).remove_member(team_name, email))
        return {"removed": email, "team_name": team_name}

    async def get_person_teams(self, email: str) -> List[Dict[str, Any]]:
        return _dump(
            await self._call(lambda conn: TeamRepository(conn).get_teams_for_person(email))
        )

    # Projects

    async def list_projects(self) -> List[Dict[str, Any]]:
        return _dump(await self._call(lambda conn: ProjectRepository(conn).list_all()))

    async def search_projects(self, query: str) -> List[Dict[str, Any]]:
        return _dump(await self._call(lambda conn: ProjectRepository(conn).search_by_name(query)))

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        return _dump(await self._call(lambda conn: ProjectRepository(conn).find_by_id(project_id)))

    async def create_project(
        self,
        name: str,
        description: Optional[str] = None,
        project_type: str = "Personal",
        requirements_owner: Optional[str] = None,
        technical_lead: Optional[str] = None,
        manager: Optional[str] = None,
        team: Optional[str] = None,
        due_date: Optional[str] = None,
        jira_initiative: Optional[str] = None,
    ) -> Dict[str, Any]:
        project = Project(
            name=name,
            description=description,
            project_type=self._project_type(project_type),
            requirements_owner=requirements_owner,
            technical_lead=technical_lead,
            manager=manager,
            team=team,
            due_date=self._due_date(due_date),
            jira_initiative=jira_initiative,
        )
        return _dump(await self._call(lambda conn: ProjectRepository(conn).create(project)))

    async def update_project(
        self,
        project_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        project_type: Optional[str] = None,
        requirements_owner: Optional[str] = None,
        technical_lead: Optional[str] = None,
        manager: Optional[str] = None,
        team: Optional[str] = None,
        due_date: Optional[str] = None,
        jira_initiative: Optional[str] = None,
    ) -> Dict[str, Any]:
        changes = _changes(
            name=name,
            description=description,
            project_type=self._project_type(project_type) if project_type else None,
            requirements_owner=requirements_owner,
            technical_lead=technical_lead,
            manager=manager,
            team=team,
            due_date=self._due_date(due_date),
            jira_initiative=jira_initiative,
        )
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).update_fields(project_id, changes)
            )
        )

    async def delete_project(self, project_id: str) -> Dict[str, Any]:
        await self._call(lambda conn: ProjectRepository(conn).delete(project_id))
        return {"deleted": project_id}

    def _due_date(self, value: Optional[str]):
        if not value:
            return None
        try:
            return parse_timestamp(value)
        except ValueError as e:
            raise ToolError(
                ToolFailure(code="invalid_argument", message=f"Invalid due date: {value}").model_dump_json()
            ) from e

    # Milestones

    async def get_project_milestones(self, project_id: str) -> List[Dict[str, Any]]:
        return _dump(
            await self._call(lambda conn: ProjectRepository(conn).get_milestones(project_id))
        )

    async def get_milestone(self, milestone_id: str) -> Optional[Dict[str, Any]]:
        return _dump(
            await self._call(lambda conn: ProjectRepository(conn).get_milestone(milestone_id))
        )

    async def add_milestone(
        self,
        project_id: str,
        number: int,
        name: str,
        description: Optional[str] = None,
        technical_lead: Optional[str] = None,
        team: Optional[str] = None,
        design_doc_url: Optional[str] = None,
        due_date: Optional[str] = None,
        jira_epic: Optional[str] = None,
    ) -> Dict[str, Any]:
        def add(conn):
            milestone = Milestone.from_dict(
                {
                    "project_id": project_id,
                    "number": number,
                    "name": name,
                    "description": description,
                    "technical_lead": technical_lead,
                    "team": team,
                    "design_doc_url": design_doc_url,
                    "due_date": due,
                    "jira_epic": jira_epic,
                }
            )
            return ProjectRepository(conn).add_milestone(milestone)

        due = self._due_date(due_date)
        return _dump(await self._call(add))

    async def update_milestone(
        self,
        milestone_id: str,
        number: Optional[int] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        technical_lead: Optional[str] = None,
        team: Optional[str] = None,
        design_doc_url: Optional[str] = None,
        due_date: Optional[str] = None,
        jira_epic: Optional[str] = None,
    ) -> Dict[str, Any]:
        changes = _changes(
            number=number,
            name=name,
            description=description,
            technical_lead=technical_lead,
            team=team,
            design_doc_url=design_doc_url,
            due_date=self._due_date(due_date),
            jira_epic=jira_epic,
        )
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).update_milestone_fields(milestone_id, changes)
            )
        )

    async def delete_milestone(self, milestone_id: str) -> Dict[str, Any]:
        await self._call(lambda conn: ProjectRepository(conn).delete_milestone(milestone_id))
        return {"deleted": milestone_id}

    # Stakeholders

    async def get_project_stakeholders(self, project_id: str) -> List[Dict[str, Any]]:
        return _dump(
            await self._call(lambda conn: ProjectRepository(conn).get_stakeholders(project_id))
        )

    async def add_project_stakeholder(
        self, project_id: str, email: str, role: Optional[str] = None
    ) -> Dict[str, Any]:
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).add_stakeholder(project_id, email, role)
            )
        )

    async def update_stakeholder(
        self, project_id: str, email: str, role: Optional[str] = None
    ) -> Dict[str, Any]:
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).update_stakeholder(project_id, email, role)
            )
        )

    async def remove_stakeholder(self, project_id: str, email: str) -> Dict[str, Any]:
        await self._call(lambda conn: ProjectRepository(conn).remove_stakeholder(project_id, email))
        return {"removed": email, "project_id": project_id}

    # Resources

    async def get_project_resources(self, project_id: str) -> List[Dict[str, Any]]:
        return _dump(
            await self._call(lambda conn: ProjectRepository(conn).get_project_resources(project_id))
        )

    async def add_project_resource(
        self, project_id: str, email: str, role: Optional[str] = None
    ) -> Dict[str, Any]:
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).add_project_resource(project_id, email, role)
            )
        )

    async def update_project_resource(
        self, project_id: str, email: str, role: Optional[str] = None
    ) -> Dict[str, Any]:
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).update_project_resource(
                    project_id, email, role
                )
            )
        )

    async def remove_project_resource(self, project_id: str, email: str) -> Dict[str, Any]:
        await self._call(
            lambda conn: ProjectRepository(conn).remove_project_resource(project_id, email)
        )
        return {"removed": email, "project_id": project_id}

    async def get_milestone_resources(self, milestone_id: str) -> List[Dict[str, Any]]:
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).get_milestone_resources(milestone_id)
            )
        )

    async def add_milestone_resource(
        self, milestone_id: str, email: str, role: Optional[str] = None
    ) -> Dict[str, Any]:
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).add_milestone_resource(
                    milestone_id, email, role
                )
            )
        )

    async def update_milestone_resource(
        self, milestone_id: str, email: str, role: Optional[str] = None
    ) -> Dict[str, Any]:
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).update_milestone_resource(
                    milestone_id, email, role
                )
            )
        )

    async def remove_milestone_resource(self, milestone_id: str, email: str) -> Dict[str, Any]:
        await self._call(
            lambda conn: ProjectRepository(conn).remove_milestone_resource(milestone_id, email)
        )
        return {"removed": email, "milestone_id": milestone_id}

    # Notes

    async def get_project_notes(self, project_id: str) -> List[Dict[str, Any]]:
        return _dump(
            await self._call(lambda conn: ProjectRepository(conn).get_project_notes(project_id))
        )

    async def add_project_note(self, project_id: str, title: str, body: str) -> Dict[str, Any]:
        def add(conn):
            note = ProjectNote.from_dict({"project_id": project_id, "title": title, "body": body})
            return ProjectRepository(conn).add_project_note(note)

        return _dump(await self._call(add))

    async def update_project_note(
        self, note_id: str, title: Optional[str] = None, body: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._update_note("project", note_id, title, body)

    async def delete_project_note(self, note_id: str) -> Dict[str, Any]:
        await self._call(lambda conn: ProjectRepository(conn).delete_project_note(note_id))
        return {"deleted": note_id}

    async def get_milestone_notes(self, milestone_id: str) -> List[Dict[str, Any]]:
        return _dump(
            await self._call(lambda conn: ProjectRepository(conn).get_milestone_notes(milestone_id))
        )

    async def add_milestone_note(self, milestone_id: str, title: str, body: str) -> Dict[str, Any]:
        def add(conn):
            note = MilestoneNote.from_dict(
                {"milestone_id": milestone_id, "title": title, "body": body}
            )
            return ProjectRepository(conn).add_milestone_note(note)

        return _dump(await self._call(add))

    async def update_milestone_note(
        self, note_id: str, title: Optional[str] = None, body: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._update_note("milestone", note_id, title, body)

    async def delete_milestone_note(self, note_id: str) -> Dict[str, Any]:
        await self._call(lambda conn: ProjectRepository(conn).delete_milestone_note(note_id))
        return {"deleted": note_id}

    async def get_stakeholder_notes(self, project_id: str, email: str) -> List[Dict[str, Any]]:
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).get_stakeholder_notes(project_id, email)
            )
        )

    async def add_stakeholder_note(
        self, project_id: str, email: str, title: str, body: str
    ) -> Dict[str, Any]:
        def add(conn):
            note = StakeholderNote.from_dict(
                {
                    "project_id": project_id,
                    "stakeholder_email": email,
                    "title": title,
                    "body": body,
                }
            )
            return ProjectRepository(conn).add_stakeholder_note(note)

        return _dump(await self._call(add))

    async def update_stakeholder_note(
        self, note_id: str, title: Optional[str] = None, body: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._update_note("stakeholder", note_id, title, body)

    async def delete_stakeholder_note(self, note_id: str) -> Dict[str, Any]:
        await self._call(lambda conn: ProjectRepository(conn).delete_stakeholder_note(note_id))
        return {"deleted": note_id}

    async def _update_note(
        self, kind: str, note_id: str, title: Optional[str], body: Optional[str]
    ) -> Dict[str, Any]:
        changes = _changes(title=title, body=body)
        return _dump(
            await self._call(
                lambda conn: ProjectRepository(conn).update_note_fields(kind, note_id, changes)
            )
        )

    # Deadlines

    async def list_deadlines(
        self, since: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        since_at = self._due_date(since)
        return _dump(
            await self._call(lambda conn: ProjectRepository(conn).list_deadlines(since_at, limit))
        )

    def run(self, transport: str = "stdio") -> None:
        """
        Run the MCP server.

        Args:
            transport: Transport protocol - 'stdio' or 'sse' (default: 'stdio')
        """
        if transport not in TRANSPORTS:
            raise ValueError(f"Unknown transport '{transport}'. Expected one of: {', '.join(TRANSPORTS)}")
        logger.info(f"Starting tracker MCP server with {transport} transport")
        try:
            self.mcp.run(transport=transport)
        finally:
            self.db.close()


def main() -> None:
    """
    Main entry point for running the MCP server over stdio.

    Usage:
        python -m tracker.mcp.server
    """
    config = get_config()
    configure_logging(config)
    config.ensure_directories()
    TrackerMCPServer(config=config).run(transport="stdio")


if __name__ == "__main__":
    main()
