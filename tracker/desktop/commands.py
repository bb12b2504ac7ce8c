"""Command handlers behind the desktop UI.

Each public coroutine matches a UI command name and takes/returns plain
JSON-ready values. All commands share one ``Database`` (one connection and
its lock); domain failures reach the UI as ``CommandError`` carrying the
message verbatim.
"""

import functools
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from tracker.core.config import GlobalConfig, get_config
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


class CommandError(Exception):
    """Failure reported to the UI as a flat string."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def command(fn: Callable) -> Callable:
    """Translate domain and validation errors into ``CommandError``."""

    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except (TrackerError, ValueError) as e:
            logger.debug(f"Command {fn.__name__} failed: {e}")
            raise CommandError(str(e)) from e
        except KeyError as e:
            raise CommandError(f"Missing field: {e.args[0]}") from e

    return wrapper


def _clean(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Treat empty form fields as absent."""
    if payload is None:
        raise ValueError("Missing payload")
    return {key: (None if value == "" else value) for key, value in payload.items()}


def _dump(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, list):
        return [item.to_dict() for item in value]
    return value.to_dict()


class DesktopCommands:
    """Async command handlers for the desktop UI."""

    def __init__(self, db: Database, config: Optional[GlobalConfig] = None):
        self.db = db
        self.config = config or get_config()

    async def _people(self, fn: Callable[[PersonRepository], Any]) -> Any:
        return await self.db.run(lambda conn: fn(PersonRepository(conn)))

    async def _teams(self, fn: Callable[[TeamRepository], Any]) -> Any:
        return await self.db.run(lambda conn: fn(TeamRepository(conn)))

    async def _projects(self, fn: Callable[[ProjectRepository], Any]) -> Any:
        return await self.db.run(lambda conn: fn(ProjectRepository(conn)))

    # People

    @command
    async def list_people(self) -> List[Dict[str, Any]]:
        return _dump(await self._people(lambda repo: repo.list_all()))

    @command
    async def search_people(self, query: str) -> List[Dict[str, Any]]:
        return _dump(await self._people(lambda repo: repo.search_by_name(query)))

    @command
    async def get_person(self, email: str) -> Optional[Dict[str, Any]]:
        return _dump(await self._people(lambda repo: repo.find_by_email(email)))

    @command
    async def create_person(self, person: Dict[str, Any]) -> Dict[str, Any]:
        entity = Person.from_dict(_clean(person))
        return _dump(await self._people(lambda repo: repo.create(entity)))

    @command
    async def update_person(self, person: Dict[str, Any]) -> Dict[str, Any]:
        entity = Person.from_dict(_clean(person))
        return _dump(await self._people(lambda repo: repo.update(entity)))

    @command
    async def delete_person(self, email: str) -> None:
        await self._people(lambda repo: repo.delete(email))

    @command
    async def get_direct_reports(self, email: str) -> List[Dict[str, Any]]:
        return _dump(await self._people(lambda repo: repo.get_direct_reports(email)))

    @command
    async def get_management_chain(self, email: str) -> List[Dict[str, Any]]:
        return _dump(await self._people(lambda repo: repo.get_management_chain(email)))

    # Teams

    @command
    async def list_teams(self) -> List[Dict[str, Any]]:
        return _dump(await self._teams(lambda repo: repo.list_all()))

    @command
    async def search_teams(self, query: str) -> List[Dict[str, Any]]:
        return _dump(await self._teams(lambda repo: repo.search_by_name(query)))

    @command
    async def get_team(self, name: str) -> Optional[Dict[str, Any]]:
        return _dump(await self._teams(lambda repo: repo.find_by_name(name)))

    @command
    async def create_team(self, team: Dict[str, Any]) -> Dict[str, Any]:
        entity = Team.from_dict(_clean(team))
        return _dump(await self._teams(lambda repo: repo.create(entity)))

    @command
    async def update_team(self, team: Dict[str, Any]) -> Dict[str, Any]:
        entity = Team.from_dict(_clean(team))
        return _dump(await self._teams(lambda repo: repo.update(entity)))

    @command
    async def delete_team(self, name: str) -> None:
        await self._teams(lambda repo: repo.delete(name))

    @command
    async def get_team_members(self, team_name: str) -> List[Dict[str, Any]]:
        return _dump(await self._teams(lambda repo: repo.get_members(team_name)))

    @command
    async def add_team_member(self, team_name: str, person_email: str) -> None:
        await self._teams(lambda repo: repo.add_member(team_name, person_email))

    @command
    async def remove_team_member(self, team_name: str, person_email: str) -> None:
        await self._teams(lambda repo: repo.remove_member(team_name, person_email))

    # Projects

    def _project_from_payload(self, project: Dict[str, Any]) -> Project:
        payload = _clean(project)
        if payload.get("type") or payload.get("project_type"):
            payload["project_type"] = validate_project_type(
                payload.get("project_type") or payload["type"],
                self.config.get_project_types_list(),
            )
            payload.pop("type", None)
        return Project.from_dict(payload)

    @command
    async def list_projects(self) -> List[Dict[str, Any]]:
        return _dump(await self._projects(lambda repo: repo.list_all()))

    @command
    async def search_projects(self, query: str) -> List[Dict[str, Any]]:
        return _dump(await self._projects(lambda repo: repo.search_by_name(query)))

    @command
    async def get_project(self, id: str) -> Optional[Dict[str, Any]]:
        return _dump(await self._projects(lambda repo: repo.find_by_id(id)))

    @command
    async def create_project(self, project: Dict[str, Any]) -> Dict[str, Any]:
        entity = self._project_from_payload(project)
        return _dump(await self._projects(lambda repo: repo.create(entity)))

    @command
    async def update_project(self, project: Dict[str, Any]) -> Dict[str, Any]:
        entity = self._project_from_payload(project)
        return _dump(await self._projects(lambda repo: repo.update(entity)))

    @command
    async def delete_project(self, id: str) -> None:
        await self._projects(lambda repo: repo.delete(id))

    # Milestones

    @command
    async def get_project_milestones(self, project_id: str) -> List[Dict[str, Any]]:
        return _dump(await self._projects(lambda repo: repo.get_milestones(project_id)))

    @command
    async def add_project_milestone(self, milestone: Dict[str, Any]) -> Dict[str, Any]:
        entity = Milestone.from_dict(_clean(milestone))
        return _dump(await self._projects(lambda repo: repo.add_milestone(entity)))

    @command
    async def update_milestone(self, milestone: Dict[str, Any]) -> Dict[str, Any]:
        entity = Milestone.from_dict(_clean(milestone))
        return _dump(await self._projects(lambda repo: repo.update_milestone(entity)))

    @command
    async def delete_milestone(self, id: str) -> None:
        await self._projects(lambda repo: repo.delete_milestone(id))

    # Stakeholders

    @command
    async def get_project_stakeholders(self, project_id: str) -> List[Dict[str, Any]]:
        return _dump(await self._projects(lambda repo: repo.get_stakeholders(project_id)))

    @command
    async def add_project_stakeholder(
        self, project_id: str, stakeholder: Dict[str, Any]
    ) -> Dict[str, Any]:
        data = _clean(stakeholder)
        return _dump(
            await self._projects(
                lambda repo: repo.add_stakeholder(
                    project_id, data["stakeholder_email"], data.get("role")
                )
            )
        )

    @command
    async def update_stakeholder(
        self, project_id: str, stakeholder: Dict[str, Any]
    ) -> Dict[str, Any]:
        data = _clean(stakeholder)
        return _dump(
            await self._projects(
                lambda repo: repo.update_stakeholder(
                    project_id, data["stakeholder_email"], data.get("role")
                )
            )
        )

    @command
    async def remove_stakeholder(self, project_id: str, stakeholder_email: str) -> None:
        await self._projects(lambda repo: repo.remove_stakeholder(project_id, stakeholder_email))

    # Resources

    @command
    async def get_project_resources(self, project_id: str) -> List[Dict[str, Any]]:
        return _dump(await self._projects(lambda repo: repo.get_project_resources(project_id)))

    @command
    async def add_project_resource(self, project_id: str, resource: Dict[str, Any]) -> Dict[str, Any]:
        data = _clean(resource)
        return _dump(
            await self._projects(
                lambda repo: repo.add_project_resource(
                    project_id, data["person_email"], data.get("role")
                )
            )
        )

    @command
    async def update_project_resource(
        self, project_id: str, resource: Dict[str, Any]
    ) -> Dict[str, Any]:
        data = _clean(resource)
        return _dump(
            await self._projects(
                lambda repo: repo.update_project_resource(
                    project_id, data["person_email"], data.get("role")
                )
            )
        )

    @command
    async def remove_project_resource(self, project_id: str, person_email: str) -> None:
        await self._projects(lambda repo: repo.remove_project_resource(project_id, person_email))

    @command
    async def get_milestone_resources(self, milestone_id: str) -> List[Dict[str, Any]]:
        return _dump(await self._projects(lambda repo: repo.get_milestone_resources(milestone_id)))

    @command
    async def add_milestone_resource(
        self, milestone_id: str, resource: Dict[str, Any]
    ) -> Dict[str, Any]:
        data = _clean(resource)
        return _dump(
            await self._projects(
                lambda repo: repo.add_milestone_resource(
                    milestone_id, data["person_email"], data.get("role")
                )
            )
        )

    @command
    async def update_milestone_resource(
        self, milestone_id: str, resource: Dict[str, Any]
    ) -> Dict[str, Any]:
        data = _clean(resource)
        return _dump(
            await self._projects(
                lambda repo: repo.update_milestone_resource(
                    milestone_id, data["person_email"], data.get("role")
                )
            )
        )

    @command
    async def remove_milestone_resource(self, milestone_id: str, person_email: str) -> None:
        await self._projects(
            lambda repo: repo.remove_milestone_resource(milestone_id, person_email)
        )

    # Notes

    @command
    async def get_project_notes(self, project_id: str) -> List[Dict[str, Any]]:
        return _dump(await self._projects(lambda repo: repo.get_project_notes(project_id)))

    @command
    async def add_project_note(self, note: Dict[str, Any]) -> Dict[str, Any]:
        entity = ProjectNote.from_dict(_clean(note))
        return _dump(await self._projects(lambda repo: repo.add_project_note(entity)))

    @command
    async def update_project_note(self, note: Dict[str, Any]) -> Dict[str, Any]:
        entity = ProjectNote.from_dict(_clean(note))
        return _dump(await self._projects(lambda repo: repo.update_project_note(entity)))

    @command
    async def delete_project_note(self, id: str) -> None:
        await self._projects(lambda repo: repo.delete_project_note(id))

    @command
    async def get_milestone_notes(self, milestone_id: str) -> List[Dict[str, Any]]:
        return _dump(await self._projects(lambda repo: repo.get_milestone_notes(milestone_id)))

    @command
    async def add_milestone_note(self, note: Dict[str, Any]) -> Dict[str, Any]:
        entity = MilestoneNote.from_dict(_clean(note))
        return _dump(await self._projects(lambda repo: repo.add_milestone_note(entity)))

    @command
    async def update_milestone_note(self, note: Dict[str, Any]) -> Dict[str, Any]:
        entity = MilestoneNote.from_dict(_clean(note))
        return _dump(await self._projects(lambda repo: repo.update_milestone_note(entity)))

    @command
    async def delete_milestone_note(self, id: str) -> None:
        await self._projects(lambda repo: repo.delete_milestone_note(id))

    @command
    async def get_stakeholder_notes(
        self, project_id: str, stakeholder_email: str
    ) -> List[Dict[str, Any]]:
        return _dump(
            await self._projects(
                lambda repo: repo.get_stakeholder_notes(project_id, stakeholder_email)
            )
        )

    @command
    async def add_stakeholder_note(self, note: Dict[str, Any]) -> Dict[str, Any]:
        entity = StakeholderNote.from_dict(_clean(note))
        return _dump(await self._projects(lambda repo: repo.add_stakeholder_note(entity)))

    @command
    async def update_stakeholder_note(self, note: Dict[str, Any]) -> Dict[str, Any]:
        entity = StakeholderNote.from_dict(_clean(note))
        return _dump(await self._projects(lambda repo: repo.update_stakeholder_note(entity)))

    @command
    async def delete_stakeholder_note(self, id: str) -> None:
        await self._projects(lambda repo: repo.delete_stakeholder_note(id))

    # Deadlines and settings

    @command
    async def list_deadlines(
        self, since: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        since_at: Optional[datetime] = parse_timestamp(since) if since else None
        return _dump(await self._projects(lambda repo: repo.list_deadlines(since_at, limit)))

    async def get_jira_url(self) -> str:
        return self.config.jira_url

    async def get_default_email_domain(self) -> str:
        return self.config.default_email_domain

    async def get_project_types(self) -> List[str]:
        return self.config.get_project_types_list()
