"""Repository for Team and team membership operations."""

import logging
from typing import List, Optional

from tracker.core.errors import PersonNotFoundError, TeamNotFoundError
from tracker.core.models import Person, Team, TeamMember
from tracker.persistence.repositories.base import EntityRepository, TableSpec
from tracker.persistence.repositories.person_repository import PEOPLE

logger = logging.getLogger(__name__)

TEAMS = TableSpec(
    table="teams",
    entity="Team",
    model=Team,
    key_columns=("name",),
    columns=("name", "description", "manager", "created_at", "updated_at"),
    mutable_columns=("description", "manager"),
    search_column="name",
)

TEAM_MEMBERS = TableSpec(
    table="team_members",
    entity="TeamMember",
    model=TeamMember,
    key_columns=("team_name", "person_email"),
    columns=("team_name", "person_email", "created_at"),
    mutable_columns=(),
    order_by="created_at",
    stamped=False,
)


class TeamRepository(EntityRepository):
    """Repository for teams, keyed by name, and their members."""

    spec = TEAMS

    def find_by_name(self, name: str) -> Optional[Team]:
        """Get a team by name, or None."""
        return self.find_by_key(name)

    def add_member(self, team_name: str, email: str) -> TeamMember:
        """Add a person to a team.

        Both sides are checked before inserting so each missing side gets
        its own error.

        Raises:
            TeamNotFoundError: Team does not exist
            PersonNotFoundError: Person does not exist
            ConflictError: Person is already a member
        """
        with self._transaction():
            if not self.exists(team_name):
                raise TeamNotFoundError(team_name)
            if not self._exists(PEOPLE, (email,)):
                raise PersonNotFoundError(email)
            member = self._insert(TEAM_MEMBERS, TeamMember(team_name=team_name, person_email=email))

        logger.info(f"Added {email} to team {team_name}")
        return member

    def remove_member(self, team_name: str, email: str) -> None:
        """Remove a person from a team.

        Raises:
            NotFoundError: Person is not a member of the team
        """
        self._delete(TEAM_MEMBERS, (team_name, email))
        logger.info(f"Removed {email} from team {team_name}")

    def get_members(self, team_name: str) -> List[Person]:
        """Members of a team ordered by name; empty for an unknown team."""
        rows = self._fetchall(
            """
            SELECT p.* FROM people p
            JOIN team_members tm ON tm.person_email = p.email
            WHERE tm.team_name = ?
            ORDER BY p.name
            """,
            (team_name,),
            "TeamMember",
        )
        return [PEOPLE.from_row(row) for row in rows]

    def get_teams_for_person(self, email: str) -> List[Team]:
        """Teams a person belongs to, ordered by name."""
        rows = self._fetchall(
            """
            SELECT t.* FROM teams t
            JOIN team_members tm ON tm.team_name = t.name
            WHERE tm.person_email = ?
            ORDER BY t.name
            """,
            (email,),
            "TeamMember",
        )
        return [TEAMS.from_row(row) for row in rows]
