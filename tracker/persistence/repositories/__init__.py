"""Domain-specific repository exports.

Each repository is bound to a borrowed connection and handles one entity
family.
"""

from tracker.persistence.repositories.base import (
    SEARCH_LIMIT,
    BaseRepository,
    EntityRepository,
    TableSpec,
)
from tracker.persistence.repositories.person_repository import PersonRepository
from tracker.persistence.repositories.project_repository import ProjectRepository
from tracker.persistence.repositories.team_repository import TeamRepository

__all__ = [
    "SEARCH_LIMIT",
    "BaseRepository",
    "EntityRepository",
    "TableSpec",
    "PersonRepository",
    "ProjectRepository",
    "TeamRepository",
]
