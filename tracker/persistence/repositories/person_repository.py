"""Repository for Person operations."""

import logging
from typing import Any, List, Mapping, Optional

from tracker.core.errors import ManagerCycleError
from tracker.core.models import Person
from tracker.persistence.repositories.base import EntityRepository, TableSpec

logger = logging.getLogger(__name__)

PEOPLE = TableSpec(
    table="people",
    entity="Person",
    model=Person,
    key_columns=("email",),
    columns=("email", "name", "team", "manager", "notes", "created_at", "updated_at"),
    mutable_columns=("name", "team", "manager", "notes"),
    search_column="name",
)

# Longest reporting chain walked before giving up
MAX_CHAIN_DEPTH = 32


class PersonRepository(EntityRepository):
    """Repository for people, keyed by email.

    Manager links must stay acyclic: a person cannot manage themselves,
    directly or through their reports.
    """

    spec = PEOPLE

    def find_by_email(self, email: str) -> Optional[Person]:
        """Get a person by email, or None."""
        return self.find_by_key(email)

    def create(self, person: Person) -> Person:
        """Create a person.

        Raises:
            ConflictError: Email already exists
            ManagerCycleError: Person names themselves as manager
            InvalidReferenceError: Manager does not exist
        """
        if person.manager is not None and person.manager == person.email:
            raise ManagerCycleError(person.email, person.manager)
        return super().create(person)

    def update(self, person: Person) -> Person:
        """Replace a person's mutable fields.

        Raises:
            NotFoundError: Email does not exist
            ManagerCycleError: New manager would create a reporting cycle
        """
        with self._transaction():
            self._check_manager(person.email, person.manager)
            return super().update(person)

    def update_fields(self, key: Any, changes: Mapping[str, Any]) -> Person:
        """Partial update of a person.

        Raises:
            NotFoundError: Email does not exist
            ManagerCycleError: New manager would create a reporting cycle
        """
        email = key[0] if isinstance(key, tuple) else key
        with self._transaction():
            if "manager" in changes:
                self._check_manager(email, changes["manager"])
            return super().update_fields(email, changes)

    def get_direct_reports(self, email: str) -> List[Person]:
        """People whose manager is ``email``, ordered by name."""
        return self._select_where(self.spec, "manager = ?", (email,))

    def get_management_chain(self, email: str, max_depth: int = MAX_CHAIN_DEPTH) -> List[Person]:
        """Managers above ``email``, nearest first.

        Stops at the top of the chain, at ``max_depth`` managers, or on
        reaching someone already visited (legacy data may contain cycles).
        """
        chain: List[Person] = []
        visited = {email}
        person = self.find_by_email(email)
        while person is not None and person.manager and len(chain) < max_depth:
            if person.manager in visited:
                logger.warning(f"Reporting cycle detected above {email} at {person.manager}")
                break
            visited.add(person.manager)
            person = self.find_by_email(person.manager)
            if person is not None:
                chain.append(person)
        return chain

    def _check_manager(self, email: str, manager: Optional[str]) -> None:
        """Reject a manager assignment that would make ``email`` its own ancestor."""
        if manager is None:
            return
        if manager == email:
            raise ManagerCycleError(email, manager)

        visited = set()
        current: Optional[str] = manager
        while current is not None and current not in visited:
            if current == email:
                raise ManagerCycleError(email, manager)
            visited.add(current)
            row = self._fetchone("SELECT manager FROM people WHERE email = ?", (current,), "Person")
            current = row["manager"] if row else None
