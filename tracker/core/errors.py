"""Domain error taxonomy for the tracker.

Every failure raised by the persistence layer is a ``TrackerError`` carrying
an ``ErrorKind``. Surfaces translate on the kind, not the class:

- NOT_FOUND: key absent on update/delete/remove
- CONFLICT: duplicate natural/primary key, duplicate milestone number
- INVALID_REFERENCE: foreign key points at a row that does not exist
- INVALID_IDENTIFIER: caller supplied a malformed identifier
- STORAGE_FAILURE: engine-level error not otherwise classified

Usage:
    from tracker.core.errors import NotFoundError

    raise NotFoundError("Person", email)
"""

import sqlite3
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Classification of tracker failures."""

    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_REFERENCE = "invalid_reference"
    INVALID_IDENTIFIER = "invalid_identifier"
    STORAGE_FAILURE = "storage_failure"


class TrackerError(Exception):
    """Base exception for tracker domain errors."""

    kind: ErrorKind = ErrorKind.STORAGE_FAILURE

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        key: Any = None,
        detail: Optional[str] = None,
    ):
        self.message = message
        self.entity = entity
        self.key = key
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a JSON-ready dictionary."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "entity": self.entity,
            "key": _format_key(self.key),
            "detail": self.detail,
        }


class NotFoundError(TrackerError):
    """Raised when the named entity or relationship does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, key: Any, detail: Optional[str] = None):
        super().__init__(f"{entity} not found: {_format_key(key)}", entity, key, detail)


class TeamNotFoundError(NotFoundError):
    """Raised when a membership operation names a team that does not exist."""

    def __init__(self, team_name: str):
        super().__init__("Team", team_name)


class ConflictError(TrackerError):
    """Raised when a key or uniqueness constraint would be violated."""

    kind = ErrorKind.CONFLICT

    def __init__(self, entity: str, key: Any, detail: Optional[str] = None):
        super().__init__(f"{entity} already exists: {_format_key(key)}", entity, key, detail)


class ManagerCycleError(ConflictError):
    """Raised when a manager assignment would make a reporting chain cycle."""

    def __init__(self, email: str, manager: str):
        self.email = email
        self.manager = manager
        TrackerError.__init__(
            self,
            f"Cannot set manager of {email} to {manager}: reporting chain would cycle",
            "Person",
            email,
        )


class InvalidReferenceError(TrackerError):
    """Raised when an entity references a row that does not exist."""

    kind = ErrorKind.INVALID_REFERENCE

    def __init__(self, entity: str, key: Any, detail: Optional[str] = None):
        message = f"Invalid reference from {entity} {_format_key(key)}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, entity, key, detail)


class PersonNotFoundError(InvalidReferenceError):
    """Raised when a membership operation names a person that does not exist."""

    def __init__(self, email: str):
        TrackerError.__init__(self, f"Person not found: {email}", "Person", email)


class InvalidIdentifierError(TrackerError):
    """Raised when a caller supplies a malformed identifier."""

    kind = ErrorKind.INVALID_IDENTIFIER

    def __init__(self, entity: str, value: Any, detail: Optional[str] = None):
        super().__init__(f"Invalid {entity} identifier: {value!r}", entity, value, detail)


class StorageError(TrackerError):
    """Raised for engine-level failures not otherwise classified."""

    kind = ErrorKind.STORAGE_FAILURE


class StorageBusyError(StorageError):
    """Raised when the database file is locked by another connection."""


class MigrationError(StorageError):
    """Raised when opening the database cannot bring the schema up to date."""


def _format_key(key: Any) -> Any:
    if isinstance(key, tuple):
        return "/".join(str(part) for part in key)
    if key is None:
        return None
    return str(key)


def translate_sqlite_error(
    error: sqlite3.Error, entity: str, key: Any = None
) -> TrackerError:
    """Map a sqlite3 exception onto the tracker taxonomy.

    Args:
        error: Exception raised by the sqlite3 driver
        entity: Entity kind being operated on (for the message)
        key: Entity key (for the message)

    Returns:
        TrackerError subclass instance (not raised)
    """
    text = str(error)
    lowered = text.lower()

    if isinstance(error, sqlite3.IntegrityError):
        if "unique constraint" in lowered or "primary key" in lowered:
            return ConflictError(entity, key, detail=text)
        if "foreign key constraint" in lowered:
            return InvalidReferenceError(entity, key, detail="referenced row does not exist or is still in use")
        return StorageError(f"Constraint failed for {entity}: {text}", entity, key, text)

    if isinstance(error, sqlite3.OperationalError) and (
        "locked" in lowered or "busy" in lowered
    ):
        return StorageBusyError(f"Database busy while accessing {entity}: {text}", entity, key, text)

    return StorageError(f"Storage failure for {entity}: {text}", entity, key, text)
