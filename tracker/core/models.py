"""Core data models for the tracker.

Plain dataclasses: constructors stamp identity and timestamps, nothing else.
Optional fields are ``None`` when absent. Persistence lives in
``tracker.persistence.repositories``.
"""

import re
import uuid
from dataclasses import MISSING, dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Iterable, Optional

from tracker.core.errors import InvalidIdentifierError


class ProjectType(str, Enum):
    """Project scope.

    Stored as text; the storage layer accepts any string. Edges validate
    against the configured list (see ``validate_project_type``).
    """

    PERSONAL = "Personal"
    TEAM = "Team"
    COMPANY = "Company"


DEFAULT_PROJECT_TYPES: tuple[str, ...] = tuple(t.value for t in ProjectType)

# Fractional seconds of any precision; normalized to microseconds
_FRACTION_RE = re.compile(r"\.(\d+)")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as fixed-width RFC-3339 text in UTC.

    Fixed microsecond precision keeps lexical order equal to time order,
    which lets SQL compare stored timestamps as strings.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse stored timestamp text into an aware UTC datetime.

    Raises:
        ValueError: If the text is not a recognizable timestamp
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip().replace("Z", "+00:00")
        text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def new_id() -> uuid.UUID:
    """Generate an opaque 128-bit identifier."""
    return uuid.uuid4()


def parse_uuid(value: Any, entity: str = "entity") -> uuid.UUID:
    """Coerce a UUID or canonical text into a UUID.

    Raises:
        InvalidIdentifierError: If value cannot be parsed
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, AttributeError, TypeError) as e:
        raise InvalidIdentifierError(entity, value, detail=str(e)) from e


def validate_project_type(value: str, allowed: Iterable[str] = DEFAULT_PROJECT_TYPES) -> str:
    """Validate a project type at an input edge.

    Returns:
        The matching allowed value (case-insensitive match)

    Raises:
        ValueError: If value is not one of the allowed types
    """
    allowed = list(allowed)
    for candidate in allowed:
        if candidate.lower() == str(value).strip().lower():
            return candidate
    raise ValueError(f"Invalid project type '{value}'. Allowed types: {', '.join(allowed)}")


class _Serializable:
    """Shared to_dict/from_dict for tracker dataclasses."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = format_timestamp(value)
            elif isinstance(value, uuid.UUID):
                value = str(value)
            out[f.name] = value
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        """Build an instance from a payload, ignoring unknown keys.

        Text identifiers are parsed as UUIDs and timestamp text as datetimes.
        A None value counts as absent unless the field defaults to None, so
        identity/timestamp fields are stamped and other defaults apply.

        Raises:
            ValueError: If a required field is missing or None
        """
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            if data[f.name] is None and f.default is not None:
                continue
            value = data[f.name]
            if f.name in _UUID_FIELDS and value is not None:
                value = parse_uuid(value, cls.__name__)
            elif f.name in _TIMESTAMP_FIELDS and value is not None:
                value = parse_timestamp(value)
            kwargs[f.name] = value
        missing = [
            f.name
            for f in fields(cls)
            if f.name not in kwargs
            and f.default is MISSING
            and f.default_factory is MISSING
        ]
        if missing:
            raise ValueError(f"Missing required field(s) for {cls.__name__}: {', '.join(missing)}")
        return cls(**kwargs)


_UUID_FIELDS = frozenset({"id", "project_id", "milestone_id"})
_TIMESTAMP_FIELDS = frozenset({"created_at", "updated_at", "due_date"})


@dataclass
class Person(_Serializable):
    """A person, identified by email address."""

    email: str
    name: str
    team: Optional[str] = None
    manager: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class Team(_Serializable):
    """A team, identified by name."""

    name: str
    description: Optional[str] = None
    manager: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class TeamMember(_Serializable):
    """Membership of a person in a team."""

    team_name: str
    person_email: str
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class Project(_Serializable):
    """A project.

    ``jira_initiative`` is the external tracker reference (e.g. "PROJ-123").
    """

    name: str
    id: uuid.UUID = field(default_factory=new_id)
    description: Optional[str] = None
    project_type: str = ProjectType.PERSONAL.value
    requirements_owner: Optional[str] = None
    technical_lead: Optional[str] = None
    manager: Optional[str] = None
    team: Optional[str] = None
    due_date: Optional[datetime] = None
    jira_initiative: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["type"] = self.project_type
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Project":
        # UI payloads use "type" for project_type
        if "type" in data and "project_type" not in data:
            data = {**data, "project_type": data["type"]}
        return super().from_dict(data)


@dataclass
class Milestone(_Serializable):
    """A numbered milestone within a project."""

    project_id: uuid.UUID
    number: int
    name: str
    id: uuid.UUID = field(default_factory=new_id)
    description: Optional[str] = None
    technical_lead: Optional[str] = None
    team: Optional[str] = None
    design_doc_url: Optional[str] = None
    due_date: Optional[datetime] = None
    jira_epic: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class ProjectStakeholder(_Serializable):
    """A person holding a stakeholder role on a project."""

    project_id: uuid.UUID
    stakeholder_email: str
    role: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class ProjectResource(_Serializable):
    """A person assigned to work on a project."""

    project_id: uuid.UUID
    person_email: str
    role: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class MilestoneResource(_Serializable):
    """A person assigned to work on a milestone."""

    milestone_id: uuid.UUID
    person_email: str
    role: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class ProjectNote(_Serializable):
    """Free-text note owned by a project."""

    project_id: uuid.UUID
    title: str
    body: str
    id: uuid.UUID = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class MilestoneNote(_Serializable):
    """Free-text note owned by a milestone."""

    milestone_id: uuid.UUID
    title: str
    body: str
    id: uuid.UUID = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class StakeholderNote(_Serializable):
    """Free-text note owned by a (project, stakeholder) pair."""

    project_id: uuid.UUID
    stakeholder_email: str
    title: str
    body: str
    id: uuid.UUID = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


class DeadlineKind(str, Enum):
    """What a deadline belongs to."""

    PROJECT = "project"
    MILESTONE = "milestone"


@dataclass
class Deadline(_Serializable):
    """A due date on a project or milestone (read model, not stored)."""

    kind: DeadlineKind
    project_id: uuid.UUID
    project_name: str
    name: str
    due_date: datetime
    milestone_id: Optional[uuid.UUID] = None
    milestone_number: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["kind"] = self.kind.value
        return out
