"""Repository for Project operations and the project sub-aggregates.

A project owns its milestones, stakeholder links, resource assignments and
notes. Every child table cascades from its parent, so deleting a project or
milestone never needs a fan-out delete here.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, List, Mapping, Optional

from tracker.core.errors import ConflictError
from tracker.core.models import (
    Deadline,
    DeadlineKind,
    Milestone,
    MilestoneNote,
    MilestoneResource,
    Project,
    ProjectNote,
    ProjectResource,
    ProjectStakeholder,
    StakeholderNote,
    format_timestamp,
    parse_timestamp,
    parse_uuid,
)
from tracker.persistence.repositories.base import EntityRepository, TableSpec

logger = logging.getLogger(__name__)

PROJECTS = TableSpec(
    table="projects",
    entity="Project",
    model=Project,
    key_columns=("id",),
    columns=(
        "id",
        "name",
        "description",
        "type",
        "requirements_owner",
        "technical_lead",
        "manager",
        "team",
        "due_date",
        "jira_initiative",
        "created_at",
        "updated_at",
    ),
    mutable_columns=(
        "name",
        "description",
        "type",
        "requirements_owner",
        "technical_lead",
        "manager",
        "team",
        "due_date",
        "jira_initiative",
    ),
    uuid_columns=frozenset({"id"}),
    fields={"type": "project_type"},
    search_column="name",
)

MILESTONES = TableSpec(
    table="milestones",
    entity="Milestone",
    model=Milestone,
    key_columns=("id",),
    columns=(
        "id",
        "project_id",
        "number",
        "name",
        "description",
        "technical_lead",
        "team",
        "design_doc_url",
        "due_date",
        "jira_epic",
        "created_at",
        "updated_at",
    ),
    mutable_columns=(
        "number",
        "name",
        "description",
        "technical_lead",
        "team",
        "design_doc_url",
        "due_date",
        "jira_epic",
    ),
    uuid_columns=frozenset({"id", "project_id"}),
    order_by="number",
)

STAKEHOLDERS = TableSpec(
    table="project_stakeholders",
    entity="ProjectStakeholder",
    model=ProjectStakeholder,
    key_columns=("project_id", "stakeholder_email"),
    columns=("project_id", "stakeholder_email", "role", "created_at"),
    mutable_columns=("role",),
    uuid_columns=frozenset({"project_id"}),
    order_by="created_at, stakeholder_email",
    stamped=False,
)

PROJECT_RESOURCES = TableSpec(
    table="project_resources",
    entity="ProjectResource",
    model=ProjectResource,
    key_columns=("project_id", "person_email"),
    columns=("project_id", "person_email", "role", "created_at"),
    mutable_columns=("role",),
    uuid_columns=frozenset({"project_id"}),
    order_by="created_at, person_email",
    stamped=False,
)

MILESTONE_RESOURCES = TableSpec(
    table="milestone_resources",
    entity="MilestoneResource",
    model=MilestoneResource,
    key_columns=("milestone_id", "person_email"),
    columns=("milestone_id", "person_email", "role", "created_at"),
    mutable_columns=("role",),
    uuid_columns=frozenset({"milestone_id"}),
    order_by="created_at, person_email",
    stamped=False,
)

PROJECT_NOTES = TableSpec(
    table="project_notes",
    entity="ProjectNote",
    model=ProjectNote,
    key_columns=("id",),
    columns=("id", "project_id", "title", "body", "created_at", "updated_at"),
    mutable_columns=("title", "body"),
    uuid_columns=frozenset({"id", "project_id"}),
    order_by="created_at DESC, rowid DESC",
)

MILESTONE_NOTES = TableSpec(
    table="milestone_notes",
    entity="MilestoneNote",
    model=MilestoneNote,
    key_columns=("id",),
    columns=("id", "milestone_id", "title", "body", "created_at", "updated_at"),
    mutable_columns=("title", "body"),
    uuid_columns=frozenset({"id", "milestone_id"}),
    order_by="created_at DESC, rowid DESC",
)

STAKEHOLDER_NOTES = TableSpec(
    table="stakeholder_notes",
    entity="StakeholderNote",
    model=StakeholderNote,
    key_columns=("id",),
    columns=("id", "project_id", "stakeholder_email", "title", "body", "created_at", "updated_at"),
    mutable_columns=("title", "body"),
    uuid_columns=frozenset({"id", "project_id"}),
    order_by="created_at DESC, rowid DESC",
)

NOTE_SPECS = {
    "project": PROJECT_NOTES,
    "milestone": MILESTONE_NOTES,
    "stakeholder": STAKEHOLDER_NOTES,
}


def _uuid_text(value: Any, entity: str) -> str:
    return str(parse_uuid(value, entity))


class ProjectRepository(EntityRepository):
    """Repository for projects and everything a project owns.

    Identifiers may be passed as ``uuid.UUID`` or canonical text; malformed
    text raises ``InvalidIdentifierError``.
    """

    spec = PROJECTS

    def find_by_id(self, project_id: Any) -> Optional[Project]:
        """Get a project by id, or None."""
        return self.find_by_key(project_id)

    # Milestones

    def add_milestone(self, milestone: Milestone) -> Milestone:
        """Add a milestone to its project.

        Raises:
            ConflictError: The project already has a milestone with this number
            InvalidReferenceError: Project or a referenced person/team does not exist
        """
        project_id = _uuid_text(milestone.project_id, "Project")
        with self._transaction():
            self._check_milestone_number(project_id, milestone.number)
            stored = self._insert(MILESTONES, milestone)
        logger.info(f"Added milestone {milestone.number} to project {project_id}")
        return stored

    def get_milestone(self, milestone_id: Any) -> Optional[Milestone]:
        """Get a milestone by id, or None."""
        return self._select_one(MILESTONES, (milestone_id,))

    def get_milestones(self, project_id: Any) -> List[Milestone]:
        """Milestones of a project ordered by number."""
        return self._select_where(
            MILESTONES, "project_id = ?", (_uuid_text(project_id, "Project"),)
        )

    def update_milestone(self, milestone: Milestone) -> Milestone:
        """Replace a milestone's mutable fields.

        Raises:
            NotFoundError: Milestone does not exist
            ConflictError: New number is already used in the project
        """
        with self._transaction():
            self._check_milestone_number(
                _uuid_text(milestone.project_id, "Project"), milestone.number, milestone.id
            )
            return self._update(MILESTONES, milestone)

    def update_milestone_fields(self, milestone_id: Any, changes: Mapping[str, Any]) -> Milestone:
        """Partial update of a milestone.

        Raises:
            NotFoundError: Milestone does not exist
            ConflictError: New number is already used in the project
        """
        with self._transaction():
            if "number" in changes:
                current = self.get_milestone(milestone_id)
                if current is not None:
                    self._check_milestone_number(
                        str(current.project_id), changes["number"], current.id
                    )
            return self._update_fields(MILESTONES, (milestone_id,), changes)

    def delete_milestone(self, milestone_id: Any) -> None:
        """Delete a milestone with its notes and resources.

        Raises:
            NotFoundError: Milestone does not exist
        """
        self._delete(MILESTONES, (milestone_id,))

    def _check_milestone_number(
        self, project_id: str, number: int, milestone_id: Optional[Any] = None
    ) -> None:
        row = self._fetchone(
            "SELECT id FROM milestones WHERE project_id = ? AND number = ?",
            (project_id, number),
            "Milestone",
        )
        if row is not None and (milestone_id is None or row["id"] != str(milestone_id)):
            raise ConflictError(
                "Milestone",
                (project_id, number),
                detail=f"project already has a milestone numbered {number}",
            )

    # Stakeholders

    def add_stakeholder(
        self, project_id: Any, email: str, role: Optional[str] = None
    ) -> ProjectStakeholder:
        """Link a person to a project as a stakeholder.

        Raises:
            ConflictError: Person is already a stakeholder on the project
            InvalidReferenceError: Project or person does not exist
        """
        link = ProjectStakeholder(
            project_id=parse_uuid(project_id, "Project"), stakeholder_email=email, role=role
        )
        return self._insert(STAKEHOLDERS, link)

    def get_stakeholders(self, project_id: Any) -> List[ProjectStakeholder]:
        """Stakeholder links of a project."""
        return self._select_where(
            STAKEHOLDERS, "project_id = ?", (_uuid_text(project_id, "Project"),)
        )

    def update_stakeholder(
        self, project_id: Any, email: str, role: Optional[str]
    ) -> ProjectStakeholder:
        """Change a stakeholder's role.

        Raises:
            NotFoundError: Person is not a stakeholder on the project
        """
        return self._update_fields(STAKEHOLDERS, (project_id, email), {"role": role})

    def remove_stakeholder(self, project_id: Any, email: str) -> None:
        """Unlink a stakeholder; their notes on the project go with the link.

        Raises:
            NotFoundError: Person is not a stakeholder on the project
        """
        self._delete(STAKEHOLDERS, (project_id, email))

    # Resources

    def add_project_resource(
        self, project_id: Any, email: str, role: Optional[str] = None
    ) -> ProjectResource:
        """Assign a person to a project.

        Raises:
            ConflictError: Person is already assigned
            InvalidReferenceError: Project or person does not exist
        """
        resource = ProjectResource(
            project_id=parse_uuid(project_id, "Project"), person_email=email, role=role
        )
        return self._insert(PROJECT_RESOURCES, resource)

    def get_project_resources(self, project_id: Any) -> List[ProjectResource]:
        return self._select_where(
            PROJECT_RESOURCES, "project_id = ?", (_uuid_text(project_id, "Project"),)
        )

    def update_project_resource(
        self, project_id: Any, email: str, role: Optional[str]
    ) -> ProjectResource:
        return self._update_fields(PROJECT_RESOURCES, (project_id, email), {"role": role})

    def remove_project_resource(self, project_id: Any, email: str) -> None:
        self._delete(PROJECT_RESOURCES, (project_id, email))

    def add_milestone_resource(
        self, milestone_id: Any, email: str, role: Optional[str] = None
    ) -> MilestoneResource:
        """Assign a person to a milestone.

        Raises:
            ConflictError: Person is already assigned
            InvalidReferenceError: Milestone or person does not exist
        """
        resource = MilestoneResource(
            milestone_id=parse_uuid(milestone_id, "Milestone"), person_email=email, role=role
        )
        return self._insert(MILESTONE_RESOURCES, resource)

    def get_milestone_resources(self, milestone_id: Any) -> List[MilestoneResource]:
        return self._select_where(
            MILESTONE_RESOURCES, "milestone_id = ?", (_uuid_text(milestone_id, "Milestone"),)
        )

    def update_milestone_resource(
        self, milestone_id: Any, email: str, role: Optional[str]
    ) -> MilestoneResource:
        return self._update_fields(MILESTONE_RESOURCES, (milestone_id, email), {"role": role})

    def remove_milestone_resource(self, milestone_id: Any, email: str) -> None:
        self._delete(MILESTONE_RESOURCES, (milestone_id, email))

    # Notes

    def add_project_note(self, note: ProjectNote) -> ProjectNote:
        return self._insert(PROJECT_NOTES, note)

    def get_project_note(self, note_id: Any) -> Optional[ProjectNote]:
        return self._select_one(PROJECT_NOTES, (note_id,))

    def get_project_notes(self, project_id: Any) -> List[ProjectNote]:
        """Notes on a project, newest first."""
        return self._select_where(
            PROJECT_NOTES, "project_id = ?", (_uuid_text(project_id, "Project"),)
        )

    def update_project_note(self, note: ProjectNote) -> ProjectNote:
        return self._update(PROJECT_NOTES, note)

    def delete_project_note(self, note_id: Any) -> None:
        self._delete(PROJECT_NOTES, (note_id,))

    def add_milestone_note(self, note: MilestoneNote) -> MilestoneNote:
        return self._insert(MILESTONE_NOTES, note)

    def get_milestone_note(self, note_id: Any) -> Optional[MilestoneNote]:
        return self._select_one(MILESTONE_NOTES, (note_id,))

    def get_milestone_notes(self, milestone_id: Any) -> List[MilestoneNote]:
        """Notes on a milestone, newest first."""
        return self._select_where(
            MILESTONE_NOTES, "milestone_id = ?", (_uuid_text(milestone_id, "Milestone"),)
        )

    def update_milestone_note(self, note: MilestoneNote) -> MilestoneNote:
        return self._update(MILESTONE_NOTES, note)

    def delete_milestone_note(self, note_id: Any) -> None:
        self._delete(MILESTONE_NOTES, (note_id,))

    def add_stakeholder_note(self, note: StakeholderNote) -> StakeholderNote:
        """Add a note about a stakeholder on a project.

        Raises:
            InvalidReferenceError: Person is not a stakeholder on the project
        """
        return self._insert(STAKEHOLDER_NOTES, note)

    def get_stakeholder_note(self, note_id: Any) -> Optional[StakeholderNote]:
        return self._select_one(STAKEHOLDER_NOTES, (note_id,))

    def get_stakeholder_notes(self, project_id: Any, email: str) -> List[StakeholderNote]:
        """Notes on one stakeholder of a project, newest first."""
        return self._select_where(
            STAKEHOLDER_NOTES,
            "project_id = ? AND stakeholder_email = ?",
            (_uuid_text(project_id, "Project"), email),
        )

    def update_stakeholder_note(self, note: StakeholderNote) -> StakeholderNote:
        return self._update(STAKEHOLDER_NOTES, note)

    def delete_stakeholder_note(self, note_id: Any) -> None:
        self._delete(STAKEHOLDER_NOTES, (note_id,))

    def update_note_fields(self, kind: str, note_id: Any, changes: Mapping[str, Any]) -> Any:
        """Partial update of a note's title and/or body.

        Args:
            kind: "project", "milestone" or "stakeholder"
            note_id: Note id
            changes: Subset of {"title", "body"}

        Raises:
            NotFoundError: Note does not exist
            ValueError: Unknown kind or non-updatable field
        """
        if kind not in NOTE_SPECS:
            raise ValueError(f"Unknown note kind '{kind}'. Expected one of: {', '.join(NOTE_SPECS)}")
        return self._update_fields(NOTE_SPECS[kind], (note_id,), changes)

    # Deadlines

    def list_deadlines(
        self, since: Optional[datetime] = None, limit: Optional[int] = None
    ) -> List[Deadline]:
        """Project and milestone due dates, earliest first.

        Compared as instants, so stored text of any fractional precision or
        offset orders correctly.

        Args:
            since: Only deadlines on or after this time
            limit: Maximum number of deadlines to return
        """
        query = """
            SELECT * FROM (
                SELECT 'project' AS kind, p.id AS project_id, p.name AS project_name,
                       p.name AS name, p.due_date AS due_date,
                       NULL AS milestone_id, NULL AS milestone_number
                FROM projects p
                WHERE p.due_date IS NOT NULL
                UNION ALL
                SELECT 'milestone', m.project_id, p.name, m.name, m.due_date, m.id, m.number
                FROM milestones m
                JOIN projects p ON p.id = m.project_id
                WHERE m.due_date IS NOT NULL
            )
        """
        params: list = []
        if since is not None:
            query += " WHERE julianday(due_date) >= julianday(?)"
            params.append(format_timestamp(since))
        query += " ORDER BY julianday(due_date), project_name, milestone_number"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        return [
            Deadline(
                kind=DeadlineKind(row["kind"]),
                project_id=uuid.UUID(row["project_id"]),
                project_name=row["project_name"],
                name=row["name"],
                due_date=parse_timestamp(row["due_date"]),
                milestone_id=uuid.UUID(row["milestone_id"]) if row["milestone_id"] else None,
                milestone_number=row["milestone_number"],
            )
            for row in self._fetchall(query, params, "Deadline")
        ]
