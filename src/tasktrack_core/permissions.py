"""Role and relationship based authorization for tasks.

Rules, in precedence order:

1. admin: unrestricted on any task
2. manager: unrestricted on any task
3. assignee (``assigned_to == actor``): status, progress_percentage, actual_hours
4. assigner (``assigned_by == actor``): any field
5. anyone else: forbidden

An actor matching several rules gets the widest rights among them; the first
match is the relationship reported in logs.

Visibility is narrower than mutability: employees only see tasks assigned to
them, and invisible tasks are reported as not found.
"""
import enum
import logging
from typing import Iterable, Optional

from . import models
from .errors import ForbiddenError

logger = logging.getLogger("tasktrack-core.permissions")


class Relationship(str, enum.Enum):
    """How an actor relates to a task."""

    ADMIN = "admin"
    MANAGER = "manager"
    ASSIGNEE = "assignee"
    ASSIGNER = "assigner"


# Every task field a patch may touch
TASK_FIELDS: frozenset[str] = frozenset({
    "title",
    "description",
    "status",
    "priority",
    "assigned_to",
    "project_id",
    "due_date",
    "start_date",
    "estimated_hours",
    "actual_hours",
    "progress_percentage",
})

ASSIGNEE_FIELDS: frozenset[str] = frozenset({"status", "progress_percentage", "actual_hours"})

FIELDS_BY_RELATIONSHIP: dict[Relationship, frozenset[str]] = {
    Relationship.ADMIN: TASK_FIELDS,
    Relationship.MANAGER: TASK_FIELDS,
    Relationship.ASSIGNEE: ASSIGNEE_FIELDS,
    Relationship.ASSIGNER: TASK_FIELDS,
}


def relationships(task: models.Task, actor: models.User) -> list[Relationship]:
    """Return every rule the actor matches, in precedence order."""
    matched = []
    if actor.role == models.UserRole.ADMIN:
        matched.append(Relationship.ADMIN)
    if actor.role == models.UserRole.MANAGER:
        matched.append(Relationship.MANAGER)
    if task.assigned_to is not None and task.assigned_to == actor.id:
        matched.append(Relationship.ASSIGNEE)
    if task.assigned_by is not None and task.assigned_by == actor.id:
        matched.append(Relationship.ASSIGNER)
    return matched


def resolve_relationship(task: models.Task, actor: models.User) -> Optional[Relationship]:
    """Return the highest-precedence relationship, or None for outsiders."""
    matched = relationships(task, actor)
    return matched[0] if matched else None


def editable_fields(task: models.Task, actor: models.User) -> frozenset[str]:
    """Union of the fields every matching rule allows."""
    allowed: frozenset[str] = frozenset()
    for relationship in relationships(task, actor):
        allowed = allowed | FIELDS_BY_RELATIONSHIP[relationship]
    return allowed


def authorize_update(task: models.Task, actor: models.User, fields: Iterable[str]) -> Relationship:
    """
    Check that the actor may change every field in ``fields``.

    Args:
        task: Current task row
        actor: User performing the update
        fields: Names of the fields present in the patch

    Returns:
        The actor's relationship to the task

    Raises:
        ForbiddenError: If the actor has no relationship to the task, or a
            field is outside what the relationship allows
    """
    relationship = resolve_relationship(task, actor)
    if relationship is None:
        logger.warning(f"User {actor.id} has no relationship to task {task.id}")
        raise ForbiddenError("Insufficient permissions to update this task")

    denied = sorted(set(fields) - editable_fields(task, actor))
    if denied:
        logger.warning(
            f"User {actor.id} ({relationship.value}) may not change {', '.join(denied)} on task {task.id}"
        )
        raise ForbiddenError(
            f"As {relationship.value} you may only change: "
            f"{', '.join(sorted(editable_fields(task, actor)))}"
        )
    return relationship


def can_view(task: models.Task, actor: models.User) -> bool:
    """Admins and managers see every task; employees see only their own assignments."""
    if actor.is_elevated:
        return True
    return task.assigned_to is not None and task.assigned_to == actor.id


def can_delete_task(actor: models.User) -> bool:
    return actor.role == models.UserRole.ADMIN


def can_edit_checklist(task: models.Task, actor: models.User) -> bool:
    return resolve_relationship(task, actor) is not None


def can_manage_projects(actor: models.User) -> bool:
    return actor.is_elevated


def can_edit_project(project: models.Project, actor: models.User) -> bool:
    """Admins, managers and the project's creator may edit or archive it."""
    if actor.is_elevated:
        return True
    return project.created_by is not None and project.created_by == actor.id


def can_view_user_stats(actor: models.User) -> bool:
    return actor.is_elevated
