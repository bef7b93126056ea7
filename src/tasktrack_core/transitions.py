"""Transition engine: the single path through which tasks are created and changed.

Every mutation runs as one transaction in a fixed order:

    load (row lock) → authorize → validate → apply → history → notify → commit

Authorization and validation failures happen before any write and leave the
task untouched. A failing history append aborts the whole mutation. A failing
notification is dropped without affecting the rest (see ``notifications``).

No-op changes (new value equal to the stored value) are not changes: they
append no history, leave ``updated_at`` alone, and notify nobody.
"""
import logging
import math
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import history, models, notifications, permissions
from .clock import Clock, utc_now
from .errors import (
    ConcurrentUpdateError,
    ForbiddenError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from .state_machine import TERMINAL_STATUSES, completion_date_for, start_date_for

logger = logging.getLogger("tasktrack-core.transitions")

TITLE_MAX_LENGTH = 200
HOURS_QUANTUM = Decimal("0.01")
HOURS_MAX = Decimal("999999.99")

# History rows are written in this order when one patch changes several fields
FIELD_ORDER: tuple[str, ...] = (
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
)

CREATE_FIELDS: frozenset[str] = frozenset({
    "title",
    "description",
    "assigned_to",
    "due_date",
    "start_date",
    "priority",
    "estimated_hours",
    "project_id",
})

Patch = Union[BaseModel, dict[str, Any]]


# ============================================================================
# Field validation
# ============================================================================


def _as_dict(patch: Patch) -> dict[str, Any]:
    if isinstance(patch, BaseModel):
        return patch.model_dump(exclude_unset=True)
    return dict(patch)


def _validate_title(value: Any) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError("Title is required", field="title")
    title = value.strip()
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must be at most {TITLE_MAX_LENGTH} characters", field="title")
    return title


def _validate_enum(enum_cls, value: Any, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {field} '{value}'. Must be one of: {allowed}", field=field)


def _validate_date(value: Any, field: str) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"Malformed {field} '{value}'. Expected YYYY-MM-DD", field=field)


def _validate_hours(value: Any, field: str) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        hours = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", field=field)
    if not hours.is_finite() or hours < 0:
        raise ValidationError(f"{field} must be a non-negative number", field=field)
    # Stored as Numeric(8, 2); compare and record the value the column will hold
    if hours >= HOURS_MAX + HOURS_QUANTUM / 2:
        raise ValidationError(f"{field} must be at most {HOURS_MAX}", field=field)
    return hours.quantize(HOURS_QUANTUM, rounding=ROUND_HALF_UP)


def _validate_progress(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValidationError("progress_percentage must be an integer", field="progress_percentage")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError("progress_percentage must be a finite number", field="progress_percentage")
    if isinstance(value, Decimal) and not value.is_finite():
        raise ValidationError("progress_percentage must be a finite number", field="progress_percentage")
    if int(value) != value:
        raise ValidationError("progress_percentage must be an integer", field="progress_percentage")
    progress = int(value)
    if progress < 0 or progress > 100:
        raise ValidationError(
            f"progress_percentage must be between 0 and 100, got {progress}",
            field="progress_percentage",
        )
    return progress


def _as_uuid(value: Any, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"Malformed {field} '{value}'", field=field)


def _validate_assignee(db: Session, value: Any) -> Optional[UUID]:
    if value is None:
        return None
    user_id = _as_uuid(value, "assigned_to")
    user = db.get(models.User, user_id)
    if not user or not user.is_active:
        raise ValidationError("Assigned user does not exist or is inactive", field="assigned_to")
    return user_id


def _validate_project(db: Session, value: Any) -> Optional[UUID]:
    if value is None:
        return None
    project_id = _as_uuid(value, "project_id")
    project = db.get(models.Project, project_id)
    if not project:
        raise ValidationError(f"Project not found: {project_id}", field="project_id")
    if project.status == models.ProjectStatus.ARCHIVED:
        raise ValidationError(f"Project {project_id} is archived", field="project_id")
    return project_id


def validate_field(db: Session, field: str, value: Any) -> Any:
    """
    Normalize and validate one task field value.

    Args:
        db: Database session, used for assignee and project lookups
        field: Task field name
        value: Raw value from the patch

    Returns:
        The value in its stored Python type

    Raises:
        ValidationError: If the value is malformed, out of range, or references
            a missing or inactive entity
    """
    if field == "title":
        return _validate_title(value)
    if field == "description":
        return value if value is None else str(value)
    if field == "status":
        return _validate_enum(models.TaskStatus, value, "status")
    if field == "priority":
        return _validate_enum(models.TaskPriority, value, "priority")
    if field == "assigned_to":
        return _validate_assignee(db, value)
    if field == "project_id":
        return _validate_project(db, value)
    if field in ("due_date", "start_date"):
        return _validate_date(value, field)
    if field in ("estimated_hours", "actual_hours"):
        return _validate_hours(value, field)
    if field == "progress_percentage":
        return _validate_progress(value)
    raise ValidationError(f"Unknown task field '{field}'", field=field)


def compute_diff(db: Session, task: models.Task, patch: dict[str, Any]) -> dict[str, tuple[Any, Any]]:
    """
    Validate a patch and compare it with the stored task.

    Returns:
        ``{field: (old, new)}`` for fields whose value actually changes,
        in ``FIELD_ORDER``
    """
    validated = {field: validate_field(db, field, value) for field, value in patch.items()}
    diff = {}
    for field in FIELD_ORDER:
        if field not in validated:
            continue
        old = getattr(task, field)
        new = validated[field]
        if old != new:
            diff[field] = (old, new)
    return diff


# ============================================================================
# Transaction helpers
# ============================================================================


def _load_for_update(db: Session, task_id: UUID) -> models.Task:
    task = (
        db.query(models.Task)
        .filter(models.Task.id == task_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not task:
        raise NotFoundError(f"Task not found: {task_id}")
    return task


def _flush_task(db: Session, task: models.Task) -> None:
    try:
        db.flush()
    except StaleDataError as e:
        logger.warning(f"Concurrent update detected on task {task.id}")
        raise ConcurrentUpdateError(f"Task {task.id} was changed by another request; retry") from e
    except SQLAlchemyError as e:
        logger.error(f"Failed to write task {task.id}: {e}", exc_info=True)
        raise InfrastructureError(f"Failed to write task {task.id}") from e


def _commit(db: Session, task: models.Task) -> None:
    try:
        db.commit()
    except StaleDataError as e:
        raise ConcurrentUpdateError(f"Task {task.id} was changed by another request; retry") from e
    except SQLAlchemyError as e:
        logger.error(f"Failed to commit task {task.id}: {e}", exc_info=True)
        raise InfrastructureError(f"Failed to commit task {task.id}") from e


# ============================================================================
# Operations
# ============================================================================


def create_task(
    db: Session,
    data: Patch,
    actor: models.User,
    clock: Clock = utc_now,
) -> models.Task:
    """
    Create a task assigned by ``actor``.

    Writes the task, one ``created`` history record, and a ``task_assigned``
    notification for the assignee in one transaction. Status starts as
    pending and progress as 0 regardless of input.

    Args:
        db: Database session
        data: TaskCreate schema or plain dict of creation fields
        actor: User creating the task; becomes ``assigned_by``
        clock: Source of timestamps

    Returns:
        Created Task

    Raises:
        ValidationError: Empty title, missing/inactive assignee, unknown
            project, malformed date, negative hours
        ForbiddenError: If the actor's account is not active
    """
    fields = _as_dict(data)
    unknown = set(fields) - CREATE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")
    if not actor.is_active:
        raise ForbiddenError("Inactive accounts cannot create tasks")
    if fields.get("assigned_to") is None:
        raise ValidationError("Assigned user is required", field="assigned_to")

    values = {field: validate_field(db, field, value) for field, value in fields.items()}
    if "title" not in values:
        raise ValidationError("Title is required", field="title")

    now = clock()
    task = models.Task(
        title=values["title"],
        description=values.get("description"),
        assigned_to=values["assigned_to"],
        assigned_by=actor.id,
        project_id=values.get("project_id"),
        priority=values.get("priority") or models.TaskPriority.MEDIUM,
        due_date=values.get("due_date"),
        start_date=values.get("start_date"),
        estimated_hours=values.get("estimated_hours"),
        status=models.TaskStatus.PENDING,
        progress_percentage=0,
        created_at=now,
        updated_at=now,
    )

    try:
        db.add(task)
        _flush_task(db, task)
        history.record(db, task.id, history.CREATED, None, task.title, actor.id, now)
        notifications.notify_task_assigned(db, task, actor, clock=clock, include_actor=True)
        _commit(db, task)
    except Exception:
        db.rollback()
        raise

    db.refresh(task)
    logger.info(f"Created task {task.id}: {task.title} (assigned to {task.assigned_to})")
    return task


def update_task(
    db: Session,
    task_id: UUID,
    patch: Patch,
    actor: models.User,
    clock: Clock = utc_now,
) -> models.Task:
    """
    Apply a field patch to a task.

    Args:
        db: Database session
        task_id: Task UUID
        patch: TaskUpdate schema or plain dict; only present keys are applied
        actor: User performing the update
        clock: Source of timestamps

    Returns:
        Updated Task (unchanged when the patch is a no-op)

    Raises:
        NotFoundError: If the task does not exist
        ForbiddenError: If the actor may not change one of the patched fields
        ValidationError: If a patched value is invalid
        HistoryWriteError: If the audit append failed (mutation rolled back)
        ConcurrentUpdateError: If another request changed the task first
    """
    fields = _as_dict(patch)
    unknown = set(fields) - permissions.TASK_FIELDS
    if unknown:
        raise ValidationError(f"Unknown task field(s): {', '.join(sorted(unknown))}")

    try:
        task = _load_for_update(db, task_id)
        relationship = permissions.authorize_update(task, actor, fields.keys())
        diff = compute_diff(db, task, fields)

        if not diff:
            logger.debug(f"No-op update on task {task.id} by {actor.id}")
            db.rollback()
            return task

        now = clock()
        old_status = task.status
        if "status" in diff and old_status in TERMINAL_STATUSES:
            logger.info(f"Re-opening task {task.id}: {old_status.value} -> {diff['status'][1].value}")

        for field, (_, new) in diff.items():
            setattr(task, field, new)
        if "status" in diff:
            task.completion_date = completion_date_for(task.status, task.completion_date, now)
            task.start_date = start_date_for(task.status, task.start_date, now)
        task.updated_at = now
        _flush_task(db, task)

        for field, (old, new) in diff.items():
            history.record(db, task.id, field, old, new, actor.id, now)

        if "status" in diff:
            reassigned = (task.assigned_to,) if "assigned_to" in diff else ()
            notifications.notify_status_changed(db, task, old_status, actor, clock=clock, exclude=reassigned)
        if "assigned_to" in diff:
            notifications.notify_task_assigned(db, task, actor, clock=clock)

        _commit(db, task)
    except Exception:
        db.rollback()
        raise

    db.refresh(task)
    logger.info(
        f"Updated task {task.id} ({relationship.value} {actor.id}): {', '.join(diff)}"
    )
    return task


def update_status(
    db: Session,
    task_id: UUID,
    status: Any,
    actor: models.User,
    actual_hours: Any = None,
    clock: Clock = utc_now,
) -> models.Task:
    """
    Narrow status-only path; same permission model as ``update_task``.

    ``actual_hours`` is applied alongside the status when given.
    """
    patch: dict[str, Any] = {"status": status}
    if actual_hours is not None:
        patch["actual_hours"] = actual_hours
    return update_task(db, task_id, patch, actor, clock=clock)
