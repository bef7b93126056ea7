"""Task store reads, deletion, projects and checklists.

Task creation and field changes live in ``transitions``; everything here either
reads, deletes, or touches rows that hang off a task.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import history, models, permissions, schemas
from .clock import Clock, utc_now
from .errors import ForbiddenError, InfrastructureError, NotFoundError, ValidationError

logger = logging.getLogger("tasktrack-core.crud")


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to {action}: {e}", exc_info=True)
        raise InfrastructureError(f"Failed to {action}") from e


# ============================================================================
# Tasks
# ============================================================================


def get_task(db: Session, task_id: UUID, actor: models.User) -> models.Task:
    """
    Get a task visible to the actor.

    Raises:
        NotFoundError: If the task does not exist or the actor cannot see it
    """
    task = db.get(models.Task, task_id)
    if not task or not permissions.can_view(task, actor):
        raise NotFoundError(f"Task not found: {task_id}")
    return task


def delete_task(db: Session, task_id: UUID, actor: models.User) -> None:
    """
    Delete a task. Admin only.

    History and checklist rows cascade with the task; notifications keep
    existing with their task reference cleared.

    Raises:
        ForbiddenError: If the actor is not an admin
        NotFoundError: If the task does not exist
    """
    if not permissions.can_delete_task(actor):
        logger.warning(f"User {actor.id} ({actor.role.value}) attempted to delete task {task_id}")
        raise ForbiddenError("Only admins can delete tasks")

    task = db.get(models.Task, task_id)
    if not task:
        raise NotFoundError(f"Task not found: {task_id}")

    db.delete(task)
    _commit(db, f"delete task {task_id}")
    logger.info(f"Deleted task {task_id} by {actor.id}")


def get_task_history(
    db: Session,
    task_id: UUID,
    actor: models.User,
    limit: int = 50,
) -> list[models.TaskHistory]:
    """Get the audit trail of a visible task, newest first."""
    get_task(db, task_id, actor)
    return history.list_for_task(db, task_id, limit=limit)


# ============================================================================
# Projects
# ============================================================================


def create_project(
    db: Session,
    data: schemas.ProjectCreate,
    actor: models.User,
    clock: Clock = utc_now,
) -> models.Project:
    """
    Create a project. Admins and managers only.

    Raises:
        ForbiddenError: If the actor is an employee
        ValidationError: If the name is blank
    """
    if not permissions.can_manage_projects(actor):
        raise ForbiddenError("Only admins and managers can create projects")
    if not data.name.strip():
        raise ValidationError("Project name is required", field="name")

    now = clock()
    project = models.Project(
        name=data.name.strip(),
        description=data.description,
        status=data.status,
        created_by=actor.id,
        created_at=now,
        updated_at=now,
    )
    db.add(project)
    _commit(db, "create project")
    db.refresh(project)
    logger.info(f"Created project {project.id}: {project.name}")
    return project


def list_projects(db: Session, status: Optional[models.ProjectStatus] = None) -> list[models.Project]:
    """List projects by name. Archived projects only appear when asked for by status."""
    query = db.query(models.Project)
    if status:
        query = query.filter(models.Project.status == status)
    else:
        query = query.filter(models.Project.status != models.ProjectStatus.ARCHIVED)
    return query.order_by(models.Project.name).all()


def get_project(db: Session, project_id: UUID) -> models.Project:
    project = db.get(models.Project, project_id)
    if not project:
        raise NotFoundError(f"Project not found: {project_id}")
    return project


def _project_for_edit(db: Session, project_id: UUID, actor: models.User) -> models.Project:
    project = get_project(db, project_id)
    if not permissions.can_edit_project(project, actor):
        raise ForbiddenError("Only admins, managers and the project creator can change a project")
    return project


def update_project(
    db: Session,
    project_id: UUID,
    update: schemas.ProjectUpdate,
    actor: models.User,
    clock: Clock = utc_now,
) -> models.Project:
    """
    Update project fields. Only fields present in ``update`` are applied.

    The first move into completed stamps ``completion_date``; it is kept if the
    project is later re-opened.

    Raises:
        NotFoundError: If the project does not exist
        ForbiddenError: If the actor may not edit the project
        ValidationError: If the new name is blank
    """
    project = _project_for_edit(db, project_id, actor)
    fields = update.model_dump(exclude_unset=True)

    if "name" in fields:
        name = (fields["name"] or "").strip()
        if not name:
            raise ValidationError("Project name is required", field="name")
        fields["name"] = name
    if "status" in fields and fields["status"] is None:
        raise ValidationError("Project status cannot be empty", field="status")

    changed = [field for field, value in fields.items() if getattr(project, field) != value]
    if not changed:
        return project

    now = clock()
    for field in changed:
        setattr(project, field, fields[field])
    if project.status == models.ProjectStatus.COMPLETED and project.completion_date is None:
        project.completion_date = now
    project.updated_at = now

    _commit(db, f"update project {project_id}")
    db.refresh(project)
    logger.info(f"Updated project {project.id} by {actor.id}: {', '.join(changed)}")
    return project


def archive_project(
    db: Session,
    project_id: UUID,
    actor: models.User,
    clock: Clock = utc_now,
) -> models.Project:
    """
    Archive a project instead of deleting it. Its tasks keep their project reference.

    Raises:
        NotFoundError: If the project does not exist
        ForbiddenError: If the actor may not edit the project
    """
    project = _project_for_edit(db, project_id, actor)
    if project.status == models.ProjectStatus.ARCHIVED:
        return project

    project.status = models.ProjectStatus.ARCHIVED
    project.updated_at = clock()
    _commit(db, f"archive project {project_id}")
    db.refresh(project)
    logger.info(f"Archived project {project.id} by {actor.id}")
    return project


# ============================================================================
# Checklists
# ============================================================================


def _task_for_checklist_edit(db: Session, task_id: UUID, actor: models.User) -> models.Task:
    task = db.get(models.Task, task_id)
    if not task:
        raise NotFoundError(f"Task not found: {task_id}")
    if not permissions.can_edit_checklist(task, actor):
        if not permissions.can_view(task, actor):
            raise NotFoundError(f"Task not found: {task_id}")
        raise ForbiddenError("Insufficient permissions to edit this checklist")
    return task


def _get_checklist_item(db: Session, item_id: int) -> models.ChecklistItem:
    item = db.get(models.ChecklistItem, item_id)
    if not item:
        raise NotFoundError(f"Checklist item not found: {item_id}")
    return item


def list_checklist(db: Session, task_id: UUID, actor: models.User) -> list[models.ChecklistItem]:
    task = get_task(db, task_id, actor)
    return list(task.checklist_items)


def add_checklist_item(
    db: Session,
    task_id: UUID,
    data: schemas.ChecklistItemCreate,
    actor: models.User,
    clock: Clock = utc_now,
) -> models.ChecklistItem:
    """
    Add a checklist item to a task.

    Allowed for anyone who may edit the task (elevated, assignee, assigner).
    Appends a ``checklist`` history record in the same transaction.
    """
    task = _task_for_checklist_edit(db, task_id, actor)
    title = data.title.strip()
    if not title:
        raise ValidationError("Checklist item title is required", field="title")

    now = clock()
    item = models.ChecklistItem(
        task_id=task.id,
        title=title,
        is_completed=False,
        created_by=actor.id,
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(item)
        history.record(db, task.id, history.CHECKLIST, None, f"added: {title}", actor.id, now)
        _commit(db, f"add checklist item to task {task.id}")
    except Exception:
        db.rollback()
        raise

    db.refresh(item)
    return item


def update_checklist_item(
    db: Session,
    item_id: int,
    data: schemas.ChecklistItemUpdate,
    actor: models.User,
    clock: Clock = utc_now,
) -> models.ChecklistItem:
    """Rename or tick a checklist item. No-op updates write nothing."""
    item = _get_checklist_item(db, item_id)
    _task_for_checklist_edit(db, item.task_id, actor)

    before = f"{item.title} [{'x' if item.is_completed else ' '}]"
    changed = False
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("title") is not None:
        title = update_data["title"].strip()
        if not title:
            raise ValidationError("Checklist item title is required", field="title")
        if title != item.title:
            item.title = title
            changed = True
    if update_data.get("is_completed") is not None and update_data["is_completed"] != item.is_completed:
        item.is_completed = update_data["is_completed"]
        changed = True

    if not changed:
        return item

    now = clock()
    item.updated_at = now
    after = f"{item.title} [{'x' if item.is_completed else ' '}]"
    try:
        history.record(db, item.task_id, history.CHECKLIST, before, after, actor.id, now)
        _commit(db, f"update checklist item {item_id}")
    except Exception:
        db.rollback()
        raise

    db.refresh(item)
    return item


def delete_checklist_item(
    db: Session,
    item_id: int,
    actor: models.User,
    clock: Clock = utc_now,
) -> None:
    item = _get_checklist_item(db, item_id)
    task = _task_for_checklist_edit(db, item.task_id, actor)

    try:
        history.record(db, task.id, history.CHECKLIST, f"removed: {item.title}", None, actor.id, clock())
        db.delete(item)
        _commit(db, f"delete checklist item {item_id}")
    except Exception:
        db.rollback()
        raise
