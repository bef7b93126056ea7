"""Task endpoints: lifecycle, history and checklists."""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ... import crud, models, queries, schemas, transitions
from ...clock import Clock, today
from ...database import get_db
from ...state_machine import urgency_of
from ..dependencies import get_clock, get_current_user

router = APIRouter(tags=["tasks"])


def _task_to_response(task: models.Task, on: date) -> schemas.TaskResponse:
    """Convert Task model to TaskResponse schema."""
    return schemas.TaskResponse(
        id=task.id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        project_id=task.project_id,
        assigned_to=task.assigned_to,
        assigned_to_name=task.assignee.full_name if task.assignee else None,
        assigned_by=task.assigned_by,
        assigned_by_name=task.assigner.full_name if task.assigner else None,
        due_date=task.due_date,
        start_date=task.start_date,
        completion_date=task.completion_date,
        estimated_hours=task.estimated_hours,
        actual_hours=task.actual_hours,
        progress_percentage=task.progress_percentage,
        urgency=urgency_of(task.due_date, task.status, on),
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


@router.post("/", response_model=schemas.TaskResponse, status_code=201)
def create_task(
    task_data: schemas.TaskCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """
    Create a new task assigned by the caller.

    The task starts as pending with zero progress; the assignee is notified.
    """
    task = transitions.create_task(db, task_data, current_user, clock=clock)
    return _task_to_response(task, today(clock))


@router.get("/", response_model=schemas.TaskListResponse)
def list_tasks(
    status: Optional[models.TaskStatus] = Query(None, description="Filter by status"),
    priority: Optional[models.TaskPriority] = Query(None, description="Filter by priority"),
    project_id: Optional[UUID] = Query(None, description="Filter by project"),
    assigned_to: Optional[UUID] = Query(None, description="Filter by assignee (admin/manager only)"),
    urgency: Optional[models.Urgency] = Query(None, description="Filter by urgency"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """
    List tasks visible to the caller.

    Sorted overdue first, then due today, then the rest; within each group by
    priority (urgent first), then most recently updated.
    """
    tasks, total = queries.list_for_role(
        db,
        current_user,
        status=status,
        priority=priority,
        project_id=project_id,
        assigned_to=assigned_to,
        urgency=urgency,
        limit=limit,
        offset=offset,
        clock=clock,
    )
    on = today(clock)
    return schemas.TaskListResponse(items=[_task_to_response(t, on) for t in tasks], total=total)


@router.get("/{task_id}", response_model=schemas.TaskResponse)
def get_task(
    task_id: UUID,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """Get a task by ID. Tasks outside the caller's visibility are reported as not found."""
    task = crud.get_task(db, task_id, current_user)
    return _task_to_response(task, today(clock))


@router.patch("/{task_id}", response_model=schemas.TaskResponse)
def update_task(
    task_id: UUID,
    update: schemas.TaskUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """
    Update task fields. Only fields present in the body are applied.

    Assignees may change status, progress_percentage and actual_hours;
    assigners, managers and admins may change any field.
    """
    task = transitions.update_task(db, task_id, update, current_user, clock=clock)
    return _task_to_response(task, today(clock))


@router.patch("/{task_id}/status", response_model=schemas.TaskResponse)
def update_task_status(
    task_id: UUID,
    status_update: schemas.TaskStatusUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """Change only the status (and optionally actual hours) of a task."""
    task = transitions.update_status(
        db,
        task_id,
        status_update.status,
        current_user,
        actual_hours=status_update.actual_hours,
        clock=clock,
    )
    return _task_to_response(task, today(clock))


@router.delete("/{task_id}", response_model=schemas.MessageResponse)
def delete_task(
    task_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Delete a task and its history (admin only)."""
    crud.delete_task(db, task_id, current_user)
    return schemas.MessageResponse(message="Task deleted successfully")


@router.get("/{task_id}/history", response_model=list[schemas.TaskHistoryResponse])
def get_task_history(
    task_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Get the change history of a task, newest first."""
    return crud.get_task_history(db, task_id, current_user, limit=limit)


# ============================================================================
# Checklists
# ============================================================================


@router.get("/{task_id}/checklist", response_model=list[schemas.ChecklistItemResponse])
def list_checklist(
    task_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return crud.list_checklist(db, task_id, current_user)


@router.post("/{task_id}/checklist", response_model=schemas.ChecklistItemResponse, status_code=201)
def add_checklist_item(
    task_id: UUID,
    data: schemas.ChecklistItemCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    return crud.add_checklist_item(db, task_id, data, current_user, clock=clock)


@router.patch("/checklist/{item_id}", response_model=schemas.ChecklistItemResponse)
def update_checklist_item(
    item_id: int,
    data: schemas.ChecklistItemUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    return crud.update_checklist_item(db, item_id, data, current_user, clock=clock)


@router.delete("/checklist/{item_id}", response_model=schemas.MessageResponse)
def delete_checklist_item(
    item_id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    crud.delete_checklist_item(db, item_id, current_user, clock=clock)
    return schemas.MessageResponse(message="Checklist item deleted successfully")
