"""Project endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ... import crud, models, schemas
from ...clock import Clock
from ...database import get_db
from ..dependencies import get_clock, get_current_user

router = APIRouter(tags=["projects"])


@router.post("/", response_model=schemas.ProjectResponse, status_code=201)
def create_project(
    data: schemas.ProjectCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """Create a project (admin/manager only)."""
    return crud.create_project(db, data, current_user, clock=clock)


@router.get("/", response_model=list[schemas.ProjectResponse])
def list_projects(
    status: Optional[models.ProjectStatus] = Query(None, description="Filter by status"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """List projects ordered by name."""
    return crud.list_projects(db, status=status)


@router.get("/{project_id}", response_model=schemas.ProjectResponse)
def get_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return crud.get_project(db, project_id)


@router.put("/{project_id}", response_model=schemas.ProjectResponse)
def update_project(
    project_id: UUID,
    update: schemas.ProjectUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """Update a project (admin, manager or creator)."""
    return crud.update_project(db, project_id, update, current_user, clock=clock)


@router.delete("/{project_id}", response_model=schemas.MessageResponse)
def archive_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """Archive a project. Projects are never hard-deleted."""
    crud.archive_project(db, project_id, current_user, clock=clock)
    return schemas.MessageResponse(message="Project archived successfully")
