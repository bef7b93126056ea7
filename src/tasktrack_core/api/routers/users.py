"""User directory, administration, profile and workload endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ... import identity, models, queries, schemas
from ...clock import Clock
from ...database import get_db
from ..dependencies import get_clock, get_current_user

router = APIRouter(tags=["users"])


def _user_to_list_item(user: models.User, actor: models.User) -> schemas.UserListItem:
    """Directory entry; admins see every column, managers also see roles."""
    fields = {"id": user.id, "full_name": user.full_name, "username": user.username}
    if actor.is_elevated:
        fields["role"] = user.role
    if actor.role == models.UserRole.ADMIN:
        fields["email"] = user.email
        fields["created_at"] = user.created_at
    return schemas.UserListItem(**fields)


@router.get("/", response_model=list[schemas.UserListItem], response_model_exclude_none=True)
def list_users(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """List active users ordered by name."""
    return [_user_to_list_item(u, current_user) for u in identity.list_active_users(db)]


@router.post("/", response_model=schemas.UserResponse, status_code=201)
def create_user(
    data: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Create a user with any role (admin only)."""
    return identity.admin_create_user(db, data, current_user)


@router.get("/stats", response_model=list[schemas.UserTaskStats])
def user_stats(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """Per-user task counts and completion rate (admin/manager only)."""
    return queries.user_task_stats(db, current_user, clock=clock)


@router.put("/profile", response_model=schemas.UserResponse)
def update_profile(
    update: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Update the caller's own name, email or password."""
    return identity.update_profile(db, current_user, update)


@router.put("/{user_id}", response_model=schemas.UserResponse)
def update_user(
    user_id: UUID,
    update: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Change a user's name, role, status or password (admin only)."""
    return identity.update_user(db, user_id, update, current_user)


@router.delete("/{user_id}", response_model=schemas.MessageResponse)
def delete_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Delete a user no task refers to (admin only)."""
    identity.delete_user(db, user_id, current_user)
    return schemas.MessageResponse(message="User deleted successfully")
