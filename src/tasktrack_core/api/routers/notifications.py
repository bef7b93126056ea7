"""Notification inbox endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ... import models, notifications, schemas
from ...clock import Clock
from ...database import get_db
from ..dependencies import get_clock, get_current_user

router = APIRouter(tags=["notifications"])


@router.get("/", response_model=list[schemas.NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False, description="Only unread notifications"),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Get the caller's notifications, newest first."""
    return notifications.list_for_user(db, current_user, unread_only=unread_only, limit=limit)


@router.patch("/read-all", response_model=schemas.MessageResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    count = notifications.mark_all_read(db, current_user, clock=clock)
    return schemas.MessageResponse(message=f"Marked {count} notifications as read")


@router.patch("/{notification_id}/read", response_model=schemas.NotificationResponse)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """Mark one of the caller's notifications as read."""
    return notifications.mark_read(db, notification_id, current_user, clock=clock)
