"""Notification emitter and inbox operations.

Notifications are best-effort relative to the task mutation that triggers
them: emission runs in a SAVEPOINT and a failure is logged and swallowed, so
it can never roll back task state or history.
"""
import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .clock import Clock, utc_now
from .errors import ForbiddenError, InfrastructureError, NotFoundError

logger = logging.getLogger("tasktrack-core.notifications")

NOTIFICATION_PRIORITY_BY_TASK_PRIORITY: dict[models.TaskPriority, models.NotificationPriority] = {
    models.TaskPriority.URGENT: models.NotificationPriority.HIGH,
    models.TaskPriority.HIGH: models.NotificationPriority.HIGH,
    models.TaskPriority.MEDIUM: models.NotificationPriority.MEDIUM,
    models.TaskPriority.LOW: models.NotificationPriority.LOW,
}

STATUS_LABELS: dict[models.TaskStatus, str] = {
    models.TaskStatus.PENDING: "Pending",
    models.TaskStatus.IN_PROGRESS: "In Progress",
    models.TaskStatus.COMPLETED: "Completed",
    models.TaskStatus.CANCELLED: "Cancelled",
    models.TaskStatus.ON_HOLD: "On Hold",
}


def notification_priority_for(task_priority: models.TaskPriority) -> models.NotificationPriority:
    return NOTIFICATION_PRIORITY_BY_TASK_PRIORITY.get(task_priority, models.NotificationPriority.MEDIUM)


def notify(
    db: Session,
    recipient_id: UUID,
    type: models.NotificationType,
    title: str,
    message: str,
    task_id: Optional[UUID] = None,
    sender_id: Optional[UUID] = None,
    priority: models.NotificationPriority = models.NotificationPriority.MEDIUM,
    clock: Clock = utc_now,
) -> models.Notification:
    """
    Create one notification row in the current transaction.

    Args:
        db: Database session
        recipient_id: User who receives the notification
        type: Notification type
        title: Short title
        message: Body text
        task_id: Related task, if any
        sender_id: User who caused the notification, if any
        priority: Notification priority
        clock: Source of ``created_at``

    Returns:
        The flushed Notification
    """
    notification = models.Notification(
        recipient_id=recipient_id,
        sender_id=sender_id,
        task_id=task_id,
        type=type,
        title=title,
        message=message,
        priority=priority,
        is_read=False,
        created_at=clock(),
    )
    db.add(notification)
    db.flush()
    return notification


def emit_best_effort(db: Session, **kwargs) -> Optional[models.Notification]:
    """
    Call ``notify`` inside a SAVEPOINT, logging and swallowing store failures.

    Returns:
        The notification, or None when emission failed
    """
    try:
        with db.begin_nested():
            return notify(db, **kwargs)
    except SQLAlchemyError as e:
        logger.warning(
            f"Notification to {kwargs.get('recipient_id')} for task {kwargs.get('task_id')} "
            f"was dropped: {e}"
        )
        return None


def notify_task_assigned(
    db: Session,
    task: models.Task,
    actor: models.User,
    clock: Clock = utc_now,
    include_actor: bool = False,
) -> Optional[models.Notification]:
    """
    Tell the assignee about an assignment.

    A reassignment the actor makes to themselves is not reported unless
    ``include_actor`` is set; task creation always notifies the assignee.
    """
    if task.assigned_to is None:
        return None
    if task.assigned_to == actor.id and not include_actor:
        return None
    return emit_best_effort(
        db,
        recipient_id=task.assigned_to,
        type=models.NotificationType.TASK_ASSIGNED,
        title="New Task Assigned",
        message=f'You have been assigned a new task: "{task.title}"',
        task_id=task.id,
        sender_id=actor.id,
        priority=notification_priority_for(task.priority),
        clock=clock,
    )


def notify_status_changed(
    db: Session,
    task: models.Task,
    old_status: models.TaskStatus,
    actor: models.User,
    clock: Clock = utc_now,
    exclude: Iterable[UUID] = (),
) -> list[models.Notification]:
    """
    Tell the assignee and assigner (except the actor) about a status change.

    A move into completed is reported as ``task_completed``; any other change
    as ``status_update``. Users in ``exclude`` are skipped, e.g. a new
    assignee who already gets ``task_assigned`` for the same change.
    """
    skipped = {actor.id, *exclude}
    recipients = []
    for user_id in (task.assigned_by, task.assigned_to):
        if user_id is not None and user_id not in skipped and user_id not in recipients:
            recipients.append(user_id)

    if task.status == models.TaskStatus.COMPLETED:
        type_ = models.NotificationType.TASK_COMPLETED
        title = "Task Completed"
        message = f'"{task.title}" was marked as completed by {actor.full_name}'
    else:
        type_ = models.NotificationType.STATUS_UPDATE
        title = "Task Status Updated"
        message = (
            f'"{task.title}" moved from {STATUS_LABELS[old_status]} '
            f"to {STATUS_LABELS[task.status]} by {actor.full_name}"
        )

    sent = []
    for recipient_id in recipients:
        notification = emit_best_effort(
            db,
            recipient_id=recipient_id,
            type=type_,
            title=title,
            message=message,
            task_id=task.id,
            sender_id=actor.id,
            priority=notification_priority_for(task.priority),
            clock=clock,
        )
        if notification is not None:
            sent.append(notification)
    return sent


def list_for_user(
    db: Session,
    user: models.User,
    unread_only: bool = False,
    limit: int = 20,
) -> list[models.Notification]:
    """
    Get the user's notifications, newest first.

    Args:
        db: Database session
        user: Recipient
        unread_only: Only return unread notifications
        limit: Maximum number of notifications
    """
    query = db.query(models.Notification).filter(models.Notification.recipient_id == user.id)
    if unread_only:
        query = query.filter(models.Notification.is_read.is_(False))
    return (
        query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .limit(limit)
        .all()
    )


def unread_count(db: Session, user_id: UUID) -> int:
    return (
        db.query(models.Notification)
        .filter(
            models.Notification.recipient_id == user_id,
            models.Notification.is_read.is_(False),
        )
        .count()
    )


def mark_read(
    db: Session,
    notification_id: int,
    user: models.User,
    clock: Clock = utc_now,
) -> models.Notification:
    """
    Mark one notification as read. Only its recipient may do so.

    ``read_at`` is set on the first read and kept on later calls.

    Raises:
        NotFoundError: If the notification does not exist
        ForbiddenError: If the user is not the recipient
    """
    notification = db.get(models.Notification, notification_id)
    if not notification:
        raise NotFoundError(f"Notification not found: {notification_id}")
    if notification.recipient_id != user.id:
        logger.warning(f"User {user.id} tried to mark notification {notification_id} of another user")
        raise ForbiddenError("You can only mark your own notifications as read")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = clock()
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to mark notification {notification_id} read: {e}", exc_info=True)
            raise InfrastructureError("Failed to update notification") from e
    return notification


def mark_all_read(db: Session, user: models.User, clock: Clock = utc_now) -> int:
    """Mark every unread notification of the user as read; returns how many changed."""
    unread = (
        db.query(models.Notification)
        .filter(
            models.Notification.recipient_id == user.id,
            models.Notification.is_read.is_(False),
        )
        .all()
    )
    now = clock()
    for notification in unread:
        notification.is_read = True
        notification.read_at = now
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to mark notifications read for {user.id}: {e}", exc_info=True)
        raise InfrastructureError("Failed to update notifications") from e
    return len(unread)
