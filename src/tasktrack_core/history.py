"""Append-only audit trail for task mutations."""
import enum
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .errors import HistoryWriteError

logger = logging.getLogger("tasktrack-core.history")

CREATED = "created"
CHECKLIST = "checklist"


def stringify(value: Any) -> Optional[str]:
    """Render a field value the way it is stored in ``old_value``/``new_value``."""
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, UUID):
        return str(value)
    return str(value)


def record(
    db: Session,
    task_id: UUID,
    field: str,
    old_value: Any,
    new_value: Any,
    actor_id: Optional[UUID],
    changed_at: datetime,
) -> models.TaskHistory:
    """
    Append one history row inside the caller's transaction.

    The row is flushed immediately so that a failing append surfaces here,
    before the caller commits.

    Args:
        db: Database session holding the open transaction
        task_id: Task the change belongs to
        field: Field name, or an action label such as ``created``
        old_value: Value before the change
        new_value: Value after the change
        actor_id: User who made the change
        changed_at: Timestamp of the mutation

    Returns:
        The pending TaskHistory row

    Raises:
        HistoryWriteError: If the append fails; the caller must roll back
    """
    entry = models.TaskHistory(
        task_id=task_id,
        field_changed=field,
        old_value=stringify(old_value),
        new_value=stringify(new_value),
        changed_by=actor_id,
        changed_at=changed_at,
    )
    try:
        db.add(entry)
        db.flush()
    except SQLAlchemyError as e:
        logger.error(f"History append failed for task {task_id} ({field}): {e}", exc_info=True)
        raise HistoryWriteError(f"Could not record history for task {task_id}") from e
    return entry


def list_for_task(db: Session, task_id: UUID, limit: int = 50) -> list[models.TaskHistory]:
    """
    Get history for a task, newest first.

    Args:
        db: Database session
        task_id: Task UUID
        limit: Maximum number of entries to return

    Returns:
        List of TaskHistory entries
    """
    return (
        db.query(models.TaskHistory)
        .filter(models.TaskHistory.task_id == task_id)
        .order_by(models.TaskHistory.changed_at.desc(), models.TaskHistory.id.desc())
        .limit(limit)
        .all()
    )
