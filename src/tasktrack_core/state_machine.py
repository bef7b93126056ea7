"""Derived task state: completion and start dates, urgency, sort orders.

Status is not a guarded state machine. Any status may follow any other,
including re-opening a completed or cancelled task. Completed and cancelled
are terminal only for urgency and overdue counts.

``completion_date`` is set when status enters completed and cleared when it
leaves.
"""
from datetime import date, datetime
from typing import Optional

from .models import TaskStatus, TaskPriority, Urgency

TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})


def completion_date_for(new_status: TaskStatus, previous: Optional[datetime], now: datetime) -> Optional[datetime]:
    """
    Derive ``completion_date`` after a status change.

    Args:
        new_status: Status after the change
        previous: completion_date before the change
        now: Current time

    Returns:
        ``now`` on entering completed, the previous value while staying
        completed, None otherwise
    """
    if new_status != TaskStatus.COMPLETED:
        return None
    return previous or now


def start_date_for(new_status: TaskStatus, previous: Optional[date], now: datetime) -> Optional[date]:
    """First move into in_progress stamps the start date when none was planned."""
    if new_status == TaskStatus.IN_PROGRESS and previous is None:
        return now.date()
    return previous


# Lower number = shown first
PRIORITY_SORT_ORDER: dict[TaskPriority, int] = {
    TaskPriority.URGENT: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.MEDIUM: 3,
    TaskPriority.LOW: 4,
}

URGENCY_SORT_ORDER: dict[Urgency, int] = {
    Urgency.OVERDUE: 1,
    Urgency.DUE_TODAY: 2,
    Urgency.NORMAL: 3,
}


def urgency_of(due_date: Optional[date], status: TaskStatus, today: date) -> Urgency:
    """Classify a task as overdue, due today, or normal. Terminal tasks are always normal."""
    if due_date is None or status in TERMINAL_STATUSES:
        return Urgency.NORMAL
    if due_date < today:
        return Urgency.OVERDUE
    if due_date == today:
        return Urgency.DUE_TODAY
    return Urgency.NORMAL
