"""Read-side projections: role-scoped task lists, dashboard counts, user stats."""
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, case, func, or_
from sqlalchemy.orm import Query, Session

from . import models, notifications, permissions, schemas
from .clock import Clock, today, utc_now
from .errors import ForbiddenError
from .state_machine import PRIORITY_SORT_ORDER, TERMINAL_STATUSES, URGENCY_SORT_ORDER

_TERMINAL = list(TERMINAL_STATUSES)


def _open_task():
    return models.Task.status.notin_(_TERMINAL)


def _overdue(on: date):
    return and_(_open_task(), models.Task.due_date.isnot(None), models.Task.due_date < on)


def _due_today(on: date):
    return and_(_open_task(), models.Task.due_date == on)


def _urgency_sort_expression(on: date):
    """CASE expression ranking overdue first, then due today, then the rest."""
    return case(
        (_overdue(on), URGENCY_SORT_ORDER[models.Urgency.OVERDUE]),
        (_due_today(on), URGENCY_SORT_ORDER[models.Urgency.DUE_TODAY]),
        else_=URGENCY_SORT_ORDER[models.Urgency.NORMAL],
    )


def _priority_sort_expression():
    return case(
        {priority: order for priority, order in PRIORITY_SORT_ORDER.items()},
        value=models.Task.priority,
        else_=99,
    )


def scoped_tasks(db: Session, actor: models.User) -> Query:
    """Tasks the actor may see: everything for elevated roles, own assignments otherwise."""
    query = db.query(models.Task)
    if not actor.is_elevated:
        query = query.filter(models.Task.assigned_to == actor.id)
    return query


def list_for_role(
    db: Session,
    actor: models.User,
    status: Optional[models.TaskStatus] = None,
    priority: Optional[models.TaskPriority] = None,
    project_id: Optional[UUID] = None,
    assigned_to: Optional[UUID] = None,
    urgency: Optional[models.Urgency] = None,
    limit: int = 100,
    offset: int = 0,
    clock: Clock = utc_now,
) -> tuple[list[models.Task], int]:
    """
    List tasks visible to the actor in display order.

    Order: overdue, due today, everything else; then priority urgent → low;
    then most recently updated first.

    Args:
        db: Database session
        actor: Requesting user
        status: Optional status filter
        priority: Optional priority filter
        project_id: Optional project filter
        assigned_to: Optional assignee filter (ignored for employees)
        urgency: Optional urgency filter
        limit: Maximum number of results
        offset: Number of results to skip
        clock: Source of "today"

    Returns:
        Tuple of (tasks, total matching count)
    """
    on = today(clock)
    query = scoped_tasks(db, actor)

    if status:
        query = query.filter(models.Task.status == status)
    if priority:
        query = query.filter(models.Task.priority == priority)
    if project_id:
        query = query.filter(models.Task.project_id == project_id)
    if assigned_to and actor.is_elevated:
        query = query.filter(models.Task.assigned_to == assigned_to)

    if urgency == models.Urgency.OVERDUE:
        query = query.filter(_overdue(on))
    elif urgency == models.Urgency.DUE_TODAY:
        query = query.filter(_due_today(on))
    elif urgency == models.Urgency.NORMAL:
        query = query.filter(
            or_(
                models.Task.status.in_(_TERMINAL),
                models.Task.due_date.is_(None),
                models.Task.due_date > on,
            )
        )

    total = query.count()
    tasks = (
        query.order_by(
            _urgency_sort_expression(on),
            _priority_sort_expression(),
            models.Task.updated_at.desc(),
            models.Task.id,
        )
        .offset(offset)
        .limit(limit)
        .all()
    )
    return tasks, total


def dashboard_summary(db: Session, actor: models.User, clock: Clock = utc_now) -> schemas.DashboardSummary:
    """Task counts in the actor's visibility scope plus their unread notifications."""
    on = today(clock)
    scoped = scoped_tasks(db, actor)

    by_status = dict(
        scoped.with_entities(models.Task.status, func.count(models.Task.id))
        .group_by(models.Task.status)
        .all()
    )
    counts = {status: by_status.get(status, 0) for status in models.TaskStatus}

    return schemas.DashboardSummary(
        total=sum(counts.values()),
        pending=counts[models.TaskStatus.PENDING],
        in_progress=counts[models.TaskStatus.IN_PROGRESS],
        completed=counts[models.TaskStatus.COMPLETED],
        on_hold=counts[models.TaskStatus.ON_HOLD],
        cancelled=counts[models.TaskStatus.CANCELLED],
        overdue=scoped.filter(_overdue(on)).count(),
        due_today=scoped.filter(_due_today(on)).count(),
        tasks_created=db.query(models.Task).filter(models.Task.assigned_by == actor.id).count(),
        unread_notifications=notifications.unread_count(db, actor.id),
    )


def user_task_stats(db: Session, actor: models.User, clock: Clock = utc_now) -> list[schemas.UserTaskStats]:
    """
    Per-user workload for active users. Admins and managers only.

    Ordered by completion rate, then total tasks, both descending.

    Raises:
        ForbiddenError: If the actor is an employee
    """
    if not permissions.can_view_user_stats(actor):
        raise ForbiddenError("Only admins and managers can view user statistics")

    on = today(clock)
    per_user_status: dict[UUID, dict[models.TaskStatus, int]] = {}
    rows = (
        db.query(models.Task.assigned_to, models.Task.status, func.count(models.Task.id))
        .filter(models.Task.assigned_to.isnot(None))
        .group_by(models.Task.assigned_to, models.Task.status)
        .all()
    )
    for user_id, status, count in rows:
        per_user_status.setdefault(user_id, {})[status] = count

    overdue_by_user = dict(
        db.query(models.Task.assigned_to, func.count(models.Task.id))
        .filter(models.Task.assigned_to.isnot(None), _overdue(on))
        .group_by(models.Task.assigned_to)
        .all()
    )

    stats = []
    users = db.query(models.User).filter(models.User.status == models.UserStatus.ACTIVE).all()
    for user in users:
        counts = per_user_status.get(user.id, {})
        total = sum(counts.values())
        completed = counts.get(models.TaskStatus.COMPLETED, 0)
        stats.append(schemas.UserTaskStats(
            user_id=user.id,
            full_name=user.full_name,
            email=user.email,
            role=user.role,
            total_tasks=total,
            pending_tasks=counts.get(models.TaskStatus.PENDING, 0),
            in_progress_tasks=counts.get(models.TaskStatus.IN_PROGRESS, 0),
            completed_tasks=completed,
            overdue_tasks=overdue_by_user.get(user.id, 0),
            completion_rate=round(completed * 100 / total, 2) if total else 0.0,
        ))

    stats.sort(key=lambda s: (s.completion_rate, s.total_tasks), reverse=True)
    return stats
