"""SQLAlchemy database models."""
from datetime import datetime
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Date,
    DateTime,
    Numeric,
    ForeignKey,
    Enum,
    CheckConstraint,
    Boolean,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


def _enum_values(enum_cls):
    # Persist lowercase values instead of member names
    return [e.value for e in enum_cls]


class UserRole(str, enum.Enum):
    """User role enum. Admin and manager are both elevated over tasks."""

    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class UserStatus(str, enum.Enum):
    """Account status enum."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class ProjectStatus(str, enum.Enum):
    """Project status enum."""

    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TaskStatus(str, enum.Enum):
    """Task lifecycle status enum."""

    PENDING = "pending"  # Not yet started
    IN_PROGRESS = "in_progress"  # Currently being worked on
    COMPLETED = "completed"  # Successfully finished
    CANCELLED = "cancelled"  # No longer needed
    ON_HOLD = "on_hold"  # Paused


class TaskPriority(str, enum.Enum):
    """Task priority enum."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Urgency(str, enum.Enum):
    """Derived urgency of a task, computed at query time and never stored."""

    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    NORMAL = "normal"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    TASK_OVERDUE = "task_overdue"
    DEADLINE_REMINDER = "deadline_reminder"
    STATUS_UPDATE = "status_update"
    SYSTEM = "system"


class NotificationPriority(str, enum.Enum):
    """Notification priority enum."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class User(Base):
    """
    User model for local username/password authentication.

    Passwords are stored only as a salted hash. Users referenced by tasks are
    never hard-deleted; they are deactivated instead.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    full_name = Column(String(100), nullable=False)
    username = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(
        Enum(UserRole, values_callable=_enum_values, name="user_role"),
        nullable=False,
        default=UserRole.EMPLOYEE,
        index=True,
    )
    status = Column(
        Enum(UserStatus, values_callable=_enum_values, name="user_status"),
        nullable=False,
        default=UserStatus.ACTIVE,
        index=True,
    )

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_elevated(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.MANAGER)

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.role.value})>"


class Project(Base):
    """Project grouping for tasks."""

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        Enum(ProjectStatus, values_callable=_enum_values, name="project_status"),
        nullable=False,
        default=ProjectStatus.ACTIVE,
        index=True,
    )
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    completion_date = Column(DateTime, nullable=True)  # First time status became completed

    # Audit fields
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    creator = relationship("User")
    tasks = relationship("Task", back_populates="project")

    def __repr__(self) -> str:
        return f"<Project {self.name}>"


class Task(Base):
    """Task entity, the aggregate root of the tracker.

    Exactly one current row per task; the version trail lives in TaskHistory.
    The ``version`` column is an optimistic concurrency counter maintained by
    SQLAlchemy on every UPDATE.
    """

    __tablename__ = "tasks"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(
        Uuid,
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Core task fields
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(
        Enum(TaskStatus, values_callable=_enum_values, name="task_status"),
        nullable=False,
        default=TaskStatus.PENDING,
        index=True,
    )
    priority = Column(
        Enum(TaskPriority, values_callable=_enum_values, name="task_priority"),
        nullable=False,
        default=TaskPriority.MEDIUM,
        index=True,
    )

    # Assignment
    assigned_to = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Scheduling and effort
    due_date = Column(Date, nullable=True, index=True)
    start_date = Column(Date, nullable=True)
    completion_date = Column(DateTime, nullable=True)
    estimated_hours = Column(Numeric(8, 2), nullable=True)
    actual_hours = Column(Numeric(8, 2), nullable=True)
    progress_percentage = Column(Integer, nullable=False, default=0)

    version = Column(Integer, nullable=False)

    # Audit fields (updated_at is maintained by the transition engine so that
    # no-op updates leave it untouched)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    project = relationship("Project", back_populates="tasks")
    assignee = relationship("User", foreign_keys=[assigned_to])
    assigner = relationship("User", foreign_keys=[assigned_by])

    # History and checklist rows go away with the task
    history = relationship(
        "TaskHistory",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TaskHistory.id",
    )
    checklist_items = relationship(
        "ChecklistItem",
        back_populates="task",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChecklistItem.id",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="valid_progress_percentage",
        ),
        CheckConstraint(
            "(status = 'completed' AND completion_date IS NOT NULL) "
            "OR (status != 'completed' AND completion_date IS NULL)",
            name="completion_date_matches_status",
        ),
        CheckConstraint("estimated_hours IS NULL OR estimated_hours >= 0", name="non_negative_estimated_hours"),
        CheckConstraint("actual_hours IS NULL OR actual_hours >= 0", name="non_negative_actual_hours"),
    )

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.title[:30]}>"


class TaskHistory(Base):
    """Append-only audit trail for tasks.

    One row per changed field of a committed mutation, plus one ``created`` row
    per task. Rows are never updated; they are removed only when the task is
    deleted.
    """

    __tablename__ = "task_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(
        Uuid,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Field name for field changes, or an action label ("created", "checklist")
    field_changed = Column(String(50), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)

    # Audit fields
    changed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Relationships
    task = relationship("Task", back_populates="history")
    user = relationship("User")

    def __repr__(self) -> str:
        return f"<TaskHistory {self.task_id}: {self.field_changed}>"


class Notification(Base):
    """Notification delivered to a single recipient."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    task_id = Column(Uuid, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True, index=True)
    type = Column(
        Enum(NotificationType, values_callable=_enum_values, name="notification_type"),
        nullable=False,
    )
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    priority = Column(
        Enum(NotificationPriority, values_callable=_enum_values, name="notification_priority"),
        nullable=False,
        default=NotificationPriority.MEDIUM,
    )
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    read_at = Column(DateTime, nullable=True)

    # Relationships
    recipient = relationship("User", foreign_keys=[recipient_id])
    sender = relationship("User", foreign_keys=[sender_id])
    task = relationship("Task")

    def __repr__(self) -> str:
        return f"<Notification {self.id}: {self.type.value} -> {self.recipient_id}>"


class ChecklistItem(Base):
    """Checklist entry belonging to a task."""

    __tablename__ = "task_checklists"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(
        Uuid,
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    title = Column(String(200), nullable=False)
    is_completed = Column(Boolean, nullable=False, default=False)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    task = relationship("Task", back_populates="checklist_items")

    def __repr__(self) -> str:
        return f"<ChecklistItem {self.id}: {self.title[:30]}>"
