"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from .models import (
    UserRole,
    UserStatus,
    ProjectStatus,
    TaskStatus,
    TaskPriority,
    Urgency,
    NotificationType,
    NotificationPriority,
)


class MessageResponse(BaseModel):
    """Generic acknowledgement."""

    message: str


# ============================================================================
# Identity Schemas
# ============================================================================


class RegisterRequest(BaseModel):
    """Schema for self registration. New accounts always get the employee role."""

    full_name: str = Field(..., min_length=1, max_length=100)
    username: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., max_length=255)
    password: str = Field(..., description="At least 6 characters")


class LoginRequest(BaseModel):
    """Schema for login with username or email."""

    username: str = Field(..., min_length=1, description="Username or email")
    password: str = Field(..., min_length=1)


class UserCreate(BaseModel):
    """Schema for an admin creating a user with any role."""

    full_name: str = Field(..., min_length=1, max_length=100)
    username: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., max_length=255)
    password: str
    role: UserRole = UserRole.EMPLOYEE
    status: UserStatus = UserStatus.ACTIVE


class UserUpdate(BaseModel):
    """Schema for an admin updating a user. Role and status change only here."""

    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    password: Optional[str] = None


class ProfileUpdate(BaseModel):
    """Schema for a user updating their own profile."""

    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    password: Optional[str] = None


class UserResponse(BaseModel):
    """Schema for full user details. Never carries the password hash."""

    id: UUID
    full_name: str
    username: str
    email: str
    role: UserRole
    status: UserStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class UserListItem(BaseModel):
    """Schema for the user directory; optional columns depend on the caller's role."""

    id: UUID
    full_name: str
    username: str
    role: Optional[UserRole] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class TokenResponse(BaseModel):
    """Schema for login/registration responses."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class UserTaskStats(BaseModel):
    """Per-user workload statistics."""

    user_id: UUID
    full_name: str
    email: str
    role: UserRole
    total_tasks: int
    pending_tasks: int
    in_progress_tasks: int
    completed_tasks: int
    overdue_tasks: int
    completion_rate: float

    model_config = ConfigDict(use_enum_values=True)


# ============================================================================
# Project Schemas
# ============================================================================


class ProjectCreate(BaseModel):
    """Schema for creating a project."""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.ACTIVE


class ProjectUpdate(BaseModel):
    """Schema for updating a project. Only provided fields are changed."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None


class ProjectResponse(BaseModel):
    """Schema for project details."""

    id: UUID
    name: str
    description: Optional[str] = None
    status: ProjectStatus
    created_by: Optional[UUID] = None
    completion_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ============================================================================
# Task Schemas
# ============================================================================


class TaskCreate(BaseModel):
    """Schema for creating a new task.

    The caller becomes the assigner. Status always starts as pending with zero
    progress; range and reference checks happen in the transition engine.
    """

    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    assigned_to: UUID = Field(..., description="User UUID of the assignee (must be active)")
    due_date: Optional[date] = Field(None, description="Due date (optional)")
    start_date: Optional[date] = Field(None, description="Planned start date (optional)")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    estimated_hours: Optional[Decimal] = Field(None, description="Estimated effort in hours")
    project_id: Optional[UUID] = Field(None, description="Project UUID (optional)")


class TaskUpdate(BaseModel):
    """Schema for updating an existing task.

    Only fields present in the request body are applied. An explicit null
    clears a nullable field.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[UUID] = None
    project_id: Optional[UUID] = None
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    estimated_hours: Optional[Decimal] = None
    actual_hours: Optional[Decimal] = None
    progress_percentage: Optional[int] = None


class TaskStatusUpdate(BaseModel):
    """Schema for the narrow status-only update path."""

    status: TaskStatus
    actual_hours: Optional[Decimal] = None


class TaskResponse(BaseModel):
    """Schema for full task response."""

    id: UUID
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    project_id: Optional[UUID] = None
    assigned_to: Optional[UUID] = None
    assigned_to_name: Optional[str] = None
    assigned_by: Optional[UUID] = None
    assigned_by_name: Optional[str] = None
    due_date: Optional[date] = None
    start_date: Optional[date] = None
    completion_date: Optional[datetime] = None
    estimated_hours: Optional[Decimal] = None
    actual_hours: Optional[Decimal] = None
    progress_percentage: int
    urgency: Urgency = Field(description="overdue / due_today / normal, computed at read time")
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class TaskListResponse(BaseModel):
    """Schema for task lists, sorted by urgency, priority, then recency."""

    items: list[TaskResponse]
    total: int


class TaskHistoryResponse(BaseModel):
    """Schema for task history entries."""

    id: int
    task_id: UUID
    field_changed: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_by: Optional[UUID] = None
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChecklistItemCreate(BaseModel):
    """Schema for adding a checklist item."""

    title: str = Field(..., min_length=1, max_length=200)


class ChecklistItemUpdate(BaseModel):
    """Schema for editing a checklist item."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    is_completed: Optional[bool] = None


class ChecklistItemResponse(BaseModel):
    """Schema for checklist items."""

    id: int
    task_id: UUID
    title: str
    is_completed: bool
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Notification and Dashboard Schemas
# ============================================================================


class NotificationResponse(BaseModel):
    """Schema for notifications."""

    id: int
    recipient_id: UUID
    sender_id: Optional[UUID] = None
    task_id: Optional[UUID] = None
    type: NotificationType
    title: str
    message: str
    is_read: bool
    priority: NotificationPriority
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class DashboardSummary(BaseModel):
    """Task counts scoped to the caller (global for admin/manager)."""

    total: int
    pending: int
    in_progress: int
    completed: int
    on_hold: int
    cancelled: int
    overdue: int
    due_today: int
    tasks_created: int
    unread_notifications: int
