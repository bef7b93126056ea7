"""Initial schema: users, projects, tasks, history, notifications, checklists.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum('admin', 'manager', 'employee', name='user_role')
user_status = sa.Enum('active', 'inactive', 'suspended', name='user_status')
project_status = sa.Enum('active', 'on_hold', 'completed', 'archived', name='project_status')
task_status = sa.Enum('pending', 'in_progress', 'completed', 'cancelled', 'on_hold', name='task_status')
task_priority = sa.Enum('low', 'medium', 'high', 'urgent', name='task_priority')
notification_type = sa.Enum(
    'task_assigned', 'task_completed', 'task_overdue', 'deadline_reminder', 'status_update', 'system',
    name='notification_type',
)
notification_priority = sa.Enum('low', 'medium', 'high', name='notification_priority')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('full_name', sa.String(100), nullable=False),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', user_role, nullable=False, server_default='employee'),
        sa.Column('status', user_status, nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_status', 'users', ['status'])

    op.create_table(
        'projects',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('status', project_status, nullable=False, server_default='active'),
        sa.Column('created_by', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_projects_status', 'projects', ['status'])

    op.create_table(
        'tasks',
        sa.Column('id', sa.Uuid, primary_key=True),
        sa.Column('project_id', sa.Uuid, sa.ForeignKey('projects.id', ondelete='SET NULL')),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('status', task_status, nullable=False, server_default='pending'),
        sa.Column('priority', task_priority, nullable=False, server_default='medium'),
        sa.Column('assigned_to', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('assigned_by', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('due_date', sa.Date),
        sa.Column('start_date', sa.Date),
        sa.Column('completion_date', sa.DateTime),
        sa.Column('estimated_hours', sa.Numeric(8, 2)),
        sa.Column('actual_hours', sa.Numeric(8, 2)),
        sa.Column('progress_percentage', sa.Integer, nullable=False, server_default='0'),
        sa.Column('version', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            'progress_percentage >= 0 AND progress_percentage <= 100',
            name='valid_progress_percentage'
        ),
        sa.CheckConstraint(
            "(status = 'completed' AND completion_date IS NOT NULL) "
            "OR (status != 'completed' AND completion_date IS NULL)",
            name='completion_date_matches_status'
        ),
        sa.CheckConstraint('estimated_hours IS NULL OR estimated_hours >= 0', name='non_negative_estimated_hours'),
        sa.CheckConstraint('actual_hours IS NULL OR actual_hours >= 0', name='non_negative_actual_hours'),
    )
    op.create_index('ix_tasks_project_id', 'tasks', ['project_id'])
    op.create_index('ix_tasks_status', 'tasks', ['status'])
    op.create_index('ix_tasks_priority', 'tasks', ['priority'])
    op.create_index('ix_tasks_assigned_to', 'tasks', ['assigned_to'])
    op.create_index('ix_tasks_assigned_by', 'tasks', ['assigned_by'])
    op.create_index('ix_tasks_due_date', 'tasks', ['due_date'])
    op.create_index('ix_tasks_created_at', 'tasks', ['created_at'])
    op.create_index('ix_tasks_updated_at', 'tasks', ['updated_at'])

    op.create_table(
        'task_history',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('task_id', sa.Uuid, sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('field_changed', sa.String(50), nullable=False),
        sa.Column('old_value', sa.Text),
        sa.Column('new_value', sa.Text),
        sa.Column('changed_by', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('changed_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_task_history_task_id', 'task_history', ['task_id'])
    op.create_index('ix_task_history_changed_at', 'task_history', ['changed_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('recipient_id', sa.Uuid, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_id', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('task_id', sa.Uuid, sa.ForeignKey('tasks.id', ondelete='SET NULL')),
        sa.Column('type', notification_type, nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('is_read', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('priority', notification_priority, nullable=False, server_default='medium'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('read_at', sa.DateTime),
    )
    op.create_index('ix_notifications_recipient_id', 'notifications', ['recipient_id'])
    op.create_index('ix_notifications_task_id', 'notifications', ['task_id'])
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    op.create_table(
        'task_checklists',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('task_id', sa.Uuid, sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('is_completed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Uuid, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_task_checklists_task_id', 'task_checklists', ['task_id'])


def downgrade() -> None:
    op.drop_table('task_checklists')
    op.drop_table('notifications')
    op.drop_table('task_history')
    op.drop_table('tasks')
    op.drop_table('projects')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (
        notification_priority,
        notification_type,
        task_priority,
        task_status,
        project_status,
        user_status,
        user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
