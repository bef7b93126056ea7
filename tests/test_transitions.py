"""Tests for the transition engine: create, update, status changes."""
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from tasktrack_core import history, models, notifications, transitions
from tasktrack_core.errors import (
    ConcurrentUpdateError,
    ForbiddenError,
    HistoryWriteError,
    NotFoundError,
    ValidationError,
)
from tasktrack_core.models import NotificationPriority, NotificationType, TaskPriority, TaskStatus

from conftest import NOW, TODAY, history_rows, notifications_for


class TestCreateTask:
    """Task creation defaults, audit record and assignment notification."""

    def test_defaults(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)

        assert task.status == TaskStatus.PENDING
        assert task.priority == TaskPriority.MEDIUM
        assert task.progress_percentage == 0
        assert task.assigned_by == admin.id
        assert task.assigned_to == employee_a.id
        assert task.completion_date is None
        assert task.created_at == NOW
        assert task.updated_at == NOW

    def test_writes_one_created_history_record(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)

        rows = history_rows(db, task.id)
        assert len(rows) == 1
        assert rows[0].field_changed == "created"
        assert rows[0].old_value is None
        assert rows[0].new_value == "Ship release"
        assert rows[0].changed_by == admin.id

    def test_notifies_assignee(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a, priority="urgent")

        sent = notifications_for(db, employee_a.id)
        assert len(sent) == 1
        assert sent[0].type == NotificationType.TASK_ASSIGNED
        assert sent[0].task_id == task.id
        assert sent[0].sender_id == admin.id
        assert sent[0].priority == NotificationPriority.HIGH

    def test_self_assignment_still_notifies(self, db, employee_a, make_task):
        task = make_task(employee_a, employee_a)

        sent = notifications_for(db, employee_a.id)
        assert [n.type for n in sent] == [NotificationType.TASK_ASSIGNED]
        assert sent[0].task_id == task.id

    def test_suspended_assignee_is_rejected(self, db, admin, suspended_user, make_task):
        """Creating a task for a suspended user fails and writes nothing."""
        with pytest.raises(ValidationError) as exc_info:
            make_task(admin, suspended_user)

        assert exc_info.value.field == "assigned_to"
        assert db.query(models.Task).count() == 0
        assert db.query(models.TaskHistory).count() == 0

    def test_blank_title_is_rejected(self, db, admin, employee_a, make_task):
        with pytest.raises(ValidationError):
            make_task(admin, employee_a, title="   ")
        assert db.query(models.Task).count() == 0

    def test_missing_assignee_is_rejected(self, db, admin, clock):
        with pytest.raises(ValidationError):
            transitions.create_task(db, {"title": "Orphan"}, admin, clock=clock)

    def test_unknown_project_is_rejected(self, db, admin, employee_a, make_task):
        with pytest.raises(ValidationError) as exc_info:
            make_task(admin, employee_a, project_id=uuid4())
        assert exc_info.value.field == "project_id"

    def test_negative_estimate_is_rejected(self, db, admin, employee_a, make_task):
        with pytest.raises(ValidationError):
            make_task(admin, employee_a, estimated_hours=-1)

    def test_accepts_iso_date_strings(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a, due_date="2026-03-12", estimated_hours="4.5")
        assert task.due_date == date(2026, 3, 12)
        assert task.estimated_hours == Decimal("4.5")


class TestUpdateTask:
    """Field-level diff, validation, and per-field history."""

    def test_one_history_record_per_changed_field(self, db, admin, employee_a, make_task, clock):
        task = make_task(admin, employee_a)
        clock.advance(timedelta(hours=1))

        transitions.update_task(db, task.id, {"title": "Ship it", "priority": "urgent"}, admin, clock=clock)

        rows = history_rows(db, task.id)
        assert [r.field_changed for r in rows] == ["created", "title", "priority"]
        assert (rows[1].old_value, rows[1].new_value) == ("Ship release", "Ship it")
        assert (rows[2].old_value, rows[2].new_value) == ("medium", "urgent")
        assert task.updated_at == NOW + timedelta(hours=1)

    def test_unchanged_fields_in_patch_are_not_recorded(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)

        transitions.update_task(db, task.id, {"title": "Ship release", "priority": "high"}, admin)

        assert [r.field_changed for r in history_rows(db, task.id)] == ["created", "priority"]

    def test_progress_out_of_range_leaves_task_unchanged(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)

        for bad in (150, -1):
            with pytest.raises(ValidationError) as exc_info:
                transitions.update_task(db, task.id, {"progress_percentage": bad}, employee_a)
            assert exc_info.value.field == "progress_percentage"

        assert db.get(models.Task, task.id).progress_percentage == 0
        assert len(history_rows(db, task.id)) == 1

    def test_progress_bounds_are_inclusive(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)
        transitions.update_task(db, task.id, {"progress_percentage": 100}, employee_a)
        assert task.progress_percentage == 100
        transitions.update_task(db, task.id, {"progress_percentage": 0}, employee_a)
        assert task.progress_percentage == 0

    def test_non_finite_progress_is_rejected(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)

        for bad in (float("nan"), float("inf"), Decimal("NaN")):
            with pytest.raises(ValidationError) as exc_info:
                transitions.update_task(db, task.id, {"progress_percentage": bad}, employee_a)
            assert exc_info.value.field == "progress_percentage"

        assert db.get(models.Task, task.id).progress_percentage == 0

    def test_hours_are_rounded_to_stored_precision(self, db, admin, employee_a, make_task):
        """Repeating an over-precise value records one change, with the stored value."""
        task = make_task(admin, employee_a)

        for _ in range(3):
            transitions.update_task(db, task.id, {"estimated_hours": "1.234"}, admin)

        assert task.estimated_hours == Decimal("1.23")
        rows = history_rows(db, task.id, field="estimated_hours")
        assert [(r.old_value, r.new_value) for r in rows] == [(None, "1.23")]

    def test_hours_round_half_up(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a, estimated_hours="2.005")
        assert task.estimated_hours == Decimal("2.01")

    def test_hours_above_column_range_are_rejected(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)

        for bad in ("1000000", "999999.995", "1e30"):
            with pytest.raises(ValidationError) as exc_info:
                transitions.update_task(db, task.id, {"actual_hours": bad}, admin)
            assert exc_info.value.field == "actual_hours"

        transitions.update_task(db, task.id, {"actual_hours": "999999.99"}, admin)
        assert task.actual_hours == Decimal("999999.99")

    def test_malformed_date_is_rejected(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)
        with pytest.raises(ValidationError) as exc_info:
            transitions.update_task(db, task.id, {"due_date": "2026-13-45"}, admin)
        assert exc_info.value.field == "due_date"

    def test_empty_title_is_rejected(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)
        with pytest.raises(ValidationError):
            transitions.update_task(db, task.id, {"title": ""}, admin)
        assert db.get(models.Task, task.id).title == "Ship release"

    def test_unknown_field_is_rejected(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)
        with pytest.raises(ValidationError):
            transitions.update_task(db, task.id, {"completion_date": NOW}, admin)

    def test_explicit_null_clears_field(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a, due_date=date(2026, 3, 12))

        transitions.update_task(db, task.id, {"due_date": None}, admin)

        assert task.due_date is None
        row = history_rows(db, task.id, field="due_date")[0]
        assert (row.old_value, row.new_value) == ("2026-03-12", None)

    def test_reassignment_notifies_new_assignee(self, db, admin, employee_a, employee_b, make_task):
        task = make_task(admin, employee_a)

        transitions.update_task(db, task.id, {"assigned_to": employee_b.id}, admin)

        sent = notifications_for(db, employee_b.id)
        assert len(sent) == 1
        assert sent[0].type == NotificationType.TASK_ASSIGNED
        assert len(history_rows(db, task.id, field="assigned_to")) == 1

    def test_reassignment_to_self_is_not_notified(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)

        transitions.update_task(db, task.id, {"assigned_to": admin.id}, admin)

        assert task.assigned_to == admin.id
        assert notifications_for(db, admin.id) == []

    def test_reassignment_with_status_change_notifies_once(
        self, db, admin, employee_a, employee_b, make_task
    ):
        """A new assignee gets task_assigned only, not a status update as well."""
        task = make_task(admin, employee_a)

        transitions.update_task(
            db, task.id, {"assigned_to": employee_b.id, "status": "in_progress"}, admin
        )

        sent = notifications_for(db, employee_b.id)
        assert [n.type for n in sent] == [NotificationType.TASK_ASSIGNED]

    def test_reassignment_to_suspended_user_is_rejected(self, db, admin, employee_a, suspended_user, make_task):
        task = make_task(admin, employee_a)
        with pytest.raises(ValidationError):
            transitions.update_task(db, task.id, {"assigned_to": suspended_user.id}, admin)
        assert db.get(models.Task, task.id).assigned_to == employee_a.id

    def test_missing_task(self, db, admin):
        with pytest.raises(NotFoundError):
            transitions.update_task(db, uuid4(), {"title": "x"}, admin)


class TestUpdatePermissions:
    def test_unrelated_employee_is_forbidden(self, db, admin, employee_a, employee_b, make_task):
        """An employee cannot reprioritize a task assigned to someone else."""
        task = make_task(admin, employee_b)

        with pytest.raises(ForbiddenError):
            transitions.update_task(db, task.id, {"priority": "urgent"}, employee_a)

        assert db.get(models.Task, task.id).priority == TaskPriority.MEDIUM
        assert len(history_rows(db, task.id)) == 1

    def test_assignee_cannot_change_title(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)
        with pytest.raises(ForbiddenError):
            transitions.update_task(db, task.id, {"title": "Mine now"}, employee_a)

    def test_assignee_can_log_progress(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)
        transitions.update_task(
            db, task.id, {"progress_percentage": 40, "actual_hours": 3, "status": "in_progress"}, employee_a
        )
        assert task.progress_percentage == 40
        assert task.actual_hours == Decimal("3")
        assert task.status == TaskStatus.IN_PROGRESS

    def test_employee_assigner_can_change_anything(self, db, employee_a, employee_b, make_task):
        task = make_task(employee_a, employee_b)
        transitions.update_task(db, task.id, {"title": "Reworded", "priority": "low"}, employee_a)
        assert task.title == "Reworded"
        assert task.priority == TaskPriority.LOW

    def test_manager_can_change_anything(self, db, admin, manager, employee_a, make_task):
        task = make_task(admin, employee_a)
        transitions.update_task(db, task.id, {"title": "Managed"}, manager)
        assert task.title == "Managed"


class TestStatusChanges:
    def test_assignee_completes_task(self, db, admin, employee_a, make_task, clock):
        task = make_task(admin, employee_a)
        clock.advance(timedelta(hours=2))

        transitions.update_status(db, task.id, "completed", employee_a, clock=clock)

        assert task.status == TaskStatus.COMPLETED
        assert task.completion_date == NOW + timedelta(hours=2)

        rows = history_rows(db, task.id, field="status")
        assert len(rows) == 1
        assert (rows[0].old_value, rows[0].new_value) == ("pending", "completed")
        assert rows[0].changed_by == employee_a.id

        to_assigner = notifications_for(db, admin.id)
        assert len(to_assigner) == 1
        assert to_assigner[0].type == NotificationType.TASK_COMPLETED
        # Actor is not notified of their own change
        assert len(notifications_for(db, employee_a.id)) == 1

    def test_status_change_by_admin_notifies_assignee(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)

        transitions.update_status(db, task.id, TaskStatus.ON_HOLD, admin)

        sent = notifications_for(db, employee_a.id)
        assert [n.type for n in sent] == [NotificationType.TASK_ASSIGNED, NotificationType.STATUS_UPDATE]
        assert notifications_for(db, admin.id) == []

    def test_reopening_clears_completion_date(self, db, admin, employee_a, make_task, clock):
        task = make_task(admin, employee_a)
        transitions.update_status(db, task.id, "completed", employee_a, clock=clock)
        transitions.update_status(db, task.id, "in_progress", employee_a, clock=clock)

        assert task.status == TaskStatus.IN_PROGRESS
        assert task.completion_date is None

    def test_actual_hours_travel_with_status(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)
        transitions.update_status(db, task.id, "completed", employee_a, actual_hours=Decimal("6.25"))

        assert task.actual_hours == Decimal("6.25")
        assert [r.field_changed for r in history_rows(db, task.id)] == ["created", "status", "actual_hours"]

    def test_first_in_progress_stamps_start_date_without_history(self, db, admin, employee_a, make_task, clock):
        task = make_task(admin, employee_a)
        transitions.update_status(db, task.id, "in_progress", employee_a, clock=clock)

        assert task.start_date == TODAY
        assert history_rows(db, task.id, field="start_date") == []

    def test_invalid_status_value(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)
        with pytest.raises(ValidationError):
            transitions.update_status(db, task.id, "done", employee_a)

    def test_repeating_a_status_is_a_no_op(self, db, admin, employee_a, make_task, clock):
        """The second identical status update records nothing and keeps updated_at."""
        task = make_task(admin, employee_a)
        clock.advance(timedelta(hours=1))
        transitions.update_status(db, task.id, "completed", employee_a, clock=clock)
        first_state = (task.status, task.completion_date, task.updated_at, task.version)

        clock.advance(timedelta(hours=1))
        transitions.update_status(db, task.id, "completed", employee_a, clock=clock)

        assert (task.status, task.completion_date, task.updated_at, task.version) == first_state
        assert len(history_rows(db, task.id, field="status")) == 1
        assert len(notifications_for(db, admin.id)) == 1


class TestFailureHandling:
    def test_history_failure_rolls_back_mutation(self, db, admin, employee_a, make_task, monkeypatch):
        task = make_task(admin, employee_a)

        def failing_record(*args, **kwargs):
            raise HistoryWriteError("history store down")

        monkeypatch.setattr(history, "record", failing_record)

        with pytest.raises(HistoryWriteError):
            transitions.update_status(db, task.id, "completed", admin)

        reloaded = db.get(models.Task, task.id)
        assert reloaded.status == TaskStatus.PENDING
        assert reloaded.completion_date is None
        assert len(notifications_for(db, employee_a.id)) == 1

    def test_notification_failure_does_not_roll_back(self, db, admin, employee_a, make_task, clock, monkeypatch):
        task = make_task(admin, employee_a)

        def failing_notify(*args, **kwargs):
            raise OperationalError("INSERT INTO notifications", {}, Exception("disk I/O error"))

        monkeypatch.setattr(notifications, "notify", failing_notify)

        transitions.update_status(db, task.id, "completed", employee_a, clock=clock)

        reloaded = db.get(models.Task, task.id)
        assert reloaded.status == TaskStatus.COMPLETED
        assert len(history_rows(db, task.id, field="status")) == 1
        assert notifications_for(db, admin.id) == []

    def test_history_failure_on_create_leaves_no_task(self, db, admin, employee_a, make_task, monkeypatch):
        def failing_record(*args, **kwargs):
            raise HistoryWriteError("history store down")

        monkeypatch.setattr(history, "record", failing_record)

        with pytest.raises(HistoryWriteError):
            make_task(admin, employee_a)

        assert db.query(models.Task).count() == 0
        assert db.query(models.TaskHistory).count() == 0
        assert notifications_for(db, employee_a.id) == []

    def test_notification_failure_on_create_keeps_task(self, db, admin, employee_a, make_task, monkeypatch):
        def failing_notify(*args, **kwargs):
            raise OperationalError("INSERT INTO notifications", {}, Exception("disk I/O error"))

        monkeypatch.setattr(notifications, "notify", failing_notify)

        task = make_task(admin, employee_a)

        assert db.get(models.Task, task.id) is not None
        assert [r.field_changed for r in history_rows(db, task.id)] == ["created"]
        assert notifications_for(db, employee_a.id) == []

    def test_stale_version_surfaces_as_concurrent_update(self, db, admin, employee_a, make_task):
        task = make_task(admin, employee_a)
        # Another writer bumped the row behind this session's back
        db.execute(text("UPDATE tasks SET version = version + 1"))

        task.title = "Lost update"
        with pytest.raises(ConcurrentUpdateError):
            transitions._flush_task(db, task)
        db.rollback()
