"""Tests for derived task state."""
from datetime import date, datetime

from tasktrack_core.models import TaskStatus, Urgency
from tasktrack_core.state_machine import (
    TERMINAL_STATUSES,
    completion_date_for,
    start_date_for,
    urgency_of,
)

NOW = datetime(2026, 3, 10, 9, 30)
TODAY = date(2026, 3, 10)


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {TaskStatus.COMPLETED, TaskStatus.CANCELLED}


class TestCompletionDate:
    """completion_date is set on entering completed and cleared on leaving."""

    def test_entering_completed_stamps_now(self):
        assert completion_date_for(TaskStatus.COMPLETED, None, NOW) == NOW

    def test_staying_completed_keeps_original_stamp(self):
        earlier = datetime(2026, 3, 1, 12, 0)
        assert completion_date_for(TaskStatus.COMPLETED, earlier, NOW) == earlier

    def test_leaving_completed_clears_it(self):
        for status in TaskStatus:
            if status != TaskStatus.COMPLETED:
                assert completion_date_for(status, NOW, NOW) is None


class TestStartDate:
    def test_first_move_into_in_progress_stamps_today(self):
        assert start_date_for(TaskStatus.IN_PROGRESS, None, NOW) == TODAY

    def test_planned_start_date_is_kept(self):
        planned = date(2026, 3, 20)
        assert start_date_for(TaskStatus.IN_PROGRESS, planned, NOW) == planned

    def test_other_statuses_leave_start_date_alone(self):
        assert start_date_for(TaskStatus.ON_HOLD, None, NOW) is None


class TestUrgency:
    def test_past_due_open_task_is_overdue(self):
        assert urgency_of(date(2026, 3, 9), TaskStatus.IN_PROGRESS, TODAY) == Urgency.OVERDUE

    def test_due_today(self):
        assert urgency_of(TODAY, TaskStatus.PENDING, TODAY) == Urgency.DUE_TODAY

    def test_future_or_missing_due_date_is_normal(self):
        assert urgency_of(date(2026, 3, 11), TaskStatus.PENDING, TODAY) == Urgency.NORMAL
        assert urgency_of(None, TaskStatus.PENDING, TODAY) == Urgency.NORMAL

    def test_terminal_tasks_are_never_overdue(self):
        """A completed or cancelled task past its due date is not overdue."""
        assert urgency_of(date(2026, 1, 1), TaskStatus.COMPLETED, TODAY) == Urgency.NORMAL
        assert urgency_of(TODAY, TaskStatus.CANCELLED, TODAY) == Urgency.NORMAL
