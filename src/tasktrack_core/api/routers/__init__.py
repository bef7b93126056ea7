"""API routers for TaskTrack Core."""

from . import auth, dashboard, notifications, projects, tasks, users

__all__ = ["auth", "dashboard", "notifications", "projects", "tasks", "users"]
