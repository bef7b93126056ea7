"""TaskTrack Core - multi-tenant task tracker.

Modules:
- transitions: task creation and the single update path (authorize, validate,
  apply, history, notify)
- crud: task reads, deletion, projects and checklists
- queries: role-scoped lists, dashboard and workload projections
- identity: users, credentials and role changes
- api: FastAPI application and routers
"""

__version__ = "1.0.0"
