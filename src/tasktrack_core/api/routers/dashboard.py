"""Dashboard endpoint."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ... import models, queries, schemas
from ...clock import Clock
from ...database import get_db
from ..dependencies import get_clock, get_current_user

router = APIRouter(tags=["dashboard"])


@router.get("/summary", response_model=schemas.DashboardSummary)
def dashboard_summary(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: models.User = Depends(get_current_user),
):
    """Task counts for the caller's scope (global for admin/manager)."""
    return queries.dashboard_summary(db, current_user, clock=clock)
