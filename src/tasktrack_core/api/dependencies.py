"""Request-scoped dependencies: settings, clock, and the authenticated actor."""
import logging
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from .. import models
from ..clock import Clock
from ..config import Settings
from ..database import get_db
from ..errors import UnauthorizedError
from ..security import decode_access_token

logger = logging.getLogger("tasktrack-core.auth")


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
) -> models.User:
    """
    Resolve the bearer token to an active user.

    The stored role is authoritative; the role claim in the token is ignored.

    Raises:
        UnauthorizedError: Missing/invalid token, unknown or inactive user
    """
    if not authorization:
        raise UnauthorizedError("Access token required")
    if not authorization.startswith("Bearer "):
        raise UnauthorizedError("Authorization header must start with 'Bearer '")

    user_id = decode_access_token(settings, authorization[len("Bearer "):].strip())
    user = db.get(models.User, user_id)
    if not user or not user.is_active:
        logger.warning(f"Token for unknown or inactive user {user_id}")
        raise UnauthorizedError("Invalid or expired token")
    return user
