"""Registration and login endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ... import identity, models, schemas
from ...config import Settings
from ...database import get_db
from ...security import create_access_token
from ..dependencies import get_app_settings, get_current_user

router = APIRouter(tags=["auth"])


def _token_response(settings: Settings, user: models.User) -> schemas.TokenResponse:
    token = create_access_token(settings, user.id, user.username, user.role.value)
    return schemas.TokenResponse(
        access_token=token,
        user=schemas.UserResponse.model_validate(user),
    )


@router.post("/register", response_model=schemas.TokenResponse, status_code=201)
def register(
    data: schemas.RegisterRequest,
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """
    Create an employee account and log it in.

    Elevated roles are granted only by an admin through the users endpoints.
    """
    user = identity.register(db, data)
    return _token_response(settings, user)


@router.post("/login", response_model=schemas.TokenResponse)
def login(
    data: schemas.LoginRequest,
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db),
):
    """Log in with username or email. Only active accounts may log in."""
    user = identity.verify_credential(db, data.username, data.password)
    return _token_response(settings, user)


@router.get("/me", response_model=schemas.UserResponse)
def me(current_user: models.User = Depends(get_current_user)):
    """Return the authenticated user."""
    return current_user
