"""Identity and role store: user records, credentials, and role changes."""
import logging
import re
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import (
    ConflictError,
    ForbiddenError,
    InfrastructureError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from .security import hash_password, verify_password

logger = logging.getLogger("tasktrack-core.identity")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6


def _validate_email(email: str) -> str:
    email = (email or "").strip()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Please provide a valid email address", field="email")
    return email


def _validate_password(password: Optional[str]) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            field="password",
        )
    return password


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to {action}: {e}", exc_info=True)
        raise InfrastructureError(f"Failed to {action}") from e


def get_user(db: Session, user_id: UUID) -> models.User:
    """
    Get a user by ID.

    Raises:
        NotFoundError: If no such user exists
    """
    user = db.get(models.User, user_id)
    if not user:
        raise NotFoundError(f"User not found: {user_id}")
    return user


def get_user_by_username(db: Session, username: str) -> models.User:
    """
    Get a user by username (exact match).

    Raises:
        NotFoundError: If no such user exists
    """
    user = db.query(models.User).filter(models.User.username == username).first()
    if not user:
        raise NotFoundError(f"User not found: {username}")
    return user


def verify_credential(db: Session, username: str, password: str) -> models.User:
    """
    Check a username-or-email and password pair.

    Only active accounts can authenticate. Every failure reason produces the
    same error so callers cannot tell which accounts exist.

    Raises:
        UnauthorizedError: If the credentials do not match an active user
    """
    login = (username or "").strip()
    user = (
        db.query(models.User)
        .filter(
            or_(models.User.username == login, func.lower(models.User.email) == login.lower()),
            models.User.status == models.UserStatus.ACTIVE,
        )
        .first()
    )
    if not user or not verify_password(password or "", user.password_hash):
        logger.warning(f"Login failed for '{login}'")
        raise UnauthorizedError("Invalid credentials")
    logger.info(f"Login successful for user {user.username}")
    return user


def _ensure_unique(db: Session, username: Optional[str], email: Optional[str], exclude_id: Optional[UUID] = None) -> None:
    if username is not None:
        query = db.query(models.User.id).filter(models.User.username == username)
        if exclude_id:
            query = query.filter(models.User.id != exclude_id)
        if query.first():
            raise ConflictError("Username already exists", reason=ConflictError.USERNAME_TAKEN)
    if email is not None:
        query = db.query(models.User.id).filter(func.lower(models.User.email) == email.lower())
        if exclude_id:
            query = query.filter(models.User.id != exclude_id)
        if query.first():
            raise ConflictError("Email already exists", reason=ConflictError.EMAIL_TAKEN)


def create_user(
    db: Session,
    full_name: str,
    username: str,
    email: str,
    password: str,
    role: models.UserRole = models.UserRole.EMPLOYEE,
    status: models.UserStatus = models.UserStatus.ACTIVE,
) -> models.User:
    """
    Create a user with a hashed password.

    Args:
        db: Database session
        full_name: Display name
        username: Unique login name
        email: Unique email address (compared case-insensitively)
        password: Plaintext password, hashed before storage
        role: Role for the new account
        status: Account status for the new account

    Returns:
        Created User

    Raises:
        ValidationError: If a field is missing or malformed
        ConflictError: If the username or email is already taken
    """
    full_name = (full_name or "").strip()
    username = (username or "").strip()
    if not full_name:
        raise ValidationError("Full name is required", field="full_name")
    if not username:
        raise ValidationError("Username is required", field="username")
    email = _validate_email(email)
    _validate_password(password)

    _ensure_unique(db, username, email)

    user = models.User(
        full_name=full_name,
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=models.UserRole(role),
        status=models.UserStatus(status),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        # Lost a race with a concurrent registration
        db.rollback()
        raise ConflictError("Email or username already exists", reason=ConflictError.USERNAME_TAKEN) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create user: {e}", exc_info=True)
        raise InfrastructureError("Failed to create user") from e

    logger.info(f"Created user {user.username} ({user.role.value})")
    return user


def register(db: Session, data: schemas.RegisterRequest) -> models.User:
    """Self registration. The account always starts as an active employee."""
    return create_user(
        db,
        full_name=data.full_name,
        username=data.username,
        email=data.email,
        password=data.password,
        role=models.UserRole.EMPLOYEE,
    )


def _require_admin(actor: models.User, action: str) -> None:
    if actor.role != models.UserRole.ADMIN:
        logger.warning(f"User {actor.username} denied: {action} requires admin")
        raise ForbiddenError(f"Only admins can {action}")


def admin_create_user(db: Session, data: schemas.UserCreate, actor: models.User) -> models.User:
    """Create a user with any role (admin only)."""
    _require_admin(actor, "create users")
    return create_user(
        db,
        full_name=data.full_name,
        username=data.username,
        email=data.email,
        password=data.password,
        role=data.role,
        status=data.status,
    )


def update_user(
    db: Session,
    user_id: UUID,
    update: schemas.UserUpdate,
    actor: models.User,
) -> models.User:
    """
    Update a user's name, role, status, or password (admin only).

    Raises:
        ForbiddenError: If the actor is not an admin
        NotFoundError: If the user does not exist
    """
    _require_admin(actor, "update users")
    user = get_user(db, user_id)

    fields = update.model_dump(exclude_unset=True)
    if "full_name" in fields:
        full_name = (fields["full_name"] or "").strip()
        if not full_name:
            raise ValidationError("Full name is required", field="full_name")
        user.full_name = full_name
    if fields.get("role") is not None:
        if user.role != fields["role"]:
            logger.info(f"Role of {user.username} changed {user.role.value} -> {models.UserRole(fields['role']).value}")
        user.role = models.UserRole(fields["role"])
    if fields.get("status") is not None:
        user.status = models.UserStatus(fields["status"])
    if fields.get("password"):
        user.password_hash = hash_password(_validate_password(fields["password"]))

    _commit(db, "update user")
    return user


def update_profile(db: Session, actor: models.User, update: schemas.ProfileUpdate) -> models.User:
    """
    Update the actor's own name, email, or password.

    Role and status cannot be changed through the profile.
    """
    user = get_user(db, actor.id)
    fields = update.model_dump(exclude_unset=True)

    if "full_name" in fields:
        full_name = (fields["full_name"] or "").strip()
        if not full_name:
            raise ValidationError("Full name is required", field="full_name")
        user.full_name = full_name
    if fields.get("email") is not None:
        email = _validate_email(fields["email"])
        _ensure_unique(db, None, email, exclude_id=user.id)
        user.email = email
    if fields.get("password"):
        user.password_hash = hash_password(_validate_password(fields["password"]))

    _commit(db, "update profile")
    logger.info(f"Profile updated for {user.username}")
    return user


def delete_user(db: Session, user_id: UUID, actor: models.User) -> None:
    """
    Hard-delete a user that no task references (admin only).

    Raises:
        ConflictError: If the user is the assignee or assigner of any task
    """
    _require_admin(actor, "delete users")
    user = get_user(db, user_id)

    referenced = (
        db.query(models.Task.id)
        .filter(or_(models.Task.assigned_to == user.id, models.Task.assigned_by == user.id))
        .first()
    )
    if referenced:
        raise ConflictError(
            f"User {user.username} is referenced by tasks; deactivate the account instead",
            reason=ConflictError.USER_REFERENCED,
        )

    db.delete(user)
    _commit(db, "delete user")
    logger.info(f"Deleted user {user.username}")


def list_active_users(db: Session) -> list[models.User]:
    """Active users ordered by display name, for assignment pickers."""
    return (
        db.query(models.User)
        .filter(models.User.status == models.UserStatus.ACTIVE)
        .order_by(models.User.full_name)
        .all()
    )
