"""Tests for users, credentials, and tokens."""
from datetime import timedelta
from uuid import uuid4

import pytest

from tasktrack_core import identity, models, schemas
from tasktrack_core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from tasktrack_core.models import UserRole, UserStatus
from tasktrack_core.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

from conftest import PASSWORD, make_user


class TestPasswords:
    def test_hash_is_salted_and_verifiable(self):
        first = hash_password("hunter22")
        second = hash_password("hunter22")

        assert first != second
        assert first.startswith("pbkdf2_sha256$")
        assert "hunter22" not in first
        assert verify_password("hunter22", first)
        assert not verify_password("hunter23", first)

    def test_malformed_hash_never_verifies(self):
        assert not verify_password("anything", "not-a-hash")


class TestTokens:
    def test_round_trip(self, settings):
        user_id = uuid4()
        token = create_access_token(settings, user_id, "emma", "employee")
        assert decode_access_token(settings, token) == user_id

    def test_expired_token(self, settings):
        token = create_access_token(settings, uuid4(), "emma", "employee", expires_delta=timedelta(seconds=-5))
        with pytest.raises(UnauthorizedError):
            decode_access_token(settings, token)

    def test_wrong_secret(self, settings):
        token = create_access_token(settings, uuid4(), "emma", "employee")
        other = settings.model_copy(update={"jwt_secret": "other-secret"})
        with pytest.raises(UnauthorizedError):
            decode_access_token(other, token)


class TestCreateUser:
    def test_password_is_never_stored_in_plaintext(self, db, employee_a):
        assert employee_a.password_hash != PASSWORD
        assert verify_password(PASSWORD, employee_a.password_hash)

    def test_duplicate_username(self, db, employee_a):
        with pytest.raises(ConflictError) as exc_info:
            identity.create_user(db, "Other", "emma_a", "other@example.com", PASSWORD)
        assert exc_info.value.reason == ConflictError.USERNAME_TAKEN

    def test_duplicate_email_is_case_insensitive(self, db, employee_a):
        with pytest.raises(ConflictError) as exc_info:
            identity.create_user(db, "Other", "other", "EMMA_A@example.com", PASSWORD)
        assert exc_info.value.reason == ConflictError.EMAIL_TAKEN

    def test_invalid_email_and_short_password(self, db):
        with pytest.raises(ValidationError):
            identity.create_user(db, "X", "x", "not-an-email", PASSWORD)
        with pytest.raises(ValidationError):
            identity.create_user(db, "X", "x", "x@example.com", "12345")

    def test_registration_always_creates_employee(self, db):
        user = identity.register(db, schemas.RegisterRequest(
            full_name="New Hire", username="newbie", email="new@example.com", password=PASSWORD,
        ))
        assert user.role == UserRole.EMPLOYEE
        assert user.status == UserStatus.ACTIVE

    def test_only_admin_creates_users_with_roles(self, db, admin, manager):
        data = schemas.UserCreate(
            full_name="Boss", username="boss", email="boss@example.com", password=PASSWORD, role=UserRole.MANAGER,
        )
        with pytest.raises(ForbiddenError):
            identity.admin_create_user(db, data, manager)
        assert identity.admin_create_user(db, data, admin).role == UserRole.MANAGER


class TestVerifyCredential:
    def test_login_by_username_or_email(self, db, employee_a):
        assert identity.verify_credential(db, "emma_a", PASSWORD).id == employee_a.id
        assert identity.verify_credential(db, "Emma_A@Example.com", PASSWORD).id == employee_a.id

    def test_wrong_password(self, db, employee_a):
        with pytest.raises(UnauthorizedError):
            identity.verify_credential(db, "emma_a", "wrong-password")

    def test_unknown_user_looks_like_wrong_password(self, db):
        with pytest.raises(UnauthorizedError) as exc_info:
            identity.verify_credential(db, "nobody", PASSWORD)
        assert exc_info.value.message == "Invalid credentials"

    def test_suspended_user_cannot_log_in(self, db, suspended_user):
        with pytest.raises(UnauthorizedError):
            identity.verify_credential(db, "sam_suspended", PASSWORD)


class TestUserAdministration:
    def test_lookup(self, db, employee_a):
        assert identity.get_user(db, employee_a.id).username == "emma_a"
        assert identity.get_user_by_username(db, "emma_a").id == employee_a.id
        with pytest.raises(NotFoundError):
            identity.get_user(db, uuid4())
        with pytest.raises(NotFoundError):
            identity.get_user_by_username(db, "nobody")

    def test_role_changes_only_through_admin(self, db, admin, manager, employee_a):
        update = schemas.UserUpdate(role=UserRole.MANAGER)
        with pytest.raises(ForbiddenError):
            identity.update_user(db, employee_a.id, update, manager)

        updated = identity.update_user(db, employee_a.id, update, admin)
        assert updated.role == UserRole.MANAGER

    def test_deactivate(self, db, admin, employee_a):
        identity.update_user(db, employee_a.id, schemas.UserUpdate(status=UserStatus.INACTIVE), admin)
        assert employee_a.id not in {u.id for u in identity.list_active_users(db)}

    def test_profile_update_cannot_touch_role(self, db, employee_a):
        updated = identity.update_profile(db, employee_a, schemas.ProfileUpdate(
            full_name="Emma Updated", email="emma.new@example.com",
        ))
        assert updated.full_name == "Emma Updated"
        assert updated.email == "emma.new@example.com"
        assert updated.role == UserRole.EMPLOYEE

    def test_profile_email_must_be_unique(self, db, employee_a, employee_b):
        with pytest.raises(ConflictError):
            identity.update_profile(db, employee_a, schemas.ProfileUpdate(email="ben_b@example.com"))

    def test_delete_unreferenced_user(self, db, admin):
        user = make_user(db, "temp_worker")
        identity.delete_user(db, user.id, admin)
        assert db.get(models.User, user.id) is None

    def test_delete_referenced_user_is_refused(self, db, admin, employee_a, make_task):
        make_task(admin, employee_a)
        with pytest.raises(ConflictError) as exc_info:
            identity.delete_user(db, employee_a.id, admin)
        assert exc_info.value.reason == ConflictError.USER_REFERENCED

    def test_list_active_users_is_sorted_by_name(self, db, admin, employee_a, employee_b, suspended_user):
        names = [u.full_name for u in identity.list_active_users(db)]
        assert names == sorted(names)
        assert "Sam Suspended" not in names
