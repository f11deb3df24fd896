"""
Unit tests for the account service.

Tests signup rules, login lockout, profile updates, and password reset.
"""
from datetime import timedelta

import pytest

from config import settings
from db_models import utcnow
from domain.errors import (
    AccountLockedError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    UnauthorizedError,
    ValidationError,
)
from services import auth_service

DEFAULT_PASSWORD = "pass1234!"  # matches the make_user fixture


@pytest.mark.asyncio
async def test_create_account_hashes_and_normalises(db_session):
    user = await auth_service.create_account(
        db_session, name="  Nia  ", email="  Nia@BookNest.IO ", password="longenough", role="user"
    )
    await db_session.commit()

    assert user.email == "nia@booknest.io"
    assert user.name == "Nia"
    assert user.password_hash != "longenough"
    assert await auth_service.verify_password("longenough", user.password_hash)


@pytest.mark.asyncio
async def test_duplicate_email_conflict(db_session, buyer):
    with pytest.raises(ConflictError):
        await auth_service.create_account(
            db_session, name="Other", email="READER@booknest.io", password="longenough", role="user"
        )


def test_public_signup_roles():
    assert auth_service.check_public_signup_role(None) == "user"
    assert auth_service.check_public_signup_role("Seller") == "seller"
    with pytest.raises(PermissionDeniedError):
        auth_service.check_public_signup_role("admin")
    with pytest.raises(ValidationError):
        auth_service.check_public_signup_role("superuser")


@pytest.mark.asyncio
async def test_authenticate_success_resets_attempts(db_session, buyer):
    buyer.login_attempts = 3
    await db_session.commit()

    user = await auth_service.authenticate(db_session, email=buyer.email, password=DEFAULT_PASSWORD)
    assert user.id == buyer.id
    assert user.login_attempts == 0


@pytest.mark.asyncio
async def test_authenticate_unknown_email(db_session):
    with pytest.raises(UnauthorizedError) as exc_info:
        await auth_service.authenticate(db_session, email="ghost@booknest.io", password="x")
    assert exc_info.value.message == "Invalid email or password"


@pytest.mark.asyncio
async def test_wrong_role_counts_as_failure(db_session, buyer):
    with pytest.raises(UnauthorizedError):
        await auth_service.authenticate(db_session, email=buyer.email, password=DEFAULT_PASSWORD, role="seller")
    assert buyer.login_attempts == 1


@pytest.mark.asyncio
async def test_lockout_after_max_attempts(db_session, buyer):
    for _ in range(settings.login_max_attempts):
        with pytest.raises(UnauthorizedError):
            await auth_service.authenticate(db_session, email=buyer.email, password="wrong-password")

    assert buyer.lock_until is not None
    assert buyer.lock_until > utcnow() + timedelta(minutes=settings.login_lock_minutes - 1)

    # Even the right password is refused while locked
    with pytest.raises(AccountLockedError) as exc_info:
        await auth_service.authenticate(db_session, email=buyer.email, password=DEFAULT_PASSWORD)
    assert exc_info.value.status_code == 423
    assert exc_info.value.details["minutesRemaining"] <= settings.login_lock_minutes


@pytest.mark.asyncio
async def test_expired_lock_starts_fresh_count(db_session, buyer):
    buyer.login_attempts = settings.login_max_attempts
    buyer.lock_until = utcnow() - timedelta(minutes=1)
    await db_session.commit()

    with pytest.raises(UnauthorizedError):
        await auth_service.authenticate(db_session, email=buyer.email, password="wrong-password")
    assert buyer.login_attempts == 1
    assert buyer.lock_until is None


@pytest.mark.asyncio
async def test_inactive_account_cannot_login(db_session, buyer):
    await auth_service.deactivate(db_session, buyer)
    await db_session.commit()
    with pytest.raises(UnauthorizedError):
        await auth_service.authenticate(db_session, email=buyer.email, password=DEFAULT_PASSWORD)


@pytest.mark.asyncio
async def test_update_profile_refuses_password_fields(db_session, buyer):
    with pytest.raises(ValidationError) as exc_info:
        await auth_service.update_profile(db_session, buyer, changes={}, extra={"password": "newpass123"})
    assert "update-password" in exc_info.value.message


@pytest.mark.asyncio
async def test_update_profile_changes_fields(db_session, buyer, seller):
    user = await auth_service.update_profile(
        db_session,
        buyer,
        changes={"name": "Riya R", "phone": "9999999999", "address": {"city": "Mumbai"}},
    )
    assert user.name == "Riya R"
    assert user.city == "Mumbai"

    with pytest.raises(ConflictError):
        await auth_service.update_profile(db_session, buyer, changes={"email": seller.email})


@pytest.mark.asyncio
async def test_change_password_requires_current(db_session, buyer):
    with pytest.raises(UnauthorizedError):
        await auth_service.change_password(
            db_session, buyer, current_password="nope", new_password="brandnew123"
        )

    user = await auth_service.change_password(
        db_session, buyer, current_password=DEFAULT_PASSWORD, new_password="brandnew123"
    )
    assert user.password_changed_at is not None
    assert await auth_service.verify_password("brandnew123", user.password_hash)


@pytest.mark.asyncio
async def test_reset_token_flow(db_session, buyer):
    raw = await auth_service.create_reset_token(db_session, email=buyer.email)
    assert buyer.password_reset_token != raw
    assert len(buyer.password_reset_token) == 64

    buyer.login_attempts = 4
    user = await auth_service.reset_password(db_session, raw_token=raw, new_password="resetpass1")
    assert user.password_reset_token is None
    assert user.login_attempts == 0
    assert await auth_service.verify_password("resetpass1", user.password_hash)

    # Token is single-use
    with pytest.raises(ValidationError):
        await auth_service.reset_password(db_session, raw_token=raw, new_password="another123")


@pytest.mark.asyncio
async def test_expired_reset_token(db_session, buyer):
    raw = await auth_service.create_reset_token(db_session, email=buyer.email)
    buyer.password_reset_expires = utcnow() - timedelta(seconds=1)
    await db_session.flush()
    with pytest.raises(ValidationError):
        await auth_service.reset_password(db_session, raw_token=raw, new_password="resetpass1")


@pytest.mark.asyncio
async def test_reset_token_unknown_email(db_session):
    with pytest.raises(NotFoundError):
        await auth_service.create_reset_token(db_session, email="ghost@booknest.io")
