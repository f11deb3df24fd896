"""
Account service — signup, login with lockout, profile and password management.

Passwords are hashed with passlib's pbkdf2_sha256 in the shared thread pool.
Failed logins are counted per account; reaching `login_max_attempts` locks the
account for `login_lock_minutes`.
"""
import hashlib
import logging
import math
import secrets
from datetime import datetime, timedelta

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import User, utcnow
from domain.enums import Role
from domain.errors import (
    AccountLockedError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    UnauthorizedError,
    ValidationError,
)
from services.async_executor import run_blocking
from utils.validators import normalize_email

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

INVALID_CREDENTIALS = "Invalid email or password"
PUBLIC_SIGNUP_ROLES = (Role.USER.value, Role.SELLER.value)


# ── Password helpers ────────────────────────────────────────────────

async def hash_password(password: str) -> str:
    return await run_blocking(pwd_context.hash, password)


async def verify_password(password: str, password_hash: str) -> bool:
    return await run_blocking(pwd_context.verify, password, password_hash)


def _hash_reset_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def check_public_signup_role(role: str | None) -> str:
    """Public signup may create users and sellers only."""
    role = (role or Role.USER.value).strip().lower()
    if role == Role.ADMIN.value:
        raise PermissionDeniedError("Admin accounts cannot be created through public signup")
    if role not in PUBLIC_SIGNUP_ROLES:
        raise ValidationError(f"Invalid role '{role}'. Must be one of: user, seller", field="role")
    return role


# ── Accounts ────────────────────────────────────────────────────────

async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    res = await db.execute(select(User).where(User.email == normalize_email(email)))
    return res.scalar_one_or_none()


async def create_account(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    password: str,
    role: str,
    address: dict | None = None,
    phone: str | None = None,
) -> User:
    email = normalize_email(email)
    if await get_user_by_email(db, email):
        raise ConflictError("An account with this email already exists")

    address = address or {}
    user = User(
        name=name.strip(),
        email=email,
        password_hash=await hash_password(password),
        role=role,
        street=address.get("street"),
        city=address.get("city"),
        state=address.get("state"),
        pincode=address.get("pincode"),
        phone=phone,
    )
    db.add(user)
    await db.flush()
    logger.info(f"Account created: id={user.id} role={role}")
    return user


async def _register_failed_login(db: AsyncSession, user: User, now: datetime) -> None:
    if user.lock_until is not None and user.lock_until <= now:
        # Previous lock expired: start a fresh count
        user.login_attempts = 1
        user.lock_until = None
    else:
        user.login_attempts = (user.login_attempts or 0) + 1

    if user.login_attempts >= settings.login_max_attempts and not user.is_locked(now):
        user.lock_until = now + timedelta(minutes=settings.login_lock_minutes)
        logger.info(f"Account locked after {user.login_attempts} failed logins: id={user.id}")

    user.updated_at = now
    # Persist the counter even though the request fails
    await db.commit()


async def authenticate(db: AsyncSession, *, email: str, password: str, role: str | None = None) -> User:
    """
    Verify credentials and return the user.

    Raises:
        UnauthorizedError: unknown email, deactivated account, wrong password or role
        AccountLockedError: the account is inside its lock window
    """
    now = utcnow()
    user = await get_user_by_email(db, email)
    if user is None or not user.active:
        logger.warning("Login failed: unknown or inactive account")
        raise UnauthorizedError(INVALID_CREDENTIALS)

    if user.is_locked(now):
        minutes = max(1, math.ceil((user.lock_until - now).total_seconds() / 60))
        raise AccountLockedError(minutes)

    password_ok = await verify_password(password, user.password_hash)
    role_ok = role is None or user.role == role
    if not (password_ok and role_ok):
        logger.warning(f"Login failed for id={user.id} (password_ok={password_ok}, role_ok={role_ok})")
        await _register_failed_login(db, user, now)
        raise UnauthorizedError(INVALID_CREDENTIALS)

    if user.login_attempts or user.lock_until:
        user.login_attempts = 0
        user.lock_until = None
        user.updated_at = now
        await db.flush()
    return user


_PASSWORD_KEYS = ("password", "passwordconfirm", "password_confirm", "currentpassword", "current_password")


async def update_profile(db: AsyncSession, user: User, *, changes: dict, extra: dict | None = None) -> User:
    """Update name, email, address and phone. Password fields are refused."""
    if any(k.lower() in _PASSWORD_KEYS for k in (extra or {})):
        raise ValidationError("This route is not for password updates. Please use /update-password.")

    if changes.get("name") is not None:
        user.name = changes["name"].strip()
    if changes.get("email") is not None:
        email = normalize_email(changes["email"])
        if email != user.email:
            if await get_user_by_email(db, email):
                raise ConflictError("An account with this email already exists")
            user.email = email
    if changes.get("address") is not None:
        address = changes["address"]
        for field in ("street", "city", "state", "pincode"):
            if address.get(field) is not None:
                setattr(user, field, address[field])
    if changes.get("phone") is not None:
        user.phone = changes["phone"]

    user.updated_at = utcnow()
    await db.flush()
    return user


async def _set_password(user: User, password: str) -> None:
    user.password_hash = await hash_password(password)
    # One second in the past so a token issued right now stays valid
    user.password_changed_at = utcnow() - timedelta(seconds=1)
    user.updated_at = utcnow()


async def change_password(db: AsyncSession, user: User, *, current_password: str, new_password: str) -> User:
    if not await verify_password(current_password, user.password_hash):
        raise UnauthorizedError("Your current password is wrong.")
    await _set_password(user, new_password)
    await db.flush()
    logger.info(f"Password changed: id={user.id}")
    return user


async def deactivate(db: AsyncSession, user: User) -> User:
    user.active = False
    user.updated_at = utcnow()
    await db.flush()
    logger.info(f"Account deactivated: id={user.id}")
    return user


async def create_reset_token(db: AsyncSession, *, email: str) -> str:
    """Store the sha256 of a fresh reset token and return the raw token."""
    user = await get_user_by_email(db, email)
    if user is None:
        raise NotFoundError("User with that email address")

    raw = secrets.token_hex(32)
    user.password_reset_token = _hash_reset_token(raw)
    user.password_reset_expires = utcnow() + timedelta(minutes=settings.password_reset_ttl_minutes)
    await db.flush()
    logger.info(f"Password reset requested: id={user.id}")
    return raw


async def reset_password(db: AsyncSession, *, raw_token: str, new_password: str) -> User:
    res = await db.execute(
        select(User).where(User.password_reset_token == _hash_reset_token(raw_token))
    )
    user = res.scalar_one_or_none()
    if user is None or user.password_reset_expires is None or user.password_reset_expires <= utcnow():
        raise ValidationError("Token is invalid or has expired")

    await _set_password(user, new_password)
    user.password_reset_token = None
    user.password_reset_expires = None
    user.login_attempts = 0
    user.lock_until = None
    await db.flush()
    logger.info(f"Password reset completed: id={user.id}")
    return user
